"""Shared fixtures for the interchange test suites."""

import io
import itertools

import pytest
from PIL import Image

from ellipsis_interchange.models import (
    Character,
    ChatMessage,
    Coords,
    DynamicEntry,
    Narrative,
    NarrativeState,
    Scenario,
    StaticEntry,
    Story,
)
from ellipsis_interchange.models.defaults import default_world_map


@pytest.fixture
def make_image():
    """Factory for small in-memory images."""
    def _make(width=4, height=4, fmt="PNG", mode="RGB", color=(200, 30, 30)):
        if mode == "RGBA" and len(color) == 3:
            color = (*color, 255)
        output = io.BytesIO()
        Image.new(mode, (width, height), color).save(output, format=fmt)
        return output.getvalue()
    return _make


@pytest.fixture
def id_factory():
    """Predictable identifier generator: id-1, id-2, ..."""
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def sample_story():
    """A story with two AI characters, map locations and a played narrative."""
    world_map = default_world_map()
    forest = world_map.location_at(Coords(x=0, y=0))
    forest.name = "Forest"
    forest.description = "Dark woods"
    tavern = world_map.location_at(Coords(x=4, y=4))
    tavern.name = "Tavern"
    tavern.description = "A warm tavern"
    tavern.prompt = "Smoky room"
    tavern.local_static_entries = [StaticEntry(id="l1", title="Barkeep", content="Knows everything.")]

    narrative = Narrative(
        id="n1",
        name="Rainy Night",
        active_character_ids=["u1", "c1", "c2"],
        state=NarrativeState(
            chat_history=[
                ChatMessage(character_id="u1", content="Hi there", is_hidden=True),
                ChatMessage(character_id="c1", content="Greetings, {user}.", is_hidden=True),
                ChatMessage(character_id="c1", content="Welcome to the tavern, {user}."),
                ChatMessage(character_id="u1", content="Thanks"),
            ],
            message_counter=2,
            static_entries=[
                StaticEntry(id="st1", title="Starting Scenario", content="A rainy night."),
                StaticEntry(id="st2", title="Rules", content="No magic."),
            ],
            world_map=world_map,
        ),
    )

    story = Story(
        id="story-1",
        name="Sample: Story",
        tags=["fantasy"],
        characters=[
            Character(id="u1", name="You", is_user=True, description="The protagonist."),
            Character(
                id="c1",
                name="Aria",
                description="Aria is a bard. {character} sings for {user}.",
                model_instructions="Act as {character}.",
                tags=["bard"],
            ),
            Character(id="c2", name="Borin", description="A grumpy dwarf."),
            Character(id="c3", name="Ghost", description="Not here.", is_active=False),
        ],
        dynamic_entries=[
            DynamicEntry(
                id="d1",
                title="Moonstone",
                triggers="moonstone, gem",
                content_fields=["A glowing gem.", "A shattered gem."],
                current_index=1,
            ),
        ],
        scenarios=[
            Scenario(
                id="s1",
                name="Opening",
                message="Hello {user}!",
                active_character_ids=["u1", "c1"],
                example_dialogue=[ChatMessage(character_id="c1", content="Example line", is_hidden=True)],
            ),
        ],
        font_family="serif",
    )
    story.narratives.append(narrative.to_stub())
    return story, narrative
