"""Default values for freshly imported stories."""

from typing import Dict, List

from .story import Character, Coords, Location, WorldMap

MAP_SIZE = 8
START_LOCATION = Coords(x=4, y=4)

DEFAULT_SYSTEM_PROMPTS: Dict[str, str] = {
    "system_prompt": "You are a master storyteller. Follow instructions precisely.",
    "event_master_base_prompt": (
        "You are a secret Event Master. Read the chat. Generate a brief, secret instruction "
        "for AI characters to introduce a logical but unexpected event."
    ),
    "prompt_persona_gen": (
        "Embellish this character concept into a rich, detailed, and compelling persona "
        "description, focusing on detailed appearance, personality, goals, relationships, "
        "and backstory. CONCEPT: \"{concept}\""
    ),
    "prompt_world_map_gen": (
        "Based on the following story context, generate a genre-appropriate 8x8 grid of "
        "interconnected fantasy locations. The central location (4,4) should be a neutral "
        "starting point."
    ),
    "prompt_location_gen": (
        "Generate a rich, detailed, and evocative paragraph-long prompt for a fantasy location "
        "named '{name}' which is briefly described as '{description}'."
    ),
    "prompt_entry_gen": (
        "Generate a detailed and informative encyclopedia-style entry for a lore topic titled "
        "'{title}'. If relevant, use the following triggers as context: '{triggers}'."
    ),
    "prompt_location_memory_gen": (
        "You are an archivist. Read the following chat transcript that occurred at a specific "
        "location. Summarize the key events into a concise, single paragraph.\n\n"
        "TRANSCRIPT:\n{transcript}"
    ),
}

# Story-level settings captured into each imported scenario's prompt snapshot
PROMPT_SNAPSHOT_KEYS: List[str] = [
    "system_prompt",
    "event_master_base_prompt",
    "prompt_persona_gen",
    "prompt_world_map_gen",
    "prompt_location_gen",
    "prompt_entry_gen",
    "prompt_location_memory_gen",
]


def default_prompts() -> Dict[str, str]:
    return dict(DEFAULT_SYSTEM_PROMPTS)


def default_world_map() -> WorldMap:
    """Empty 8x8 grid with the party standing in the middle."""
    grid = [
        Location(coords=Coords(x=x, y=y))
        for y in range(MAP_SIZE)
        for x in range(MAP_SIZE)
    ]
    return WorldMap(
        grid=grid,
        current_location=START_LOCATION.model_copy(),
        destination=Coords(),
        path=[],
    )


def default_user_character(character_id: str, name: str = "You") -> Character:
    """The user-role character every canonical story needs."""
    return Character(
        id=character_id,
        name=name,
        description="The protagonist.",
        short_description="The main character.",
        model_instructions="Write a response for {user} in a creative and descriptive style.",
        is_user=True,
    )
