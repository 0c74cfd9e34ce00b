"""
Character Card Adapter
=====================

Converts between character card V2 data and canonical stories.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ellipsis_interchange.config import CardConfig, DefaultsConfig
from ellipsis_interchange.models import (
    Character,
    ChatMessage,
    DynamicEntry,
    Narrative,
    NarrativeState,
    Scenario,
    StaticEntry,
    Story,
)
from ellipsis_interchange.models.defaults import (
    PROMPT_SNAPSHOT_KEYS,
    default_prompts,
    default_user_character,
    default_world_map,
)
from .exceptions import ParseError
from .lore import merge_lore
from .macro_processor import (
    DialogueStyle,
    DialogueTurn,
    MacroProcessor,
    Speaker,
    extract_summary,
    render_dialogue,
    segment_dialogue,
)
from .models import CardData, CharacterBook, CharacterBookEntry, CharacterCard

logger = logging.getLogger(__name__)

DEFAULT_CARD_INSTRUCTIONS = "Act as {character}. Be descriptive and engaging."
OTHER_CHARACTERS_HEADER = "--- Other Characters ---"


def _build_persona(data: CardData) -> str:
    """Card description plus its separate personality field, if any."""
    persona = data.description
    if data.personality and data.personality not in persona:
        persona = f"{persona}\n\nPersonality: {data.personality}" if persona else data.personality
    return MacroProcessor.to_internal(persona)


def _render_other_characters(characters: List[Character]) -> str:
    """Describe companions the card format has no room for."""
    if not characters:
        return ""
    lines = [f"\n\n{OTHER_CHARACTERS_HEADER}\n"]
    for char in characters:
        lines.append(
            f"\nName: {char.name or 'Unnamed Character'}\n"
            f"Description: {char.description or '(No description)'}\n"
        )
    return "".join(lines)


def _prompt_snapshot(story: Story) -> Dict[str, Any]:
    """Copy of the story-level prompt settings a scenario captures."""
    extras = story.model_extra or {}
    return {key: extras[key] for key in PROMPT_SNAPSHOT_KEYS if key in extras}


class CardAdapter:
    """Convert between character card V2 and canonical stories."""

    @staticmethod
    def load(raw: Any) -> CardData:
        """
        Validate raw card JSON (V2/V3 wrapper, or bare V1 fields).

        Raises:
            ParseError: Not a card-shaped object
        """
        if not isinstance(raw, dict):
            raise ParseError("Character card data is not a JSON object")
        data = raw.get("data", raw)
        if not isinstance(data, dict):
            raise ParseError("Character card 'data' field is not an object")
        spec = raw.get("spec")
        if spec and not str(spec).startswith("chara_card_"):
            logger.warning(f"Unrecognized character card spec: {spec}")
        try:
            return CardData.model_validate(data)
        except ValidationError as e:
            raise ParseError(f"Invalid character card data: {e}") from e

    @staticmethod
    def parse(
        raw: Any,
        new_id: Callable[[], str],
        defaults: Optional[DefaultsConfig] = None
    ) -> Tuple[Story, Narrative]:
        """
        Convert a character card to a fresh canonical story.

        Besides the story, returns the initial narrative: the example
        dialogue as hidden turns followed by the first greeting.

        Args:
            raw: Parsed card JSON
            new_id: Identifier generator
            defaults: Fallback names and templates

        Returns:
            Tuple of (story, narrative)
        """
        defaults = defaults or DefaultsConfig()
        data = CardAdapter.load(raw)
        name = data.name or defaults.story_name

        user_char = default_user_character(new_id(), defaults.user_name)
        ai_char = Character(
            id=new_id(),
            name=name,
            description=_build_persona(data),
            short_description=extract_summary(MacroProcessor.to_internal(data.description)),
            model_instructions=MacroProcessor.to_internal(data.system_prompt or DEFAULT_CARD_INSTRUCTIONS),
            tags=list(data.tags),
        )
        active_ids = [user_char.id, ai_char.id]

        book_entries = data.character_book.entries if data.character_book else []
        dynamic_entries = []
        for entry in book_entries:
            joined = ", ".join(entry.keys)
            dynamic_entries.append(DynamicEntry(
                id=new_id(),
                title=entry.name or joined or "Imported Lore",
                triggers=joined,
                content_fields=[MacroProcessor.to_internal(entry.content)],
            ))

        speaker_ids = {Speaker.USER: user_char.id, Speaker.CHARACTER: ai_char.id}
        example_dialogue = [
            ChatMessage(character_id=speaker_ids[turn.speaker], content=turn.content, is_hidden=True)
            for turn in segment_dialogue(data.mes_example)
        ]

        static_entries = []
        if data.scenario:
            static_entries.append(StaticEntry(
                id=new_id(),
                title="Scenario",
                content=MacroProcessor.to_internal(data.scenario),
            ))

        story = Story(
            id=new_id(),
            name=name,
            tags=list(data.tags),
            characters=[user_char, ai_char],
            dynamic_entries=dynamic_entries,
            creator_notes=data.creator_notes,
            **default_prompts(),
        )
        snapshot = _prompt_snapshot(story)

        greetings = [data.first_mes or defaults.greeting_template.format(name=name)]
        greetings.extend(g for g in data.alternate_greetings if g)
        for index, greeting in enumerate(greetings):
            story.scenarios.append(Scenario(
                id=new_id(),
                name="Imported Start" if index == 0 else f"Alternate Start {index}",
                message=MacroProcessor.to_internal(greeting),
                active_character_ids=list(active_ids),
                dynamic_entries=[e.model_copy(deep=True) for e in dynamic_entries],
                example_dialogue=[m.model_copy(deep=True) for m in example_dialogue],
                static_entries=[e.model_copy(deep=True) for e in static_entries],
                world_map=default_world_map(),
                prompts=dict(snapshot),
            ))

        narrative = Narrative(
            id=new_id(),
            name=defaults.narrative_name,
            active_character_ids=list(active_ids),
            state=NarrativeState(
                chat_history=[m.model_copy(deep=True) for m in example_dialogue],
                static_entries=[e.model_copy(deep=True) for e in static_entries],
                world_map=default_world_map(),
            ),
        )
        first_message = story.scenarios[0].message
        narrative.state.chat_history.append(ChatMessage(character_id=ai_char.id, content=first_message))
        narrative.state.message_counter = 1
        story.narratives.append(narrative.to_stub())

        logger.info(
            f"Converted character card '{name}' to story "
            f"({len(dynamic_entries)} lore entries, {len(example_dialogue)} example turns, "
            f"{len(story.scenarios)} scenarios)"
        )
        return story, narrative

    @staticmethod
    def serialize(
        story: Story,
        narrative: Narrative,
        primary_character_id: str,
        card_config: Optional[CardConfig] = None,
        defaults: Optional[DefaultsConfig] = None
    ) -> Dict[str, Any]:
        """
        Convert a story/narrative pair to character card V2 JSON.

        Args:
            story: Story to export
            narrative: Narrative supplying chat history, map and static lore
            primary_character_id: Character the card is about
            card_config: Lorebook scan settings
            defaults: Fallback greeting template

        Returns:
            Card dict ready to embed

        Raises:
            ValueError: Primary character not in the story
        """
        card_config = card_config or CardConfig()
        defaults = defaults or DefaultsConfig()
        to_external = MacroProcessor.to_external

        primary = story.get_character(primary_character_id)
        if primary is None:
            raise ValueError(f"Primary character not found: {primary_character_id}")

        if narrative.active_character_ids is not None:
            active_ids = set(narrative.active_character_ids)
        else:
            active_ids = {c.id for c in story.characters if c.is_active}
        others = [
            c for c in story.characters
            if not c.is_user and c.id != primary.id and c.id in active_ids
        ]
        description = (primary.description or "") + _render_other_characters(others)

        book_entries = [
            CharacterBookEntry(
                keys=entry.keys,
                content=to_external(entry.content),
                enabled=True,
                insertion_order=entry.insertion_order,
                case_sensitive=False,
                name=entry.title,
            )
            for entry in merge_lore(story, narrative, include_local=True)
        ]

        turns = []
        for message in narrative.state.hidden_examples():
            speaker = story.get_character(message.character_id)
            if speaker is None:
                turns.append(DialogueTurn(content=message.content))
            else:
                role = Speaker.USER if speaker.is_user else Speaker.CHARACTER
                turns.append(DialogueTurn(content=message.content, speaker=role))

        first = narrative.state.first_ordinary_message()
        first_mes = first.content if first else defaults.greeting_template.format(name=primary.name)
        alternate_greetings = []
        for scenario in story.scenarios:
            if scenario.message and scenario.message != first_mes and scenario.message not in alternate_greetings:
                alternate_greetings.append(scenario.message)

        scenario_text = "\n\n---\n\n".join(
            f"[{entry.title or 'Untitled Entry'}]\n{entry.content or '(No content)'}"
            for entry in narrative.state.static_entries
        )

        card = CharacterCard(
            data=CardData(
                name=primary.name,
                description=to_external(description),
                personality="",
                scenario=to_external(scenario_text),
                first_mes=to_external(first_mes),
                mes_example=render_dialogue(turns, DialogueStyle.CARD),
                creator_notes=(story.model_extra or {}).get("creator_notes") or "",
                system_prompt=to_external(primary.model_instructions),
                alternate_greetings=[to_external(g) for g in alternate_greetings],
                character_book=CharacterBook(
                    scan_depth=card_config.scan_depth,
                    token_budget=card_config.token_budget,
                    recursive_scanning=False,
                    entries=book_entries,
                ),
                tags=list(primary.tags),
            )
        )

        logger.info(
            f"Converted story '{story.name}' to character card for '{primary.name}' "
            f"({len(book_entries)} lore entries, {len(turns)} example turns)"
        )
        return card.model_dump(mode="json", exclude_none=True)
