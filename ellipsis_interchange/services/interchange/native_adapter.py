"""
Native Story JSON Adapter
========================

The native format is the canonical Story serialized as-is, with full
narratives optionally inlined in place of their stubs. Importing assigns
fresh identifiers so the copy never collides with the story it came from.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ellipsis_interchange.models import (
    ChatMessage,
    Character,
    Narrative,
    NarrativeStub,
    Story,
    WorldMap,
)
from .exceptions import FormatError, ParseError

logger = logging.getLogger(__name__)


def _ensure_characters_exist(
    story: Story,
    history: List[ChatMessage],
    char_ids: Dict[str, str],
    new_id: Callable[[], str],
) -> int:
    """
    Give every chat speaker missing from the roster a placeholder character.

    char_ids maps source ids to fresh ones and gains an entry for each
    placeholder, so the history can be remapped afterwards.

    Returns:
        Number of characters created
    """
    created = 0
    for message in history:
        if message.type != "chat" or not message.character_id or message.character_id in char_ids:
            continue
        fresh = new_id()
        story.characters.append(Character(
            id=fresh,
            name=(message.model_extra or {}).get("name") or "Unknown Speaker",
            description="Imported from group chat history.",
            short_description="Imported.",
            model_instructions="Act as this character.",
            tags=["imported"],
        ))
        char_ids[message.character_id] = fresh
        created += 1
    return created


class NativeAdapter:
    """Read and write native story JSON."""

    @staticmethod
    def load(raw: Any) -> Tuple[Story, List[Narrative]]:
        """
        Validate a native story document without touching its identifiers.

        Full narratives (those carrying a "state") are returned separately;
        the story keeps a stub for each of them.

        Raises:
            FormatError: Document lacks id, name or characters
            ParseError: Document fields have the wrong shape
        """
        if (
            not isinstance(raw, dict)
            or not raw.get("id")
            or not raw.get("name")
            or not isinstance(raw.get("characters"), list)
        ):
            raise FormatError("Invalid Ellipsis JSON file.")

        document = {key: value for key, value in raw.items() if key != "narratives"}
        full_docs, stub_docs = [], []
        for item in raw.get("narratives") or []:
            if not isinstance(item, dict):
                logger.warning(f"Skipping malformed narrative entry: {item!r}")
                continue
            (full_docs if "state" in item else stub_docs).append(item)

        try:
            story = Story.model_validate(document)
            narratives = [Narrative.model_validate(n) for n in full_docs]
            stubs = [NarrativeStub.model_validate(s) for s in stub_docs]
        except ValidationError as e:
            raise ParseError(f"Invalid story data: {e}") from e

        story.narratives = [n.to_stub() for n in narratives] + stubs
        return story, narratives

    @staticmethod
    def parse(raw: Any, new_id: Callable[[], str]) -> Tuple[Story, List[Narrative]]:
        """
        Convert a native story document to a story with fresh identifiers.

        Character ids are remapped wherever they are referenced; story,
        scenario, narrative and lore entry ids are regenerated, including the
        local notes on world map locations. Unknown chat speakers get
        placeholder characters with fresh ids.

        Args:
            raw: Parsed story JSON
            new_id: Identifier generator

        Returns:
            Tuple of (story, full narratives found inline)

        Raises:
            FormatError: Document lacks id, name or characters
            ParseError: Document fields have the wrong shape
        """
        story, narratives = NativeAdapter.load(raw)
        full_ids = {n.id for n in narratives}
        stubs = [s for s in story.narratives if s.id not in full_ids]

        char_ids: Dict[str, str] = {}
        for character in story.characters:
            fresh = new_id()
            char_ids[character.id] = fresh
            character.id = fresh

        def remap_history(history: List[ChatMessage]) -> None:
            for message in history:
                if message.character_id in char_ids:
                    message.character_id = char_ids[message.character_id]

        def remap_ids(ids: List[str]) -> List[str]:
            return [char_ids.get(i, i) for i in ids]

        def refresh_map(world_map: Optional[WorldMap]) -> None:
            if world_map is None:
                return
            for location in world_map.grid:
                for entry in location.local_static_entries:
                    entry.id = new_id()

        story.id = new_id()
        for entry in story.dynamic_entries:
            entry.id = new_id()

        for scenario in story.scenarios:
            scenario.id = new_id()
            remap_history(scenario.example_dialogue)
            scenario.active_character_ids = remap_ids(scenario.active_character_ids)
            for entry in scenario.dynamic_entries:
                entry.id = new_id()
            for entry in scenario.static_entries:
                entry.id = new_id()
            refresh_map(scenario.world_map)

        ghosts = 0
        for narrative in narratives:
            narrative.id = new_id()
            ghosts += _ensure_characters_exist(story, narrative.state.chat_history, char_ids, new_id)
            remap_history(narrative.state.chat_history)
            if narrative.active_character_ids is not None:
                narrative.active_character_ids = remap_ids(narrative.active_character_ids)
            for entry in narrative.state.static_entries:
                entry.id = new_id()
            refresh_map(narrative.state.world_map)

        for stub in stubs:
            stub.id = new_id()
        story.narratives = [n.to_stub() for n in narratives] + stubs

        logger.info(
            f"Imported story '{story.name}' "
            f"({len(story.characters)} characters, {len(narratives)} narratives, "
            f"{ghosts} placeholder characters)"
        )
        return story, narratives

    @staticmethod
    def serialize(story: Story, narratives: Optional[List[Narrative]] = None) -> Dict[str, Any]:
        """
        Dump a story as native JSON, inlining the given full narratives.

        Narratives the story only knows by stub stay stubs.
        """
        document = story.model_dump(mode="json", by_alias=True)
        inline = {n.id: n.model_dump(mode="json", by_alias=True) for n in narratives or []}
        merged = [inline.pop(stub["id"], stub) for stub in document.get("narratives", [])]
        merged.extend(inline.values())
        document["narratives"] = merged
        return document
