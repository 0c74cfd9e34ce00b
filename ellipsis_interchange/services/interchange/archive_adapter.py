"""
Archive Adapter
===============

Converts between Backyard AI archives (BYAF) and canonical stories.

An archive is a ZIP bundle:

    manifest.json
    characters/<id>/character.json
    characters/<id>/images/<id>.<ext>
    scenarios/scenario1.json
    images/story_background.png      (optional)
"""

import io
import json
import logging
import re
import zipfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from ellipsis_interchange.config import DefaultsConfig
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
from .exceptions import FormatError, ParseError
from .lore import merge_lore
from .macro_processor import (
    DialogueStyle,
    Speaker,
    extract_summary,
    parse_prefixed_message,
    render_turn,
)
from .models import (
    ArchiveCharacter,
    ArchiveImage,
    ArchiveLoreItem,
    ArchiveManifest,
    ArchiveMessage,
    ArchiveScenario,
)

logger = logging.getLogger(__name__)

DEFAULT_ARCHIVE_INSTRUCTIONS = "Act as {character}."
STARTING_SCENARIO_TITLE = "Starting Scenario"
BACKGROUND_MEMBER = "images/story_background.png"
ARCHIVE_LOCATION_TEMPLATE = "Description: {description}\n\nPrompt: {prompt}"

CHARACTER_MEMBER_PATTERN = re.compile(r"character\.json$", re.IGNORECASE)
SCENARIO_MEMBER_PATTERN = re.compile(r"scenario\d*\.json$", re.IGNORECASE)
IMAGE_MEMBER_PATTERN = re.compile(r"\.(png|jpe?g|webp)$", re.IGNORECASE)


@dataclass
class ArchiveContents:
    """Members pulled out of an archive file."""
    character: Dict[str, Any]
    scenario: Dict[str, Any]
    image: Optional[bytes] = None
    image_name: Optional[str] = None
    background: Optional[bytes] = None


@dataclass
class ArchiveBundle:
    """Archive documents ready to be zipped."""
    manifest: Dict[str, Any]
    character: Dict[str, Any]
    scenario: Dict[str, Any]
    character_path: str
    scenario_path: str
    image_path: Optional[str] = None


def _find_member(names: List[str], pattern: re.Pattern) -> Optional[str]:
    return next((name for name in names if pattern.search(name)), None)


def _load_json_member(archive: zipfile.ZipFile, name: str) -> Dict[str, Any]:
    try:
        document = json.loads(archive.read(name).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseError(f"Invalid JSON in archive member {name}: {e}") from e
    if not isinstance(document, dict):
        raise ParseError(f"Archive member {name} is not a JSON object")
    return document


def _now() -> str:
    return datetime.now().isoformat()


class ArchiveAdapter:
    """Convert between BYAF archives and canonical stories."""

    @staticmethod
    def read_archive(data: bytes) -> ArchiveContents:
        """
        Unpack the members the importer needs.

        The scenario document is located first; an archive without one is
        rejected before the character document is read.

        Raises:
            FormatError: Not a ZIP file, or a required document is missing
            ParseError: A document is not valid JSON
        """
        try:
            archive = zipfile.ZipFile(io.BytesIO(data), "r")
        except zipfile.BadZipFile as e:
            raise FormatError(f"Invalid archive (not a valid ZIP): {e}") from e

        with archive:
            names = [info.filename for info in archive.infolist() if not info.is_dir()]
            scenario_name = _find_member(names, SCENARIO_MEMBER_PATTERN)
            character_name = _find_member(names, CHARACTER_MEMBER_PATTERN)
            if scenario_name is None and character_name is None:
                raise FormatError("Archive is missing both character.json and scenario.json")
            if scenario_name is None:
                raise FormatError("Archive is missing scenario.json")
            if character_name is None:
                raise FormatError("Archive is missing character.json")

            scenario = _load_json_member(archive, scenario_name)
            character = _load_json_member(archive, character_name)

            image_name = None
            character_dir = PurePosixPath(character_name).parent
            for image in character.get("images") or []:
                path = image.get("path") if isinstance(image, dict) else None
                candidate = str(character_dir / path) if path else None
                if candidate in names:
                    image_name = candidate
                    break
            if image_name is None:
                image_name = next(
                    (n for n in names if IMAGE_MEMBER_PATTERN.search(n) and n != BACKGROUND_MEMBER),
                    None,
                )

            image = archive.read(image_name) if image_name else None
            background = archive.read(BACKGROUND_MEMBER) if BACKGROUND_MEMBER in names else None

        logger.debug(
            f"Read archive: character={character_name}, scenario={scenario_name}, "
            f"image={image_name}, background={'yes' if background else 'no'}"
        )
        return ArchiveContents(
            character=character,
            scenario=scenario,
            image=image,
            image_name=image_name,
            background=background,
        )

    @staticmethod
    def write_archive(
        bundle: ArchiveBundle,
        image: Optional[bytes] = None,
        background: Optional[bytes] = None
    ) -> bytes:
        """Zip an archive bundle (plus optional images) in memory."""
        output = io.BytesIO()
        with zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as zipf:
            zipf.writestr("manifest.json", json.dumps(bundle.manifest, indent=2, ensure_ascii=False))
            zipf.writestr(bundle.character_path, json.dumps(bundle.character, indent=2, ensure_ascii=False))
            zipf.writestr(bundle.scenario_path, json.dumps(bundle.scenario, indent=2, ensure_ascii=False))
            if image is not None and bundle.image_path:
                zipf.writestr(bundle.image_path, image)
            if background is not None:
                zipf.writestr(BACKGROUND_MEMBER, background)
        return output.getvalue()

    @staticmethod
    def parse(
        character_doc: Dict[str, Any],
        scenario_doc: Dict[str, Any],
        new_id: Callable[[], str],
        defaults: Optional[DefaultsConfig] = None
    ) -> Tuple[Story, Narrative]:
        """
        Convert archive documents to a fresh canonical story.

        Example lines prefixed with an unknown "Name:" get a character of
        their own.

        Args:
            character_doc: Parsed character.json
            scenario_doc: Parsed scenario.json
            new_id: Identifier generator
            defaults: Fallback names and templates

        Returns:
            Tuple of (story, narrative)
        """
        defaults = defaults or DefaultsConfig()
        try:
            source = ArchiveCharacter.model_validate(character_doc)
            scenario = ArchiveScenario.model_validate(scenario_doc)
        except ValidationError as e:
            raise ParseError(f"Invalid archive document: {e}") from e

        name = source.display_name or source.name or defaults.story_name
        user_char = default_user_character(new_id(), defaults.user_name)
        ai_char = Character(
            id=new_id(),
            name=name,
            description=source.persona,
            short_description=extract_summary(source.persona),
            model_instructions=scenario.formatting_instructions or DEFAULT_ARCHIVE_INSTRUCTIONS,
            tags=list(source.tags),
        )
        characters = [user_char, ai_char]

        by_name = {
            user_char.name.lower(): user_char.id,
            ai_char.name.lower(): ai_char.id,
        }
        if source.name:
            by_name.setdefault(source.name.lower(), ai_char.id)
        speaker_ids = {Speaker.USER: user_char.id, Speaker.CHARACTER: ai_char.id}

        def resolve_named(speaker_name: str) -> str:
            key = speaker_name.lower()
            if key not in by_name:
                ghost = Character(
                    id=new_id(),
                    name=speaker_name,
                    description=f"A character named {speaker_name}.",
                    model_instructions=DEFAULT_ARCHIVE_INSTRUCTIONS,
                )
                characters.append(ghost)
                by_name[key] = ghost.id
                logger.info(f"Created character '{speaker_name}' for archive example dialogue")
            return by_name[key]

        example_dialogue = []
        for message in scenario.example_messages:
            turn = parse_prefixed_message(message.text)
            if not turn.content:
                continue
            if turn.speaker is not None:
                character_id = speaker_ids[turn.speaker]
            elif turn.speaker_name:
                character_id = resolve_named(turn.speaker_name)
            else:
                character_id = ai_char.id
            example_dialogue.append(ChatMessage(
                character_id=character_id,
                content=turn.content,
                emotion="neutral",
                is_hidden=True,
            ))

        dynamic_entries = [
            DynamicEntry(
                id=new_id(),
                title=item.key or "Imported Lore",
                triggers=item.key,
                content_fields=[item.value],
            )
            for item in source.lore_items
        ]

        static_entries = []
        if scenario.narrative:
            static_entries.append(StaticEntry(
                id=new_id(),
                title=STARTING_SCENARIO_TITLE,
                content=scenario.narrative,
            ))

        story = Story(
            id=new_id(),
            name=name,
            tags=list(source.tags),
            characters=characters,
            dynamic_entries=dynamic_entries,
            **default_prompts(),
        )
        extras = story.model_extra or {}
        snapshot = {key: extras[key] for key in PROMPT_SNAPSHOT_KEYS if key in extras}
        active_ids = [c.id for c in characters]

        first = scenario.first_messages[0].text if scenario.first_messages else ""
        first_message = first or defaults.greeting_template.format(name=name)
        story.scenarios.append(Scenario(
            id=new_id(),
            name=scenario.title or "Imported Start",
            message=first_message,
            active_character_ids=list(active_ids),
            dynamic_entries=[e.model_copy(deep=True) for e in dynamic_entries],
            example_dialogue=[m.model_copy(deep=True) for m in example_dialogue],
            static_entries=[e.model_copy(deep=True) for e in static_entries],
            world_map=default_world_map(),
            prompts=snapshot,
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
        narrative.state.chat_history.append(ChatMessage(character_id=ai_char.id, content=first_message))
        narrative.state.message_counter = 1
        story.narratives.append(narrative.to_stub())

        logger.info(
            f"Converted archive character '{name}' to story "
            f"({len(dynamic_entries)} lore entries, {len(example_dialogue)} example turns, "
            f"{len(characters) - 2} extra speakers)"
        )
        return story, narrative

    @staticmethod
    def serialize(
        story: Story,
        narrative: Narrative,
        primary_character_id: str,
        image_filename: Optional[str] = None,
        defaults: Optional[DefaultsConfig] = None
    ) -> ArchiveBundle:
        """
        Convert a story/narrative pair to archive documents.

        Args:
            story: Story to export
            narrative: Narrative supplying chat history, map and static lore
            primary_character_id: Character the archive is about
            image_filename: Portrait file name (e.g. "<id>.png"), if one is bundled
            defaults: Fallback greeting template

        Raises:
            ValueError: Primary character not in the story
        """
        defaults = defaults or DefaultsConfig()
        primary = story.get_character(primary_character_id)
        if primary is None:
            raise ValueError(f"Primary character not found: {primary_character_id}")

        now = _now()
        lore_items = [
            ArchiveLoreItem(
                id=entry.entry_id or f"lore-{entry.insertion_order}",
                order=f"{entry.insertion_order:06d}",
                key=", ".join(entry.keys),
                value=entry.content,
                created_at=now,
                updated_at=now,
            )
            for entry in merge_lore(
                story,
                narrative,
                include_local=False,
                location_template=ARCHIVE_LOCATION_TEMPLATE,
            )
        ]

        images = [ArchiveImage(path=f"images/{image_filename}")] if image_filename else []
        character = ArchiveCharacter(
            id=primary.id,
            name=primary.name,
            display_name=primary.name,
            persona=primary.description,
            lore_items=lore_items,
            images=images,
            tags=list(primary.tags),
            created_at=now,
            updated_at=now,
        )

        example_messages = []
        for message in narrative.state.hidden_examples():
            speaker = story.get_character(message.character_id)
            if speaker is not None and speaker.is_user:
                text = render_turn(Speaker.USER, message.content, DialogueStyle.ARCHIVE)
                example_messages.append(ArchiveMessage(text=text))
            elif speaker is None or speaker.id == primary.id:
                text = render_turn(Speaker.CHARACTER, message.content, DialogueStyle.ARCHIVE)
                example_messages.append(ArchiveMessage(text=text, character_id=primary.id))
            else:
                example_messages.append(ArchiveMessage(text=f"{speaker.name}:\n{message.content}"))

        first = narrative.state.first_ordinary_message()
        first_text = first.content if first else defaults.greeting_template.format(name=primary.name)
        opening = next(
            (e for e in narrative.state.static_entries if e.title == STARTING_SCENARIO_TITLE),
            None,
        )

        scenario = ArchiveScenario(
            title=narrative.name or story.name or "Exported Scenario",
            example_messages=example_messages,
            first_messages=[ArchiveMessage(text=first_text, character_id=primary.id)],
            formatting_instructions=primary.model_instructions,
            narrative=opening.content if opening else "",
        )

        character_path = f"characters/{primary.id}/character.json"
        scenario_path = "scenarios/scenario1.json"
        manifest = ArchiveManifest(
            created_at=now,
            characters=[character_path],
            scenarios=[scenario_path],
        )

        logger.info(
            f"Converted story '{story.name}' to archive for '{primary.name}' "
            f"({len(lore_items)} lore items, {len(example_messages)} example messages)"
        )
        return ArchiveBundle(
            manifest=manifest.model_dump(mode="json", by_alias=True),
            character=character.model_dump(mode="json", by_alias=True),
            scenario=scenario.model_dump(mode="json", by_alias=True, exclude_none=True),
            character_path=character_path,
            scenario_path=scenario_path,
            image_path=f"characters/{primary.id}/images/{image_filename}" if image_filename else None,
        )
