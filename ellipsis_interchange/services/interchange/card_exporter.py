"""
Story Exporter
==============

Export stories as character cards (PNG), BYAF archives or native JSON.
"""

import json
import logging
import re
from typing import List, Optional

import httpx

from ellipsis_interchange.config import InterchangeConfig
from ellipsis_interchange.models import Character, Narrative, Story
from ellipsis_interchange.services.image_store import ImageStore
from .archive_adapter import ArchiveAdapter
from .asset_resolver import AssetResolver
from .card_adapter import CardAdapter
from .card_importer import background_key
from .exceptions import FormatError, MissingAssetError, ParseError
from .format_detector import FormatDetector, InterchangeFormat
from .image_processor import PNG_MEDIA_TYPE, ImageProcessor
from .metadata_handler import PNGMetadataHandler
from .models import ExportResult
from .native_adapter import NativeAdapter

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r'[/\\?%*:|"<>]')
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_filename(name: str, fallback: str = "story") -> str:
    """
    Make a name safe for a download file name.

    Control characters are dropped and reserved characters become "-".
    A name with nothing left falls back to `fallback`.
    """
    cleaned = _UNSAFE_FILENAME_CHARS.sub("-", _CONTROL_CHARS.sub("", name or "")).strip()
    return cleaned or fallback


class StoryExporter:
    """Export stories to any supported interchange format."""

    def __init__(
        self,
        store: ImageStore,
        config: Optional[InterchangeConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize exporter.

        Args:
            store: Image store holding portraits and backgrounds
            config: Interchange configuration (defaults if omitted)
            transport: Optional httpx transport for remote image fetches
        """
        self.store = store
        self.config = config or InterchangeConfig()
        self.resolver = AssetResolver(store, self.config.remote, transport)

    async def export(
        self,
        story: Story,
        narrative: Optional[Narrative],
        fmt: InterchangeFormat,
        primary_character_id: Optional[str] = None,
        narratives: Optional[List[Narrative]] = None
    ) -> ExportResult:
        """
        Export a story.

        Args:
            story: Story to export
            narrative: Narrative to export alongside (card and archive formats)
            fmt: Target format
            primary_character_id: Character a card or archive is about;
                defaults to the story's first non-user character
            narratives: Full narratives to inline (native format)

        Returns:
            ExportResult with file contents, download name and media type

        Raises:
            ValueError: No usable primary character
            MissingAssetError: Card export without a resolvable portrait
        """
        logger.info(f"Exporting story '{story.name}' as {FormatDetector.get_format_name(fmt)}")

        match fmt:
            case InterchangeFormat.CARD:
                primary = self._primary(story, primary_character_id)
                content = await self._export_card(story, self._narrative(story, narrative), primary)
            case InterchangeFormat.ARCHIVE:
                primary = self._primary(story, primary_character_id)
                content = await self._export_archive(story, self._narrative(story, narrative), primary)
            case InterchangeFormat.NATIVE:
                if narratives is None and narrative is not None:
                    narratives = [narrative]
                document = NativeAdapter.serialize(story, narratives)
                content = json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")

        result = ExportResult(
            content=content,
            filename=(
                sanitize_filename(story.name, self.config.defaults.story_name)
                + FormatDetector.EXPORT_EXTENSIONS[fmt]
            ),
            media_type=FormatDetector.MEDIA_TYPES[fmt],
            format=FormatDetector.get_format_name(fmt),
        )
        logger.info(f"Successfully exported '{story.name}' to {result.filename} ({len(content)} bytes)")
        return result

    def _primary(self, story: Story, character_id: Optional[str]) -> Character:
        if character_id is None:
            primary = story.primary_character()
            if primary is None:
                raise ValueError(f"Story '{story.name}' has no character to export")
            return primary
        primary = story.get_character(character_id)
        if primary is None:
            raise ValueError(f"Primary character not found: {character_id}")
        return primary

    def _narrative(self, story: Story, narrative: Optional[Narrative]) -> Narrative:
        if narrative is not None:
            return narrative
        logger.warning(f"No narrative given for '{story.name}', exporting with an empty chat")
        return Narrative(id=story.id, name=story.name)

    def _has_card_chunk(self, png_data: bytes) -> bool:
        try:
            return PNGMetadataHandler.read_text_chunk(png_data, self.config.card.keyword) is not None
        except (FormatError, ParseError):
            return True

    async def _export_card(self, story: Story, narrative: Narrative, primary: Character) -> bytes:
        image = await self.resolver.require(primary, "Character card")

        png_data = image.data
        try:
            if image.media_type != PNG_MEDIA_TYPE or self._has_card_chunk(png_data):
                logger.debug(f"Re-encoding portrait of '{primary.name}' ({image.media_type}) as PNG")
                png_data = ImageProcessor.to_png(png_data)
        except FormatError as e:
            raise MissingAssetError(
                f"Failed to convert the image of '{primary.name}' to PNG for export: {e}"
            ) from e

        card = CardAdapter.serialize(
            story,
            narrative,
            primary.id,
            self.config.card,
            self.config.defaults,
        )
        return PNGMetadataHandler.write_text_chunk(png_data, card, self.config.card.keyword)

    async def _export_archive(self, story: Story, narrative: Narrative, primary: Character) -> bytes:
        image = await self.resolver.resolve(primary)
        image_filename = f"{primary.id}.{image.extension}" if image else None
        if image is None:
            logger.warning(f"No image found for '{primary.name}', archive will have no portrait")

        background = await self.resolver.load_stored(background_key(story.id))

        bundle = ArchiveAdapter.serialize(
            story,
            narrative,
            primary.id,
            image_filename,
            self.config.defaults,
        )
        return ArchiveAdapter.write_archive(
            bundle,
            image=image.data if image else None,
            background=background.data if background else None,
        )
