"""
Story Importer
==============

Import stories from character cards (PNG), BYAF archives and native JSON.
"""

import asyncio
import json
import logging
import uuid
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ellipsis_interchange.config import InterchangeConfig
from ellipsis_interchange.services.image_store import ImageStore
from .archive_adapter import ArchiveAdapter
from .card_adapter import CardAdapter
from .exceptions import FormatError, ParseError
from .format_detector import FormatDetector, InterchangeFormat
from .image_processor import ImageProcessor
from .metadata_handler import PNGMetadataHandler
from .models import ImportResult
from .native_adapter import NativeAdapter

logger = logging.getLogger(__name__)


def _uuid() -> str:
    return str(uuid.uuid4())


def background_key(story_id: str) -> str:
    """Image store key of a story's background image."""
    return f"bg_{story_id}"


class StoryImporter:
    """Import stories from any supported interchange format."""

    def __init__(
        self,
        config: Optional[InterchangeConfig] = None,
        id_factory: Callable[[], str] = _uuid,
        store: Optional[ImageStore] = None
    ):
        """
        Initialize importer.

        Args:
            config: Interchange configuration (defaults if omitted)
            id_factory: Generator for fresh identifiers
            store: If given, imported portraits and backgrounds are saved here
        """
        self.config = config or InterchangeConfig()
        self.new_id = id_factory
        self.store = store

    async def import_file(
        self,
        filename: str,
        data: Optional[bytes] = None,
        skip_images: bool = False
    ) -> ImportResult:
        """
        Import a story file.

        Args:
            filename: File name (its extension selects the format) or path
            data: File contents; read from `filename` when omitted
            skip_images: Don't extract portraits or backgrounds

        Returns:
            ImportResult with the new story, its narratives and images

        Raises:
            FormatError: Unsupported extension or structurally invalid file
            ParseError: Malformed embedded JSON
        """
        card_format = FormatDetector.detect(filename)
        if data is None:
            data = await asyncio.to_thread(Path(filename).read_bytes)

        logger.info(f"Importing {FormatDetector.get_format_name(card_format)} from '{Path(filename).name}'")

        match card_format:
            case InterchangeFormat.CARD:
                result = await self._import_card(data, skip_images)
            case InterchangeFormat.ARCHIVE:
                result = await self._import_archive(data, skip_images)
            case InterchangeFormat.NATIVE:
                result = self._import_native(data)

        if self.store is not None:
            await self._save_images(result)

        logger.info(
            f"Successfully imported story '{result.story.name}' "
            f"({len(result.story.characters)} characters, {len(result.story.scenarios)} scenarios)"
        )
        return result

    async def _import_card(self, data: bytes, skip_images: bool) -> ImportResult:
        payload = PNGMetadataHandler.read_text_chunk(data, self.config.card.keyword)
        if payload is None:
            raise FormatError("No character data found in PNG file.")
        raw = PNGMetadataHandler.decode_payload(payload)

        story, narrative = CardAdapter.parse(raw, self.new_id, self.config.defaults)
        warnings: List[str] = []
        image, media_type = (None, None) if skip_images else await self._process_portrait(data, warnings)

        return ImportResult(
            story=story,
            narratives=[narrative],
            image=image,
            image_media_type=media_type,
            format=FormatDetector.get_format_name(InterchangeFormat.CARD),
            warnings=warnings,
        )

    async def _import_archive(self, data: bytes, skip_images: bool) -> ImportResult:
        contents = await asyncio.to_thread(ArchiveAdapter.read_archive, data)
        story, narrative = ArchiveAdapter.parse(
            contents.character,
            contents.scenario,
            self.new_id,
            self.config.defaults,
        )

        warnings: List[str] = []
        image = media_type = background = None
        if not skip_images:
            if contents.image is not None:
                image, media_type = await self._process_portrait(contents.image, warnings)
            else:
                warnings.append("Archive contains no character image")
            background = contents.background

        return ImportResult(
            story=story,
            narratives=[narrative],
            image=image,
            image_media_type=media_type,
            background_image=background,
            format=FormatDetector.get_format_name(InterchangeFormat.ARCHIVE),
            warnings=warnings,
        )

    def _import_native(self, data: bytes) -> ImportResult:
        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ParseError(f"Story file is not valid JSON: {e}") from e

        story, narratives = NativeAdapter.parse(raw, self.new_id)
        return ImportResult(
            story=story,
            narratives=narratives,
            format=FormatDetector.get_format_name(InterchangeFormat.NATIVE),
        )

    async def _process_portrait(
        self,
        image_data: bytes,
        warnings: List[str]
    ) -> Tuple[Optional[bytes], Optional[str]]:
        """Normalize an imported portrait; unreadable images are dropped with a warning."""
        images = self.config.images
        try:
            if images.normalize_on_import:
                return await asyncio.to_thread(
                    ImageProcessor.normalize_portrait,
                    image_data,
                    max_height=images.max_height,
                    quality=images.jpeg_quality,
                )
            media_type = await asyncio.to_thread(ImageProcessor.sniff_media_type, image_data)
            return image_data, media_type
        except FormatError as e:
            logger.warning(f"Dropping unreadable portrait: {e}")
            warnings.append(f"Portrait image could not be read: {e}")
            return None, None

    async def _save_images(self, result: ImportResult) -> None:
        primary = result.story.primary_character()
        if result.image is not None and primary is not None:
            await self.store.put(primary.id, result.image, result.image_media_type)
        if result.background_image is not None:
            await self.store.put(background_key(result.story.id), result.background_image, "image/png")
