"""
Interchange Format Detector
==========================

Maps file names to interchange formats and back.
"""

import logging
from enum import Enum
from pathlib import PurePath

from .exceptions import FormatError

logger = logging.getLogger(__name__)


class InterchangeFormat(Enum):
    """Supported interchange formats."""
    CARD = "card"        # PNG character card with embedded chara chunk
    ARCHIVE = "archive"  # BYAF / ZIP bundle
    NATIVE = "native"    # Ellipsis story JSON


class FormatDetector:
    """Detect interchange format from a file name."""

    EXTENSIONS = {
        ".png": InterchangeFormat.CARD,
        ".byaf": InterchangeFormat.ARCHIVE,
        ".zip": InterchangeFormat.ARCHIVE,
        ".json": InterchangeFormat.NATIVE,
    }

    EXPORT_EXTENSIONS = {
        InterchangeFormat.CARD: ".png",
        InterchangeFormat.ARCHIVE: ".byaf",
        InterchangeFormat.NATIVE: ".json",
    }

    MEDIA_TYPES = {
        InterchangeFormat.CARD: "image/png",
        InterchangeFormat.ARCHIVE: "application/zip",
        InterchangeFormat.NATIVE: "application/json",
    }

    @classmethod
    def detect(cls, filename: str) -> InterchangeFormat:
        """
        Detect the format of an uploaded file by its extension.

        Raises:
            FormatError: Extension is not one of .png, .byaf, .zip, .json
        """
        suffix = PurePath(filename).suffix.lower()
        try:
            card_format = cls.EXTENSIONS[suffix]
        except KeyError:
            raise FormatError(
                f"Unsupported file type '{suffix or filename}'. "
                "Please use .png, .byaf, .zip, or .json."
            )
        logger.debug(f"Detected {card_format.value} format for '{filename}'")
        return card_format

    @classmethod
    def parse(cls, value: str) -> InterchangeFormat:
        """Resolve a user-supplied format name ('card', 'png', 'byaf', ...)."""
        lowered = value.lower().lstrip(".")
        for card_format in InterchangeFormat:
            if lowered == card_format.value:
                return card_format
        return cls.detect(f"export.{lowered}")

    @classmethod
    def get_format_name(cls, card_format: InterchangeFormat) -> str:
        """Get human-readable format name."""
        names = {
            InterchangeFormat.CARD: "Character Card V2 (PNG)",
            InterchangeFormat.ARCHIVE: "Backyard AI Archive (BYAF)",
            InterchangeFormat.NATIVE: "Ellipsis Story JSON",
        }
        return names.get(card_format, "Unknown")
