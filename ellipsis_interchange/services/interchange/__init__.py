"""
Story Interchange
=================

Moves stories between the canonical model and external formats.

Supports:
- Character Card V2 (PNG with an embedded `chara` text chunk)
- Backyard AI archives (BYAF / ZIP)
- Native story JSON
"""

from .archive_adapter import ArchiveAdapter
from .card_adapter import CardAdapter
from .card_exporter import StoryExporter
from .card_importer import StoryImporter
from .exceptions import FormatError, InterchangeError, MissingAssetError, ParseError
from .format_detector import FormatDetector, InterchangeFormat
from .macro_processor import MacroProcessor
from .metadata_handler import PNGMetadataHandler
from .models import ExportResult, ImportResult
from .native_adapter import NativeAdapter

__all__ = [
    'ArchiveAdapter',
    'CardAdapter',
    'StoryExporter',
    'StoryImporter',
    'FormatError',
    'InterchangeError',
    'MissingAssetError',
    'ParseError',
    'FormatDetector',
    'InterchangeFormat',
    'MacroProcessor',
    'PNGMetadataHandler',
    'ExportResult',
    'ImportResult',
    'NativeAdapter',
]
