"""
Binary image store used by the interchange codec.

Portraits are keyed by character id; story backgrounds by "bg_<story id>".
"""

import asyncio
import logging
import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


class ImageStoreError(Exception):
    """Base exception for image store errors."""
    pass


@dataclass(frozen=True)
class StoredImage:
    data: bytes
    media_type: Optional[str] = None


class ImageStore(Protocol):
    """Get/put binary images by key."""

    async def get(self, key: str) -> Optional[StoredImage]:
        ...

    async def put(self, key: str, data: bytes, media_type: Optional[str] = None) -> None:
        ...


class MemoryImageStore:
    """In-process store, handy for tests and one-shot conversions."""

    def __init__(self):
        self._images: Dict[str, StoredImage] = {}

    async def get(self, key: str) -> Optional[StoredImage]:
        return self._images.get(key)

    async def put(self, key: str, data: bytes, media_type: Optional[str] = None) -> None:
        self._images[key] = StoredImage(data=data, media_type=media_type)


class FileImageStore:
    """
    Filesystem-backed store: one file per key under base_path.

    The file extension records the media type.
    """

    def __init__(self, base_path: Path = Path("data/images")):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Image store initialized: {self.base_path}")

    def _check_key(self, key: str) -> None:
        if not _SAFE_KEY.match(key):
            raise ImageStoreError(f"Invalid image key: {key!r}")

    def _find(self, key: str) -> Optional[Path]:
        return next(iter(sorted(self.base_path.glob(f"{key}.*"))), None)

    async def get(self, key: str) -> Optional[StoredImage]:
        self._check_key(key)
        path = await asyncio.to_thread(self._find, key)
        if path is None:
            return None
        data = await asyncio.to_thread(path.read_bytes)
        media_type, _ = mimetypes.guess_type(path.name)
        logger.debug(f"Loaded image '{key}' from {path}")
        return StoredImage(data=data, media_type=media_type)

    async def put(self, key: str, data: bytes, media_type: Optional[str] = None) -> None:
        self._check_key(key)
        extension = (mimetypes.guess_extension(media_type) if media_type else None) or ".bin"
        if extension == ".jpe":
            extension = ".jpg"

        def _write() -> Path:
            for stale in self.base_path.glob(f"{key}.*"):
                stale.unlink()
            path = self.base_path / f"{key}{extension}"
            path.write_bytes(data)
            return path

        try:
            path = await asyncio.to_thread(_write)
        except OSError as e:
            raise ImageStoreError(f"Failed to save image '{key}': {e}") from e
        logger.info(f"Saved image '{key}' to {path}")
