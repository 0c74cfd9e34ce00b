"""
Export-time image resolution.

Lookup order for a character portrait:
1. the image store, keyed by character id
2. the character's legacy remote image_url, fetched over HTTP
"""

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import urlparse

import httpx

from ellipsis_interchange.config import RemoteFetchConfig
from ellipsis_interchange.models import Character
from ellipsis_interchange.services.image_store import ImageStore, ImageStoreError
from .exceptions import MissingAssetError
from .image_processor import ImageProcessor

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "png"

_EXTENSIONS = {
    "png": "png",
    "jpeg": "jpg",
    "jpg": "jpg",
    "webp": "webp",
}


def extension_for(media_type: Optional[str], url: Optional[str] = None) -> str:
    """
    File extension for an image, from its media type, else its URL.

    Falls back to "png" when neither is recognized.
    """
    if media_type:
        base = media_type.split(";")[0].strip().lower()
        kind, _, subtype = base.partition("/")
        if kind == "image" and subtype in _EXTENSIONS:
            return _EXTENSIONS[subtype]
    if url:
        suffix = PurePosixPath(urlparse(url).path).suffix.lower().lstrip(".")
        if suffix in _EXTENSIONS:
            return _EXTENSIONS[suffix]
    return DEFAULT_EXTENSION


@dataclass(frozen=True)
class ResolvedImage:
    data: bytes
    media_type: Optional[str]
    source: str  # "store" or "remote"
    extension: str = DEFAULT_EXTENSION


class AssetResolver:
    """Resolve character portraits for exporters."""

    def __init__(
        self,
        store: ImageStore,
        remote: Optional[RemoteFetchConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize resolver.

        Args:
            store: Image store holding locally saved portraits
            remote: Remote fetch settings (enabled flag, timeout)
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.store = store
        self.remote = remote or RemoteFetchConfig()
        self.transport = transport

    async def load_stored(self, key: str) -> Optional[ResolvedImage]:
        """Image saved under `key` in the store, if any."""
        try:
            stored = await self.store.get(key)
        except ImageStoreError as e:
            logger.warning(f"Image store lookup for '{key}' failed: {e}")
            return None
        if stored is None:
            return None
        media_type = stored.media_type or ImageProcessor.sniff_media_type(stored.data)
        return ResolvedImage(
            data=stored.data,
            media_type=media_type,
            source="store",
            extension=extension_for(media_type),
        )

    async def fetch_remote(self, url: str) -> Optional[ResolvedImage]:
        """Download a legacy image URL; None on any HTTP failure."""
        try:
            async with httpx.AsyncClient(
                timeout=self.remote.timeout_seconds,
                transport=self.transport,
                follow_redirects=True
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch remote image {url}: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"Remote image {url} returned HTTP {response.status_code}")
            return None

        media_type = response.headers.get("content-type")
        if media_type and not media_type.lower().startswith("image/"):
            sniffed = ImageProcessor.sniff_media_type(response.content)
            logger.debug(f"Remote image {url} served as {media_type}, sniffed {sniffed}")
            media_type = sniffed
        return ResolvedImage(
            data=response.content,
            media_type=media_type,
            source="remote",
            extension=extension_for(media_type, url),
        )

    async def resolve(self, character: Character) -> Optional[ResolvedImage]:
        """Find a portrait for `character`, or None."""
        image = await self.load_stored(character.id)
        if image is not None:
            logger.debug(f"Using stored portrait for character '{character.name}'")
            return image

        url = character.image_url or ""
        # local store references ("local_idb_...") are not fetchable
        if self.remote.enabled and url.startswith(("http://", "https://")):
            image = await self.fetch_remote(url)
            if image is not None:
                logger.debug(f"Using remote portrait for character '{character.name}': {url}")
                return image

        return None

    async def require(self, character: Character, format_name: str) -> ResolvedImage:
        """
        Like resolve(), but the target format cannot do without an image.

        Raises:
            MissingAssetError: No portrait could be resolved
        """
        image = await self.resolve(character)
        if image is None:
            raise MissingAssetError(
                f"{format_name} export requires the primary character "
                f"'{character.name}' to have a valid image"
            )
        return image
