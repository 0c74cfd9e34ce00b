"""
Portrait image processing (Pillow).

Imported portraits are downscaled and re-encoded as JPEG before they reach
the image store; card export needs PNG, so other formats are converted.
"""

import io
import logging
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .exceptions import FormatError

logger = logging.getLogger(__name__)

PNG_MEDIA_TYPE = "image/png"
JPEG_MEDIA_TYPE = "image/jpeg"


class ImageProcessor:
    """Stateless Pillow helpers for character portraits."""

    @staticmethod
    def _open(image_data: bytes) -> Image.Image:
        try:
            image = Image.open(io.BytesIO(image_data))
            image.load()
            return image
        except (UnidentifiedImageError, OSError) as e:
            raise FormatError(f"Unreadable image data: {e}") from e

    @staticmethod
    def sniff_media_type(image_data: bytes) -> Optional[str]:
        """Media type from the image's own header, or None if Pillow can't tell."""
        try:
            with Image.open(io.BytesIO(image_data)) as image:
                return Image.MIME.get(image.format)
        except (UnidentifiedImageError, OSError):
            return None

    @staticmethod
    def normalize_portrait(
        image_data: bytes,
        max_height: int = 2000,
        quality: int = 85
    ) -> Tuple[bytes, str]:
        """
        Downscale to max_height (keeping aspect ratio) and re-encode as JPEG.

        Returns:
            Tuple of (jpeg_bytes, media_type)
        """
        image = ImageProcessor._open(image_data)
        width, height = image.size
        if height > max_height:
            ratio = max_height / height
            new_size = (max(1, round(width * ratio)), max_height)
            logger.debug(f"Resizing portrait from {width}x{height} to {new_size[0]}x{new_size[1]}")
            image = image.resize(new_size, Image.Resampling.LANCZOS)

        if image.mode != "RGB":
            image = image.convert("RGB")

        output = io.BytesIO()
        image.save(output, format="JPEG", quality=quality)
        return output.getvalue(), JPEG_MEDIA_TYPE

    @staticmethod
    def to_png(image_data: bytes) -> bytes:
        """Re-encode any readable image as a plain PNG without text chunks."""
        image = ImageProcessor._open(image_data)
        if image.mode not in ("1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"):
            image = image.convert("RGBA" if "A" in image.getbands() else "RGB")
        output = io.BytesIO()
        image.save(output, format="PNG")
        return output.getvalue()
