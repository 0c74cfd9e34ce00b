"""
Tests for portrait processing and the image stores.

Async store methods are driven with asyncio.run.
"""

import asyncio
import io

import pytest
from PIL import Image

from ellipsis_interchange.services.image_store import (
    FileImageStore,
    ImageStoreError,
    MemoryImageStore,
)
from ellipsis_interchange.services.interchange.exceptions import FormatError
from ellipsis_interchange.services.interchange.image_processor import ImageProcessor


class TestImageProcessor:

    def test_tall_portrait_downscaled(self, make_image):
        data, media_type = ImageProcessor.normalize_portrait(make_image(10, 3000))

        image = Image.open(io.BytesIO(data))
        assert image.size == (7, 2000)
        assert image.format == "JPEG"
        assert media_type == "image/jpeg"

    def test_small_portrait_keeps_size(self, make_image):
        data, _ = ImageProcessor.normalize_portrait(make_image(30, 20), max_height=100)
        assert Image.open(io.BytesIO(data)).size == (30, 20)

    def test_transparency_flattened(self, make_image):
        data, _ = ImageProcessor.normalize_portrait(make_image(mode="RGBA"))
        image = Image.open(io.BytesIO(data))
        assert image.format == "JPEG"
        assert image.mode == "RGB"

    def test_jpeg_to_png(self, make_image):
        data = ImageProcessor.to_png(make_image(8, 6, fmt="JPEG"))
        image = Image.open(io.BytesIO(data))
        assert image.format == "PNG"
        assert image.size == (8, 6)

    @pytest.mark.parametrize("fmt, expected", [("PNG", "image/png"), ("JPEG", "image/jpeg")])
    def test_sniff_media_type(self, make_image, fmt, expected):
        assert ImageProcessor.sniff_media_type(make_image(fmt=fmt)) == expected

    def test_sniff_garbage(self):
        assert ImageProcessor.sniff_media_type(b"not an image") is None

    def test_garbage_rejected(self):
        with pytest.raises(FormatError):
            ImageProcessor.normalize_portrait(b"not an image")
        with pytest.raises(FormatError):
            ImageProcessor.to_png(b"not an image")


class TestImageStores:

    def test_memory_store(self):
        store = MemoryImageStore()
        asyncio.run(store.put("c1", b"abc", "image/png"))

        stored = asyncio.run(store.get("c1"))
        assert stored.data == b"abc"
        assert stored.media_type == "image/png"
        assert asyncio.run(store.get("missing")) is None

    def test_file_store_round_trip(self, tmp_path, make_image):
        store = FileImageStore(tmp_path / "images")
        portrait = make_image(fmt="JPEG")
        asyncio.run(store.put("c1", portrait, "image/jpeg"))

        assert (tmp_path / "images" / "c1.jpg").exists()
        stored = asyncio.run(store.get("c1"))
        assert stored.data == portrait
        assert stored.media_type == "image/jpeg"

    def test_file_store_replaces_old_extension(self, tmp_path, make_image):
        store = FileImageStore(tmp_path)
        asyncio.run(store.put("c1", make_image(fmt="JPEG"), "image/jpeg"))
        asyncio.run(store.put("c1", make_image(), "image/png"))

        assert sorted(p.name for p in tmp_path.iterdir()) == ["c1.png"]
        assert asyncio.run(store.get("c1")).media_type == "image/png"

    def test_file_store_missing_key(self, tmp_path):
        assert asyncio.run(FileImageStore(tmp_path).get("bg_story")) is None

    @pytest.mark.parametrize("key", ["../escape", "a/b", "", "c1.png"])
    def test_file_store_rejects_unsafe_keys(self, tmp_path, key):
        store = FileImageStore(tmp_path)
        with pytest.raises(ImageStoreError):
            asyncio.run(store.put(key, b"data", "image/png"))
        with pytest.raises(ImageStoreError):
            asyncio.run(store.get(key))
