"""
Tests for the story exporter.

Remote portraits are served through httpx.MockTransport.
"""

import asyncio
import io
import json
import zipfile

import httpx
import pytest
from PIL import Image

from ellipsis_interchange.config import InterchangeConfig, RemoteFetchConfig
from ellipsis_interchange.services.image_store import MemoryImageStore
from ellipsis_interchange.services.interchange.card_exporter import StoryExporter, sanitize_filename
from ellipsis_interchange.services.interchange.exceptions import MissingAssetError
from ellipsis_interchange.services.interchange.format_detector import InterchangeFormat
from ellipsis_interchange.services.interchange.metadata_handler import (
    COMPRESSED_TEXT_CHUNK,
    PNGMetadataHandler,
)


def _store_with(key, data, media_type):
    store = MemoryImageStore()
    asyncio.run(store.put(key, data, media_type))
    return store


def _serving(content, content_type="image/jpeg", status_code=200, calls=None):
    def handler(request):
        if calls is not None:
            calls.append(str(request.url))
        headers = {"content-type": content_type} if content_type else {}
        return httpx.Response(status_code, content=content, headers=headers)
    return httpx.MockTransport(handler)


class TestCardExport:

    def test_card_from_stored_png(self, sample_story, make_image):
        story, narrative = sample_story
        exporter = StoryExporter(_store_with("c1", make_image(), "image/png"))
        result = asyncio.run(exporter.export(story, narrative, InterchangeFormat.CARD, "c1"))

        card = PNGMetadataHandler.read_metadata(result.content)
        assert card["data"]["name"] == "Aria"
        assert card["data"]["first_mes"] == "Welcome to the tavern, {{user}}."
        assert result.media_type == "image/png"
        assert result.filename == "Sample- Story.png"
        assert result.format == "Character Card V2 (PNG)"

    def test_primary_defaults_to_first_character(self, sample_story, make_image):
        story, narrative = sample_story
        exporter = StoryExporter(_store_with("c1", make_image(), "image/png"))
        result = asyncio.run(exporter.export(story, narrative, InterchangeFormat.CARD))
        assert PNGMetadataHandler.read_metadata(result.content)["data"]["name"] == "Aria"

    def test_stored_jpeg_converted_to_png(self, sample_story, make_image):
        story, narrative = sample_story
        exporter = StoryExporter(_store_with("c1", make_image(fmt="JPEG"), "image/jpeg"))
        result = asyncio.run(exporter.export(story, narrative, InterchangeFormat.CARD, "c1"))

        assert Image.open(io.BytesIO(result.content)).format == "PNG"
        assert PNGMetadataHandler.read_metadata(result.content)["data"]["name"] == "Aria"

    def test_existing_card_chunk_replaced(self, sample_story, make_image):
        """Re-exporting an imported card leaves exactly one chara chunk."""
        story, narrative = sample_story
        old_card = PNGMetadataHandler.write_text_chunk(make_image(), {"data": {"name": "Old"}})
        exporter = StoryExporter(_store_with("c1", old_card, "image/png"))
        result = asyncio.run(exporter.export(story, narrative, InterchangeFormat.CARD, "c1"))

        chunks = [c for c in PNGMetadataHandler.iter_chunks(result.content) if c.type == COMPRESSED_TEXT_CHUNK]
        assert len(chunks) == 1
        assert PNGMetadataHandler.read_metadata(result.content)["data"]["name"] == "Aria"

    def test_remote_image(self, sample_story, make_image):
        story, narrative = sample_story
        story.get_character("c1").image_url = "https://example.com/aria.jpg"
        calls = []
        exporter = StoryExporter(MemoryImageStore(), transport=_serving(make_image(fmt="JPEG"), calls=calls))
        result = asyncio.run(exporter.export(story, narrative, InterchangeFormat.CARD, "c1"))

        assert calls == ["https://example.com/aria.jpg"]
        assert Image.open(io.BytesIO(result.content)).format == "PNG"

    def test_missing_image(self, sample_story):
        story, narrative = sample_story
        exporter = StoryExporter(MemoryImageStore())
        with pytest.raises(MissingAssetError, match="Aria"):
            asyncio.run(exporter.export(story, narrative, InterchangeFormat.CARD, "c1"))

    def test_local_reference_not_fetched(self, sample_story, make_image):
        story, narrative = sample_story
        story.get_character("c1").image_url = "local_idb_c1"
        calls = []
        exporter = StoryExporter(MemoryImageStore(), transport=_serving(make_image(), calls=calls))
        with pytest.raises(MissingAssetError):
            asyncio.run(exporter.export(story, narrative, InterchangeFormat.CARD, "c1"))
        assert calls == []

    def test_remote_failure(self, sample_story):
        story, narrative = sample_story
        story.get_character("c1").image_url = "https://example.com/gone.png"
        exporter = StoryExporter(MemoryImageStore(), transport=_serving(b"", "text/html", 404))
        with pytest.raises(MissingAssetError):
            asyncio.run(exporter.export(story, narrative, InterchangeFormat.CARD, "c1"))

    def test_remote_disabled(self, sample_story, make_image):
        story, narrative = sample_story
        story.get_character("c1").image_url = "https://example.com/aria.png"
        calls = []
        config = InterchangeConfig(remote=RemoteFetchConfig(enabled=False))
        exporter = StoryExporter(MemoryImageStore(), config, _serving(make_image(), "image/png", calls=calls))
        with pytest.raises(MissingAssetError):
            asyncio.run(exporter.export(story, narrative, InterchangeFormat.CARD, "c1"))
        assert calls == []

    def test_unreadable_image(self, sample_story):
        story, narrative = sample_story
        exporter = StoryExporter(_store_with("c1", b"garbage bytes", "image/webp"))
        with pytest.raises(MissingAssetError):
            asyncio.run(exporter.export(story, narrative, InterchangeFormat.CARD, "c1"))

    def test_unknown_primary(self, sample_story, make_image):
        story, narrative = sample_story
        exporter = StoryExporter(_store_with("c1", make_image(), "image/png"))
        with pytest.raises(ValueError):
            asyncio.run(exporter.export(story, narrative, InterchangeFormat.CARD, "nobody"))


class TestArchiveExport:

    def _members(self, content):
        with zipfile.ZipFile(io.BytesIO(content)) as zipf:
            return {name: zipf.read(name) for name in zipf.namelist()}

    def test_archive_with_stored_jpeg(self, sample_story, make_image):
        story, narrative = sample_story
        portrait = make_image(fmt="JPEG")
        exporter = StoryExporter(_store_with("c1", portrait, "image/jpeg"))
        result = asyncio.run(exporter.export(story, narrative, InterchangeFormat.ARCHIVE, "c1"))

        members = self._members(result.content)
        assert members["characters/c1/images/c1.jpg"] == portrait
        character = json.loads(members["characters/c1/character.json"])
        assert character["images"] == [{"path": "images/c1.jpg", "label": ""}]
        assert "scenarios/scenario1.json" in members
        assert result.filename == "Sample- Story.byaf"
        assert result.media_type == "application/zip"

    def test_remote_extension_from_url(self, sample_story, make_image):
        """Without a content type the URL's extension is used."""
        story, narrative = sample_story
        story.get_character("c1").image_url = "https://example.com/aria.webp"
        transport = _serving(make_image(), content_type=None)
        exporter = StoryExporter(MemoryImageStore(), transport=transport)
        result = asyncio.run(exporter.export(story, narrative, InterchangeFormat.ARCHIVE, "c1"))
        assert "characters/c1/images/c1.webp" in self._members(result.content)

    def test_archive_without_image(self, sample_story):
        story, narrative = sample_story
        exporter = StoryExporter(MemoryImageStore())
        result = asyncio.run(exporter.export(story, narrative, InterchangeFormat.ARCHIVE, "c1"))

        members = self._members(result.content)
        assert not any("/images/" in name for name in members)
        assert json.loads(members["characters/c1/character.json"])["images"] == []

    def test_background_included(self, sample_story, make_image):
        story, narrative = sample_story
        background = make_image(16, 9)
        exporter = StoryExporter(_store_with(f"bg_{story.id}", background, "image/png"))
        result = asyncio.run(exporter.export(story, narrative, InterchangeFormat.ARCHIVE, "c1"))
        assert self._members(result.content)["images/story_background.png"] == background


class TestNativeExport:

    def test_native_json(self, sample_story):
        story, narrative = sample_story
        exporter = StoryExporter(MemoryImageStore())
        result = asyncio.run(exporter.export(story, None, InterchangeFormat.NATIVE, narratives=[narrative]))

        document = json.loads(result.content)
        assert document["name"] == "Sample: Story"
        assert document["narratives"][0]["state"]["messageCounter"] == 2
        assert result.filename == "Sample- Story.json"
        assert result.media_type == "application/json"

    def test_native_needs_no_image(self, sample_story):
        story, narrative = sample_story
        story.get_character("c1").image_url = "https://example.com/aria.png"
        exporter = StoryExporter(MemoryImageStore(), transport=_serving(b"", status_code=500))
        result = asyncio.run(exporter.export(story, narrative, InterchangeFormat.NATIVE))
        assert json.loads(result.content)["narratives"][0]["id"] == "n1"


def test_sanitize_filename():
    assert sanitize_filename('a/b\\c?d%e*f:g|h"i<j>k.png') == "a-b-c-d-e-f-g-h-i-j-k.png"


def test_sanitize_filename_drops_control_characters():
    assert sanitize_filename("Two\nLines\t\x00Tab") == "TwoLinesTab"
    assert sanitize_filename(" \r\n ", "Fallback") == "Fallback"


@pytest.mark.parametrize("fmt, filename", [
    (InterchangeFormat.NATIVE, "Imported Character.json"),
    (InterchangeFormat.ARCHIVE, "Imported Character.byaf"),
])
def test_nameless_story_uses_default_filename(sample_story, fmt, filename):
    story, narrative = sample_story
    story.name = ""
    result = asyncio.run(StoryExporter(MemoryImageStore()).export(story, narrative, fmt, "c1"))
    assert result.filename == filename
