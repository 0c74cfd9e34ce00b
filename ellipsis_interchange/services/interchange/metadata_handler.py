"""
PNG Metadata Handler
===================

Reads and writes the `chara` text chunk that carries character card metadata
inside an otherwise ordinary PNG image.

Chunks are walked byte-for-byte rather than through an image decoder, so a
card written here leaves every original chunk (and every pixel) untouched:
the new zTXt chunk is spliced in directly before IEND.
"""

import base64
import binascii
import json
import logging
import struct
import zlib
from typing import Any, Iterator, NamedTuple, Optional

from .exceptions import FormatError, ParseError

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
TERMINAL_CHUNK = b"IEND"
TEXT_CHUNK = b"tEXt"
COMPRESSED_TEXT_CHUNK = b"zTXt"
CARD_KEYWORD = "chara"
COMPRESSION_METHOD_DEFLATE = 0

_CHUNK_HEADER = struct.Struct(">I4s")
_CHUNK_CRC = struct.Struct(">I")


def _build_crc_table() -> tuple:
    table = []
    for n in range(256):
        c = n
        for _ in range(8):
            c = (0xEDB88320 ^ (c >> 1)) if c & 1 else (c >> 1)
        table.append(c)
    return tuple(table)


# Reflected CRC-32 (polynomial 0xEDB88320), as used by PNG and zlib
CRC_TABLE = _build_crc_table()


def crc32(data: bytes) -> int:
    """CRC-32 of `data`, identical to what PNG decoders verify."""
    crc = 0xFFFFFFFF
    for byte in data:
        crc = CRC_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF


class PngChunk(NamedTuple):
    """One chunk record located inside a PNG byte buffer."""
    offset: int
    type: bytes
    data: bytes
    crc: int

    @property
    def length(self) -> int:
        return len(self.data)

    @property
    def end(self) -> int:
        """Offset of the first byte after this chunk."""
        return self.offset + 12 + self.length

    @property
    def crc_valid(self) -> bool:
        return crc32(self.type + self.data) == self.crc


class PNGMetadataHandler:
    """Handle PNG text chunk operations for character card metadata."""

    @staticmethod
    def iter_chunks(png_data: bytes) -> Iterator[PngChunk]:
        """
        Walk the chunk list of a PNG buffer, stopping after IEND.

        Raises:
            FormatError: Signature mismatch or a chunk running past the buffer
        """
        if png_data[:8] != PNG_SIGNATURE:
            raise FormatError("Invalid PNG signature")

        offset = 8
        total = len(png_data)
        while offset < total:
            if offset + 12 > total:
                raise FormatError(f"Truncated PNG chunk header at offset {offset}")
            length, chunk_type = _CHUNK_HEADER.unpack_from(png_data, offset)
            data_start = offset + 8
            data_end = data_start + length
            if data_end + 4 > total:
                raise FormatError(
                    f"PNG chunk {chunk_type!r} at offset {offset} runs past end of data"
                )
            (crc,) = _CHUNK_CRC.unpack_from(png_data, data_end)
            yield PngChunk(offset, chunk_type, png_data[data_start:data_end], crc)

            if chunk_type == TERMINAL_CHUNK:
                return
            offset = data_end + 4

    @staticmethod
    def read_text_chunk(png_data: bytes, keyword: str = CARD_KEYWORD) -> Optional[str]:
        """
        Extract the text of the tEXt/zTXt chunk with the given keyword.

        Args:
            png_data: PNG file data as bytes
            keyword: Chunk keyword to search for

        Returns:
            Chunk text (inflated for zTXt) if found, None otherwise

        Raises:
            FormatError: Not a PNG, or chunk list is truncated
            ParseError: Matching chunk cannot be decompressed or decoded
        """
        wanted = keyword.encode("latin-1")

        for chunk in PNGMetadataHandler.iter_chunks(png_data):
            if chunk.type not in (TEXT_CHUNK, COMPRESSED_TEXT_CHUNK):
                continue

            keyword_end = chunk.data.find(b"\x00")
            if keyword_end == -1 or chunk.data[:keyword_end] != wanted:
                continue

            logger.debug(f"Found {chunk.type.decode('ascii')} chunk with keyword '{keyword}'")
            if chunk.type == TEXT_CHUNK:
                raw = chunk.data[keyword_end + 1:]
            else:
                method = chunk.data[keyword_end + 1:keyword_end + 2]
                if method != bytes([COMPRESSION_METHOD_DEFLATE]):
                    raise ParseError(f"Unsupported zTXt compression method: {method!r}")
                try:
                    raw = zlib.decompress(chunk.data[keyword_end + 2:])
                except zlib.error as e:
                    raise ParseError(f"Failed to inflate '{keyword}' chunk: {e}") from e

            try:
                return raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ParseError(f"'{keyword}' chunk is not valid UTF-8: {e}") from e

        logger.debug(f"Text chunk with keyword '{keyword}' not found")
        return None

    @staticmethod
    def decode_payload(payload: str) -> Any:
        """
        Decode a card payload: base64-wrapped JSON, or bare JSON from older writers.

        Raises:
            ParseError: Payload is neither
        """
        text = payload.strip()
        if not text.startswith("{"):
            try:
                text = base64.b64decode(text, validate=False).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                raise ParseError(f"Card payload is not valid base64 text: {e}") from e
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"Card payload is not valid JSON: {e}") from e

    @staticmethod
    def encode_payload(metadata: Any) -> bytes:
        """Serialize metadata as JSON, base64 it, then DEFLATE the base64 text."""
        json_text = json.dumps(metadata, ensure_ascii=False)
        b64 = base64.b64encode(json_text.encode("utf-8"))
        return zlib.compress(b64)

    @staticmethod
    def read_metadata(png_data: bytes, keyword: str = CARD_KEYWORD) -> Optional[Any]:
        """Read and decode the embedded metadata object, or None if absent."""
        payload = PNGMetadataHandler.read_text_chunk(png_data, keyword)
        if payload is None:
            return None
        return PNGMetadataHandler.decode_payload(payload)

    @staticmethod
    def build_chunk(chunk_type: bytes, data: bytes) -> bytes:
        """Serialize one chunk: length, type, data, CRC over type+data."""
        return (
            _CHUNK_CRC.pack(len(data))
            + chunk_type
            + data
            + _CHUNK_CRC.pack(crc32(chunk_type + data))
        )

    @staticmethod
    def write_text_chunk(png_data: bytes, metadata: Any, keyword: str = CARD_KEYWORD) -> bytes:
        """
        Embed metadata in a new zTXt chunk placed immediately before IEND.

        Args:
            png_data: Original PNG file data as bytes
            metadata: JSON-serializable object to embed
            keyword: Chunk keyword

        Returns:
            New PNG data; every original byte outside the insertion point is kept

        Raises:
            FormatError: Not a PNG, or no IEND chunk found
        """
        chunk_data = (
            keyword.encode("latin-1")
            + b"\x00"
            + bytes([COMPRESSION_METHOD_DEFLATE])
            + PNGMetadataHandler.encode_payload(metadata)
        )

        terminal = None
        for chunk in PNGMetadataHandler.iter_chunks(png_data):
            if chunk.type == TERMINAL_CHUNK:
                terminal = chunk
                break
        if terminal is None:
            raise FormatError("Could not find IEND chunk")

        new_chunk = PNGMetadataHandler.build_chunk(COMPRESSED_TEXT_CHUNK, chunk_data)
        logger.debug(
            f"Inserting {len(new_chunk)}-byte zTXt '{keyword}' chunk at offset {terminal.offset}"
        )
        return png_data[:terminal.offset] + new_chunk + png_data[terminal.offset:terminal.end]
