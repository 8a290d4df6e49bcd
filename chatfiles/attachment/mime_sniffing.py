"""Content type detection from magic bytes.

The type of an upload is decided by what the bytes look like, never by the
file extension the user supplied. A fixed signature table covers the formats
browsers care about. Anything else that looks like text is reported as plain
text; puremagic covers the long tail of binary formats, and what it does not
know is reported as a generic binary stream.

Example:
    >>> from chatfiles.attachment.mime_sniffing import sniff_mimetype
    >>> with open("photo.jpg", "rb") as f:
    ...     sniff_mimetype(f)
    'image/jpeg'
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import BinaryIO

import puremagic

from chatfiles.errors import StorageError

logger = logging.getLogger(__name__)

# Only the leading bytes are inspected
SNIFF_LENGTH = 512

DEFAULT_MIMETYPE = "application/octet-stream"
TEXT_MIMETYPE = "text/plain; charset=utf-8"

# Bytes that never appear in plain text files
_BINARY_BYTES = frozenset(
    list(range(0x00, 0x09)) + [0x0B] + list(range(0x0E, 0x1B)) + list(range(0x1C, 0x20))
)


def _riff(form_type: bytes) -> Callable[[bytes], bool]:
    """Match a RIFF container: RIFF + 4-byte size + form type at offset 8."""

    def matches(content: bytes) -> bool:
        return len(content) >= 12 and content[:4] == b"RIFF" and content[8:12] == form_type

    return matches


def _mp4(content: bytes) -> bool:
    """Match an ISO base media file: an ftyp box sized by its first 4 bytes."""
    if len(content) < 12:
        return False
    box_size = int.from_bytes(content[:4], "big")
    if box_size < 12 or box_size % 4 != 0 or len(content) < box_size:
        return False
    if content[4:8] != b"ftyp":
        return False
    brands = [content[i : i + 3] for i in range(8, box_size, 4) if i != 12]
    return b"mp4" in brands


def _prefix(*signatures: bytes) -> Callable[[bytes], bool]:
    def matches(content: bytes) -> bool:
        return content.startswith(signatures)

    return matches


# Checked in order, first match wins
SIGNATURES: list[tuple[str, Callable[[bytes], bool]]] = [
    # Images
    ("image/jpeg", _prefix(b"\xff\xd8\xff")),
    ("image/png", _prefix(b"\x89PNG\r\n\x1a\n")),
    ("image/gif", _prefix(b"GIF87a", b"GIF89a")),
    ("image/bmp", _prefix(b"BM")),
    ("image/webp", _riff(b"WEBP")),
    ("image/x-icon", _prefix(b"\x00\x00\x01\x00", b"\x00\x00\x02\x00")),
    ("image/tiff", _prefix(b"II\x2a\x00", b"MM\x00\x2a")),
    # Documents and archives
    ("application/pdf", _prefix(b"%PDF-")),
    ("application/zip", _prefix(b"PK\x03\x04")),
    ("application/x-gzip", _prefix(b"\x1f\x8b\x08")),
    ("application/x-rar-compressed", _prefix(b"Rar!\x1a\x07")),
    ("application/x-7z-compressed", _prefix(b"7z\xbc\xaf\x27\x1c")),
    # Audio and video
    ("application/ogg", _prefix(b"OggS\x00")),
    ("audio/mpeg", _prefix(b"ID3")),
    ("audio/wave", _riff(b"WAVE")),
    ("video/avi", _riff(b"AVI ")),
    ("video/mp4", _mp4),
    ("video/webm", _prefix(b"\x1a\x45\xdf\xa3")),
    # Other
    ("application/wasm", _prefix(b"\x00asm")),
    ("text/xml; charset=utf-8", _prefix(b"<?xml")),
]


def _match_signature(content: bytes) -> str | None:
    for mimetype, matches in SIGNATURES:
        if matches(content):
            return mimetype
    return None


def _match_puremagic(content: bytes) -> str | None:
    try:
        detected = puremagic.magic_string(content)
    except (puremagic.PureError, ValueError):
        logger.debug("puremagic could not identify content (%d bytes)", len(content))
        return None

    for match in detected:
        if match.mime_type:
            return match.mime_type
    return None


def _looks_like_text(content: bytes) -> bool:
    return not any(byte in _BINARY_BYTES for byte in content)


def detect_mimetype(content: bytes) -> str:
    """Classify content by its leading bytes.

    Args:
        content: Leading bytes of the file, at most SNIFF_LENGTH are used.

    Returns:
        A MIME type string; DEFAULT_MIMETYPE when nothing matches.
    """
    head = content[:SNIFF_LENGTH]

    mimetype = _match_signature(head)
    if mimetype:
        return mimetype

    # puremagic also matches text formats such as SVG, which must not become images
    if _looks_like_text(head):
        return TEXT_MIMETYPE

    return _match_puremagic(head) or DEFAULT_MIMETYPE


def _rewind(stream: BinaryIO) -> None:
    try:
        stream.seek(0)
    except (OSError, ValueError) as err:
        raise StorageError("Could not rewind stream") from err


def sniff_mimetype(stream: BinaryIO) -> str:
    """Detect the MIME type of a seekable stream.

    The stream is rewound before reading and rewound again before returning,
    whether detection succeeds or not, so the caller can read it from the
    start.

    Args:
        stream: Seekable binary stream, positioned anywhere.

    Returns:
        Detected MIME type, e.g. "image/jpeg".

    Raises:
        StorageError: If seeking or reading fails or the stream is empty.
    """
    _rewind(stream)

    try:
        head = stream.read(SNIFF_LENGTH)
    except (OSError, ValueError) as err:
        raise StorageError("Could not read stream header") from err
    finally:
        _rewind(stream)

    if not head:
        raise StorageError("Cannot detect mimetype of an empty stream")

    return detect_mimetype(head)
