"""Content-type sniffing for objects synchronised from a local mirror."""

from __future__ import annotations

import mimetypes
from os import PathLike
from typing import Sequence

DEFAULT_CONTENT_TYPE = "application/octet-stream"
SNIFF_SIZE = 512

# (offset, signature, content type), checked in order
_SIGNATURES: Sequence[tuple[int, bytes, str]] = (
    (0, b"\x89PNG\r\n\x1a\n", "image/png"),
    (0, b"\xff\xd8\xff", "image/jpeg"),
    (0, b"GIF87a", "image/gif"),
    (0, b"GIF89a", "image/gif"),
    (0, b"II*\x00", "image/tiff"),
    (0, b"MM\x00*", "image/tiff"),
    (0, b"%PDF-", "application/pdf"),
    (0, b"PK\x03\x04", "application/zip"),
    (0, b"\x1f\x8b", "application/gzip"),
    (0, b"BZh", "application/x-bzip2"),
    (0, b"\xfd7zXZ\x00", "application/x-xz"),
    (0, b"PAR1", "application/vnd.apache.parquet"),
    (257, b"ustar", "application/x-tar"),
    (8, b"WEBP", "image/webp"),
)


def _sniff(head: bytes) -> str | None:
    for offset, signature, content_type in _SIGNATURES:
        if head[offset : offset + len(signature)] == signature:
            return content_type
    return None


def detect_content_type(head: bytes, filename: str | None = None) -> str:
    """Guess a content type from leading bytes, then from the file name.

    Zip-based formats are refined by extension (``.docx``, ``.jar`` ...)
    when the name maps to a more specific type.
    """
    sniffed = _sniff(head)
    guessed = mimetypes.guess_type(filename)[0] if filename else None

    if sniffed == "application/zip" and guessed:
        return guessed
    if sniffed:
        return sniffed
    if guessed:
        return guessed
    return DEFAULT_CONTENT_TYPE


def detect_file_content_type(
    path: str | PathLike[str], filename: str | None = None
) -> str:
    with open(path, "rb") as fh:
        head = fh.read(SNIFF_SIZE)
    return detect_content_type(head, filename)
