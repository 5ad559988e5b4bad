"""Checksum, size and mime-type helpers shared by adapters."""

from __future__ import annotations

import hashlib
import os

import filetype

from blobfs.errors import InvalidKeyError

EMPTY_MIME_TYPE = "application/x-empty"
TEXT_MIME_TYPE = "text/plain"
BINARY_MIME_TYPE = "application/octet-stream"

# Bytes inspected when deciding whether an unrecognised payload is text.
_SNIFF_LENGTH = 8192


def checksum_from_content(data: bytes) -> str:
    """Compute the MD5 hex digest stored as an object checksum."""
    return hashlib.md5(data, usedforsecurity=False).hexdigest()


def _looks_like_text(sample: bytes) -> bool:
    if b"\x00" in sample:
        return False
    try:
        sample.decode("utf-8")
    except UnicodeDecodeError as e:
        # A multi-byte sequence cut at the sample boundary is still text.
        return e.start >= len(sample) - 3 and e.reason == "unexpected end of data"
    return True


def guess_mime_type(data: bytes) -> str:
    """Sniff the mime type of a payload from its bytes.

    Uses magic-number detection first; unrecognised payloads are reported
    as text/plain when they decode as UTF-8 and application/octet-stream
    otherwise. An empty payload is application/x-empty.
    """
    if not data:
        return EMPTY_MIME_TYPE
    sample = data[:_SNIFF_LENGTH]
    detected = filetype.guess_mime(sample)
    if detected:
        return str(detected)
    return TEXT_MIME_TYPE if _looks_like_text(sample) else BINARY_MIME_TYPE


def guess_mime_type_from_path(path: str | os.PathLike[str]) -> str:
    """Sniff the mime type of a file from its leading bytes."""
    with open(path, "rb") as fh:
        sample = fh.read(_SNIFF_LENGTH)
    return guess_mime_type(sample)


def validate_key(key: str) -> None:
    """Reject keys that are not non-empty strings.

    Raises:
        InvalidKeyError: If the key is empty or not a string.
    """
    if not isinstance(key, str) or not key:
        raise InvalidKeyError("Invalid key: keys must be non-empty strings")
