"""Lazy, chunked payloads for adapter writes.

A Content value is built from exactly one source:

- a literal byte buffer (``Content.from_bytes``),
- a filesystem path read ``chunk_size`` bytes at a time (``Content.from_path``),
- an already-open binary stream read ``chunk_size`` bytes at a time
  (``Content.from_stream``).

Nothing here forces the payload into memory; ``full_content()`` is a
convenience for adapters whose backend API needs a single buffer.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from blobfs.errors import ContentConsumedError

DEFAULT_CHUNK_SIZE = 1024


def _validate_chunk_size(chunk_size: int) -> int:
    if not isinstance(chunk_size, int) or isinstance(chunk_size, bool) or chunk_size <= 0:
        raise ValueError(f"chunk_size must be a positive integer, got {chunk_size!r}")
    return chunk_size


class Content(ABC):
    """A payload exposed as a lazy sequence of byte chunks.

    Concrete variants are BytesContent, PathContent and StreamContent.
    """

    @abstractmethod
    def chunks(self) -> Iterator[bytes]:
        """Return a lazy iterator over the payload chunks.

        An empty source yields no chunks at all.
        """
        ...

    def full_content(self) -> bytes:
        """Drain ``chunks()`` into a single buffer."""
        return b"".join(self.chunks())

    @property
    def source_path(self) -> Path | None:
        """Filesystem path backing this content, if any."""
        return None

    @staticmethod
    def from_bytes(data: bytes | bytearray | memoryview | str) -> BytesContent:
        """Create content from a literal buffer.

        Strings are encoded as UTF-8.
        """
        return BytesContent(data)

    @staticmethod
    def from_path(
        path: str | os.PathLike[str],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> PathContent:
        """Create content that reads a file lazily.

        Args:
            path: File to read. Opened anew on every consumption.
            chunk_size: Bytes read per chunk.
        """
        return PathContent(path, chunk_size=chunk_size)

    @staticmethod
    def from_stream(stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> StreamContent:
        """Create content that reads an open binary stream once.

        The stream is never closed here; its lifetime stays with the caller.

        Args:
            stream: Readable binary stream.
            chunk_size: Bytes read per chunk.
        """
        return StreamContent(stream, chunk_size=chunk_size)


class BytesContent(Content):
    """Content backed by an in-memory buffer. Re-consumable."""

    def __init__(self, data: bytes | bytearray | memoryview | str) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._data = bytes(data)

    @property
    def data(self) -> bytes:
        return self._data

    def chunks(self) -> Iterator[bytes]:
        if self._data:
            yield self._data

    def full_content(self) -> bytes:
        return self._data

    def __repr__(self) -> str:
        return f"BytesContent(size={len(self._data)})"


class PathContent(Content):
    """Content backed by a file path. Each consumption reopens the file."""

    def __init__(
        self,
        path: str | os.PathLike[str],
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._path = Path(path)
        self._chunk_size = _validate_chunk_size(chunk_size)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def source_path(self) -> Path | None:
        return self._path

    def chunks(self) -> Iterator[bytes]:
        with self._path.open("rb") as fh:
            while True:
                chunk = fh.read(self._chunk_size)
                if not chunk:
                    break
                yield chunk

    def __repr__(self) -> str:
        return f"PathContent(path={str(self._path)!r}, chunk_size={self._chunk_size})"


class StreamContent(Content):
    """Content backed by a caller-owned open stream.

    The stream is consumed exactly once. A second call to ``chunks()`` raises
    ContentConsumedError instead of silently yielding an empty payload.
    """

    def __init__(self, stream: BinaryIO, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._stream = stream
        self._chunk_size = _validate_chunk_size(chunk_size)
        self._consumed = False

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def consumed(self) -> bool:
        return self._consumed

    @property
    def source_path(self) -> Path | None:
        name = getattr(self._stream, "name", None)
        if isinstance(name, (str, os.PathLike)):
            candidate = Path(name)
            if candidate.is_file():
                return candidate
        return None

    def chunks(self) -> Iterator[bytes]:
        if self._consumed:
            raise ContentConsumedError()
        self._consumed = True
        return self._read_chunks()

    def _read_chunks(self) -> Iterator[bytes]:
        while True:
            chunk = self._stream.read(self._chunk_size)
            if not chunk:
                break
            yield chunk

    def __repr__(self) -> str:
        return f"StreamContent(chunk_size={self._chunk_size}, consumed={self._consumed})"
