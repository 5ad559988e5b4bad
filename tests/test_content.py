"""Tests for lazy chunked content sources.

- Literal content yields one chunk (or none when empty)
- Path content is read in chunk_size pieces and can be consumed repeatedly
- Stream content is consumed once and never closes the caller's stream
"""

from __future__ import annotations

import io
from pathlib import Path

import pytest

from blobfs.content import (
    DEFAULT_CHUNK_SIZE,
    BytesContent,
    Content,
    PathContent,
    StreamContent,
)
from blobfs.errors import ContentConsumedError


class TestBytesContent:
    """Tests for content built from a literal buffer."""

    def test_single_chunk(self) -> None:
        content = Content.from_bytes(b"hello world")

        assert isinstance(content, BytesContent)
        assert list(content.chunks()) == [b"hello world"]
        assert content.full_content() == b"hello world"

    def test_empty_yields_no_chunks(self) -> None:
        content = Content.from_bytes(b"")

        assert list(content.chunks()) == []
        assert content.full_content() == b""

    def test_string_is_utf8_encoded(self) -> None:
        content = Content.from_bytes("héllo")

        assert content.full_content() == "héllo".encode()

    def test_reconsumable(self) -> None:
        content = Content.from_bytes(b"abc")

        assert content.full_content() == b"abc"
        assert content.full_content() == b"abc"

    def test_has_no_source_path(self) -> None:
        assert Content.from_bytes(b"abc").source_path is None


class TestPathContent:
    """Tests for content read lazily from a file."""

    def test_default_chunk_size(self, tmp_path: Path) -> None:
        """Chunks follow the default 1024-byte read size."""
        path = tmp_path / "payload.bin"
        path.write_bytes(b"x" * 2500)

        content = Content.from_path(path)
        chunks = list(content.chunks())

        assert isinstance(content, PathContent)
        assert content.chunk_size == DEFAULT_CHUNK_SIZE == 1024
        assert [len(c) for c in chunks] == [1024, 1024, 452]
        assert b"".join(chunks) == b"x" * 2500

    def test_custom_chunk_size(self, tmp_path: Path) -> None:
        path = tmp_path / "payload.txt"
        path.write_bytes(b"abcdefg")

        chunks = list(Content.from_path(path, chunk_size=3).chunks())

        assert chunks == [b"abc", b"def", b"g"]

    def test_empty_file_yields_no_chunks(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.bin"
        path.write_bytes(b"")

        assert list(Content.from_path(path).chunks()) == []

    def test_fresh_sequence_on_each_consumption(self, tmp_path: Path) -> None:
        path = tmp_path / "payload.txt"
        path.write_bytes(b"repeatable")
        content = Content.from_path(path, chunk_size=4)

        assert content.full_content() == b"repeatable"
        assert content.full_content() == b"repeatable"

    def test_file_is_opened_lazily(self, tmp_path: Path) -> None:
        """Constructing content for a missing file only fails on consumption."""
        content = Content.from_path(tmp_path / "missing.bin")

        with pytest.raises(FileNotFoundError):
            content.full_content()

    def test_source_path(self, tmp_path: Path) -> None:
        path = tmp_path / "payload.txt"
        path.write_bytes(b"data")

        assert Content.from_path(path).source_path == path


class TestStreamContent:
    """Tests for content read from a caller-owned stream."""

    def test_reads_stream_in_chunks(self) -> None:
        stream = io.BytesIO(b"0123456789")

        content = Content.from_stream(stream, chunk_size=4)

        assert isinstance(content, StreamContent)
        assert list(content.chunks()) == [b"0123", b"4567", b"89"]

    def test_does_not_close_stream(self) -> None:
        stream = io.BytesIO(b"payload")

        Content.from_stream(stream).full_content()

        assert not stream.closed

    def test_second_consumption_raises(self) -> None:
        content = Content.from_stream(io.BytesIO(b"once"))

        assert content.full_content() == b"once"
        assert content.consumed

        with pytest.raises(ContentConsumedError):
            content.chunks()

    def test_reads_from_current_position(self) -> None:
        stream = io.BytesIO(b"skip-keep")
        stream.seek(5)

        assert Content.from_stream(stream).full_content() == b"keep"

    def test_empty_stream_yields_no_chunks(self) -> None:
        assert list(Content.from_stream(io.BytesIO(b"")).chunks()) == []

    def test_source_path_from_file_stream(self, tmp_path: Path) -> None:
        path = tmp_path / "payload.txt"
        path.write_bytes(b"data")

        with path.open("rb") as fh:
            assert Content.from_stream(fh).source_path == path

    def test_in_memory_stream_has_no_source_path(self) -> None:
        assert Content.from_stream(io.BytesIO(b"data")).source_path is None


class TestChunkSizeValidation:
    """Tests for chunk size validation."""

    @pytest.mark.parametrize("chunk_size", [0, -1, True, 1.5])
    def test_invalid_chunk_size_rejected(self, tmp_path: Path, chunk_size: object) -> None:
        with pytest.raises(ValueError):
            Content.from_path(tmp_path / "x", chunk_size=chunk_size)  # type: ignore[arg-type]
        with pytest.raises(ValueError):
            Content.from_stream(io.BytesIO(b""), chunk_size=chunk_size)  # type: ignore[arg-type]
