"""Tests for the relational-table adapter over SQLite.

Test cases:
- Schema creation with default and custom column names
- Checksums are MD5 digests recorded at write time
- Prefix listing matches literally (LIKE wildcards escaped)
- Rename is a single UPDATE; delete of an absent key is a no-op
- Backend failures surface as StorageFailureError with the native cause
"""

from __future__ import annotations

import hashlib
from typing import Any

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from blobfs.adapters.dbal import DEFAULT_TABLE, DbalAdapter, create_files_table
from blobfs.content import Content
from blobfs.errors import ObjectNotFoundError, StorageFailureError
from blobfs.models import ListKeysResult


@pytest.fixture
def adapter(sqlite_engine: Any) -> DbalAdapter:
    """Create a DbalAdapter over a fresh files table."""
    create_files_table(sqlite_engine)
    return DbalAdapter(sqlite_engine)


class TestSchema:
    """Tests for files table creation."""

    def test_default_schema(self, sqlite_engine: Any) -> None:
        create_files_table(sqlite_engine)

        columns = {c["name"] for c in inspect(sqlite_engine).get_columns(DEFAULT_TABLE)}

        assert columns == {"key", "content", "mtime", "checksum"}

    def test_create_is_repeatable(self, sqlite_engine: Any) -> None:
        create_files_table(sqlite_engine)
        create_files_table(sqlite_engine)

        assert inspect(sqlite_engine).has_table(DEFAULT_TABLE)

    def test_custom_columns(self, sqlite_engine: Any) -> None:
        columns = {"key": "path", "content": "data"}
        create_files_table(sqlite_engine, "objects", columns)
        adapter = DbalAdapter(sqlite_engine, "objects", columns)

        adapter.write("a.txt", Content.from_bytes(b"payload"))

        with sqlite_engine.connect() as conn:
            row = conn.execute(text("SELECT path, data FROM objects")).one()
        assert row[0] == "a.txt"
        assert bytes(row[1]) == b"payload"
        assert adapter.columns["mtime"] == "mtime"
        assert adapter.table == "objects"

    def test_unknown_column_alias_rejected(self, sqlite_engine: Any) -> None:
        with pytest.raises(ValueError, match="Unknown column aliases"):
            DbalAdapter(sqlite_engine, columns={"size": "bytes"})


class TestChecksum:
    """Tests for checksums recorded at write time."""

    def test_checksum_is_md5_of_content(self, adapter: DbalAdapter) -> None:
        adapter.write("a.txt", Content.from_bytes(b"hello world"))

        assert adapter.checksum("a.txt") == hashlib.md5(b"hello world").hexdigest()

    def test_checksum_follows_overwrite(self, adapter: DbalAdapter) -> None:
        adapter.write("a.txt", Content.from_bytes(b"one"))
        adapter.write("a.txt", Content.from_bytes(b"two"))

        assert adapter.checksum("a.txt") == hashlib.md5(b"two").hexdigest()

    def test_checksum_missing_key(self, adapter: DbalAdapter) -> None:
        with pytest.raises(ObjectNotFoundError):
            adapter.checksum("missing")


class TestListKeys:
    """Tests for prefix listing."""

    def test_prefix_filter(self, adapter: DbalAdapter) -> None:
        for key in ("pre-a", "pre-b", "other"):
            adapter.write(key, Content.from_bytes(b"x"))

        result = adapter.list_keys("pre")

        assert result == ListKeysResult.of(keys={"pre-a", "pre-b"})
        assert result.dirs == frozenset()

    def test_empty_prefix_lists_everything(self, adapter: DbalAdapter) -> None:
        for key in ("a", "b"):
            adapter.write(key, Content.from_bytes(b"x"))

        assert adapter.list_keys().keys == {"a", "b"}

    def test_prefix_is_trimmed(self, adapter: DbalAdapter) -> None:
        adapter.write("pre-a", Content.from_bytes(b"x"))

        assert adapter.list_keys("  pre ").keys == {"pre-a"}

    @pytest.mark.parametrize("prefix", ["a%", "a_", "a!"])
    def test_wildcards_match_literally(self, adapter: DbalAdapter, prefix: str) -> None:
        for key in ("a%1", "a_1", "a!1", "abc"):
            adapter.write(key, Content.from_bytes(b"x"))

        assert adapter.list_keys(prefix).keys == {f"{prefix}1"}


class TestPolicies:
    """Tests for dbal rename and delete policies."""

    def test_delete_missing_key_is_noop(self, adapter: DbalAdapter) -> None:
        adapter.delete("missing")

        assert adapter.keys() == set()

    def test_rename_onto_existing_target_fails(self, adapter: DbalAdapter) -> None:
        adapter.write("a", Content.from_bytes(b"source"))
        adapter.write("b", Content.from_bytes(b"target"))

        with pytest.raises(StorageFailureError) as exc_info:
            adapter.rename("a", "b")

        assert exc_info.value.operation == "rename"
        assert isinstance(exc_info.value.cause, IntegrityError)
        assert adapter.read("a") == b"source"
        assert adapter.read("b") == b"target"

    def test_rename_keeps_checksum(self, adapter: DbalAdapter) -> None:
        adapter.write("a", Content.from_bytes(b"payload"))
        checksum = adapter.checksum("a")

        adapter.rename("a", "b")

        assert adapter.checksum("b") == checksum


class TestFailures:
    """Tests for translation of database failures."""

    def test_concurrent_first_write_loses_on_constraint(
        self, adapter: DbalAdapter, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A writer that saw the key absent fails instead of clobbering."""
        adapter.write("a", Content.from_bytes(b"winner"))
        monkeypatch.setattr(adapter, "_exists_in", lambda conn, key: False)

        with pytest.raises(StorageFailureError) as exc_info:
            adapter.write("a", Content.from_bytes(b"loser"))

        assert exc_info.value.operation == "write"
        assert exc_info.value.key == "a"
        assert isinstance(exc_info.value.cause, IntegrityError)
        monkeypatch.undo()
        assert adapter.read("a") == b"winner"

    def test_missing_table_is_storage_failure(
        self, adapter: DbalAdapter, sqlite_engine: Any
    ) -> None:
        with sqlite_engine.begin() as conn:
            conn.execute(text(f"DROP TABLE {DEFAULT_TABLE}"))

        for call in (
            lambda: adapter.exists("a"),
            lambda: adapter.read("a"),
            lambda: adapter.write("a", Content.from_bytes(b"x")),
            lambda: adapter.keys(),
            lambda: adapter.list_keys("a"),
        ):
            with pytest.raises(StorageFailureError) as exc_info:
                call()
            assert isinstance(exc_info.value.cause, SQLAlchemyError)

    def test_failure_message_names_operation(
        self, adapter: DbalAdapter, sqlite_engine: Any
    ) -> None:
        with sqlite_engine.begin() as conn:
            conn.execute(text(f"DROP TABLE {DEFAULT_TABLE}"))

        with pytest.raises(StorageFailureError, match="Unexpected failure during delete"):
            adapter.delete("a")
