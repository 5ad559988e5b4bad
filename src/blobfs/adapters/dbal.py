"""Relational-table storage adapter.

Stores every object as one row of a single table through an injected
SQLAlchemy Engine. Column names are configurable:

    key       primary key / unique
    content   binary payload
    mtime     unix seconds of the last write
    checksum  MD5 hex digest of the content, computed at write time

Concurrency:
    ``write`` is an upsert made of an existence probe followed by an UPDATE
    or an INSERT. The pair is not serialized across writers: two first
    writes to the same key can both see it absent, one INSERT wins and the
    other fails on the key constraint and surfaces as StorageFailureError.
    This is an accepted limitation; callers needing stronger guarantees
    must coordinate writers themselves.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    BigInteger,
    Column,
    LargeBinary,
    MetaData,
    String,
    Table,
    bindparam,
    text,
)
from sqlalchemy.exc import SQLAlchemyError

from blobfs.capabilities import Adapter
from blobfs.content import Content
from blobfs.errors import ObjectNotFoundError, StorageFailureError
from blobfs.models import ListKeysResult
from blobfs.tracing import traced_operation
from blobfs.util import checksum_from_content, validate_key

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine, TextClause

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "blobfs_files"
DEFAULT_COLUMNS: dict[str, str] = {
    "key": "key",
    "content": "content",
    "mtime": "mtime",
    "checksum": "checksum",
}

_LIKE_ESCAPE = "!"


def _resolve_columns(columns: Mapping[str, str] | None) -> dict[str, str]:
    resolved = dict(DEFAULT_COLUMNS)
    if columns:
        unknown = set(columns) - set(DEFAULT_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown column aliases: {sorted(unknown)}")
        resolved.update(columns)
    return resolved


def _escape_like(prefix: str) -> str:
    """Escape LIKE wildcards so the prefix matches literally."""
    for char in (_LIKE_ESCAPE, "%", "_"):
        prefix = prefix.replace(char, _LIKE_ESCAPE + char)
    return prefix


def create_files_table(
    engine: Engine,
    table: str = DEFAULT_TABLE,
    columns: Mapping[str, str] | None = None,
) -> Table:
    """Create the files table if it does not exist.

    Args:
        engine: SQLAlchemy Engine.
        table: Table name.
        columns: Optional column-name overrides (same aliases as DbalAdapter).

    Returns:
        The SQLAlchemy Table describing the files table.

    Raises:
        ValueError: If ``columns`` contains an unknown alias.
        StorageFailureError: If the table cannot be created.
    """
    cols = _resolve_columns(columns)
    metadata = MetaData()
    files_table = Table(
        table,
        metadata,
        Column(cols["key"], String(255), primary_key=True),
        Column(cols["content"], LargeBinary, nullable=False),
        Column(cols["mtime"], BigInteger, nullable=False),
        Column(cols["checksum"], String(32), nullable=False),
    )
    try:
        metadata.create_all(engine, checkfirst=True)
    except SQLAlchemyError as e:
        raise StorageFailureError.unexpected_failure("create_table", {"table": table}, e) from e

    logger.info("Ensured files table %s", table)
    return files_table


class DbalAdapter(Adapter):
    """Adapter mapping keys onto rows of a single table.

    Every operation runs in its own transaction. ``rename`` is a single
    UPDATE of the key column, so it is atomic at the statement level; it
    fails with StorageFailureError if the target key already exists.
    Deleting an absent key is a no-op.

    Capabilities: ChecksumCalculator, ListKeysAware.
    """

    def __init__(
        self,
        engine: Engine,
        table: str = DEFAULT_TABLE,
        columns: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            engine: SQLAlchemy Engine owned by this adapter.
            table: Files table name.
            columns: Optional overrides for the "key", "content", "mtime"
                and "checksum" column names.

        Raises:
            ValueError: If ``columns`` contains an unknown alias.
        """
        self._engine = engine
        self._table = table
        self._columns = _resolve_columns(columns)

        quote = engine.dialect.identifier_preparer.quote
        t = quote(table)
        c = {alias: quote(name) for alias, name in self._columns.items()}
        key = c["key"]

        self._exists_sql = text(f"SELECT COUNT({key}) FROM {t} WHERE {key} = :key")
        self._select_sql: dict[str, TextClause] = {
            alias: text(f"SELECT {c[alias]} FROM {t} WHERE {key} = :key")
            for alias in ("content", "mtime", "checksum")
        }
        self._update_sql = text(
            f"UPDATE {t} SET {c['content']} = :content, {c['mtime']} = :mtime, "
            f"{c['checksum']} = :checksum WHERE {key} = :key"
        ).bindparams(bindparam("content", type_=LargeBinary))
        self._insert_sql = text(
            f"INSERT INTO {t} ({key}, {c['content']}, {c['mtime']}, {c['checksum']}) "
            "VALUES (:key, :content, :mtime, :checksum)"
        ).bindparams(bindparam("content", type_=LargeBinary))
        self._rename_sql = text(f"UPDATE {t} SET {key} = :target_key WHERE {key} = :source_key")
        self._delete_sql = text(f"DELETE FROM {t} WHERE {key} = :key")
        self._keys_sql = text(f"SELECT {key} FROM {t}")
        self._list_sql = text(
            f"SELECT {key} FROM {t} WHERE {key} LIKE :pattern ESCAPE '{_LIKE_ESCAPE}'"
        )

    @property
    def backend_name(self) -> str:
        return "dbal"

    @property
    def table(self) -> str:
        return self._table

    @property
    def columns(self) -> dict[str, str]:
        return dict(self._columns)

    def _exists_in(self, conn: Connection, key: str) -> bool:
        return bool(conn.execute(self._exists_sql, {"key": key}).scalar())

    def _fetch_column(self, operation: str, key: str, alias: str) -> Any:
        validate_key(key)
        try:
            with self._engine.connect() as conn:
                row = conn.execute(self._select_sql[alias], {"key": key}).fetchone()
        except SQLAlchemyError as e:
            raise StorageFailureError.unexpected_failure(operation, {"key": key}, e) from e

        if row is None:
            raise ObjectNotFoundError(key=key)
        return row[0]

    @traced_operation("exists")
    def exists(self, key: str) -> bool:
        validate_key(key)
        try:
            with self._engine.connect() as conn:
                return self._exists_in(conn, key)
        except SQLAlchemyError as e:
            raise StorageFailureError.unexpected_failure("exists", {"key": key}, e) from e

    @traced_operation("read")
    def read(self, key: str) -> bytes:
        value = self._fetch_column("read", key, "content")
        return bytes(value) if value is not None else b""

    @traced_operation("write")
    def write(self, key: str, content: Content) -> int:
        validate_key(key)
        try:
            raw = content.full_content()
        except OSError as e:
            raise StorageFailureError.unexpected_failure("write", {"key": key}, e) from e
        values = {
            "key": key,
            "content": raw,
            "mtime": int(time.time()),
            "checksum": checksum_from_content(raw),
        }

        try:
            with self._engine.begin() as conn:
                if self._exists_in(conn, key):
                    conn.execute(self._update_sql, values)
                else:
                    conn.execute(self._insert_sql, values)
        except SQLAlchemyError as e:
            raise StorageFailureError.unexpected_failure("write", {"key": key}, e) from e

        logger.debug("Wrote %d bytes to table=%s key=%s", len(raw), self._table, key)
        return len(raw)

    @traced_operation("delete")
    def delete(self, key: str) -> None:
        validate_key(key)
        try:
            with self._engine.begin() as conn:
                conn.execute(self._delete_sql, {"key": key})
        except SQLAlchemyError as e:
            raise StorageFailureError.unexpected_failure("delete", {"key": key}, e) from e

        logger.debug("Deleted table=%s key=%s", self._table, key)

    @traced_operation("rename")
    def rename(self, source_key: str, target_key: str) -> None:
        validate_key(source_key)
        validate_key(target_key)
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    self._rename_sql,
                    {"source_key": source_key, "target_key": target_key},
                )
                updated = result.rowcount
        except SQLAlchemyError as e:
            raise StorageFailureError.unexpected_failure(
                "rename",
                {"source_key": source_key, "target_key": target_key},
                e,
            ) from e

        if updated == 0:
            raise ObjectNotFoundError(key=source_key)
        logger.debug("Renamed table=%s key=%s to key=%s", self._table, source_key, target_key)

    @traced_operation("keys")
    def keys(self) -> set[str]:
        try:
            with self._engine.connect() as conn:
                return {row[0] for row in conn.execute(self._keys_sql)}
        except SQLAlchemyError as e:
            raise StorageFailureError.unexpected_failure("keys", {}, e) from e

    @traced_operation("mtime")
    def mtime(self, key: str) -> int:
        return int(self._fetch_column("mtime", key, "mtime"))

    @traced_operation("checksum")
    def checksum(self, key: str) -> str:
        return str(self._fetch_column("checksum", key, "checksum"))

    def is_directory(self, key: str) -> bool:
        # Relational rows have no hierarchy.
        return False

    @traced_operation("list_keys")
    def list_keys(self, prefix: str = "") -> ListKeysResult:
        """List keys starting with ``prefix``.

        The prefix is trimmed and matched literally (LIKE wildcards are
        escaped). Case sensitivity follows the database's LIKE semantics.
        ``dirs`` is always empty.
        """
        prefix = prefix.strip()
        pattern = f"{_escape_like(prefix)}%"
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(self._list_sql, {"pattern": pattern})
                return ListKeysResult.of(keys=(row[0] for row in rows))
        except SQLAlchemyError as e:
            raise StorageFailureError.unexpected_failure("list_keys", {"prefix": prefix}, e) from e
