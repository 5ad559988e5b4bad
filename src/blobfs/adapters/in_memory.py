"""In-memory storage adapter.

Reference-semantics backend for tests: a process-local mapping of
key -> (content, mtime). Not thread-safe and nothing survives the process;
callers needing concurrent access must synchronize externally.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any

from blobfs.capabilities import Adapter
from blobfs.content import Content
from blobfs.errors import ObjectNotFoundError, StorageFailureError
from blobfs.tracing import traced_operation
from blobfs.util import guess_mime_type, validate_key

logger = logging.getLogger(__name__)

FileSpec = bytes | str | Mapping[str, Any]


class InMemoryAdapter(Adapter):
    """Adapter backed by a dict.

    Deleting an absent key raises ObjectNotFoundError. ``rename`` is read,
    delete, then write; it is not atomic.

    Capabilities: MimeTypeProvider.
    """

    def __init__(self, files: Mapping[str, FileSpec] | None = None) -> None:
        """Initialize the adapter.

        Args:
            files: Initial files keyed by key. Values are raw content
                (bytes or str) or mappings with "content" and "mtime".
        """
        self._files: dict[str, dict[str, Any]] = {}
        self.set_files(files or {})

    @property
    def backend_name(self) -> str:
        return "memory"

    def set_files(self, files: Mapping[str, FileSpec]) -> None:
        """Replace all stored files.

        Args:
            files: Files keyed by key; see ``__init__``.
        """
        self._files = {}
        for key, spec in files.items():
            if isinstance(spec, Mapping):
                self.set_file(key, spec.get("content"), spec.get("mtime"))
            else:
                self.set_file(key, spec)

    def set_file(
        self,
        key: str,
        content: bytes | str | None = None,
        mtime: int | None = None,
    ) -> None:
        """Define a single file.

        Args:
            key: Object key.
            content: Raw content; None stores an empty payload.
            mtime: Last-modified unix time; defaults to now.
        """
        validate_key(key)
        if content is None:
            content = b""
        elif isinstance(content, str):
            content = content.encode("utf-8")
        self._files[key] = {
            "content": bytes(content),
            "mtime": int(time.time()) if mtime is None else int(mtime),
        }

    def _get(self, key: str) -> dict[str, Any]:
        validate_key(key)
        try:
            return self._files[key]
        except KeyError:
            raise ObjectNotFoundError(key=key) from None

    @traced_operation("exists")
    def exists(self, key: str) -> bool:
        validate_key(key)
        return key in self._files

    @traced_operation("read")
    def read(self, key: str) -> bytes:
        return bytes(self._get(key)["content"])

    @traced_operation("write")
    def write(self, key: str, content: Content) -> int:
        validate_key(key)
        try:
            raw = content.full_content()
        except OSError as e:
            raise StorageFailureError.unexpected_failure("write", {"key": key}, e) from e
        self._files[key] = {"content": raw, "mtime": int(time.time())}
        logger.debug("Wrote %d bytes to key=%s", len(raw), key)
        return len(raw)

    @traced_operation("delete")
    def delete(self, key: str) -> None:
        self._get(key)
        del self._files[key]
        logger.debug("Deleted key=%s", key)

    @traced_operation("rename")
    def rename(self, source_key: str, target_key: str) -> None:
        validate_key(target_key)
        data = self.read(source_key)
        self.delete(source_key)
        self.write(target_key, Content.from_bytes(data))

    @traced_operation("keys")
    def keys(self) -> set[str]:
        return set(self._files)

    @traced_operation("mtime")
    def mtime(self, key: str) -> int:
        return int(self._get(key)["mtime"])

    def is_directory(self, key: str) -> bool:
        return False

    @traced_operation("mime_type")
    def mime_type(self, key: str) -> str:
        return guess_mime_type(self._get(key)["content"])
