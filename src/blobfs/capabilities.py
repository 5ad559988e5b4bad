"""blobfs adapter contract and optional capabilities.

``Adapter`` is the mandatory base contract every backend implements.
Optional behaviour (checksums, sizes, metadata, prefix listing, mime types)
is modelled as separate runtime-checkable protocols so callers can
feature-detect with ``isinstance`` instead of calling and catching:

    if isinstance(adapter, ChecksumCalculator):
        digest = adapter.checksum(key)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

from blobfs.content import Content
from blobfs.models import ListKeysResult


class Adapter(ABC):
    """Abstract base class for storage adapters.

    Every implementation must:
    - Translate all backend-native failures into the blobfs error taxonomy
    - Never raise for ``exists`` on a missing key
    - Validate keys before touching the backend

    Implementations:
    - InMemoryAdapter: process-local dict (tests, reference semantics)
    - DbalAdapter: single relational table via SQLAlchemy
    - AzureBlobStorageAdapter: Azure blob containers
    - LocalAdapter: local filesystem directory
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability.

        Returns:
            Backend name string (e.g., "memory", "dbal", "azure_blob").
        """
        ...

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check whether a key exists.

        Args:
            key: Object key.

        Returns:
            True if the key exists, False otherwise. Never raises for a
            missing key.

        Raises:
            InvalidKeyError: If the key is malformed for this adapter.
            StorageFailureError: If the backend cannot answer.
        """
        ...

    @abstractmethod
    def read(self, key: str) -> bytes:
        """Read the full content stored under a key.

        Raises:
            InvalidKeyError: If the key is malformed for this adapter.
            ObjectNotFoundError: If the key does not exist.
            StorageFailureError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def write(self, key: str, content: Content) -> int:
        """Create or overwrite the object stored under a key.

        Args:
            key: Object key.
            content: Payload to store.

        Returns:
            Number of bytes written.

        Raises:
            InvalidKeyError: If the key is malformed for this adapter.
            StorageFailureError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete the object stored under a key.

        Whether deleting an absent key raises ObjectNotFoundError or succeeds
        is pinned by each adapter.

        Raises:
            InvalidKeyError: If the key is malformed for this adapter.
            ObjectNotFoundError: If the key does not exist (adapter policy).
            StorageFailureError: If the backend cannot complete the deletion.
        """
        ...

    @abstractmethod
    def rename(self, source_key: str, target_key: str) -> None:
        """Move an object to a new key, preserving its content.

        The source is removed only once the target is in place. Atomicity
        is a property of each adapter.

        Raises:
            InvalidKeyError: If either key is malformed for this adapter.
            ObjectNotFoundError: If the source key does not exist.
            StorageFailureError: If the backend cannot complete the rename.
        """
        ...

    @abstractmethod
    def keys(self) -> set[str]:
        """Enumerate every key. No ordering guarantee.

        Raises:
            StorageFailureError: If the backend cannot complete the listing.
        """
        ...

    @abstractmethod
    def mtime(self, key: str) -> int:
        """Return the last-modified time of a key as unix seconds.

        Raises:
            InvalidKeyError: If the key is malformed for this adapter.
            ObjectNotFoundError: If the key does not exist.
            StorageFailureError: If the backend cannot answer.
        """
        ...

    @abstractmethod
    def is_directory(self, key: str) -> bool:
        """Check whether a key names a directory.

        Always False for flat-namespace backends.
        """
        ...


@runtime_checkable
class ChecksumCalculator(Protocol):
    """Adapter stores a content checksum at write time."""

    def checksum(self, key: str) -> str:
        """Return the checksum recorded for a key.

        Raises:
            ObjectNotFoundError: If the key does not exist.
            StorageFailureError: If the backend cannot answer.
        """
        ...


@runtime_checkable
class SizeCalculator(Protocol):
    """Adapter can report the byte length of an object."""

    def size(self, key: str) -> int:
        """Return the size of a key in bytes.

        Raises:
            InvalidKeyError: If the key is malformed for this adapter.
            ObjectNotFoundError: If the key does not exist.
            StorageFailureError: If the backend cannot answer.
        """
        ...


@runtime_checkable
class MetadataSupporter(Protocol):
    """Adapter stores arbitrary backend-native metadata per key.

    Metadata is passed through as-is; blobfs never interprets it.
    """

    def get_metadata(self, key: str) -> dict[str, str]: ...

    def set_metadata(self, key: str, metadata: dict[str, str]) -> None: ...


@runtime_checkable
class ListKeysAware(Protocol):
    """Adapter supports prefix-filtered listing."""

    def list_keys(self, prefix: str = "") -> ListKeysResult:
        """List keys (and directories, for hierarchical backends) by prefix.

        Flat backends return an empty ``dirs`` set.
        """
        ...


@runtime_checkable
class MimeTypeProvider(Protocol):
    """Adapter can report a mime type for a key."""

    def mime_type(self, key: str) -> str: ...


CAPABILITIES: tuple[type, ...] = (
    ChecksumCalculator,
    SizeCalculator,
    MetadataSupporter,
    ListKeysAware,
    MimeTypeProvider,
)


def supports(adapter: Adapter, capability: type) -> bool:
    """Check whether an adapter implements an optional capability.

    Args:
        adapter: Adapter instance.
        capability: One of the capability protocols.

    Returns:
        True if the adapter provides every method of the capability.

    Raises:
        ValueError: If ``capability`` is not a known capability protocol.
    """
    if capability not in CAPABILITIES:
        raise ValueError(f"Unknown capability: {capability!r}")
    return isinstance(adapter, capability)


def capabilities_of(adapter: Adapter) -> list[str]:
    """Return the names of the capabilities an adapter implements."""
    return [cap.__name__ for cap in CAPABILITIES if isinstance(adapter, cap)]
