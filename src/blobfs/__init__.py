"""blobfs: key-addressed blob storage over interchangeable backends.

Provides a uniform adapter contract with optional, feature-detectable
capabilities, lazy chunked content for writes, and a single error taxonomy
that every backend translates its native failures into.

Backends:
- InMemoryAdapter: process-local dict (tests)
- DbalAdapter: relational table via SQLAlchemy
- AzureBlobStorageAdapter: Azure Blob Storage (single or multi-container)
- LocalAdapter: local filesystem

Environment Variables:
    BLOBFS_ADAPTER: adapter built by ``create_adapter_from_env``
        (default: "memory"); see ``blobfs.config``.
"""

from blobfs.adapters import (
    AzureBlobStorageAdapter,
    DbalAdapter,
    InMemoryAdapter,
    LocalAdapter,
)
from blobfs.capabilities import (
    Adapter,
    ChecksumCalculator,
    ListKeysAware,
    MetadataSupporter,
    MimeTypeProvider,
    SizeCalculator,
    supports,
)
from blobfs.config import AdapterConfigError, create_adapter_from_env
from blobfs.content import BytesContent, Content, PathContent, StreamContent
from blobfs.errors import (
    ContentConsumedError,
    InvalidKeyError,
    ObjectNotFoundError,
    ObjectStorageError,
    PathTraversalError,
    StorageFailureError,
)
from blobfs.models import ListKeysResult

__all__ = [
    "Adapter",
    "AdapterConfigError",
    "AzureBlobStorageAdapter",
    "BytesContent",
    "ChecksumCalculator",
    "Content",
    "ContentConsumedError",
    "DbalAdapter",
    "InMemoryAdapter",
    "InvalidKeyError",
    "ListKeysAware",
    "ListKeysResult",
    "LocalAdapter",
    "MetadataSupporter",
    "MimeTypeProvider",
    "ObjectNotFoundError",
    "ObjectStorageError",
    "PathContent",
    "PathTraversalError",
    "SizeCalculator",
    "StorageFailureError",
    "StreamContent",
    "create_adapter_from_env",
    "supports",
]
