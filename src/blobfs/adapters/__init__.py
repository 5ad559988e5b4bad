"""blobfs storage adapters.

Adapters:
- InMemoryAdapter: process-local dict (tests, reference semantics)
- DbalAdapter: single relational table via SQLAlchemy
- AzureBlobStorageAdapter: Azure Blob Storage containers
- LocalAdapter: local filesystem directory
"""

from blobfs.adapters.azure_blob import AzureBlobStorageAdapter
from blobfs.adapters.dbal import DbalAdapter, create_files_table
from blobfs.adapters.in_memory import InMemoryAdapter
from blobfs.adapters.local import LocalAdapter

__all__ = [
    "AzureBlobStorageAdapter",
    "DbalAdapter",
    "InMemoryAdapter",
    "LocalAdapter",
    "create_files_table",
]
