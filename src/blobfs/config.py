"""Environment-driven adapter construction.

Environment Variables:
    BLOBFS_ADAPTER: "memory", "local", "dbal" or "azure" (default: "memory")
    BLOBFS_LOCAL_BASE_DIR: Base directory for the local adapter
    BLOBFS_DATABASE_URL: SQLAlchemy URL for the dbal adapter (required for dbal)
    BLOBFS_DBAL_TABLE: Files table for the dbal adapter (default: "blobfs_files")
    BLOBFS_DBAL_CREATE_TABLE: Create the files table if missing (default: false)
    BLOBFS_AZURE_CONNECTION_STRING: Connection string (required for azure)
    BLOBFS_AZURE_CONTAINER: Fixed container; unset selects multi-container mode
    BLOBFS_AZURE_CREATE_CONTAINER: Create the fixed container on connect (default: false)
    BLOBFS_AZURE_DETECT_CONTENT_TYPE: Sniff content types on write (default: true)

Configuration errors fail closed: nothing is built from partial settings.
"""

from __future__ import annotations

import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.exc import ArgumentError

from blobfs.adapters.azure_blob import AzureBlobStorageAdapter
from blobfs.adapters.dbal import DEFAULT_TABLE, DbalAdapter, create_files_table
from blobfs.adapters.in_memory import InMemoryAdapter
from blobfs.adapters.local import BLOBFS_LOCAL_BASE_DIR_ENV, LocalAdapter
from blobfs.capabilities import Adapter
from blobfs.observability.tracing import get_env_bool, instrument_sqlalchemy

logger = logging.getLogger(__name__)

BLOBFS_ADAPTER_ENV = "BLOBFS_ADAPTER"
BLOBFS_DATABASE_URL_ENV = "BLOBFS_DATABASE_URL"
BLOBFS_DBAL_TABLE_ENV = "BLOBFS_DBAL_TABLE"
BLOBFS_DBAL_CREATE_TABLE_ENV = "BLOBFS_DBAL_CREATE_TABLE"
BLOBFS_AZURE_CONNECTION_STRING_ENV = "BLOBFS_AZURE_CONNECTION_STRING"
BLOBFS_AZURE_CONTAINER_ENV = "BLOBFS_AZURE_CONTAINER"
BLOBFS_AZURE_CREATE_CONTAINER_ENV = "BLOBFS_AZURE_CREATE_CONTAINER"
BLOBFS_AZURE_DETECT_CONTENT_TYPE_ENV = "BLOBFS_AZURE_DETECT_CONTENT_TYPE"

ADAPTER_NAMES = ("memory", "local", "dbal", "azure")


class AdapterConfigError(Exception):
    """Raised when adapter configuration is missing or invalid."""

    pass


def _require_env(name: str) -> str:
    value = os.environ.get(name, "").strip()
    if not value:
        raise AdapterConfigError(f"{name} environment variable is not set")
    return value


def _ensure_sqlalchemy_url(url: str) -> str:
    """Normalise legacy postgres:// URLs for SQLAlchemy."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def _build_dbal() -> DbalAdapter:
    url = _ensure_sqlalchemy_url(_require_env(BLOBFS_DATABASE_URL_ENV))
    table = os.environ.get(BLOBFS_DBAL_TABLE_ENV, "").strip() or DEFAULT_TABLE
    try:
        engine = create_engine(url, pool_pre_ping=True)
    except (ArgumentError, ImportError) as e:
        raise AdapterConfigError(f"Invalid {BLOBFS_DATABASE_URL_ENV}: {e}") from e
    instrument_sqlalchemy(engine)

    if get_env_bool(BLOBFS_DBAL_CREATE_TABLE_ENV, False):
        create_files_table(engine, table)
    return DbalAdapter(engine, table)


def _build_azure() -> AzureBlobStorageAdapter:
    connection_string = _require_env(BLOBFS_AZURE_CONNECTION_STRING_ENV)
    container = os.environ.get(BLOBFS_AZURE_CONTAINER_ENV, "").strip() or None
    return AzureBlobStorageAdapter.from_connection_string(
        connection_string,
        container,
        create=get_env_bool(BLOBFS_AZURE_CREATE_CONTAINER_ENV, False),
        detect_content_type=get_env_bool(BLOBFS_AZURE_DETECT_CONTENT_TYPE_ENV, True),
    )


def create_adapter_from_env() -> Adapter:
    """Build the adapter selected by BLOBFS_ADAPTER.

    Returns:
        A configured adapter. Remote adapters do not contact their backend
        until first use.

    Raises:
        AdapterConfigError: If the adapter name is unknown or a required
            setting is missing or invalid.
    """
    name = os.environ.get(BLOBFS_ADAPTER_ENV, "").strip().lower() or "memory"

    if name == "memory":
        adapter: Adapter = InMemoryAdapter()
    elif name == "local":
        adapter = LocalAdapter(os.environ.get(BLOBFS_LOCAL_BASE_DIR_ENV) or None)
    elif name == "dbal":
        adapter = _build_dbal()
    elif name == "azure":
        adapter = _build_azure()
    else:
        raise AdapterConfigError(
            f"Unknown {BLOBFS_ADAPTER_ENV}={name!r}; expected one of {', '.join(ADAPTER_NAMES)}"
        )

    logger.info("Created %s adapter from environment", adapter.backend_name)
    return adapter
