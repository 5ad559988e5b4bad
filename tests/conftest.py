"""Pytest configuration and fixtures for blobfs tests.

This module provides common fixtures and configuration for all tests.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any

import pytest
from azure.core.exceptions import (
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool


@pytest.fixture(autouse=True)
def clear_blobfs_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove BLOBFS_* settings inherited from the outer environment.

    Tests that need configuration set it explicitly with monkeypatch.
    """
    for name in list(os.environ):
        if name.startswith("BLOBFS_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def sqlite_engine() -> Iterator[Any]:
    """Create an in-memory SQLite engine shared across connections."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


def azure_service_error(cls: type[HttpResponseError], code: str) -> HttpResponseError:
    """Build an Azure SDK exception carrying a storage error code."""
    error = cls(message=f"{code}: simulated service error")
    error.error_code = code  # type: ignore[attr-defined]
    return error


@pytest.fixture
def azure_error() -> Callable[[type[HttpResponseError], str], HttpResponseError]:
    """Factory for Azure SDK exceptions carrying a storage error code."""
    return azure_service_error


@dataclass
class FakeBlob:
    data: bytes
    content_type: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    last_modified: datetime = field(default_factory=lambda: datetime.now(UTC))


class FakeBlobServiceClient:
    """In-memory stand-in for ``azure.storage.blob.BlobServiceClient``.

    Implements the method surface the adapter calls and raises real
    ``azure.core.exceptions`` types with storage error codes. ``fail_on``
    maps a method name to an exception raised on its next calls and
    ``copy_status`` is reported by every copy. ``container_options`` keeps the
    keyword arguments each container was created with.
    """

    account_url = "https://fakeaccount.blob.core.windows.net"

    def __init__(self) -> None:
        self.containers: dict[str, dict[str, FakeBlob]] = {}
        self.fail_on: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self.copy_status = "success"
        self.container_options: dict[str, dict[str, Any]] = {}

    def record(self, method: str, target: str) -> None:
        self.calls.append((method, target))
        error = self.fail_on.get(method)
        if error is not None:
            raise error

    def blobs_of(self, container: str) -> dict[str, FakeBlob]:
        try:
            return self.containers[container]
        except KeyError:
            raise azure_service_error(ResourceNotFoundError, "ContainerNotFound") from None

    def create_container(self, name: str, **kwargs: Any) -> None:
        self.record("create_container", name)
        if name in self.containers:
            raise azure_service_error(ResourceExistsError, "ContainerAlreadyExists")
        self.containers[name] = {}
        self.container_options[name] = kwargs

    def delete_container(self, name: str) -> None:
        self.record("delete_container", name)
        self.blobs_of(name)
        del self.containers[name]

    def list_containers(self) -> list[SimpleNamespace]:
        self.record("list_containers", "")
        return [SimpleNamespace(name=name) for name in sorted(self.containers)]

    def get_container_client(self, container: str) -> FakeContainerClient:
        return FakeContainerClient(self, container)

    def get_blob_client(self, container: str, blob: str) -> FakeBlobClient:
        return FakeBlobClient(self, container, blob)


class FakeContainerClient:
    def __init__(self, service: FakeBlobServiceClient, container: str) -> None:
        self._service = service
        self._container = container

    def list_blobs(self, name_starts_with: str | None = None) -> list[SimpleNamespace]:
        self._service.record("list_blobs", self._container)
        blobs = self._service.blobs_of(self._container)
        return [
            SimpleNamespace(name=name)
            for name in sorted(blobs)
            if name_starts_with is None or name.startswith(name_starts_with)
        ]


class FakeBlobClient:
    def __init__(self, service: FakeBlobServiceClient, container: str, blob: str) -> None:
        self._service = service
        self._container = container
        self._blob = blob

    @property
    def url(self) -> str:
        return f"{self._service.account_url}/{self._container}/{self._blob}"

    def _get(self) -> FakeBlob:
        blobs = self._service.blobs_of(self._container)
        try:
            return blobs[self._blob]
        except KeyError:
            raise azure_service_error(ResourceNotFoundError, "BlobNotFound") from None

    def download_blob(self) -> SimpleNamespace:
        self._service.record("download_blob", self._blob)
        data = self._get().data
        return SimpleNamespace(readall=lambda: data)

    def upload_blob(
        self,
        data: Any,
        overwrite: bool = False,
        content_settings: Any = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        self._service.record("upload_blob", self._blob)
        blobs = self._service.blobs_of(self._container)
        if not overwrite and self._blob in blobs:
            raise azure_service_error(ResourceExistsError, "BlobAlreadyExists")
        payload = data if isinstance(data, bytes) else b"".join(data)
        content_type = getattr(content_settings, "content_type", None)
        blobs[self._blob] = FakeBlob(data=payload, content_type=content_type)
        return {"etag": "fake"}

    def get_blob_properties(self) -> SimpleNamespace:
        self._service.record("get_blob_properties", self._blob)
        blob = self._get()
        return SimpleNamespace(
            name=self._blob,
            size=len(blob.data),
            last_modified=blob.last_modified,
            metadata=dict(blob.metadata),
            content_settings=SimpleNamespace(content_type=blob.content_type),
        )

    def set_blob_metadata(self, metadata: dict[str, str] | None = None) -> None:
        self._service.record("set_blob_metadata", self._blob)
        self._get().metadata = dict(metadata or {})

    def delete_blob(self) -> None:
        self._service.record("delete_blob", self._blob)
        self._get()
        del self._service.containers[self._container][self._blob]

    def start_copy_from_url(self, source_url: str) -> dict[str, Any]:
        self._service.record("start_copy_from_url", self._blob)
        container, _, blob = source_url[len(self._service.account_url) + 1 :].partition("/")
        source = FakeBlobClient(self._service, container, blob)._get()
        self._service.blobs_of(self._container)[self._blob] = replace(source)
        return {"copy_status": self._service.copy_status, "copy_id": "fake-copy"}


@pytest.fixture
def fake_blob_service() -> FakeBlobServiceClient:
    """Create an empty fake blob service."""
    return FakeBlobServiceClient()
