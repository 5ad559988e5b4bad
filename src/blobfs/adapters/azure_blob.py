"""Azure Blob Storage adapter.

Two addressing modes:

- Single-container: constructed with ``container_name``; keys are blob names.
- Multi-container: constructed without a container; every key is
  ``<container>/<blob>`` split at the first "/". Writes and renames create
  the target container on demand.

The blob-service client is created lazily by ``connect()`` so constructing
the adapter never fails on network or configuration problems.

Error handling:
    Every ``azure.core.exceptions.AzureError`` is translated at the adapter
    boundary. The service error code (``ContainerAlreadyExists``,
    ``ContainerNotFound``, ``BlobNotFound``...) is read by
    ``extract_error_code``; expected responses become normal return values,
    missing blobs become ObjectNotFoundError and everything else is wrapped
    in StorageFailureError. No retries are performed.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterator
from typing import Any

from azure.core.exceptions import AzureError
from azure.storage.blob import BlobServiceClient, ContentSettings

from blobfs.capabilities import Adapter
from blobfs.content import BytesContent, Content
from blobfs.errors import (
    InvalidKeyError,
    ObjectNotFoundError,
    ObjectStorageError,
    StorageFailureError,
)
from blobfs.tracing import traced_operation
from blobfs.util import (
    BINARY_MIME_TYPE,
    guess_mime_type,
    guess_mime_type_from_path,
    validate_key,
)

logger = logging.getLogger(__name__)

ERROR_CONTAINER_ALREADY_EXISTS = "ContainerAlreadyExists"
ERROR_CONTAINER_NOT_FOUND = "ContainerNotFound"
ERROR_BLOB_NOT_FOUND = "BlobNotFound"

KEY_DELIMITER = "/"

ClientFactory = Callable[[], BlobServiceClient]


def extract_error_code(exc: BaseException) -> str | None:
    """Extract the storage service error code from an Azure exception.

    Looks at the ``error_code`` the SDK attaches first, then falls back to
    the ``<Code>`` element of the XML error body carried by the response.

    Args:
        exc: Exception raised by the Azure SDK.

    Returns:
        The error code string, or None if it cannot be determined.
    """
    code = getattr(exc, "error_code", None)
    if code:
        return str(getattr(code, "value", code))

    response = getattr(exc, "response", None)
    if response is None:
        return None

    try:
        body = response.text()
    except (AttributeError, TypeError, ValueError, UnicodeDecodeError):
        return None
    if not body:
        return None

    try:
        root = ET.fromstring(body.lstrip("\ufeff"))
    except (ET.ParseError, ValueError):
        return None
    element = root if root.tag == "Code" else root.find("Code")
    if element is None or not element.text:
        return None
    return element.text.strip()


def split_container_key(key: str) -> tuple[str, str]:
    """Split a multi-container key into ``(container, blob)``.

    Args:
        key: Key of the form ``<container>/<blob>``.

    Returns:
        Tuple of container name and blob name.

    Raises:
        InvalidKeyError: If the key has no delimiter or an empty part.
    """
    validate_key(key)
    container, sep, blob = key.partition(KEY_DELIMITER)
    if not sep:
        raise InvalidKeyError(
            "Failed to establish container name from key, "
            "container name is required in multi-container mode",
            key=key,
        )
    if not container or not blob:
        raise InvalidKeyError(
            "Invalid key: container and blob name must both be non-empty",
            key=key,
        )
    return container, blob


class AzureBlobStorageAdapter(Adapter):
    """Adapter for Azure Blob Storage containers.

    ``rename`` copies then deletes the source. If the delete fails after the
    copy succeeded, both keys exist and StorageFailureError is raised with
    ``target_written=True``; the adapter never retries.

    Deleting an absent key raises ObjectNotFoundError.

    Capabilities: MetadataSupporter, SizeCalculator, MimeTypeProvider.
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        container_name: str | None = None,
        *,
        create: bool = False,
        detect_content_type: bool = True,
        create_container_options: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the adapter without contacting the service.

        Args:
            client_factory: Zero-argument callable returning a
                BlobServiceClient. Called once, on first use.
            container_name: Fixed container. None selects multi-container mode.
            create: Create the fixed container when connecting.
            detect_content_type: Sniff a content type on write when the
                caller does not supply one.
            create_container_options: Options passed to
                ``BlobServiceClient.create_container`` whenever the adapter
                creates a container on its own (``create=True`` or a
                multi-container write or rename).
        """
        if container_name is not None and not container_name:
            raise ValueError("container_name must be non-empty or None")
        self._client_factory = client_factory
        self._container_name = container_name
        self._multi_container_mode = container_name is None
        self._create = create
        self._detect_content_type = detect_content_type
        self._create_container_options = dict(create_container_options or {})
        self._client:BlobServiceClient | None = None
        self._connected = False

    @classmethod
    def from_connection_string(
        cls,
        connection_string: str,
        container_name: str | None = None,
        **kwargs: Any,
    ) -> AzureBlobStorageAdapter:
        """Build an adapter whose client comes from a connection string.

        The connection string is only parsed when the adapter connects.
        """

        def factory() -> BlobServiceClient:
            return BlobServiceClient.from_connection_string(connection_string)

        return cls(factory, container_name, **kwargs)

    @property
    def backend_name(self) -> str:
        return "azure_blob"

    @property
    def multi_container_mode(self) -> bool:
        return self._multi_container_mode

    @property
    def container_name(self) -> str | None:
        return self._container_name

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def create_container_options(self) -> dict[str, Any]:
        """Options used for containers the adapter creates on demand."""
        return dict(self._create_container_options)

    @create_container_options.setter
    def create_container_options(self, options: dict[str, Any]) -> None:
        self._create_container_options = dict(options)

    def connect(self) -> BlobServiceClient:
        """Create the blob-service client once and memoize it.

        In single-container mode with ``create=True`` the container is
        created here as well.

        Returns:
            The BlobServiceClient.

        Raises:
            StorageFailureError: If the client or container cannot be created.
        """
        if self._connected and self._client is not None:
            return self._client

        try:
            client = self._client_factory()
        except (AzureError, ValueError) as e:
            raise StorageFailureError.unexpected_failure(
                "connect", {"container_name": self._container_name}, e
            ) from e

        if self._create and not self._multi_container_mode:
            self._ensure_container(client, self._container_name, None)

        self._client = client
        self._connected = True
        logger.info(
            "Connected Azure blob adapter: multi_container_mode=%s container=%s",
            self._multi_container_mode,
            self._container_name,
        )
        return client

    def tokenize_key(self, key: str) -> tuple[str, str]:
        """Map a key onto ``(container, blob)`` for the current mode.

        Raises:
            InvalidKeyError: If the key is malformed for the current mode.
        """
        if self._multi_container_mode:
            return split_container_key(key)
        validate_key(key)
        assert self._container_name is not None
        return self._container_name, key

    def _ensure_container(
        self,
        client: BlobServiceClient,
        name: str,
        options: dict[str, Any] | None,
    ) -> None:
        if options is None:
            options = self._create_container_options
        try:
            client.create_container(name, **options)
        except AzureError as e:
            # Racing writers may create the same container concurrently.
            if extract_error_code(e) == ERROR_CONTAINER_ALREADY_EXISTS:
                logger.debug("Container %s already exists", name)
                return
            raise StorageFailureError.unexpected_failure(
                "create_container", {"container_name": name}, e
            ) from e
        logger.debug("Created container %s", name)

    def create_container(self, container_name: str, **options: Any) -> None:
        """Create a container; an existing container counts as success.

        Args:
            container_name: Container to create.
            **options: Passed to ``BlobServiceClient.create_container``
                (e.g. ``metadata``, ``public_access``). Without options the
                adapter's ``create_container_options`` apply.

        Raises:
            StorageFailureError: If creation fails for any other reason.
        """
        self._ensure_container(self.connect(), container_name, options or None)

    def delete_container(self, container_name: str) -> None:
        """Delete a container and every blob in it.

        Raises:
            StorageFailureError: If the container cannot be deleted.
        """
        client = self.connect()
        try:
            client.delete_container(container_name)
        except AzureError as e:
            raise StorageFailureError.unexpected_failure(
                "delete_container", {"container_name": container_name}, e
            ) from e
        logger.debug("Deleted container %s", container_name)

    def _translate(
        self,
        operation: str,
        key: str,
        arguments: dict[str, Any],
        exc: AzureError,
    ) -> ObjectStorageError:
        code = extract_error_code(exc)
        if code == ERROR_BLOB_NOT_FOUND or (
            self._multi_container_mode and code == ERROR_CONTAINER_NOT_FOUND
        ):
            return ObjectNotFoundError(key=key)
        return StorageFailureError.unexpected_failure(operation, arguments, exc)

    def _blob_properties(self, operation: str, key: str) -> Any:
        container, blob = self.tokenize_key(key)
        client = self.connect()
        try:
            return client.get_blob_client(container=container, blob=blob).get_blob_properties()
        except AzureError as e:
            raise self._translate(
                operation, key, {"container_name": container, "key": blob}, e
            ) from e

    def _guess_content_type(self, content: Content, first_chunk: bytes) -> str:
        if isinstance(content, BytesContent):
            return guess_mime_type(content.data)
        source_path = content.source_path
        if source_path is not None:
            return guess_mime_type_from_path(source_path)
        return guess_mime_type(first_chunk)

    @traced_operation("read")
    def read(self, key: str) -> bytes:
        container, blob = self.tokenize_key(key)
        client = self.connect()
        try:
            downloader = client.get_blob_client(container=container, blob=blob).download_blob()
            return bytes(downloader.readall())
        except AzureError as e:
            raise self._translate("read", key, {"container_name": container, "key": blob}, e) from e

    @traced_operation("write")
    def write(self, key: str, content: Content, content_type: str | None = None) -> int:
        """Upload content, overwriting any existing blob.

        Args:
            key: Object key.
            content: Payload; streamed chunk by chunk unless it is a buffer.
            content_type: Explicit content type. When omitted and content
                type detection is on, it is sniffed from the payload.

        Returns:
            Number of bytes written.
        """
        container, blob = self.tokenize_key(key)
        client = self.connect()

        arguments = {"container_name": container, "key": blob}
        try:
            chunks = iter(content.chunks())
            first_chunk = next(chunks, b"")
        except OSError as e:
            raise StorageFailureError.unexpected_failure("write", arguments, e) from e
        if content_type is None and self._detect_content_type:
            content_type = self._guess_content_type(content, first_chunk)

        written = 0

        def _stream() -> Iterator[bytes]:
            nonlocal written
            if first_chunk:
                written += len(first_chunk)
                yield first_chunk
            for chunk in chunks:
                written += len(chunk)
                yield chunk

        upload_kwargs: dict[str, Any] = {"overwrite": True}
        if content_type:
            upload_kwargs["content_settings"] = ContentSettings(content_type=content_type)

        try:
            if self._multi_container_mode:
                self._ensure_container(client, container, None)
            blob_client = client.get_blob_client(container=container, blob=blob)
            if isinstance(content, BytesContent):
                blob_client.upload_blob(content.data, **upload_kwargs)
                written = len(content.data)
            else:
                blob_client.upload_blob(_stream(), **upload_kwargs)
        except (AzureError, OSError) as e:
            raise StorageFailureError.unexpected_failure("write", arguments, e) from e

        logger.debug("Wrote %d bytes to container=%s blob=%s", written, container, blob)
        return written

    @traced_operation("exists")
    def exists(self, key: str) -> bool:
        container, blob = self.tokenize_key(key)
        client = self.connect()
        try:
            container_client = client.get_container_client(container)
            for item in container_client.list_blobs(name_starts_with=blob):
                if item.name == blob:
                    return True
        except AzureError as e:
            # A missing container only means a missing key when the container
            # is part of the key; a fixed container must exist.
            if self._multi_container_mode and extract_error_code(e) == ERROR_CONTAINER_NOT_FOUND:
                return False
            raise StorageFailureError.unexpected_failure(
                "exists", {"container_name": container, "key": blob}, e
            ) from e
        return False

    @traced_operation("keys")
    def keys(self) -> set[str]:
        client = self.connect()
        try:
            if self._multi_container_mode:
                result: set[str] = set()
                for container in client.list_containers():
                    name = container.name
                    result.update(
                        f"{name}{KEY_DELIMITER}{item.name}"
                        for item in client.get_container_client(name).list_blobs()
                    )
                return result

            container_client = client.get_container_client(self._container_name)
            return {item.name for item in container_client.list_blobs()}
        except AzureError as e:
            raise StorageFailureError.unexpected_failure(
                "keys",
                {
                    "multi_container_mode": self._multi_container_mode,
                    "container_name": self._container_name,
                },
                e,
            ) from e

    @traced_operation("mtime")
    def mtime(self, key: str) -> int:
        return int(self._blob_properties("mtime", key).last_modified.timestamp())

    @traced_operation("size")
    def size(self, key: str) -> int:
        return int(self._blob_properties("size", key).size)

    @traced_operation("mime_type")
    def mime_type(self, key: str) -> str:
        settings = self._blob_properties("mime_type", key).content_settings
        content_type = getattr(settings, "content_type", None)
        return content_type or BINARY_MIME_TYPE

    @traced_operation("get_metadata")
    def get_metadata(self, key: str) -> dict[str, str]:
        return dict(self._blob_properties("get_metadata", key).metadata or {})

    @traced_operation("set_metadata")
    def set_metadata(self, key: str, metadata: dict[str, str]) -> None:
        container, blob = self.tokenize_key(key)
        client = self.connect()
        try:
            client.get_blob_client(container=container, blob=blob).set_blob_metadata(
                metadata=dict(metadata)
            )
        except AzureError as e:
            raise self._translate(
                "set_metadata", key, {"container_name": container, "key": blob}, e
            ) from e

    @traced_operation("delete")
    def delete(self, key: str) -> None:
        container, blob = self.tokenize_key(key)
        client = self.connect()
        try:
            client.get_blob_client(container=container, blob=blob).delete_blob()
        except AzureError as e:
            raise self._translate(
                "delete", key, {"container_name": container, "key": blob}, e
            ) from e
        logger.debug("Deleted container=%s blob=%s", container, blob)

    @traced_operation("rename")
    def rename(self, source_key: str, target_key: str) -> None:
        source_container, source_blob = self.tokenize_key(source_key)
        target_container, target_blob = self.tokenize_key(target_key)
        client = self.connect()
        arguments: dict[str, Any] = {
            "source_container_name": source_container,
            "source_key": source_blob,
            "target_container_name": target_container,
            "target_key": target_blob,
        }

        if (source_container, source_blob) == (target_container, target_blob):
            # Copy-then-delete onto the same blob would delete the only copy.
            self._blob_properties("rename", source_key)
            logger.debug("Rename of %s onto itself is a no-op", source_key)
            return

        try:
            if self._multi_container_mode:
                self._ensure_container(client, target_container, None)
            source_client = client.get_blob_client(container=source_container, blob=source_blob)
            target_client = client.get_blob_client(container=target_container, blob=target_blob)
            copy = target_client.start_copy_from_url(source_client.url)
        except AzureError as e:
            raise self._translate("rename", source_key, arguments, e) from e

        copy_status = copy.get("copy_status") if isinstance(copy, dict) else None
        if copy_status not in (None, "success"):
            # The source stays in place until the copy is confirmed.
            raise StorageFailureError(
                f"Copy did not complete synchronously (copy_status={copy_status})",
                operation="rename",
                arguments=arguments,
            )

        try:
            source_client.delete_blob()
        except AzureError as e:
            logger.warning(
                "Rename copied %s to %s but failed to delete the source; both keys exist",
                source_key,
                target_key,
            )
            raise StorageFailureError.unexpected_failure(
                "rename", {**arguments, "target_written": True}, e
            ) from e

        logger.debug("Renamed %s to %s", source_key, target_key)

    def is_directory(self, key: str) -> bool:
        # Blob containers have no native directories.
        return False
