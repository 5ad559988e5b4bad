"""blobfs error types.

Every adapter raises into this taxonomy at its boundary; no backend-native
exception type escapes an adapter method.

- InvalidKeyError: key fails a structural precondition (raised before any
  backend call).
- ObjectNotFoundError: the key does not exist for an operation that needs it.
- StorageFailureError: any unexpected backend failure, wrapped with the
  attempted operation and its arguments.
"""

from __future__ import annotations

from typing import Any


class ObjectStorageError(Exception):
    """Base exception for blobfs storage operations.

    Attributes:
        message: Human-readable error message.
        key: Object key associated with the operation (if applicable).
    """

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.key = key

    def __str__(self) -> str:
        parts = [self.message]
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class InvalidKeyError(ObjectStorageError):
    """Raised when a key does not satisfy an adapter's key format.

    Never wraps a backend error: it is raised before the backend is touched.
    """

    def __init__(
        self,
        message: str = "Invalid key",
        *,
        key: str | None = None,
    ) -> None:
        super().__init__(message, key=key)


class PathTraversalError(InvalidKeyError):
    """Raised when a key would escape a local storage directory.

    Keys like "../x", absolute paths or keys with backslashes or null bytes.
    """

    def __init__(
        self,
        message: str = "Invalid key: path traversal detected",
        *,
        key: str | None = None,
    ) -> None:
        super().__init__(message, key=key)


class ObjectNotFoundError(ObjectStorageError):
    """Raised when the requested key does not exist."""

    def __init__(
        self,
        message: str = "Object not found",
        *,
        key: str | None = None,
    ) -> None:
        super().__init__(message, key=key)


class StorageFailureError(ObjectStorageError):
    """Raised when the storage backend cannot complete an operation.

    Wraps the backend-native exception as ``cause`` and records the attempted
    operation name and its arguments for diagnostics.

    Attributes:
        operation: Adapter operation that failed (e.g. "write").
        arguments: Argument values of the failed call (keys, container names).
        cause: Original backend exception.
    """

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        operation: str,
        arguments: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        arguments = dict(arguments or {})
        key = arguments.get("key")
        super().__init__(message, key=key if isinstance(key, str) else None)
        self.operation = operation
        self.arguments = arguments
        self.cause = cause

    def __str__(self) -> str:
        parts = [self.message, f"operation={self.operation}"]
        parts.extend(f"{name}={value!r}" for name, value in self.arguments.items())
        return " ".join(parts)

    @classmethod
    def unexpected_failure(
        cls,
        operation: str,
        arguments: dict[str, Any],
        cause: BaseException,
    ) -> StorageFailureError:
        """Build the error for an unexpected backend failure.

        Callers raise the result ``from cause`` so the traceback keeps the
        backend exception.

        Args:
            operation: Adapter operation name.
            arguments: Arguments passed to the operation.
            cause: Backend-native exception.

        Returns:
            StorageFailureError describing the failure.
        """
        return cls(
            f"Unexpected failure during {operation}: {type(cause).__name__}: {cause}",
            operation=operation,
            arguments=arguments,
            cause=cause,
        )


class ContentConsumedError(ObjectStorageError):
    """Raised when stream-backed content is consumed a second time.

    An open stream is read exactly once; the content cannot be replayed.
    """

    def __init__(self, message: str = "Stream content has already been consumed") -> None:
        super().__init__(message)
