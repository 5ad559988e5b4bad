"""Local filesystem storage adapter.

Provides local disk storage with:
- Path traversal protection
- Atomic writes (temporary file + replace)
- Hierarchical listing (directories derived from the tree)

Environment Variables:
    BLOBFS_LOCAL_BASE_DIR: Base directory for storage
        (default: tempfile.gettempdir() / blobfs_objects)
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import uuid
from pathlib import Path

from blobfs.capabilities import Adapter
from blobfs.content import Content
from blobfs.errors import ObjectNotFoundError, PathTraversalError, StorageFailureError
from blobfs.models import ListKeysResult
from blobfs.tracing import traced_operation
from blobfs.util import guess_mime_type_from_path

logger = logging.getLogger(__name__)

BLOBFS_LOCAL_BASE_DIR_ENV = "BLOBFS_LOCAL_BASE_DIR"

_SAFE_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_\-./ ]+$")
_TMP_SUFFIX = ".blobfs.tmp"


def _is_path_traversal(key: str) -> bool:
    """Check if a key is unsafe as a relative path.

    Detects:
    - Empty keys and empty, "." or ".." segments
    - Absolute paths (starting with / or ~, or drive letters like C:)
    - Backslashes and null bytes
    - Characters outside the safe set
    """
    if not key or "\x00" in key or "\\" in key:
        return True
    if key.startswith(("/", "~")):
        return True
    if len(key) >= 2 and key[1] == ":":
        return True
    if any(segment in ("", ".", "..") for segment in key.split("/")):
        return True
    return not bool(_SAFE_KEY_PATTERN.match(key))


class LocalAdapter(Adapter):
    """Adapter storing each key as a file below a base directory.

    Keys are "/"-separated relative paths. Deleting an absent key raises
    ObjectNotFoundError. ``rename`` uses ``os.replace`` and is atomic on a
    single filesystem.

    Capabilities: SizeCalculator, ListKeysAware, MimeTypeProvider.
    """

    def __init__(self, base_dir: str | Path | None = None, *, create: bool = True) -> None:
        """Initialize local storage.

        Args:
            base_dir: Base directory for storage. If None, uses
                BLOBFS_LOCAL_BASE_DIR env var or the OS temp directory.
            create: Create the base directory on first write if missing.
        """
        if base_dir is None:
            base_dir = os.environ.get(BLOBFS_LOCAL_BASE_DIR_ENV)

        if base_dir is None:
            base_dir = Path(tempfile.gettempdir()) / "blobfs_objects"
        else:
            base_dir = Path(base_dir)

        self._base_dir = base_dir.resolve()
        self._create = create
        logger.debug("LocalAdapter initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        return "local"

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _path_for(self, key: str) -> Path:
        """Map a key to a path inside the base directory, validating it."""
        if not isinstance(key, str) or _is_path_traversal(key):
            raise PathTraversalError(
                message="Invalid key: path traversal or unsafe characters detected",
                key=key if isinstance(key, str) else None,
            )
        path = self._base_dir / key
        try:
            path.resolve().relative_to(self._base_dir)
        except ValueError as e:
            raise PathTraversalError(
                message="Path resolves outside storage base directory",
                key=key,
            ) from e
        return path

    def _key_for(self, path: Path) -> str:
        return path.relative_to(self._base_dir).as_posix()

    def _file_for(self, key: str) -> Path:
        path = self._path_for(key)
        if not path.is_file():
            raise ObjectNotFoundError(key=key)
        return path

    def _ensure_base_dir(self) -> None:
        if self._base_dir.is_dir():
            return
        if not self._create:
            raise StorageFailureError(
                "Base directory does not exist",
                operation="write",
                arguments={"base_dir": str(self._base_dir)},
            )
        self._base_dir.mkdir(parents=True, exist_ok=True)

    @traced_operation("exists")
    def exists(self, key: str) -> bool:
        return self._path_for(key).is_file()

    @traced_operation("read")
    def read(self, key: str) -> bytes:
        path = self._file_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise ObjectNotFoundError(key=key) from None
        except OSError as e:
            raise StorageFailureError.unexpected_failure("read", {"key": key}, e) from e

    @traced_operation("write")
    def write(self, key: str, content: Content) -> int:
        """Write content atomically, streaming chunks to a temporary file."""
        path = self._path_for(key)
        tmp_file = path.with_name(f".{path.name}.{uuid.uuid4().hex}{_TMP_SUFFIX}")
        written = 0
        try:
            self._ensure_base_dir()
            path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_file.open("wb") as fh:
                for chunk in content.chunks():
                    fh.write(chunk)
                    written += len(chunk)
            tmp_file.replace(path)
        except OSError as e:
            tmp_file.unlink(missing_ok=True)
            raise StorageFailureError.unexpected_failure("write", {"key": key}, e) from e
        except BaseException:
            # Content errors and interrupts must not leave partial files.
            tmp_file.unlink(missing_ok=True)
            raise

        logger.debug("Wrote %d bytes to key=%s", written, key)
        return written

    @traced_operation("delete")
    def delete(self, key: str) -> None:
        path = self._file_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            raise ObjectNotFoundError(key=key) from None
        except OSError as e:
            raise StorageFailureError.unexpected_failure("delete", {"key": key}, e) from e
        logger.debug("Deleted key=%s", key)

    @traced_operation("rename")
    def rename(self, source_key: str, target_key: str) -> None:
        source = self._file_for(source_key)
        target = self._path_for(target_key)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(source, target)
        except OSError as e:
            raise StorageFailureError.unexpected_failure(
                "rename",
                {"source_key": source_key, "target_key": target_key},
                e,
            ) from e
        logger.debug("Renamed key=%s to key=%s", source_key, target_key)

    def _walk(self) -> tuple[list[str], list[str]]:
        """Return (file keys, directory keys) below the base directory."""
        files: list[str] = []
        dirs: list[str] = []
        if not self._base_dir.is_dir():
            return files, dirs

        def _raise(error: OSError) -> None:
            raise error

        for root, dirnames, filenames in os.walk(self._base_dir, onerror=_raise):
            root_path = Path(root)
            dirs.extend(self._key_for(root_path / name) for name in dirnames)
            files.extend(
                self._key_for(root_path / name)
                for name in filenames
                if not name.endswith(_TMP_SUFFIX)
            )
        return files, dirs

    @traced_operation("keys")
    def keys(self) -> set[str]:
        try:
            files, _ = self._walk()
        except OSError as e:
            raise StorageFailureError.unexpected_failure("keys", {}, e) from e
        return set(files)

    @traced_operation("mtime")
    def mtime(self, key: str) -> int:
        path = self._file_for(key)
        try:
            return int(path.stat().st_mtime)
        except OSError as e:
            raise StorageFailureError.unexpected_failure("mtime", {"key": key}, e) from e

    @traced_operation("size")
    def size(self, key: str) -> int:
        path = self._file_for(key)
        try:
            return path.stat().st_size
        except OSError as e:
            raise StorageFailureError.unexpected_failure("size", {"key": key}, e) from e

    @traced_operation("mime_type")
    def mime_type(self, key: str) -> str:
        path = self._file_for(key)
        try:
            return guess_mime_type_from_path(path)
        except OSError as e:
            raise StorageFailureError.unexpected_failure("mime_type", {"key": key}, e) from e

    def is_directory(self, key: str) -> bool:
        return self._path_for(key).is_dir()

    @traced_operation("list_keys")
    def list_keys(self, prefix: str = "") -> ListKeysResult:
        """List files and directories whose relative path starts with ``prefix``."""
        try:
            files, dirs = self._walk()
        except OSError as e:
            raise StorageFailureError.unexpected_failure("list_keys", {"prefix": prefix}, e) from e
        return ListKeysResult.of(
            keys=(k for k in files if k.startswith(prefix)),
            dirs=(d for d in dirs if d.startswith(prefix)),
        )
