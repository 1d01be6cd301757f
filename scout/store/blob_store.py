"""
Versioned blob storage.

Two write modes:
- ``write_immutable``: create-only; an existing object is never replaced and
  the attempt raises BlobExistsError
- ``write_pointer``: overwrite, atomically, so readers always see either the
  previous or the new content

``LocalBlobStore`` keeps objects under a root directory and addresses them
with ``file://`` URLs.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

logger = logging.getLogger(__name__)


class BlobStoreError(Exception):
    """Raised when a blob cannot be read or written."""
    pass


class BlobExistsError(BlobStoreError):
    """Raised when an immutable blob already exists."""
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Blob already exists and is immutable: {path}")


def encode_json(data: Any) -> bytes:
    return (json.dumps(data, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


class BlobStore(ABC):
    """Blob storage interface."""

    @abstractmethod
    def url_for(self, path: str) -> str:
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    def write_immutable(self, path: str, data: bytes) -> str:
        """Create a blob; raises BlobExistsError if it exists. Returns its URL."""
        pass

    @abstractmethod
    def write_pointer(self, path: str, data: bytes) -> str:
        """Create or replace a blob. Returns its URL."""
        pass

    @abstractmethod
    def read(self, url: str) -> bytes:
        """Read a blob by URL; raises BlobStoreError if missing."""
        pass

    def read_path(self, path: str) -> bytes:
        return self.read(self.url_for(path))

    def write_json_immutable(self, path: str, data: Any) -> str:
        return self.write_immutable(path, encode_json(data))

    def write_json_pointer(self, path: str, data: Any) -> str:
        return self.write_pointer(path, encode_json(data))

    def read_json(self, url: str) -> Any:
        raw = self.read(url)
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BlobStoreError(f"Invalid JSON at {url}: {e}") from e


class LocalBlobStore(BlobStore):
    """Filesystem-backed blob store."""

    def __init__(self, root: str):
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path.lstrip("/")).resolve()
        if target != self.root and self.root not in target.parents:
            raise BlobStoreError(f"Path escapes store root: {path}")
        return target

    def url_for(self, path: str) -> str:
        return self._resolve(path).as_uri()

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def write_immutable(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(target, "xb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
        except FileExistsError:
            raise BlobExistsError(path) from None
        except OSError as e:
            raise BlobStoreError(f"Failed to write {path}: {e}") from e
        logger.debug(f"Wrote immutable blob {path} ({len(data)} bytes)")
        return target.as_uri()

    def write_pointer(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", dir=str(target.parent))
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, target)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise BlobStoreError(f"Failed to write {path}: {e}") from e
        logger.debug(f"Wrote pointer blob {path} ({len(data)} bytes)")
        return target.as_uri()

    def read(self, url: str) -> bytes:
        parsed = urlparse(url)
        if parsed.scheme == "file":
            target = Path(unquote(parsed.path)).resolve()
            if target != self.root and self.root not in target.parents:
                raise BlobStoreError(f"URL outside store root: {url}")
        elif not parsed.scheme:
            target = self._resolve(url)
        else:
            raise BlobStoreError(f"Unsupported URL scheme for local store: {url}")

        try:
            return target.read_bytes()
        except FileNotFoundError:
            raise BlobStoreError(f"Blob not found: {url}") from None
        except OSError as e:
            raise BlobStoreError(f"Failed to read {url}: {e}") from e
