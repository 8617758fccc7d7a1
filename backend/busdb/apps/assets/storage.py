# backend/busdb/apps/assets/storage.py

"""
Blob storage for record images.

`BlobStore` is the contract: `put(path, data) -> url` and `delete(url)`.
`LocalBlobStore` keeps files below one upload directory and hands out URLs
under a public base URL that the web server maps onto that directory.

Environment:
  BUSDB_BLOB_DIR=/var/lib/busdb/uploads
  BUSDB_BLOB_BASE_URL=/media
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Protocol

from busdb.errors import InvalidUpload, TransientError

logger = logging.getLogger(__name__)

BLOB_DIR = os.getenv("BUSDB_BLOB_DIR", "uploads")
BLOB_BASE_URL = os.getenv("BUSDB_BLOB_BASE_URL", "/media")


class BlobStore(Protocol):
    def put(self, path: str, data: bytes) -> str:
        ...

    def delete(self, url: str) -> None:
        ...


class LocalBlobStore:
    def __init__(self, root: str | Path = BLOB_DIR, base_url: str = BLOB_BASE_URL) -> None:
        self.root = Path(root).resolve()
        self.base_url = base_url.rstrip("/")

    def _resolve(self, relative: str) -> Optional[Path]:
        resolved = (self.root / relative).resolve()
        if self.root not in resolved.parents:
            return None
        return resolved

    def _ensure_safe_path(self, relative: str) -> Path:
        resolved = self._resolve(relative)
        if resolved is None:
            raise InvalidUpload(f"Blob path escapes the upload directory: {relative!r}")
        return resolved

    def _path_for_url(self, url: str) -> Optional[Path]:
        prefix = f"{self.base_url}/"
        if not url.startswith(prefix):
            return None
        return self._resolve(url[len(prefix):])

    def put(self, path: str, data: bytes) -> str:
        dest = self._ensure_safe_path(path)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(data)
        except OSError as exc:
            logger.warning("Blob write failed", extra={"path": path, "error": str(exc)})
            raise TransientError(f"Blob store unavailable while writing {path}.") from exc
        return f"{self.base_url}/{dest.relative_to(self.root).as_posix()}"

    def delete(self, url: str) -> None:
        """
        Remove the blob behind `url`. Missing blobs and URLs outside the
        upload directory are ignored.
        """
        path = self._path_for_url(url)
        if path is None:
            logger.info("Ignoring delete of foreign blob URL", extra={"url": url})
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Blob delete failed", extra={"url": url, "error": str(exc)})
            raise TransientError(f"Blob store unavailable while deleting {url}.") from exc


def get_blob_store() -> LocalBlobStore:
    """FastAPI dependency."""
    return LocalBlobStore()
