# backend/busdb/apps/assets/services.py

"""
Asset lifecycle for record images.

Rules:
- A record points at no more than one live blob through its image field.
- Replacing an image stores the new blob first, then persists the record,
  then reclaims the previous blob. A crash in between can leak the old blob
  but never leaves the record pointing at a deleted one.
- The previous blob is reclaimed exactly once, and only when it was set
  and differs from the new reference.
- Reclaiming a blob that is already gone is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import PurePosixPath
import re
from typing import Callable, Optional

from fastapi import Depends

from busdb.errors import InvalidUpload, OrphanedBlob, TransientError
from busdb.utils.identifiers import new_blob_name
from .storage import BlobStore, LocalBlobStore, get_blob_store

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".webp"}
IMAGE_MAX_BYTES = int(os.getenv("BUSDB_IMAGE_MAX_BYTES", "0") or "0")

_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9_-]")


@dataclass(frozen=True)
class ImageUpload:
    filename: str
    data: bytes
    content_type: Optional[str] = None


class AssetLifecycleManager:
    def __init__(self, blobs: BlobStore, *, max_bytes: int = IMAGE_MAX_BYTES) -> None:
        self.blobs = blobs
        self.max_bytes = max_bytes

    def _validate(self, upload: ImageUpload) -> str:
        ext = PurePosixPath(upload.filename or "").suffix.lower()
        if ext not in ALLOWED_IMAGE_EXTS:
            raise InvalidUpload(
                "Image must be one of: " + ", ".join(sorted(ALLOWED_IMAGE_EXTS))
            )
        if not upload.data:
            raise InvalidUpload("Image file is empty.")
        if self.max_bytes and len(upload.data) > self.max_bytes:
            raise InvalidUpload("Image exceeds maximum file size.")
        return ext

    def blob_path(self, collection: str, key: str, ext: str) -> str:
        safe_key = _UNSAFE_SEGMENT.sub("_", key)
        return f"{collection}/{safe_key}/{new_blob_name()}{ext}"

    def replace_image(
        self,
        record: dict,
        upload: ImageUpload,
        *,
        collection: str,
        key: str,
        persist: Callable[[dict], None],
        field: str = "image_url",
    ) -> str:
        """
        Store `upload`, point `record[field]` at it through `persist`, then
        reclaim the previous blob. Returns the new reference.
        """
        ext = self._validate(upload)
        previous = record.get(field)

        url = self.blobs.put(self.blob_path(collection, key, ext), upload.data)
        try:
            persist({**record, field: url})
        except Exception:
            # The record never pointed at the new blob; drop it and re-raise.
            try:
                self.blobs.delete(url)
            except TransientError:
                logger.warning("Could not remove unused blob", extra={"url": url})
            raise

        logger.info(
            "Image replaced",
            extra={"collection": collection, "key": key, "url": url, "previous": previous},
        )
        self.reconcile(previous, url)
        return url

    def reconcile(self, previous: Optional[str], current: Optional[str]) -> None:
        """Reclaim `previous` after the record moved on to `current`."""
        if previous and previous != current:
            self.reclaim(previous)

    def reclaim(self, reference: Optional[str]) -> None:
        if not reference:
            return
        try:
            self.blobs.delete(reference)
        except TransientError as exc:
            logger.warning("Blob reclamation failed", extra={"reference": reference})
            raise OrphanedBlob(reference, exc) from exc
        logger.info("Blob reclaimed", extra={"reference": reference})


def get_asset_manager(blobs: LocalBlobStore = Depends(get_blob_store)) -> AssetLifecycleManager:
    """FastAPI dependency."""
    return AssetLifecycleManager(blobs)
