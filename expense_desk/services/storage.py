# expense_desk/services/storage.py
"""
Receipt object storage.

The service only needs three calls from its object store: put, get, delete.
`LocalReceiptStorage` keeps objects on the filesystem under
``RECEIPT_STORAGE_DIR`` with a small JSON sidecar holding the content type.
Backend failures surface as `StorageError`.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterator, Optional

from expense_desk import config
from expense_desk.errors import StorageError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass
class StoredObject:
    content_type: str
    content_length: int
    body: Iterator[bytes]


class ReceiptStorage:
    """Interface of a receipt object store bound to one bucket."""

    bucket: str = "receipts"

    def put(self, key: str, data: bytes, content_type: str) -> None:
        raise NotImplementedError

    def get(self, key: str) -> Optional[StoredObject]:
        """Return the object, or None when the key does not exist."""
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


def _iter_file(path: Path) -> Iterator[bytes]:
    # opened on first iteration, so an unconsumed body holds no file handle
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


class LocalReceiptStorage(ReceiptStorage):
    def __init__(self, root: Path, bucket: str):
        self.root = Path(root)
        self.bucket = bucket

    def _path_for(self, key: str) -> Path:
        base = (self.root / self.bucket).resolve()
        path = (base / key).resolve()
        if base not in path.parents:
            raise StorageError(f"Storage key escapes the bucket: {key!r}")
        return path

    @staticmethod
    def _meta_path(path: Path) -> Path:
        return path.with_name(path.name + ".meta.json")

    def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            self._meta_path(path).write_text(json.dumps({"content_type": content_type}))
        except OSError as exc:
            raise StorageError(f"Could not store {key}") from exc
        logger.debug("Stored receipt object %s/%s (%d bytes)", self.bucket, key, len(data))

    def get(self, key: str) -> Optional[StoredObject]:
        path = self._path_for(key)
        if not path.is_file():
            return None
        try:
            meta_path = self._meta_path(path)
            meta = json.loads(meta_path.read_text()) if meta_path.is_file() else {}
            size = path.stat().st_size
        except (OSError, ValueError) as exc:
            raise StorageError(f"Could not read {key}") from exc
        return StoredObject(
            content_type=meta.get("content_type") or "application/octet-stream",
            content_length=size,
            body=_iter_file(path),
        )

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
            self._meta_path(path).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Could not delete {key}") from exc


@lru_cache(maxsize=1)
def get_storage() -> ReceiptStorage:
    storage = LocalReceiptStorage(config.receipt_storage_dir(), config.receipt_storage_bucket())
    logger.info("Receipt storage: %s (bucket=%s)", storage.root, storage.bucket)
    return storage
