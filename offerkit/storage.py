"""
Blob storage for uploaded logos, generated mockups and archived offers.

Objects live in named buckets and are addressed by file name. A store writes
bytes and resolves a stored path to a public URL; it has no other
operations. Failures surface as PersistError.
"""

import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Tuple
from urllib.parse import quote

from loguru import logger

from offerkit.errors import NotFoundError, PersistError


class BlobStore(ABC):
    """Create/read object store keyed by bucket and file name"""

    @abstractmethod
    def upload(self, bucket: str, file_name: str, data: bytes,
               content_type: Optional[str] = None, upsert: bool = False) -> str:
        """Store ``data`` and return its storage path within the bucket."""

    @abstractmethod
    def public_url(self, bucket: str, path: str) -> str:
        """Resolve a storage path to a publicly retrievable URL."""

    def upload_and_get_url(self, bucket: str, file_name: str, data: bytes,
                           content_type: Optional[str] = None, upsert: bool = False) -> str:
        path = self.upload(bucket, file_name, data, content_type=content_type, upsert=upsert)
        return self.public_url(bucket, path)


def _check_name(bucket: str, file_name: str):
    for part in (bucket, file_name):
        if not part or '/' in part or '\\' in part or part in ('.', '..'):
            raise PersistError(
                f"Invalid storage key: {bucket!r}/{file_name!r}",
                details={'bucket': bucket, 'file_name': file_name}
            )


class LocalBlobStore(BlobStore):
    """Stores objects as files under ``root/<bucket>/<file_name>``."""

    def __init__(self, root: str, base_url: str = "http://localhost:5000"):
        self.root = Path(root)
        self.base_url = base_url.rstrip('/')

    def upload(self, bucket, file_name, data, content_type=None, upsert=False):
        _check_name(bucket, file_name)
        target = self.root / bucket / file_name

        if target.exists() and not upsert:
            raise PersistError(
                f"Object already exists: {bucket}/{file_name}",
                details={'bucket': bucket, 'file_name': file_name},
                suggestions=["Use a new file name or upload with upsert enabled"]
            )

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_name(target.name + '.part')
            tmp.write_bytes(data)
            tmp.replace(target)
        except OSError as e:
            raise PersistError(f"Failed to write {bucket}/{file_name}: {e}",
                               details={'bucket': bucket, 'file_name': file_name})

        logger.debug(f"Stored {len(data):,} bytes at {target}")
        return file_name

    def public_url(self, bucket, path):
        return f"{self.base_url}/storage/{quote(bucket)}/{quote(path)}"

    def resolve_path(self, bucket: str, path: str) -> Path:
        """Filesystem location of a stored object; NotFoundError if absent."""
        _check_name(bucket, path)
        target = self.root / bucket / path
        if not target.is_file():
            raise NotFoundError(f"No stored object {bucket}/{path}",
                                details={'bucket': bucket, 'path': path})
        return target


class MemoryBlobStore(BlobStore):
    """Dictionary-backed store. ``fail_buckets`` makes uploads to those buckets fail."""

    def __init__(self, base_url: str = "memory://blobs", fail_buckets=()):
        self.base_url = base_url.rstrip('/')
        self.fail_buckets = set(fail_buckets)
        self.objects: Dict[Tuple[str, str], Tuple[bytes, Optional[str]]] = {}
        self._lock = threading.Lock()

    def upload(self, bucket, file_name, data, content_type=None, upsert=False):
        _check_name(bucket, file_name)
        if bucket in self.fail_buckets:
            raise PersistError(f"Upload to {bucket} refused", details={'bucket': bucket})

        with self._lock:
            if (bucket, file_name) in self.objects and not upsert:
                raise PersistError(f"Object already exists: {bucket}/{file_name}",
                                   details={'bucket': bucket, 'file_name': file_name})
            self.objects[(bucket, file_name)] = (bytes(data), content_type)
        return file_name

    def public_url(self, bucket, path):
        return f"{self.base_url}/{bucket}/{path}"

    def get(self, bucket: str, path: str) -> bytes:
        try:
            return self.objects[(bucket, path)][0]
        except KeyError:
            raise NotFoundError(f"No stored object {bucket}/{path}")

    def keys(self, bucket: str = None):
        return sorted(name for b, name in self.objects if bucket is None or b == bucket)
