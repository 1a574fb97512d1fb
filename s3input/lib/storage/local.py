"""Local filesystem object store.

Each bucket is a directory under a root directory and object keys are
POSIX paths relative to it. Useful for development and tests.
"""

from __future__ import annotations

import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Union

from s3input.lib.errors import ObjectFetchError, ObjectStoreError
from s3input.lib.storage.base import ObjectRef, ObjectStore

logger = logging.getLogger(__name__)

__all__ = ["LocalObjectStore"]


class LocalObjectStore(ObjectStore):
    """Object store over the local filesystem.

    Example:
        >>> store = LocalObjectStore("./buckets", "logs")
        >>> store.put("app/20250115/a.log", b"line\\n")
        >>> [ref.key for ref in store.list_objects("app/")]
        ['app/20250115/a.log']
    """

    def __init__(self, root: Union[str, Path], bucket: str) -> None:
        super().__init__(bucket)
        self.root = Path(root)

    @property
    def scheme(self) -> str:
        return "local"

    def _bucket_dir(self, name: Optional[str] = None) -> Path:
        return self.root / (name or self.bucket)

    def _object_path(self, key: str, bucket: Optional[str] = None) -> Path:
        return self._bucket_dir(bucket) / key

    def put(
        self,
        key: str,
        data: bytes,
        last_modified: Optional[datetime] = None,
    ) -> ObjectRef:
        """Write an object, optionally pinning its modification time."""
        path = self._object_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        if last_modified is not None:
            ts = last_modified.timestamp()
            os.utime(path, (ts, ts))
        return self._ref(path, self._bucket_dir())

    def _ref(self, path: Path, base: Path) -> ObjectRef:
        stat = path.stat()
        return ObjectRef(
            key=path.relative_to(base).as_posix(),
            last_modified=datetime.fromtimestamp(stat.st_mtime, timezone.utc),
            size=stat.st_size,
        )

    def list_objects(self, prefix: str = "") -> List[ObjectRef]:
        base = self._bucket_dir()
        if not base.is_dir():
            raise ObjectStoreError(
                "Bucket directory does not exist",
                bucket=self.bucket,
                operation="list",
                details={"path": str(base)},
            )

        refs: List[ObjectRef] = []
        for path in base.rglob("*"):
            if not path.is_file():
                continue
            key = path.relative_to(base).as_posix()
            if key.startswith(prefix):
                refs.append(self._ref(path, base))

        return sorted(refs, key=lambda r: r.key)

    def read(self, key: str) -> bytes:
        path = self._object_path(key)
        try:
            return path.read_bytes()
        except OSError as e:
            raise ObjectFetchError(
                "Failed to read object", bucket=self.bucket, key=key, cause=e
            ) from e

    def read_streaming(self, key: str, chunk_size: int = 1024 * 1024) -> Iterator[bytes]:
        path = self._object_path(key)
        try:
            with open(path, "rb") as f:
                while True:
                    chunk = f.read(chunk_size)
                    if not chunk:
                        break
                    yield chunk
        except OSError as e:
            raise ObjectFetchError(
                "Failed to stream object", bucket=self.bucket, key=key, cause=e
            ) from e

    def copy(self, key: str, dest_bucket: str, dest_key: str) -> None:
        src = self._object_path(key)
        dst = self._object_path(dest_key, dest_bucket)
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)
        except OSError as e:
            raise ObjectStoreError(
                f"Failed to copy object to {dest_bucket}/{dest_key}",
                bucket=self.bucket,
                key=key,
                operation="copy",
                cause=e,
            ) from e
        logger.info("Copied %s to %s", src, dst)

    def delete(self, key: str) -> None:
        path = self._object_path(key)
        try:
            path.unlink()
        except OSError as e:
            raise ObjectStoreError(
                "Failed to delete object",
                bucket=self.bucket,
                key=key,
                operation="delete",
                cause=e,
            ) from e
        logger.info("Deleted %s", path)

    def bucket_exists(self, name: str) -> bool:
        return self._bucket_dir(name).is_dir()

    def create_bucket(self, name: str) -> None:
        self._bucket_dir(name).mkdir(parents=True, exist_ok=True)
        logger.info("Created bucket directory %s", self._bucket_dir(name))

    def uri(self, key: str = "") -> str:
        return str(self._object_path(key))
