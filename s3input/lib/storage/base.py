"""Abstract base class for object stores.

Defines the narrow interface the discovery and processing engine
consumes: listing, reading, relocating and deleting objects, plus
bucket existence checks for startup.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List

logger = logging.getLogger(__name__)

__all__ = ["ObjectRef", "ObjectStore"]


@dataclass(frozen=True)
class ObjectRef:
    """Snapshot of a remote object taken from a listing call.

    May be stale by the time the object is fetched.
    """

    key: str
    last_modified: datetime
    size: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "key": self.key,
            "last_modified": self.last_modified.isoformat(),
            "size": self.size,
        }


class ObjectStore(ABC):
    """Abstract base class for bucket-style object stores.

    An instance is bound to one source bucket. Relocation targets name
    their destination bucket explicitly.

    Subclasses must implement all abstract methods.
    """

    def __init__(self, bucket: str) -> None:
        self.bucket = bucket

    @property
    @abstractmethod
    def scheme(self) -> str:
        """Return the URI scheme for this store (e.g., 's3', 'local')."""

    @abstractmethod
    def list_objects(self, prefix: str = "") -> List[ObjectRef]:
        """List every object whose key starts with prefix.

        Args:
            prefix: Literal key prefix (not a pattern)

        Returns:
            ObjectRefs in store order; empty list when nothing matches
        """

    @abstractmethod
    def read(self, key: str) -> bytes:
        """Read an object's full content into memory."""

    @abstractmethod
    def read_streaming(self, key: str, chunk_size: int = 1024 * 1024) -> Iterator[bytes]:
        """Yield an object's content in chunks.

        Args:
            key: Object key
            chunk_size: Maximum bytes per chunk
        """

    @abstractmethod
    def copy(self, key: str, dest_bucket: str, dest_key: str) -> None:
        """Copy an object, leaving the source in place."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete an object from the source bucket."""

    @abstractmethod
    def bucket_exists(self, name: str) -> bool:
        """Check whether a bucket exists."""

    @abstractmethod
    def create_bucket(self, name: str) -> None:
        """Create a bucket."""

    def move(self, key: str, dest_bucket: str, dest_key: str) -> None:
        """Move an object so it no longer exists in the source bucket.

        Default implementation copies then deletes. Not transactional: a
        failure between the two leaves the object in both places.
        """
        self.copy(key, dest_bucket, dest_key)
        if dest_bucket == self.bucket and dest_key == key:
            return
        self.delete(key)

    def uri(self, key: str = "") -> str:
        return f"{self.scheme}://{self.bucket}/{key}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(bucket={self.bucket!r})"
