"""Partition assignment across cooperating executors.

Each candidate key hashes to one of ``total_executors`` partitions; an
executor only processes keys that land in its own slot. The hash is a
pure function of the key's content, so every process in a fleet (and
every restart) agrees on the assignment without coordination.
"""

from __future__ import annotations

import hashlib
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Type

logger = logging.getLogger(__name__)

__all__ = [
    "KeyHasher",
    "Polynomial31Hasher",
    "Md5Hasher",
    "Partitioner",
    "HASHERS",
    "get_hasher",
]


class KeyHasher(ABC):
    """Stable, content-deterministic string hash."""

    name: str = ""

    @abstractmethod
    def __call__(self, key: str) -> int:
        """Return a non-negative integer hash of key."""


class Polynomial31Hasher(KeyHasher):
    """``h = h * 31 + code_point`` over the key, without overflow.

    Matches the assignment used by earlier deployments of this input,
    so mixed fleets split keys the same way.
    """

    name = "polynomial31"

    def __call__(self, key: str) -> int:
        value = 0
        for char in key:
            value = value * 31 + ord(char)
        return value


class Md5Hasher(KeyHasher):
    """First 8 bytes of the key's MD5 digest, big-endian."""

    name = "md5"

    def __call__(self, key: str) -> int:
        digest = hashlib.md5(key.encode("utf-8")).digest()
        return int.from_bytes(digest[:8], "big")


HASHERS: Dict[str, Type[KeyHasher]] = {
    Polynomial31Hasher.name: Polynomial31Hasher,
    Md5Hasher.name: Md5Hasher,
}


def get_hasher(name: str) -> KeyHasher:
    """Look up a hash function by name.

    Raises:
        KeyError: If no hasher is registered under name
    """
    try:
        return HASHERS[name]()
    except KeyError:
        valid = ", ".join(sorted(HASHERS))
        raise KeyError(f"Unknown hash function '{name}'. Valid options: {valid}") from None


class Partitioner:
    """Decides which keys belong to this executor.

    Args:
        total_executors: Fleet size (>= 1)
        executor_slot: This executor's partition (0 when no identity is set)
        hasher: Hash function; defaults to Polynomial31Hasher

    Example:
        >>> p = Partitioner(total_executors=4, executor_slot=1)
        >>> p.partition_for("abc")  # (97 * 31 + 98) * 31 + 99 = 96354
        2
        >>> p.is_local("abc")
        False
    """

    def __init__(
        self,
        total_executors: int = 1,
        executor_slot: int = 0,
        hasher: Optional[KeyHasher] = None,
    ) -> None:
        if total_executors < 1:
            raise ValueError(f"total_executors must be >= 1, got {total_executors}")
        if not 0 <= executor_slot < total_executors:
            raise ValueError(
                f"executor_slot must be in [0, {total_executors}), got {executor_slot}"
            )
        self.total_executors = total_executors
        self.executor_slot = executor_slot
        self.hasher = hasher or Polynomial31Hasher()

    def partition_for(self, key: str) -> int:
        return self.hasher(key) % self.total_executors

    def is_local(self, key: str) -> bool:
        if self.total_executors == 1:
            return True
        return self.partition_for(key) == self.executor_slot

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(total_executors={self.total_executors}, "
            f"executor_slot={self.executor_slot}, hasher={self.hasher.name!r})"
        )
