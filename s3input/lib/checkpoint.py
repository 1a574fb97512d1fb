"""Checkpoint persistence for incremental listing.

The checkpoint is a single "last processed timestamp" watermark scoped
to one (bucket, prefix, executor) combination. Objects modified at or
before it are never selected again by the same scope.

The value is stored as one human-readable timestamp in a text file,
overwritten atomically on every write. A missing or unreadable file
means "process everything" (epoch zero).
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)

__all__ = [
    "EPOCH",
    "FileCheckpointStore",
    "default_checkpoint_path",
    "format_timestamp",
    "parse_timestamp",
]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Formats accepted besides ISO-8601; older deployments wrote the second form
_LEGACY_FORMATS = (
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%d %H:%M:%S.%f %z",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(text: str) -> datetime:
    """Parse a persisted checkpoint value.

    Accepts ISO-8601 (with or without offset, ``Z`` allowed) and the
    legacy ``YYYY-MM-DD HH:MM:SS +ZZZZ`` / ``... UTC`` forms. Naive
    values are taken as UTC.

    Raises:
        ValueError: If the text matches no supported format
    """
    value = text.strip()
    if not value:
        raise ValueError("empty timestamp")

    if value.endswith(" UTC"):
        value = value[: -len(" UTC")] + " +0000"

    try:
        return _as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        pass

    for fmt in _LEGACY_FORMATS:
        try:
            return _as_utc(datetime.strptime(value, fmt))
        except ValueError:
            continue

    raise ValueError(f"unrecognized timestamp: {text!r}")


def format_timestamp(value: datetime) -> str:
    """Render a checkpoint value as ISO-8601 in UTC."""
    return _as_utc(value).isoformat()


def default_checkpoint_path(
    bucket: str,
    prefix: Optional[str],
    executor_id: Optional[int],
    home: Optional[Union[str, Path]] = None,
) -> Path:
    """Default checkpoint file location for a scope.

    ``~/.sincedb_<executor-id or -1>_<md5(bucket + "+" + prefix)>``

    Args:
        bucket: Source bucket
        prefix: Configured prefix (before date substitution)
        executor_id: This executor's identity, or None
        home: Directory to place the file in (default: user's home)
    """
    digest = hashlib.md5(f"{bucket}+{prefix or ''}".encode("utf-8")).hexdigest()
    partition_prefix = -1 if executor_id is None else executor_id
    base = Path(home) if home is not None else Path.home()
    return base / f".sincedb_{partition_prefix}_{digest}"


class FileCheckpointStore:
    """Single-value checkpoint persisted in a text file.

    Monotonicity is the caller's responsibility: ``write`` overwrites
    whatever is stored. The file must be owned by exactly one executor
    identity; concurrent writers race.

    Example:
        >>> store = FileCheckpointStore("/var/lib/s3input/sincedb")
        >>> store.read()
        datetime.datetime(1970, 1, 1, 0, 0, tzinfo=datetime.timezone.utc)
        >>> _ = store.write(datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc))
        >>> store.is_newer(datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc))
        False
    """

    def __init__(
        self,
        path: Union[str, Path],
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.path = Path(path)
        self._clock = clock

    def read(self) -> datetime:
        """Return the stored timestamp, or EPOCH when absent or corrupt.

        Never raises.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No checkpoint at %s; starting from epoch", self.path)
            return EPOCH
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Unreadable checkpoint %s (%s); starting from epoch", self.path, e)
            return EPOCH

        try:
            return parse_timestamp(text)
        except ValueError as e:
            logger.warning("Corrupt checkpoint %s (%s); starting from epoch", self.path, e)
            return EPOCH

    def is_newer(self, candidate: datetime) -> bool:
        """True iff candidate is strictly after the stored timestamp."""
        return _as_utc(candidate) > self.read()

    def write(self, value: Optional[datetime] = None) -> datetime:
        """Persist a timestamp (current time when value is None).

        The file is replaced atomically so readers never see a partial
        value.

        Returns:
            The timestamp written, normalized to UTC
        """
        since = _as_utc(value if value is not None else self._clock())
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(format_timestamp(since) + "\n")
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Checkpoint %s advanced to %s", self.path, format_timestamp(since))
        return since

    def reset(self) -> bool:
        """Delete the stored value so the next read returns EPOCH.

        Returns:
            True if a checkpoint existed, False otherwise
        """
        if self.path.exists():
            self.path.unlink()
            logger.info("Deleted checkpoint %s", self.path)
            return True
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(path={str(self.path)!r})"
