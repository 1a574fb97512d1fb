"""Date-aware discovery of new objects.

The configured prefix may embed a ``%YYYYMMDD%`` placeholder. Each
cycle expands it into concrete prefixes, lists them, and keeps the
objects modified after the checkpoint that are not excluded.

Two listing modes exist:

- BACKFILL: an explicit ``[start_date, end_date)`` window, expanded day
  by day. It runs once; afterwards the lister switches to ROLLING for
  the rest of the process's life.
- ROLLING: today's prefix, plus yesterday's when the prefix contains
  the placeholder (so objects landing around midnight are not missed).

When an end date is configured and has passed, rolling listing is
closed and returns nothing.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Pattern

from s3input.lib.postprocess import BackupPolicy

if TYPE_CHECKING:
    from s3input.lib.checkpoint import FileCheckpointStore
    from s3input.lib.config import InputConfig
    from s3input.lib.storage.base import ObjectRef, ObjectStore

logger = logging.getLogger(__name__)

__all__ = [
    "DATE_PLACEHOLDER",
    "ListingMode",
    "ExclusionPolicy",
    "ObjectLister",
    "expand_prefix",
    "iter_days",
]

DATE_PLACEHOLDER = "%YYYYMMDD%"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def expand_prefix(prefix: Optional[str], day: date) -> str:
    """Substitute the first date placeholder with day as YYYYMMDD.

    Example:
        >>> expand_prefix("logs/%YYYYMMDD%/", date(2024, 1, 1))
        'logs/20240101/'
    """
    if not prefix:
        return ""
    return prefix.replace(DATE_PLACEHOLDER, day.strftime("%Y%m%d"), 1)


def iter_days(start: datetime, end: datetime) -> Iterable[date]:
    """Yield each day from start (inclusive) while day < end."""
    day = start
    while day < end:
        yield day.date()
        day = day + timedelta(days=1)


class ListingMode(Enum):
    BACKFILL = "backfill"
    ROLLING = "rolling"
    CLOSED = "closed"


class ExclusionPolicy:
    """Keys never selected for processing.

    A key is excluded when it sits under the backup prefix inside the
    source bucket (objects this input wrote back itself) or when it
    matches the configured regular expression anywhere in the key.
    """

    def __init__(
        self,
        source_bucket: str,
        backup_policy: Optional[BackupPolicy] = None,
        pattern: Optional[Pattern[str]] = None,
    ) -> None:
        self.source_bucket = source_bucket
        self.backup_policy = backup_policy or BackupPolicy()
        self.pattern = pattern

    def is_excluded(self, key: str) -> bool:
        if self.backup_policy.excludes(key, self.source_bucket):
            return True
        if self.pattern is not None and self.pattern.search(key):
            return True
        return False


class ObjectLister:
    """Produces the ordered candidates for one processing cycle.

    Args:
        store: Store bound to the source bucket
        checkpoint: Checkpoint for this (bucket, prefix, executor) scope
        prefix: Configured prefix, possibly with a date placeholder
        exclusion: Keys to skip
        start_date: Backfill window start (inclusive)
        end_date: Backfill window end (exclusive) / rolling cut-off
        backfill_full_range: List every backfill day instead of only the
            first one before switching to rolling mode
        clock: Returns the current aware datetime
    """

    def __init__(
        self,
        store: "ObjectStore",
        checkpoint: "FileCheckpointStore",
        prefix: Optional[str] = None,
        exclusion: Optional[ExclusionPolicy] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        backfill_full_range: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.checkpoint = checkpoint
        self.prefix = prefix
        self.exclusion = exclusion or ExclusionPolicy(store.bucket)
        self.start_date = start_date
        self.end_date = end_date
        self.backfill_full_range = backfill_full_range
        self._clock = clock
        self._backfill_pending = start_date is not None and end_date is not None

    @classmethod
    def from_config(
        cls,
        config: "InputConfig",
        store: "ObjectStore",
        checkpoint: "FileCheckpointStore",
        clock: Callable[[], datetime] = _utcnow,
    ) -> "ObjectLister":
        exclusion = ExclusionPolicy(
            source_bucket=config.bucket,
            backup_policy=config.backup_policy,
            pattern=config.exclude_regex,
        )
        return cls(
            store,
            checkpoint,
            prefix=config.prefix,
            exclusion=exclusion,
            start_date=config.start_date,
            end_date=config.end_date,
            backfill_full_range=config.backfill_full_range,
            clock=clock,
        )

    @property
    def mode(self) -> ListingMode:
        """Mode the next call to list_new_objects will use."""
        if self._backfill_pending:
            return ListingMode.BACKFILL
        if self.end_date is not None and self._clock() > self.end_date:
            return ListingMode.CLOSED
        return ListingMode.ROLLING

    def list_new_objects(self) -> List["ObjectRef"]:
        """List unprocessed objects, oldest first (ties by key).

        Raises:
            ObjectStoreError: If a listing call fails. The mode does not
                change in that case, so a failed backfill is retried.
        """
        mode = self.mode
        since = self.checkpoint.read()
        found: Dict[str, "ObjectRef"] = {}

        if mode is ListingMode.BACKFILL:
            days = list(iter_days(self.start_date, self.end_date))
            if not self.backfill_full_range:
                # Backfill covers only the first day of the window
                days = days[:1]
            for day in days:
                self._collect(expand_prefix(self.prefix, day), since, found)
            self._backfill_pending = False
            logger.info(
                "Backfill listing done (%d day(s), %d candidate(s)); switching to rolling mode",
                len(days),
                len(found),
            )
        elif mode is ListingMode.CLOSED:
            logger.debug("End date %s has passed; nothing to list", self.end_date)
            return []
        else:
            now = self._clock()
            self._collect(expand_prefix(self.prefix, now.date()), since, found)
            if self.prefix and DATE_PLACEHOLDER in self.prefix:
                yesterday = (now - timedelta(days=1)).date()
                self._collect(expand_prefix(self.prefix, yesterday), since, found)

        return sorted(found.values(), key=lambda ref: (ref.last_modified, ref.key))

    def list_new_keys(self) -> List[str]:
        return [ref.key for ref in self.list_new_objects()]

    def _collect(
        self,
        prefix: str,
        since: datetime,
        found: Dict[str, "ObjectRef"],
    ) -> None:
        logger.debug("Listing prefix '%s' (checkpoint %s)", prefix, since.isoformat())
        for ref in self.store.list_objects(prefix):
            if self.exclusion.is_excluded(ref.key):
                logger.debug("Excluded %s", ref.key)
                continue
            if ref.last_modified > since:
                found[ref.key] = ref
