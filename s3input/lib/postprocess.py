"""Post-processing of delivered objects.

After every record of an object reached the sink, the source object may
be relocated (copied or moved into a backup bucket), mirrored into a
local directory, or deleted. What happens is decided by a small
decision table over the backup policy, kept separate from execution so
each combination can be checked on its own.

Side effects are at-least-once: if the process dies after relocating
but before the checkpoint is written, the next cycle selects the object
again and repeats the relocation or deletion.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from s3input.lib.errors import IngestError, PostProcessingError

if TYPE_CHECKING:
    from s3input.lib.storage.base import ObjectRef, ObjectStore

logger = logging.getLogger(__name__)

__all__ = [
    "BackupPolicy",
    "RemoteAction",
    "PostProcessPlan",
    "PostProcessor",
    "plan_post_processing",
]


class RemoteAction(Enum):
    """What happens to the source object in the store."""

    NONE = "none"
    COPY = "copy"
    MOVE = "move"
    DELETE = "delete"


@dataclass(frozen=True)
class BackupPolicy:
    """Where processed objects go, and whether the source is removed."""

    backup_bucket: Optional[str] = None
    backup_prefix: str = ""
    backup_dir: Optional[str] = None
    delete: bool = False

    def backup_key(self, key: str) -> str:
        return f"{self.backup_prefix}{key}"

    def excludes(self, key: str, source_bucket: str) -> bool:
        """True for keys this input itself wrote back into the source bucket."""
        return bool(
            self.backup_prefix
            and self.backup_bucket == source_bucket
            and key.startswith(self.backup_prefix)
        )


@dataclass(frozen=True)
class PostProcessPlan:
    """Outcome of the decision table for one object."""

    remote_action: RemoteAction
    copy_to_dir: bool

    @property
    def is_noop(self) -> bool:
        return self.remote_action is RemoteAction.NONE and not self.copy_to_dir


def plan_post_processing(
    has_backup_bucket: bool,
    has_backup_dir: bool,
    delete: bool,
    has_local_file: bool = True,
) -> PostProcessPlan:
    """Decide post-processing for a delivered object.

    ============  ======  =============
    backup bucket delete  remote action
    ============  ======  =============
    yes           yes     MOVE
    yes           no      COPY
    no            yes     DELETE
    no            no      NONE
    ============  ======  =============

    The local-directory mirror is independent of the remote action and
    only happens when the object was materialized to a local file.

    Args:
        has_backup_bucket: A backup bucket is configured
        has_backup_dir: A local backup directory is configured
        delete: Delete-after-processing is requested
        has_local_file: The object was downloaded to a local file

    Returns:
        PostProcessPlan
    """
    if has_backup_bucket:
        action = RemoteAction.MOVE if delete else RemoteAction.COPY
    elif delete:
        action = RemoteAction.DELETE
    else:
        action = RemoteAction.NONE

    return PostProcessPlan(
        remote_action=action,
        copy_to_dir=has_backup_dir and has_local_file,
    )


class PostProcessor:
    """Executes post-processing plans against an object store.

    Args:
        store: Store holding the source object
        policy: Backup policy
    """

    def __init__(self, store: "ObjectStore", policy: BackupPolicy) -> None:
        self.store = store
        self.policy = policy

    def plan(self, local_path: Optional[Path] = None) -> PostProcessPlan:
        return plan_post_processing(
            has_backup_bucket=self.policy.backup_bucket is not None,
            has_backup_dir=self.policy.backup_dir is not None,
            delete=self.policy.delete,
            has_local_file=local_path is not None,
        )

    def run(self, obj: "ObjectRef", local_path: Optional[Path] = None) -> PostProcessPlan:
        """Apply the plan for a delivered object.

        The local mirror copy runs first so a move or delete never
        removes the only copy before it is mirrored.

        Args:
            obj: The delivered object
            local_path: Local file the object was materialized to, if any

        Returns:
            The executed plan

        Raises:
            PostProcessingError: If any step fails
        """
        plan = self.plan(local_path)

        if plan.copy_to_dir and local_path is not None:
            self._copy_to_dir(obj, local_path)

        action = plan.remote_action
        try:
            if action is RemoteAction.COPY:
                self.store.copy(obj.key, self.policy.backup_bucket, self.policy.backup_key(obj.key))
            elif action is RemoteAction.MOVE:
                self.store.move(obj.key, self.policy.backup_bucket, self.policy.backup_key(obj.key))
            elif action is RemoteAction.DELETE:
                self.store.delete(obj.key)
        except IngestError as e:
            raise PostProcessingError(
                f"Failed to {action.value} processed object",
                bucket=self.store.bucket,
                key=obj.key,
                action=action.value,
                cause=e,
            ) from e

        if not plan.is_noop:
            logger.debug("Post-processed %s: %s", obj.key, plan)
        return plan

    def _copy_to_dir(self, obj: "ObjectRef", local_path: Path) -> None:
        target_dir = Path(self.policy.backup_dir)
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy(local_path, target_dir / local_path.name)
        except OSError as e:
            raise PostProcessingError(
                "Failed to copy processed object to backup directory",
                bucket=self.store.bucket,
                key=obj.key,
                action="copy_to_dir",
                cause=e,
                details={"backup_dir": str(target_dir)},
            ) from e
        logger.debug("Copied %s to %s", local_path, target_dir)
