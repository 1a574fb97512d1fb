"""Per-object processing pipeline.

For every candidate assigned to this executor, in listing order:

    fetch -> decompress -> decode -> decorate -> emit -> post-process
    -> advance checkpoint

A failure anywhere in that chain is isolated to the object: it is
logged with its key, the checkpoint is left alone, and processing
continues with the next candidate.
"""

from __future__ import annotations

import gzip
import logging
import lzma
import re
import tempfile
import time
import zlib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from s3input.lib.checkpoint import FileCheckpointStore
from s3input.lib.codecs import Codec, Record
from s3input.lib.errors import DecodeError, IngestError
from s3input.lib.partition import Partitioner
from s3input.lib.postprocess import PostProcessor, PostProcessPlan
from s3input.lib.sinks import Sink
from s3input.lib.storage.base import ObjectRef, ObjectStore

logger = logging.getLogger(__name__)

__all__ = [
    "ObjectStatus",
    "ObjectResult",
    "CycleResult",
    "RecordDecorator",
    "IngestionPipeline",
    "decompress",
]

_FIELD_REF = re.compile(r"%\{([^}]+)\}")


class ObjectStatus(Enum):
    PROCESSED = "processed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ObjectResult:
    """Outcome of processing one object."""

    key: str
    status: ObjectStatus
    records: int = 0
    error: Optional[str] = None
    plan: Optional[PostProcessPlan] = None
    checkpoint_advanced: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "status": self.status.value,
            "records": self.records,
            "error": self.error,
            "remote_action": self.plan.remote_action.value if self.plan else None,
            "checkpoint_advanced": self.checkpoint_advanced,
        }


@dataclass
class CycleResult:
    """Aggregated outcome of one discovery and processing cycle."""

    listed: int = 0
    results: List[ObjectResult] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    error: Optional[str] = None

    def _count(self, status: ObjectStatus) -> int:
        return sum(1 for r in self.results if r.status is status)

    @property
    def processed(self) -> int:
        return self._count(ObjectStatus.PROCESSED)

    @property
    def failed(self) -> int:
        return self._count(ObjectStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(ObjectStatus.SKIPPED)

    @property
    def records(self) -> int:
        return sum(r.records for r in self.results)

    @property
    def success(self) -> bool:
        return self.error is None and self.failed == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "listed": self.listed,
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "records": self.records,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "error": self.error,
        }

    def __repr__(self) -> str:
        return (
            f"CycleResult(listed={self.listed}, processed={self.processed}, "
            f"failed={self.failed}, skipped={self.skipped}, records={self.records})"
        )


def decompress(key: str, data: bytes) -> bytes:
    """Decompress data according to the key's suffix.

    ``.gz`` is read as gzip and ``.xz`` as xz; anything else is
    returned unchanged.

    Raises:
        DecodeError: If the content does not match its suffix
    """
    try:
        if key.endswith(".gz"):
            return gzip.decompress(data)
        if key.endswith(".xz"):
            return lzma.decompress(data, format=lzma.FORMAT_XZ)
    except (OSError, EOFError, zlib.error, lzma.LZMAError) as e:
        raise DecodeError(
            "Failed to decompress object",
            key=key,
            codec=PurePosixPath(key).suffix.lstrip("."),
            cause=e,
        ) from e
    return data


class RecordDecorator:
    """Adds source metadata and configured fields to records.

    Args:
        bucket: Source bucket
        type_name: Value for the ``type`` field, if absent
        tags: Tags appended to the record's ``tags`` list
        add_field: Fields set when absent; values may reference other
            fields as ``%{name}`` or ``%{[outer][inner]}``
    """

    def __init__(
        self,
        bucket: str,
        type_name: Optional[str] = None,
        tags: Sequence[str] = (),
        add_field: Optional[Dict[str, str]] = None,
    ) -> None:
        self.bucket = bucket
        self.type_name = type_name
        self.tags = list(tags)
        self.add_field = dict(add_field or {})

    def __call__(self, record: Record, obj: ObjectRef) -> Record:
        record["s3"] = {
            "bucket": self.bucket,
            "key": obj.key,
            "last_modified": obj.last_modified.isoformat(),
            "size": obj.size,
        }

        if self.type_name and "type" not in record:
            record["type"] = self.type_name

        if self.tags:
            existing = record.get("tags")
            if not isinstance(existing, list):
                existing = [] if existing is None else [existing]
            record["tags"] = existing + [t for t in self.tags if t not in existing]

        for name, template in self.add_field.items():
            if name not in record:
                record[name] = self._interpolate(template, record)

        return record

    @staticmethod
    def _lookup(record: Record, ref: str) -> Any:
        path = [p for p in re.split(r"[\[\]]", ref) if p] if ref.startswith("[") else [ref]
        value: Any = record
        for part in path:
            if not isinstance(value, dict) or part not in value:
                return None
            value = value[part]
        return value

    def _interpolate(self, template: str, record: Record) -> str:
        def _sub(match: "re.Match[str]") -> str:
            value = self._lookup(record, match.group(1))
            # Unresolved references stay verbatim
            return match.group(0) if value is None else str(value)

        return _FIELD_REF.sub(_sub, template)


class IngestionPipeline:
    """Processes listed objects one at a time.

    Args:
        store: Store bound to the source bucket
        codec: Record codec
        sink: Record destination
        checkpoint: Checkpoint advanced after each successful object
        post_processor: Post-processing executor
        partitioner: Selects the keys this executor owns
        decorator: Record decorator (defaults to s3 metadata only)
        materialize: Download objects to a temporary file before decoding
        dry_run: Only log what would be processed

    Example:
        >>> pipeline = IngestionPipeline(store, LineCodec(), sink, checkpoint, post)
        >>> result = pipeline.process_objects(lister.list_new_objects())
        >>> result.processed, result.failed
        (2, 0)
    """

    def __init__(
        self,
        store: ObjectStore,
        codec: Codec,
        sink: Sink,
        checkpoint: FileCheckpointStore,
        post_processor: PostProcessor,
        partitioner: Optional[Partitioner] = None,
        decorator: Optional[RecordDecorator] = None,
        materialize: bool = False,
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.codec = codec
        self.sink = sink
        self.checkpoint = checkpoint
        self.post_processor = post_processor
        self.partitioner = partitioner or Partitioner()
        self.decorator = decorator or RecordDecorator(store.bucket)
        self.materialize = materialize
        self.dry_run = dry_run
        self._emitted = 0

    def process_objects(self, objects: Iterable[ObjectRef]) -> CycleResult:
        """Process candidates in the given order.

        Objects owned by other executors are reported as skipped.
        """
        start = time.monotonic()
        result = CycleResult()

        for obj in objects:
            result.listed += 1
            if not self.partitioner.is_local(obj.key):
                logger.debug(
                    "Skipping %s (partition %d, this executor owns %d)",
                    obj.key,
                    self.partitioner.partition_for(obj.key),
                    self.partitioner.executor_slot,
                )
                result.results.append(ObjectResult(obj.key, ObjectStatus.SKIPPED))
                continue
            result.results.append(self.process_object(obj))

        result.elapsed_seconds = time.monotonic() - start
        return result

    def process_object(self, obj: ObjectRef) -> ObjectResult:
        """Run the full chain for one object. Never raises."""
        if self.dry_run:
            logger.info(
                "[DRY RUN] Would process %s (%d bytes, modified %s)",
                obj.key,
                obj.size,
                obj.last_modified.isoformat(),
            )
            return ObjectResult(obj.key, ObjectStatus.SKIPPED)

        self._emitted = 0
        try:
            with tempfile.TemporaryDirectory(prefix="s3input-") as tmp:
                data, local_path = self._fetch(obj, Path(tmp))
                self._emit_records(obj, data)
                plan = self.post_processor.run(obj, local_path)
            advanced = self._advance_checkpoint(obj)
        except IngestError as e:
            logger.error("Failed to process %s: %s", obj.key, e.message, extra={"key": obj.key})
            logger.debug("Failure detail for %s:\n%s", obj.key, e)
            return ObjectResult(
                obj.key, ObjectStatus.FAILED, records=self._emitted, error=e.message
            )
        except Exception as e:
            logger.exception("Failed to process %s: %s", obj.key, e, extra={"key": obj.key})
            return ObjectResult(obj.key, ObjectStatus.FAILED, records=self._emitted, error=str(e))

        logger.info("Processed %s (%d records)", obj.key, self._emitted, extra={"key": obj.key})
        return ObjectResult(
            obj.key,
            ObjectStatus.PROCESSED,
            records=self._emitted,
            plan=plan,
            checkpoint_advanced=advanced,
        )

    def _fetch(self, obj: ObjectRef, tmp_dir: Path) -> Tuple[bytes, Optional[Path]]:
        if not self.materialize:
            return self.store.read(obj.key), None

        local_path = tmp_dir / PurePosixPath(obj.key).name
        with open(local_path, "wb") as f:
            for chunk in self.store.read_streaming(obj.key):
                f.write(chunk)
        logger.debug("Downloaded %s to %s", obj.key, local_path)
        return local_path.read_bytes(), local_path

    def _emit_records(self, obj: ObjectRef, data: bytes) -> None:
        content = decompress(obj.key, data)
        records: Optional[Iterator[Record]] = None
        while True:
            try:
                if records is None:
                    records = iter(self.codec.decode(content))
                record = next(records)
            except StopIteration:
                break
            except ValueError as e:
                raise DecodeError(
                    f"Codec failed after {self._emitted} record(s)",
                    key=obj.key,
                    codec=self.codec.name,
                    cause=e,
                ) from e
            self.sink.emit(self.decorator(record, obj))
            self._emitted += 1

    def _advance_checkpoint(self, obj: ObjectRef) -> bool:
        if not self.checkpoint.is_newer(obj.last_modified):
            return False
        self.checkpoint.write(obj.last_modified)
        return True
