"""Engine assembly.

Turns a validated configuration into a ready-to-run Poller, performing
the startup checks an input does once before polling begins.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from s3input.lib.checkpoint import FileCheckpointStore
from s3input.lib.codecs import Codec, get_codec
from s3input.lib.config import InputConfig
from s3input.lib.errors import ConfigurationError
from s3input.lib.ingest import IngestionPipeline, RecordDecorator
from s3input.lib.listing import ObjectLister
from s3input.lib.partition import Partitioner, get_hasher
from s3input.lib.poller import Poller
from s3input.lib.postprocess import PostProcessor
from s3input.lib.sinks import Sink
from s3input.lib.storage import ObjectStore, get_object_store

logger = logging.getLogger(__name__)

__all__ = ["build_engine", "ensure_backup_targets"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_backup_targets(config: InputConfig, store: ObjectStore) -> None:
    """Create the backup bucket and backup directory when missing.

    Raises:
        ObjectStoreError: If the backup bucket cannot be checked or created
        ConfigurationError: If the backup directory cannot be created
    """
    if config.backup_to_bucket and not store.bucket_exists(config.backup_to_bucket):
        logger.info("Backup bucket %s does not exist; creating it", config.backup_to_bucket)
        store.create_bucket(config.backup_to_bucket)

    if config.backup_to_dir:
        backup_dir = Path(config.backup_to_dir)
        try:
            backup_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create backup directory: {e}",
                field="backup_to_dir",
                value=config.backup_to_dir,
            ) from e
        if not os.access(backup_dir, os.W_OK):
            raise ConfigurationError(
                "Backup directory is not writable",
                field="backup_to_dir",
                value=config.backup_to_dir,
            )


def build_engine(
    config: InputConfig,
    sink: Sink,
    store: Optional[ObjectStore] = None,
    codec: Optional[Codec] = None,
    clock: Callable[[], datetime] = _utcnow,
    checkpoint: Optional[FileCheckpointStore] = None,
) -> Poller:
    """Wire every component for a configuration.

    Args:
        config: Validated input configuration
        sink: Destination for decorated records
        store: Object store override (default: built from config)
        codec: Codec override (default: config.codec / config.charset)
        clock: Current-time source for listing and checkpoint writes
        checkpoint: Checkpoint override (default: config.checkpoint_path)

    Returns:
        Poller ready to run

    Example:
        >>> config = load_config("./access_logs.yaml")
        >>> poller = build_engine(config, JsonLinesSink("events.jsonl"))
        >>> poller.run()
    """
    store = store if store is not None else get_object_store(config)
    if not config.dry_run:
        ensure_backup_targets(config, store)

    checkpoint = checkpoint or FileCheckpointStore(config.checkpoint_path, clock=clock)
    lister = ObjectLister.from_config(config, store, checkpoint, clock=clock)
    partitioner = Partitioner(
        total_executors=config.total_executors,
        executor_slot=config.executor_slot,
        hasher=get_hasher(config.hash_function),
    )
    pipeline = IngestionPipeline(
        store=store,
        codec=codec or get_codec(config.codec, config.charset),
        sink=sink,
        checkpoint=checkpoint,
        post_processor=PostProcessor(store, config.backup_policy),
        partitioner=partitioner,
        decorator=RecordDecorator(
            config.bucket,
            type_name=config.type,
            tags=config.tags,
            add_field=config.add_field,
        ),
        materialize=config.materialize_objects,
        dry_run=config.dry_run,
    )

    logger.info(
        "Registered input for %s (prefix=%r, checkpoint=%s, %r)",
        store.uri(),
        config.prefix or "",
        checkpoint.path,
        partitioner,
    )
    return Poller(lister, pipeline, interval=config.interval)
