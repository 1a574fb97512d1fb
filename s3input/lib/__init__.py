"""S3 input library modules.

This package contains the discovery, checkpointing, partitioning and
processing components of the S3 input, plus the collaborators they
consume (object stores, codecs, sinks).
"""

from s3input.lib.checkpoint import EPOCH, FileCheckpointStore, default_checkpoint_path
from s3input.lib.codecs import Codec, JsonLinesCodec, LineCodec, get_codec
from s3input.lib.config import InputConfig, load_config
from s3input.lib.env import expand_env_vars, expand_options, load_env_file
from s3input.lib.errors import (
    ConfigurationError,
    DecodeError,
    IngestError,
    ObjectFetchError,
    ObjectStoreError,
    PostProcessingError,
)
from s3input.lib.ingest import (
    CycleResult,
    IngestionPipeline,
    ObjectResult,
    ObjectStatus,
    RecordDecorator,
)
from s3input.lib.listing import ExclusionPolicy, ListingMode, ObjectLister
from s3input.lib.logging import setup_logging
from s3input.lib.partition import KeyHasher, Md5Hasher, Partitioner, Polynomial31Hasher
from s3input.lib.poller import Poller
from s3input.lib.postprocess import (
    BackupPolicy,
    PostProcessor,
    PostProcessPlan,
    RemoteAction,
    plan_post_processing,
)
from s3input.lib.resilience import RetryConfig
from s3input.lib.runner import build_engine
from s3input.lib.sinks import CollectingSink, JsonLinesSink, QueueSink, Sink
from s3input.lib.storage import (
    LocalObjectStore,
    ObjectRef,
    ObjectStore,
    S3ObjectStore,
    get_object_store,
)

__all__ = [
    # Checkpoint
    "EPOCH",
    "FileCheckpointStore",
    "default_checkpoint_path",
    # Codecs
    "Codec",
    "JsonLinesCodec",
    "LineCodec",
    "get_codec",
    # Config
    "InputConfig",
    "load_config",
    "expand_env_vars",
    "expand_options",
    "load_env_file",
    # Errors
    "ConfigurationError",
    "DecodeError",
    "IngestError",
    "ObjectFetchError",
    "ObjectStoreError",
    "PostProcessingError",
    # Processing
    "CycleResult",
    "IngestionPipeline",
    "ObjectResult",
    "ObjectStatus",
    "RecordDecorator",
    "ExclusionPolicy",
    "ListingMode",
    "ObjectLister",
    "KeyHasher",
    "Md5Hasher",
    "Partitioner",
    "Polynomial31Hasher",
    "Poller",
    "BackupPolicy",
    "PostProcessor",
    "PostProcessPlan",
    "RemoteAction",
    "plan_post_processing",
    "build_engine",
    # Infrastructure
    "setup_logging",
    "RetryConfig",
    "CollectingSink",
    "JsonLinesSink",
    "QueueSink",
    "Sink",
    "LocalObjectStore",
    "ObjectRef",
    "ObjectStore",
    "S3ObjectStore",
    "get_object_store",
]
