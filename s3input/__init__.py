"""Incremental ingestion of objects from an S3 bucket.

Lists a bucket (optionally by date-templated prefix), decodes every
object modified since the last checkpoint into records, and optionally
backs up or deletes processed objects.

Usage:
    python -m s3input run ./access_logs.yaml
    python -m s3input list ./access_logs.yaml
"""

from s3input.lib.config import InputConfig, load_config
from s3input.lib.poller import Poller
from s3input.lib.runner import build_engine

__version__ = "1.0.0"

__all__ = [
    "InputConfig",
    "load_config",
    "Poller",
    "build_engine",
]
