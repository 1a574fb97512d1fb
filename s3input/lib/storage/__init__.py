"""Object store abstraction for the S3 input.

Provides a unified interface over the bucket being polled: AWS S3
(and S3-compatible services) or a local directory tree.

Usage:
    from s3input.lib.storage import get_object_store

    store = get_object_store(config)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from s3input.lib.errors import ConfigurationError
from s3input.lib.storage.base import ObjectRef, ObjectStore
from s3input.lib.storage.local import LocalObjectStore
from s3input.lib.storage.s3 import S3ObjectStore, build_s3_client

if TYPE_CHECKING:
    from s3input.lib.config import InputConfig

__all__ = [
    "ObjectRef",
    "ObjectStore",
    "LocalObjectStore",
    "S3ObjectStore",
    "build_s3_client",
    "get_object_store",
]


def get_object_store(config: "InputConfig") -> ObjectStore:
    """Build the object store described by an input configuration.

    Args:
        config: Validated input configuration

    Returns:
        ObjectStore bound to config.bucket
    """
    if config.storage == "s3":
        client = build_s3_client(
            region=config.region,
            endpoint_url=config.endpoint_url,
            access_key_id=config.access_key_id,
            secret_access_key=config.secret_access_key,
        )
        return S3ObjectStore(config.bucket, client=client)
    elif config.storage == "local":
        if not config.local_root:
            raise ConfigurationError(
                "local_root is required when storage is 'local'", field="local_root"
            )
        return LocalObjectStore(config.local_root, config.bucket)
    raise ConfigurationError(
        f"Unknown storage '{config.storage}'", field="storage", value=config.storage
    )
