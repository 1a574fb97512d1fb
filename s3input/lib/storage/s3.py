"""AWS S3 object store backed by boto3."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from s3input.lib.errors import ObjectFetchError, ObjectStoreError
from s3input.lib.resilience import RetryConfig, retry_operation
from s3input.lib.storage.base import ObjectRef, ObjectStore

logger = logging.getLogger(__name__)

__all__ = ["S3ObjectStore", "build_s3_client"]

# Client errors that will not go away by asking again
NON_RETRYABLE_CODES = frozenset(
    {
        "404",
        "NoSuchKey",
        "NoSuchBucket",
        "NotFound",
        "AccessDenied",
        "403",
        "InvalidAccessKeyId",
        "SignatureDoesNotMatch",
        "InvalidBucketName",
        "BucketAlreadyOwnedByYou",
    }
)


def _error_code(exc: BaseException) -> Optional[str]:
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code", ""))
    return None


def _is_retryable(exc: BaseException) -> bool:
    return _error_code(exc) not in NON_RETRYABLE_CODES


def build_s3_client(
    region: Optional[str] = None,
    endpoint_url: Optional[str] = None,
    access_key_id: Optional[str] = None,
    secret_access_key: Optional[str] = None,
) -> Any:
    """Build a boto3 S3 client.

    Explicit keys take precedence; otherwise boto3's default credential
    chain (environment, shared config, instance profile) applies.

    Args:
        region: AWS region name
        endpoint_url: Custom S3 endpoint (for MinIO, LocalStack, etc.)
        access_key_id: AWS access key
        secret_access_key: AWS secret key

    Returns:
        boto3 S3 client
    """
    client_kwargs: Dict[str, Any] = {}
    if region:
        client_kwargs["region_name"] = region
    if endpoint_url:
        client_kwargs["endpoint_url"] = endpoint_url
    if access_key_id and secret_access_key:
        client_kwargs["aws_access_key_id"] = access_key_id
        client_kwargs["aws_secret_access_key"] = secret_access_key

    client = boto3.client("s3", **client_kwargs)
    logger.debug(
        "Created S3 client (region=%s, endpoint=%s)",
        region or "default",
        endpoint_url or "default",
    )
    return client


class S3ObjectStore(ObjectStore):
    """S3-compatible object store using boto3.

    Supports AWS S3, MinIO, and any S3-compatible object storage.
    Transient errors are retried with tenacity; missing objects,
    missing buckets and permission errors fail immediately.

    Example:
        >>> store = S3ObjectStore("my-logs", client=build_s3_client("eu-west-1"))
        >>> for ref in store.list_objects("logs/20250115/"):
        ...     print(ref.key, ref.last_modified)
    """

    def __init__(
        self,
        bucket: str,
        client: Any = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        super().__init__(bucket)
        self.client = client if client is not None else build_s3_client()
        self.retry_config = retry_config or RetryConfig.default()

    @property
    def scheme(self) -> str:
        return "s3"

    def _call(self, operation: str, fn: Callable[[], Any]) -> Any:
        return retry_operation(
            fn,
            self.retry_config,
            operation_name=f"s3 {operation}",
            retry_exceptions=(BotoCoreError, ClientError),
            should_retry=_is_retryable,
        )

    def list_objects(self, prefix: str = "") -> List[ObjectRef]:
        """List objects under a prefix, following pagination."""

        def _list() -> List[ObjectRef]:
            paginator = self.client.get_paginator("list_objects_v2")
            refs: List[ObjectRef] = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    refs.append(
                        ObjectRef(
                            key=obj["Key"],
                            last_modified=obj["LastModified"],
                            size=obj.get("Size", 0),
                        )
                    )
            return refs

        try:
            refs = self._call("list_objects_v2", _list)
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(
                f"Failed to list prefix '{prefix}'",
                bucket=self.bucket,
                operation="list",
                cause=e,
            ) from e

        logger.debug("Listed %d objects under s3://%s/%s", len(refs), self.bucket, prefix)
        return refs

    def read(self, key: str) -> bytes:
        def _read() -> bytes:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()

        try:
            return self._call("get_object", _read)
        except (BotoCoreError, ClientError) as e:
            raise ObjectFetchError(
                "Failed to read object", bucket=self.bucket, key=key, cause=e
            ) from e

    def read_streaming(self, key: str, chunk_size: int = 1024 * 1024) -> Iterator[bytes]:
        try:
            response = self._call(
                "get_object",
                lambda: self.client.get_object(Bucket=self.bucket, Key=key),
            )
        except (BotoCoreError, ClientError) as e:
            raise ObjectFetchError(
                "Failed to open object stream", bucket=self.bucket, key=key, cause=e
            ) from e

        body = response["Body"]
        try:
            for chunk in body.iter_chunks(chunk_size=chunk_size):
                yield chunk
        except (BotoCoreError, ClientError) as e:
            raise ObjectFetchError(
                "Object stream interrupted", bucket=self.bucket, key=key, cause=e
            ) from e
        finally:
            body.close()

    def copy(self, key: str, dest_bucket: str, dest_key: str) -> None:
        """Server-side copy (managed transfer, handles multipart objects)."""
        source = {"Bucket": self.bucket, "Key": key}
        try:
            self._call(
                "copy",
                lambda: self.client.copy(source, dest_bucket, dest_key),
            )
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(
                f"Failed to copy object to s3://{dest_bucket}/{dest_key}",
                bucket=self.bucket,
                key=key,
                operation="copy",
                cause=e,
            ) from e
        logger.info(
            "Copied s3://%s/%s to s3://%s/%s", self.bucket, key, dest_bucket, dest_key
        )

    def delete(self, key: str) -> None:
        try:
            self._call(
                "delete_object",
                lambda: self.client.delete_object(Bucket=self.bucket, Key=key),
            )
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(
                "Failed to delete object",
                bucket=self.bucket,
                key=key,
                operation="delete",
                cause=e,
            ) from e
        logger.info("Deleted s3://%s/%s", self.bucket, key)

    def bucket_exists(self, name: str) -> bool:
        try:
            self._call("head_bucket", lambda: self.client.head_bucket(Bucket=name))
            return True
        except ClientError as e:
            if _error_code(e) in ("404", "NoSuchBucket", "NotFound"):
                return False
            raise ObjectStoreError(
                f"Failed to check bucket '{name}'",
                operation="head_bucket",
                cause=e,
            ) from e
        except BotoCoreError as e:
            raise ObjectStoreError(
                f"Failed to check bucket '{name}'",
                operation="head_bucket",
                cause=e,
            ) from e

    def create_bucket(self, name: str) -> None:
        kwargs: Dict[str, Any] = {"Bucket": name}
        region = self.client.meta.region_name
        # us-east-1 rejects an explicit location constraint
        if region and region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}

        try:
            self._call("create_bucket", lambda: self.client.create_bucket(**kwargs))
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError(
                f"Failed to create bucket '{name}'",
                operation="create_bucket",
                cause=e,
            ) from e
        logger.info("Created bucket s3://%s", name)
