"""Unit tests for `s3input.lib.storage.S3ObjectStore` using a stub boto3 client."""

import io
from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest
from botocore.exceptions import ClientError

from s3input.lib.errors import ObjectFetchError, ObjectStoreError
from s3input.lib.resilience import RetryConfig
from s3input.lib.storage import S3ObjectStore

FAST_RETRY = RetryConfig(max_attempts=3, backoff_seconds=0.01, jitter=False)


def _client_error(code: str, operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class StubPaginator:
    """Returns pre-built pages for list_objects_v2."""

    def __init__(self, pages: List[Dict[str, Any]]):
        self.pages = pages
        self.calls: List[Dict[str, Any]] = []

    def paginate(self, **kwargs):
        self.calls.append(kwargs)
        return iter(self.pages)


class StubS3Client:
    """Minimal boto3 S3 client stand-in with scripted failures."""

    def __init__(self, objects: Dict[str, bytes] = None, failures: List[Exception] = None):
        self.objects = dict(objects or {})
        self.failures = list(failures or [])
        self.get_calls = 0
        self.paginator = StubPaginator([])

    def get_paginator(self, name: str) -> StubPaginator:
        assert name == "list_objects_v2"
        return self.paginator

    def get_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        self.get_calls += 1
        if self.failures:
            raise self.failures.pop(0)
        if Key not in self.objects:
            raise _client_error("NoSuchKey")
        return {"Body": io.BytesIO(self.objects[Key])}

    def head_bucket(self, Bucket: str) -> Dict[str, Any]:
        if Bucket != "logs":
            raise _client_error("404", "HeadBucket")
        return {}


class TestListObjects:
    """Tests for paginated listing."""

    def test_pages_are_flattened(self):
        """Every page's contents are returned as ObjectRefs."""
        ts = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        client = StubS3Client()
        client.paginator.pages = [
            {"Contents": [{"Key": "app/a.log", "LastModified": ts, "Size": 3}]},
            {"Contents": [{"Key": "app/b.log", "LastModified": ts, "Size": 4}]},
            {"KeyCount": 0},
        ]
        store = S3ObjectStore("logs", client=client, retry_config=FAST_RETRY)

        refs = store.list_objects("app/")

        assert [r.key for r in refs] == ["app/a.log", "app/b.log"]
        assert refs[1].size == 4
        assert client.paginator.calls == [{"Bucket": "logs", "Prefix": "app/"}]


class TestRead:
    """Tests for reads and retry classification."""

    def test_transient_errors_are_retried(self):
        """Throttling is retried until the read succeeds."""
        client = StubS3Client(
            {"a.log": b"hello"},
            failures=[_client_error("SlowDown"), _client_error("InternalError")],
        )
        store = S3ObjectStore("logs", client=client, retry_config=FAST_RETRY)

        assert store.read("a.log") == b"hello"
        assert client.get_calls == 3

    def test_missing_key_not_retried(self):
        """NoSuchKey fails on the first attempt."""
        client = StubS3Client()
        store = S3ObjectStore("logs", client=client, retry_config=FAST_RETRY)

        with pytest.raises(ObjectFetchError) as exc_info:
            store.read("gone.log")
        assert client.get_calls == 1
        assert exc_info.value.key == "gone.log"

    def test_access_denied_not_retried(self):
        client = StubS3Client(failures=[_client_error("AccessDenied")])
        store = S3ObjectStore("logs", client=client, retry_config=FAST_RETRY)

        with pytest.raises(ObjectFetchError):
            store.read("a.log")
        assert client.get_calls == 1

    def test_exhausted_retries(self):
        """Persistent transient errors surface after the last attempt."""
        client = StubS3Client(failures=[_client_error("SlowDown")] * 3)
        store = S3ObjectStore("logs", client=client, retry_config=FAST_RETRY)

        with pytest.raises(ObjectFetchError):
            store.read("a.log")
        assert client.get_calls == 3


class TestBucketExists:
    """Tests for bucket existence checks."""

    def test_exists(self):
        store = S3ObjectStore("logs", client=StubS3Client(), retry_config=FAST_RETRY)
        assert store.bucket_exists("logs")
        assert not store.bucket_exists("archive")

    def test_uri(self):
        store = S3ObjectStore("logs", client=StubS3Client())
        assert store.uri("app/a.log") == "s3://logs/app/a.log"
        assert repr(store) == "S3ObjectStore(bucket='logs')"


def test_other_errors_wrapped():
    """Unexpected head_bucket failures are store errors."""

    class DeniedClient(StubS3Client):
        def head_bucket(self, Bucket):
            raise _client_error("AccessDenied", "HeadBucket")

    store = S3ObjectStore("logs", client=DeniedClient(), retry_config=FAST_RETRY)
    with pytest.raises(ObjectStoreError):
        store.bucket_exists("archive")
