"""End-to-end cycles against moto's mocked S3."""

import gzip
from datetime import datetime, timedelta, timezone

import boto3
import pytest
from moto import mock_aws

from s3input.lib.config import InputConfig
from s3input.lib.resilience import RetryConfig
from s3input.lib.runner import build_engine
from s3input.lib.sinks import CollectingSink
from s3input.lib.storage import S3ObjectStore

pytestmark = pytest.mark.integration

BUCKET = "access-logs"


@pytest.fixture
def s3(aws_credentials):
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket=BUCKET)
        yield client


def _engine(s3, tmp_path, sink, **kwargs):
    config = InputConfig(
        bucket=BUCKET,
        region="us-east-1",
        sincedb_path=str(tmp_path / "sincedb"),
        **kwargs,
    )
    store = S3ObjectStore(BUCKET, client=s3, retry_config=RetryConfig.none())
    return build_engine(config, sink, store=store)


def test_move_to_backup_bucket(s3, tmp_path):
    """Processed objects are moved out of the source prefix."""
    s3.put_object(Bucket=BUCKET, Key="app/a.log", Body=b"one\ntwo\n")
    s3.put_object(Bucket=BUCKET, Key="app/b.log.gz", Body=gzip.compress(b"three\n"))
    sink = CollectingSink()

    poller = _engine(
        s3,
        tmp_path,
        sink,
        prefix="app/",
        backup_to_bucket="archive",
        backup_add_prefix="done/",
        delete=True,
    )
    result = poller.run_cycle()

    assert result.success
    assert result.processed == 2
    assert sorted(r["message"] for r in sink.records) == ["one", "three", "two"]
    assert s3.list_objects_v2(Bucket=BUCKET, Prefix="app/").get("KeyCount") == 0
    archived = s3.list_objects_v2(Bucket="archive")["Contents"]
    assert sorted(o["Key"] for o in archived) == ["done/app/a.log", "done/app/b.log.gz"]


def test_backup_into_source_bucket_not_relisted(s3, tmp_path):
    """Copies written under the backup prefix are never picked up again."""
    s3.put_object(Bucket=BUCKET, Key="a.log", Body=b"one\n")
    sink = CollectingSink()

    poller = _engine(
        s3, tmp_path, sink, backup_to_bucket=BUCKET, backup_add_prefix="processed/", delete=True
    )
    first = poller.run_cycle()
    second = poller.run_cycle()

    assert first.processed == 1
    assert second.listed == 0
    keys = [o["Key"] for o in s3.list_objects_v2(Bucket=BUCKET)["Contents"]]
    assert keys == ["processed/a.log"]


def test_dated_prefix_today(s3, tmp_path):
    """A %YYYYMMDD% prefix lists today's partition."""
    today = datetime.now(timezone.utc)
    old = today - timedelta(days=5)
    s3.put_object(Bucket=BUCKET, Key=f"app/{today:%Y%m%d}/a.log", Body=b"new\n")
    s3.put_object(Bucket=BUCKET, Key=f"app/{old:%Y%m%d}/b.log", Body=b"old\n")
    sink = CollectingSink()

    result = _engine(s3, tmp_path, sink, prefix="app/%YYYYMMDD%/").run_cycle()

    assert result.processed == 1
    assert [r["message"] for r in sink.records] == ["new"]


def test_missing_key_fails_forward(s3, tmp_path):
    """An object deleted after listing fails alone; the checkpoint stays put."""
    s3.put_object(Bucket=BUCKET, Key="a.log", Body=b"one\n")
    sink = CollectingSink()
    poller = _engine(s3, tmp_path, sink)

    objects = poller.lister.list_new_objects()
    s3.delete_object(Bucket=BUCKET, Key="a.log")
    result = poller.pipeline.process_objects(objects)

    assert result.failed == 1
    assert not (tmp_path / "sincedb").exists()
