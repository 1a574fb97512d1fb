"""Tests for s3input/lib/storage/local.py and the store factory."""

import pytest

from s3input.lib.config import InputConfig
from s3input.lib.errors import ObjectFetchError, ObjectStoreError
from s3input.lib.storage import LocalObjectStore, S3ObjectStore, get_object_store
from tests.helpers import utc


class TestLocalObjectStore:
    """Tests for LocalObjectStore."""

    def test_put_and_list(self, local_store):
        """Listing returns refs with keys, times and sizes."""
        local_store.put("app/b.log", b"bb", utc(2024, 1, 15, 11, 0))
        local_store.put("app/a.log", b"a", utc(2024, 1, 15, 10, 0))
        local_store.put("other/c.log", b"c")

        refs = local_store.list_objects("app/")
        assert [r.key for r in refs] == ["app/a.log", "app/b.log"]
        assert refs[0].last_modified == utc(2024, 1, 15, 10, 0)
        assert refs[1].size == 2

    def test_prefix_is_literal(self, local_store):
        """The prefix is matched as a string, not a directory."""
        local_store.put("app-1/a.log", b"x")
        local_store.put("app/b.log", b"x")
        assert [r.key for r in local_store.list_objects("app")] == ["app-1/a.log", "app/b.log"]

    def test_missing_bucket(self, tmp_path):
        """Listing a missing bucket is a store error."""
        store = LocalObjectStore(tmp_path, "absent")
        with pytest.raises(ObjectStoreError):
            store.list_objects()

    def test_read(self, local_store):
        local_store.put("a.log", b"hello")
        assert local_store.read("a.log") == b"hello"

    def test_read_missing(self, local_store):
        """Reading a missing key raises ObjectFetchError with the key."""
        with pytest.raises(ObjectFetchError) as exc_info:
            local_store.read("gone.log")
        assert exc_info.value.key == "gone.log"

    def test_read_streaming(self, local_store):
        """Content is yielded in chunks."""
        local_store.put("a.log", b"abcdefg")
        chunks = list(local_store.read_streaming("a.log", chunk_size=3))
        assert chunks == [b"abc", b"def", b"g"]

    def test_read_streaming_missing(self, local_store):
        with pytest.raises(ObjectFetchError):
            list(local_store.read_streaming("gone.log"))

    def test_copy_and_move(self, local_store):
        """Copy keeps the source; move removes it."""
        local_store.put("a.log", b"x")
        local_store.copy("a.log", "archive", "done/a.log")
        assert local_store.read("a.log") == b"x"
        assert (local_store.root / "archive" / "done" / "a.log").exists()

        local_store.move("a.log", "archive", "moved/a.log")
        assert local_store.list_objects() == []
        assert (local_store.root / "archive" / "moved" / "a.log").exists()

    def test_move_onto_itself_keeps_object(self, local_store):
        """Moving to the same bucket and key does not delete the object."""
        local_store.put("a.log", b"x")
        local_store.move("a.log", "logs", "a.log")
        assert local_store.read("a.log") == b"x"

    def test_delete_missing(self, local_store):
        with pytest.raises(ObjectStoreError) as exc_info:
            local_store.delete("gone.log")
        assert exc_info.value.operation == "delete"

    def test_buckets(self, local_store):
        assert local_store.bucket_exists("logs")
        assert not local_store.bucket_exists("archive")
        local_store.create_bucket("archive")
        assert local_store.bucket_exists("archive")


class TestGetObjectStore:
    """Tests for get_object_store."""

    def test_local(self, tmp_path):
        config = InputConfig(bucket="logs", storage="local", local_root=str(tmp_path))
        store = get_object_store(config)
        assert isinstance(store, LocalObjectStore)
        assert store.bucket == "logs"

    def test_s3(self, aws_credentials):
        config = InputConfig(bucket="logs", region="us-east-1")
        store = get_object_store(config)
        assert isinstance(store, S3ObjectStore)
        assert store.uri("a.log") == "s3://logs/a.log"
