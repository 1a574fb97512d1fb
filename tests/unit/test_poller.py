"""Tests for s3input/lib/poller.py - the poll loop."""

import pytest

from s3input.lib.codecs import LineCodec
from s3input.lib.ingest import IngestionPipeline
from s3input.lib.listing import ObjectLister
from s3input.lib.poller import Poller
from s3input.lib.postprocess import BackupPolicy, PostProcessor
from s3input.lib.sinks import CollectingSink
from s3input.lib.storage.local import LocalObjectStore
from tests.helpers import utc


def _poller(store, checkpoint, clock, sink, **kwargs):
    lister = ObjectLister(store, checkpoint, prefix="app/", clock=clock)
    pipeline = IngestionPipeline(
        store=store,
        codec=LineCodec(),
        sink=sink,
        checkpoint=checkpoint,
        post_processor=PostProcessor(store, BackupPolicy()),
    )
    return Poller(lister, pipeline, **kwargs)


class VanishingStore(LocalObjectStore):
    """Store whose directory disappears mid-listing."""

    def list_objects(self, prefix=""):
        raise FileNotFoundError("vanished")


@pytest.fixture
def sink():
    return CollectingSink()


class TestRunCycle:
    """Tests for a single cycle."""

    def test_processes_new_objects(self, local_store, checkpoint, clock, sink):
        """New objects are emitted and the checkpoint advances."""
        local_store.put("app/a.log", b"one\ntwo\n", utc(2024, 1, 15, 10, 0))
        local_store.put("app/b.log", b"three\n", utc(2024, 1, 15, 11, 0))

        poller = _poller(local_store, checkpoint, clock, sink)
        result = poller.run_cycle()

        assert result.success
        assert result.listed == 2
        assert result.processed == 2
        assert result.records == 3
        assert [r["message"] for r in sink.records] == ["one", "two", "three"]
        assert checkpoint.read() == utc(2024, 1, 15, 11, 0)
        assert poller.cycles == 1

    def test_second_cycle_sees_nothing_new(self, local_store, checkpoint, clock, sink):
        """Processed objects are not listed again."""
        local_store.put("app/a.log", b"one\n", utc(2024, 1, 15, 10, 0))
        poller = _poller(local_store, checkpoint, clock, sink)
        poller.run_cycle()

        result = poller.run_cycle()
        assert result.listed == 0
        assert len(sink.records) == 1

    def test_listing_failure(self, tmp_path, checkpoint, clock, sink):
        """A listing error is reported on the result and nothing advances."""
        store = LocalObjectStore(tmp_path / "buckets", "missing")
        poller = _poller(store, checkpoint, clock, sink)

        result = poller.run_cycle()
        assert not result.success
        assert "Bucket directory does not exist" in result.error
        assert result.listed == 0
        assert not checkpoint.path.exists()

    def test_unexpected_listing_error(self, tmp_path, checkpoint, clock, sink):
        """Errors outside the input's own hierarchy also fail only the cycle."""
        store = VanishingStore(tmp_path / "buckets", "logs")
        poller = _poller(store, checkpoint, clock, sink, interval=3600)

        result = poller.run_cycle()
        assert not result.success
        assert "vanished" in result.error
        assert not checkpoint.path.exists()

        poller.run(once=True)
        assert poller.cycles == 2

    def test_on_cycle_callback(self, local_store, checkpoint, clock, sink):
        """The callback receives each result."""
        seen = []
        poller = _poller(local_store, checkpoint, clock, sink, on_cycle=seen.append)
        result = poller.run_cycle()
        assert seen == [result]


class TestRun:
    """Tests for the loop."""

    def test_run_once(self, local_store, checkpoint, clock, sink):
        """once=True runs exactly one cycle."""
        local_store.put("app/a.log", b"one\n", utc(2024, 1, 15, 10, 0))
        poller = _poller(local_store, checkpoint, clock, sink, interval=3600)
        poller.run(once=True)
        assert poller.cycles == 1
        assert len(sink.records) == 1

    def test_stop_ends_loop(self, local_store, checkpoint, clock, sink):
        """stop() exits at the next sleep boundary."""

        def stop_after_two(result):
            if poller.cycles == 2:
                poller.stop()

        poller = _poller(
            local_store, checkpoint, clock, sink, interval=0, on_cycle=stop_after_two
        )
        poller.run()
        assert poller.stopped
        assert poller.cycles == 2

    def test_stop_before_run(self, local_store, checkpoint, clock, sink):
        """A poller stopped before starting runs no cycles."""
        poller = _poller(local_store, checkpoint, clock, sink)
        poller.stop()
        poller.run()
        assert poller.cycles == 0

    def test_log_context(self, local_store, checkpoint, clock, sink):
        """Log messages carry bucket and executor identity."""
        poller = _poller(local_store, checkpoint, clock, sink)
        assert poller.log.extra == {
            "bucket": "logs",
            "executor_slot": 0,
            "total_executors": 1,
        }
