"""Poll loop driving discovery and processing.

One cycle lists new objects, hands them to the ingestion pipeline in
order, and logs a summary. Between cycles the loop waits on an event so
a stop request is honored at the sleep boundary; an in-flight cycle is
always allowed to finish.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from s3input.lib.errors import IngestError
from s3input.lib.ingest import CycleResult, IngestionPipeline
from s3input.lib.listing import ListingMode, ObjectLister
from s3input.lib.logging import get_ingest_logger

__all__ = ["Poller"]


class Poller:
    """Runs discovery and processing cycles until stopped.

    Args:
        lister: Produces the candidates for each cycle
        pipeline: Processes the candidates
        interval: Seconds to wait between cycles
        on_cycle: Optional callback invoked with each CycleResult

    Example:
        >>> poller = build_engine(config, JsonLinesSink("-"))
        >>> poller.run_cycle()
        CycleResult(listed=3, processed=3, failed=0, skipped=0, records=120)
    """

    def __init__(
        self,
        lister: ObjectLister,
        pipeline: IngestionPipeline,
        interval: float = 60.0,
        on_cycle: Optional[Callable[[CycleResult], None]] = None,
    ) -> None:
        self.lister = lister
        self.pipeline = pipeline
        self.interval = interval
        self.on_cycle = on_cycle
        self.cycles = 0
        self._stop_event = threading.Event()
        self.log = get_ingest_logger(__name__)

        partitioner = pipeline.partitioner
        self.log.set_context(
            bucket=pipeline.store.bucket,
            executor_slot=partitioner.executor_slot,
            total_executors=partitioner.total_executors,
        )

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Request the loop to exit at the next sleep boundary."""
        if not self._stop_event.is_set():
            self.log.info("Stop requested")
        self._stop_event.set()

    def run_cycle(self) -> CycleResult:
        """Run one discovery and processing cycle.

        A listing failure aborts this cycle only; it is reported on the
        returned result and the checkpoint is untouched.
        """
        start = time.monotonic()
        mode = self.lister.mode
        self.cycles += 1

        try:
            objects = self.lister.list_new_objects()
        except IngestError as e:
            self.log.error("Listing failed (%s mode): %s", mode.value, e.message)
            self.log.debug("Listing failure detail:\n%s", e)
            return self._failed_cycle(e.message, start)
        except Exception as e:
            self.log.exception("Listing failed (%s mode): %s", mode.value, e)
            return self._failed_cycle(str(e) or type(e).__name__, start)

        self.log.debug("Listed %d new object(s) in %s mode", len(objects), mode.value)
        result = self.pipeline.process_objects(objects)
        result.elapsed_seconds = time.monotonic() - start
        self._report(result)
        return result

    def run(self, once: bool = False) -> None:
        """Run cycles until stop() is called (or a single cycle when once)."""
        self.log.info("Polling every %ss", self.interval)
        while not self._stop_event.is_set():
            self.run_cycle()
            if once:
                break
            if self.lister.mode is ListingMode.CLOSED:
                self.log.debug("End date has passed; no further objects will be listed")
            self._stop_event.wait(self.interval)
        self.log.info("Poll loop stopped after %d cycle(s)", self.cycles)

    def _failed_cycle(self, error: str, start: float) -> CycleResult:
        result = CycleResult(error=error, elapsed_seconds=time.monotonic() - start)
        self._report(result)
        return result

    def _report(self, result: CycleResult) -> None:
        summary = result.to_dict()
        if result.error is None and result.listed == 0:
            self.log.debug("Cycle %d: nothing new", self.cycles)
        else:
            self.log.info(
                "Cycle %d: listed=%d processed=%d failed=%d skipped=%d records=%d",
                self.cycles,
                result.listed,
                result.processed,
                result.failed,
                result.skipped,
                result.records,
                extra={"cycle": summary},
            )
        self.log.metric("cycle_seconds", round(result.elapsed_seconds, 3), unit="seconds")
        self.log.metric("objects_processed", result.processed, unit="objects")
        if result.failed:
            self.log.metric("objects_failed", result.failed, unit="objects")

        if self.on_cycle is not None:
            self.on_cycle(result)
