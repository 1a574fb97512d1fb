"""Record sinks.

A sink receives decorated records one at a time. ``emit`` either
succeeds or raises; the pipeline treats a raise as a failure of the
object being processed.
"""

from __future__ import annotations

import json
import queue
import sys
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import IO, List, Optional, Union

from s3input.lib.codecs import Record

__all__ = ["Sink", "CollectingSink", "QueueSink", "JsonLinesSink"]


class Sink(ABC):
    """Downstream consumer of records."""

    @abstractmethod
    def emit(self, record: Record) -> None:
        """Deliver one record."""

    def close(self) -> None:
        """Release resources (no-op by default)."""


class CollectingSink(Sink):
    """Keeps every record in memory. For embedding and tests."""

    def __init__(self) -> None:
        self.records: List[Record] = []

    def emit(self, record: Record) -> None:
        self.records.append(record)

    def clear(self) -> None:
        self.records.clear()


class QueueSink(Sink):
    """Puts records on a queue consumed by another thread.

    Args:
        target: Queue to put records on
        timeout: Seconds to wait for space on a bounded queue (None blocks)
    """

    def __init__(self, target: "queue.Queue[Record]", timeout: Optional[float] = None) -> None:
        self.queue = target
        self.timeout = timeout

    def emit(self, record: Record) -> None:
        self.queue.put(record, timeout=self.timeout)


class JsonLinesSink(Sink):
    """Writes one JSON document per record to a file or stdout.

    Args:
        output: Path to append to, or "-" for stdout
    """

    def __init__(self, output: Union[str, Path] = "-") -> None:
        self.output = str(output)
        self._lock = threading.Lock()
        self._owns_stream = self.output != "-"
        if self._owns_stream:
            Path(self.output).parent.mkdir(parents=True, exist_ok=True)
            self._stream: IO[str] = open(self.output, "a", encoding="utf-8")
        else:
            self._stream = sys.stdout

    def emit(self, record: Record) -> None:
        line = json.dumps(record, default=str, ensure_ascii=False)
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()

    def close(self) -> None:
        if self._owns_stream and not self._stream.closed:
            self._stream.close()
