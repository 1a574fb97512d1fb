"""Logging setup for the S3 input.

Two pieces sit on top of the standard library:

* ``JSONFormatter`` renders one JSON document per log line. Fields the
  input attaches to its records (the object key, the bucket and executor
  slot, cycle summaries and metrics) are lifted to the top level so log
  aggregators can index them directly.
* ``IngestLogger`` is a ``LoggerAdapter`` that stamps every message from a
  poller with its bucket and executor identity.

Logs always go to stderr; stdout is reserved for emitted records.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, MutableMapping, Optional, Tuple

__all__ = [
    "setup_logging",
    "JSONFormatter",
    "IngestLogger",
    "get_ingest_logger",
]

# Attributes every LogRecord has; anything else arrived through ``extra``
_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

# Ingest fields rendered at the top level of a JSON log line
CONTEXT_FIELDS = ("bucket", "key", "executor_slot", "total_executors", "cycle")

_METRIC_FIELDS = ("metric_name", "metric_value", "metric_unit")

_QUIET_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3")


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Example output:
        {"timestamp": "2025-01-15T10:30:00.123Z", "level": "INFO",
         "logger": "s3input.lib.ingest", "message": "Processed app/a.log (3 records)",
         "origin": "ingest:310", "bucket": "logs", "key": "app/a.log"}

    Metric records get a ``metric`` object ({"name", "value", "unit"});
    other ``extra`` attributes are grouped under ``extra``.

    Args:
        exclude_fields: Extra attributes never written
    """

    def __init__(self, exclude_fields: Tuple[str, ...] = ()):
        super().__init__()
        self.exclude_fields = frozenset(exclude_fields)

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, timezone.utc)
        doc: Dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "origin": f"{record.module}:{record.lineno}",
        }

        attrs = {
            k: v
            for k, v in vars(record).items()
            if k not in _STANDARD_ATTRS and k not in self.exclude_fields
        }

        for name in CONTEXT_FIELDS:
            if name in attrs:
                doc[name] = attrs.pop(name)

        if "metric_name" in attrs:
            doc["metric"] = {
                name[len("metric_"):]: attrs.pop(name)
                for name in _METRIC_FIELDS
                if name in attrs
            }

        if attrs:
            doc["extra"] = attrs

        if record.exc_info:
            doc["exception"] = self.formatException(record.exc_info)

        return json.dumps(doc, default=str)


class IngestLogger(logging.LoggerAdapter):
    """Adapter that merges a fixed context into each record's ``extra``.

    Per-call ``extra`` values win over the context.

    Example:
        log = IngestLogger(logging.getLogger("s3input.lib.poller"))
        log.set_context(bucket="logs", executor_slot=2)
        log.info("Cycle %d: nothing new", 4)
    """

    def __init__(self, logger: logging.Logger, **context: Any) -> None:
        super().__init__(logger, dict(context))

    def set_context(self, **fields: Any) -> None:
        self.extra.update(fields)

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def metric(self, name: str, value: Any, unit: Optional[str] = None) -> None:
        """Log a metric sample at INFO.

        Args:
            name: Metric name (e.g., "objects_processed", "cycle_seconds")
            value: Sample value
            unit: Optional unit (e.g., "objects", "seconds")
        """
        fields: Dict[str, Any] = {"metric_name": name, "metric_value": value}
        if unit:
            fields["metric_unit"] = unit
        self.info("METRIC %s=%s", name, value, extra=fields)


def get_ingest_logger(name: str, **context: Any) -> IngestLogger:
    """Context logger for the named module."""
    return IngestLogger(logging.getLogger(name), **context)


def setup_logging(
    verbose: bool = False,
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure the root logger for a CLI run.

    Args:
        verbose: Log at DEBUG instead of INFO
        json_format: Emit JSON lines (for log aggregation)
        log_file: Also append logs to this file
    """
    level = logging.DEBUG if verbose else logging.INFO
    formatter = (
        JSONFormatter()
        if json_format
        else logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
