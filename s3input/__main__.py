"""CLI entry point for the S3 input.

Usage:
    python -m s3input run ./access_logs.yaml
    python -m s3input run ./access_logs.yaml --once --output events.jsonl
    python -m s3input list ./access_logs.yaml
    python -m s3input checkpoint show ./access_logs.yaml
    python -m s3input validate ./access_logs.yaml

Exit codes:
    0  success
    1  runtime failure (store unreachable, objects failed in --once mode)
    2  configuration error
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import signal
import sys
from typing import Any, List, Optional

from s3input.lib.checkpoint import EPOCH, FileCheckpointStore, format_timestamp
from s3input.lib.config import InputConfig, load_config
from s3input.lib.env import load_env_file
from s3input.lib.errors import ConfigurationError, IngestError
from s3input.lib.ingest import CycleResult
from s3input.lib.logging import setup_logging
from s3input.lib.runner import build_engine
from s3input.lib.sinks import CollectingSink, JsonLinesSink

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


def _load(args: argparse.Namespace) -> InputConfig:
    if args.env_file:
        if not load_env_file(args.env_file):
            logger.warning("No variables loaded from %s", args.env_file)
    config = load_config(args.config)
    if getattr(args, "dry_run", False) and not config.dry_run:
        config = dataclasses.replace(config, dry_run=True)
    return config


def print_cycle(result: CycleResult) -> None:
    """Print a cycle summary to stderr (stdout may carry records)."""
    out = sys.stderr
    print(file=out)
    print("=" * 60, file=out)
    print("Cycle summary", file=out)
    print("=" * 60, file=out)
    if result.error:
        print(f"LISTING FAILED - {result.error.splitlines()[0]}", file=out)
    print(f"Listed:    {result.listed}", file=out)
    print(f"Processed: {result.processed}", file=out)
    print(f"Failed:    {result.failed}", file=out)
    print(f"Skipped:   {result.skipped}", file=out)
    print(f"Records:   {result.records}", file=out)
    print(f"Elapsed:   {result.elapsed_seconds:.2f}s", file=out)
    for item in result.results:
        if item.error:
            print(f"  FAILED {item.key}: {item.error.splitlines()[0]}", file=out)
    print("=" * 60, file=out)


def run_command(args: argparse.Namespace) -> int:
    config = _load(args)
    sink = JsonLinesSink(args.output)
    try:
        poller = build_engine(config, sink)

        if args.once:
            result = poller.run_cycle()
            print_cycle(result)
            return EXIT_OK if result.success else EXIT_FAILURE

        def _handle_signal(signum: int, frame: Any) -> None:
            logger.info("Received signal %d", signum)
            poller.stop()

        previous = {
            sig: signal.signal(sig, _handle_signal)
            for sig in (signal.SIGINT, signal.SIGTERM)
        }
        try:
            poller.run()
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
        return EXIT_OK
    finally:
        sink.close()


def list_command(args: argparse.Namespace) -> int:
    config = dataclasses.replace(_load(args), dry_run=True)
    poller = build_engine(config, CollectingSink())
    partitioner = poller.pipeline.partitioner
    objects = poller.lister.list_new_objects()

    if not objects:
        print("No new objects.")
        return EXIT_OK

    max_key = max(max(len(o.key) for o in objects), 10)
    print(f"  {'Key':<{max_key}}  {'Last modified':<25}  {'Size':>10}  Partition")
    print(f"  {'-' * max_key}  {'-' * 25}  {'-' * 10}  {'-' * 9}")
    for obj in objects:
        partition = partitioner.partition_for(obj.key)
        marker = "" if partitioner.is_local(obj.key) else " (other)"
        print(
            f"  {obj.key:<{max_key}}  {obj.last_modified.isoformat():<25}  "
            f"{obj.size:>10}  {partition}{marker}"
        )
    print()
    local = sum(1 for o in objects if partitioner.is_local(o.key))
    print(f"{len(objects)} new object(s), {local} assigned to this executor")
    return EXIT_OK


def checkpoint_command(args: argparse.Namespace) -> int:
    config = _load(args)
    store = FileCheckpointStore(config.checkpoint_path)

    if args.action == "reset":
        if store.reset():
            print(f"Checkpoint reset: {store.path}")
        else:
            print(f"No checkpoint at {store.path}")
        return EXIT_OK

    value = store.read()
    print(f"Path:  {store.path}")
    if value == EPOCH:
        print("Value: (none - all objects will be processed)")
    else:
        print(f"Value: {format_timestamp(value)}")
    return EXIT_OK


def validate_command(args: argparse.Namespace) -> int:
    config = _load(args)
    print(f"Configuration OK: {args.config}")
    print(json.dumps(config.describe(), indent=2, default=str))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="s3input",
        description="Incrementally ingest objects from an S3 bucket",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Poll forever, writing records to stdout as JSON lines
    s3input run ./access_logs.yaml

    # Run a single cycle and append records to a file
    s3input run ./access_logs.yaml --once --output ./events.jsonl

    # Show what would be processed without downloading anything
    s3input run ./access_logs.yaml --once --dry-run
    s3input list ./access_logs.yaml

    # Inspect or clear the checkpoint
    s3input checkpoint show ./access_logs.yaml
    s3input checkpoint reset ./access_logs.yaml
        """,
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("config", help="Path to the YAML configuration file")
    common.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    common.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    common.add_argument(
        "--log-file",
        help="Write logs to a file in addition to stderr",
    )
    common.add_argument(
        "--env-file",
        help="Load environment variables from a .env file before reading the config",
    )

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    run = sub.add_parser("run", parents=[common], help="Run the poll loop")
    run.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit",
    )
    run.add_argument(
        "--dry-run",
        action="store_true",
        help="List and log candidates without downloading or post-processing",
    )
    run.add_argument(
        "--output",
        default="-",
        help="File to append records to, or - for stdout (default: -)",
    )
    run.set_defaults(handler=run_command)

    ls = sub.add_parser("list", parents=[common], help="List unprocessed objects")
    ls.set_defaults(handler=list_command)

    cp = sub.add_parser("checkpoint", help="Show or reset the checkpoint")
    cp_sub = cp.add_subparsers(dest="action", metavar="ACTION")
    cp_sub.required = True
    for action in ("show", "reset"):
        p = cp_sub.add_parser(action, parents=[common], help=f"{action.capitalize()} the checkpoint")
        p.set_defaults(handler=checkpoint_command)

    val = sub.add_parser("validate", parents=[common], help="Validate a configuration file")
    val.set_defaults(handler=validate_command)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(
        verbose=args.verbose,
        json_format=args.json_logs,
        log_file=args.log_file,
    )

    try:
        return args.handler(args)
    except ConfigurationError as e:
        print(f"\nConfiguration error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except IngestError as e:
        logger.error("%s", e.message)
        print(f"\nError: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
