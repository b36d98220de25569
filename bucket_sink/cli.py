"""
bucket-sink - stream stdin lines into buffered bucket objects.

Each input line becomes a record {"log": <line>} stamped with the time it
was read. Lines are flushed to the selected output in batches, exactly as a
host process would flush them, and every open object is committed at EOF.

Usage:
    tail -F app.log | bucket-sink --config sink.yaml --tag app
    bucket-sink --init --config sink.yaml

Options:
    --config PATH       Path to the YAML configuration file
    --output-id ID      Output to use (default: first one defined)
    --tag TAG           Tag for the records read from stdin
    --batch-lines N     Lines per flush
    --retries N         Attempts per batch when storage asks for a retry
    --init              Write a default config file and exit
    --verbose           Debug logging

Environment Variables:
    BUCKET_SINK_DEV_LOGGING: Enable debug logging when set
"""

import argparse
import logging
import os
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, List, Optional

from bucket_sink import __version__
from bucket_sink.config import OutputConfig, default_config_yaml
from bucket_sink.errors import ConfigurationError
from bucket_sink.output import BucketOutput, FlushResult, OutputRegistry
from bucket_sink.records import Record

logger = logging.getLogger(__name__)

RETRY_BACKOFF_SECONDS = 1.0


def configure_logging(verbose: bool = False) -> None:
    """Set up root logging for the command line."""
    dev = os.environ.get("BUCKET_SINK_DEV_LOGGING")
    logging.basicConfig(
        level=logging.DEBUG if (verbose or dev) else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    if dev:
        logger.info(f"Enabling dev-style logging (BUCKET_SINK_DEV_LOGGING={dev})")


def flush_with_retry(output: BucketOutput, tag: str, records: List[Record], retries: int) -> bool:
    """
    Flush one batch, retrying while the output asks for it.

    Returns:
        True if the batch was accepted
    """
    for attempt in range(1, retries + 1):
        result = output.flush_records(tag, records)
        if result == FlushResult.OK:
            return True
        if result == FlushResult.ERROR:
            return False
        logger.warning(f"batch of {len(records)} records for {tag} failed (attempt {attempt}/{retries})")
        if attempt < retries:
            time.sleep(RETRY_BACKOFF_SECONDS)
    return False


def pump(stream: IO[str], output: BucketOutput, tag: str, batch_lines: int, retries: int) -> bool:
    """
    Read `stream` to EOF, flushing every `batch_lines` lines.

    Returns:
        False as soon as a batch cannot be delivered
    """
    batch: List[Record] = []
    for line in stream:
        batch.append((datetime.now(timezone.utc), {"log": line.rstrip("\n")}))
        if len(batch) >= batch_lines:
            if not flush_with_retry(output, tag, batch, retries):
                return False
            batch = []

    if batch:
        return flush_with_retry(output, tag, batch, retries)
    return True


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="bucket-sink",
        description="Buffer stdin into size- or time-rolled bucket objects",
    )
    parser.add_argument("--config", type=Path, default=Path("bucket-sink.yaml"), help="Path to config file")
    parser.add_argument("--output-id", help="OutputID to write through (default: first defined)")
    parser.add_argument("--tag", default="stdin", help="Tag for records read from stdin")
    parser.add_argument("--batch-lines", type=int, default=100, help="Lines per flush")
    parser.add_argument("--retries", type=int, default=3, help="Attempts per batch")
    parser.add_argument("--init", action="store_true", help="Write a default config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if args.init:
        if args.config.exists():
            print(f"Error: {args.config} already exists", file=sys.stderr)
            return 1
        args.config.write_text(default_config_yaml())
        print(f"Created {args.config}")
        return 0

    if args.batch_lines < 1 or args.retries < 1:
        print("Error: --batch-lines and --retries must be at least 1", file=sys.stderr)
        return 1

    registry = OutputRegistry()
    try:
        configs = OutputConfig.from_yaml(args.config)
        if not configs:
            raise ConfigurationError(f"{args.config} defines no outputs")
        for config in configs:
            registry.add(config)
        output = registry.get(args.output_id) if args.output_id else registry.outputs[0]
    except FileNotFoundError:
        print(f"Error: Config file not found: {args.config}", file=sys.stderr)
        print("Run 'bucket-sink --init' to create a default config", file=sys.stderr)
        return 1
    except (ConfigurationError, KeyError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    try:
        delivered = pump(sys.stdin, output, args.tag, args.batch_lines, args.retries)
    except KeyboardInterrupt:
        delivered = True
    finally:
        failures = registry.exit()

    if not delivered:
        logger.error("giving up after repeated storage failures")
        return 1
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
