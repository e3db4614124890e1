#!/usr/bin/env python3
"""
Scheduled synchronization script for table sync streams.

Runs one incremental sync for each requested stream:
- reads the stream checkpoint
- pulls changed records from the remote system
- creates, updates and deletes local records accordingly

Designed to be run on a schedule (e.g., cron or a systemd timer). Only one
run per stream may execute at a time; the scheduler must guarantee that.

Usage:
    python scripts/scheduled_sync.py [--config CONFIG_PATH] [--stream NAME ...]
"""

import argparse
import sys

import structlog

from tablesync.models.records import SyncReport, format_timestamp
from tablesync.providers import build_orchestrator, get_checkpoint_store, get_engine
from tablesync.utils.config_loader import ConfigLoader, ConfigurationError
from tablesync.utils.logging_config import configure_logging_from_config

log = structlog.stdlib.get_logger()


def perform_sync(config_path: str | None = None, stream_names: list[str] | None = None) -> list[SyncReport]:
    """
    Synchronize the requested streams (all configured streams if none given).

    Args:
        config_path: Optional path to configuration file
        stream_names: Names of streams to run

    Returns:
        One SyncReport per stream, in the order run

    Raises:
        ConfigurationError: If configuration is invalid or a stream is unknown
    """
    config_loader = ConfigLoader()
    config = config_loader.load_config(config_path)
    configure_logging_from_config(config.logging)
    config_loader.validate_config(config)

    names = stream_names or sorted(config.streams)
    streams = [(name, config_loader.get_stream(config, name)) for name in names]

    engine = get_engine(config.database)
    checkpoint_store = get_checkpoint_store(config.redis)

    reports = []
    for name, stream in streams:
        log.info("starting_stream_sync", stream=name, table=stream.table)
        orchestrator = build_orchestrator(
            config, stream, engine=engine, checkpoint_store=checkpoint_store
        )
        reports.append(orchestrator.sync())

    return reports


def print_summary(reports: list[SyncReport]) -> None:
    print("\n" + "=" * 60)
    print("SYNCHRONIZATION SUMMARY")
    print("=" * 60)

    for report in reports:
        status = "SUCCESS" if report.success else ("PARTIAL" if report.partial else "FAILED")
        print(f"Stream: {report.stream_id}")
        print(f"Status: {status}")
        print(f"Created: {report.records_created}")
        print(f"Updated: {report.records_updated}")
        print(f"Deleted: {report.records_deleted}")
        if report.failed_record_ids:
            print(f"Failed records: {report.failed_record_ids}")
        if report.checkpoint_after:
            print(f"Checkpoint: {format_timestamp(report.checkpoint_after)}")
        for error in report.errors:
            print(f"Error: {error}")
        print(f"Duration: {report.duration_seconds:.2f} seconds")
        print("-" * 60)


def main():
    """Main entry point for scheduled sync script."""
    parser = argparse.ArgumentParser(description="Scheduled incremental table synchronization")
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file",
        default=None,
    )
    parser.add_argument(
        "--stream",
        action="append",
        dest="streams",
        help="Stream to synchronize (repeatable; default: all configured streams)",
        default=None,
    )

    args = parser.parse_args()

    try:
        reports = perform_sync(config_path=args.config, stream_names=args.streams)
    except ConfigurationError as e:
        log.error("sync_configuration_failed", error=str(e))
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    print_summary(reports)

    sys.exit(0 if all(report.success for report in reports) else 1)


if __name__ == "__main__":
    main()
