"""Data models for the table sync system."""

from tablesync.models.config import (
    AppConfig,
    DatabaseConfig,
    LoggingConfig,
    RedisConfig,
    StreamConfig,
)
from tablesync.models.records import (
    EPOCH,
    TIMESTAMP_FORMAT,
    FetchResult,
    LocalRecord,
    Outcome,
    RawRecord,
    RecordOutcome,
    SyncReport,
    format_timestamp,
    parse_timestamp,
)

__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "RedisConfig",
    "StreamConfig",
    "EPOCH",
    "TIMESTAMP_FORMAT",
    "FetchResult",
    "LocalRecord",
    "Outcome",
    "RawRecord",
    "RecordOutcome",
    "SyncReport",
    "format_timestamp",
    "parse_timestamp",
]
