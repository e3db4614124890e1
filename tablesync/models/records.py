"""Record, fetch and report models for synchronization runs."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

# Untyped field-name -> value mappings, as returned by the remote and as persisted
RawRecord = dict[str, Any]
LocalRecord = dict[str, Any]

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Checkpoint used when a stream has never completed a sync
EPOCH = datetime(2000, 1, 1, 0, 0, 0)


def format_timestamp(value: datetime) -> str:
    """Format a checkpoint timestamp as ``YYYY-MM-DD HH:MM:SS``."""
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """
    Parse a ``YYYY-MM-DD HH:MM:SS`` timestamp.

    Raises:
        ValueError: If the value does not match the format
    """
    return datetime.strptime(value, TIMESTAMP_FORMAT)


class Outcome(str, Enum):
    """Terminal state of a single reconciled record."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class FetchResult(BaseModel):
    """Result of one delta request against the remote system."""

    error_code: int = Field(default=0, description="Remote-reported error code (err)")
    records: list[RawRecord] = Field(default_factory=list, description="Raw record batch")
    latest_update: datetime | None = Field(
        default=None, description="Server-reported timestamp of the newest change"
    )

    @property
    def has_data(self) -> bool:
        """Check if the remote returned usable data."""
        return self.error_code <= 0 and bool(self.records)


class RecordOutcome(BaseModel):
    """Outcome of reconciling one record."""

    record_id: Any = Field(default=..., description="Primary key value")
    outcome: Outcome | None = Field(default=None, description="Terminal state, None on failure")
    error: str | None = Field(default=None, description="Error message if processing failed")

    @property
    def succeeded(self) -> bool:
        return self.error is None


class SyncReport(BaseModel):
    """Report of synchronization operation results."""

    stream_id: str = Field(..., description="Checkpoint key of the synced stream")
    records_created: int = Field(default=0, ge=0, description="Number of records created")
    records_updated: int = Field(default=0, ge=0, description="Number of records updated")
    records_deleted: int = Field(default=0, ge=0, description="Number of records deleted")
    failed_record_ids: list[Any] = Field(
        default_factory=list, description="Primary keys of records that failed to apply"
    )
    checkpoint_before: datetime | None = Field(default=None, description="Checkpoint read at start")
    checkpoint_after: datetime | None = Field(default=None, description="Checkpoint after the run")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Sync duration in seconds")
    start_time: datetime = Field(..., description="Sync start timestamp")
    end_time: datetime = Field(..., description="Sync end timestamp")
    errors: list[str] = Field(
        default_factory=list, description="List of errors encountered during sync"
    )

    @property
    def total_changes(self) -> int:
        """Get total number of changes processed."""
        return self.records_created + self.records_updated + self.records_deleted

    @property
    def success(self) -> bool:
        """Check if sync completed without errors."""
        return len(self.errors) == 0 and not self.failed_record_ids

    @property
    def partial(self) -> bool:
        """Check if the run completed but some records could not be applied."""
        return len(self.errors) == 0 and bool(self.failed_record_ids)

    def count(self, outcome: Outcome) -> None:
        """Increment the counter matching a record outcome."""
        if outcome is Outcome.CREATED:
            self.records_created += 1
        elif outcome is Outcome.UPDATED:
            self.records_updated += 1
        else:
            self.records_deleted += 1
