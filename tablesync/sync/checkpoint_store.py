"""Checkpoint storage for maintaining per-stream synchronization state."""

from abc import ABC, abstractmethod
from datetime import datetime

import structlog
from redis import Redis
from redis.exceptions import RedisError

from tablesync.models.records import EPOCH, format_timestamp, parse_timestamp

log = structlog.stdlib.get_logger()

DEFAULT_KEY_PREFIX = "sync_last_time_"


class CheckpointStoreError(RuntimeError):
    """Raised when the checkpoint backend cannot be reached."""


def stream_id_for(table: str, key_prefix: str = DEFAULT_KEY_PREFIX) -> str:
    """Derive the checkpoint key for a local table."""
    return f"{key_prefix}{table}"


class CheckpointStore(ABC):
    """Durable mapping from stream id to the last completed sync timestamp."""

    @abstractmethod
    def read(self, stream_id: str) -> datetime:
        """Return the stored checkpoint, or EPOCH when none exists.

        Raises:
            CheckpointStoreError: If the backing store cannot be reached
        """

    @abstractmethod
    def write(self, stream_id: str, timestamp: datetime) -> None:
        """Store a checkpoint, overwriting any previous value.

        Raises:
            CheckpointStoreError: If the backing store cannot be reached
        """


class InMemoryCheckpointStore(CheckpointStore):
    """Process-local checkpoint store for tests and dry runs."""

    def __init__(self, initial: dict[str, datetime] | None = None):
        self._checkpoints: dict[str, datetime] = dict(initial or {})

    def read(self, stream_id: str) -> datetime:
        return self._checkpoints.get(stream_id, EPOCH)

    def write(self, stream_id: str, timestamp: datetime) -> None:
        # Round-trip through the wire format so precision matches the Redis store
        self._checkpoints[stream_id] = parse_timestamp(format_timestamp(timestamp))


class RedisCheckpointStore(CheckpointStore):
    """Stores checkpoints as ``YYYY-MM-DD HH:MM:SS`` strings in Redis."""

    def __init__(self, client: Redis):
        """
        Initialize Redis checkpoint store.

        Args:
            client: redis-py client
        """
        self._client: Redis = client
        log.info("redis_checkpoint_store_initialized")

    def read(self, stream_id: str) -> datetime:
        try:
            raw = self._client.get(stream_id)
        except RedisError as e:
            log.error("failed_to_read_checkpoint", stream_id=stream_id, error=str(e))
            raise CheckpointStoreError(f"Failed to read checkpoint {stream_id}: {e}") from e

        if not raw:
            log.info("no_checkpoint_found", stream_id=stream_id, default=format_timestamp(EPOCH))
            return EPOCH

        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")

        try:
            return parse_timestamp(raw)
        except ValueError:
            log.warning("invalid_checkpoint_value", stream_id=stream_id, value=raw)
            return EPOCH

    def write(self, stream_id: str, timestamp: datetime) -> None:
        value = format_timestamp(timestamp)

        try:
            self._client.set(stream_id, value)
        except RedisError as e:
            log.error("failed_to_write_checkpoint", stream_id=stream_id, error=str(e))
            raise CheckpointStoreError(f"Failed to write checkpoint {stream_id}: {e}") from e

        log.info("checkpoint_saved", stream_id=stream_id, checkpoint=value)
