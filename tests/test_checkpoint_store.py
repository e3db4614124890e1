"""Tests for checkpoint stores."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from redis.exceptions import ConnectionError as RedisConnectionError

from tablesync.models.records import EPOCH
from tablesync.sync.checkpoint_store import (
    CheckpointStoreError,
    InMemoryCheckpointStore,
    RedisCheckpointStore,
    stream_id_for,
)

timestamp_strategy = st.datetimes(
    min_value=datetime(2000, 1, 1), max_value=datetime(2099, 12, 31)
).map(lambda dt: dt.replace(microsecond=0))


@pytest.fixture
def redis_client():
    return MagicMock()


def test_stream_id_uses_prefix_and_table_name():
    assert stream_id_for("meetings") == "sync_last_time_meetings"
    assert stream_id_for("meetings", key_prefix="tenant_a:") == "tenant_a:meetings"


def test_redis_read_returns_epoch_when_empty(redis_client):
    redis_client.get.return_value = None
    store = RedisCheckpointStore(redis_client)

    assert store.read("sync_last_time_meetings") == EPOCH
    assert EPOCH == datetime(2000, 1, 1, 0, 0, 0)
    redis_client.get.assert_called_once_with("sync_last_time_meetings")


def test_redis_read_parses_stored_value(redis_client):
    redis_client.get.return_value = "2024-01-01 00:00:00"
    store = RedisCheckpointStore(redis_client)

    assert store.read("sync_last_time_meetings") == datetime(2024, 1, 1)


def test_redis_read_accepts_bytes(redis_client):
    redis_client.get.return_value = b"2024-06-01 10:00:00"
    store = RedisCheckpointStore(redis_client)

    assert store.read("sync_last_time_meetings") == datetime(2024, 6, 1, 10, 0, 0)


def test_redis_read_falls_back_to_epoch_on_garbage(redis_client):
    redis_client.get.return_value = "yesterday"
    store = RedisCheckpointStore(redis_client)

    assert store.read("sync_last_time_meetings") == EPOCH


def test_redis_write_formats_timestamp(redis_client):
    store = RedisCheckpointStore(redis_client)

    store.write("sync_last_time_meetings", datetime(2024, 6, 1, 10, 0, 0, 123456))

    redis_client.set.assert_called_once_with("sync_last_time_meetings", "2024-06-01 10:00:00")


def test_redis_connectivity_errors_are_raised(redis_client):
    redis_client.get.side_effect = RedisConnectionError("connection refused")
    redis_client.set.side_effect = RedisConnectionError("connection refused")
    store = RedisCheckpointStore(redis_client)

    with pytest.raises(CheckpointStoreError):
        store.read("sync_last_time_meetings")
    with pytest.raises(CheckpointStoreError):
        store.write("sync_last_time_meetings", datetime(2024, 1, 1))


def test_in_memory_store_defaults_to_epoch():
    store = InMemoryCheckpointStore()

    assert store.read("sync_last_time_meetings") == EPOCH


@given(first=timestamp_strategy, second=timestamp_strategy)
@settings(max_examples=50)
def test_property_read_observes_last_write(first: datetime, second: datetime):
    """Property: after write(t), read returns t, and later writes overwrite earlier ones."""
    backing: dict[str, str] = {}
    client = MagicMock()
    client.get.side_effect = backing.get
    client.set.side_effect = backing.__setitem__

    for store in (RedisCheckpointStore(client), InMemoryCheckpointStore()):
        store.write("sync_last_time_meetings", first)
        assert store.read("sync_last_time_meetings") == first
        store.write("sync_last_time_meetings", second)
        assert store.read("sync_last_time_meetings") == second
        assert store.read("sync_last_time_exhibitors") == EPOCH
