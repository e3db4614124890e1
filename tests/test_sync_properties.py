"""Property-based tests for synchronization runs.

Feature: table-sync
"""

from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest
import structlog
from hypothesis import given, settings
from hypothesis import strategies as st

from tablesync.ingestion.remote_fetcher import RemoteFetcher, RemoteFetchError
from tablesync.models.config import StreamConfig
from tablesync.models.records import EPOCH, FetchResult
from tablesync.storage.record_store import InMemoryRecordStore, RecordStoreError
from tablesync.sync.checkpoint_store import CheckpointStoreError, InMemoryCheckpointStore
from tablesync.sync.orchestrator import SyncOrchestrator
from tablesync.sync.reconciler import NoOpHooks

log = structlog.stdlib.get_logger()

STREAM_ID = "sync_last_time_meetings"
NOW = datetime(2024, 7, 1, 12, 0, 0)
DEFAULTS = {"is_pay": 0, "is_check": 0, "is_sign": 1, "expoid": 1}


def make_config(**overrides) -> StreamConfig:
    values = {
        "api_url": "https://conference.example.com/api/updates",
        "api_token": "test-token",
        "year": 2025,
        "catid": 3,
        "table": "meetings",
        "mapping_add": DEFAULTS,
        "filter": ["agenda", "guests", "partner", "creator"],
        "mapping_replace": {"addrress": "address"},
        "json_fields": ["title", "content", "address"],
    }
    values.update(overrides)
    return StreamConfig(**values)


def make_fetcher(*results) -> Mock:
    fetcher = Mock(spec=RemoteFetcher)
    fetcher.fetch.side_effect = list(results)
    return fetcher


def make_orchestrator(
    fetcher: Mock,
    store: InMemoryRecordStore | None = None,
    checkpoints: InMemoryCheckpointStore | None = None,
    config: StreamConfig | None = None,
    hooks=None,
    clock=lambda: NOW,
) -> SyncOrchestrator:
    return SyncOrchestrator(
        config=config if config is not None else make_config(),
        checkpoint_store=checkpoints if checkpoints is not None else InMemoryCheckpointStore(),
        fetcher=fetcher,
        record_store=store if store is not None else InMemoryRecordStore("meetings"),
        hooks=hooks,
        clock=clock,
    )


@pytest.fixture
def store():
    return InMemoryRecordStore("meetings")


@pytest.fixture
def checkpoints():
    return InMemoryCheckpointStore({STREAM_ID: datetime(2024, 1, 1)})


class TestScenarios:
    """End-to-end runs against in-memory collaborators."""

    def test_new_record_is_transformed_created_and_checkpoint_advanced(self, store, checkpoints):
        fetcher = make_fetcher(
            FetchResult(
                error_code=0,
                records=[{"id": 5, "status": 1, "title": '{"en":"Talk"}', "agenda": "x"}],
                latest_update=datetime(2024, 6, 1, 10, 0, 0),
            )
        )
        hooks = Mock(spec=NoOpHooks)
        orchestrator = make_orchestrator(fetcher, store, checkpoints, hooks=hooks)

        report = orchestrator.sync()

        assert report.success
        assert report.records_created == 1
        assert store.find(5) == {"id": 5, "status": 1, "title": {"en": "Talk"}, **DEFAULTS}
        assert checkpoints.read(STREAM_ID) == datetime(2024, 6, 1, 10, 0, 0)
        assert report.checkpoint_before == datetime(2024, 1, 1)
        assert report.checkpoint_after == datetime(2024, 6, 1, 10, 0, 0)
        fetcher.fetch.assert_called_once_with(datetime(2024, 1, 1), year=2025, catid=3)
        hooks.on_created.assert_called_once_with(5)

    def test_existing_record_is_merged(self, store, checkpoints):
        store.create({"id": 5, "status": 1, "title": "Old", **DEFAULTS, "is_pay": 1})
        fetcher = make_fetcher(
            FetchResult(
                records=[{"id": 5, "status": 1, "title": '{"en":"Talk"}', "agenda": "x"}],
                latest_update=datetime(2024, 6, 1, 10, 0, 0),
            )
        )

        report = make_orchestrator(fetcher, store, checkpoints).sync()

        assert report.records_updated == 1
        assert store.find(5) == {"id": 5, "status": 1, "title": {"en": "Talk"}, **DEFAULTS, "is_pay": 1}

    def test_remote_error_advances_checkpoint_to_now(self, store, checkpoints):
        fetcher = make_fetcher(FetchResult(error_code=1, records=[]))

        report = make_orchestrator(fetcher, store, checkpoints).sync()

        assert report.success
        assert report.total_changes == 0
        assert len(store) == 0
        assert checkpoints.read(STREAM_ID) == NOW

    def test_empty_delta_advances_checkpoint_to_now(self, store, checkpoints):
        fetcher = make_fetcher(FetchResult(error_code=0, records=[], latest_update=None))

        assert make_orchestrator(fetcher, store, checkpoints).run() is True
        assert checkpoints.read(STREAM_ID) == NOW

    def test_missing_latest_update_uses_now(self, store, checkpoints):
        fetcher = make_fetcher(FetchResult(records=[{"id": 1, "status": 1}], latest_update=None))

        make_orchestrator(fetcher, store, checkpoints).sync()

        assert checkpoints.read(STREAM_ID) == NOW

    def test_remote_error_can_be_configured_as_failure(self, store, checkpoints):
        fetcher = make_fetcher(FetchResult(error_code=2, records=[]))
        config = make_config(remote_error_is_failure=True)

        report = make_orchestrator(fetcher, store, checkpoints, config=config).sync()

        assert not report.success
        assert checkpoints.read(STREAM_ID) == datetime(2024, 1, 1)

    def test_first_run_fetches_since_epoch(self, store):
        fetcher = make_fetcher(FetchResult(records=[]))

        make_orchestrator(fetcher, store, InMemoryCheckpointStore()).sync()

        fetcher.fetch.assert_called_once_with(EPOCH, year=2025, catid=3)

    def test_records_are_applied_in_received_order(self, store, checkpoints):
        fetcher = make_fetcher(
            FetchResult(
                records=[
                    {"id": 1, "status": 1, "title": "First"},
                    {"id": 1, "status": 1, "title": "Second"},
                    {"id": 2, "status": 1},
                    {"id": 2, "status": 0},
                ],
                latest_update=datetime(2024, 6, 1),
            )
        )

        report = make_orchestrator(fetcher, store, checkpoints).sync()

        assert store.find(1)["title"] == "Second"
        assert store.find(2) is None
        assert (report.records_created, report.records_updated, report.records_deleted) == (2, 1, 1)


class TestFailureHandling:
    """Failures leave the checkpoint where it was."""

    def test_transport_failure_aborts_without_advancing(self, store, checkpoints):
        fetcher = make_fetcher(RemoteFetchError("unreachable"))

        report = make_orchestrator(fetcher, store, checkpoints).sync()

        assert not report.success
        assert "unreachable" in report.errors[0]
        assert report.checkpoint_after == datetime(2024, 1, 1)
        assert checkpoints.read(STREAM_ID) == datetime(2024, 1, 1)

    def test_checkpoint_store_failure_is_reported(self, store):
        checkpoints = Mock(spec=InMemoryCheckpointStore)
        checkpoints.read.side_effect = CheckpointStoreError("redis down")
        fetcher = make_fetcher()

        assert make_orchestrator(fetcher, store, checkpoints).run() is False
        fetcher.fetch.assert_not_called()

    def test_record_failure_aborts_remaining_batch(self, checkpoints):
        store = InMemoryRecordStore("meetings")
        store.create({"id": 2, "status": 1})
        failing_store = Mock(wraps=store)
        failing_store.name = "meetings"
        failing_store.primary_key = "id"
        failing_store.update.side_effect = RecordStoreError("constraint violation")
        fetcher = make_fetcher(
            FetchResult(
                records=[{"id": 1, "status": 1}, {"id": 2, "status": 1}, {"id": 3, "status": 1}],
                latest_update=datetime(2024, 6, 1),
            )
        )

        report = make_orchestrator(fetcher, failing_store, checkpoints).sync()

        assert not report.success
        assert report.records_created == 1
        assert store.find(1) is not None
        assert store.find(3) is None
        assert checkpoints.read(STREAM_ID) == datetime(2024, 1, 1)

    def test_isolated_failures_continue_and_hold_checkpoint_without_timestamps(self, checkpoints):
        store = InMemoryRecordStore("meetings")
        store.create({"id": 2, "status": 1})
        failing_store = Mock(wraps=store)
        failing_store.name = "meetings"
        failing_store.primary_key = "id"
        failing_store.update.side_effect = RecordStoreError("constraint violation")
        fetcher = make_fetcher(
            FetchResult(
                records=[{"id": 1, "status": 1}, {"id": 2, "status": 1}, {"id": 3, "status": 1}],
                latest_update=datetime(2024, 6, 1),
            )
        )
        config = make_config(isolate_record_failures=True)

        report = make_orchestrator(fetcher, failing_store, checkpoints, config=config).sync()

        assert report.partial
        assert not report.success
        assert report.failed_record_ids == [2]
        assert report.records_created == 2
        assert store.find(3) is not None
        assert checkpoints.read(STREAM_ID) == datetime(2024, 1, 1)

    def test_isolated_failures_bound_checkpoint_by_record_timestamp(self, checkpoints):
        store = InMemoryRecordStore("meetings")
        failing_store = Mock(wraps=store)
        failing_store.name = "meetings"
        failing_store.primary_key = "id"
        failing_store.create.side_effect = [
            {"id": 1},
            RecordStoreError("constraint violation"),
            {"id": 3},
        ]
        fetcher = make_fetcher(
            FetchResult(
                records=[
                    {"id": 1, "status": 1, "updated_at": "2024-03-01 08:00:00"},
                    {"id": 2, "status": 1, "updated_at": "2024-04-01 09:30:00"},
                    {"id": 3, "status": 1, "updated_at": "2024-05-01 10:00:00"},
                ],
                latest_update=datetime(2024, 6, 1),
            )
        )
        config = make_config(isolate_record_failures=True, record_timestamp_field="updated_at")

        report = make_orchestrator(fetcher, failing_store, checkpoints, config=config).sync()

        assert report.failed_record_ids == [2]
        assert checkpoints.read(STREAM_ID) == datetime(2024, 4, 1, 9, 29, 59)


@given(
    since=st.datetimes(min_value=datetime(2000, 1, 1), max_value=datetime(2030, 1, 1)),
    offset=st.integers(min_value=-10_000_000, max_value=10_000_000),
    has_data=st.booleans(),
)
@settings(max_examples=100)
def test_property_checkpoint_is_monotonic(since: datetime, offset: int, has_data: bool):
    """Property: a successful run never moves the checkpoint backwards."""
    since = since.replace(microsecond=0)
    latest = since + timedelta(seconds=offset)
    checkpoints = InMemoryCheckpointStore({STREAM_ID: since})
    records = [{"id": 1, "status": 1}] if has_data else []
    fetcher = make_fetcher(FetchResult(records=records, latest_update=latest))

    report = make_orchestrator(fetcher, checkpoints=checkpoints, clock=lambda: latest).sync()

    assert report.success
    assert checkpoints.read(STREAM_ID) >= since
    assert checkpoints.read(STREAM_ID) == max(since, latest)


@given(
    since=st.datetimes(min_value=datetime(2000, 1, 1), max_value=datetime(2030, 1, 1)),
    error=st.sampled_from(
        [RemoteFetchError("down"), RecordStoreError("constraint"), CheckpointStoreError("redis")]
    ),
)
@settings(max_examples=30)
def test_property_failed_run_leaves_checkpoint_unchanged(since: datetime, error: Exception):
    """Property: after a failed run the checkpoint equals its pre-run value."""
    since = since.replace(microsecond=0)
    checkpoints = InMemoryCheckpointStore({STREAM_ID: since})
    store = Mock(wraps=InMemoryRecordStore("meetings"))
    store.name = "meetings"
    store.primary_key = "id"
    store.create.side_effect = error
    fetcher = make_fetcher(
        error
        if isinstance(error, RemoteFetchError)
        else FetchResult(records=[{"id": 1, "status": 1}], latest_update=since + timedelta(days=1))
    )

    report = make_orchestrator(fetcher, store=store, checkpoints=checkpoints).sync()

    assert not report.success
    assert checkpoints.read(STREAM_ID) == since


@given(
    records=st.lists(
        st.fixed_dictionaries(
            {
                "id": st.integers(min_value=1, max_value=20),
                "status": st.integers(min_value=0, max_value=3),
                "title": st.sampled_from(['{"en": "Talk"}', "plain", "{broken"]),
                "agenda": st.text(max_size=5),
            }
        ),
        max_size=15,
    )
)
@settings(max_examples=50)
def test_property_second_run_without_new_data_is_idempotent(records: list[dict]):
    """Property: replaying a delta or running on an empty delta changes no records."""
    store = InMemoryRecordStore("meetings")
    checkpoints = InMemoryCheckpointStore()
    latest = datetime(2024, 6, 1, 10, 0, 0)
    fetcher = make_fetcher(
        FetchResult(records=records, latest_update=latest),
        FetchResult(records=records, latest_update=latest),
        FetchResult(records=[]),
    )
    orchestrator = make_orchestrator(fetcher, store, checkpoints, clock=lambda: NOW)

    assert orchestrator.run()
    snapshot = sorted(store.all(), key=lambda r: r["id"])
    first_checkpoint = checkpoints.read(STREAM_ID)

    assert orchestrator.run()
    assert sorted(store.all(), key=lambda r: r["id"]) == snapshot
    assert checkpoints.read(STREAM_ID) >= first_checkpoint

    assert orchestrator.run()
    assert sorted(store.all(), key=lambda r: r["id"]) == snapshot
    assert checkpoints.read(STREAM_ID) == NOW

    log.info("idempotence_verified", record_count=len(snapshot))
