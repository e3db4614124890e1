"""Sync orchestrator driving one end-to-end incremental run for a stream."""

from datetime import datetime, timedelta
from typing import Callable

import structlog

from tablesync.ingestion.remote_fetcher import RemoteFetcher, RemoteFetchError
from tablesync.models.config import StreamConfig
from tablesync.models.records import (
    RawRecord,
    RecordOutcome,
    SyncReport,
    format_timestamp,
    parse_timestamp,
)
from tablesync.processing.field_transformer import FieldTransformer
from tablesync.storage.record_store import RecordStore
from tablesync.sync.checkpoint_store import DEFAULT_KEY_PREFIX, CheckpointStore, stream_id_for
from tablesync.sync.reconciler import Reconciler, SyncHooks

log = structlog.stdlib.get_logger()


def _now() -> datetime:
    return datetime.now().replace(microsecond=0)


class SyncOrchestrator:
    """Orchestrates synchronization between the remote system and one local table.

    The checkpoint write is the single commit point of a run: it happens only
    after the fetch and every record mutation succeeded, and it never moves the
    stored timestamp backwards. At most one run per stream may execute at a
    time; callers must enforce that.
    """

    def __init__(
        self,
        config: StreamConfig,
        checkpoint_store: CheckpointStore,
        fetcher: RemoteFetcher,
        record_store: RecordStore,
        hooks: SyncHooks | None = None,
        clock: Callable[[], datetime] = _now,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ):
        """
        Initialize sync orchestrator.

        Args:
            config: Stream configuration
            checkpoint_store: Store holding the last successful sync time
            fetcher: Client for the remote delta endpoint
            record_store: Local record store for the stream's table
            hooks: Optional follow-up actions for created/updated records
            clock: Returns the current time; used when the remote gives no latest_update
            key_prefix: Prefix of the checkpoint key
        """
        self._config = config
        self._checkpoints = checkpoint_store
        self._fetcher = fetcher
        self._transformer = FieldTransformer(config)
        self._reconciler = Reconciler(record_store, config, hooks)
        self._clock = clock
        self._stream_id = stream_id_for(record_store.name, key_prefix)

        log.info("sync_orchestrator_initialized", stream_id=self._stream_id)

    @property
    def stream_id(self) -> str:
        return self._stream_id

    def run(self) -> bool:
        """Run one sync and report whether every record was applied."""
        return self.sync().success

    def sync(self) -> SyncReport:
        """
        Perform one incremental synchronization.

        This method:
        1. Reads the checkpoint
        2. Fetches records changed since the checkpoint
        3. Transforms and reconciles each record in the order received
        4. Advances the checkpoint to the remote's latest_update (or now)

        An empty delta or a remote-reported error (err > 0) advances the
        checkpoint to now without touching records, unless the stream sets
        ``remote_error_is_failure``. Any exception aborts the run and leaves
        the checkpoint unchanged.

        Returns:
            SyncReport with synchronization results
        """
        start_time = self._clock()
        report = SyncReport(stream_id=self._stream_id, start_time=start_time, end_time=start_time)
        log.info("sync_started", stream_id=self._stream_id, start_time=start_time)

        try:
            since = self._checkpoints.read(self._stream_id)
            report.checkpoint_before = since
            log.info("loaded_checkpoint", stream_id=self._stream_id, checkpoint=format_timestamp(since))

            result = self._fetcher.fetch(since, year=self._config.year, catid=self._config.catid)

            if result.error_code > 0 and self._config.remote_error_is_failure:
                raise RemoteFetchError(f"Remote reported error code {result.error_code}")

            if not result.has_data:
                log.info(
                    "no_remote_updates",
                    stream_id=self._stream_id,
                    error_code=result.error_code,
                )
                report.checkpoint_after = self._advance(since, self._clock())
            else:
                outcomes = self._process_batch(result.records, report)
                failed = [o for o in outcomes if not o.succeeded]

                if failed:
                    report.failed_record_ids = [o.record_id for o in failed]
                    target = self._checkpoint_after_failures(result.records, failed)
                    report.checkpoint_after = (
                        self._advance(since, target) if target is not None else since
                    )
                else:
                    target = result.latest_update or self._clock()
                    report.checkpoint_after = self._advance(since, target)

        except Exception as e:
            report.errors.append(f"Sync failed: {e}")
            report.checkpoint_after = report.checkpoint_before
            log.error(
                "sync_failed",
                stream_id=self._stream_id,
                error=str(e),
                error_type=type(e).__name__,
            )

        report.end_time = self._clock()
        report.duration_seconds = max((report.end_time - start_time).total_seconds(), 0.0)

        log.info(
            "sync_completed",
            stream_id=self._stream_id,
            records_created=report.records_created,
            records_updated=report.records_updated,
            records_deleted=report.records_deleted,
            failed_records=len(report.failed_record_ids),
            checkpoint=format_timestamp(report.checkpoint_after) if report.checkpoint_after else None,
            success=report.success,
        )
        return report

    def _process_batch(self, records: list[RawRecord], report: SyncReport) -> list[RecordOutcome]:
        """
        Transform and reconcile each record sequentially.

        Without failure isolation the first exception propagates and aborts
        the remaining records. With isolation each failure is recorded and
        processing continues.
        """
        outcomes: list[RecordOutcome] = []
        pk = self._config.primary_key

        for raw in records:
            record_id = raw.get(pk)
            try:
                outcome = self._reconciler.apply(self._transformer.transform(raw))
            except Exception as e:
                if not self._config.isolate_record_failures:
                    raise
                log.error("record_failed", stream_id=self._stream_id, record_id=record_id, error=str(e))
                outcomes.append(RecordOutcome(record_id=record_id, error=str(e)))
                continue

            report.count(outcome)
            outcomes.append(RecordOutcome(record_id=record_id, outcome=outcome))

        return outcomes

    def _checkpoint_after_failures(
        self, records: list[RawRecord], failed: list[RecordOutcome]
    ) -> datetime | None:
        """
        Bound the checkpoint so every failed record is fetched again next run.

        Returns one second before the earliest failed record's timestamp, or
        None (hold the checkpoint) when failed records carry no usable timestamp.
        """
        field = self._config.record_timestamp_field
        if not field:
            return None

        pk = self._config.primary_key
        failed_ids = {o.record_id for o in failed}
        timestamps: list[datetime] = []

        for raw in records:
            if raw.get(pk) not in failed_ids:
                continue
            try:
                timestamps.append(parse_timestamp(str(raw.get(field))))
            except ValueError:
                log.warning(
                    "failed_record_without_timestamp",
                    stream_id=self._stream_id,
                    record_id=raw.get(pk),
                    field=field,
                )
                return None

        return min(timestamps) - timedelta(seconds=1)

    def _advance(self, previous: datetime, candidate: datetime) -> datetime:
        """Write the checkpoint, never moving it backwards."""
        new_checkpoint = max(previous, candidate)
        if candidate < previous:
            log.warning(
                "checkpoint_not_moved_backwards",
                stream_id=self._stream_id,
                current=format_timestamp(previous),
                candidate=format_timestamp(candidate),
            )
        self._checkpoints.write(self._stream_id, new_checkpoint)
        return new_checkpoint
