"""Applies transformed remote records to the local record store."""

from typing import Any, Protocol

import structlog

from tablesync.models.config import StreamConfig
from tablesync.models.records import LocalRecord, Outcome
from tablesync.storage.record_store import RecordStore

log = structlog.stdlib.get_logger()

DELETION_STATUS = 0


class ReconcileError(RuntimeError):
    """Raised when a record cannot be reconciled."""


class SyncHooks(Protocol):
    """Follow-up actions invoked after a local record is created or updated."""

    def on_created(self, record_id: Any) -> None: ...

    def on_updated(self, record_id: Any) -> None: ...


class NoOpHooks:
    """Default hooks: do nothing."""

    def on_created(self, record_id: Any) -> None:
        pass

    def on_updated(self, record_id: Any) -> None:
        pass


def is_deletion(record: LocalRecord) -> bool:
    """Check whether a record carries the deletion sentinel (status == 0).

    Upstream serializers may send integer columns as strings or floats, so
    any status that reads as the number zero counts: 0, "0", 0.0 and " 0 ".
    Missing, empty, boolean and non-numeric values never do.
    """
    status = record.get("status")
    if status is None or isinstance(status, bool):
        return False
    try:
        return float(status) == DELETION_STATUS
    except (TypeError, ValueError):
        return False


class Reconciler:
    """Decides between delete, update and create for each record and applies it."""

    def __init__(
        self,
        record_store: RecordStore,
        config: StreamConfig,
        hooks: SyncHooks | None = None,
    ):
        """
        Initialize reconciler.

        Args:
            record_store: Local record store for the stream's table
            config: Stream configuration (primary key and locally-owned defaults)
            hooks: Optional follow-up actions (no-op if None)

        Raises:
            ValueError: If the store and the config disagree on the primary key
        """
        if record_store.primary_key != config.primary_key:
            raise ValueError(
                f"Record store {record_store.name!r} is keyed on {record_store.primary_key!r} "
                f"but the stream config uses {config.primary_key!r}"
            )

        self._store = record_store
        self._config = config
        self._hooks: SyncHooks = hooks or NoOpHooks()

    def apply(self, record: LocalRecord) -> Outcome:
        """
        Apply one transformed record to the local store.

        Deletions remove the local record physically (no-op if absent).
        Existing records are merged: only fields present in ``record`` are
        written, so locally-owned fields keep their values. New records get the
        locally-owned defaults overlaid before creation.

        Args:
            record: Output of the field transformer

        Returns:
            The terminal outcome for the record

        Raises:
            ReconcileError: If the record has no primary key value
            RecordStoreError: If the store rejects the mutation
        """
        pk = self._config.primary_key
        record_id = record.get(pk)
        if record_id is None:
            raise ReconcileError(f"Record is missing primary key '{pk}'")

        if is_deletion(record):
            removed = self._store.delete(record_id)
            log.info("record_deleted", table=self._store.name, record_id=record_id, existed=removed)
            return Outcome.DELETED

        existing = self._store.find(record_id)

        if existing is not None:
            self._store.update(record_id, record)
            self._hooks.on_updated(record_id)
            log.info("record_updated", table=self._store.name, record_id=record_id)
            return Outcome.UPDATED

        self._store.create({**record, **self._config.mapping_add})
        self._hooks.on_created(record_id)
        log.info("record_created", table=self._store.name, record_id=record_id)
        return Outcome.CREATED
