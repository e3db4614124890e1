"""Record store interface and implementations for the local side of a sync."""

from abc import ABC, abstractmethod
from copy import deepcopy
from typing import Any, Optional

import structlog
from sqlalchemy import MetaData, Table, delete, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from tablesync.models.records import LocalRecord

log = structlog.stdlib.get_logger()


class RecordStoreError(RuntimeError):
    """Raised when a record store operation fails."""


class RecordStore(ABC):
    """Abstract interface for local record persistence keyed by primary key.

    The sync engine only needs lookup, create, partial update and physical
    delete; indexing and querying beyond the primary key are left to the
    implementation.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the local table/resource, used to derive the checkpoint key."""

    @property
    @abstractmethod
    def primary_key(self) -> str:
        """Name of the primary key field."""

    @abstractmethod
    def find(self, record_id: Any) -> Optional[LocalRecord]:
        """Return the stored record with this primary key, or None if absent.

        Raises:
            RecordStoreError: If the lookup fails
        """

    @abstractmethod
    def create(self, record: LocalRecord) -> LocalRecord:
        """Insert a new record and return it as stored.

        Raises:
            RecordStoreError: If the insert fails (e.g. constraint violation)
        """

    @abstractmethod
    def update(self, record_id: Any, fields: LocalRecord) -> LocalRecord:
        """Merge ``fields`` onto an existing record, leaving other fields untouched.

        Raises:
            RecordStoreError: If the record does not exist or the update fails
        """

    @abstractmethod
    def delete(self, record_id: Any) -> bool:
        """Physically remove a record. Returns False if it did not exist.

        Raises:
            RecordStoreError: If the delete fails
        """


class InMemoryRecordStore(RecordStore):
    """Dictionary-backed record store, used for tests and dry runs."""

    def __init__(self, name: str, primary_key: str = "id"):
        self._name = name
        self._primary_key = primary_key
        self._records: dict[Any, LocalRecord] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def primary_key(self) -> str:
        return self._primary_key

    def find(self, record_id: Any) -> Optional[LocalRecord]:
        record = self._records.get(record_id)
        return deepcopy(record) if record is not None else None

    def create(self, record: LocalRecord) -> LocalRecord:
        record_id = record.get(self._primary_key)
        if record_id is None:
            raise RecordStoreError(f"Record is missing primary key '{self._primary_key}'")
        if record_id in self._records:
            raise RecordStoreError(f"Duplicate primary key {record_id!r} in {self._name}")
        self._records[record_id] = deepcopy(record)
        return deepcopy(record)

    def update(self, record_id: Any, fields: LocalRecord) -> LocalRecord:
        if record_id not in self._records:
            raise RecordStoreError(f"Record {record_id!r} not found in {self._name}")
        self._records[record_id].update(deepcopy(fields))
        return deepcopy(self._records[record_id])

    def delete(self, record_id: Any) -> bool:
        return self._records.pop(record_id, None) is not None

    def all(self) -> list[LocalRecord]:
        """Return a snapshot of every stored record."""
        return [deepcopy(record) for record in self._records.values()]

    def __len__(self) -> int:
        return len(self._records)


class SqlAlchemyRecordStore(RecordStore):
    """SQLAlchemy implementation of the record store.

    The table must already exist; its schema is reflected at construction.
    Each mutation runs in its own transaction.
    """

    def __init__(self, engine: Engine, table_name: str, primary_key: str = "id"):
        """Initialize the store by reflecting ``table_name``.

        Args:
            engine: SQLAlchemy engine for the local database
            table_name: Name of the existing local table
            primary_key: Name of the primary key column

        Raises:
            RecordStoreError: If the table cannot be reflected or lacks the key column
        """
        self._engine = engine
        self._primary_key = primary_key

        try:
            self._table = Table(table_name, MetaData(), autoload_with=engine)
        except SQLAlchemyError as e:
            log.error("record_store_reflection_failed", table=table_name, error=str(e))
            raise RecordStoreError(f"Failed to reflect table {table_name}: {e}") from e

        if primary_key not in self._table.c:
            raise RecordStoreError(f"Table {table_name} has no column '{primary_key}'")
        self._pk_column = self._table.c[primary_key]

        log.info("sqlalchemy_record_store_initialized", table=table_name, primary_key=primary_key)

    @property
    def name(self) -> str:
        return self._table.name

    @property
    def primary_key(self) -> str:
        return self._primary_key

    def find(self, record_id: Any) -> Optional[LocalRecord]:
        try:
            with self._engine.connect() as conn:
                row = (
                    conn.execute(select(self._table).where(self._pk_column == record_id))
                    .mappings()
                    .first()
                )
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to look up {record_id!r} in {self.name}: {e}") from e

        return dict(row) if row is not None else None

    def create(self, record: LocalRecord) -> LocalRecord:
        try:
            with self._engine.begin() as conn:
                conn.execute(insert(self._table).values(**record))
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to create record in {self.name}: {e}") from e

        return dict(record)

    def update(self, record_id: Any, fields: LocalRecord) -> LocalRecord:
        values = {key: value for key, value in fields.items() if key != self._primary_key}

        try:
            with self._engine.begin() as conn:
                if values:
                    result = conn.execute(
                        update(self._table).where(self._pk_column == record_id).values(**values)
                    )
                    if result.rowcount == 0:
                        raise RecordStoreError(f"Record {record_id!r} not found in {self.name}")
                row = (
                    conn.execute(select(self._table).where(self._pk_column == record_id))
                    .mappings()
                    .first()
                )
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to update {record_id!r} in {self.name}: {e}") from e

        if row is None:
            raise RecordStoreError(f"Record {record_id!r} not found in {self.name}")
        return dict(row)

    def delete(self, record_id: Any) -> bool:
        try:
            with self._engine.begin() as conn:
                result = conn.execute(delete(self._table).where(self._pk_column == record_id))
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to delete {record_id!r} from {self.name}: {e}") from e

        return result.rowcount > 0
