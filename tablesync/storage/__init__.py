"""Local record storage for the table sync system."""

from tablesync.storage.record_store import (
    InMemoryRecordStore,
    RecordStore,
    RecordStoreError,
    SqlAlchemyRecordStore,
)

__all__ = ["InMemoryRecordStore", "RecordStore", "RecordStoreError", "SqlAlchemyRecordStore"]
