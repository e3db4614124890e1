"""Synchronization components for managing incremental updates."""

from tablesync.sync.checkpoint_store import (
    CheckpointStore,
    CheckpointStoreError,
    InMemoryCheckpointStore,
    RedisCheckpointStore,
    stream_id_for,
)
from tablesync.sync.orchestrator import SyncOrchestrator
from tablesync.sync.reconciler import NoOpHooks, ReconcileError, Reconciler, SyncHooks, is_deletion

__all__ = [
    "CheckpointStore",
    "CheckpointStoreError",
    "InMemoryCheckpointStore",
    "NoOpHooks",
    "ReconcileError",
    "Reconciler",
    "RedisCheckpointStore",
    "SyncHooks",
    "SyncOrchestrator",
    "is_deletion",
    "stream_id_for",
]
