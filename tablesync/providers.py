"""Centralized provider module for the concrete sync collaborators.

This module provides factory functions that turn configuration into the
objects a SyncOrchestrator needs. Swap implementations here without changing
other code.

Default implementations:
- CheckpointStore: Redis (key = prefix + table name)
- RecordStore: SQLAlchemy over an existing table
- RemoteFetcher: requests session with bearer auth
"""

import redis
import structlog
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import ArgumentError

from tablesync.ingestion.remote_fetcher import RemoteFetcher
from tablesync.models.config import AppConfig, DatabaseConfig, RedisConfig, StreamConfig
from tablesync.storage.record_store import RecordStore, SqlAlchemyRecordStore
from tablesync.sync.checkpoint_store import CheckpointStore, RedisCheckpointStore
from tablesync.sync.orchestrator import SyncOrchestrator
from tablesync.sync.reconciler import SyncHooks

log = structlog.stdlib.get_logger()


def get_checkpoint_store(config: RedisConfig) -> CheckpointStore:
    """Get the configured checkpoint store.

    Args:
        config: Redis connection settings

    Returns:
        CheckpointStore instance

    Raises:
        ValueError: If the Redis URL is invalid
    """
    if not config.url or not config.url.strip():
        error_msg = "redis url cannot be empty"
        log.error("get_checkpoint_store_failed", error=error_msg)
        raise ValueError(error_msg)

    log.info("initializing_checkpoint_store", provider="Redis")
    client = redis.Redis.from_url(config.url, decode_responses=True)
    return RedisCheckpointStore(client)


def get_engine(config: DatabaseConfig) -> Engine:
    """Get a SQLAlchemy engine for the local database.

    Raises:
        ValueError: If the database URL cannot be parsed
    """
    try:
        return create_engine(config.url, echo=config.echo)
    except ArgumentError as e:
        log.error("get_engine_failed", error=str(e))
        raise ValueError(f"Invalid database url: {e}") from e


def get_record_store(engine: Engine, stream: StreamConfig) -> RecordStore:
    """Get the record store for a stream's local table."""
    log.info("initializing_record_store", table=stream.table, provider="SQLAlchemy")
    return SqlAlchemyRecordStore(engine, stream.table, primary_key=stream.primary_key)


def build_orchestrator(
    app_config: AppConfig,
    stream: StreamConfig,
    engine: Engine | None = None,
    checkpoint_store: CheckpointStore | None = None,
    hooks: SyncHooks | None = None,
) -> SyncOrchestrator:
    """Wire a SyncOrchestrator for one configured stream.

    Args:
        app_config: Application configuration (Redis and database sections)
        stream: Stream to synchronize
        engine: Optional engine (created from app_config.database if None)
        checkpoint_store: Optional checkpoint store (Redis from app_config if None)
        hooks: Optional follow-up actions for created/updated records

    Returns:
        Ready-to-run SyncOrchestrator
    """
    engine = engine if engine is not None else get_engine(app_config.database)
    checkpoint_store = (
        checkpoint_store if checkpoint_store is not None else get_checkpoint_store(app_config.redis)
    )

    return SyncOrchestrator(
        config=stream,
        checkpoint_store=checkpoint_store,
        fetcher=RemoteFetcher.from_config(stream),
        record_store=get_record_store(engine, stream),
        hooks=hooks,
        key_prefix=app_config.redis.key_prefix,
    )
