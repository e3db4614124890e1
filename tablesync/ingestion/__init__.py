"""Remote ingestion components"""

from tablesync.ingestion.remote_fetcher import RemoteFetcher, RemoteFetchError

__all__ = ["RemoteFetcher", "RemoteFetchError"]
