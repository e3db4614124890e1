"""Client for the remote delta endpoint."""

from datetime import datetime
from typing import Any

import requests
import structlog
from requests.exceptions import ConnectionError, RequestException, Timeout

from tablesync.models.config import StreamConfig
from tablesync.models.records import FetchResult, format_timestamp, parse_timestamp
from tablesync.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()


class RemoteFetchError(RuntimeError):
    """Raised when the remote cannot be reached or returns an unusable response."""


class RemoteFetcher:
    """Performs one delta request against the remote system per call."""

    def __init__(
        self,
        api_url: str,
        api_token: str,
        verify_tls: bool = True,
        timeout_seconds: float = 30.0,
        session: requests.Session | None = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
    ):
        """
        Initialize the fetcher.

        Args:
            api_url: Remote delta endpoint URL
            api_token: Bearer token sent in the Authorization header
            verify_tls: Verify the server certificate
            timeout_seconds: Per-request timeout
            session: Optional requests session (a new one is created if None)
            max_retries: Retries for connection errors and timeouts
            retry_base_delay: Initial backoff delay in seconds
        """
        self._api_url = api_url
        self._api_token = api_token
        self._verify_tls = verify_tls
        self._timeout = timeout_seconds
        self._session = session or requests.Session()
        self._send_with_retry = exponential_backoff_retry(
            max_retries=max_retries,
            base_delay=retry_base_delay,
            max_delay=60.0,
            exceptions=(ConnectionError, Timeout),
        )(self._send)

        if not verify_tls:
            log.warning("tls_verification_disabled", api_url=api_url)

        log.info("remote_fetcher_initialized", api_url=api_url, verify_tls=verify_tls)

    @classmethod
    def from_config(
        cls, config: StreamConfig, session: requests.Session | None = None, **kwargs: Any
    ) -> "RemoteFetcher":
        """Build a fetcher for a configured stream."""
        return cls(
            api_url=str(config.api_url),
            api_token=config.api_token,
            verify_tls=config.verify_tls,
            timeout_seconds=config.timeout_seconds,
            session=session,
            **kwargs,
        )

    def fetch(self, since: datetime, year: int, catid: int) -> FetchResult:
        """
        Fetch records changed since a checkpoint.

        Args:
            since: Checkpoint timestamp (lower bound of the delta)
            year: Year classification filter
            catid: Category classification filter

        Returns:
            FetchResult with the remote error code, records and latest update

        Raises:
            RemoteFetchError: If the remote is unreachable, answers non-2xx or
                returns a malformed envelope
        """
        params = {"time": format_timestamp(since), "catid": catid, "year": year}
        log.info("fetching_remote_updates", api_url=self._api_url, **params)

        try:
            response = self._send_with_retry(params)
        except RequestException as e:
            log.error("remote_request_failed", api_url=self._api_url, error=str(e))
            raise RemoteFetchError(f"Failed to reach remote {self._api_url}: {e}") from e

        if not response.ok:
            log.error(
                "remote_request_unsuccessful",
                api_url=self._api_url,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise RemoteFetchError(
                f"Remote returned HTTP {response.status_code}: {response.text[:500]}"
            )

        try:
            body = response.json()
        except ValueError as e:
            log.error("remote_response_not_json", api_url=self._api_url, error=str(e))
            raise RemoteFetchError(f"Remote response is not valid JSON: {e}") from e

        result = self._parse_envelope(body)

        log.info(
            "remote_updates_fetched",
            error_code=result.error_code,
            record_count=len(result.records),
            latest_update=result.latest_update,
        )
        return result

    def _send(self, params: dict[str, Any]) -> requests.Response:
        return self._session.get(
            self._api_url,
            params=params,
            headers={
                "Authorization": f"Bearer {self._api_token}",
                "Accept": "application/json",
            },
            verify=self._verify_tls,
            timeout=self._timeout,
        )

    def _parse_envelope(self, body: Any) -> FetchResult:
        """
        Convert the ``{err, data, latest_update}`` envelope to a FetchResult.

        Raises:
            RemoteFetchError: If the envelope shape is not recognized
        """
        if not isinstance(body, dict):
            raise RemoteFetchError(f"Expected a JSON object, got {type(body).__name__}")

        try:
            error_code = int(body.get("err") or 0)
        except (TypeError, ValueError) as e:
            raise RemoteFetchError(f"Invalid err value: {body.get('err')!r}") from e

        if error_code > 0:
            log.warning("remote_reported_error", error_code=error_code, message=body.get("msg"))
            return FetchResult(error_code=error_code)

        data = body.get("data") or []
        # PHP encodes arrays with non-sequential keys as objects; key order is row order
        if isinstance(data, dict):
            data = list(data.values())
        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            raise RemoteFetchError("Expected data to be a list of objects")

        latest_update = None
        raw_latest = body.get("latest_update")
        if raw_latest:
            try:
                latest_update = parse_timestamp(str(raw_latest))
            except ValueError as e:
                raise RemoteFetchError(f"Invalid latest_update value: {raw_latest!r}") from e

        return FetchResult(error_code=error_code, records=data, latest_update=latest_update)
