"""Broker REST transaction feed adapter implementation."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Final

import httpx

from trade_journal.domain import domain_build_stage_event

from .feed_errors import (
    TransactionFeedAuthError,
    TransactionFeedConnectionError,
    TransactionFeedResponseError,
    TransactionFeedTimeoutError,
)
from .interfaces import TransactionFeedPort, TransactionFetchResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _AdapterRetryStrategy:
    """Immutable retry strategy config and calculation helpers.

    Attributes:
        retry_attempts: Total number of request attempts.
        backoff_base_seconds: Base delay for exponential backoff.
        max_backoff_seconds: Exponential delay cap before jitter.
        jitter_min_multiplier: Minimum jitter multiplier.
        jitter_max_multiplier: Maximum jitter multiplier.
        random_unit_interval_provider: Provider returning value in [0.0, 1.0].
    """

    retry_attempts: int
    backoff_base_seconds: float
    max_backoff_seconds: float
    jitter_min_multiplier: float
    jitter_max_multiplier: float
    random_unit_interval_provider: Callable[[], float]

    def strategy_calculate_retry_wait_seconds(self, retry_index: int) -> float:
        """Calculate exponential retry wait with cap and jitter.

        Args:
            retry_index: Zero-based retry index (0 = wait before the second attempt).

        Returns:
            float: Computed wait seconds.

        Raises:
            ValueError: Raised when retry index is negative.
            RuntimeError: Raised when jitter provider returns out-of-range value.
        """

        if retry_index < 0:
            raise ValueError("retry_index must be >= 0")

        backoff_seconds = self.backoff_base_seconds * (2**retry_index)
        capped_backoff_seconds = min(backoff_seconds, self.max_backoff_seconds)
        return max(0.0, capped_backoff_seconds * self.strategy_calculate_jitter_multiplier())

    def strategy_calculate_jitter_multiplier(self) -> float:
        """Return jitter multiplier using configured min/max bounds.

        Raises:
            RuntimeError: Raised when jitter source returns value outside [0.0, 1.0].
        """

        random_ratio = float(self.random_unit_interval_provider())
        if random_ratio < 0.0 or random_ratio > 1.0:
            raise RuntimeError("random_unit_interval_provider must return a value in [0.0, 1.0]")

        jitter_span = self.jitter_max_multiplier - self.jitter_min_multiplier
        return self.jitter_min_multiplier + (random_ratio * jitter_span)


class BrokerTransactionFeedAdapter(TransactionFeedPort):
    """Adapter for the broker `GET /accounts/{hash}/transactions` endpoint.

    Requests carry an already-issued bearer token; token refresh is owned by
    the caller. HTTP 429, HTTP 5xx and transport failures are retried with
    capped exponential backoff; authentication failures are not.
    """

    _RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})
    _AUTH_STATUS_CODES: Final[frozenset[int]] = frozenset({401, 403})

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.schwabapi.com/trader/v1",
        retry_attempts: int = 4,
        retry_backoff_base_seconds: float = 1.0,
        retry_max_backoff_seconds: float = 30.0,
        jitter_min_multiplier: float = 0.5,
        jitter_max_multiplier: float = 1.5,
        random_unit_interval_provider: Callable[[], float] | None = None,
        request_timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        sleep_provider: Callable[[float], None] | None = None,
    ):
        """Initialize broker transaction feed adapter.

        Args:
            access_token: Bearer access token.
            base_url: Broker trader API base URL.
            retry_attempts: Total number of attempts per fetch.
            retry_backoff_base_seconds: Base retry delay used by exponential backoff.
            retry_max_backoff_seconds: Maximum retry delay cap before applying jitter.
            jitter_min_multiplier: Minimum jitter multiplier for computed retry delay.
            jitter_max_multiplier: Maximum jitter multiplier for computed retry delay.
            random_unit_interval_provider: Optional provider returning random values in [0.0, 1.0].
            request_timeout_seconds: HTTP request timeout in seconds.
            transport: Optional httpx transport (tests inject `httpx.MockTransport`).
            sleep_provider: Optional sleep function used between retries.

        Raises:
            ValueError: Raised when required config values are invalid.
        """

        normalized_access_token = access_token.strip()
        normalized_base_url = base_url.strip()

        if not normalized_access_token:
            raise ValueError("access_token must not be blank")
        if not normalized_base_url:
            raise ValueError("base_url must not be blank")
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")
        if retry_backoff_base_seconds < 0:
            raise ValueError("retry_backoff_base_seconds must be >= 0")
        if retry_max_backoff_seconds <= 0:
            raise ValueError("retry_max_backoff_seconds must be > 0")
        if jitter_min_multiplier <= 0:
            raise ValueError("jitter_min_multiplier must be > 0")
        if jitter_max_multiplier < jitter_min_multiplier:
            raise ValueError("jitter_max_multiplier must be >= jitter_min_multiplier")
        if request_timeout_seconds <= 0:
            raise ValueError("request_timeout_seconds must be > 0")

        self._access_token = normalized_access_token
        self._base_url = normalized_base_url.rstrip("/")
        self._retry_strategy = _AdapterRetryStrategy(
            retry_attempts=retry_attempts,
            backoff_base_seconds=retry_backoff_base_seconds,
            max_backoff_seconds=retry_max_backoff_seconds,
            jitter_min_multiplier=jitter_min_multiplier,
            jitter_max_multiplier=jitter_max_multiplier,
            random_unit_interval_provider=random_unit_interval_provider or random.random,
        )
        self._request_timeout_seconds = request_timeout_seconds
        self._transport = transport
        self._sleep_provider = sleep_provider or time.sleep

    def adapter_source_name(self) -> str:
        """Return stable adapter source label.

        Returns:
            str: Source identifier.

        Raises:
            RuntimeError: This implementation does not raise runtime errors.
        """

        return "broker_transaction_feed"

    def adapter_fetch_transactions(self, account_hash: str, start_date: date, end_date: date) -> TransactionFetchResult:
        """Fetch raw trade transactions for one account and date window.

        Args:
            account_hash: Broker account hash value.
            start_date: Inclusive first day (UTC).
            end_date: Inclusive last day (UTC).

        Returns:
            TransactionFetchResult: Raw payloads and adapter timeline.

        Raises:
            ValueError: Raised when arguments are invalid or the token is rejected.
            TimeoutError: Raised when every attempt timed out.
            ConnectionError: Raised when every attempt failed at transport or retryable status level.
            RuntimeError: Raised when the upstream response violates the feed contract.
        """

        normalized_account_hash = account_hash.strip()
        if not normalized_account_hash:
            raise ValueError("account_hash must not be blank")
        if start_date > end_date:
            raise ValueError("start_date must be <= end_date")

        stage_timeline: list[dict[str, object]] = []
        request_url = f"{self._base_url}/accounts/{normalized_account_hash}/transactions"
        query_parameters = {
            "startDate": f"{start_date.isoformat()}T00:00:00.000Z",
            "endDate": f"{end_date.isoformat()}T23:59:59.999Z",
            "types": "TRADE",
        }
        stage_timeline.append(
            domain_build_stage_event(
                stage="fetch",
                status="started",
                details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        )

        response_payload = self._adapter_get_json_with_retry(
            url=request_url,
            query_parameters=query_parameters,
            stage_timeline=stage_timeline,
        )
        transactions = self._adapter_extract_transactions(response_payload)

        stage_timeline.append(
            domain_build_stage_event(
                stage="fetch",
                status="completed",
                details={"transaction_count": len(transactions)},
            )
        )
        return TransactionFetchResult(
            account_hash=normalized_account_hash,
            transactions=transactions,
            stage_timeline=stage_timeline,
        )

    def _adapter_get_json_with_retry(
        self,
        url: str,
        query_parameters: dict[str, str],
        stage_timeline: list[dict[str, object]],
    ) -> Any:
        """Execute GET attempts until one succeeds or retries are exhausted.

        Args:
            url: Endpoint URL.
            query_parameters: Query string parameters.
            stage_timeline: Mutable diagnostics timeline list.

        Returns:
            Any: Decoded JSON body.

        Raises:
            TransactionFeedAuthError: Raised on `401`/`403`.
            TransactionFeedResponseError: Raised on non-retryable status or undecodable body.
            TransactionFeedTimeoutError: Raised when the final attempt timed out.
            TransactionFeedConnectionError: Raised when the final attempt failed otherwise.
        """

        headers = {"Authorization": f"Bearer {self._access_token}", "Accept": "application/json"}
        last_transport_error: httpx.TransportError | None = None
        last_status_code: int | None = None

        with httpx.Client(timeout=self._request_timeout_seconds, transport=self._transport) as client:
            for attempt_index in range(self._retry_strategy.retry_attempts):
                if attempt_index > 0:
                    wait_seconds = self._retry_strategy.strategy_calculate_retry_wait_seconds(attempt_index - 1)
                    if wait_seconds > 0:
                        self._sleep_provider(wait_seconds)

                try:
                    response = client.get(url, params=query_parameters, headers=headers)
                except httpx.TransportError as error:
                    last_transport_error = error
                    last_status_code = None
                    self._adapter_record_retry(stage_timeline, attempt_index, reason=type(error).__name__)
                    continue

                if response.status_code in self._AUTH_STATUS_CODES:
                    raise TransactionFeedAuthError(
                        f"transaction feed rejected access token with HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                if response.status_code in self._RETRYABLE_STATUS_CODES:
                    last_transport_error = None
                    last_status_code = response.status_code
                    self._adapter_record_retry(stage_timeline, attempt_index, reason=f"http_{response.status_code}")
                    continue
                if response.status_code >= 400:
                    raise TransactionFeedResponseError(
                        f"transaction feed returned HTTP {response.status_code}",
                        status_code=response.status_code,
                    )

                try:
                    return response.json()
                except ValueError as error:
                    raise TransactionFeedResponseError("transaction feed returned a non-JSON body") from error

        logger.warning("transaction feed retries exhausted attempts=%s", self._retry_strategy.retry_attempts)
        if isinstance(last_transport_error, httpx.TimeoutException):
            raise TransactionFeedTimeoutError("transaction feed request timed out") from last_transport_error
        if last_transport_error is not None:
            raise TransactionFeedConnectionError("transaction feed transport request failed") from last_transport_error
        raise TransactionFeedConnectionError(
            f"transaction feed returned HTTP {last_status_code}",
            status_code=last_status_code,
        )

    def _adapter_extract_transactions(self, response_payload: Any) -> list[dict[str, Any]]:
        """Return the transaction list from a decoded response body.

        Accepts either a bare JSON array or an object with a `transactions` array.

        Raises:
            TransactionFeedResponseError: Raised when no transaction list can be found.
        """

        if isinstance(response_payload, dict):
            response_payload = response_payload.get("transactions")
        if not isinstance(response_payload, list):
            raise TransactionFeedResponseError("transaction feed response must be a JSON array")
        return [item for item in response_payload if isinstance(item, dict)]

    def _adapter_record_retry(self, stage_timeline: list[dict[str, object]], attempt_index: int, reason: str) -> None:
        logger.info("transaction feed attempt failed attempt=%s reason=%s", attempt_index + 1, reason)
        stage_timeline.append(
            domain_build_stage_event(
                stage="fetch",
                status="retrying",
                details={"attempt": attempt_index + 1, "reason": reason},
            )
        )
