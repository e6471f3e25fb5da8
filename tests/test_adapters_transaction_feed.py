"""Regression tests for the broker transaction feed adapter retry and error mapping."""

from __future__ import annotations

from datetime import date

import httpx
import pytest

from trade_journal.adapters import (
    BrokerTransactionFeedAdapter,
    TransactionFeedAuthError,
    TransactionFeedConnectionError,
    TransactionFeedResponseError,
    TransactionFeedTimeoutError,
)

_TRANSACTION = {"activityId": 1001, "time": "2025-10-01T14:30:00+0000", "type": "TRADE", "transferItems": []}


class _ScriptedTransport(httpx.MockTransport):
    """Mock transport replaying one scripted outcome per request."""

    def __init__(self, outcomes: list[object]):
        self.outcomes = list(outcomes)
        self.requests: list[httpx.Request] = []
        super().__init__(self._transport_handle)

    def _transport_handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _adapter(transport: httpx.BaseTransport, sleeps: list[float], retry_attempts: int = 3) -> BrokerTransactionFeedAdapter:
    return BrokerTransactionFeedAdapter(
        access_token="token-123",
        base_url="https://broker.test/trader/v1/",
        retry_attempts=retry_attempts,
        retry_backoff_base_seconds=1.0,
        retry_max_backoff_seconds=30.0,
        random_unit_interval_provider=lambda: 0.5,
        transport=transport,
        sleep_provider=sleeps.append,
    )


def test_feed_fetch_sends_window_and_bearer_token() -> None:
    transport = _ScriptedTransport([httpx.Response(200, json=[_TRANSACTION])])

    result = _adapter(transport, []).adapter_fetch_transactions("HASH-1", date(2025, 10, 1), date(2025, 10, 31))

    assert result.account_hash == "HASH-1"
    assert result.transactions == [_TRANSACTION]
    (request,) = transport.requests
    assert request.url.path == "/trader/v1/accounts/HASH-1/transactions"
    assert request.url.params["startDate"] == "2025-10-01T00:00:00.000Z"
    assert request.url.params["endDate"] == "2025-10-31T23:59:59.999Z"
    assert request.url.params["types"] == "TRADE"
    assert request.headers["Authorization"] == "Bearer token-123"
    assert [event["status"] for event in result.stage_timeline] == ["started", "completed"]


def test_feed_retries_retryable_status_then_succeeds() -> None:
    sleeps: list[float] = []
    transport = _ScriptedTransport(
        [httpx.Response(503), httpx.Response(200, json={"transactions": [_TRANSACTION, "noise"]})]
    )

    result = _adapter(transport, sleeps).adapter_fetch_transactions("HASH-1", date(2025, 10, 1), date(2025, 10, 31))

    assert result.transactions == [_TRANSACTION]
    assert sleeps == [1.0]
    assert [event["status"] for event in result.stage_timeline] == ["started", "retrying", "completed"]


def test_feed_raises_timeout_after_exhausting_retries() -> None:
    sleeps: list[float] = []
    transport = _ScriptedTransport([httpx.ReadTimeout("slow"), httpx.ReadTimeout("slow"), httpx.ReadTimeout("slow")])

    with pytest.raises(TransactionFeedTimeoutError):
        _adapter(transport, sleeps).adapter_fetch_transactions("HASH-1", date(2025, 10, 1), date(2025, 10, 31))

    assert len(transport.requests) == 3
    assert sleeps == [1.0, 2.0]


def test_feed_raises_connection_error_when_status_never_recovers() -> None:
    transport = _ScriptedTransport([httpx.Response(429), httpx.Response(502)])

    with pytest.raises(TransactionFeedConnectionError) as error_info:
        _adapter(transport, [], retry_attempts=2).adapter_fetch_transactions(
            "HASH-1", date(2025, 10, 1), date(2025, 10, 31)
        )

    assert error_info.value.status_code == 502


def test_feed_does_not_retry_rejected_token() -> None:
    transport = _ScriptedTransport([httpx.Response(401), httpx.Response(200, json=[])])

    with pytest.raises(TransactionFeedAuthError) as error_info:
        _adapter(transport, []).adapter_fetch_transactions("HASH-1", date(2025, 10, 1), date(2025, 10, 31))

    assert error_info.value.status_code == 401
    assert len(transport.requests) == 1


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(400, json={"message": "bad window"}),
        httpx.Response(200, text="<html>maintenance</html>"),
        httpx.Response(200, json={"items": []}),
    ],
)
def test_feed_rejects_contract_violations(response: httpx.Response) -> None:
    with pytest.raises(TransactionFeedResponseError):
        _adapter(_ScriptedTransport([response]), []).adapter_fetch_transactions(
            "HASH-1", date(2025, 10, 1), date(2025, 10, 31)
        )


def test_feed_validates_configuration_and_arguments() -> None:
    with pytest.raises(ValueError, match="access_token"):
        BrokerTransactionFeedAdapter(access_token=" ")
    with pytest.raises(ValueError, match="jitter_max_multiplier"):
        BrokerTransactionFeedAdapter(access_token="token", jitter_min_multiplier=2.0, jitter_max_multiplier=1.0)
    with pytest.raises(ValueError, match="start_date"):
        _adapter(_ScriptedTransport([]), []).adapter_fetch_transactions("HASH-1", date(2025, 10, 31), date(2025, 10, 1))
