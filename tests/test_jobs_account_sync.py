"""Regression tests for account sync orchestration and run lifecycle persistence."""
# pylint: disable=duplicate-code

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Any
from uuid import uuid4

import pytest

from trade_journal.adapters import TransactionFeedAuthError, TransactionFetchResult
from trade_journal.db import (
    SyncRunAlreadyActiveError,
    SyncRunCounters,
    SyncRunRecord,
    SyncRunState,
    TradeInsertRequest,
    TradeInsertResult,
    TradeStoreError,
)
from trade_journal.jobs import (
    SYNC_RUN_ALREADY_ACTIVE_CODE,
    SYNC_STORE_ERROR_CODE,
    AccountSyncConfig,
    AccountSyncOrchestrator,
    TradeIngestionService,
    job_sync_default_window,
)
from trade_journal.ledger import trade_identity_keys

_AS_OF = datetime(2025, 10, 21, 12, 0, tzinfo=timezone.utc)
_ISRG_CALL = "ISRG  251031C00600000"


def _option_payload(activity_id: str, time_text: str, amount: int, price: str, position_effect: str) -> dict[str, Any]:
    return {
        "activityId": activity_id,
        "time": time_text,
        "type": "TRADE",
        "transferItems": [
            {
                "instrument": {
                    "assetType": "OPTION",
                    "symbol": _ISRG_CALL,
                    "underlyingSymbol": "ISRG",
                    "putCall": "CALL",
                },
                "amount": amount,
                "price": price,
                "positionEffect": position_effect,
            }
        ],
    }


def _scale_out_payloads() -> list[dict[str, Any]]:
    return [
        _option_payload("O1", "2025-10-01T14:30:00Z", 10, "2.00", "OPENING"),
        _option_payload("C1", "2025-10-05T15:00:00Z", -4, "1.00", "CLOSING"),
        _option_payload("C2", "2025-10-20T15:00:00Z", -6, "4.00", "CLOSING"),
    ]


class _InMemorySyncRunRepository:
    """Sync run repository stub enforcing one active run per account."""

    def __init__(self):
        self.records: dict[str, SyncRunRecord] = {}

    def db_sync_run_create_started(self, account_id: str, run_type: str) -> SyncRunRecord:
        for record in self.records.values():
            if record.account_id == account_id and record.state.status == "started":
                raise SyncRunAlreadyActiveError(f"sync run already active for account_id={account_id}")
        record = SyncRunRecord(
            sync_run_id=str(uuid4()),
            account_id=account_id,
            run_type=run_type,
            state=SyncRunState(
                status="started",
                started_at_utc=_AS_OF,
                ended_at_utc=None,
                duration_ms=None,
                error_code=None,
                error_message=None,
                diagnostics=None,
            ),
            counters=SyncRunCounters(),
            created_at_utc=_AS_OF,
        )
        self.records[record.sync_run_id] = record
        return record

    def db_sync_run_finalize(self, sync_run_id, status, counters, error_code, error_message, diagnostics):
        record = self.records[sync_run_id]
        finalized = replace(
            record,
            state=replace(
                record.state,
                status=status,
                ended_at_utc=_AS_OF,
                duration_ms=0,
                error_code=error_code,
                error_message=error_message,
                diagnostics=diagnostics,
            ),
            counters=counters,
        )
        self.records[sync_run_id] = finalized
        return finalized


class _InMemoryTradeRepository:
    """Trade repository stub enforcing identity uniqueness."""

    def __init__(self):
        self.requests: list[TradeInsertRequest] = []

    def db_trade_identity_list(self, account_id: str) -> set[str]:
        identities: set[str] = set()
        for request in self.requests:
            if request.account_id == account_id:
                identities.update(trade_identity_keys(request.trade))
        return identities

    def db_trade_insert_many(self, requests: list[TradeInsertRequest]) -> TradeInsertResult:
        self.requests.extend(requests)
        return TradeInsertResult(inserted_count=len(requests), conflict_count=0)


class _FailingTradeRepository:
    """Trade repository stub simulating an unreachable store."""

    def db_trade_identity_list(self, account_id: str) -> set[str]:
        raise TradeStoreError(f"trade store unavailable account_id={account_id}")

    def db_trade_insert_many(self, requests: list[TradeInsertRequest]) -> TradeInsertResult:
        raise TradeStoreError("trade store unavailable")


class _StaticTransactionFeed:
    """Feed stub returning fixed payloads and recording requested windows."""

    def __init__(self, transactions: list[dict[str, Any]] | None = None, error: Exception | None = None):
        self._transactions = transactions or []
        self._error = error
        self.requests: list[tuple[str, date, date]] = []

    def adapter_source_name(self) -> str:
        return "static_feed"

    def adapter_fetch_transactions(self, account_hash: str, start_date: date, end_date: date) -> TransactionFetchResult:
        self.requests.append((account_hash, start_date, end_date))
        if self._error is not None:
            raise self._error
        return TransactionFetchResult(account_hash=account_hash, transactions=list(self._transactions), stage_timeline=[])


def _orchestrator(
    sync_run_repository: _InMemorySyncRunRepository,
    trade_repository=None,
    transaction_feed=None,
    account_ids: tuple[str, ...] = (),
) -> AccountSyncOrchestrator:
    return AccountSyncOrchestrator(
        sync_run_repository=sync_run_repository,
        ingestion_service=TradeIngestionService(repository=trade_repository or _InMemoryTradeRepository()),
        config=AccountSyncConfig(exchange="Schwab", account_ids=account_ids, run_type="manual"),
        transaction_feed=transaction_feed,
    )


def test_sync_pushed_batch_persists_trades_and_finalizes_success() -> None:
    sync_run_repository = _InMemorySyncRunRepository()
    trade_repository = _InMemoryTradeRepository()
    orchestrator = _orchestrator(sync_run_repository, trade_repository)

    result = orchestrator.job_sync_transactions("acct-1", _scale_out_payloads(), as_of=_AS_OF)

    assert result.status == "success"
    assert result.counters == SyncRunCounters(transaction_count=3, trade_count=2, inserted_count=2, duplicate_count=0)
    assert result.open_positions == ()
    record = sync_run_repository.records[result.sync_run_id]
    assert record.state.status == "success"
    assert record.counters.inserted_count == 2
    assert record.state.diagnostics[0]["stage"] == "run"
    assert record.state.diagnostics[-1]["status"] == "success"
    assert len(trade_repository.requests) == 2


def test_sync_rerun_of_same_batch_reports_duplicates_only() -> None:
    sync_run_repository = _InMemorySyncRunRepository()
    orchestrator = _orchestrator(sync_run_repository)

    orchestrator.job_sync_transactions("acct-1", _scale_out_payloads(), as_of=_AS_OF)
    second_result = orchestrator.job_sync_transactions("acct-1", _scale_out_payloads(), as_of=_AS_OF)

    assert second_result.status == "success"
    assert second_result.counters.inserted_count == 0
    assert second_result.counters.duplicate_count == 2


def test_sync_reports_unmatched_and_malformed_findings() -> None:
    payloads = [
        _option_payload("C9", "2025-10-05T15:00:00Z", -2, "1.00", "CLOSING"),
        {"time": "2025-10-05T15:00:00Z", "type": "TRADE", "transferItems": []},
    ]

    result = _orchestrator(_InMemorySyncRunRepository()).job_sync_transactions("acct-1", payloads, as_of=_AS_OF)

    assert result.status == "success"
    assert result.counters.unmatched_count == 1
    assert result.counters.malformed_count == 1
    assert result.counters.trade_count == 0


def test_sync_store_failure_finalizes_failed_run_and_propagates() -> None:
    sync_run_repository = _InMemorySyncRunRepository()
    orchestrator = _orchestrator(sync_run_repository, _FailingTradeRepository())

    with pytest.raises(TradeStoreError):
        orchestrator.job_sync_transactions("acct-1", _scale_out_payloads(), as_of=_AS_OF)

    (record,) = sync_run_repository.records.values()
    assert record.state.status == "failed"
    assert record.state.error_code == SYNC_STORE_ERROR_CODE
    assert record.counters.trade_count == 2


def test_sync_rejects_second_run_while_one_is_active() -> None:
    sync_run_repository = _InMemorySyncRunRepository()
    sync_run_repository.db_sync_run_create_started("acct-1", "scheduled")

    with pytest.raises(SyncRunAlreadyActiveError):
        _orchestrator(sync_run_repository).job_sync_transactions("acct-1", _scale_out_payloads(), as_of=_AS_OF)


def test_sync_accounts_isolates_failures_per_account() -> None:
    sync_run_repository = _InMemorySyncRunRepository()
    sync_run_repository.db_sync_run_create_started("acct-busy", "scheduled")
    feed = _StaticTransactionFeed(transactions=_scale_out_payloads())

    results = _orchestrator(sync_run_repository, transaction_feed=feed).job_sync_accounts(
        ["acct-busy", "acct-2"],
        as_of=_AS_OF,
    )

    assert [result.status for result in results] == ["failed", "success"]
    assert results[0].error_code == SYNC_RUN_ALREADY_ACTIVE_CODE
    assert results[1].counters.inserted_count == 2


def test_sync_account_fetches_lookback_window_from_feed() -> None:
    feed = _StaticTransactionFeed(transactions=_scale_out_payloads())

    result = _orchestrator(_InMemorySyncRunRepository(), transaction_feed=feed).job_sync_account(
        "acct-1",
        account_hash="HASH-1",
        as_of=_AS_OF,
    )

    assert result.status == "success"
    assert feed.requests == [("HASH-1", date(2025, 4, 24), date(2025, 10, 21))]


def test_sync_account_feed_auth_failure_yields_failed_result() -> None:
    sync_run_repository = _InMemorySyncRunRepository()
    feed = _StaticTransactionFeed(error=TransactionFeedAuthError("token rejected", status_code=401))

    result = _orchestrator(sync_run_repository, transaction_feed=feed).job_sync_account("acct-1", as_of=_AS_OF)

    assert result.status == "failed"
    assert result.error_code == "SYNC_FEED_AUTH_ERROR"
    assert sync_run_repository.records[result.sync_run_id].state.status == "failed"


def test_sync_account_requires_configured_feed() -> None:
    with pytest.raises(ValueError, match="transaction_feed"):
        _orchestrator(_InMemorySyncRunRepository()).job_sync_account("acct-1", as_of=_AS_OF)


def test_job_execute_reports_aggregate_status() -> None:
    feed = _StaticTransactionFeed(transactions=_scale_out_payloads())
    orchestrator = _orchestrator(_InMemorySyncRunRepository(), transaction_feed=feed, account_ids=("acct-1",))

    execution = orchestrator.job_execute("account_sync")

    assert orchestrator.job_supported_names() == ("account_sync",)
    assert (execution.job_name, execution.status) == ("account_sync", "success")
    assert (execution.succeeded_accounts, execution.failed_accounts) == (("acct-1",), ())
    with pytest.raises(ValueError, match="unsupported"):
        orchestrator.job_execute("snapshot")


def test_job_sync_default_window() -> None:
    assert job_sync_default_window(date(2025, 10, 21), 30) == (date(2025, 9, 21), date(2025, 10, 21))
    with pytest.raises(ValueError):
        job_sync_default_window(date(2025, 10, 21), 0)
