"""Regression tests for HTTP routes over trades, positions, sync runs and maintenance."""
# pylint: disable=duplicate-code

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

from fastapi.testclient import TestClient

from trade_journal.api.application import create_api_application
from trade_journal.config import AppSettings
from trade_journal.db import (
    SyncRunAlreadyActiveError,
    SyncRunCounters,
    SyncRunRecord,
    SyncRunState,
    TradeRecord,
    TradeStoreError,
)
from trade_journal.domain import HealthStatus, Trade
from trade_journal.jobs import DuplicateCleanupResult, SyncResult
from trade_journal.ledger import PositionLifecycleService

_SYNC_RUN_ID = "5b0f3c1e-6a2d-4f7e-9c11-2d4f7a9b8e01"
_STARTED_AT = datetime(2025, 10, 21, 12, 0, tzinfo=timezone.utc)


def _option_trade(quantity: str, exit_price: str, exit_day: int) -> Trade:
    quantity_value = Decimal(quantity)
    return Trade(
        exchange="Schwab",
        instrument_symbol="ISRG 600C",
        asset_type="OPTION",
        direction="LONG",
        entry_price=Decimal("2.00"),
        exit_price=Decimal(exit_price),
        quantity=quantity_value,
        entry_date=datetime(2025, 10, 1, 14, 30, tzinfo=timezone.utc),
        exit_date=datetime(2025, 10, exit_day, 15, 0, tzinfo=timezone.utc),
        fees=Decimal("0"),
        pnl=(Decimal(exit_price) - Decimal("2.00")) * quantity_value * Decimal("100"),
        pnl_percent=Decimal("0"),
        external_id=f"O1-C{exit_day}",
        underlying_symbol="ISRG",
        option_type="CALL",
        strike_price=Decimal("600"),
        expiration_date=date(2025, 10, 31),
    )


class _HealthyDatabaseService:
    """Database health stub for API tests."""

    def db_connection_label(self) -> str:
        return "sqlite://test"

    def db_check_health(self) -> HealthStatus:
        return HealthStatus(status="ok", detail="database connectivity verified")


class _DownDatabaseService(_HealthyDatabaseService):
    """Database health stub simulating an unreachable database."""

    def db_check_health(self) -> HealthStatus:
        raise ConnectionError("database unreachable")


class _UnmigratedDatabaseService(_HealthyDatabaseService):
    """Database health stub simulating a reachable but unmigrated schema."""

    def db_check_health(self) -> HealthStatus:
        return HealthStatus(status="degraded", detail="journal schema is not migrated", missing_tables=("sync_run",))


class _TradeRepositoryStub:
    """Trade repository stub serving one fixed account history."""

    def __init__(self):
        self.trades = [_option_trade("4", "1.00", 5), _option_trade("6", "4.00", 20)]
        self.list_calls: list[dict[str, object]] = []

    def db_trade_list(self, account_id, limit, offset, exit_date_from=None, exit_date_to=None) -> list[TradeRecord]:
        self.list_calls.append({"account_id": account_id, "limit": limit, "offset": offset})
        return [
            TradeRecord(
                trade_id=f"t-{index}",
                account_id=account_id,
                trade=trade,
                fingerprint=f"fp-{index}",
                created_at_utc=_STARTED_AT,
            )
            for index, trade in enumerate(reversed(self.trades))
        ][offset : offset + limit]

    def db_trade_list_for_account(self, account_id, exit_date_from=None, exit_date_to=None) -> list[Trade]:
        _ = (account_id, exit_date_from, exit_date_to)
        return list(self.trades)


class _SyncRunRepositoryStub:
    """Sync run repository stub returning one finished run."""

    def __init__(self):
        self.run_record = SyncRunRecord(
            sync_run_id=_SYNC_RUN_ID,
            account_id="acct-1",
            run_type="api",
            state=SyncRunState(
                status="success",
                started_at_utc=_STARTED_AT,
                ended_at_utc=_STARTED_AT,
                duration_ms=12,
                error_code=None,
                error_message=None,
                diagnostics=[{"stage": "run", "status": "success"}],
            ),
            counters=SyncRunCounters(transaction_count=3, trade_count=2, inserted_count=2),
            created_at_utc=_STARTED_AT,
        )
        self.list_calls: list[dict[str, object]] = []

    def db_sync_run_list(self, limit: int, offset: int, account_id: str | None = None) -> list[SyncRunRecord]:
        self.list_calls.append({"limit": limit, "offset": offset, "account_id": account_id})
        return [self.run_record]

    def db_sync_run_get_by_id(self, sync_run_id: str) -> SyncRunRecord | None:
        if sync_run_id == self.run_record.sync_run_id:
            return self.run_record
        return None


class _SyncOrchestratorStub:
    """Sync orchestrator stub whose outcome is chosen per test."""

    def __init__(self, error: Exception | None = None):
        self._error = error
        self.received: list[tuple[str, int]] = []

    def job_sync_transactions(self, account_id: str, payloads: list[dict[str, object]]) -> SyncResult:
        self.received.append((account_id, len(payloads)))
        if self._error is not None:
            raise self._error
        return SyncResult(
            account_id=account_id,
            status="success",
            sync_run_id=_SYNC_RUN_ID,
            counters=SyncRunCounters(transaction_count=len(payloads), trade_count=1, inserted_count=1),
        )


class _CleanupServiceStub:
    """Duplicate cleanup stub returning fixed counters."""

    def job_cleanup_duplicates(self, account_id: str) -> DuplicateCleanupResult:
        if not account_id.strip():
            raise ValueError("account_id must not be blank")
        return DuplicateCleanupResult(
            account_id=account_id.strip(),
            scanned_count=4,
            duplicate_count=1,
            deleted_count=1,
            kept_count=3,
        )


def _client(
    sync_orchestrator: _SyncOrchestratorStub | None = None,
    db_health_service: _HealthyDatabaseService | None = None,
    trade_repository: _TradeRepositoryStub | None = None,
    sync_run_repository: _SyncRunRepositoryStub | None = None,
) -> TestClient:
    resolved_trade_repository = trade_repository or _TradeRepositoryStub()
    application = create_api_application(
        settings=AppSettings(environment_name="test", api_default_limit=2, api_max_limit=5),
        db_health_service=db_health_service or _HealthyDatabaseService(),
        trade_repository=resolved_trade_repository,
        sync_run_repository=sync_run_repository or _SyncRunRepositoryStub(),
        sync_orchestrator=sync_orchestrator or _SyncOrchestratorStub(),
        position_service=PositionLifecycleService(repository=resolved_trade_repository),
        cleanup_service=_CleanupServiceStub(),
    )
    return TestClient(application)


def test_root_and_health_endpoints() -> None:
    client = _client()

    assert client.get("/").json() == {"service": "trade-journal", "status": "ready", "environment": "test"}
    health_response = client.get("/health")
    assert health_response.status_code == 200
    assert health_response.json()["database"] == "ok"


def test_health_reports_degraded_database() -> None:
    response = _client(db_health_service=_DownDatabaseService()).get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "degraded"
    assert response.json()["detail"] == "database unreachable"


def test_health_reports_unmigrated_schema() -> None:
    response = _client(db_health_service=_UnmigratedDatabaseService()).get("/health")

    assert response.status_code == 503
    assert response.json()["database"] == "degraded"
    assert response.json()["missing_tables"] == ["sync_run"]


def test_trade_list_clamps_limit_and_serializes_decimals_as_text() -> None:
    trade_repository = _TradeRepositoryStub()

    response = _client(trade_repository=trade_repository).get("/trades", params={"account_id": "acct-1", "limit": 50})

    assert response.status_code == 200
    payload = response.json()
    assert payload["page"] == {"limit": 50, "applied_limit": 5, "offset": 0, "returned": 2}
    assert payload["items"][0]["external_id"] == "O1-C20"
    assert payload["items"][0]["pnl"] == "1200.00"
    assert trade_repository.list_calls[0]["limit"] == 5


def test_trade_list_rejects_inverted_exit_range_and_missing_account() -> None:
    client = _client()

    inverted = client.get(
        "/trades",
        params={"account_id": "acct-1", "exit_date_from": "2025-10-20", "exit_date_to": "2025-10-01"},
    )

    assert inverted.status_code == 400
    assert inverted.json()["code"] == "INVALID_DATE_RANGE"
    assert client.get("/trades").status_code == 422


def test_option_positions_and_metrics_endpoints() -> None:
    client = _client()

    positions_response = client.get("/positions/options", params={"account_id": "acct-1"})
    metrics_response = client.get("/positions/options/metrics", params={"account_id": "acct-1"})

    assert positions_response.status_code == 200
    (position,) = positions_response.json()["items"]
    assert position["is_free"] is True
    assert position["trade_count"] == 2
    assert [event["made_free"] for event in position["scale_out_history"]] == [False, True]
    assert metrics_response.status_code == 200
    metrics = metrics_response.json()["metrics"]
    assert metrics["total_positions"] == 1
    assert metrics["free_positions_count"] == 1
    assert metrics["calls"]["trade_count"] == 2


def test_option_positions_reject_inverted_range() -> None:
    response = _client().get(
        "/positions/options",
        params={"account_id": "acct-1", "date_from": "2025-10-20", "date_to": "2025-10-01"},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_REQUEST"


def test_sync_transactions_returns_result_counters() -> None:
    orchestrator = _SyncOrchestratorStub()

    response = _client(sync_orchestrator=orchestrator).post(
        "/sync/acct-1/transactions",
        json=[{"activityId": "O1", "time": "2025-10-01T14:30:00Z", "type": "TRADE", "transferItems": []}],
    )

    assert response.status_code == 200
    assert response.json()["sync_run_id"] == _SYNC_RUN_ID
    assert response.json()["transaction_count"] == 1
    assert orchestrator.received == [("acct-1", 1)]


def test_sync_transactions_maps_active_run_and_store_failures() -> None:
    conflict = _client(sync_orchestrator=_SyncOrchestratorStub(SyncRunAlreadyActiveError("run already active")))
    store_down = _client(sync_orchestrator=_SyncOrchestratorStub(TradeStoreError("trade insert failed")))

    conflict_response = conflict.post("/sync/acct-1/transactions", json=[])
    store_response = store_down.post("/sync/acct-1/transactions", json=[])

    assert conflict_response.status_code == 409
    assert conflict_response.json() == {
        "status": "error",
        "code": "SYNC_RUN_ALREADY_ACTIVE",
        "message": "run already active",
    }
    assert store_response.status_code == 503
    assert store_response.json()["code"] == "SYNC_STORE_ERROR"


def test_sync_transactions_maps_run_bookkeeping_failure_to_503() -> None:
    client = _client(sync_orchestrator=_SyncOrchestratorStub(RuntimeError("failed to create started sync run")))

    response = client.post("/sync/acct-1/transactions", json=[])

    assert response.status_code == 503
    assert response.json() == {
        "status": "error",
        "code": "SYNC_STORE_ERROR",
        "message": "failed to create started sync run",
    }


def test_sync_run_list_and_detail() -> None:
    sync_run_repository = _SyncRunRepositoryStub()
    client = _client(sync_run_repository=sync_run_repository)

    list_response = client.get("/sync/runs", params={"account_id": " acct-1 "})
    detail_response = client.get(f"/sync/runs/{_SYNC_RUN_ID}")
    missing_response = client.get("/sync/runs/unknown")

    assert list_response.status_code == 200
    assert list_response.json()["items"][0]["sync_run_id"] == _SYNC_RUN_ID
    assert sync_run_repository.list_calls == [{"limit": 2, "offset": 0, "account_id": "acct-1"}]
    assert detail_response.json()["inserted_count"] == 2
    assert detail_response.json()["diagnostics"] == [{"stage": "run", "status": "success"}]
    assert missing_response.status_code == 404
    assert missing_response.json()["code"] == "SYNC_RUN_NOT_FOUND"


def test_duplicate_cleanup_endpoint_returns_counters() -> None:
    client = _client()

    response = client.post("/maintenance/duplicates/cleanup", params={"account_id": "acct-1"})
    blank_response = client.post("/maintenance/duplicates/cleanup", params={"account_id": " "})

    assert response.status_code == 200
    assert response.json() == {
        "account_id": "acct-1",
        "scanned_count": 4,
        "duplicate_count": 1,
        "deleted_count": 1,
        "kept_count": 3,
    }
    assert blank_response.status_code == 400
