"""Regression tests for insert-only trade ingestion and duplicate rejection."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from trade_journal.db import TradeInsertRequest, TradeInsertResult
from trade_journal.domain import Trade, domain_parse_raw_transaction
from trade_journal.jobs import TradeIngestionService, ingestion_filter_new_trades
from trade_journal.ledger import FifoMatchRequest, fifo_match_transactions, trade_external_identity, trade_identity_keys


def _trade(external_id: str | None = "O1-C1", exit_price: str = "12.00") -> Trade:
    return Trade(
        exchange="Schwab",
        instrument_symbol="ISRG 600C",
        asset_type="OPTION",
        direction="LONG",
        entry_price=Decimal("10.00"),
        exit_price=Decimal(exit_price),
        quantity=Decimal("6"),
        entry_date=datetime(2025, 10, 1, 14, 30, tzinfo=timezone.utc),
        exit_date=datetime(2025, 10, 20, 15, 0, tzinfo=timezone.utc),
        fees=Decimal("0"),
        pnl=(Decimal(exit_price) - Decimal("10.00")) * Decimal("600"),
        pnl_percent=Decimal("0"),
        external_id=external_id,
        underlying_symbol="ISRG",
        option_type="CALL",
        strike_price=Decimal("600"),
        expiration_date=date(2025, 10, 31),
    )


class _InMemoryTradeRepository:
    """Trade repository stub enforcing the store's unique constraints.

    External identities are unique; fingerprints only among rows without an
    external id.
    """

    def __init__(self):
        self.requests: list[TradeInsertRequest] = []
        self.insert_calls = 0

    def db_trade_identity_list(self, account_id: str) -> set[str]:
        identities: set[str] = set()
        for request in self.requests:
            if request.account_id == account_id:
                identities.update(trade_identity_keys(request.trade))
        return identities

    def db_trade_insert_many(self, requests: list[TradeInsertRequest]) -> TradeInsertResult:
        self.insert_calls += 1
        inserted_count = 0
        for request in requests:
            if self._conflicts(request):
                continue
            self.requests.append(request)
            inserted_count += 1
        return TradeInsertResult(inserted_count=inserted_count, conflict_count=len(requests) - inserted_count)

    def _conflicts(self, request: TradeInsertRequest) -> bool:
        external_identity = trade_external_identity(request.trade)
        for stored in self.requests:
            if stored.account_id != request.account_id:
                continue
            if external_identity is not None and trade_external_identity(stored.trade) == external_identity:
                return True
            if external_identity is None and stored.trade.external_id is None and stored.fingerprint == request.fingerprint:
                return True
        return False


def test_ingestion_inserts_new_trades_once() -> None:
    repository = _InMemoryTradeRepository()
    service = TradeIngestionService(repository=repository)

    first_result = service.ingestion_ingest("acct-1", [_trade("O1-C1"), _trade("O2-C2", exit_price="13.00")])
    second_result = service.ingestion_ingest("acct-1", [_trade("O1-C1"), _trade("O2-C2", exit_price="13.00")])

    assert (first_result.candidate_count, first_result.inserted_count, first_result.duplicate_count) == (2, 2, 0)
    assert (second_result.candidate_count, second_result.inserted_count, second_result.duplicate_count) == (2, 0, 2)
    assert len(repository.requests) == 2


def test_ingestion_rejects_same_fingerprint_under_new_external_id() -> None:
    """A re-delivered trade with a regenerated id is still the same trade."""

    repository = _InMemoryTradeRepository()
    service = TradeIngestionService(repository=repository)

    service.ingestion_ingest("acct-1", [_trade("O1-C1")])
    result = service.ingestion_ingest("acct-1", [_trade("O9-C9")])

    assert result.inserted_count == 0
    assert result.duplicate_count == 1
    assert [request.trade.external_id for request in repository.requests] == ["O1-C1"]


def test_ingestion_deduplicates_within_one_batch() -> None:
    repository = _InMemoryTradeRepository()
    service = TradeIngestionService(repository=repository)

    result = service.ingestion_ingest("acct-1", [_trade("O1-C1"), _trade("O1-C1"), _trade(None)])

    assert result.inserted_count == 1
    assert result.duplicate_count == 2


def test_ingestion_scopes_identities_per_account() -> None:
    repository = _InMemoryTradeRepository()
    service = TradeIngestionService(repository=repository)

    service.ingestion_ingest("acct-1", [_trade("O1-C1")])
    result = service.ingestion_ingest(" acct-2 ", [_trade("O1-C1")])

    assert result.inserted_count == 1
    assert repository.requests[-1].account_id == "acct-2"


def test_ingestion_empty_batch_skips_store() -> None:
    repository = _InMemoryTradeRepository()

    result = TradeIngestionService(repository=repository).ingestion_ingest("acct-1", [])

    assert (result.candidate_count, result.inserted_count, result.duplicate_count) == (0, 0, 0)
    assert repository.insert_calls == 0


def test_ingestion_rejects_blank_account() -> None:
    with pytest.raises(ValueError, match="account_id"):
        TradeIngestionService(repository=_InMemoryTradeRepository()).ingestion_ingest("  ", [_trade()])


def test_ingestion_filter_keeps_input_order() -> None:
    first = _trade("O1-C1", exit_price="11.00")
    second = _trade("O2-C2", exit_price="12.00")
    third = _trade("O3-C3", exit_price="13.00")

    new_trades = ingestion_filter_new_trades([third, first, second], set(trade_identity_keys(second)))

    assert new_trades == [third, first]


def test_ingestion_filter_treats_changed_price_as_new_trade() -> None:
    original = _trade("O1-C1")
    repriced = replace(original, external_id="O1-C2", exit_price=Decimal("12.50"), pnl=Decimal("1500.00"))

    assert ingestion_filter_new_trades([repriced], set(trade_identity_keys(original))) == [repriced]


def _stock_fill(activity_id: str, time_text: str, amount: int, price: str, position_effect: str):
    return domain_parse_raw_transaction(
        {
            "activityId": activity_id,
            "time": time_text,
            "type": "TRADE",
            "transferItems": [
                {
                    "instrument": {"assetType": "EQUITY", "symbol": "AAPL"},
                    "amount": amount,
                    "price": price,
                    "positionEffect": position_effect,
                }
            ],
        }
    )


def test_ingestion_keeps_fifo_segments_sharing_a_fingerprint() -> None:
    """Two equal lots closed by one leg are two trades with one fingerprint."""

    match_result = fifo_match_transactions(
        FifoMatchRequest(
            account_id="acct-1",
            exchange="Schwab",
            transactions=[
                _stock_fill("O1", "2025-10-01T14:30:00Z", 5, "100.00", "OPENING"),
                _stock_fill("O2", "2025-10-02T14:30:00Z", 5, "100.00", "OPENING"),
                _stock_fill("C1", "2025-10-20T15:00:00Z", -10, "110.00", "CLOSING"),
            ],
        )
    )
    repository = _InMemoryTradeRepository()
    service = TradeIngestionService(repository=repository)

    first_result = service.ingestion_ingest("acct-1", match_result.trades)
    second_result = service.ingestion_ingest("acct-1", match_result.trades)

    assert [trade.external_id for trade in match_result.trades] == ["O1-C1", "O2-C1"]
    assert ingestion_filter_new_trades(match_result.trades, set()) == list(match_result.trades)
    assert (first_result.inserted_count, first_result.duplicate_count) == (2, 0)
    assert sum(request.trade.quantity for request in repository.requests) == Decimal("10")
    assert (second_result.inserted_count, second_result.duplicate_count) == (0, 2)


def test_ingestion_drops_idless_trade_matching_earlier_fingerprint_in_batch() -> None:
    with_id = _trade("O1-C1")

    new_trades = ingestion_filter_new_trades([with_id, _trade(None), _trade("O2-C2")], set())

    assert new_trades == [with_id, _trade("O2-C2")]
