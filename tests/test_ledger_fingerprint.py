"""Tests for trade identity keys used by duplicate detection."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from trade_journal.domain import Trade
from trade_journal.ledger import (
    TradeIdentityLedger,
    trade_external_identity,
    trade_fingerprint,
    trade_identity_keys,
)


def _build_trade(external_id: str | None = "1001-1002", pnl: str = "1200") -> Trade:
    return Trade(
        exchange="Schwab",
        instrument_symbol="ISRG 600C",
        asset_type="OPTION",
        direction="LONG",
        entry_price=Decimal("2.00"),
        exit_price=Decimal("4.00"),
        quantity=Decimal("6"),
        entry_date=datetime(2025, 10, 1, 14, 30, tzinfo=timezone.utc),
        exit_date=datetime(2025, 10, 20, 15, 0, tzinfo=timezone.utc),
        fees=Decimal("0"),
        pnl=Decimal(pnl),
        pnl_percent=Decimal("100"),
        external_id=external_id,
    )


def test_trade_fingerprint_uses_exchange_symbol_day_rounded_pnl_and_quantity() -> None:
    assert trade_fingerprint(_build_trade()) == "Schwab|ISRG 600C|2025-10-20|1200.00|6"


def test_trade_fingerprint_rounds_pnl_half_up() -> None:
    assert trade_fingerprint(_build_trade(pnl="10.005")).split("|")[3] == "10.01"


def test_trade_fingerprint_ignores_external_id() -> None:
    assert trade_fingerprint(_build_trade(external_id="A")) == trade_fingerprint(_build_trade(external_id="B"))


def test_trade_external_identity_is_exchange_scoped_or_absent() -> None:
    assert trade_external_identity(_build_trade()) == "Schwab|1001-1002"
    assert trade_external_identity(_build_trade(external_id=None)) is None
    assert trade_external_identity(_build_trade(external_id="  ")) is None


def test_trade_identity_keys_include_both_keys_when_available() -> None:
    assert trade_identity_keys(_build_trade()) == ("Schwab|1001-1002", "Schwab|ISRG 600C|2025-10-20|1200.00|6")
    assert trade_identity_keys(_build_trade(external_id=None)) == ("Schwab|ISRG 600C|2025-10-20|1200.00|6",)


def test_trade_fingerprint_rejects_blank_symbol() -> None:
    trade = _build_trade()
    blank_symbol_trade = Trade(**{**trade.__dict__, "instrument_symbol": " "})

    with pytest.raises(ValueError, match="instrument_symbol must not be blank"):
        trade_fingerprint(blank_symbol_trade)


def test_identity_ledger_matches_external_ids_by_id_and_idless_trades_by_fingerprint() -> None:
    ledger = TradeIdentityLedger()

    assert ledger.trade_identity_claim(_build_trade("1001-1002")) is True
    assert ledger.trade_identity_claim(_build_trade("1003-1002")) is True
    assert ledger.trade_identity_claim(_build_trade("1001-1002")) is False
    assert ledger.trade_identity_claim(_build_trade(external_id=None)) is False
    assert ledger.trade_identity_claim(_build_trade(external_id=None, pnl="50")) is True
    assert ledger.trade_identity_claim(_build_trade(external_id=None, pnl="50")) is False
