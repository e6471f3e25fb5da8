"""Stable identity keys used to reject duplicate trade records during ingestion.

Two identities exist for one trade:

* the external identity `exchange|external_id`, available when the broker
  feed supplies a stable identifier;
* the fallback fingerprint `exchange|symbol|exit day|round(pnl, 2)|quantity`.

The fingerprint is a deliberate compromise: two genuinely distinct trades on
the same exchange and symbol, closed on the same UTC day with the same rounded
P&L and quantity, collide and the later one is treated as a duplicate.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from trade_journal.domain import trade_format_decimal

_FINGERPRINT_PNL_QUANTUM = Decimal("0.01")


class TradeIdentitySource(Protocol):
    """Structural contract shared by canonical trades and persisted trade rows."""

    exchange: str
    instrument_symbol: str
    exit_date: datetime
    pnl: Decimal
    quantity: Decimal
    external_id: str | None


def trade_fingerprint(trade: TradeIdentitySource) -> str:
    """Build the fallback fingerprint for one trade.

    Args:
        trade: Trade-like record.

    Returns:
        str: `exchange|symbol|YYYY-MM-DD|pnl(2dp)|quantity` fingerprint.

    Raises:
        ValueError: Raised when exchange or symbol is blank.
    """

    exchange = trade.exchange.strip()
    symbol = trade.instrument_symbol.strip()
    if not exchange:
        raise ValueError("trade.exchange must not be blank")
    if not symbol:
        raise ValueError("trade.instrument_symbol must not be blank")

    exit_day = trade.exit_date.date().isoformat() if trade.exit_date is not None else ""
    rounded_pnl = (trade.pnl or Decimal("0")).quantize(_FINGERPRINT_PNL_QUANTUM, rounding=ROUND_HALF_UP)
    return f"{exchange}|{symbol}|{exit_day}|{rounded_pnl}|{trade_format_decimal(trade.quantity)}"


def trade_external_identity(trade: TradeIdentitySource) -> str | None:
    """Return exchange-scoped external identity, or None when the feed supplied no id."""

    if trade.external_id is None or not trade.external_id.strip():
        return None
    return f"{trade.exchange.strip()}|{trade.external_id.strip()}"


def trade_identity_keys(trade: TradeIdentitySource) -> tuple[str, ...]:
    """Return every identity key under which a trade is considered already known."""

    external_identity = trade_external_identity(trade)
    fingerprint = trade_fingerprint(trade)
    if external_identity is None:
        return (fingerprint,)
    return (external_identity, fingerprint)



class TradeIdentityLedger:
    """Identities claimed by earlier trades of one batch or one table scan.

    A trade carrying an external id is matched by that id alone, so distinct
    FIFO segments that close at the same price on the same day are all kept.
    A trade without one is matched by fingerprint against every earlier trade.
    This mirrors the store, where the fingerprint is only unique among rows
    without an external id.
    """

    def __init__(self):
        self._external_identities: set[str] = set()
        self._fingerprints: set[str] = set()

    def trade_identity_claim(self, trade: TradeIdentitySource) -> bool:
        """Record one trade's identities.

        Args:
            trade: Trade-like record.

        Returns:
            bool: False when an earlier trade already claimed this trade's identity.

        Raises:
            ValueError: Raised when exchange or symbol is blank.
        """

        external_identity = trade_external_identity(trade)
        fingerprint = trade_fingerprint(trade)
        if external_identity is not None:
            if external_identity in self._external_identities:
                return False
            self._external_identities.add(external_identity)
        elif fingerprint in self._fingerprints:
            return False
        self._fingerprints.add(fingerprint)
        return True
