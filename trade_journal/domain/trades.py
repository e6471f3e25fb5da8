"""Canonical realized-trade contract produced by FIFO matching."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

OPTION_CONTRACT_MULTIPLIER = Decimal("100")
DEFAULT_CONTRACT_MULTIPLIER = Decimal("1")

ASSET_TYPE_OPTION = "OPTION"
ASSET_TYPE_STOCK = "STOCK"

DIRECTION_LONG = "LONG"
DIRECTION_SHORT = "SHORT"

TRADE_STATUS_CLOSED = "CLOSED"


@dataclass(frozen=True)
class Trade:
    """One realized trade created from a (lot segment, closing leg) pairing.

    Attributes:
        exchange: Broker/exchange label (for example `Schwab`).
        instrument_symbol: Display ticker; embeds strike and right for options (`ISRG 600C`).
        asset_type: Canonical asset type (`STOCK` or `OPTION`).
        direction: Position direction (`LONG` or `SHORT`).
        entry_price: Opening lot price.
        exit_price: Closing leg price.
        quantity: Matched quantity (contracts or shares).
        entry_date: Opening timestamp in UTC.
        exit_date: Closing timestamp in UTC.
        fees: Attributed opening plus closing fees.
        pnl: Net P&L after attributed fees.
        pnl_percent: Net P&L relative to entry value, in percent.
        external_id: Stable broker-derived identifier for this pairing.
        status: Trade status; realized trades are always `CLOSED`.
        underlying_symbol: Optional underlying symbol for options.
        option_type: Optional option right (`CALL` or `PUT`).
        strike_price: Optional option strike.
        expiration_date: Optional option expiration date.
        notes: Optional free-text provenance note.
    """

    exchange: str
    instrument_symbol: str
    asset_type: str
    direction: str
    entry_price: Decimal
    exit_price: Decimal
    quantity: Decimal
    entry_date: datetime
    exit_date: datetime
    fees: Decimal
    pnl: Decimal
    pnl_percent: Decimal
    external_id: str | None
    status: str = TRADE_STATUS_CLOSED
    underlying_symbol: str | None = None
    option_type: str | None = None
    strike_price: Decimal | None = None
    expiration_date: date | None = None
    notes: str | None = None

    def trade_multiplier(self) -> Decimal:
        """Return contract multiplier for value calculations."""

        return trade_multiplier_for_asset_type(self.asset_type)


def trade_multiplier_for_asset_type(asset_type: str) -> Decimal:
    """Return contract multiplier for one canonical asset type.

    Args:
        asset_type: Canonical asset type.

    Returns:
        Decimal: `100` for options, `1` otherwise.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    if asset_type == ASSET_TYPE_OPTION:
        return OPTION_CONTRACT_MULTIPLIER
    return DEFAULT_CONTRACT_MULTIPLIER


def trade_calculate_net_pnl(
    direction: str,
    entry_price: Decimal,
    exit_price: Decimal,
    quantity: Decimal,
    multiplier: Decimal,
    fees: Decimal,
) -> Decimal:
    """Calculate direction-aware net P&L for one matched segment.

    Args:
        direction: `LONG` or `SHORT`.
        entry_price: Opening price.
        exit_price: Closing price.
        quantity: Matched quantity.
        multiplier: Contract multiplier.
        fees: Attributed fees subtracted from gross P&L.

    Returns:
        Decimal: Net P&L.

    Raises:
        ValueError: Raised when direction is unsupported.
    """

    if direction == DIRECTION_LONG:
        gross_pnl = (exit_price - entry_price) * quantity * multiplier
    elif direction == DIRECTION_SHORT:
        gross_pnl = (entry_price - exit_price) * quantity * multiplier
    else:
        raise ValueError(f"unsupported direction={direction}")
    return gross_pnl - fees


def trade_calculate_pnl_percent(pnl: Decimal, entry_price: Decimal, quantity: Decimal, multiplier: Decimal) -> Decimal:
    """Return net P&L as a percentage of entry value (zero when entry value is not positive)."""

    entry_value = entry_price * quantity * multiplier
    if entry_value <= Decimal("0"):
        return Decimal("0")
    return pnl / entry_value * Decimal("100")


def trade_format_decimal(value: Decimal) -> str:
    """Render a decimal without exponent or trailing zeros (`600.000` -> `600`, `2.50` -> `2.5`)."""

    normalized_value = value.normalize()
    if normalized_value == normalized_value.to_integral_value():
        return str(normalized_value.quantize(Decimal("1")))
    return format(normalized_value, "f")
