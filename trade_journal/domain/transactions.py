"""Broker transaction contracts and tolerant JSON payload parsing.

Raw transactions arrive from the broker feed as JSON objects carrying one or
more transfer items. This module normalizes them into immutable typed
contracts so the ledger layer never touches untyped payload dictionaries.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

OPTION_ASSET_TYPES = frozenset({"OPTION", "INDEX"})
NON_TRADABLE_ASSET_TYPES = frozenset({"CURRENCY"})
TRADE_TRANSACTION_TYPE = "TRADE"

_DOMAIN_NULL_SENTINELS = frozenset({"-", "--", "N/A"})


class TransactionPayloadError(ValueError):
    """Raised when one broker transaction payload violates the minimal contract."""


@dataclass(frozen=True)
class InstrumentDescriptor:
    """Instrument identity carried by one transaction leg.

    Attributes:
        asset_type: Broker asset type (`EQUITY`, `OPTION`, `INDEX`, `ETF`, ...).
        symbol: Exact contract symbol (OCC symbol for options).
        underlying_symbol: Optional underlying symbol for derivatives.
        description: Optional broker description text.
        cusip: Optional CUSIP identifier.
        put_call: Optional option right (`PUT` or `CALL`).
        strike_price: Optional option strike price.
    """

    asset_type: str
    symbol: str
    underlying_symbol: str | None = None
    description: str | None = None
    cusip: str | None = None
    put_call: str | None = None
    strike_price: Decimal | None = None

    def instrument_is_option(self) -> bool:
        """Return whether the instrument settles with an option multiplier."""

        return self.asset_type in OPTION_ASSET_TYPES

    def instrument_position_key(self) -> str:
        """Return the exact contract identity used to key FIFO queues."""

        return self.symbol or (self.underlying_symbol or "")

    def instrument_display_root(self) -> str:
        """Return the human-facing root symbol (underlying first)."""

        return self.underlying_symbol or self.symbol


@dataclass(frozen=True)
class TransactionLeg:
    """One transfer item within a broker transaction.

    Attributes:
        instrument: Instrument descriptor.
        amount: Signed quantity (positive buys, negative sells).
        price: Optional per-unit execution price.
        cost: Optional signed cash cost of the item.
        position_effect: Optional `OPENING` or `CLOSING` marker.
        fee_type: Optional fee marker; set only for fee items.
    """

    instrument: InstrumentDescriptor
    amount: Decimal
    price: Decimal | None = None
    cost: Decimal | None = None
    position_effect: str | None = None
    fee_type: str | None = None

    def leg_is_fee(self) -> bool:
        """Return whether this leg only carries a fee."""

        return self.fee_type is not None

    def leg_is_trade(self) -> bool:
        """Return whether this leg describes an executed instrument quantity."""

        return (
            self.price is not None
            and self.fee_type is None
            and self.instrument.asset_type not in NON_TRADABLE_ASSET_TYPES
            and self.amount != Decimal("0")
        )

    def leg_is_opening(self) -> bool:
        """Return whether the leg opens (rather than closes) a position."""

        return self.position_effect == "OPENING"


@dataclass(frozen=True)
class RawTransaction:
    """One immutable broker-reported transaction.

    Attributes:
        activity_id: Broker activity identifier.
        time: Offset-aware UTC execution timestamp.
        transaction_type: Broker transaction type (`TRADE`, `JOURNAL`, ...).
        net_amount: Net cash impact of the transaction.
        legs: Transfer items in broker order.
        account_number: Optional broker account number.
        trade_date: Optional broker trade date text.
        status: Optional broker validity status.
    """

    activity_id: str
    time: datetime
    transaction_type: str
    net_amount: Decimal
    legs: tuple[TransactionLeg, ...]
    account_number: str | None = None
    trade_date: str | None = None
    status: str | None = None

    def transaction_trade_legs(self) -> tuple[TransactionLeg, ...]:
        """Return legs that describe executed instrument quantities."""

        return tuple(leg for leg in self.legs if leg.leg_is_trade())

    def transaction_total_fees(self) -> Decimal:
        """Return the absolute sum of all fee-item costs."""

        return sum((abs(leg.cost or Decimal("0")) for leg in self.legs if leg.leg_is_fee()), Decimal("0"))


def domain_parse_raw_transaction(payload: dict[str, Any]) -> RawTransaction:
    """Parse one broker JSON transaction into a typed contract.

    Args:
        payload: Broker transaction object (`activityId`, `time`, `type`, `transferItems`, ...).

    Returns:
        RawTransaction: Normalized immutable transaction.

    Raises:
        TransactionPayloadError: Raised when identity, timestamp or numeric fields are invalid.
    """

    if not isinstance(payload, dict):
        raise TransactionPayloadError("transaction payload must be a JSON object")

    activity_id = domain_normalize_optional_text(payload.get("activityId"))
    if activity_id is None:
        raise TransactionPayloadError("transaction payload missing activityId")

    time_value = domain_normalize_optional_text(payload.get("time")) or domain_normalize_optional_text(
        payload.get("tradeDate")
    )
    if time_value is None:
        raise TransactionPayloadError(f"transaction activityId={activity_id} missing time")
    parsed_time = domain_parse_timestamp_utc(time_value)
    if parsed_time is None:
        raise TransactionPayloadError(f"transaction activityId={activity_id} has invalid time={time_value}")

    raw_items = payload.get("transferItems") or []
    if not isinstance(raw_items, list):
        raise TransactionPayloadError(f"transaction activityId={activity_id} transferItems must be a list")

    legs = tuple(_domain_parse_leg(item, activity_id=activity_id) for item in raw_items)

    return RawTransaction(
        activity_id=activity_id,
        time=parsed_time,
        transaction_type=(domain_normalize_optional_text(payload.get("type")) or "").upper(),
        net_amount=_domain_parse_decimal(payload.get("netAmount"), "netAmount", activity_id) or Decimal("0"),
        legs=legs,
        account_number=domain_normalize_optional_text(payload.get("accountNumber")),
        trade_date=domain_normalize_optional_text(payload.get("tradeDate")),
        status=domain_normalize_optional_text(payload.get("status")),
    )


def domain_parse_raw_transactions(payloads: list[dict[str, Any]]) -> tuple[list[RawTransaction], list[dict[str, str]]]:
    """Parse a batch of broker payloads, collecting rejects instead of failing.

    Args:
        payloads: Broker transaction objects.

    Returns:
        tuple[list[RawTransaction], list[dict[str, str]]]: Parsed transactions and
        reject descriptors (`activity_id`, `reason`).

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    transactions: list[RawTransaction] = []
    rejects: list[dict[str, str]] = []
    for payload in payloads:
        try:
            transactions.append(domain_parse_raw_transaction(payload))
        except TransactionPayloadError as error:
            activity_id = payload.get("activityId") if isinstance(payload, dict) else None
            rejects.append({"activity_id": str(activity_id) if activity_id is not None else "", "reason": str(error)})
    return transactions, rejects


def domain_normalize_optional_text(value: object | None) -> str | None:
    """Normalize one optional payload scalar into stripped text.

    Args:
        value: Candidate value from broker payload.

    Returns:
        str | None: Normalized text value or None when missing/sentinel.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if not isinstance(value, str):
        return None

    normalized_value = value.strip()
    if not normalized_value:
        return None
    if normalized_value in _DOMAIN_NULL_SENTINELS:
        return None
    return normalized_value


def domain_parse_timestamp_utc(value: str) -> datetime | None:
    """Parse one broker timestamp and normalize it to an offset-aware UTC datetime.

    Args:
        value: Candidate ISO-8601 timestamp text (`Z`, `+0000` and `+00:00` suffixes supported).

    Returns:
        datetime | None: UTC timestamp when supported, else None.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    normalized_value = value.strip()
    if not normalized_value:
        return None

    candidates = [normalized_value]
    if normalized_value.endswith("Z"):
        candidates.append(f"{normalized_value[:-1]}+00:00")
    if len(normalized_value) > 5 and normalized_value[-5] in "+-" and normalized_value[-4:].isdigit():
        candidates.append(f"{normalized_value[:-2]}:{normalized_value[-2:]}")

    for candidate in candidates:
        try:
            parsed_value = datetime.fromisoformat(candidate)
        except ValueError:
            continue
        if parsed_value.tzinfo is None:
            return parsed_value.replace(tzinfo=timezone.utc)
        return parsed_value.astimezone(timezone.utc)

    return None


def _domain_parse_leg(item: object, activity_id: str) -> TransactionLeg:
    """Parse one transfer item payload.

    Args:
        item: Transfer item payload.
        activity_id: Parent activity id for error context.

    Returns:
        TransactionLeg: Parsed leg.

    Raises:
        TransactionPayloadError: Raised when the item is structurally invalid.
    """

    if not isinstance(item, dict):
        raise TransactionPayloadError(f"transaction activityId={activity_id} has non-object transfer item")

    instrument_payload = item.get("instrument") or {}
    if not isinstance(instrument_payload, dict):
        raise TransactionPayloadError(f"transaction activityId={activity_id} has invalid instrument")

    put_call = domain_normalize_optional_text(instrument_payload.get("putCall"))
    instrument = InstrumentDescriptor(
        asset_type=(domain_normalize_optional_text(instrument_payload.get("assetType")) or "").upper(),
        symbol=domain_normalize_optional_text(instrument_payload.get("symbol")) or "",
        underlying_symbol=domain_normalize_optional_text(instrument_payload.get("underlyingSymbol")),
        description=domain_normalize_optional_text(instrument_payload.get("description")),
        cusip=domain_normalize_optional_text(instrument_payload.get("cusip")),
        put_call=put_call.upper() if put_call else None,
        strike_price=_domain_parse_decimal(instrument_payload.get("strikePrice"), "strikePrice", activity_id),
    )

    position_effect = domain_normalize_optional_text(item.get("positionEffect"))
    return TransactionLeg(
        instrument=instrument,
        amount=_domain_parse_decimal(item.get("amount"), "amount", activity_id) or Decimal("0"),
        price=_domain_parse_decimal(item.get("price"), "price", activity_id),
        cost=_domain_parse_decimal(item.get("cost"), "cost", activity_id),
        position_effect=position_effect.upper() if position_effect else None,
        fee_type=domain_normalize_optional_text(item.get("feeType")),
    )


def _domain_parse_decimal(value: object | None, field_name: str, activity_id: str) -> Decimal | None:
    """Parse an optional numeric payload value into Decimal.

    Floats are converted through `str` so binary artifacts never leak into
    monetary values.

    Args:
        value: Candidate numeric value.
        field_name: Payload field name for error context.
        activity_id: Parent activity id for error context.

    Returns:
        Decimal | None: Parsed value or None when missing.

    Raises:
        TransactionPayloadError: Raised when a present value is not numeric.
    """

    normalized_value = domain_normalize_optional_text(value)
    if normalized_value is None:
        return None
    try:
        parsed_value = Decimal(normalized_value.replace(",", ""))
    except InvalidOperation as error:
        raise TransactionPayloadError(
            f"transaction activityId={activity_id} has invalid {field_name}={normalized_value}"
        ) from error
    if not parsed_value.is_finite():
        raise TransactionPayloadError(f"transaction activityId={activity_id} has non-finite {field_name}")
    return parsed_value
