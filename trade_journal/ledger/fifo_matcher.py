"""FIFO lot matching that turns broker transactions into realized trades."""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal

from trade_journal.domain import (
    ASSET_TYPE_OPTION,
    ASSET_TYPE_STOCK,
    DIRECTION_LONG,
    DIRECTION_SHORT,
    InstrumentDescriptor,
    RawTransaction,
    Trade,
    TransactionLeg,
    trade_calculate_net_pnl,
    trade_calculate_pnl_percent,
    trade_format_decimal,
    trade_multiplier_for_asset_type,
)
from trade_journal.domain.transactions import TRADE_TRANSACTION_TYPE

logger = logging.getLogger(__name__)

_OCC_OPTION_SYMBOL_PATTERN = re.compile(r"^(\w+)\s+(\d{6})([CP])(\d{8})$")
_ZERO = Decimal("0")


@dataclass
class OpenLot:
    """Unmatched opening leg awaiting closure.

    Attributes:
        lot_id: Opening activity identifier (suffixed with leg index for multi-leg transactions).
        instrument_key: Exact contract identity of the queue that owns the lot.
        instrument: Instrument descriptor captured from the opening leg.
        opened_at: Opening timestamp in UTC.
        price: Opening price.
        original_quantity: Quantity at open.
        remaining_quantity: Quantity still open.
        direction: `LONG` or `SHORT`.
        attributed_fees: Opening fees attributed to the full original quantity.
    """

    lot_id: str
    instrument_key: str
    instrument: InstrumentDescriptor
    opened_at: datetime
    price: Decimal
    original_quantity: Decimal
    remaining_quantity: Decimal
    direction: str
    attributed_fees: Decimal

    def lot_fee_share(self, quantity: Decimal) -> Decimal:
        """Return the opening fee share for a consumed quantity."""

        if self.original_quantity == _ZERO:
            return _ZERO
        return self.attributed_fees * quantity / self.original_quantity

    def lot_remaining_fees(self) -> Decimal:
        """Return opening fees still attributed to the open remainder."""

        return self.lot_fee_share(self.remaining_quantity)


class InstrumentLotQueues:
    """Per-instrument FIFO queues of open lots for one account run.

    Instances are owned by a single matcher invocation (or injected by the
    caller to continue from residual lots) and are never shared across
    accounts.
    """

    def __init__(self, queues: dict[str, deque[OpenLot]] | None = None):
        self._queues: dict[str, deque[OpenLot]] = queues if queues is not None else {}

    def queues_push(self, lot: OpenLot) -> None:
        """Append one lot to the tail of its instrument queue."""

        self._queues.setdefault(lot.instrument_key, deque()).append(lot)

    def queues_get(self, instrument_key: str) -> deque[OpenLot]:
        """Return the (possibly empty) queue for one instrument key."""

        return self._queues.setdefault(instrument_key, deque())

    def queues_open_quantity(self, instrument_key: str) -> Decimal:
        """Return total remaining quantity for one instrument key."""

        return sum((lot.remaining_quantity for lot in self._queues.get(instrument_key, ())), _ZERO)

    def queues_discard(self, lot: OpenLot) -> None:
        """Remove one lot from its queue when present."""

        queue = self._queues.get(lot.instrument_key)
        if queue is None:
            return
        self._queues[lot.instrument_key] = deque(queued_lot for queued_lot in queue if queued_lot is not lot)

    def queues_open_lots(self) -> tuple[OpenLot, ...]:
        """Return all open lots ordered by instrument key, then FIFO position."""

        return tuple(
            lot
            for instrument_key in sorted(self._queues)
            for lot in self._queues[instrument_key]
            if lot.remaining_quantity > _ZERO
        )


@dataclass(frozen=True)
class UnmatchedClosingFinding:
    """Closing quantity that exceeded every open lot for its instrument key.

    This usually means the opening transaction predates the fetch window.

    Attributes:
        account_id: Account context identifier.
        instrument_key: Exact contract identity.
        activity_id: Closing transaction identifier.
        requested_quantity: Closing leg quantity.
        unmatched_quantity: Quantity that found no open lot.
    """

    account_id: str
    instrument_key: str
    activity_id: str
    requested_quantity: Decimal
    unmatched_quantity: Decimal

    def finding_as_diagnostic(self) -> dict[str, str]:
        """Return a JSON-compatible diagnostics payload."""

        return {
            "code": "UNMATCHED_CLOSING_QUANTITY",
            "account_id": self.account_id,
            "instrument_key": self.instrument_key,
            "activity_id": self.activity_id,
            "requested_quantity": str(self.requested_quantity),
            "unmatched_quantity": str(self.unmatched_quantity),
        }


@dataclass(frozen=True)
class MalformedTransactionFinding:
    """Transaction skipped because it carried no identifiable trade leg.

    Attributes:
        account_id: Account context identifier.
        activity_id: Skipped transaction identifier.
        reason: Human-readable skip reason.
    """

    account_id: str
    activity_id: str
    reason: str

    def finding_as_diagnostic(self) -> dict[str, str]:
        """Return a JSON-compatible diagnostics payload."""

        return {
            "code": "MALFORMED_TRANSACTION",
            "account_id": self.account_id,
            "activity_id": self.activity_id,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class FifoMatchRequest:
    """Input contract for one account's FIFO matching pass.

    Attributes:
        account_id: Account context identifier.
        exchange: Exchange label stamped on emitted trades.
        transactions: Raw transactions in any order; they are sorted by time.
        as_of: Optional evaluation time used to expire worthless options.
        expire_worthless_options: Whether expired open option lots become loss/gain trades.
        lot_queues: Optional injected queues (for example residual lots of a previous pass).
    """

    account_id: str
    exchange: str
    transactions: list[RawTransaction]
    as_of: datetime | None = None
    expire_worthless_options: bool = True
    lot_queues: InstrumentLotQueues | None = None


@dataclass(frozen=True)
class FifoMatchResult:
    """Output of one FIFO matching pass.

    Attributes:
        trades: Realized trades in emission order.
        open_lots: Residual open lots.
        unmatched_closings: Over-closing findings.
        malformed_transactions: Skipped transaction findings.
    """

    trades: tuple[Trade, ...]
    open_lots: tuple[OpenLot, ...]
    unmatched_closings: tuple[UnmatchedClosingFinding, ...] = field(default_factory=tuple)
    malformed_transactions: tuple[MalformedTransactionFinding, ...] = field(default_factory=tuple)

    def result_unmatched_quantity(self) -> Decimal:
        """Return total closing quantity that found no open lot."""

        return sum((finding.unmatched_quantity for finding in self.unmatched_closings), _ZERO)


@dataclass(frozen=True)
class OpenPositionSummary:
    """Residual open quantity for one instrument key.

    Attributes:
        instrument_key: Exact contract identity.
        quantity: Absolute open quantity.
        direction: Net direction of the remaining lots.
        lot_count: Number of open lots.
    """

    instrument_key: str
    quantity: Decimal
    direction: str
    lot_count: int


@dataclass(frozen=True)
class OptionContractDetails:
    """Option contract fields resolved from leg data or the OCC symbol."""

    underlying_symbol: str
    option_type: str | None
    strike_price: Decimal | None
    expiration_date: date | None


def fifo_match_transactions(request: FifoMatchRequest) -> FifoMatchResult:  # pylint: disable=too-many-locals
    """Match opening and closing legs FIFO per exact contract identity.

    Args:
        request: FIFO matching request.

    Returns:
        FifoMatchResult: Realized trades, residual lots and data-quality findings.

    Raises:
        ValueError: Raised when request identity values are blank.
    """

    if request is None:
        raise ValueError("request must not be None")
    if not request.account_id.strip():
        raise ValueError("request.account_id must not be blank")
    if not request.exchange.strip():
        raise ValueError("request.exchange must not be blank")

    lot_queues = request.lot_queues if request.lot_queues is not None else InstrumentLotQueues()
    trades: list[Trade] = []
    unmatched_closings: list[UnmatchedClosingFinding] = []
    malformed_transactions: list[MalformedTransactionFinding] = []

    trade_transactions = [
        transaction for transaction in request.transactions if transaction.transaction_type == TRADE_TRANSACTION_TYPE
    ]
    sorted_transactions = sorted(trade_transactions, key=lambda transaction: (transaction.time, transaction.activity_id))

    for transaction in sorted_transactions:
        if (transaction.status or "").upper() == "INVALID":
            malformed_transactions.append(
                _fifo_malformed(request.account_id, transaction.activity_id, "transaction status is INVALID")
            )
            continue

        trade_legs = transaction.transaction_trade_legs()
        if not trade_legs:
            reason = "fee-only transaction" if transaction.legs else "transaction has no transfer items"
            malformed_transactions.append(_fifo_malformed(request.account_id, transaction.activity_id, reason))
            continue

        leg_fees = _fifo_allocate_transaction_fees(transaction, trade_legs)
        for leg_index, (leg, fee) in enumerate(zip(trade_legs, leg_fees)):
            lot_id = transaction.activity_id if len(trade_legs) == 1 else f"{transaction.activity_id}.{leg_index}"
            instrument_key = leg.instrument.instrument_position_key()
            quantity = abs(leg.amount)

            if leg.leg_is_opening():
                lot_queues.queues_push(
                    OpenLot(
                        lot_id=lot_id,
                        instrument_key=instrument_key,
                        instrument=leg.instrument,
                        opened_at=transaction.time,
                        price=leg.price or _ZERO,
                        original_quantity=quantity,
                        remaining_quantity=quantity,
                        direction=DIRECTION_LONG if leg.amount > _ZERO else DIRECTION_SHORT,
                        attributed_fees=fee,
                    )
                )
                continue

            unmatched_quantity = _fifo_close_leg(
                request=request,
                lot_queues=lot_queues,
                transaction=transaction,
                leg=leg,
                closing_lot_id=lot_id,
                closing_fee=fee,
                trades=trades,
            )
            if unmatched_quantity > _ZERO:
                finding = UnmatchedClosingFinding(
                    account_id=request.account_id,
                    instrument_key=instrument_key,
                    activity_id=transaction.activity_id,
                    requested_quantity=quantity,
                    unmatched_quantity=unmatched_quantity,
                )
                logger.warning(
                    "unmatched closing quantity account_id=%s instrument_key=%s activity_id=%s unmatched=%s",
                    request.account_id,
                    instrument_key,
                    transaction.activity_id,
                    unmatched_quantity,
                )
                unmatched_closings.append(finding)

    if request.expire_worthless_options and request.as_of is not None:
        trades.extend(_fifo_expire_worthless_options(request, lot_queues))

    return FifoMatchResult(
        trades=tuple(trades),
        open_lots=lot_queues.queues_open_lots(),
        unmatched_closings=tuple(unmatched_closings),
        malformed_transactions=tuple(malformed_transactions),
    )


def fifo_aggregate_simultaneous_trades(trades: list[Trade] | tuple[Trade, ...]) -> list[Trade]:
    """Merge trades of the same ticker opened and closed within the same minutes.

    Prices become quantity-weighted averages; quantity, fees and P&L are summed.
    Order of first appearance is preserved.

    Args:
        trades: Realized trades.

    Returns:
        list[Trade]: Aggregated trades.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    grouped_trades: dict[tuple[str, str, str], list[Trade]] = {}
    for trade in trades:
        group_key = (
            trade.instrument_symbol,
            trade.entry_date.strftime("%Y-%m-%dT%H:%M"),
            trade.exit_date.strftime("%Y-%m-%dT%H:%M"),
        )
        grouped_trades.setdefault(group_key, []).append(trade)

    aggregated_trades: list[Trade] = []
    for group in grouped_trades.values():
        if len(group) == 1:
            aggregated_trades.append(group[0])
            continue

        first_trade = group[0]
        total_quantity = sum((trade.quantity for trade in group), _ZERO)
        total_pnl = sum((trade.pnl for trade in group), _ZERO)
        total_fees = sum((trade.fees for trade in group), _ZERO)
        average_entry_price = sum((trade.entry_price * trade.quantity for trade in group), _ZERO) / total_quantity
        average_exit_price = sum((trade.exit_price * trade.quantity for trade in group), _ZERO) / total_quantity
        aggregated_trades.append(
            Trade(
                exchange=first_trade.exchange,
                instrument_symbol=first_trade.instrument_symbol,
                asset_type=first_trade.asset_type,
                direction=first_trade.direction,
                entry_price=average_entry_price,
                exit_price=average_exit_price,
                quantity=total_quantity,
                entry_date=first_trade.entry_date,
                exit_date=first_trade.exit_date,
                fees=total_fees,
                pnl=total_pnl,
                pnl_percent=trade_calculate_pnl_percent(
                    total_pnl, average_entry_price, total_quantity, first_trade.trade_multiplier()
                ),
                external_id=first_trade.external_id,
                status=first_trade.status,
                underlying_symbol=first_trade.underlying_symbol,
                option_type=first_trade.option_type,
                strike_price=first_trade.strike_price,
                expiration_date=first_trade.expiration_date,
                notes=first_trade.notes,
            )
        )
    return aggregated_trades


def fifo_summarize_open_lots(open_lots: tuple[OpenLot, ...] | list[OpenLot]) -> list[OpenPositionSummary]:
    """Summarize residual lots into net open quantity per instrument key.

    Args:
        open_lots: Residual open lots.

    Returns:
        list[OpenPositionSummary]: Non-flat positions ordered by instrument key.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    signed_quantity_by_key: dict[str, Decimal] = {}
    lot_count_by_key: dict[str, int] = {}
    for lot in open_lots:
        signed_quantity = lot.remaining_quantity if lot.direction == DIRECTION_LONG else -lot.remaining_quantity
        signed_quantity_by_key[lot.instrument_key] = signed_quantity_by_key.get(lot.instrument_key, _ZERO) + signed_quantity
        lot_count_by_key[lot.instrument_key] = lot_count_by_key.get(lot.instrument_key, 0) + 1

    return [
        OpenPositionSummary(
            instrument_key=instrument_key,
            quantity=abs(signed_quantity),
            direction=DIRECTION_LONG if signed_quantity > _ZERO else DIRECTION_SHORT,
            lot_count=lot_count_by_key[instrument_key],
        )
        for instrument_key, signed_quantity in sorted(signed_quantity_by_key.items())
        if signed_quantity != _ZERO
    ]


def fifo_parse_occ_option_symbol(symbol: str) -> OptionContractDetails | None:
    """Parse an OCC option symbol such as `ISRG  251031C00600000`.

    Args:
        symbol: Contract symbol.

    Returns:
        OptionContractDetails | None: Parsed contract, or None when the symbol is not OCC formatted.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    match = _OCC_OPTION_SYMBOL_PATTERN.match(symbol.strip())
    if match is None:
        return None

    root, date_text, right, strike_text = match.groups()
    try:
        expiration_date = date(2000 + int(date_text[0:2]), int(date_text[2:4]), int(date_text[4:6]))
    except ValueError:
        return None
    return OptionContractDetails(
        underlying_symbol=root,
        option_type="CALL" if right == "C" else "PUT",
        strike_price=Decimal(strike_text) / Decimal("1000"),
        expiration_date=expiration_date,
    )


def fifo_resolve_option_details(instrument: InstrumentDescriptor) -> OptionContractDetails:
    """Resolve option details from explicit leg fields, falling back to the OCC symbol."""

    occ_details = fifo_parse_occ_option_symbol(instrument.symbol)
    option_type = instrument.put_call or (occ_details.option_type if occ_details else None)
    strike_price = instrument.strike_price
    if strike_price is None and occ_details is not None:
        strike_price = occ_details.strike_price
    return OptionContractDetails(
        underlying_symbol=instrument.underlying_symbol
        or (occ_details.underlying_symbol if occ_details else instrument.symbol),
        option_type=option_type,
        strike_price=strike_price,
        expiration_date=occ_details.expiration_date if occ_details else None,
    )


def fifo_format_display_symbol(instrument: InstrumentDescriptor) -> str:
    """Build the display ticker; options embed strike and right (`ISRG 600C`)."""

    if not instrument.instrument_is_option():
        return instrument.instrument_display_root()

    details = fifo_resolve_option_details(instrument)
    strike_text = trade_format_decimal(details.strike_price) if details.strike_price is not None else ""
    right_text = (details.option_type or "")[:1]
    return f"{details.underlying_symbol} {strike_text}{right_text}"


def _fifo_close_leg(  # pylint: disable=too-many-arguments
    request: FifoMatchRequest,
    lot_queues: InstrumentLotQueues,
    transaction: RawTransaction,
    leg: TransactionLeg,
    closing_lot_id: str,
    closing_fee: Decimal,
    trades: list[Trade],
) -> Decimal:
    """Consume open lots for one closing leg and emit one trade per segment.

    Returns:
        Decimal: Closing quantity left unmatched after the queue emptied.
    """

    queue = lot_queues.queues_get(leg.instrument.instrument_position_key())
    closing_quantity = abs(leg.amount)
    remaining_quantity = closing_quantity
    exit_price = leg.price or _ZERO

    while remaining_quantity > _ZERO and queue:
        open_lot = queue[0]
        match_quantity = min(remaining_quantity, open_lot.remaining_quantity)
        segment_fees = closing_fee * match_quantity / closing_quantity + open_lot.lot_fee_share(match_quantity)

        trades.append(
            _fifo_build_trade(
                exchange=request.exchange,
                open_lot=open_lot,
                closing_instrument=leg.instrument,
                exit_price=exit_price,
                exit_date=transaction.time,
                quantity=match_quantity,
                fees=segment_fees,
                external_id=f"{open_lot.lot_id}-{closing_lot_id}",
            )
        )

        remaining_quantity -= match_quantity
        open_lot.remaining_quantity -= match_quantity
        if open_lot.remaining_quantity <= _ZERO:
            queue.popleft()

    return remaining_quantity


def _fifo_expire_worthless_options(request: FifoMatchRequest, lot_queues: InstrumentLotQueues) -> list[Trade]:
    """Close open option lots whose contract expired before `as_of` at a zero exit price."""

    as_of_date = request.as_of.astimezone(timezone.utc).date()
    expired_trades: list[Trade] = []
    for open_lot in lot_queues.queues_open_lots():
        if not open_lot.instrument.instrument_is_option():
            continue
        occ_details = fifo_parse_occ_option_symbol(open_lot.instrument.symbol)
        if occ_details is None or occ_details.expiration_date is None:
            continue
        if occ_details.expiration_date >= as_of_date:
            continue

        expiration_timestamp = datetime(
            occ_details.expiration_date.year,
            occ_details.expiration_date.month,
            occ_details.expiration_date.day,
            tzinfo=timezone.utc,
        )
        expired_trades.append(
            _fifo_build_trade(
                exchange=request.exchange,
                open_lot=open_lot,
                closing_instrument=open_lot.instrument,
                exit_price=_ZERO,
                exit_date=expiration_timestamp,
                quantity=open_lot.remaining_quantity,
                fees=open_lot.lot_remaining_fees(),
                external_id=f"{open_lot.lot_id}-expired",
                notes="expired worthless",
            )
        )
        open_lot.remaining_quantity = _ZERO
        lot_queues.queues_discard(open_lot)

    return expired_trades


def _fifo_build_trade(  # pylint: disable=too-many-arguments
    exchange: str,
    open_lot: OpenLot,
    closing_instrument: InstrumentDescriptor,
    exit_price: Decimal,
    exit_date: datetime,
    quantity: Decimal,
    fees: Decimal,
    external_id: str,
    notes: str | None = None,
) -> Trade:
    """Build one canonical trade for a matched lot segment."""

    asset_type = ASSET_TYPE_OPTION if closing_instrument.instrument_is_option() else ASSET_TYPE_STOCK
    multiplier = trade_multiplier_for_asset_type(asset_type)
    pnl = trade_calculate_net_pnl(
        direction=open_lot.direction,
        entry_price=open_lot.price,
        exit_price=exit_price,
        quantity=quantity,
        multiplier=multiplier,
        fees=fees,
    )

    option_details = fifo_resolve_option_details(closing_instrument) if asset_type == ASSET_TYPE_OPTION else None
    return Trade(
        exchange=exchange,
        instrument_symbol=fifo_format_display_symbol(closing_instrument),
        asset_type=asset_type,
        direction=open_lot.direction,
        entry_price=open_lot.price,
        exit_price=exit_price,
        quantity=quantity,
        entry_date=open_lot.opened_at,
        exit_date=exit_date,
        fees=fees,
        pnl=pnl,
        pnl_percent=trade_calculate_pnl_percent(pnl, open_lot.price, quantity, multiplier),
        external_id=external_id,
        underlying_symbol=option_details.underlying_symbol if option_details else None,
        option_type=option_details.option_type if option_details else None,
        strike_price=option_details.strike_price if option_details else None,
        expiration_date=option_details.expiration_date if option_details else None,
        notes=notes,
    )


def _fifo_allocate_transaction_fees(
    transaction: RawTransaction,
    trade_legs: tuple[TransactionLeg, ...],
) -> list[Decimal]:
    """Split transaction fee items across trade legs pro rata by quantity."""

    total_fees = transaction.transaction_total_fees()
    if len(trade_legs) == 1:
        return [total_fees]

    total_quantity = sum((abs(leg.amount) for leg in trade_legs), _ZERO)
    return [total_fees * abs(leg.amount) / total_quantity for leg in trade_legs]


def _fifo_malformed(account_id: str, activity_id: str, reason: str) -> MalformedTransactionFinding:
    """Build and log one malformed-transaction finding."""

    logger.warning("skipping transaction account_id=%s activity_id=%s reason=%s", account_id, activity_id, reason)
    return MalformedTransactionFinding(account_id=account_id, activity_id=activity_id, reason=reason)

