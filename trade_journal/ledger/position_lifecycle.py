"""Option position grouping and scale-out (cost-basis recovery) tracking.

Realized option trades that the FIFO matcher split across lots are merged
back into logical positions keyed by underlying, strike, right and a coarse
entry-time window. Each closing trade then contributes proceeds towards the
position's cost basis; the first closing trade that lifts cumulative proceeds
to the "free" threshold marks the position as free. That flag is latched: a
later loss never reverts it, because "free" reflects cost-basis recovery
rather than subsequent performance.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

from trade_journal.domain import ASSET_TYPE_OPTION, OPTION_CONTRACT_MULTIPLIER, Trade

from .interfaces import TradeReadRepositoryPort

RECOVERY_STATUS_AT_RISK = "at_risk"
RECOVERY_STATUS_RECOVERING = "recovering"
RECOVERY_STATUS_FREE = "free"

OUTCOME_STATUS_FREE = "free"
OUTCOME_STATUS_PROFIT = "profit"
OUTCOME_STATUS_LOSS = "loss"
OUTCOME_STATUS_BREAKEVEN = "breakeven"

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_COMPACT_TICKER_PATTERN = re.compile(r"^(?P<underlying>\S+)\s+(?P<strike>\d+(?:\.\d+)?)(?P<right>[CP])$")


@dataclass(frozen=True)
class PositionLifecycleConfig:
    """Tunable grouping and recovery thresholds.

    Attributes:
        entry_window_seconds: Entry timestamps inside the same window belong to one position.
        at_risk_below_percent: Recovery below this value is labeled `at_risk`.
        free_at_percent: Recovery at or above this value marks the position free.
    """

    entry_window_seconds: int = 60
    at_risk_below_percent: Decimal = Decimal("50")
    free_at_percent: Decimal = Decimal("100")

    def lifecycle_validate(self) -> None:
        """Validate threshold ordering and window size.

        Raises:
            ValueError: Raised when configured values are inconsistent.
        """

        if self.entry_window_seconds < 1:
            raise ValueError("entry_window_seconds must be >= 1")
        if self.at_risk_below_percent < _ZERO:
            raise ValueError("at_risk_below_percent must be >= 0")
        if self.free_at_percent <= _ZERO:
            raise ValueError("free_at_percent must be > 0")
        if self.at_risk_below_percent > self.free_at_percent:
            raise ValueError("at_risk_below_percent must be <= free_at_percent")


@dataclass(frozen=True)
class ParsedOptionTicker:
    """Option fields recovered from a display ticker."""

    underlying: str
    option_type: str
    strike_price: Decimal
    expiration_date: date | None


@dataclass(frozen=True)
class ScaleOutEvent:
    """One closing trade applied to an option position.

    Attributes:
        date: Exit timestamp.
        quantity: Contracts closed.
        price: Exit price.
        proceeds: Exit proceeds (price x quantity x multiplier).
        cumulative_proceeds: Proceeds accumulated up to and including this event.
        cumulative_recovery_percent: Cumulative proceeds over cost basis, in percent.
        pnl: Net P&L of the closing trade.
        made_free: True only on the event that first reached the free threshold.
    """

    date: datetime
    quantity: Decimal
    price: Decimal
    proceeds: Decimal
    cumulative_proceeds: Decimal
    cumulative_recovery_percent: Decimal
    pnl: Decimal
    made_free: bool


@dataclass(frozen=True)
class OptionPositionGroup:  # pylint: disable=too-many-instance-attributes
    """Logical option position rebuilt from FIFO-split realized trades.

    Attributes:
        instrument_symbol: Display ticker of the first trade.
        underlying: Underlying symbol.
        option_type: `CALL` or `PUT`.
        strike_price: Strike price.
        expiration_date: Optional expiration date.
        entry_date: Earliest entry timestamp in the group.
        trades: Member trades ordered by exit time.
        total_contracts: Sum of member quantities.
        total_cost_basis: Sum of entry price x quantity x multiplier.
        total_proceeds: Sum of exit price x quantity x multiplier.
        realized_pnl: Sum of member net P&L.
        percent_recovered: Final cumulative recovery percent.
        is_free: Whether recovery ever reached the free threshold (latched).
        free_at: Exit timestamp of the event that made the position free.
        scale_out_history: Ordered scale-out events.
        recovery_status: `at_risk`, `recovering` or `free`.
        outcome_status: `free`, `profit`, `loss` or `breakeven`.
    """

    instrument_symbol: str
    underlying: str
    option_type: str
    strike_price: Decimal
    expiration_date: date | None
    entry_date: datetime
    trades: tuple[Trade, ...]
    total_contracts: Decimal
    total_cost_basis: Decimal
    total_proceeds: Decimal
    realized_pnl: Decimal
    percent_recovered: Decimal
    is_free: bool
    free_at: datetime | None
    scale_out_history: tuple[ScaleOutEvent, ...]
    recovery_status: str
    outcome_status: str

    @property
    def is_scaled_out(self) -> bool:
        """Return whether the position was exited in more than one step."""

        return len(self.scale_out_history) > 1


def position_build_option_groups(
    trades: list[Trade] | tuple[Trade, ...],
    config: PositionLifecycleConfig | None = None,
) -> list[OptionPositionGroup]:
    """Group realized option trades into positions and compute recovery state.

    Args:
        trades: Realized trades of any asset type; non-options are ignored.
        config: Optional grouping/threshold configuration.

    Returns:
        list[OptionPositionGroup]: Positions ordered by entry date, most recent first.

    Raises:
        ValueError: Raised when configuration is invalid.
    """

    resolved_config = config or PositionLifecycleConfig()
    resolved_config.lifecycle_validate()

    grouped_trades: dict[tuple[str, str, Decimal, int], list[Trade]] = {}
    for trade in trades:
        if trade.asset_type != ASSET_TYPE_OPTION:
            continue
        contract = position_resolve_option_contract(trade)
        if contract is None:
            continue
        group_key = (
            contract.underlying,
            contract.option_type,
            contract.strike_price,
            _position_entry_window_index(trade.entry_date, resolved_config.entry_window_seconds),
        )
        grouped_trades.setdefault(group_key, []).append(trade)

    positions = [
        _position_build_group(group_trades, resolved_config)
        for group_trades in grouped_trades.values()
    ]
    positions.sort(key=lambda position: position.entry_date, reverse=True)
    return positions


def position_recovery_status(recovery_percent: Decimal, is_free: bool, config: PositionLifecycleConfig) -> str:
    """Return the recovery label for one position state.

    Args:
        recovery_percent: Current cumulative recovery percent.
        is_free: Latched free flag.
        config: Threshold configuration.

    Returns:
        str: `at_risk`, `recovering` or `free`.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    if is_free or recovery_percent >= config.free_at_percent:
        return RECOVERY_STATUS_FREE
    if recovery_percent < config.at_risk_below_percent:
        return RECOVERY_STATUS_AT_RISK
    return RECOVERY_STATUS_RECOVERING


def position_resolve_option_contract(trade: Trade) -> ParsedOptionTicker | None:
    """Resolve option contract fields from structured trade columns or the display ticker.

    Args:
        trade: Realized option trade.

    Returns:
        ParsedOptionTicker | None: Contract fields, or None when they cannot be determined.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    if trade.underlying_symbol and trade.option_type and trade.strike_price is not None:
        return ParsedOptionTicker(
            underlying=trade.underlying_symbol,
            option_type=trade.option_type,
            strike_price=trade.strike_price,
            expiration_date=trade.expiration_date,
        )
    return position_parse_option_ticker(trade.instrument_symbol)


def position_parse_option_ticker(ticker: str) -> ParsedOptionTicker | None:
    """Parse display tickers such as `AMD 01/23/2026 265.00 C` or `ISRG 600C`.

    Args:
        ticker: Display ticker.

    Returns:
        ParsedOptionTicker | None: Parsed fields, or None when the format is unknown.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    if not ticker or not ticker.strip():
        return None

    normalized_ticker = ticker.strip()
    compact_match = _COMPACT_TICKER_PATTERN.match(normalized_ticker)
    if compact_match is not None:
        return ParsedOptionTicker(
            underlying=compact_match.group("underlying"),
            option_type="CALL" if compact_match.group("right") == "C" else "PUT",
            strike_price=Decimal(compact_match.group("strike")),
            expiration_date=None,
        )

    parts = normalized_ticker.split()
    if len(parts) < 4:
        return None

    underlying, date_text, strike_text, right_text = parts[0], parts[1], parts[2], parts[3]
    date_parts = date_text.split("/")
    if len(date_parts) != 3:
        return None
    try:
        month, day, year = (int(value) for value in date_parts)
        expiration_date = date(year, month, day)
        strike_price = Decimal(strike_text)
    except (ValueError, InvalidOperation):
        return None

    return ParsedOptionTicker(
        underlying=underlying,
        option_type="CALL" if right_text.upper() == "C" else "PUT",
        strike_price=strike_price,
        expiration_date=expiration_date,
    )


class PositionLifecycleService:
    """Derived-read service exposing option positions for reporting collaborators."""

    def __init__(self, repository: TradeReadRepositoryPort, config: PositionLifecycleConfig | None = None):
        """Initialize position lifecycle service.

        Args:
            repository: Trade read repository.
            config: Optional grouping/threshold configuration.

        Raises:
            ValueError: Raised when dependencies or configuration are invalid.
        """

        if repository is None:
            raise ValueError("repository must not be None")
        resolved_config = config or PositionLifecycleConfig()
        resolved_config.lifecycle_validate()

        self._repository = repository
        self._config = resolved_config

    def ledger_option_positions(
        self,
        account_id: str,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[OptionPositionGroup]:
        """Return option positions whose entry date falls inside an inclusive range.

        All trades of the account are loaded so positions opened inside the
        range keep scale-out events that happened after it.

        Args:
            account_id: Account identifier.
            date_from: Optional inclusive lower entry-date bound.
            date_to: Optional inclusive upper entry-date bound.

        Returns:
            list[OptionPositionGroup]: Positions ordered by entry date, most recent first.

        Raises:
            ValueError: Raised when the account id is blank or the range is inverted.
            RuntimeError: Raised when the trade read fails.
        """

        if not account_id.strip():
            raise ValueError("account_id must not be blank")
        if date_from is not None and date_to is not None and date_from > date_to:
            raise ValueError("date_from must be <= date_to")

        trades = self._repository.db_trade_list_for_account(account_id=account_id.strip())
        positions = position_build_option_groups(trades, self._config)
        return [
            position
            for position in positions
            if (date_from is None or position.entry_date.date() >= date_from)
            and (date_to is None or position.entry_date.date() <= date_to)
        ]


def _position_build_group(group_trades: list[Trade], config: PositionLifecycleConfig) -> OptionPositionGroup:
    """Build one position with its scale-out history."""

    sorted_trades = sorted(group_trades, key=lambda trade: (trade.exit_date, trade.external_id or ""))
    contract = position_resolve_option_contract(sorted_trades[0])

    total_contracts = sum((trade.quantity for trade in sorted_trades), _ZERO)
    total_cost_basis = sum(
        (trade.entry_price * trade.quantity * OPTION_CONTRACT_MULTIPLIER for trade in sorted_trades),
        _ZERO,
    )
    realized_pnl = sum((trade.pnl for trade in sorted_trades), _ZERO)

    scale_out_history: list[ScaleOutEvent] = []
    cumulative_proceeds = _ZERO
    is_free = False
    free_at: datetime | None = None

    for trade in sorted_trades:
        proceeds = max(_ZERO, trade.exit_price * trade.quantity * OPTION_CONTRACT_MULTIPLIER)
        cumulative_proceeds += proceeds
        recovery_percent = _position_recovery_percent(cumulative_proceeds, total_cost_basis)

        made_free = not is_free and total_cost_basis > _ZERO and recovery_percent >= config.free_at_percent
        if made_free:
            is_free = True
            free_at = trade.exit_date

        scale_out_history.append(
            ScaleOutEvent(
                date=trade.exit_date,
                quantity=trade.quantity,
                price=trade.exit_price,
                proceeds=proceeds,
                cumulative_proceeds=cumulative_proceeds,
                cumulative_recovery_percent=recovery_percent,
                pnl=trade.pnl,
                made_free=made_free,
            )
        )

    percent_recovered = _position_recovery_percent(cumulative_proceeds, total_cost_basis)
    if is_free:
        outcome_status = OUTCOME_STATUS_FREE
    elif realized_pnl > _ZERO:
        outcome_status = OUTCOME_STATUS_PROFIT
    elif realized_pnl < _ZERO:
        outcome_status = OUTCOME_STATUS_LOSS
    else:
        outcome_status = OUTCOME_STATUS_BREAKEVEN

    return OptionPositionGroup(
        instrument_symbol=sorted_trades[0].instrument_symbol,
        underlying=contract.underlying,
        option_type=contract.option_type,
        strike_price=contract.strike_price,
        expiration_date=contract.expiration_date,
        entry_date=min(trade.entry_date for trade in sorted_trades),
        trades=tuple(sorted_trades),
        total_contracts=total_contracts,
        total_cost_basis=total_cost_basis,
        total_proceeds=cumulative_proceeds,
        realized_pnl=realized_pnl,
        percent_recovered=percent_recovered,
        is_free=is_free,
        free_at=free_at,
        scale_out_history=tuple(scale_out_history),
        recovery_status=position_recovery_status(percent_recovered, is_free, config),
        outcome_status=outcome_status,
    )


def _position_recovery_percent(cumulative_proceeds: Decimal, cost_basis: Decimal) -> Decimal:
    """Return clamped recovery percent; zero when cost basis is zero."""

    if cost_basis <= _ZERO:
        return _ZERO
    return max(_ZERO, cumulative_proceeds / cost_basis * _HUNDRED)


def _position_entry_window_index(entry_date: datetime, window_seconds: int) -> int:
    """Return the index of the entry window containing one timestamp."""

    entry_utc = entry_date if entry_date.tzinfo is not None else entry_date.replace(tzinfo=timezone.utc)
    return int(entry_utc.timestamp()) // window_seconds
