"""Aggregate options statistics derived from grouped option positions."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from trade_journal.domain import ASSET_TYPE_OPTION, Trade

from .position_lifecycle import (
    OptionPositionGroup,
    PositionLifecycleConfig,
    position_build_option_groups,
    position_resolve_option_contract,
)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_SECONDS_PER_DAY = Decimal("86400")
TOP_UNDERLYINGS_LIMIT = 10


@dataclass(frozen=True)
class OptionTypeStats:
    """Trade and position counts for one option right."""

    trade_count: int = 0
    pnl: Decimal = _ZERO
    win_rate: Decimal = _ZERO
    position_count: int = 0


@dataclass(frozen=True)
class UnderlyingStats:
    """Realized performance of one underlying across its option positions."""

    underlying: str
    pnl: Decimal
    trade_count: int
    win_rate: Decimal
    free_count: int


@dataclass(frozen=True)
class OptionsMetricsSummary:  # pylint: disable=too-many-instance-attributes
    """Account-level options summary.

    Attributes:
        profit_factor: Gross wins over gross losses; None when no losing trade exists.
        avg_recovery_percent_when_free: Mean cumulative recovery at the `made_free` event.
        avg_days_to_free: Mean fractional days between entry and `free_at`.
        not_scaled_out_count: Positions exited in a single step.
    """

    total_option_trades: int = 0
    total_positions: int = 0
    free_positions_count: int = 0
    free_positions_percent: Decimal = _ZERO
    total_cost_basis: Decimal = _ZERO
    total_proceeds: Decimal = _ZERO
    total_realized_pnl: Decimal = _ZERO
    avg_pnl_per_trade: Decimal = _ZERO
    total_pnl_from_free_positions: Decimal = _ZERO
    avg_recovery_percent_when_free: Decimal = _ZERO
    avg_days_to_free: Decimal = _ZERO
    win_rate: Decimal = _ZERO
    profit_factor: Decimal | None = None
    avg_winning_trade: Decimal = _ZERO
    avg_losing_trade: Decimal = _ZERO
    not_scaled_out_count: int = 0
    calls: OptionTypeStats = field(default_factory=OptionTypeStats)
    puts: OptionTypeStats = field(default_factory=OptionTypeStats)
    top_underlyings: tuple[UnderlyingStats, ...] = ()


def position_calculate_options_metrics(
    trades: list[Trade] | tuple[Trade, ...],
    config: PositionLifecycleConfig | None = None,
    positions: list[OptionPositionGroup] | None = None,
) -> OptionsMetricsSummary:
    """Calculate options summary metrics for one account.

    Args:
        trades: Realized trades of any asset type; non-options are ignored.
        config: Optional grouping/threshold configuration.
        positions: Optional pre-built groups for the same trades.

    Returns:
        OptionsMetricsSummary: Summary; all-zero when no option trade exists.

    Raises:
        ValueError: Raised when configuration is invalid.
    """

    option_trades = [trade for trade in trades if trade.asset_type == ASSET_TYPE_OPTION]
    resolved_positions = positions if positions is not None else position_build_option_groups(option_trades, config)
    if not option_trades or not resolved_positions:
        return OptionsMetricsSummary()

    free_positions = [position for position in resolved_positions if position.is_free]
    total_realized_pnl = sum((position.realized_pnl for position in resolved_positions), _ZERO)

    free_recovery_percents = [
        event.cumulative_recovery_percent
        for position in free_positions
        for event in position.scale_out_history
        if event.made_free
    ]
    days_to_free = [
        Decimal(str((position.free_at - position.entry_date).total_seconds())) / _SECONDS_PER_DAY
        for position in free_positions
        if position.free_at is not None
    ]

    winning_trades = [trade for trade in option_trades if trade.pnl > _ZERO]
    losing_trades = [trade for trade in option_trades if trade.pnl < _ZERO]
    gross_wins = sum((trade.pnl for trade in winning_trades), _ZERO)
    gross_losses = abs(sum((trade.pnl for trade in losing_trades), _ZERO))

    return OptionsMetricsSummary(
        total_option_trades=len(option_trades),
        total_positions=len(resolved_positions),
        free_positions_count=len(free_positions),
        free_positions_percent=_metrics_percent(len(free_positions), len(resolved_positions)),
        total_cost_basis=sum((position.total_cost_basis for position in resolved_positions), _ZERO),
        total_proceeds=sum((position.total_proceeds for position in resolved_positions), _ZERO),
        total_realized_pnl=total_realized_pnl,
        avg_pnl_per_trade=total_realized_pnl / len(option_trades),
        total_pnl_from_free_positions=sum((position.realized_pnl for position in free_positions), _ZERO),
        avg_recovery_percent_when_free=_metrics_mean(free_recovery_percents),
        avg_days_to_free=_metrics_mean(days_to_free),
        win_rate=_metrics_percent(len(winning_trades), len(option_trades)),
        profit_factor=gross_wins / gross_losses if gross_losses > _ZERO else None,
        avg_winning_trade=gross_wins / len(winning_trades) if winning_trades else _ZERO,
        avg_losing_trade=gross_losses / len(losing_trades) if losing_trades else _ZERO,
        not_scaled_out_count=sum(1 for position in resolved_positions if not position.is_scaled_out),
        calls=_metrics_option_type_stats("CALL", option_trades, resolved_positions),
        puts=_metrics_option_type_stats("PUT", option_trades, resolved_positions),
        top_underlyings=_metrics_top_underlyings(resolved_positions),
    )


def _metrics_option_type_stats(
    option_type: str,
    option_trades: list[Trade],
    positions: list[OptionPositionGroup],
) -> OptionTypeStats:
    typed_trades = []
    for trade in option_trades:
        contract = position_resolve_option_contract(trade)
        if contract is not None and contract.option_type == option_type:
            typed_trades.append(trade)

    win_count = sum(1 for trade in typed_trades if trade.pnl > _ZERO)
    return OptionTypeStats(
        trade_count=len(typed_trades),
        pnl=sum((trade.pnl for trade in typed_trades), _ZERO),
        win_rate=_metrics_percent(win_count, len(typed_trades)),
        position_count=sum(1 for position in positions if position.option_type == option_type),
    )


def _metrics_top_underlyings(positions: list[OptionPositionGroup]) -> tuple[UnderlyingStats, ...]:
    totals: dict[str, dict[str, Decimal | int]] = {}
    for position in positions:
        current = totals.setdefault(position.underlying, {"pnl": _ZERO, "trades": 0, "wins": 0, "free": 0})
        current["pnl"] += position.realized_pnl
        current["trades"] += len(position.trades)
        current["wins"] += sum(1 for trade in position.trades if trade.pnl > _ZERO)
        current["free"] += 1 if position.is_free else 0

    ranked = sorted(
        (
            UnderlyingStats(
                underlying=underlying,
                pnl=values["pnl"],
                trade_count=values["trades"],
                win_rate=_metrics_percent(values["wins"], values["trades"]),
                free_count=values["free"],
            )
            for underlying, values in totals.items()
        ),
        key=lambda stats: stats.pnl,
        reverse=True,
    )
    return tuple(ranked[:TOP_UNDERLYINGS_LIMIT])


def _metrics_percent(numerator: int, denominator: int) -> Decimal:
    if denominator <= 0:
        return _ZERO
    return Decimal(numerator) / Decimal(denominator) * _HUNDRED


def _metrics_mean(values: list[Decimal]) -> Decimal:
    if not values:
        return _ZERO
    return sum(values, _ZERO) / Decimal(len(values))
