"""JSON payload builders shared by API routers."""

from __future__ import annotations

from decimal import Decimal

from trade_journal.db import SyncRunRecord, TradeRecord
from trade_journal.jobs import SyncResult
from trade_journal.ledger import OptionPositionGroup, OptionsMetricsSummary, ScaleOutEvent


def api_serialize_decimal(value: Decimal | None) -> str | None:
    """Render decimals as strings so JSON clients keep full precision."""

    if value is None:
        return None
    return str(value)


def api_serialize_trade_record(trade_record: TradeRecord) -> dict[str, object]:
    """Serialize one persisted trade row to JSON response payload.

    Args:
        trade_record: Typed trade row.

    Returns:
        dict[str, object]: JSON-serializable trade payload.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    trade = trade_record.trade
    return {
        "trade_id": trade_record.trade_id,
        "account_id": trade_record.account_id,
        "exchange": trade.exchange,
        "instrument_symbol": trade.instrument_symbol,
        "asset_type": trade.asset_type,
        "direction": trade.direction,
        "entry_price": api_serialize_decimal(trade.entry_price),
        "exit_price": api_serialize_decimal(trade.exit_price),
        "quantity": api_serialize_decimal(trade.quantity),
        "entry_date": trade.entry_date.isoformat(),
        "exit_date": trade.exit_date.isoformat(),
        "fees": api_serialize_decimal(trade.fees),
        "pnl": api_serialize_decimal(trade.pnl),
        "pnl_percent": api_serialize_decimal(trade.pnl_percent),
        "status": trade.status,
        "external_id": trade.external_id,
        "underlying_symbol": trade.underlying_symbol,
        "option_type": trade.option_type,
        "strike_price": api_serialize_decimal(trade.strike_price),
        "expiration_date": trade.expiration_date.isoformat() if trade.expiration_date else None,
        "notes": trade.notes,
        "fingerprint": trade_record.fingerprint,
        "created_at_utc": trade_record.created_at_utc.isoformat(),
    }


def api_serialize_scale_out_event(event: ScaleOutEvent) -> dict[str, object]:
    return {
        "date": event.date.isoformat(),
        "quantity": api_serialize_decimal(event.quantity),
        "price": api_serialize_decimal(event.price),
        "proceeds": api_serialize_decimal(event.proceeds),
        "cumulative_proceeds": api_serialize_decimal(event.cumulative_proceeds),
        "cumulative_recovery_percent": api_serialize_decimal(event.cumulative_recovery_percent),
        "pnl": api_serialize_decimal(event.pnl),
        "made_free": event.made_free,
    }


def api_serialize_option_position(position: OptionPositionGroup) -> dict[str, object]:
    """Serialize one option position group with its scale-out history.

    Args:
        position: Grouped option position.

    Returns:
        dict[str, object]: JSON-serializable position payload.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    return {
        "instrument_symbol": position.instrument_symbol,
        "underlying": position.underlying,
        "option_type": position.option_type,
        "strike_price": api_serialize_decimal(position.strike_price),
        "expiration_date": position.expiration_date.isoformat() if position.expiration_date else None,
        "entry_date": position.entry_date.isoformat(),
        "trade_count": len(position.trades),
        "trade_external_ids": [trade.external_id for trade in position.trades],
        "total_contracts": api_serialize_decimal(position.total_contracts),
        "total_cost_basis": api_serialize_decimal(position.total_cost_basis),
        "total_proceeds": api_serialize_decimal(position.total_proceeds),
        "realized_pnl": api_serialize_decimal(position.realized_pnl),
        "percent_recovered": api_serialize_decimal(position.percent_recovered),
        "is_free": position.is_free,
        "free_at": position.free_at.isoformat() if position.free_at else None,
        "is_scaled_out": position.is_scaled_out,
        "recovery_status": position.recovery_status,
        "outcome_status": position.outcome_status,
        "scale_out_history": [api_serialize_scale_out_event(event) for event in position.scale_out_history],
    }


def api_serialize_options_metrics(summary: OptionsMetricsSummary) -> dict[str, object]:
    """Serialize options metrics summary.

    Args:
        summary: Aggregated options metrics.

    Returns:
        dict[str, object]: JSON-serializable metrics payload.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    def _option_type_payload(stats) -> dict[str, object]:
        return {
            "trade_count": stats.trade_count,
            "pnl": api_serialize_decimal(stats.pnl),
            "win_rate": api_serialize_decimal(stats.win_rate),
            "position_count": stats.position_count,
        }

    return {
        "total_option_trades": summary.total_option_trades,
        "total_positions": summary.total_positions,
        "free_positions_count": summary.free_positions_count,
        "free_positions_percent": api_serialize_decimal(summary.free_positions_percent),
        "total_cost_basis": api_serialize_decimal(summary.total_cost_basis),
        "total_proceeds": api_serialize_decimal(summary.total_proceeds),
        "total_realized_pnl": api_serialize_decimal(summary.total_realized_pnl),
        "avg_pnl_per_trade": api_serialize_decimal(summary.avg_pnl_per_trade),
        "total_pnl_from_free_positions": api_serialize_decimal(summary.total_pnl_from_free_positions),
        "avg_recovery_percent_when_free": api_serialize_decimal(summary.avg_recovery_percent_when_free),
        "avg_days_to_free": api_serialize_decimal(summary.avg_days_to_free),
        "win_rate": api_serialize_decimal(summary.win_rate),
        "profit_factor": api_serialize_decimal(summary.profit_factor),
        "avg_winning_trade": api_serialize_decimal(summary.avg_winning_trade),
        "avg_losing_trade": api_serialize_decimal(summary.avg_losing_trade),
        "not_scaled_out_count": summary.not_scaled_out_count,
        "calls": _option_type_payload(summary.calls),
        "puts": _option_type_payload(summary.puts),
        "top_underlyings": [
            {
                "underlying": underlying_stats.underlying,
                "pnl": api_serialize_decimal(underlying_stats.pnl),
                "trade_count": underlying_stats.trade_count,
                "win_rate": api_serialize_decimal(underlying_stats.win_rate),
                "free_count": underlying_stats.free_count,
            }
            for underlying_stats in summary.top_underlyings
        ],
    }


def api_serialize_sync_run_record(run_record: SyncRunRecord) -> dict[str, object]:
    """Serialize typed sync run row to JSON response payload.

    Args:
        run_record: Typed sync run record.

    Returns:
        dict[str, object]: JSON-serializable sync run payload.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    return {
        "sync_run_id": run_record.sync_run_id,
        "account_id": run_record.account_id,
        "run_type": run_record.run_type,
        "status": run_record.state.status,
        "started_at_utc": run_record.state.started_at_utc.isoformat(),
        "ended_at_utc": run_record.state.ended_at_utc.isoformat() if run_record.state.ended_at_utc else None,
        "duration_ms": run_record.state.duration_ms,
        "transaction_count": run_record.counters.transaction_count,
        "trade_count": run_record.counters.trade_count,
        "inserted_count": run_record.counters.inserted_count,
        "duplicate_count": run_record.counters.duplicate_count,
        "unmatched_count": run_record.counters.unmatched_count,
        "malformed_count": run_record.counters.malformed_count,
        "error_code": run_record.state.error_code,
        "error_message": run_record.state.error_message,
        "diagnostics": run_record.state.diagnostics,
        "created_at_utc": run_record.created_at_utc.isoformat(),
    }


def api_serialize_sync_result(sync_result: SyncResult) -> dict[str, object]:
    """Serialize one sync outcome including data-quality findings.

    Args:
        sync_result: Job-layer sync result.

    Returns:
        dict[str, object]: JSON-serializable sync result payload.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    return {
        "account_id": sync_result.account_id,
        "status": sync_result.status,
        "sync_run_id": sync_result.sync_run_id,
        "transaction_count": sync_result.counters.transaction_count,
        "trade_count": sync_result.counters.trade_count,
        "inserted_count": sync_result.counters.inserted_count,
        "duplicate_count": sync_result.counters.duplicate_count,
        "unmatched_closings": [finding.finding_as_diagnostic() for finding in sync_result.unmatched_closings],
        "malformed_transactions": [finding.finding_as_diagnostic() for finding in sync_result.malformed_transactions],
        "open_positions": [
            {
                "instrument_key": open_position.instrument_key,
                "quantity": api_serialize_decimal(open_position.quantity),
                "direction": open_position.direction,
                "lot_count": open_position.lot_count,
            }
            for open_position in sync_result.open_positions
        ],
        "error_code": sync_result.error_code,
        "error_message": sync_result.error_message,
    }
