"""Tests for FIFO lot matching of broker transactions into realized trades."""

from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from decimal import Decimal

from trade_journal.domain import domain_parse_raw_transaction
from trade_journal.ledger import (
    FifoMatchRequest,
    InstrumentLotQueues,
    fifo_aggregate_simultaneous_trades,
    fifo_match_transactions,
    fifo_parse_occ_option_symbol,
    fifo_summarize_open_lots,
)

_ISRG_CALL = "ISRG  251031C00600000"
_ISRG_PUT = "ISRG  251031P00600000"


def _option_transaction(
    activity_id: str,
    time_text: str,
    amount: int,
    price: str,
    position_effect: str,
    symbol: str = _ISRG_CALL,
    fee: str | None = None,
):
    put_call = "PUT" if symbol[12] == "P" else "CALL"
    transfer_items: list[dict[str, object]] = [
        {
            "instrument": {
                "assetType": "OPTION",
                "symbol": symbol,
                "underlyingSymbol": symbol.split()[0],
                "putCall": put_call,
            },
            "amount": amount,
            "price": price,
            "positionEffect": position_effect,
        }
    ]
    if fee is not None:
        transfer_items.append(
            {
                "instrument": {"assetType": "CURRENCY", "symbol": "CURRENCY_USD"},
                "amount": 0,
                "cost": f"-{fee}",
                "feeType": "COMMISSION",
            }
        )
    return domain_parse_raw_transaction(
        {"activityId": activity_id, "time": time_text, "type": "TRADE", "transferItems": transfer_items}
    )


def _stock_transaction(activity_id: str, time_text: str, amount: int, price: str, position_effect: str):
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


def _match(transactions, **kwargs):
    return fifo_match_transactions(
        FifoMatchRequest(account_id="ACC-1", exchange="Schwab", transactions=transactions, **kwargs)
    )


def test_fifo_splits_one_lot_across_two_closing_legs() -> None:
    """One 10-lot closed 4 then 6 yields two trades with direction-aware P&L."""

    result = _match(
        [
            _option_transaction("O1", "2025-10-01T14:30:00Z", 10, "2.00", "OPENING"),
            _option_transaction("C1", "2025-10-05T15:00:00Z", -4, "1.00", "CLOSING"),
            _option_transaction("C2", "2025-10-20T15:00:00Z", -6, "4.00", "CLOSING"),
        ]
    )

    assert len(result.trades) == 2
    first_trade, second_trade = result.trades
    assert first_trade.quantity == Decimal("4")
    assert first_trade.pnl == Decimal("-400")
    assert second_trade.quantity == Decimal("6")
    assert second_trade.pnl == Decimal("1200")
    assert second_trade.pnl_percent == Decimal("100")
    assert second_trade.external_id == "O1-C2"
    assert second_trade.instrument_symbol == "ISRG 600C"
    assert second_trade.asset_type == "OPTION"
    assert second_trade.option_type == "CALL"
    assert second_trade.strike_price == Decimal("600")
    assert second_trade.entry_date == datetime(2025, 10, 1, 14, 30, tzinfo=timezone.utc)
    assert result.open_lots == ()
    assert result.unmatched_closings == ()


def test_fifo_attributes_opening_and_closing_fees_pro_rata() -> None:
    result = _match(
        [
            _option_transaction("O1", "2025-10-01T14:30:00Z", 10, "2.00", "OPENING", fee="1.30"),
            _option_transaction("C1", "2025-10-05T15:00:00Z", -4, "1.00", "CLOSING", fee="0.65"),
            _option_transaction("C2", "2025-10-20T15:00:00Z", -6, "4.00", "CLOSING", fee="0.65"),
        ]
    )

    first_trade, second_trade = result.trades
    assert first_trade.fees == Decimal("1.17")
    assert first_trade.pnl == Decimal("-401.17")
    assert second_trade.fees == Decimal("1.43")
    assert second_trade.pnl == Decimal("1198.57")


def test_fifo_reports_over_closing_remainder_instead_of_raising() -> None:
    """Closing 10 against 6 open emits one trade of 6 and an unmatched 4."""

    result = _match(
        [
            _option_transaction("O1", "2025-10-01T14:30:00Z", 6, "2.00", "OPENING"),
            _option_transaction("C1", "2025-10-05T15:00:00Z", -10, "3.00", "CLOSING"),
        ]
    )

    assert [trade.quantity for trade in result.trades] == [Decimal("6")]
    assert len(result.unmatched_closings) == 1
    finding = result.unmatched_closings[0]
    assert finding.account_id == "ACC-1"
    assert finding.instrument_key == _ISRG_CALL
    assert finding.activity_id == "C1"
    assert finding.requested_quantity == Decimal("10")
    assert finding.unmatched_quantity == Decimal("4")
    assert result.result_unmatched_quantity() == Decimal("4")
    assert finding.finding_as_diagnostic()["code"] == "UNMATCHED_CLOSING_QUANTITY"


def test_fifo_conserves_quantity_across_lots() -> None:
    """Opened quantity equals matched quantity plus open remainder."""

    result = _match(
        [
            _stock_transaction("O1", "2025-01-02T15:00:00Z", 100, "10", "OPENING"),
            _stock_transaction("O2", "2025-01-03T15:00:00Z", 50, "12", "OPENING"),
            _stock_transaction("C1", "2025-01-04T15:00:00Z", -120, "11", "CLOSING"),
        ]
    )

    matched_quantity = sum((trade.quantity for trade in result.trades), Decimal("0"))
    open_quantity = sum((lot.remaining_quantity for lot in result.open_lots), Decimal("0"))
    assert matched_quantity + open_quantity == Decimal("150")
    assert [(trade.external_id, trade.quantity) for trade in result.trades] == [
        ("O1-C1", Decimal("100")),
        ("O2-C1", Decimal("20")),
    ]
    assert result.trades[0].pnl == Decimal("100")
    assert result.trades[1].pnl == Decimal("-20")
    assert result.trades[0].instrument_symbol == "AAPL"
    assert result.trades[0].asset_type == "STOCK"


def test_fifo_keeps_calls_and_puts_on_separate_queues() -> None:
    result = _match(
        [
            _option_transaction("O1", "2025-10-01T14:30:00Z", 2, "5.00", "OPENING", symbol=_ISRG_CALL),
            _option_transaction("O2", "2025-10-01T14:31:00Z", 3, "4.00", "OPENING", symbol=_ISRG_PUT),
            _option_transaction("C1", "2025-10-02T14:30:00Z", -3, "6.00", "CLOSING", symbol=_ISRG_PUT),
        ]
    )

    assert len(result.trades) == 1
    assert result.trades[0].instrument_symbol == "ISRG 600P"
    assert result.trades[0].external_id == "O2-C1"
    assert [lot.instrument_key for lot in result.open_lots] == [_ISRG_CALL]


def test_fifo_short_position_profits_when_price_falls() -> None:
    result = _match(
        [
            _option_transaction("O1", "2025-10-01T14:30:00Z", -5, "3.00", "OPENING"),
            _option_transaction("C1", "2025-10-02T14:30:00Z", 5, "1.00", "CLOSING"),
        ]
    )

    assert result.trades[0].direction == "SHORT"
    assert result.trades[0].pnl == Decimal("1000")


def test_fifo_sorts_transactions_by_time_before_matching() -> None:
    result = _match(
        [
            _stock_transaction("C1", "2025-01-04T15:00:00Z", -10, "11", "CLOSING"),
            _stock_transaction("O1", "2025-01-02T15:00:00Z", 10, "10", "OPENING"),
        ]
    )

    assert [trade.external_id for trade in result.trades] == ["O1-C1"]
    assert result.unmatched_closings == ()


def test_fifo_reports_fee_only_and_invalid_transactions_as_malformed() -> None:
    fee_only = domain_parse_raw_transaction(
        {
            "activityId": "F1",
            "time": "2025-01-02T15:00:00Z",
            "type": "TRADE",
            "transferItems": [
                {"instrument": {"assetType": "CURRENCY", "symbol": "CURRENCY_USD"}, "cost": "-1", "feeType": "SEC"}
            ],
        }
    )
    invalid = domain_parse_raw_transaction(
        {"activityId": "I1", "time": "2025-01-02T15:00:00Z", "type": "TRADE", "status": "INVALID"}
    )
    journal = domain_parse_raw_transaction({"activityId": "J1", "time": "2025-01-02T15:00:00Z", "type": "JOURNAL"})

    result = _match([fee_only, invalid, journal])

    assert result.trades == ()
    assert {(finding.activity_id, finding.reason) for finding in result.malformed_transactions} == {
        ("F1", "fee-only transaction"),
        ("I1", "transaction status is INVALID"),
    }


def test_fifo_expires_worthless_long_and_short_option_lots() -> None:
    """Open option lots past expiration close at zero on the expiration date."""

    result = _match(
        [
            _option_transaction("O1", "2025-01-02T15:00:00Z", 2, "1.50", "OPENING", symbol="AMD   250117C00265000"),
            _option_transaction("O2", "2025-01-02T15:00:00Z", -1, "0.80", "OPENING", symbol="AMD   250117P00200000"),
        ],
        as_of=datetime(2025, 2, 1, tzinfo=timezone.utc),
    )

    trades_by_id = {trade.external_id: trade for trade in result.trades}
    long_trade = trades_by_id["O1-expired"]
    short_trade = trades_by_id["O2-expired"]
    assert long_trade.exit_price == Decimal("0")
    assert long_trade.exit_date == datetime(2025, 1, 17, tzinfo=timezone.utc)
    assert long_trade.pnl == Decimal("-300")
    assert long_trade.notes == "expired worthless"
    assert short_trade.pnl == Decimal("80")
    assert result.open_lots == ()


def test_fifo_keeps_lots_open_on_expiration_day_or_when_disabled() -> None:
    transactions = [
        _option_transaction("O1", "2025-01-02T15:00:00Z", 2, "1.50", "OPENING", symbol="AMD   250117C00265000")
    ]

    same_day = _match(transactions, as_of=datetime(2025, 1, 17, 21, 0, tzinfo=timezone.utc))
    disabled = _match(transactions, as_of=datetime(2025, 2, 1, tzinfo=timezone.utc), expire_worthless_options=False)

    assert same_day.trades == ()
    assert len(same_day.open_lots) == 1
    assert disabled.trades == ()


def test_fifo_continues_from_injected_lot_queues() -> None:
    """Residual lots of a previous pass are consumed by the next pass."""

    lot_queues = InstrumentLotQueues(queues={})
    _match([_stock_transaction("O1", "2025-01-02T15:00:00Z", 10, "10", "OPENING")], lot_queues=lot_queues)

    result = _match([_stock_transaction("C1", "2025-01-05T15:00:00Z", -10, "15", "CLOSING")], lot_queues=lot_queues)

    assert [trade.external_id for trade in result.trades] == ["O1-C1"]
    assert lot_queues.queues_open_quantity("AAPL") == Decimal("0")
    assert lot_queues.queues_get("AAPL") == deque()


def test_fifo_aggregate_merges_same_minute_fills() -> None:
    result = _match(
        [
            _stock_transaction("O1", "2025-01-02T15:00:05Z", 10, "10", "OPENING"),
            _stock_transaction("O2", "2025-01-02T15:00:40Z", 30, "12", "OPENING"),
            _stock_transaction("C1", "2025-01-03T15:00:00Z", -40, "13", "CLOSING"),
        ]
    )

    aggregated = fifo_aggregate_simultaneous_trades(result.trades)

    assert len(aggregated) == 1
    assert aggregated[0].quantity == Decimal("40")
    assert aggregated[0].entry_price == Decimal("11.5")
    assert aggregated[0].pnl == Decimal("60")
    assert aggregated[0].external_id == "O1-C1"


def test_fifo_summarize_open_lots_nets_quantity_per_instrument() -> None:
    result = _match(
        [
            _stock_transaction("O1", "2025-01-02T15:00:00Z", 10, "10", "OPENING"),
            _stock_transaction("O2", "2025-01-03T15:00:00Z", 5, "11", "OPENING"),
        ]
    )

    summaries = fifo_summarize_open_lots(result.open_lots)

    assert len(summaries) == 1
    assert summaries[0].instrument_key == "AAPL"
    assert summaries[0].quantity == Decimal("15")
    assert summaries[0].direction == "LONG"
    assert summaries[0].lot_count == 2


def test_fifo_parse_occ_option_symbol() -> None:
    details = fifo_parse_occ_option_symbol("ISRG  251031C00600000")

    assert details is not None
    assert details.underlying_symbol == "ISRG"
    assert details.option_type == "CALL"
    assert details.strike_price == Decimal("600")
    assert details.expiration_date.isoformat() == "2025-10-31"
    assert fifo_parse_occ_option_symbol("AAPL") is None
