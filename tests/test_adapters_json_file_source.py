"""Tests for replaying saved broker exports from disk."""

from __future__ import annotations

import json
from datetime import date

import pytest

from trade_journal.adapters import JsonFileTransactionSource, TransactionFeedResponseError


def _write_export(directory, account_hash: str, payload: object) -> None:
    (directory / f"{account_hash}.json").write_text(json.dumps(payload), encoding="utf-8")


def test_json_source_filters_by_window_and_keeps_untimed_rows(tmp_path) -> None:
    _write_export(
        tmp_path,
        "HASH-1",
        {
            "transactions": [
                {"activityId": "A", "time": "2025-09-30T23:59:00Z"},
                {"activityId": "B", "time": "2025-10-01T00:00:00Z"},
                {"activityId": "C", "time": "2025-10-31T23:59:59+0000"},
                {"activityId": "D"},
                "noise",
            ]
        },
    )

    result = JsonFileTransactionSource(tmp_path).adapter_fetch_transactions(
        " HASH-1 ", date(2025, 10, 1), date(2025, 10, 31)
    )

    assert result.account_hash == "HASH-1"
    assert [item["activityId"] for item in result.transactions] == ["B", "C", "D"]
    assert result.stage_timeline[0]["details"]["transaction_count"] == 3


def test_json_source_reports_missing_and_invalid_exports(tmp_path) -> None:
    source = JsonFileTransactionSource(tmp_path)
    (tmp_path / "BROKEN.json").write_text("{not json", encoding="utf-8")
    _write_export(tmp_path, "SCALAR", 42)

    with pytest.raises(ConnectionError):
        source.adapter_fetch_transactions("MISSING", date(2025, 10, 1), date(2025, 10, 31))
    with pytest.raises(TransactionFeedResponseError):
        source.adapter_fetch_transactions("BROKEN", date(2025, 10, 1), date(2025, 10, 31))
    with pytest.raises(TransactionFeedResponseError):
        source.adapter_fetch_transactions("SCALAR", date(2025, 10, 1), date(2025, 10, 31))
