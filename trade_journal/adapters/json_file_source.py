"""Offline transaction source that replays broker payloads saved as JSON files."""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any

from trade_journal.domain import domain_build_stage_event, domain_parse_timestamp_utc

from .feed_errors import TransactionFeedResponseError
from .interfaces import TransactionFeedPort, TransactionFetchResult


class JsonFileTransactionSource(TransactionFeedPort):
    """Transaction source reading one JSON export per account from a directory.

    Files are named `<account_hash>.json` and hold either a bare array of
    broker transactions or an object with a `transactions` array.
    Transactions without a parsable `time` are passed through so the matcher
    can report them as malformed.
    """

    def __init__(self, directory: str | Path):
        """Initialize JSON file source.

        Args:
            directory: Directory holding `<account_hash>.json` exports.

        Raises:
            ValueError: Raised when directory is blank.
        """

        if not str(directory).strip():
            raise ValueError("directory must not be blank")
        self._directory = Path(directory)

    def adapter_source_name(self) -> str:
        """Return stable adapter source label."""

        return "json_file_transaction_source"

    def adapter_fetch_transactions(self, account_hash: str, start_date: date, end_date: date) -> TransactionFetchResult:
        """Load saved transactions for one account filtered to an inclusive date window.

        Args:
            account_hash: Account reference used as the file stem.
            start_date: Inclusive first day (UTC).
            end_date: Inclusive last day (UTC).

        Returns:
            TransactionFetchResult: Raw payloads and adapter timeline.

        Raises:
            ValueError: Raised when arguments are invalid.
            ConnectionError: Raised when the export file cannot be read.
            RuntimeError: Raised when the export is not valid JSON of the expected shape.
        """

        normalized_account_hash = account_hash.strip()
        if not normalized_account_hash:
            raise ValueError("account_hash must not be blank")
        if start_date > end_date:
            raise ValueError("start_date must be <= end_date")

        export_path = self._directory / f"{normalized_account_hash}.json"
        try:
            payload = json.loads(export_path.read_text(encoding="utf-8"))
        except OSError as error:
            raise ConnectionError(f"transaction export could not be read: {export_path}") from error
        except json.JSONDecodeError as error:
            raise TransactionFeedResponseError(f"transaction export is not valid JSON: {export_path}") from error

        if isinstance(payload, dict):
            payload = payload.get("transactions")
        if not isinstance(payload, list):
            raise TransactionFeedResponseError("transaction export must hold a JSON array")

        transactions = [
            item
            for item in payload
            if isinstance(item, dict) and self._source_in_window(item, start_date, end_date)
        ]
        return TransactionFetchResult(
            account_hash=normalized_account_hash,
            transactions=transactions,
            stage_timeline=[
                domain_build_stage_event(
                    stage="fetch",
                    status="completed",
                    details={"source_path": str(export_path), "transaction_count": len(transactions)},
                )
            ],
        )

    def _source_in_window(self, item: dict[str, Any], start_date: date, end_date: date) -> bool:
        time_value = item.get("time") or item.get("tradeDate")
        if not isinstance(time_value, str):
            return True
        parsed_time = domain_parse_timestamp_utc(time_value)
        if parsed_time is None:
            return True
        return start_date <= parsed_time.date() <= end_date
