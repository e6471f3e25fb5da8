"""Typed interfaces for adapter-layer responsibilities."""

from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol


@dataclass(frozen=True)
class TransactionFetchResult:
    """Result contract for transaction feed fetch operations.

    Attributes:
        account_hash: Broker account reference the transactions belong to.
        transactions: Raw broker transaction payloads, untouched.
        stage_timeline: Structured stage timeline entries captured by adapter.
    """

    account_hash: str
    transactions: list[dict[str, Any]]
    stage_timeline: list[dict[str, Any]]


class TransactionFeedPort(Protocol):
    """Port definition for fetching raw broker transactions for one account."""

    def adapter_source_name(self) -> str:
        """Return adapter source identifier for diagnostics.

        Returns:
            str: Human-readable upstream source identifier.

        Raises:
            RuntimeError: Raised when source metadata is unavailable.
        """

    def adapter_fetch_transactions(self, account_hash: str, start_date: date, end_date: date) -> TransactionFetchResult:
        """Fetch raw trade transactions inside an inclusive date window.

        Args:
            account_hash: Broker account reference.
            start_date: Inclusive first day (UTC).
            end_date: Inclusive last day (UTC).

        Returns:
            TransactionFetchResult: Raw payloads and adapter timeline.

        Raises:
            ConnectionError: Raised when upstream connection fails.
            TimeoutError: Raised when request exceeds timeout.
            ValueError: Raised when credentials or arguments are rejected.
            RuntimeError: Raised when the response violates the feed contract.
        """
