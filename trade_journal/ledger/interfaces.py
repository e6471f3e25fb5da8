"""Typed interfaces for ledger-layer read boundaries."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Protocol

from trade_journal.domain import Trade

if TYPE_CHECKING:
    from .position_lifecycle import OptionPositionGroup


class TradeReadRepositoryPort(Protocol):
    """Read contract needed to rebuild option positions for one account."""

    def db_trade_list_for_account(
        self,
        account_id: str,
        exit_date_from: date | None = None,
        exit_date_to: date | None = None,
    ) -> list[Trade]:
        """Return realized trades for one account ordered by exit date.

        Args:
            account_id: Account identifier.
            exit_date_from: Optional inclusive lower exit-date bound.
            exit_date_to: Optional inclusive upper exit-date bound.

        Returns:
            list[Trade]: Canonical trades.

        Raises:
            RuntimeError: Raised when the read fails.
        """


class LedgerPositionPort(Protocol):
    """Port definition for option position reads consumed by reporting collaborators."""

    def ledger_option_positions(
        self,
        account_id: str,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list["OptionPositionGroup"]:
        """Return option positions whose entry date falls inside an inclusive range.

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
