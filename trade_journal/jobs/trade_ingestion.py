"""Insert-only trade ingestion with identity-based duplicate rejection.

Upstream feeds deliver at least once; this service turns that into
at-most-once persistence. A candidate trade is dropped when its external
identity or its fingerprint is already persisted. Within one batch a candidate
with an external id only collides with an earlier candidate carrying the same
id, so FIFO segments that close together at one price are all kept; a
candidate without one collides with any earlier candidate sharing its
fingerprint. The store additionally ignores conflicting rows, so two concurrent
ingestions of one batch still persist each trade once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from trade_journal.db import TradeInsertRequest, TradeRepositoryPort
from trade_journal.domain import Trade
from trade_journal.ledger import TradeIdentityLedger, trade_fingerprint, trade_identity_keys

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TradeIngestionResult:
    """Outcome counters for one ingestion call.

    Attributes:
        candidate_count: Trades offered for ingestion.
        inserted_count: Trades persisted as new rows.
        duplicate_count: Trades excluded as already known (pre-filter plus store conflicts).
    """

    candidate_count: int
    inserted_count: int
    duplicate_count: int


def ingestion_filter_new_trades(
    candidates: list[Trade] | tuple[Trade, ...],
    existing_identities: set[str] | frozenset[str],
) -> list[Trade]:
    """Return candidates whose identities are unknown, in input order.

    Args:
        candidates: Candidate realized trades.
        existing_identities: Persisted external identities and fingerprints.

    Returns:
        list[Trade]: Genuinely new trades.

    Raises:
        ValueError: Raised when a candidate lacks exchange or symbol.
    """

    batch_identities = TradeIdentityLedger()
    new_trades: list[Trade] = []
    for candidate in candidates:
        if any(identity_key in existing_identities for identity_key in trade_identity_keys(candidate)):
            continue
        if not batch_identities.trade_identity_claim(candidate):
            continue
        new_trades.append(candidate)
    return new_trades


class TradeIngestionService:
    """Job-layer service persisting genuinely new trades for one account."""

    def __init__(self, repository: TradeRepositoryPort):
        """Initialize trade ingestion service.

        Args:
            repository: DB-layer trade repository.

        Raises:
            ValueError: Raised when repository is None.
        """

        if repository is None:
            raise ValueError("repository must not be None")
        self._repository = repository

    def ingestion_ingest(self, account_id: str, trades: list[Trade] | tuple[Trade, ...]) -> TradeIngestionResult:
        """Filter known trades and insert the remainder.

        Args:
            account_id: Account identifier.
            trades: Candidate realized trades.

        Returns:
            TradeIngestionResult: Candidate, inserted and duplicate counters.

        Raises:
            ValueError: Raised when account id is blank or a trade is invalid.
            TradeStoreError: Raised when the identity read or the insert fails.
        """

        normalized_account_id = account_id.strip()
        if not normalized_account_id:
            raise ValueError("account_id must not be blank")

        candidate_count = len(trades)
        if candidate_count == 0:
            return TradeIngestionResult(candidate_count=0, inserted_count=0, duplicate_count=0)

        existing_identities = self._repository.db_trade_identity_list(normalized_account_id)
        new_trades = ingestion_filter_new_trades(trades, existing_identities)
        insert_result = self._repository.db_trade_insert_many(
            [
                TradeInsertRequest(
                    account_id=normalized_account_id,
                    trade=trade,
                    fingerprint=trade_fingerprint(trade),
                )
                for trade in new_trades
            ]
        )

        duplicate_count = candidate_count - insert_result.inserted_count
        logger.info(
            "ingested trades account_id=%s candidates=%s inserted=%s duplicates=%s",
            normalized_account_id,
            candidate_count,
            insert_result.inserted_count,
            duplicate_count,
        )
        return TradeIngestionResult(
            candidate_count=candidate_count,
            inserted_count=insert_result.inserted_count,
            duplicate_count=duplicate_count,
        )
