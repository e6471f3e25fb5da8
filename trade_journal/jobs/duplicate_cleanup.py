"""Administrative cleanup of trade rows that duplicate an earlier row's identity."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from trade_journal.db import DEFAULT_DELETE_CHUNK_SIZE, TradeRecord, TradeRepositoryPort
from trade_journal.ledger import TradeIdentityLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DuplicateCleanupResult:
    """Outcome counters for one cleanup pass.

    Attributes:
        account_id: Account identifier.
        scanned_count: Trade rows inspected.
        duplicate_count: Rows identified as duplicates of an earlier row.
        deleted_count: Rows actually deleted (already-deleted ids are not counted).
        kept_count: Rows left in place.
    """

    account_id: str
    scanned_count: int
    duplicate_count: int
    deleted_count: int
    kept_count: int


def job_find_duplicate_trade_ids(records: list[TradeRecord]) -> list[str]:
    """Return ids of rows whose identity was already claimed by an earlier row.

    Identities are recomputed from row values, so rows written before a
    fingerprint rule change are still caught. Rows carrying an external id are
    compared by that id only; rows without one by fingerprint.

    Args:
        records: Trade rows in insertion order.

    Returns:
        list[str]: Duplicate trade ids; the first occurrence of each identity is kept.

    Raises:
        ValueError: Raised when a row lacks exchange or symbol.
    """

    seen_identities = TradeIdentityLedger()
    return [record.trade_id for record in records if not seen_identities.trade_identity_claim(record.trade)]


class DuplicateCleanupService:
    """Job-layer service removing duplicate trade rows in bounded delete chunks."""

    def __init__(self, repository: TradeRepositoryPort, chunk_size: int = DEFAULT_DELETE_CHUNK_SIZE):
        """Initialize duplicate cleanup service.

        Args:
            repository: DB-layer trade repository.
            chunk_size: Maximum ids per delete statement.

        Raises:
            ValueError: Raised when repository is None or chunk size is invalid.
        """

        if repository is None:
            raise ValueError("repository must not be None")
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self._repository = repository
        self._chunk_size = chunk_size

    def job_cleanup_duplicates(self, account_id: str) -> DuplicateCleanupResult:
        """Delete duplicate rows for one account, keeping the earliest row per identity.

        Safe to re-run: a second pass finds nothing to delete.

        Args:
            account_id: Account identifier.

        Returns:
            DuplicateCleanupResult: Cleanup counters.

        Raises:
            ValueError: Raised when account id is blank.
            TradeStoreError: Raised when the read or a chunk delete fails.
        """

        normalized_account_id = account_id.strip()
        if not normalized_account_id:
            raise ValueError("account_id must not be blank")

        records = self._repository.db_trade_list_records_in_insert_order(normalized_account_id)
        duplicate_ids = job_find_duplicate_trade_ids(records)
        deleted_count = 0
        if duplicate_ids:
            deleted_count = self._repository.db_trade_delete_many(duplicate_ids, chunk_size=self._chunk_size)

        logger.info(
            "duplicate cleanup account_id=%s scanned=%s duplicates=%s deleted=%s",
            normalized_account_id,
            len(records),
            len(duplicate_ids),
            deleted_count,
        )
        return DuplicateCleanupResult(
            account_id=normalized_account_id,
            scanned_count=len(records),
            duplicate_count=len(duplicate_ids),
            deleted_count=deleted_count,
            kept_count=len(records) - len(duplicate_ids),
        )
