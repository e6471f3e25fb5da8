"""Typed interfaces for database-layer services.

All SQL access must remain in the db package and its submodules.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Protocol

from trade_journal.domain import HealthStatus, Trade

DEFAULT_DELETE_CHUNK_SIZE = 50


class TradeStoreError(RuntimeError):
    """Raised when a trade store read, insert or delete fails."""


class SyncRunAlreadyActiveError(RuntimeError):
    """Raised when a sync trigger is rejected because one run is already active for the account."""


class DatabaseHealthPort(Protocol):
    """Port definition for database connectivity verification."""

    def db_connection_label(self) -> str:
        """Return a stable label for the active database connection target.

        Returns:
            str: Database target label for diagnostics.

        Raises:
            RuntimeError: Raised when connection metadata is unavailable.
        """

    def db_check_health(self) -> HealthStatus:
        """Check database connectivity and return deterministic health payload.

        Returns:
            HealthStatus: Database health status payload.

        Raises:
            ConnectionError: Raised when database cannot be reached.
        """


@dataclass(frozen=True)
class TradeInsertRequest:
    """Input payload for one insert-if-absent trade write.

    Attributes:
        account_id: Account identifier.
        trade: Canonical realized trade.
        fingerprint: Precomputed fallback identity key.
    """

    account_id: str
    trade: Trade
    fingerprint: str


@dataclass(frozen=True)
class TradeInsertResult:
    """Summary result for trade batch insert.

    Attributes:
        inserted_count: Number of inserted rows.
        conflict_count: Number of rows skipped by unique-key conflict.
    """

    inserted_count: int
    conflict_count: int


@dataclass(frozen=True)
class TradeRecord:
    """Persistence model for one trade row.

    Attributes:
        trade_id: Internal trade identifier (UUID text).
        account_id: Account identifier.
        trade: Canonical realized trade values.
        fingerprint: Stored fallback identity key.
        created_at_utc: Persistence row creation timestamp in UTC.
    """

    trade_id: str
    account_id: str
    trade: Trade
    fingerprint: str
    created_at_utc: datetime


@dataclass(frozen=True)
class SyncRunCounters:
    """Deterministic counters reported by one finished sync run.

    Attributes:
        transaction_count: Raw transactions received.
        trade_count: Realized trades produced by matching.
        inserted_count: Trades persisted as new rows.
        duplicate_count: Trades excluded as already known.
        unmatched_count: Closing legs with an unmatched remainder.
        malformed_count: Transactions skipped as malformed.
    """

    transaction_count: int = 0
    trade_count: int = 0
    inserted_count: int = 0
    duplicate_count: int = 0
    unmatched_count: int = 0
    malformed_count: int = 0


@dataclass(frozen=True)
class SyncRunState:
    """Runtime lifecycle and outcome state for one sync run.

    Attributes:
        status: Run status (`started`, `success`, `failed`).
        started_at_utc: Run start timestamp in UTC.
        ended_at_utc: Optional run end timestamp in UTC.
        duration_ms: Optional run duration in milliseconds.
        error_code: Optional deterministic error code.
        error_message: Optional human-readable error message.
        diagnostics: Optional structured diagnostics payload.
    """

    status: str
    started_at_utc: datetime
    ended_at_utc: datetime | None
    duration_ms: int | None
    error_code: str | None
    error_message: str | None
    diagnostics: list[dict[str, Any]] | None


@dataclass(frozen=True)
class SyncRunRecord:
    """Persistence model for one sync run row.

    Attributes:
        sync_run_id: Unique run identifier (UUID text).
        account_id: Account identifier.
        run_type: Trigger source (`scheduled`, `manual`, `api`).
        state: Runtime lifecycle and outcome state values.
        counters: Outcome counters; zero while the run is active.
        created_at_utc: Persistence row creation timestamp in UTC.
    """

    sync_run_id: str
    account_id: str
    run_type: str
    state: SyncRunState
    counters: SyncRunCounters
    created_at_utc: datetime


class TradeRepositoryPort(Protocol):
    """Port definition for insert-only trade persistence and reads."""

    def db_trade_identity_list(self, account_id: str) -> set[str]:
        """Return every persisted identity key (external identities and fingerprints) for one account.

        Raises:
            TradeStoreError: Raised when the read fails.
        """

    def db_trade_insert_many(self, requests: list[TradeInsertRequest]) -> TradeInsertResult:
        """Insert trades, ignoring rows that conflict with an existing identity.

        Raises:
            ValueError: Raised when requests are invalid.
            TradeStoreError: Raised when persistence fails.
        """

    def db_trade_list(
        self,
        account_id: str,
        limit: int,
        offset: int,
        exit_date_from: date | None = None,
        exit_date_to: date | None = None,
    ) -> list[TradeRecord]:
        """List persisted trades ordered by exit date, newest first.

        Raises:
            ValueError: Raised when pagination arguments are invalid.
            TradeStoreError: Raised when the read fails.
        """

    def db_trade_list_for_account(
        self,
        account_id: str,
        exit_date_from: date | None = None,
        exit_date_to: date | None = None,
    ) -> list[Trade]:
        """Return canonical trades for one account ordered by exit date.

        Raises:
            TradeStoreError: Raised when the read fails.
        """

    def db_trade_list_records_in_insert_order(self, account_id: str) -> list[TradeRecord]:
        """Return trade rows for one account ordered by insertion time and id.

        Raises:
            TradeStoreError: Raised when the read fails.
        """

    def db_trade_delete_many(self, trade_ids: list[str], chunk_size: int = DEFAULT_DELETE_CHUNK_SIZE) -> int:
        """Delete trade rows by id in bounded chunks; ids already gone are ignored.

        Returns:
            int: Number of rows actually deleted.

        Raises:
            ValueError: Raised when chunk size is invalid.
            TradeStoreError: Raised when a chunk delete fails.
        """


class SyncRunRepositoryPort(Protocol):
    """Port definition for sync run lifecycle persistence and reads."""

    def db_sync_run_create_started(self, account_id: str, run_type: str) -> SyncRunRecord:
        """Create a new started run unless one is already active for the account.

        Raises:
            SyncRunAlreadyActiveError: Raised when another started run exists.
            ValueError: Raised when an input value is blank.
            RuntimeError: Raised when persistence fails.
        """

    def db_sync_run_finalize(
        self,
        sync_run_id: str,
        status: str,
        counters: SyncRunCounters,
        error_code: str | None,
        error_message: str | None,
        diagnostics: list[dict[str, Any]] | None,
    ) -> SyncRunRecord:
        """Finalize a started run to success or failed.

        Raises:
            LookupError: Raised when the run id is not found.
            ValueError: Raised when status is invalid.
            RuntimeError: Raised when persistence fails.
        """

    def db_sync_run_get_by_id(self, sync_run_id: str) -> SyncRunRecord | None:
        """Fetch one sync run by primary key.

        Raises:
            RuntimeError: Raised when the read fails.
        """

    def db_sync_run_list(self, limit: int, offset: int, account_id: str | None = None) -> list[SyncRunRecord]:
        """List sync runs ordered by latest start timestamp and id.

        Raises:
            ValueError: Raised when pagination arguments are invalid.
            RuntimeError: Raised when the read fails.
        """
