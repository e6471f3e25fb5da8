"""Database service for account sync run lifecycle persistence."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import uuid4

from sqlalchemy import DateTime, Engine, bindparam, text
from sqlalchemy.exc import SQLAlchemyError

from trade_journal.domain import domain_elapsed_ms

from .interfaces import (
    SyncRunAlreadyActiveError,
    SyncRunCounters,
    SyncRunRecord,
    SyncRunRepositoryPort,
    SyncRunState,
)

SYNC_RUN_ABANDONED_CODE = "SYNC_RUN_ABANDONED"
DEFAULT_STALE_RUN_TIMEOUT_SECONDS = 3600

_TIMESTAMP_TYPE = DateTime(timezone=True)

_SYNC_RUN_SELECT_COLUMNS = (
    "sync_run_id, account_id, run_type, status, started_at_utc, ended_at_utc, duration_ms, "
    "transaction_count, trade_count, inserted_count, duplicate_count, unmatched_count, malformed_count, "
    "error_code, error_message, diagnostics, created_at_utc"
)


class SQLAlchemySyncRunService(SyncRunRepositoryPort):
    """SQLAlchemy-backed sync run service.

    This service centralizes sync run write/read operations in the db layer,
    including the single-active-run check per account. A run still `started`
    after the stale timeout is treated as abandoned (its process crashed, or
    its failure could not be recorded) and is closed as failed by the next
    trigger for that account. Timestamps and durations are computed in Python
    so the same statements run on PostgreSQL and SQLite.
    """

    def __init__(
        self,
        engine: Engine,
        stale_run_timeout_seconds: int = DEFAULT_STALE_RUN_TIMEOUT_SECONDS,
        now_provider: Callable[[], datetime] | None = None,
    ):
        """Initialize sync run persistence service.

        Args:
            engine: SQLAlchemy engine used for all persistence operations.
            stale_run_timeout_seconds: Age after which a started run no longer blocks new runs.
            now_provider: Optional UTC clock used for run timestamps.

        Raises:
            ValueError: Raised when engine is None or the timeout is not positive.
        """

        if engine is None:
            raise ValueError("engine must not be None")
        if stale_run_timeout_seconds < 1:
            raise ValueError("stale_run_timeout_seconds must be >= 1")
        self._engine = engine
        self._stale_run_timeout = timedelta(seconds=stale_run_timeout_seconds)
        self._now_provider = now_provider or (lambda: datetime.now(timezone.utc))

    def db_sync_run_create_started(self, account_id: str, run_type: str) -> SyncRunRecord:
        """Create a started run while enforcing a single active run per account.

        Args:
            account_id: Account identifier.
            run_type: Trigger source (`scheduled`, `manual`, `api`).

        Returns:
            SyncRunRecord: Newly created started run.

        Raises:
            SyncRunAlreadyActiveError: Raised when an active run exists for the account.
            ValueError: Raised when required inputs are blank.
            RuntimeError: Raised when persistence fails.
        """

        normalized_account_id = self._validate_non_empty_text(account_id, "account_id")
        normalized_run_type = self._validate_non_empty_text(run_type, "run_type")
        sync_run_id = str(uuid4())
        started_at_utc = self._now_provider()

        try:
            with self._engine.begin() as connection:
                self._db_abandon_stale_runs(
                    connection=connection,
                    account_id=normalized_account_id,
                    now_utc=started_at_utc,
                )
                active_row = connection.execute(
                    text(
                        "SELECT sync_run_id "
                        "FROM sync_run "
                        "WHERE account_id = :account_id AND status = 'started' "
                        "LIMIT 1"
                    ),
                    {"account_id": normalized_account_id},
                ).first()
                if active_row is not None:
                    raise SyncRunAlreadyActiveError("run already active")

                connection.execute(
                    text(
                        "INSERT INTO sync_run ("
                        "sync_run_id, account_id, run_type, status, started_at_utc, created_at_utc"
                        ") VALUES ("
                        ":sync_run_id, :account_id, :run_type, 'started', :started_at_utc, :started_at_utc"
                        ")"
                    ).bindparams(bindparam("started_at_utc", type_=_TIMESTAMP_TYPE)),
                    {
                        "sync_run_id": sync_run_id,
                        "account_id": normalized_account_id,
                        "run_type": normalized_run_type,
                        "started_at_utc": started_at_utc,
                    },
                )
                return self._db_fetch_run_by_id_or_raise(connection=connection, sync_run_id=sync_run_id)
        except SQLAlchemyError as error:
            raise RuntimeError("failed to create started sync run") from error

    def db_sync_run_finalize(
        self,
        sync_run_id: str,
        status: str,
        counters: SyncRunCounters,
        error_code: str | None,
        error_message: str | None,
        diagnostics: list[dict[str, Any]] | None,
    ) -> SyncRunRecord:
        """Finalize one run with end timestamp, duration and counters.

        Args:
            sync_run_id: Run identifier.
            status: Final status (`success` or `failed`).
            counters: Outcome counters.
            error_code: Optional deterministic error code.
            error_message: Optional human-readable message.
            diagnostics: Optional structured diagnostics payload.

        Returns:
            SyncRunRecord: Finalized run row.

        Raises:
            LookupError: Raised when run is not found.
            ValueError: Raised when final status is invalid.
            RuntimeError: Raised when persistence fails.
        """

        if status not in {"success", "failed"}:
            raise ValueError("status must be one of: success, failed")

        resolved_counters = counters or SyncRunCounters()
        diagnostics_payload = None
        if diagnostics is not None:
            diagnostics_payload = json.dumps(diagnostics, default=str)

        try:
            with self._engine.begin() as connection:
                current_run = self._db_fetch_run_by_id_or_raise(connection=connection, sync_run_id=sync_run_id)
                ended_at_utc = self._now_provider()
                connection.execute(
                    text(
                        "UPDATE sync_run SET "
                        "status = :status, "
                        "ended_at_utc = :ended_at_utc, "
                        "duration_ms = :duration_ms, "
                        "transaction_count = :transaction_count, "
                        "trade_count = :trade_count, "
                        "inserted_count = :inserted_count, "
                        "duplicate_count = :duplicate_count, "
                        "unmatched_count = :unmatched_count, "
                        "malformed_count = :malformed_count, "
                        "error_code = :error_code, "
                        "error_message = :error_message, "
                        "diagnostics = :diagnostics "
                        "WHERE sync_run_id = :sync_run_id"
                    ).bindparams(bindparam("ended_at_utc", type_=_TIMESTAMP_TYPE)),
                    {
                        "status": status,
                        "ended_at_utc": ended_at_utc,
                        "duration_ms": domain_elapsed_ms(current_run.state.started_at_utc, ended_at_utc),
                        "transaction_count": resolved_counters.transaction_count,
                        "trade_count": resolved_counters.trade_count,
                        "inserted_count": resolved_counters.inserted_count,
                        "duplicate_count": resolved_counters.duplicate_count,
                        "unmatched_count": resolved_counters.unmatched_count,
                        "malformed_count": resolved_counters.malformed_count,
                        "error_code": error_code,
                        "error_message": error_message,
                        "diagnostics": diagnostics_payload,
                        "sync_run_id": sync_run_id,
                    },
                )
                return self._db_fetch_run_by_id_or_raise(connection=connection, sync_run_id=sync_run_id)
        except SQLAlchemyError as error:
            raise RuntimeError("failed to finalize sync run") from error

    def db_sync_run_get_by_id(self, sync_run_id: str) -> SyncRunRecord | None:
        """Fetch one sync run by id.

        Args:
            sync_run_id: Run identifier.

        Returns:
            SyncRunRecord | None: Matching run row or None.

        Raises:
            RuntimeError: Raised when database read fails.
        """

        try:
            with self._engine.connect() as connection:
                row = connection.execute(
                    text(f"SELECT {_SYNC_RUN_SELECT_COLUMNS} FROM sync_run WHERE sync_run_id = :sync_run_id"),
                    {"sync_run_id": sync_run_id},
                ).mappings().first()
                if row is None:
                    return None
                return self._map_sync_run_record(row)
        except SQLAlchemyError as error:
            raise RuntimeError("failed to fetch sync run by id") from error

    def db_sync_run_list(self, limit: int, offset: int, account_id: str | None = None) -> list[SyncRunRecord]:
        """List runs with deterministic default ordering.

        Args:
            limit: Maximum number of rows.
            offset: Number of rows to skip.
            account_id: Optional account filter.

        Returns:
            list[SyncRunRecord]: Ordered run rows.

        Raises:
            ValueError: Raised when limit or offset are invalid.
            RuntimeError: Raised when database read fails.
        """

        if limit < 1:
            raise ValueError("limit must be >= 1")
        if offset < 0:
            raise ValueError("offset must be >= 0")

        where_clause = ""
        parameters: dict[str, Any] = {"limit": limit, "offset": offset}
        if account_id is not None:
            where_clause = "WHERE account_id = :account_id "
            parameters["account_id"] = self._validate_non_empty_text(account_id, "account_id")

        try:
            with self._engine.connect() as connection:
                rows = connection.execute(
                    text(
                        f"SELECT {_SYNC_RUN_SELECT_COLUMNS} "
                        "FROM sync_run "
                        f"{where_clause}"
                        "ORDER BY started_at_utc DESC, sync_run_id DESC "
                        "LIMIT :limit OFFSET :offset"
                    ),
                    parameters,
                ).mappings().all()

                return [self._map_sync_run_record(row) for row in rows]
        except SQLAlchemyError as error:
            raise RuntimeError("failed to list sync runs") from error

    def _db_abandon_stale_runs(self, connection, account_id: str, now_utc: datetime) -> int:
        """Close started runs older than the stale timeout as failed.

        Args:
            connection: Active SQLAlchemy connection.
            account_id: Account identifier.
            now_utc: Current UTC time.

        Returns:
            int: Number of runs marked abandoned.
        """

        result = connection.execute(
            text(
                "UPDATE sync_run SET "
                "status = 'failed', "
                "ended_at_utc = :ended_at_utc, "
                "error_code = :error_code, "
                "error_message = :error_message "
                "WHERE account_id = :account_id AND status = 'started' AND started_at_utc < :stale_before_utc"
            ).bindparams(
                bindparam("ended_at_utc", type_=_TIMESTAMP_TYPE),
                bindparam("stale_before_utc", type_=_TIMESTAMP_TYPE),
            ),
            {
                "ended_at_utc": now_utc,
                "error_code": SYNC_RUN_ABANDONED_CODE,
                "error_message": "run exceeded stale timeout without finishing",
                "account_id": account_id,
                "stale_before_utc": now_utc - self._stale_run_timeout,
            },
        )
        return result.rowcount

    def _db_fetch_run_by_id_or_raise(self, connection, sync_run_id: str) -> SyncRunRecord:
        """Fetch one run inside active transaction and raise when missing.

        Args:
            connection: Active SQLAlchemy connection.
            sync_run_id: Run identifier.

        Returns:
            SyncRunRecord: Matching row.

        Raises:
            LookupError: Raised when row cannot be found.
        """

        row = connection.execute(
            text(f"SELECT {_SYNC_RUN_SELECT_COLUMNS} FROM sync_run WHERE sync_run_id = :sync_run_id"),
            {"sync_run_id": sync_run_id},
        ).mappings().first()
        if row is None:
            raise LookupError("sync run not found")
        return self._map_sync_run_record(row)

    def _map_sync_run_record(self, row: Any) -> SyncRunRecord:
        """Map SQLAlchemy row mapping to typed sync run record.

        Args:
            row: SQLAlchemy mapping row.

        Returns:
            SyncRunRecord: Typed run record.

        Raises:
            TypeError: Raised when diagnostics are not a JSON array.
        """

        diagnostics_value = row["diagnostics"]
        if isinstance(diagnostics_value, str):
            diagnostics_value = json.loads(diagnostics_value)
        if diagnostics_value is not None and not isinstance(diagnostics_value, list):
            raise TypeError("sync_run.diagnostics must be a JSON array when present")

        return SyncRunRecord(
            sync_run_id=str(row["sync_run_id"]),
            account_id=row["account_id"],
            run_type=row["run_type"],
            state=SyncRunState(
                status=row["status"],
                started_at_utc=self._to_utc_datetime(row["started_at_utc"]),
                ended_at_utc=None if row["ended_at_utc"] is None else self._to_utc_datetime(row["ended_at_utc"]),
                duration_ms=row["duration_ms"],
                error_code=row["error_code"],
                error_message=row["error_message"],
                diagnostics=diagnostics_value,
            ),
            counters=SyncRunCounters(
                transaction_count=row["transaction_count"] or 0,
                trade_count=row["trade_count"] or 0,
                inserted_count=row["inserted_count"] or 0,
                duplicate_count=row["duplicate_count"] or 0,
                unmatched_count=row["unmatched_count"] or 0,
                malformed_count=row["malformed_count"] or 0,
            ),
            created_at_utc=self._to_utc_datetime(row["created_at_utc"]),
        )

    def _to_utc_datetime(self, value: Any) -> datetime:
        """Convert timestamp column values into offset-aware UTC datetimes."""

        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def _validate_non_empty_text(self, value: str, field_name: str) -> str:
        """Validate required text input and return stripped value.

        Args:
            value: Candidate string value.
            field_name: Field name for error reporting.

        Returns:
            str: Stripped non-empty value.

        Raises:
            ValueError: Raised when value is blank.
        """

        stripped_value = value.strip()
        if not stripped_value:
            raise ValueError(f"{field_name} must not be blank")
        return stripped_value
