"""Database service for insert-only realized trade persistence and chunked cleanup deletes."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import Date, DateTime, Engine, Numeric, bindparam, text
from sqlalchemy.exc import SQLAlchemyError

from trade_journal.domain import Trade

from .interfaces import (
    DEFAULT_DELETE_CHUNK_SIZE,
    TradeInsertRequest,
    TradeInsertResult,
    TradeRecord,
    TradeRepositoryPort,
    TradeStoreError,
)

logger = logging.getLogger(__name__)

_MONEY_TYPE = Numeric(24, 8)
_TIMESTAMP_TYPE = DateTime(timezone=True)

_TRADE_SELECT_COLUMNS = (
    "trade_id, account_id, exchange, instrument_symbol, asset_type, direction, "
    "entry_price, exit_price, quantity, entry_date, exit_date, fees, pnl, pnl_percent, status, "
    "external_oid, fingerprint, underlying_symbol, option_type, strike_price, expiration_date, notes, "
    "created_at_utc"
)

_TRADE_INSERT_STATEMENT = text(
    "INSERT INTO trade ("
    "trade_id, account_id, exchange, instrument_symbol, asset_type, direction, "
    "entry_price, exit_price, quantity, entry_date, exit_date, fees, pnl, pnl_percent, status, "
    "external_oid, fingerprint, underlying_symbol, option_type, strike_price, expiration_date, notes, "
    "created_at_utc"
    ") VALUES ("
    ":trade_id, :account_id, :exchange, :instrument_symbol, :asset_type, :direction, "
    ":entry_price, :exit_price, :quantity, :entry_date, :exit_date, :fees, :pnl, :pnl_percent, :status, "
    ":external_oid, :fingerprint, :underlying_symbol, :option_type, :strike_price, :expiration_date, :notes, "
    ":created_at_utc"
    ") ON CONFLICT DO NOTHING "
    "RETURNING trade_id"
).bindparams(
    bindparam("entry_price", type_=_MONEY_TYPE),
    bindparam("exit_price", type_=_MONEY_TYPE),
    bindparam("quantity", type_=_MONEY_TYPE),
    bindparam("fees", type_=_MONEY_TYPE),
    bindparam("pnl", type_=_MONEY_TYPE),
    bindparam("pnl_percent", type_=_MONEY_TYPE),
    bindparam("strike_price", type_=_MONEY_TYPE),
    bindparam("entry_date", type_=_TIMESTAMP_TYPE),
    bindparam("exit_date", type_=_TIMESTAMP_TYPE),
    bindparam("created_at_utc", type_=_TIMESTAMP_TYPE),
    bindparam("expiration_date", type_=Date()),
)


class SQLAlchemyTradePersistenceService(TradeRepositoryPort):
    """SQLAlchemy implementation of insert-only trade persistence.

    Conflicts on either identity constraint (`account_id, exchange, external_oid`,
    or `account_id, fingerprint` among rows without an external id) are
    ignored, so concurrent or repeated ingestion of the same batch never
    overwrites or duplicates a row.
    """

    def __init__(self, engine: Engine):
        """Initialize trade persistence service.

        Args:
            engine: SQLAlchemy engine used for all persistence operations.

        Raises:
            ValueError: Raised when engine is invalid.
        """

        if engine is None:
            raise ValueError("engine must not be None")

        self._engine = engine

    def db_trade_identity_list(self, account_id: str) -> set[str]:
        """Return persisted external identities and fingerprints for one account.

        Args:
            account_id: Account identifier.

        Returns:
            set[str]: Identity keys in `exchange|external_oid` and fingerprint form.

        Raises:
            ValueError: Raised when account id is blank.
            TradeStoreError: Raised when the read fails.
        """

        normalized_account_id = self._db_trade_validate_non_empty_text(account_id, "account_id")

        try:
            with self._engine.connect() as connection:
                rows = connection.execute(
                    text("SELECT exchange, external_oid, fingerprint FROM trade WHERE account_id = :account_id"),
                    {"account_id": normalized_account_id},
                ).mappings().all()
        except SQLAlchemyError as error:
            raise TradeStoreError("trade identity read failed") from error

        identities: set[str] = set()
        for row in rows:
            identities.add(row["fingerprint"])
            if row["external_oid"]:
                identities.add(f"{row['exchange']}|{row['external_oid']}")
        return identities

    def db_trade_insert_many(self, requests: list[TradeInsertRequest]) -> TradeInsertResult:
        """Insert trades in one transaction with insert-if-absent semantics.

        Args:
            requests: Trade insert requests.

        Returns:
            TradeInsertResult: Inserted and conflicting row counters.

        Raises:
            ValueError: Raised when requests are invalid.
            TradeStoreError: Raised when persistence fails; no row of the batch is kept.
        """

        if requests is None:
            raise ValueError("requests must not be None")
        if len(requests) == 0:
            return TradeInsertResult(inserted_count=0, conflict_count=0)

        parameters = [self._db_trade_build_insert_parameters(request) for request in requests]
        inserted_count = 0
        conflict_count = 0

        try:
            with self._engine.begin() as connection:
                for row_parameters in parameters:
                    inserted_row = connection.execute(_TRADE_INSERT_STATEMENT, row_parameters).first()
                    if inserted_row is None:
                        conflict_count += 1
                    else:
                        inserted_count += 1
        except SQLAlchemyError as error:
            raise TradeStoreError("trade insert failed") from error

        return TradeInsertResult(inserted_count=inserted_count, conflict_count=conflict_count)

    def db_trade_list(
        self,
        account_id: str,
        limit: int,
        offset: int,
        exit_date_from: date | None = None,
        exit_date_to: date | None = None,
    ) -> list[TradeRecord]:
        """List trade rows for one account, newest exit first.

        Args:
            account_id: Account identifier.
            limit: Maximum number of rows.
            offset: Number of rows to skip.
            exit_date_from: Optional inclusive lower exit-date bound (UTC day).
            exit_date_to: Optional inclusive upper exit-date bound (UTC day).

        Returns:
            list[TradeRecord]: Ordered trade rows.

        Raises:
            ValueError: Raised when arguments are invalid.
            TradeStoreError: Raised when the read fails.
        """

        if limit < 1:
            raise ValueError("limit must be >= 1")
        if offset < 0:
            raise ValueError("offset must be >= 0")

        rows = self._db_trade_select_rows(
            account_id=account_id,
            exit_date_from=exit_date_from,
            exit_date_to=exit_date_to,
            order_by="exit_date DESC, trade_id DESC",
            limit=limit,
            offset=offset,
        )
        return [self._db_trade_map_record(row) for row in rows]

    def db_trade_list_for_account(
        self,
        account_id: str,
        exit_date_from: date | None = None,
        exit_date_to: date | None = None,
    ) -> list[Trade]:
        """Return canonical trades for one account ordered by exit date ascending.

        Args:
            account_id: Account identifier.
            exit_date_from: Optional inclusive lower exit-date bound (UTC day).
            exit_date_to: Optional inclusive upper exit-date bound (UTC day).

        Returns:
            list[Trade]: Canonical trades.

        Raises:
            ValueError: Raised when arguments are invalid.
            TradeStoreError: Raised when the read fails.
        """

        rows = self._db_trade_select_rows(
            account_id=account_id,
            exit_date_from=exit_date_from,
            exit_date_to=exit_date_to,
            order_by="exit_date ASC, trade_id ASC",
        )
        return [self._db_trade_map_record(row).trade for row in rows]

    def db_trade_list_records_in_insert_order(self, account_id: str) -> list[TradeRecord]:
        """Return trade rows for one account ordered by creation timestamp and id.

        Args:
            account_id: Account identifier.

        Returns:
            list[TradeRecord]: Trade rows, oldest first.

        Raises:
            ValueError: Raised when account id is blank.
            TradeStoreError: Raised when the read fails.
        """

        rows = self._db_trade_select_rows(account_id=account_id, order_by="created_at_utc ASC, trade_id ASC")
        return [self._db_trade_map_record(row) for row in rows]

    def db_trade_delete_many(self, trade_ids: list[str], chunk_size: int = DEFAULT_DELETE_CHUNK_SIZE) -> int:
        """Delete trade rows in bounded chunks, one transaction per chunk.

        Chunks committed before a failing chunk stay deleted; re-running the
        same id list is a no-op for them.

        Args:
            trade_ids: Trade identifiers to delete.
            chunk_size: Maximum ids per delete statement.

        Returns:
            int: Number of rows actually deleted.

        Raises:
            ValueError: Raised when chunk size is invalid or an id is blank.
            TradeStoreError: Raised when a chunk delete fails.
        """

        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        normalized_ids = [self._db_trade_validate_non_empty_text(trade_id, "trade_id") for trade_id in trade_ids]
        if not normalized_ids:
            return 0

        delete_statement = text("DELETE FROM trade WHERE trade_id IN :trade_ids").bindparams(
            bindparam("trade_ids", expanding=True)
        )

        deleted_count = 0
        for chunk_start in range(0, len(normalized_ids), chunk_size):
            chunk = normalized_ids[chunk_start : chunk_start + chunk_size]
            try:
                with self._engine.begin() as connection:
                    chunk_deleted_count = max(connection.execute(delete_statement, {"trade_ids": chunk}).rowcount, 0)
            except SQLAlchemyError as error:
                raise TradeStoreError("trade batch delete failed") from error
            deleted_count += chunk_deleted_count
            logger.debug("deleted trade chunk start=%s size=%s deleted=%s", chunk_start, len(chunk), chunk_deleted_count)

        return deleted_count

    def _db_trade_select_rows(
        self,
        account_id: str,
        order_by: str,
        exit_date_from: date | None = None,
        exit_date_to: date | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Any]:
        """Run one filtered trade select and return mapping rows.

        Args:
            account_id: Account identifier.
            order_by: Fixed ORDER BY clause chosen by the caller.
            exit_date_from: Optional inclusive lower exit-date bound.
            exit_date_to: Optional inclusive upper exit-date bound.
            limit: Optional maximum number of rows.
            offset: Number of rows to skip.

        Returns:
            list[Any]: SQLAlchemy mapping rows.

        Raises:
            ValueError: Raised when arguments are invalid.
            TradeStoreError: Raised when the read fails.
        """

        normalized_account_id = self._db_trade_validate_non_empty_text(account_id, "account_id")
        if exit_date_from is not None and exit_date_to is not None and exit_date_from > exit_date_to:
            raise ValueError("exit_date_from must be <= exit_date_to")

        where_clauses = ["account_id = :account_id"]
        parameters: dict[str, Any] = {"account_id": normalized_account_id}
        bind_types = []
        if exit_date_from is not None:
            where_clauses.append("exit_date >= :exit_from")
            parameters["exit_from"] = datetime.combine(exit_date_from, time.min, tzinfo=timezone.utc)
            bind_types.append(bindparam("exit_from", type_=_TIMESTAMP_TYPE))
        if exit_date_to is not None:
            where_clauses.append("exit_date < :exit_until")
            parameters["exit_until"] = datetime.combine(exit_date_to + timedelta(days=1), time.min, tzinfo=timezone.utc)
            bind_types.append(bindparam("exit_until", type_=_TIMESTAMP_TYPE))

        statement_text = f"SELECT {_TRADE_SELECT_COLUMNS} FROM trade WHERE {' AND '.join(where_clauses)} ORDER BY {order_by}"
        if limit is not None:
            statement_text += " LIMIT :limit OFFSET :offset"
            parameters["limit"] = limit
            parameters["offset"] = offset

        statement = text(statement_text)
        if bind_types:
            statement = statement.bindparams(*bind_types)

        try:
            with self._engine.connect() as connection:
                return list(connection.execute(statement, parameters).mappings().all())
        except SQLAlchemyError as error:
            raise TradeStoreError("trade read failed") from error

    def _db_trade_build_insert_parameters(self, request: TradeInsertRequest) -> dict[str, Any]:
        """Validate one insert request and build statement parameters.

        Args:
            request: Trade insert request.

        Returns:
            dict[str, Any]: Bound parameter values.

        Raises:
            ValueError: Raised when required fields are invalid.
        """

        if request is None or request.trade is None:
            raise ValueError("request.trade must not be None")

        trade = request.trade
        return {
            "trade_id": str(uuid4()),
            "account_id": self._db_trade_validate_non_empty_text(request.account_id, "request.account_id"),
            "exchange": self._db_trade_validate_non_empty_text(trade.exchange, "trade.exchange"),
            "instrument_symbol": self._db_trade_validate_non_empty_text(trade.instrument_symbol, "trade.instrument_symbol"),
            "asset_type": self._db_trade_validate_non_empty_text(trade.asset_type, "trade.asset_type"),
            "direction": self._db_trade_validate_non_empty_text(trade.direction, "trade.direction"),
            "entry_price": trade.entry_price,
            "exit_price": trade.exit_price,
            "quantity": trade.quantity,
            "entry_date": self._db_trade_to_utc(trade.entry_date),
            "exit_date": self._db_trade_to_utc(trade.exit_date),
            "fees": trade.fees,
            "pnl": trade.pnl,
            "pnl_percent": trade.pnl_percent,
            "status": trade.status,
            "external_oid": trade.external_id.strip() if trade.external_id and trade.external_id.strip() else None,
            "fingerprint": self._db_trade_validate_non_empty_text(request.fingerprint, "request.fingerprint"),
            "underlying_symbol": trade.underlying_symbol,
            "option_type": trade.option_type,
            "strike_price": trade.strike_price,
            "expiration_date": trade.expiration_date,
            "notes": trade.notes,
            "created_at_utc": datetime.now(timezone.utc),
        }

    def _db_trade_map_record(self, row: Any) -> TradeRecord:
        """Map SQL row payload into a typed trade record.

        Args:
            row: SQLAlchemy row mapping.

        Returns:
            TradeRecord: Typed trade persistence record.

        Raises:
            TypeError: Raised when a timestamp column has an unexpected type.
        """

        trade = Trade(
            exchange=row["exchange"],
            instrument_symbol=row["instrument_symbol"],
            asset_type=row["asset_type"],
            direction=row["direction"],
            entry_price=self._db_trade_to_decimal(row["entry_price"]),
            exit_price=self._db_trade_to_decimal(row["exit_price"]),
            quantity=self._db_trade_to_decimal(row["quantity"]),
            entry_date=self._db_trade_to_datetime(row["entry_date"]),
            exit_date=self._db_trade_to_datetime(row["exit_date"]),
            fees=self._db_trade_to_decimal(row["fees"]),
            pnl=self._db_trade_to_decimal(row["pnl"]),
            pnl_percent=self._db_trade_to_decimal(row["pnl_percent"]),
            external_id=row["external_oid"],
            status=row["status"],
            underlying_symbol=row["underlying_symbol"],
            option_type=row["option_type"],
            strike_price=None if row["strike_price"] is None else self._db_trade_to_decimal(row["strike_price"]),
            expiration_date=self._db_trade_to_date(row["expiration_date"]),
            notes=row["notes"],
        )
        return TradeRecord(
            trade_id=str(row["trade_id"]),
            account_id=row["account_id"],
            trade=trade,
            fingerprint=row["fingerprint"],
            created_at_utc=self._db_trade_to_datetime(row["created_at_utc"]),
        )

    def _db_trade_to_decimal(self, value: Any) -> Decimal:
        """Convert a numeric column value to Decimal without float artifacts."""

        if isinstance(value, Decimal):
            return value
        return Decimal(str(value))

    def _db_trade_to_datetime(self, value: Any) -> datetime:
        """Convert a timestamp column value into an offset-aware UTC datetime.

        Raises:
            TypeError: Raised when value is neither datetime nor ISO text.
        """

        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if not isinstance(value, datetime):
            raise TypeError("trade timestamp column must be datetime or ISO text")
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def _db_trade_to_date(self, value: Any) -> date | None:
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str):
            return date.fromisoformat(value[:10])
        return value

    def _db_trade_to_utc(self, value: datetime) -> datetime:
        """Normalize a trade timestamp to UTC before binding."""

        if value is None:
            raise ValueError("trade timestamps must not be None")
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def _db_trade_validate_non_empty_text(self, value: str, field_name: str) -> str:
        """Validate text value and normalize surrounding whitespace.

        Args:
            value: Input text value.
            field_name: Field label for deterministic error messages.

        Returns:
            str: Normalized non-empty text value.

        Raises:
            ValueError: Raised when value is not valid non-empty text.
        """

        if not isinstance(value, str):
            raise ValueError(f"{field_name} must be a string")

        normalized_value = value.strip()
        if not normalized_value:
            raise ValueError(f"{field_name} must not be blank")

        return normalized_value
