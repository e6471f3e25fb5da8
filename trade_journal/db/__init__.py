"""Database layer package for all SQL and persistence boundaries."""

from .health import SQLAlchemyDatabaseHealthService
from .interfaces import (
	DEFAULT_DELETE_CHUNK_SIZE,
	DatabaseHealthPort,
	SyncRunAlreadyActiveError,
	SyncRunCounters,
	SyncRunRecord,
	SyncRunRepositoryPort,
	SyncRunState,
	TradeInsertRequest,
	TradeInsertResult,
	TradeRecord,
	TradeRepositoryPort,
	TradeStoreError,
)
from .session import db_create_engine
from .sync_run import SYNC_RUN_ABANDONED_CODE, SQLAlchemySyncRunService
from .trade_persistence import SQLAlchemyTradePersistenceService

__all__ = [
	"DEFAULT_DELETE_CHUNK_SIZE",
	"DatabaseHealthPort",
	"SyncRunAlreadyActiveError",
	"SyncRunCounters",
	"SyncRunRecord",
	"SyncRunRepositoryPort",
	"SyncRunState",
	"TradeInsertRequest",
	"TradeInsertResult",
	"TradeRecord",
	"TradeRepositoryPort",
	"TradeStoreError",
	"SQLAlchemyDatabaseHealthService",
	"SYNC_RUN_ABANDONED_CODE",
	"SQLAlchemySyncRunService",
	"SQLAlchemyTradePersistenceService",
	"db_create_engine",
]
