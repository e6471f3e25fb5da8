"""Job layer package for workflow orchestration boundaries."""

from .interfaces import JobExecutionResult, JobOrchestratorPort
from .account_sync import (
	SYNC_RUN_ALREADY_ACTIVE_CODE,
	SYNC_STORE_ERROR_CODE,
	AccountSyncConfig,
	AccountSyncOrchestrator,
	SyncResult,
	job_sync_default_window,
)
from .duplicate_cleanup import DuplicateCleanupResult, DuplicateCleanupService, job_find_duplicate_trade_ids
from .trade_ingestion import TradeIngestionResult, TradeIngestionService, ingestion_filter_new_trades

__all__ = [
	"JobExecutionResult",
	"JobOrchestratorPort",
	"SYNC_RUN_ALREADY_ACTIVE_CODE",
	"SYNC_STORE_ERROR_CODE",
	"AccountSyncConfig",
	"AccountSyncOrchestrator",
	"SyncResult",
	"job_sync_default_window",
	"DuplicateCleanupResult",
	"DuplicateCleanupService",
	"job_find_duplicate_trade_ids",
	"TradeIngestionResult",
	"TradeIngestionService",
	"ingestion_filter_new_trades",
]
