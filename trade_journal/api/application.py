"""FastAPI application factory for the trade journal service."""

from fastapi import FastAPI

from trade_journal.config import AppSettings
from trade_journal.db import DatabaseHealthPort, SyncRunRepositoryPort, TradeRepositoryPort
from trade_journal.jobs import AccountSyncOrchestrator, DuplicateCleanupService
from trade_journal.ledger import LedgerPositionPort

from .routers import (
    api_create_health_router,
    api_create_maintenance_router,
    api_create_position_router,
    api_create_sync_router,
    api_create_trade_router,
)


def create_api_application(
    settings: AppSettings,
    db_health_service: DatabaseHealthPort,
    trade_repository: TradeRepositoryPort,
    sync_run_repository: SyncRunRepositoryPort,
    sync_orchestrator: AccountSyncOrchestrator,
    position_service: LedgerPositionPort,
    cleanup_service: DuplicateCleanupService,
) -> FastAPI:
    """Create the FastAPI application instance for the service.

    Args:
        settings: Validated application settings used for runtime metadata.
        db_health_service: Database health service used by health endpoints.
        trade_repository: Trade repository for list APIs.
        sync_run_repository: Sync run repository for list/detail APIs.
        sync_orchestrator: Job orchestrator for pushed transaction batches.
        position_service: Ledger service for option position reads.
        cleanup_service: Job service for duplicate cleanup.

    Returns:
        FastAPI: Framework application instance with all routers.

    Raises:
        ValueError: Raised when a router dependency is missing.
    """
    application = FastAPI(title="Trade Journal")

    @application.get("/", tags=["foundation"])
    def foundation_index() -> dict[str, str]:
        """Return a minimal service descriptor."""

        return {
            "service": "trade-journal",
            "status": "ready",
            "environment": settings.environment_name,
        }

    application.include_router(api_create_health_router(db_health_service=db_health_service))
    application.include_router(api_create_trade_router(settings=settings, trade_repository=trade_repository))
    application.include_router(api_create_position_router(position_service=position_service))
    application.include_router(
        api_create_sync_router(
            settings=settings,
            sync_run_repository=sync_run_repository,
            sync_orchestrator=sync_orchestrator,
        )
    )
    application.include_router(api_create_maintenance_router(cleanup_service=cleanup_service))

    return application
