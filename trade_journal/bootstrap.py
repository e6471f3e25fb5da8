"""Application bootstrap wiring for startup validation and dependency assembly."""

from fastapi import FastAPI
from sqlalchemy import Engine

from trade_journal.adapters import BrokerTransactionFeedAdapter, JsonFileTransactionSource, TransactionFeedPort
from trade_journal.api import create_api_application
from trade_journal.config import AppSettings, config_configure_logging, config_load_settings
from trade_journal.db import (
    SQLAlchemyDatabaseHealthService,
    SQLAlchemySyncRunService,
    SQLAlchemyTradePersistenceService,
    db_create_engine,
)
from trade_journal.jobs import (
    AccountSyncConfig,
    AccountSyncOrchestrator,
    DuplicateCleanupService,
    TradeIngestionService,
)
from trade_journal.ledger import PositionLifecycleConfig, PositionLifecycleService


def bootstrap_create_application() -> FastAPI:
    """Assemble the runtime application after validating startup configuration.

    Returns:
        FastAPI: Fully initialized FastAPI application instance.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    settings = config_load_settings()
    config_configure_logging(settings.log_level)
    engine = db_create_engine(database_url=settings.database_url)
    trade_repository = SQLAlchemyTradePersistenceService(engine=engine)
    sync_run_repository = SQLAlchemySyncRunService(
        engine=engine,
        stale_run_timeout_seconds=settings.sync_run_stale_after_seconds,
    )
    return create_api_application(
        settings=settings,
        db_health_service=SQLAlchemyDatabaseHealthService(engine=engine),
        trade_repository=trade_repository,
        sync_run_repository=sync_run_repository,
        sync_orchestrator=bootstrap_build_sync_orchestrator(settings, engine, run_type="api"),
        position_service=PositionLifecycleService(
            repository=trade_repository,
            config=bootstrap_build_lifecycle_config(settings),
        ),
        cleanup_service=DuplicateCleanupService(
            repository=trade_repository,
            chunk_size=settings.duplicate_delete_chunk_size,
        ),
    )


def bootstrap_create_sync_orchestrator(run_type: str = "manual") -> AccountSyncOrchestrator:
    """Build account sync orchestrator for non-HTTP trigger surfaces.

    Args:
        run_type: Run source label persisted on each sync run.

    Returns:
        AccountSyncOrchestrator: Fully wired sync orchestrator instance.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    settings = config_load_settings()
    config_configure_logging(settings.log_level)
    engine = db_create_engine(database_url=settings.database_url)
    return bootstrap_build_sync_orchestrator(settings, engine, run_type=run_type)


def bootstrap_create_cleanup_service() -> DuplicateCleanupService:
    """Build duplicate cleanup service for non-HTTP trigger surfaces.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    settings = config_load_settings()
    config_configure_logging(settings.log_level)
    engine = db_create_engine(database_url=settings.database_url)
    return DuplicateCleanupService(
        repository=SQLAlchemyTradePersistenceService(engine=engine),
        chunk_size=settings.duplicate_delete_chunk_size,
    )


def bootstrap_build_sync_orchestrator(settings: AppSettings, engine: Engine, run_type: str) -> AccountSyncOrchestrator:
    """Wire sync orchestrator dependencies from validated settings.

    Args:
        settings: Validated runtime settings.
        engine: Shared SQLAlchemy engine.
        run_type: Run source label.

    Returns:
        AccountSyncOrchestrator: Orchestrator; feed-less when no feed source is configured.

    Raises:
        ValueError: Raised when configuration values are invalid.
    """

    return AccountSyncOrchestrator(
        sync_run_repository=SQLAlchemySyncRunService(
            engine=engine,
            stale_run_timeout_seconds=settings.sync_run_stale_after_seconds,
        ),
        ingestion_service=TradeIngestionService(repository=SQLAlchemyTradePersistenceService(engine=engine)),
        config=AccountSyncConfig(
            exchange=settings.exchange_name,
            account_ids=settings.settings_account_ids(),
            run_type=run_type,
            lookback_days=settings.sync_lookback_days,
            expire_worthless_options=settings.expire_worthless_options,
            aggregate_simultaneous_fills=settings.aggregate_simultaneous_fills,
        ),
        transaction_feed=bootstrap_build_transaction_feed(settings),
    )


def bootstrap_build_transaction_feed(settings: AppSettings) -> TransactionFeedPort | None:
    """Select the transaction source: saved JSON exports first, then the broker API.

    Args:
        settings: Validated runtime settings.

    Returns:
        TransactionFeedPort | None: Configured source or None when neither is configured.

    Raises:
        ValueError: Raised when adapter configuration is invalid.
    """

    if settings.transaction_export_directory:
        return JsonFileTransactionSource(directory=settings.transaction_export_directory)
    if settings.broker_access_token:
        return BrokerTransactionFeedAdapter(
            access_token=settings.broker_access_token,
            base_url=settings.broker_api_base_url,
            retry_attempts=settings.broker_retry_attempts,
            retry_backoff_base_seconds=settings.broker_backoff_base_seconds,
            retry_max_backoff_seconds=settings.broker_backoff_max_seconds,
            jitter_min_multiplier=settings.broker_jitter_min_multiplier,
            jitter_max_multiplier=settings.broker_jitter_max_multiplier,
            request_timeout_seconds=settings.broker_request_timeout_seconds,
        )
    return None


def bootstrap_build_lifecycle_config(settings: AppSettings) -> PositionLifecycleConfig:
    """Map position settings onto the ledger lifecycle configuration."""

    return PositionLifecycleConfig(
        entry_window_seconds=settings.position_entry_window_seconds,
        at_risk_below_percent=settings.position_at_risk_below_percent,
        free_at_percent=settings.position_free_at_percent,
    )
