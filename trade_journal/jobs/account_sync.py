"""Job-layer account sync orchestrator with deterministic stage timeline persistence."""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable

from trade_journal.adapters import (
    TransactionFeedAuthError,
    TransactionFeedConnectionError,
    TransactionFeedPort,
    TransactionFeedResponseError,
    TransactionFeedTimeoutError,
)
from trade_journal.db import (
    SyncRunAlreadyActiveError,
    SyncRunCounters,
    SyncRunRecord,
    SyncRunRepositoryPort,
    TradeStoreError,
)
from trade_journal.domain import domain_build_stage_event, domain_parse_raw_transactions
from trade_journal.ledger import (
    FifoMatchRequest,
    MalformedTransactionFinding,
    OpenPositionSummary,
    UnmatchedClosingFinding,
    fifo_aggregate_simultaneous_trades,
    fifo_match_transactions,
    fifo_summarize_open_lots,
)

from .interfaces import JobExecutionResult, JobOrchestratorPort
from .trade_ingestion import TradeIngestionService

logger = logging.getLogger(__name__)

SYNC_STORE_ERROR_CODE = "SYNC_STORE_ERROR"
SYNC_RUN_ALREADY_ACTIVE_CODE = "SYNC_RUN_ALREADY_ACTIVE"


@dataclass(frozen=True)
class AccountSyncConfig:
    """Configuration values for account sync execution.

    Attributes:
        exchange: Exchange label stamped on realized trades.
        account_ids: Accounts processed by the scheduled job.
        run_type: Run source type (`scheduled`, `manual`, `api`).
        lookback_days: Fetch window length ending today (UTC).
        expire_worthless_options: Whether expired open option lots are realized at zero.
        aggregate_simultaneous_fills: Whether same-minute fills are merged before ingestion.
    """

    exchange: str
    account_ids: tuple[str, ...] = ()
    run_type: str = "manual"
    lookback_days: int = 180
    expire_worthless_options: bool = True
    aggregate_simultaneous_fills: bool = False


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one account sync.

    Attributes:
        account_id: Account identifier.
        status: `success` or `failed`.
        sync_run_id: Persisted run id, or None when no run could be started.
        counters: Deterministic run counters.
        unmatched_closings: Over-closing data-quality findings.
        malformed_transactions: Skipped transaction findings.
        open_positions: Residual open quantities after matching.
        error_code: Optional deterministic failure code.
        error_message: Optional failure message.
    """

    account_id: str
    status: str
    sync_run_id: str | None = None
    counters: SyncRunCounters = field(default_factory=SyncRunCounters)
    unmatched_closings: tuple[UnmatchedClosingFinding, ...] = ()
    malformed_transactions: tuple[MalformedTransactionFinding, ...] = ()
    open_positions: tuple[OpenPositionSummary, ...] = ()
    error_code: str | None = None
    error_message: str | None = None


class AccountSyncOrchestrator(JobOrchestratorPort):
    """Concrete job orchestrator for the fetch, match and ingest workflow."""

    _ACCOUNT_SYNC_JOB_NAME = "account_sync"

    def __init__(
        self,
        sync_run_repository: SyncRunRepositoryPort,
        ingestion_service: TradeIngestionService,
        config: AccountSyncConfig,
        transaction_feed: TransactionFeedPort | None = None,
    ):
        """Initialize account sync orchestrator dependencies.

        Args:
            sync_run_repository: DB-layer sync run persistence service.
            ingestion_service: Job-layer trade ingestion service.
            config: Sync execution configuration.
            transaction_feed: Optional adapter for upstream retrieval; pushed batches work without it.

        Raises:
            ValueError: Raised when dependencies or config values are invalid.
        """

        if sync_run_repository is None:
            raise ValueError("sync_run_repository must not be None")
        if ingestion_service is None:
            raise ValueError("ingestion_service must not be None")
        if not config.exchange.strip():
            raise ValueError("config.exchange must not be blank")
        if not config.run_type.strip():
            raise ValueError("config.run_type must not be blank")
        if config.lookback_days < 1:
            raise ValueError("config.lookback_days must be >= 1")

        self._sync_run_repository = sync_run_repository
        self._ingestion_service = ingestion_service
        self._config = config
        self._transaction_feed = transaction_feed

    def job_supported_names(self) -> tuple[str, ...]:
        """Return supported job names.

        Returns:
            tuple[str, ...]: Supported job names.

        Raises:
            RuntimeError: This implementation does not raise runtime errors.
        """

        return (self._ACCOUNT_SYNC_JOB_NAME,)

    def job_execute(self, job_name: str) -> JobExecutionResult:
        """Sync every configured account and report aggregate status.

        Args:
            job_name: Name of job to execute.

        Returns:
            JobExecutionResult: `success` when every account succeeded, else `failed`.

        Raises:
            ValueError: Raised when job name is unsupported or no account is configured.
        """

        normalized_job_name = job_name.strip()
        if normalized_job_name != self._ACCOUNT_SYNC_JOB_NAME:
            raise ValueError(f"unsupported job_name={normalized_job_name}")
        if not self._config.account_ids:
            raise ValueError("config.account_ids must not be empty")

        results = self.job_sync_accounts(list(self._config.account_ids))
        succeeded_accounts = tuple(result.account_id for result in results if result.status == "success")
        failed_accounts = tuple(result.account_id for result in results if result.status != "success")
        return JobExecutionResult(
            job_name=normalized_job_name,
            status="failed" if failed_accounts else "success",
            succeeded_accounts=succeeded_accounts,
            failed_accounts=failed_accounts,
        )

    def job_sync_accounts(self, account_ids: list[str], as_of: datetime | None = None) -> list[SyncResult]:
        """Fetch and sync several accounts independently.

        A store failure or an active run in one account is recorded in that
        account's result; the remaining accounts still run.

        Args:
            account_ids: Account identifiers (also used as feed account references).
            as_of: Optional evaluation time; defaults to now.

        Returns:
            list[SyncResult]: One result per account, in input order.

        Raises:
            RuntimeError: This method records per-account failures instead of raising.
        """

        results: list[SyncResult] = []
        for account_id in account_ids:
            try:
                results.append(self.job_sync_account(account_id=account_id, as_of=as_of))
            except SyncRunAlreadyActiveError as error:
                logger.warning("sync skipped account_id=%s reason=%s", account_id, error)
                results.append(
                    SyncResult(
                        account_id=account_id,
                        status="failed",
                        error_code=SYNC_RUN_ALREADY_ACTIVE_CODE,
                        error_message=str(error),
                    )
                )
            except (TradeStoreError, RuntimeError) as error:
                logger.exception("sync failed account_id=%s", account_id)
                results.append(
                    SyncResult(
                        account_id=account_id,
                        status="failed",
                        error_code=SYNC_STORE_ERROR_CODE if isinstance(error, TradeStoreError) else "SYNC_UNEXPECTED_ERROR",
                        error_message=str(error),
                    )
                )
        return results

    def job_sync_account(
        self,
        account_id: str,
        account_hash: str | None = None,
        as_of: datetime | None = None,
    ) -> SyncResult:
        """Fetch the lookback window for one account from the feed and sync it.

        Args:
            account_id: Account identifier.
            account_hash: Optional feed account reference; defaults to the account id.
            as_of: Optional evaluation time; defaults to now.

        Returns:
            SyncResult: Run outcome; feed failures yield a `failed` result.

        Raises:
            ValueError: Raised when no transaction feed is configured or account id is blank.
            SyncRunAlreadyActiveError: Raised when a run is already active for the account.
            TradeStoreError: Raised after the run is finalized as failed.
        """

        if self._transaction_feed is None:
            raise ValueError("transaction_feed must be configured to fetch transactions")

        resolved_as_of = as_of or datetime.now(timezone.utc)
        start_date, end_date = job_sync_default_window(resolved_as_of.date(), self._config.lookback_days)
        feed_account = (account_hash or account_id).strip()

        def _fetch(timeline: list[dict[str, object]]) -> list[dict[str, Any]]:
            fetch_result = self._transaction_feed.adapter_fetch_transactions(
                account_hash=feed_account,
                start_date=start_date,
                end_date=end_date,
            )
            timeline.extend(fetch_result.stage_timeline)
            return fetch_result.transactions

        return self._job_run(account_id=account_id, load_payloads=_fetch, as_of=resolved_as_of)

    def job_sync_transactions(
        self,
        account_id: str,
        payloads: list[dict[str, Any]],
        as_of: datetime | None = None,
    ) -> SyncResult:
        """Sync one pushed batch of raw broker transactions.

        Args:
            account_id: Account identifier.
            payloads: Raw broker transaction objects.
            as_of: Optional evaluation time; defaults to now.

        Returns:
            SyncResult: Run outcome.

        Raises:
            ValueError: Raised when account id is blank.
            SyncRunAlreadyActiveError: Raised when a run is already active for the account.
            TradeStoreError: Raised after the run is finalized as failed.
        """

        def _pushed(timeline: list[dict[str, object]]) -> list[dict[str, Any]]:
            timeline.append(
                domain_build_stage_event(
                    stage="fetch",
                    status="completed",
                    details={"source": "pushed_batch", "transaction_count": len(payloads)},
                )
            )
            return payloads

        return self._job_run(account_id=account_id, load_payloads=_pushed, as_of=as_of)

    def _job_run(
        self,
        account_id: str,
        load_payloads: Callable[[list[dict[str, object]]], list[dict[str, Any]]],
        as_of: datetime | None,
    ) -> SyncResult:
        """Execute one sync run lifecycle around a payload loader.

        Args:
            account_id: Account identifier.
            load_payloads: Callable appending fetch events and returning raw payloads.
            as_of: Optional evaluation time.

        Returns:
            SyncResult: Run outcome.

        Raises:
            ValueError: Raised when account id is blank.
            SyncRunAlreadyActiveError: Raised when a run is already active.
            TradeStoreError: Raised after the run is finalized as failed.
        """

        normalized_account_id = account_id.strip()
        if not normalized_account_id:
            raise ValueError("account_id must not be blank")

        timeline: list[dict[str, object]] = [domain_build_stage_event(stage="run", status="started")]
        run_record = self._sync_run_repository.db_sync_run_create_started(
            account_id=normalized_account_id,
            run_type=self._config.run_type,
        )
        counters = SyncRunCounters()

        try:
            payloads = load_payloads(timeline)
            counters = SyncRunCounters(transaction_count=len(payloads))

            transactions, rejects = domain_parse_raw_transactions(payloads)
            parse_findings = tuple(
                MalformedTransactionFinding(
                    account_id=normalized_account_id,
                    activity_id=reject["activity_id"],
                    reason=reject["reason"],
                )
                for reject in rejects
            )
            for finding in parse_findings:
                logger.warning(
                    "skipped malformed transaction account_id=%s activity_id=%s reason=%s",
                    finding.account_id,
                    finding.activity_id,
                    finding.reason,
                )

            timeline.append(domain_build_stage_event(stage="match", status="started"))
            match_result = fifo_match_transactions(
                FifoMatchRequest(
                    account_id=normalized_account_id,
                    exchange=self._config.exchange,
                    transactions=transactions,
                    as_of=as_of or datetime.now(timezone.utc),
                    expire_worthless_options=self._config.expire_worthless_options,
                )
            )
            trades = list(match_result.trades)
            if self._config.aggregate_simultaneous_fills:
                trades = fifo_aggregate_simultaneous_trades(trades)

            malformed_findings = parse_findings + match_result.malformed_transactions
            open_positions = tuple(fifo_summarize_open_lots(match_result.open_lots))
            timeline.append(
                domain_build_stage_event(
                    stage="match",
                    status="completed",
                    details={
                        "parsed_transaction_count": len(transactions),
                        "trade_count": len(trades),
                        "open_lot_count": len(match_result.open_lots),
                        "unmatched_closing_count": len(match_result.unmatched_closings),
                        "malformed_transaction_count": len(malformed_findings),
                    },
                )
            )
            timeline.extend(
                domain_build_stage_event(stage="finding", status="reported", details=finding.finding_as_diagnostic())
                for finding in (*match_result.unmatched_closings, *malformed_findings)
            )
            counters = SyncRunCounters(
                transaction_count=len(payloads),
                trade_count=len(trades),
                unmatched_count=len(match_result.unmatched_closings),
                malformed_count=len(malformed_findings),
            )

            timeline.append(domain_build_stage_event(stage="ingest", status="started"))
            ingestion_result = self._ingestion_service.ingestion_ingest(account_id=normalized_account_id, trades=trades)
            timeline.append(
                domain_build_stage_event(
                    stage="ingest",
                    status="completed",
                    details={
                        "candidate_count": ingestion_result.candidate_count,
                        "inserted_count": ingestion_result.inserted_count,
                        "duplicate_count": ingestion_result.duplicate_count,
                    },
                )
            )
            counters = SyncRunCounters(
                transaction_count=counters.transaction_count,
                trade_count=counters.trade_count,
                inserted_count=ingestion_result.inserted_count,
                duplicate_count=ingestion_result.duplicate_count,
                unmatched_count=counters.unmatched_count,
                malformed_count=counters.malformed_count,
            )

            timeline.append(domain_build_stage_event(stage="run", status="success"))
            finalized_run = self._sync_run_repository.db_sync_run_finalize(
                sync_run_id=run_record.sync_run_id,
                status="success",
                counters=counters,
                error_code=None,
                error_message=None,
                diagnostics=timeline,
            )
            return SyncResult(
                account_id=normalized_account_id,
                status="success",
                sync_run_id=finalized_run.sync_run_id,
                counters=counters,
                unmatched_closings=match_result.unmatched_closings,
                malformed_transactions=malformed_findings,
                open_positions=open_positions,
            )
        except TradeStoreError as error:
            self._job_finalize_failed(run_record, counters, timeline, error, SYNC_STORE_ERROR_CODE)
            raise
        except (TimeoutError, ConnectionError, ValueError, RuntimeError) as error:
            error_code = self._job_error_code_for_exception(error)
            self._job_finalize_failed(run_record, counters, timeline, error, error_code)
            return SyncResult(
                account_id=normalized_account_id,
                status="failed",
                sync_run_id=run_record.sync_run_id,
                counters=counters,
                error_code=error_code,
                error_message=str(error),
            )

    def _job_finalize_failed(
        self,
        run_record: SyncRunRecord,
        counters: SyncRunCounters,
        timeline: list[dict[str, object]],
        error: Exception,
        error_code: str,
    ) -> None:
        """Append failure event and finalize the run as failed.

        When finalization itself fails (typically because the store is down),
        the finalize error is logged and the original error keeps propagating.

        Args:
            run_record: Started sync run record.
            counters: Counters reached before the failure.
            timeline: Mutable stage timeline events.
            error: Caught workflow exception.
            error_code: Deterministic error code.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        logger.error("sync run failed sync_run_id=%s error_code=%s error=%s", run_record.sync_run_id, error_code, error)
        timeline.append(
            domain_build_stage_event(
                stage="run",
                status="failed",
                details={
                    "error_code": error_code,
                    "error_type": type(error).__name__,
                    "error_message": str(error),
                    "traceback": traceback.format_exc(),
                },
            )
        )
        try:
            self._sync_run_repository.db_sync_run_finalize(
                sync_run_id=run_record.sync_run_id,
                status="failed",
                counters=counters,
                error_code=error_code,
                error_message=str(error),
                diagnostics=timeline,
            )
        except RuntimeError:
            logger.exception("failed to finalize sync run sync_run_id=%s", run_record.sync_run_id)

    def _job_error_code_for_exception(self, error: Exception) -> str:
        """Map runtime exception type to deterministic sync failure code.

        Args:
            error: Caught workflow exception.

        Returns:
            str: Deterministic error code.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        if isinstance(error, TransactionFeedAuthError):
            return "SYNC_FEED_AUTH_ERROR"
        if isinstance(error, TransactionFeedResponseError):
            return "SYNC_FEED_RESPONSE_ERROR"
        if isinstance(error, (TransactionFeedTimeoutError, TimeoutError)):
            return "SYNC_FEED_TIMEOUT_ERROR"
        if isinstance(error, (TransactionFeedConnectionError, ConnectionError)):
            return "SYNC_FEED_CONNECTION_ERROR"
        if isinstance(error, ValueError):
            return "SYNC_CONTRACT_ERROR"
        return "SYNC_UNEXPECTED_ERROR"


def job_sync_default_window(as_of: date, lookback_days: int) -> tuple[date, date]:
    """Return the inclusive `(start, end)` fetch window ending on `as_of`."""

    if lookback_days < 1:
        raise ValueError("lookback_days must be >= 1")
    return as_of - timedelta(days=lookback_days), as_of
