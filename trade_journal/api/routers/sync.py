"""Sync API router composition for pushed batches and run diagnostics endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Query, status
from fastapi.responses import JSONResponse

from trade_journal.config import AppSettings
from trade_journal.db import SyncRunAlreadyActiveError, SyncRunRepositoryPort, TradeStoreError
from trade_journal.jobs import SYNC_RUN_ALREADY_ACTIVE_CODE, SYNC_STORE_ERROR_CODE, AccountSyncOrchestrator

from .serialization import api_serialize_sync_result, api_serialize_sync_run_record

logger = logging.getLogger(__name__)


def api_create_sync_router(
    settings: AppSettings,
    sync_run_repository: SyncRunRepositoryPort,
    sync_orchestrator: AccountSyncOrchestrator,
) -> APIRouter:
    """Create sync router with trigger and run list/detail endpoints.

    Args:
        settings: Runtime settings used for pagination defaults.
        sync_run_repository: DB-layer sync run repository.
        sync_orchestrator: Job orchestrator handling pushed transaction batches.

    Returns:
        APIRouter: Router exposing sync APIs.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if settings is None:
        raise ValueError("settings must not be None")
    if sync_run_repository is None:
        raise ValueError("sync_run_repository must not be None")
    if sync_orchestrator is None:
        raise ValueError("sync_orchestrator must not be None")

    router = APIRouter(prefix="/sync", tags=["sync"])

    @router.post("/{account_id}/transactions")
    def api_sync_transactions(
        account_id: str,
        transactions: list[dict[str, Any]] = Body(...),
    ) -> JSONResponse:
        """Match and ingest one pushed batch of raw broker transactions.

        Args:
            account_id: Account identifier.
            transactions: Raw broker transaction objects ordered by time.

        Returns:
            JSONResponse: Sync result payload; 409 when a run is already active,
            503 when the trade store or the run bookkeeping is unavailable.
        """

        try:
            sync_result = sync_orchestrator.job_sync_transactions(account_id=account_id, payloads=transactions)
        except SyncRunAlreadyActiveError:
            payload = {
                "status": "error",
                "code": SYNC_RUN_ALREADY_ACTIVE_CODE,
                "message": "run already active",
            }
            return JSONResponse(content=payload, status_code=status.HTTP_409_CONFLICT)
        except TradeStoreError as error:
            logger.error("sync store failure account_id=%s error=%s", account_id, error)
            payload = {
                "status": "error",
                "code": SYNC_STORE_ERROR_CODE,
                "message": str(error),
            }
            return JSONResponse(content=payload, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
        except ValueError as error:
            payload = {
                "status": "error",
                "code": "INVALID_REQUEST",
                "message": str(error),
            }
            return JSONResponse(content=payload, status_code=status.HTTP_400_BAD_REQUEST)
        except RuntimeError as error:
            logger.error("sync run bookkeeping failure account_id=%s error=%s", account_id, error)
            payload = {
                "status": "error",
                "code": SYNC_STORE_ERROR_CODE,
                "message": str(error),
            }
            return JSONResponse(content=payload, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

        return JSONResponse(content=api_serialize_sync_result(sync_result), status_code=status.HTTP_200_OK)

    @router.get("/runs")
    def api_sync_run_list(
        limit: int = Query(default=settings.api_default_limit, ge=1),
        offset: int = Query(default=0, ge=0),
        account_id: str | None = Query(default=None),
    ) -> JSONResponse:
        """Return sync runs ordered by latest first.

        Args:
            limit: Max rows to return.
            offset: Rows to skip.
            account_id: Optional account filter.

        Returns:
            JSONResponse: Runs list payload.

        Raises:
            RuntimeError: Raised when repository read fails.
        """

        normalized_account_id = account_id.strip() if account_id and account_id.strip() else None
        applied_limit = min(limit, settings.api_max_limit)
        run_rows = sync_run_repository.db_sync_run_list(
            limit=applied_limit,
            offset=offset,
            account_id=normalized_account_id,
        )
        payload = {
            "items": [api_serialize_sync_run_record(run_record) for run_record in run_rows],
            "page": {
                "limit": limit,
                "applied_limit": applied_limit,
                "offset": offset,
                "returned": len(run_rows),
            },
            "filters": {"account_id": normalized_account_id},
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.get("/runs/{sync_run_id}")
    def api_sync_run_detail(sync_run_id: str) -> JSONResponse:
        """Return one sync run detail payload.

        Args:
            sync_run_id: Sync run identifier.

        Returns:
            JSONResponse: Run detail payload or 404 when absent.

        Raises:
            RuntimeError: Raised when repository read fails.
        """

        run_record = sync_run_repository.db_sync_run_get_by_id(sync_run_id=sync_run_id)
        if run_record is None:
            payload = {
                "status": "error",
                "code": "SYNC_RUN_NOT_FOUND",
                "message": "sync run not found",
            }
            return JSONResponse(content=payload, status_code=status.HTTP_404_NOT_FOUND)

        return JSONResponse(content=api_serialize_sync_run_record(run_record), status_code=status.HTTP_200_OK)

    return router
