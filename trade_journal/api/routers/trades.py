"""Trade API router composition for persisted realized-trade reads."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from trade_journal.config import AppSettings
from trade_journal.db import TradeRepositoryPort

from .serialization import api_serialize_trade_record


def api_create_trade_router(settings: AppSettings, trade_repository: TradeRepositoryPort) -> APIRouter:
    """Create trade router exposing paginated trade list reads.

    Args:
        settings: Runtime settings used for pagination defaults.
        trade_repository: DB-layer trade repository.

    Returns:
        APIRouter: Router exposing `/trades`.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if settings is None:
        raise ValueError("settings must not be None")
    if trade_repository is None:
        raise ValueError("trade_repository must not be None")

    router = APIRouter(prefix="/trades", tags=["trades"])

    @router.get("")
    def api_trade_list(
        account_id: str = Query(min_length=1),
        limit: int = Query(default=settings.api_default_limit, ge=1),
        offset: int = Query(default=0, ge=0),
        exit_date_from: date | None = Query(default=None),
        exit_date_to: date | None = Query(default=None),
    ) -> JSONResponse:
        """List realized trades for one account, newest exit first.

        Args:
            account_id: Account identifier.
            limit: Max rows to return.
            offset: Rows to skip.
            exit_date_from: Optional inclusive lower exit-date bound.
            exit_date_to: Optional inclusive upper exit-date bound.

        Returns:
            JSONResponse: Trade list envelope payload.

        Raises:
            RuntimeError: Raised when repository read fails.
        """

        if exit_date_from is not None and exit_date_to is not None and exit_date_from > exit_date_to:
            payload = {
                "status": "error",
                "code": "INVALID_DATE_RANGE",
                "message": "exit_date_from must be <= exit_date_to",
            }
            return JSONResponse(content=payload, status_code=status.HTTP_400_BAD_REQUEST)

        applied_limit = min(limit, settings.api_max_limit)
        trade_rows = trade_repository.db_trade_list(
            account_id=account_id.strip(),
            limit=applied_limit,
            offset=offset,
            exit_date_from=exit_date_from,
            exit_date_to=exit_date_to,
        )
        payload = {
            "items": [api_serialize_trade_record(trade_row) for trade_row in trade_rows],
            "page": {
                "limit": limit,
                "applied_limit": applied_limit,
                "offset": offset,
                "returned": len(trade_rows),
            },
            "filters": {
                "account_id": account_id.strip(),
                "exit_date_from": exit_date_from.isoformat() if exit_date_from else None,
                "exit_date_to": exit_date_to.isoformat() if exit_date_to else None,
            },
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    return router
