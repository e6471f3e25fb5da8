"""Option position API router composition for lifecycle and metrics reads."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from trade_journal.ledger import LedgerPositionPort, position_calculate_options_metrics

from .serialization import api_serialize_option_position, api_serialize_options_metrics


def api_create_position_router(position_service: LedgerPositionPort) -> APIRouter:
    """Create position router exposing option position and metrics reads.

    Args:
        position_service: Ledger-layer option position read service.

    Returns:
        APIRouter: Router exposing `/positions/options` endpoints.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if position_service is None:
        raise ValueError("position_service must not be None")

    router = APIRouter(prefix="/positions", tags=["positions"])

    @router.get("/options")
    def api_option_position_list(
        account_id: str = Query(min_length=1),
        date_from: date | None = Query(default=None),
        date_to: date | None = Query(default=None),
    ) -> JSONResponse:
        """List grouped option positions by entry date, most recent first.

        Args:
            account_id: Account identifier.
            date_from: Optional inclusive lower entry-date bound.
            date_to: Optional inclusive upper entry-date bound.

        Returns:
            JSONResponse: Position list payload or 400 on an invalid range.

        Raises:
            RuntimeError: Raised when the trade read fails.
        """

        try:
            positions = position_service.ledger_option_positions(
                account_id=account_id,
                date_from=date_from,
                date_to=date_to,
            )
        except ValueError as error:
            return _api_invalid_request(error)

        payload = {
            "items": [api_serialize_option_position(position) for position in positions],
            "filters": _api_position_filters(account_id, date_from, date_to),
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.get("/options/metrics")
    def api_option_position_metrics(
        account_id: str = Query(min_length=1),
        date_from: date | None = Query(default=None),
        date_to: date | None = Query(default=None),
    ) -> JSONResponse:
        """Return aggregate options metrics over positions entered inside the range.

        Args:
            account_id: Account identifier.
            date_from: Optional inclusive lower entry-date bound.
            date_to: Optional inclusive upper entry-date bound.

        Returns:
            JSONResponse: Metrics payload or 400 on an invalid range.

        Raises:
            RuntimeError: Raised when the trade read fails.
        """

        try:
            positions = position_service.ledger_option_positions(
                account_id=account_id,
                date_from=date_from,
                date_to=date_to,
            )
        except ValueError as error:
            return _api_invalid_request(error)

        position_trades = [trade for position in positions for trade in position.trades]
        summary = position_calculate_options_metrics(position_trades, positions=positions)
        payload = {
            "metrics": api_serialize_options_metrics(summary),
            "filters": _api_position_filters(account_id, date_from, date_to),
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    return router


def _api_invalid_request(error: ValueError) -> JSONResponse:
    payload = {
        "status": "error",
        "code": "INVALID_REQUEST",
        "message": str(error),
    }
    return JSONResponse(content=payload, status_code=status.HTTP_400_BAD_REQUEST)


def _api_position_filters(account_id: str, date_from: date | None, date_to: date | None) -> dict[str, object]:
    return {
        "account_id": account_id.strip(),
        "date_from": date_from.isoformat() if date_from else None,
        "date_to": date_to.isoformat() if date_to else None,
    }
