"""Maintenance API router for administrative duplicate cleanup."""

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from trade_journal.jobs import DuplicateCleanupService


def api_create_maintenance_router(cleanup_service: DuplicateCleanupService) -> APIRouter:
    """Create maintenance router exposing duplicate cleanup.

    Args:
        cleanup_service: Job-layer duplicate cleanup service.

    Returns:
        APIRouter: Router exposing `/maintenance` endpoints.

    Raises:
        ValueError: Raised when cleanup_service is invalid.
    """

    if cleanup_service is None:
        raise ValueError("cleanup_service must not be None")

    router = APIRouter(prefix="/maintenance", tags=["maintenance"])

    @router.post("/duplicates/cleanup")
    def api_duplicate_cleanup(account_id: str = Query(min_length=1)) -> JSONResponse:
        """Delete duplicate trade rows for one account.

        Args:
            account_id: Account identifier.

        Returns:
            JSONResponse: Cleanup counters payload.

        Raises:
            RuntimeError: Raised when the read or delete fails.
        """

        try:
            cleanup_result = cleanup_service.job_cleanup_duplicates(account_id=account_id)
        except ValueError as error:
            payload = {
                "status": "error",
                "code": "INVALID_REQUEST",
                "message": str(error),
            }
            return JSONResponse(content=payload, status_code=status.HTTP_400_BAD_REQUEST)

        payload = {
            "account_id": cleanup_result.account_id,
            "scanned_count": cleanup_result.scanned_count,
            "duplicate_count": cleanup_result.duplicate_count,
            "deleted_count": cleanup_result.deleted_count,
            "kept_count": cleanup_result.kept_count,
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    return router
