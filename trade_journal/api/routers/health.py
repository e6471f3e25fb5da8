"""Health router reporting API liveness and journal database readiness."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from trade_journal.db import DatabaseHealthPort


def api_create_health_router(db_health_service: DatabaseHealthPort) -> APIRouter:
    """Create the `/health` router.

    Responds 200 only when the database is reachable and migrated; an
    unreachable database or missing journal tables respond 503.

    Args:
        db_health_service: DB-layer readiness check.

    Returns:
        APIRouter: Router exposing `/health`.

    Raises:
        ValueError: Raised when db_health_service is None.
    """

    if db_health_service is None:
        raise ValueError("db_health_service must not be None")

    router = APIRouter(tags=["health"])

    @router.get("/health")
    def api_health_status() -> JSONResponse:
        target = db_health_service.db_connection_label()
        try:
            db_health = db_health_service.db_check_health()
        except ConnectionError as error:
            payload = {
                "status": "degraded",
                "app": "up",
                "database": "down",
                "detail": str(error),
                "missing_tables": [],
                "target": target,
            }
            return JSONResponse(content=payload, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

        is_ready = db_health.status == "ok"
        payload = {
            "status": "ok" if is_ready else "degraded",
            "app": "up",
            "database": db_health.status,
            "detail": db_health.detail,
            "missing_tables": list(db_health.missing_tables),
            "target": target,
        }
        return JSONResponse(
            content=payload,
            status_code=status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return router
