"""API router package for endpoint composition."""

from .health import api_create_health_router
from .maintenance import api_create_maintenance_router
from .positions import api_create_position_router
from .sync import api_create_sync_router
from .trades import api_create_trade_router

__all__ = [
	"api_create_health_router",
	"api_create_maintenance_router",
	"api_create_position_router",
	"api_create_sync_router",
	"api_create_trade_router",
]
