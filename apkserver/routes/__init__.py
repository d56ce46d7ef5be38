"""API routes package."""

from apkserver.routes.apk_routes import router as apk_router
from apkserver.routes.health_routes import router as health_router

__all__ = ["apk_router", "health_router"]
