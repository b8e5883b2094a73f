"""
API Module
FastAPI routers for the DoseCheck engine
"""

from api.cron import router as cron_router
from api.sessions import router as sessions_router
from api.sms import router as sms_router
from api.admin import router as admin_router
from api.schedules import router as schedules_router
from api.adherence import router as adherence_router

from api.deps import (
    get_db,
    verify_cron_token,
    services,
)


__all__ = [
    # Routers
    "cron_router",
    "sessions_router",
    "sms_router",
    "admin_router",
    "schedules_router",
    "adherence_router",
    # Dependencies
    "get_db",
    "verify_cron_token",
    "services",
]


def include_routers(app, prefix: str = "/api/v1"):
    """
    Include all API routers in the FastAPI app

    Usage:
        from api import include_routers
        include_routers(app)
    """
    app.include_router(cron_router, prefix=prefix)
    app.include_router(sessions_router, prefix=prefix)
    app.include_router(sms_router, prefix=prefix)
    app.include_router(admin_router, prefix=prefix)
    app.include_router(schedules_router, prefix=prefix)
    app.include_router(adherence_router, prefix=prefix)
