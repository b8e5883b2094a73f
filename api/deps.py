"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

import secrets
from typing import Optional
from fastapi import HTTPException, status, Header

from config import settings
# Routers depend on the request-scoped session from the database module
from database import get_db  # noqa: F401


async def verify_cron_token(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> str:
    """
    Shared-secret Bearer authentication for cron triggers and admin jobs

    An unset CRON_SECRET_TOKEN rejects every request.
    """
    expected = settings.CRON_SECRET_TOKEN
    scheme, _, token = (authorization or "").partition(" ")

    if not expected or scheme.lower() != "bearer" or not secrets.compare_digest(token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


class ServiceDependency:
    """
    Dependency injection for services
    """

    @staticmethod
    def get_schedule_service():
        from services.schedule_service import schedule_service
        return schedule_service

    @staticmethod
    def get_due_window_service():
        from services.due_window_service import due_window_service
        return due_window_service

    @staticmethod
    def get_session_service():
        from services.session_service import session_service
        return session_service

    @staticmethod
    def get_reminder_dispatcher():
        from services.reminder_service import reminder_dispatcher
        return reminder_dispatcher

    @staticmethod
    def get_event_log_service():
        from services.event_log_service import event_log_service
        return event_log_service

    @staticmethod
    def get_adherence_service():
        from services.adherence_service import adherence_service
        return adherence_service


# Service dependency instances
services = ServiceDependency()
