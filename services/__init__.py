"""
Services Module
Business logic layer for the DoseCheck engine
"""

from services.adherence_service import AdherenceService, AdherenceScore, adherence_service
from services.event_log_service import EventLogService, event_log_service
from services.schedule_service import ScheduleService, schedule_service
from services.session_service import (
    ConfirmationSessionService,
    session_service,
    SessionError,
    DuplicateSessionError,
    SessionNotFoundError,
    SessionExpiredError,
    SessionAlreadyCompletedError,
)
from services.reminder_service import ReminderDispatcher, DeliveryResult, reminder_dispatcher
from services.due_window_service import DueWindowService, DueSchedule, due_window_service


__all__ = [
    # Service classes
    "AdherenceService",
    "EventLogService",
    "ScheduleService",
    "ConfirmationSessionService",
    "ReminderDispatcher",
    "DueWindowService",
    # Results
    "AdherenceScore",
    "DeliveryResult",
    "DueSchedule",
    # Errors
    "SessionError",
    "DuplicateSessionError",
    "SessionNotFoundError",
    "SessionExpiredError",
    "SessionAlreadyCompletedError",
    # Singleton instances
    "adherence_service",
    "event_log_service",
    "schedule_service",
    "session_service",
    "reminder_dispatcher",
    "due_window_service",
]
