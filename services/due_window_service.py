"""
Due Window Service
Scheduler tick: finds due schedules, opens confirmation sessions and dispatches reminders
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from datetime import datetime
from sqlalchemy.orm import Session

from config import settings
from database import get_db_context
import models
from models import SessionState, DispatchKind
from services.session_service import session_service, DuplicateSessionError
from services.reminder_service import ReminderDispatcher, reminder_dispatcher
from tools.clock import resolve_now, get_zone, to_local, local_to_utc
from tools.due_window import is_due
from tools.time_slots import parse_time, ScheduleValidationError


logger = logging.getLogger(__name__)


@dataclass
class DueSchedule:
    """A schedule whose window is open, with today's occurrence as naive UTC"""
    schedule: models.Schedule
    patient: models.Patient
    scheduled_time: datetime


class DueWindowService:
    """
    Service for the due-window tick
    """

    def find_due_schedules(self, session: Session, now: datetime) -> List[DueSchedule]:
        """
        Active, notify-enabled schedules of active medications of active
        patients with a phone number, evaluated in each patient's timezone
        """
        now_utc = resolve_now(now)
        rows = session.query(models.Schedule, models.Patient).join(
            models.Medication, models.Schedule.medication_id == models.Medication.id
        ).join(
            models.Patient, models.Schedule.patient_id == models.Patient.id
        ).filter(
            models.Schedule.active == True,
            models.Schedule.notify_enabled == True,
            models.Medication.active == True,
            models.Patient.is_active == True,
            models.Patient.phone.isnot(None)
        ).order_by(models.Schedule.id).all()

        due: List[DueSchedule] = []
        for schedule, patient in rows:
            zone = get_zone(patient.timezone, settings.DEFAULT_TIMEZONE)
            local_now = to_local(now_utc, zone)
            advance = schedule.advance_window_minutes
            if advance is None:
                advance = settings.DEFAULT_ADVANCE_MINUTES
            try:
                if not is_due(schedule.time_of_day, local_now, advance, schedule.days_of_week_mask):
                    continue
                scheduled = local_to_utc(local_now.date(), parse_time(schedule.time_of_day), zone)
            except ScheduleValidationError as e:
                logger.warning(f"Skipping schedule {schedule.id}: {e}")
                continue
            due.append(DueSchedule(schedule=schedule, patient=patient, scheduled_time=scheduled))

        logger.info(f"{len(due)} of {len(rows)} schedules due at {now_utc.isoformat()}")
        return due

    async def run_tick(
        self,
        now: Optional[datetime] = None,
        db: Optional[Session] = None,
        dispatcher: Optional[ReminderDispatcher] = None
    ) -> Dict[str, Any]:
        """
        Run one scheduler tick

        A due schedule that already has a session today is skipped, unless
        that session is still pending and its reminder was never accepted by
        the transport; then the reminder is sent again for the same session.

        Returns:
            {"success", "sessionsCreated", "notified", "skipped", "errors"}

        Raises:
            TransportConfigurationError: transport credentials missing
        """
        now_utc = resolve_now(now)
        dispatcher = dispatcher or reminder_dispatcher
        # Fail before any session is opened when the transport cannot be built
        dispatcher.transport

        async def _tick(session: Session) -> Dict[str, Any]:
            created = 0
            notified = 0
            skipped = 0
            errors: List[str] = []

            for item in self.find_due_schedules(session, now_utc):
                schedule_id = item.schedule.id
                patient_id = item.patient.id
                medication_ids = [item.schedule.medication_id]
                try:
                    key = session_service.key_for(
                        item.patient, item.scheduled_time, medication_ids, item.schedule.time_of_day
                    )
                    record = session_service.find_by_key(session, key)
                    if record:
                        retry = (
                            record.state == SessionState.PENDING
                            and record.notified_at is None
                            and record.expires_at > now_utc
                        )
                        if not retry:
                            skipped += 1
                            continue
                        logger.info(f"Re-dispatching unsent reminder for session {record.id}")
                    else:
                        try:
                            record = await session_service.create(
                                patient_id,
                                medication_ids,
                                item.scheduled_time,
                                schedule_id=schedule_id,
                                now=now_utc,
                                db=session
                            )
                        except DuplicateSessionError:
                            skipped += 1
                            continue
                        created += 1

                    result = await dispatcher.send(
                        record, DispatchKind.REMINDER, now=now_utc, db=session
                    )
                    if result.accepted:
                        notified += 1
                    else:
                        errors.append(f"Schedule {schedule_id}: {result.error}")
                except Exception as e:
                    session.rollback()
                    logger.exception(f"Error processing schedule {schedule_id}")
                    errors.append(f"Schedule {schedule_id}: {e}")

            logger.info(
                f"Tick summary: {created} sessions created, {notified} notified, "
                f"{skipped} skipped, {len(errors)} errors"
            )
            return {
                "success": True,
                "sessionsCreated": created,
                "notified": notified,
                "skipped": skipped,
                "errors": errors,
            }

        if db:
            return await _tick(db)

        with get_db_context() as session:
            return await _tick(session)


# Singleton instance
due_window_service = DueWindowService()
