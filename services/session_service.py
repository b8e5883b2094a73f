"""
Confirmation Session Service
Lifecycle of confirmation sessions: create-if-absent, complete, expire

State transitions are single conditional UPDATEs ("... WHERE state = PENDING"),
so when a confirmation races the expiry sweep exactly one of them wins and the
other becomes a no-op.
"""

import logging
import secrets
from typing import Dict, List, Optional, Any, Iterable
from datetime import datetime, date, timedelta
from sqlalchemy import func
from sqlalchemy.orm import Session

from config import settings, engine_config
from database import get_db_context
import models
from models import SessionState, LogStatus
from services.event_log_service import event_log_service
from services.adherence_service import adherence_service
from tools.clock import resolve_now, to_naive_utc, get_zone, to_local


logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Base class for confirmation session failures"""


class DuplicateSessionError(SessionError):
    """A session for the same patient, schedule and day already exists"""


class SessionNotFoundError(SessionError):
    """Unknown session token"""


class SessionExpiredError(SessionError):
    """Confirmation arrived after the session expired"""


class SessionAlreadyCompletedError(SessionError):
    """Session was already confirmed"""


def idempotency_key(
    patient_id: int,
    medication_ids: Iterable[int],
    local_day: date,
    slot_time: Optional[str] = None
) -> str:
    """
    patient + sorted medication set (+ schedule slot time) + local calendar day

    Schedule rows are replaced on every expansion, so a schedule-driven
    session is identified by its medication and slot time rather than the
    schedule id.
    """
    subject = "meds-" + "-".join(str(m) for m in sorted(set(medication_ids)))
    if slot_time:
        subject += "@" + "".join(slot_time.split(":")[:2])
    return f"{patient_id}:{subject}:{local_day.isoformat()}"


class ConfirmationSessionService:
    """
    Service for confirmation sessions
    """

    def __init__(self, ttl_minutes: Optional[int] = None):
        self._ttl_minutes = ttl_minutes

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=self._ttl_minutes or settings.SESSION_TTL_MINUTES)

    def key_for(
        self,
        patient: models.Patient,
        scheduled_time: datetime,
        medication_ids: Iterable[int],
        slot_time: Optional[str] = None
    ) -> str:
        zone = get_zone(patient.timezone, settings.DEFAULT_TIMEZONE)
        local_day = to_local(to_naive_utc(scheduled_time), zone).date()
        return idempotency_key(patient.id, medication_ids, local_day, slot_time)

    def find_by_key(self, session: Session, key: str) -> Optional[models.ConfirmationSession]:
        return session.query(models.ConfirmationSession).filter(
            models.ConfirmationSession.idempotency_key == key
        ).order_by(models.ConfirmationSession.id).first()

    async def create(
        self,
        patient_id: int,
        medication_ids: List[int],
        scheduled_time: datetime,
        schedule_id: Optional[int] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> models.ConfirmationSession:
        """
        Create a PENDING session if none exists for the idempotency key

        The existence check runs right before the insert and the lowest id
        wins if a concurrent caller slipped in between, so creation behaves as
        create-if-absent without a unique constraint.

        Raises:
            DuplicateSessionError: a session for the same key already exists
            ValueError: unknown patient or schedule, or empty medication list
        """
        def _create(session: Session) -> models.ConfirmationSession:
            now_utc = resolve_now(now)
            scheduled = to_naive_utc(scheduled_time)

            patient = session.get(models.Patient, patient_id)
            if not patient:
                raise ValueError(f"Patient {patient_id} not found")
            if not medication_ids:
                raise ValueError("A confirmation session needs at least one medication")

            slot_time = None
            if schedule_id is not None:
                schedule = session.get(models.Schedule, schedule_id)
                if not schedule:
                    raise ValueError(f"Schedule {schedule_id} not found")
                slot_time = schedule.time_of_day

            key = self.key_for(patient, scheduled, medication_ids, slot_time)
            if self.find_by_key(session, key):
                raise DuplicateSessionError(f"Session already exists for {key}")

            record = models.ConfirmationSession(
                token=secrets.token_urlsafe(32),
                patient_id=patient_id,
                schedule_id=schedule_id,
                medication_ids=list(medication_ids),
                idempotency_key=key,
                scheduled_time=scheduled,
                expires_at=scheduled + self.ttl,
                state=SessionState.PENDING,
                created_at=now_utc
            )
            session.add(record)
            session.flush()

            winner_id = session.query(func.min(models.ConfirmationSession.id)).filter(
                models.ConfirmationSession.idempotency_key == key
            ).scalar()
            if winner_id != record.id:
                session.rollback()
                raise DuplicateSessionError(f"Concurrent session already created for {key}")

            session.commit()
            session.refresh(record)

            logger.info(
                f"Created confirmation session {record.id} for patient {patient_id}, "
                f"medications {record.medication_ids}, expires {record.expires_at.isoformat()}"
            )
            return record

        if db:
            return _create(db)

        with get_db_context() as session:
            return _create(session)

    async def get_by_token(
        self,
        token: str,
        db: Optional[Session] = None
    ) -> models.ConfirmationSession:
        """
        Raises:
            SessionNotFoundError: unknown token
        """
        def _get(session: Session) -> models.ConfirmationSession:
            record = session.query(models.ConfirmationSession).filter(
                models.ConfirmationSession.token == token
            ).first()
            if not record:
                raise SessionNotFoundError("Session not found")
            return record

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def complete(
        self,
        token: str,
        evidence: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> List[models.MedicationLogEvent]:
        """
        Confirm a session and record one TAKEN event per medication

        Events are keyed by the session's scheduled time, not the confirmation
        time, so they land in the same bucket as any MISSED sibling.

        Raises:
            SessionNotFoundError: unknown token
            SessionExpiredError: past expires_at, or already expired by the sweep
            SessionAlreadyCompletedError: confirmed before
        """
        evidence = dict(evidence or {})

        def _complete(session: Session) -> List[models.MedicationLogEvent]:
            now_utc = resolve_now(now)
            record = session.query(models.ConfirmationSession).filter(
                models.ConfirmationSession.token == token
            ).first()
            if not record:
                raise SessionNotFoundError("Session not found")
            self._raise_for_terminal_state(record, now_utc)

            won = session.query(models.ConfirmationSession).filter(
                models.ConfirmationSession.id == record.id,
                models.ConfirmationSession.state == SessionState.PENDING
            ).update(
                {
                    models.ConfirmationSession.state: SessionState.COMPLETED,
                    models.ConfirmationSession.completed_at: now_utc,
                },
                synchronize_session=False
            )
            if won != 1:
                # Lost the race to another confirmation or to the sweep
                session.rollback()
                session.refresh(record)
                self._raise_for_terminal_state(record, now_utc)
                raise SessionExpiredError("Session is no longer pending")

            source = evidence.pop("source", None) or engine_config.SOURCE_SCAN
            events = []
            for medication_id in record.medication_ids:
                events.append(event_log_service.record_event(
                    session,
                    patient_id=record.patient_id,
                    medication_id=medication_id,
                    schedule_id=record.schedule_id,
                    session_id=record.id,
                    event_time=record.scheduled_time,
                    status=LogStatus.TAKEN,
                    source=source,
                    raw_evidence={
                        **evidence,
                        "session_id": record.id,
                        "confirmed_at": now_utc.isoformat(),
                    },
                    recorded_at=now_utc
                ))
            session.commit()
            for event in events:
                session.refresh(event)

            logger.info(
                f"Session {record.id} completed for patient {record.patient_id}: "
                f"{len(events)} TAKEN events"
            )
            return events

        if db:
            events = _complete(db)
            if events:
                await self._after_write(db, {events[0].patient_id}, now)
            return events

        with get_db_context() as session:
            events = _complete(session)
            if events:
                await self._after_write(session, {events[0].patient_id}, now)
            return events

    def is_expired(self, record: models.ConfirmationSession, now: Optional[datetime] = None) -> bool:
        """Already swept, or past expires_at at the given time"""
        return record.state == SessionState.EXPIRED_PROCESSED or resolve_now(now) > record.expires_at

    def _raise_for_terminal_state(self, record: models.ConfirmationSession, now_utc: datetime) -> None:
        # Expiry wins over completion: a late re-submission is reported as expired
        if self.is_expired(record, now_utc):
            raise SessionExpiredError("Session has expired")
        if record.state == SessionState.COMPLETED:
            raise SessionAlreadyCompletedError("Session already completed")

    async def expire_sweep(
        self,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Expire every overdue PENDING session and record its MISSED events

        Each session is claimed by setting processed_for_missed in the same
        conditional UPDATE that moves it to EXPIRED_PROCESSED; only the claimer
        writes events, so overlapping or repeated sweeps never double-log.
        """
        def _sweep(session: Session) -> Dict[str, Any]:
            now_utc = resolve_now(now)
            overdue = [
                row.id for row in session.query(models.ConfirmationSession.id).filter(
                    models.ConfirmationSession.state == SessionState.PENDING,
                    models.ConfirmationSession.expires_at < now_utc
                ).order_by(models.ConfirmationSession.id).all()
            ]
            logger.info(f"Expiry sweep found {len(overdue)} overdue sessions")

            processed = 0
            missed_created = 0
            patients = set()
            errors: List[str] = []

            for session_id in overdue:
                try:
                    claimed = session.query(models.ConfirmationSession).filter(
                        models.ConfirmationSession.id == session_id,
                        models.ConfirmationSession.state == SessionState.PENDING,
                        models.ConfirmationSession.processed_for_missed.is_(None)
                    ).update(
                        {
                            models.ConfirmationSession.state: SessionState.EXPIRED_PROCESSED,
                            models.ConfirmationSession.processed_for_missed: now_utc,
                        },
                        synchronize_session=False
                    )
                    if claimed != 1:
                        session.rollback()
                        continue

                    record = session.get(models.ConfirmationSession, session_id)
                    created = self._record_missed(session, record, now_utc)
                    session.commit()

                    processed += 1
                    missed_created += created
                    patients.add(record.patient_id)
                    logger.info(
                        f"Expired session {session_id} for patient {record.patient_id}: "
                        f"{created} MISSED events"
                    )
                except Exception as e:
                    session.rollback()
                    logger.exception(f"Error expiring session {session_id}")
                    errors.append(f"Session {session_id}: {e}")

            return {
                "success": True,
                "processedCount": processed,
                "missedLogsCreated": missed_created,
                "errors": errors,
                "_patients": patients,
            }

        if db:
            result = _sweep(db)
            await self._after_write(db, result.pop("_patients"), now)
            return result

        with get_db_context() as session:
            result = _sweep(session)
            await self._after_write(session, result.pop("_patients"), now)
            return result

    def _record_missed(
        self,
        session: Session,
        record: models.ConfirmationSession,
        now_utc: datetime
    ) -> int:
        created = 0
        for medication_id in record.medication_ids:
            if session.get(models.Medication, medication_id) is None:
                logger.warning(
                    f"Medication {medication_id} of session {record.id} no longer exists, "
                    f"no MISSED event written"
                )
                continue
            event_log_service.record_event(
                session,
                patient_id=record.patient_id,
                medication_id=medication_id,
                schedule_id=record.schedule_id,
                session_id=record.id,
                event_time=record.scheduled_time,
                status=LogStatus.MISSED,
                source=engine_config.SOURCE_EXPIRED_SESSION,
                raw_evidence={
                    "reason": "session_expired",
                    "session_id": record.id,
                    "scheduled_time": record.scheduled_time.isoformat(),
                    "expired_at": record.expires_at.isoformat(),
                },
                recorded_at=now_utc
            )
            created += 1
        return created

    async def _after_write(
        self,
        session: Session,
        patient_ids: Iterable[int],
        now: Optional[datetime]
    ) -> None:
        """Incremental reconciliation and score refresh; the write itself already succeeded"""
        for patient_id in sorted(patient_ids):
            try:
                if settings.RECONCILE_ON_WRITE:
                    await event_log_service.reconcile(patient_id=patient_id, now=now, db=session)
                await adherence_service.refresh_compliance_score(patient_id, now=now, db=session)
            except Exception:
                session.rollback()
                logger.exception(f"Post-write processing failed for patient {patient_id}")


# Singleton instance
session_service = ConfirmationSessionService()
