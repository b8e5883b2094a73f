"""
Event Log Service
Append path for dose outcomes, plus reconciliation and backfill jobs
"""

import logging
from typing import Dict, List, Optional, Any
from datetime import datetime
from sqlalchemy.orm import Session

from config import settings, engine_config
from database import get_db_context
import models
from models import LogStatus, SessionState
from tools.clock import resolve_now, to_naive_utc
from tools.event_buckets import group_by_bucket, group_key_label, hour_event_key


logger = logging.getLogger(__name__)


class EventLogService:
    """
    Service for the medication event log

    Events are append-only. The reconciliation pass is the one sanctioned
    mutation: it rewrites MISSED to TAKEN inside a mixed 15-minute bucket and
    keeps the original status on the row and in a LogCorrection record.
    """

    def record_event(
        self,
        session: Session,
        patient_id: int,
        medication_id: int,
        event_time: datetime,
        status: LogStatus,
        source: str,
        schedule_id: Optional[int] = None,
        session_id: Optional[int] = None,
        raw_evidence: Optional[Dict[str, Any]] = None,
        recorded_at: Optional[datetime] = None
    ) -> models.MedicationLogEvent:
        """Add a new event to the session; the caller owns the transaction"""
        event_time = to_naive_utc(event_time)
        event = models.MedicationLogEvent(
            patient_id=patient_id,
            medication_id=medication_id,
            schedule_id=schedule_id,
            session_id=session_id,
            event_time=event_time,
            event_key=hour_event_key(event_time),
            status=status,
            source=source,
            raw_evidence=raw_evidence or {},
            recorded_at=resolve_now(recorded_at)
        )
        session.add(event)
        return event

    async def list_events(
        self,
        patient_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[LogStatus] = None,
        db: Optional[Session] = None
    ) -> List[models.MedicationLogEvent]:
        """Events of a patient in [start, end), oldest first"""
        def _list(session: Session) -> List[models.MedicationLogEvent]:
            query = session.query(models.MedicationLogEvent).filter(
                models.MedicationLogEvent.patient_id == patient_id
            )
            if start is not None:
                query = query.filter(models.MedicationLogEvent.event_time >= to_naive_utc(start))
            if end is not None:
                query = query.filter(models.MedicationLogEvent.event_time < to_naive_utc(end))
            if status is not None:
                query = query.filter(models.MedicationLogEvent.status == status)
            return query.order_by(
                models.MedicationLogEvent.event_time,
                models.MedicationLogEvent.id
            ).all()

        if db:
            return _list(db)

        with get_db_context() as session:
            return _list(session)

    def _load_groups(self, session: Session, patient_id: Optional[int]) -> Dict:
        query = session.query(
            models.MedicationLogEvent.id,
            models.MedicationLogEvent.patient_id,
            models.MedicationLogEvent.event_time,
            models.MedicationLogEvent.status,
            models.MedicationLogEvent.raw_evidence,
        )
        if patient_id is not None:
            query = query.filter(models.MedicationLogEvent.patient_id == patient_id)
        rows = query.order_by(
            models.MedicationLogEvent.patient_id,
            models.MedicationLogEvent.event_time,
            models.MedicationLogEvent.id
        ).all()

        return group_by_bucket(
            rows,
            patient_of=lambda row: row.patient_id,
            time_of=lambda row: row.event_time,
            bucket_minutes=settings.RECONCILE_BUCKET_MINUTES
        )

    async def find_mixed_groups(
        self,
        patient_id: Optional[int] = None,
        db: Optional[Session] = None
    ) -> List[Dict[str, Any]]:
        """Dry run: buckets that hold both TAKEN and MISSED events"""
        def _find(session: Session) -> List[Dict[str, Any]]:
            mixed = []
            for key, rows in self._load_groups(session, patient_id).items():
                taken = [row.id for row in rows if row.status == LogStatus.TAKEN]
                missed = [row.id for row in rows if row.status == LogStatus.MISSED]
                if taken and missed:
                    mixed.append({
                        "group_key": group_key_label(key),
                        "patient_id": key[0],
                        "bucket_start": key[1],
                        "taken_event_ids": taken,
                        "missed_event_ids": missed,
                    })
            return mixed

        if db:
            return _find(db)

        with get_db_context() as session:
            return _find(session)

    async def reconcile(
        self,
        patient_id: Optional[int] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Rewrite MISSED to TAKEN in every bucket that also holds a TAKEN event

        Args:
            patient_id: limit to one patient (incremental mode); None scans the full log
            now: clock value stamped as fixed_at

        Returns:
            {"success", "processedGroups", "logsUpdated", "errors"}
        """
        def _reconcile(session: Session) -> Dict[str, Any]:
            now_utc = resolve_now(now)
            reason = engine_config.PACK_SCAN_REASON
            groups = self._load_groups(session, patient_id)

            processed_groups = 0
            logs_updated = 0
            errors: List[str] = []

            for key, rows in groups.items():
                label = group_key_label(key)
                try:
                    has_taken = any(row.status == LogStatus.TAKEN for row in rows)
                    missed = [row for row in rows if row.status == LogStatus.MISSED]

                    if has_taken and missed:
                        logger.info(
                            f"Mixed group {label}: rewriting {len(missed)} MISSED events to TAKEN"
                        )
                        for row in missed:
                            provenance = {
                                **(row.raw_evidence or {}),
                                "packScanFix": True,
                                "originalStatus": LogStatus.MISSED.value,
                                "fixedAt": now_utc.isoformat(),
                                "reason": reason,
                                "groupKey": label,
                            }
                            updated = session.query(models.MedicationLogEvent).filter(
                                models.MedicationLogEvent.id == row.id,
                                models.MedicationLogEvent.status == LogStatus.MISSED
                            ).update(
                                {
                                    models.MedicationLogEvent.status: LogStatus.TAKEN,
                                    models.MedicationLogEvent.original_status: LogStatus.MISSED,
                                    models.MedicationLogEvent.fixed_at: now_utc,
                                    models.MedicationLogEvent.correction_reason: reason,
                                    models.MedicationLogEvent.correction_group_key: label,
                                    models.MedicationLogEvent.raw_evidence: provenance,
                                },
                                synchronize_session=False
                            )
                            if updated:
                                session.add(models.LogCorrection(
                                    event_id=row.id,
                                    patient_id=key[0],
                                    original_status=LogStatus.MISSED,
                                    new_status=LogStatus.TAKEN,
                                    reason=reason,
                                    group_key=label,
                                    fixed_at=now_utc
                                ))
                                logs_updated += 1
                        session.commit()

                    processed_groups += 1
                except Exception as e:
                    session.rollback()
                    logger.exception(f"Error reconciling group {label}")
                    errors.append(f"Group {label}: {e}")

            # Rows rewritten through bulk UPDATEs; drop any stale copies held by the session
            session.expire_all()

            if logs_updated:
                logger.info(
                    f"Reconciliation processed {processed_groups} groups, "
                    f"updated {logs_updated} events, {len(errors)} errors"
                )
            return {
                "success": True,
                "processedGroups": processed_groups,
                "logsUpdated": logs_updated,
                "errors": errors,
            }

        if db:
            return _reconcile(db)

        with get_db_context() as session:
            return _reconcile(session)

    async def backfill_missed(
        self,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Write MISSED events for expired sessions that have none

        Covers sessions expired before events were recorded for them (e.g.
        imported history or a crash between claim and write). A medication
        that already has an event linked to the session is left alone, so
        reruns create nothing.
        """
        def _backfill(session: Session) -> Dict[str, Any]:
            now_utc = resolve_now(now)
            session_ids = [
                row.id for row in session.query(models.ConfirmationSession.id).filter(
                    models.ConfirmationSession.state == SessionState.EXPIRED_PROCESSED
                ).order_by(models.ConfirmationSession.id).all()
            ]

            processed = 0
            missed_created = 0
            errors: List[str] = []

            for session_id in session_ids:
                try:
                    record = session.get(models.ConfirmationSession, session_id)
                    logged = {
                        row.medication_id for row in session.query(
                            models.MedicationLogEvent.medication_id
                        ).filter(models.MedicationLogEvent.session_id == session_id).all()
                    }
                    missing = [m for m in record.medication_ids if m not in logged]
                    if not missing:
                        continue

                    created = 0
                    for medication_id in missing:
                        if session.get(models.Medication, medication_id) is None:
                            logger.warning(
                                f"Medication {medication_id} not found for session {session_id}"
                            )
                            continue
                        self.record_event(
                            session,
                            patient_id=record.patient_id,
                            medication_id=medication_id,
                            schedule_id=record.schedule_id,
                            session_id=record.id,
                            event_time=record.scheduled_time,
                            status=LogStatus.MISSED,
                            source=engine_config.SOURCE_BACKFILL,
                            raw_evidence={
                                "reason": engine_config.SOURCE_BACKFILL,
                                "session_id": record.id,
                                "scheduled_time": record.scheduled_time.isoformat(),
                                "backfilled_at": now_utc.isoformat(),
                            },
                            recorded_at=now_utc
                        )
                        created += 1
                    session.commit()

                    processed += 1
                    missed_created += created
                    logger.info(f"Backfilled {created} MISSED events for session {session_id}")
                except Exception as e:
                    session.rollback()
                    logger.exception(f"Error backfilling session {session_id}")
                    errors.append(f"Session {session_id}: {e}")

            return {
                "success": True,
                "processedCount": processed,
                "missedLogsCreated": missed_created,
                "errors": errors,
            }

        if db:
            return _backfill(db)

        with get_db_context() as session:
            return _backfill(session)


# Singleton instance
event_log_service = EventLogService()
