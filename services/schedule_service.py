"""
Schedule Service
Expands medications into recurring Schedule rows (full replace on every change)
"""

import logging
from typing import Dict, List, Optional, Any
from sqlalchemy.orm import Session

from config import settings
from database import get_db_context
import models
from tools.time_slots import expand_label, validate_mask, ScheduleValidationError


logger = logging.getLogger(__name__)


class ScheduleService:
    """
    Service for schedule expansion
    """

    def _replace_schedules(
        self,
        session: Session,
        medication: models.Medication
    ) -> Dict[str, Any]:
        """
        Delete every schedule of the medication and insert the freshly expanded set.
        Caller commits.
        """
        mask = validate_mask(medication.days_of_week_mask)
        patient = medication.patient

        existing = session.query(models.Schedule).filter(
            models.Schedule.medication_id == medication.id
        ).all()
        for schedule in existing:
            session.delete(schedule)
        session.flush()

        if not medication.active or not patient:
            logger.info(f"Medication {medication.id} inactive, cleared {len(existing)} schedules")
            return {"medication_id": medication.id, "schedules": [], "skipped": []}

        expansion = expand_label(
            medication.time_of_day,
            preferences=patient.slot_preferences,
            custom_time=medication.custom_time
        )
        advance = patient.preferred_reminder_minutes
        if advance is None or advance < 0:
            advance = settings.DEFAULT_ADVANCE_MINUTES

        schedules = []
        for slot_time in expansion.times:
            schedule = models.Schedule(
                medication_id=medication.id,
                patient_id=patient.id,
                time_of_day=slot_time.time_of_day,
                days_of_week_mask=mask,
                active=True,
                advance_window_minutes=advance,
                notify_enabled=True
            )
            session.add(schedule)
            schedules.append(schedule)

        session.flush()
        logger.info(
            f"Expanded medication {medication.id} ({medication.name}) into "
            f"{len(schedules)} schedules: {[s.time_of_day for s in schedules]}"
        )
        return {
            "medication_id": medication.id,
            "schedules": schedules,
            "skipped": expansion.skipped,
        }

    async def expand_medication(
        self,
        medication_id: int,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Re-expand one medication

        Returns:
            {"medication_id", "schedules": [Schedule], "skipped": [label tokens]}

        Raises:
            ValueError: medication not found
            ScheduleValidationError: weekday mask out of range
        """
        def _expand(session: Session) -> Dict[str, Any]:
            medication = session.query(models.Medication).filter(
                models.Medication.id == medication_id
            ).first()
            if not medication:
                raise ValueError(f"Medication {medication_id} not found")

            result = self._replace_schedules(session, medication)
            session.commit()
            for schedule in result["schedules"]:
                session.refresh(schedule)
            return result

        if db:
            return _expand(db)

        with get_db_context() as session:
            return _expand(session)

    async def expand_patient(
        self,
        patient_id: int,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """Re-expand every medication of a patient after their time preferences change"""
        def _expand(session: Session) -> Dict[str, Any]:
            patient = session.query(models.Patient).filter(
                models.Patient.id == patient_id
            ).first()
            if not patient:
                raise ValueError(f"Patient {patient_id} not found")

            created = 0
            errors: List[str] = []
            for medication in list(patient.medications):
                try:
                    result = self._replace_schedules(session, medication)
                    session.commit()
                    created += len(result["schedules"])
                except ScheduleValidationError as e:
                    session.rollback()
                    logger.warning(f"Skipping medication {medication.id}: {e}")
                    errors.append(f"Medication {medication.id}: {e}")

            return {"patient_id": patient_id, "schedulesCreated": created, "errors": errors}

        if db:
            return _expand(db)

        with get_db_context() as session:
            return _expand(session)

    async def populate_all(
        self,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Re-expand every medication (administrative backfill)

        Per-medication failures are collected; the batch never aborts.
        """
        def _populate(session: Session) -> Dict[str, Any]:
            medication_ids = [
                row.id for row in session.query(models.Medication.id).all()
            ]
            logger.info(f"Populating schedules for {len(medication_ids)} medications")

            created = 0
            errors: List[str] = []
            for medication_id in medication_ids:
                try:
                    medication = session.get(models.Medication, medication_id)
                    result = self._replace_schedules(session, medication)
                    session.commit()
                    created += len(result["schedules"])
                except Exception as e:
                    session.rollback()
                    logger.exception(f"Error populating schedules for medication {medication_id}")
                    errors.append(f"Medication {medication_id}: {e}")

            logger.info(f"Populate summary: {created} schedules created, {len(errors)} errors")
            return {"success": True, "schedulesCreated": created, "errors": errors}

        if db:
            return _populate(db)

        with get_db_context() as session:
            return _populate(session)

    async def get_medication_schedules(
        self,
        medication_id: int,
        db: Optional[Session] = None
    ) -> List[models.Schedule]:
        """Get the active schedules of a medication"""
        def _get(session: Session) -> List[models.Schedule]:
            return session.query(models.Schedule).filter(
                models.Schedule.medication_id == medication_id,
                models.Schedule.active == True
            ).order_by(models.Schedule.time_of_day).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)


# Singleton instance
schedule_service = ScheduleService()
