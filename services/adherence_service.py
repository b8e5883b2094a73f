"""
Adherence Service
Expected-vs-taken dose ratio over a rolling period of local calendar days
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, Optional, Any
from datetime import datetime, date, timedelta
from sqlalchemy import func
from sqlalchemy.orm import Session

from config import settings
from database import get_db_context
import models
from models import LogStatus
from tools.clock import resolve_now, get_zone, to_local, local_day_bounds
from tools.time_slots import mask_includes


logger = logging.getLogger(__name__)


@dataclass
class AdherenceScore:
    """Derived score; recomputed from the event log, never stored as truth"""
    patient_id: int
    period_start: date
    period_end: date
    expected_doses: int
    taken_doses: int
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def count_expected_doses(days_of_week_mask: int, start: date, end: date) -> int:
    """Days in [start, end] (inclusive) whose weekday bit is set"""
    count = 0
    day = start
    while day <= end:
        if mask_includes(days_of_week_mask, day):
            count += 1
        day += timedelta(days=1)
    return count


def score_ratio(taken: int, expected: int) -> float:
    """Percentage capped at 100; no expected doses counts as a perfect score"""
    if expected <= 0:
        return 100.0
    return round(min(100.0, taken / expected * 100), 2)


class AdherenceService:
    """
    Service for adherence calculation
    """

    async def calculate(
        self,
        patient_id: int,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> AdherenceScore:
        """
        Calculate the adherence score of a patient

        Args:
            patient_id: Patient ID
            days: Period length in local calendar days ending today (default 30)
            now: Injected clock

        Returns:
            AdherenceScore

        Raises:
            ValueError: unknown patient or non-positive period
        """
        period_days = days or settings.ADHERENCE_WINDOW_DAYS
        if period_days < 1:
            raise ValueError("Adherence period must be at least one day")

        def _calculate(session: Session) -> AdherenceScore:
            patient = session.get(models.Patient, patient_id)
            if not patient:
                raise ValueError(f"Patient {patient_id} not found")

            zone = get_zone(patient.timezone, settings.DEFAULT_TIMEZONE)
            period_end = to_local(resolve_now(now), zone).date()
            period_start = period_end - timedelta(days=period_days - 1)

            schedules = session.query(models.Schedule).join(
                models.Medication, models.Schedule.medication_id == models.Medication.id
            ).filter(
                models.Schedule.patient_id == patient_id,
                models.Schedule.active == True,
                models.Medication.active == True
            ).all()

            expected = sum(
                count_expected_doses(schedule.days_of_week_mask, period_start, period_end)
                for schedule in schedules
            )

            start_utc, _ = local_day_bounds(period_start, zone)
            _, end_utc = local_day_bounds(period_end, zone)
            taken = session.query(func.count(models.MedicationLogEvent.id)).filter(
                models.MedicationLogEvent.patient_id == patient_id,
                models.MedicationLogEvent.status == LogStatus.TAKEN,
                models.MedicationLogEvent.event_time >= start_utc,
                models.MedicationLogEvent.event_time < end_utc
            ).scalar() or 0

            return AdherenceScore(
                patient_id=patient_id,
                period_start=period_start,
                period_end=period_end,
                expected_doses=expected,
                taken_doses=taken,
                score=score_ratio(taken, expected)
            )

        if db:
            return _calculate(db)

        with get_db_context() as session:
            return _calculate(session)

    async def refresh_compliance_score(
        self,
        patient_id: int,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> AdherenceScore:
        """Recalculate and cache the score on the patient row"""
        def _refresh(session: Session, result: AdherenceScore) -> AdherenceScore:
            patient = session.get(models.Patient, patient_id)
            if not patient:
                raise ValueError(f"Patient {patient_id} not found")
            patient.compliance_score = result.score
            session.commit()
            logger.info(
                f"Patient {patient_id} adherence {result.score}% "
                f"({result.taken_doses}/{result.expected_doses})"
            )
            return result

        if db:
            result = await self.calculate(patient_id, now=now, db=db)
            return _refresh(db, result)

        with get_db_context() as session:
            result = await self.calculate(patient_id, now=now, db=session)
            return _refresh(session, result)


# Singleton instance
adherence_service = AdherenceService()
