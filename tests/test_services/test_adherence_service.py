"""
Tests for Adherence Service
Tests expected-vs-taken scoring over rolling local-day periods
"""

import pytest
from datetime import datetime, date, timedelta
from sqlalchemy.orm import Session

from services.adherence_service import AdherenceService, count_expected_doses, score_ratio
from models import Patient, Medication, Schedule, LogStatus


NOW = datetime(2024, 3, 6, 12, 0, 0)


@pytest.fixture
def adherence_service():
    """Create adherence service instance"""
    return AdherenceService()


def daily_events(make_event, patient, medication, days, status=LogStatus.TAKEN):
    """One event at 08:00 UTC on each of the last `days` days, today included"""
    for offset in range(days):
        make_event(patient, medication, NOW.replace(hour=8) - timedelta(days=offset), status)


# =============================================================================
# Pure Calculation Tests
# =============================================================================

class TestScoreHelpers:
    """Tests for dose counting and the ratio"""

    @pytest.mark.unit
    def test_count_expected_every_day(self):
        """Test an everyday mask counts every day, both ends inclusive"""
        assert count_expected_doses(127, date(2024, 2, 6), date(2024, 3, 6)) == 30

    @pytest.mark.unit
    def test_count_expected_weekday_mask(self):
        """Test Monday/Wednesday/Friday over one Sunday-to-Saturday week"""
        mask = 0b0101010
        assert count_expected_doses(mask, date(2024, 3, 3), date(2024, 3, 9)) == 3

    @pytest.mark.unit
    def test_count_expected_sunday_bit(self):
        """Test bit 0 is Sunday"""
        assert count_expected_doses(1, date(2024, 3, 3), date(2024, 3, 9)) == 1
        assert count_expected_doses(1, date(2024, 3, 4), date(2024, 3, 9)) == 0

    @pytest.mark.unit
    def test_score_ratio(self):
        """Test rounding, the cap and the empty period"""
        assert score_ratio(15, 30) == 50.0
        assert score_ratio(1, 3) == 33.33
        assert score_ratio(40, 30) == 100.0
        assert score_ratio(0, 0) == 100.0


# =============================================================================
# Service Tests
# =============================================================================

class TestCalculate:
    """Tests for calculate against the database"""

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_perfect_adherence(
        self, adherence_service, db_session: Session, test_patient: Patient,
        test_medication: Medication, test_schedule: Schedule, make_event
    ):
        """Test one TAKEN event per scheduled day scores 100"""
        daily_events(make_event, test_patient, test_medication, 30)

        result = await adherence_service.calculate(test_patient.id, now=NOW, db=db_session)

        assert result.expected_doses == 30
        assert result.taken_doses == 30
        assert result.score == 100.0
        assert result.period_start == date(2024, 2, 6)
        assert result.period_end == date(2024, 3, 6)

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_half_adherence(
        self, adherence_service, db_session: Session, test_patient: Patient,
        test_medication: Medication, test_schedule: Schedule, make_event
    ):
        """Test 15 of 30 doses scores 50"""
        daily_events(make_event, test_patient, test_medication, 15)

        result = await adherence_service.calculate(test_patient.id, now=NOW, db=db_session)

        assert result.score == 50.0

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_no_schedules_is_perfect(
        self, adherence_service, db_session: Session, test_patient: Patient
    ):
        """Test nothing expected scores 100"""
        result = await adherence_service.calculate(test_patient.id, now=NOW, db=db_session)

        assert result.expected_doses == 0
        assert result.score == 100.0

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_missed_and_old_events_not_counted(
        self, adherence_service, db_session: Session, test_patient: Patient,
        test_medication: Medication, test_schedule: Schedule, make_event
    ):
        """Test MISSED events and events before the period are ignored"""
        make_event(test_patient, test_medication, NOW - timedelta(hours=4), LogStatus.TAKEN)
        make_event(test_patient, test_medication, NOW - timedelta(days=1), LogStatus.MISSED)
        make_event(test_patient, test_medication, NOW - timedelta(days=40), LogStatus.TAKEN)

        result = await adherence_service.calculate(test_patient.id, days=7, now=NOW, db=db_session)

        assert result.expected_doses == 7
        assert result.taken_doses == 1

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_score_capped(
        self, adherence_service, db_session: Session, test_patient: Patient,
        test_medication: Medication, test_schedule: Schedule, make_event
    ):
        """Test extra TAKEN events never push the score above 100"""
        make_event(test_patient, test_medication, NOW.replace(hour=8), LogStatus.TAKEN)
        make_event(test_patient, test_medication, NOW.replace(hour=9), LogStatus.TAKEN)

        result = await adherence_service.calculate(test_patient.id, days=1, now=NOW, db=db_session)

        assert result.taken_doses == 2
        assert result.score == 100.0

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_inactive_medication_excluded(
        self, adherence_service, db_session: Session, test_patient: Patient,
        test_medication: Medication, test_schedule: Schedule
    ):
        """Test schedules of an inactive medication expect nothing"""
        test_medication.active = False
        db_session.commit()

        result = await adherence_service.calculate(test_patient.id, now=NOW, db=db_session)

        assert result.expected_doses == 0

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_mask_limits_expected(
        self, adherence_service, db_session: Session, test_patient: Patient,
        test_schedule: Schedule
    ):
        """Test a weekday mask only expects doses on its days"""
        test_schedule.days_of_week_mask = 0b0101010
        db_session.commit()

        # Sunday 2024-03-03 .. Saturday 2024-03-09
        result = await adherence_service.calculate(
            test_patient.id, days=7, now=datetime(2024, 3, 9, 12, 0), db=db_session
        )

        assert result.expected_doses == 3

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_patient_local_day(
        self, adherence_service, db_session: Session, test_patient: Patient,
        test_medication: Medication, test_schedule: Schedule, make_event
    ):
        """Test day boundaries follow the patient's timezone"""
        test_patient.timezone = "America/New_York"
        db_session.commit()
        # 21:00 on 2024-03-05 in New York
        make_event(test_patient, test_medication, datetime(2024, 3, 6, 2, 0), LogStatus.TAKEN)
        # 23:00 on 2024-03-04 in New York
        make_event(test_patient, test_medication, datetime(2024, 3, 5, 4, 0), LogStatus.TAKEN)

        result = await adherence_service.calculate(
            test_patient.id, days=1, now=datetime(2024, 3, 6, 3, 0), db=db_session
        )

        assert result.period_end == date(2024, 3, 5)
        assert result.taken_doses == 1
        assert result.score == 100.0

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_invalid_arguments(self, adherence_service, db_session: Session, test_patient: Patient):
        """Test unknown patients and non-positive periods are rejected"""
        with pytest.raises(ValueError):
            await adherence_service.calculate(999, now=NOW, db=db_session)
        with pytest.raises(ValueError):
            await adherence_service.calculate(test_patient.id, days=-1, now=NOW, db=db_session)

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_refresh_caches_score(
        self, adherence_service, db_session: Session, test_patient: Patient,
        test_medication: Medication, test_schedule: Schedule, make_event
    ):
        """Test refresh stores the score on the patient row"""
        daily_events(make_event, test_patient, test_medication, 15)

        result = await adherence_service.refresh_compliance_score(test_patient.id, now=NOW, db=db_session)

        db_session.refresh(test_patient)
        assert test_patient.compliance_score == result.score == 50.0
        assert result.to_dict()["expected_doses"] == 30
