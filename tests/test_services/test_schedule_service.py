"""
Tests for Schedule Service
Tests medication expansion into schedules (full replace)
"""

import pytest
from sqlalchemy.orm import Session

from services.schedule_service import ScheduleService
from models import Medication, Patient, Schedule
from tools.time_slots import ScheduleValidationError


@pytest.fixture
def schedule_service():
    """Create schedule service instance"""
    return ScheduleService()


class TestExpandMedication:
    """Tests for single-medication expansion"""

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_expand_uses_patient_preference(self, schedule_service, db_session: Session, test_medication: Medication):
        """Test a morning medication lands on the patient's morning time"""
        result = await schedule_service.expand_medication(test_medication.id, db=db_session)

        schedules = result["schedules"]
        assert len(schedules) == 1
        assert schedules[0].time_of_day == "08:00:00"
        assert schedules[0].days_of_week_mask == 127
        assert schedules[0].advance_window_minutes == 15
        assert schedules[0].notify_enabled is True
        assert result["skipped"] == []

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_reexpansion_replaces_schedules(self, schedule_service, db_session: Session, test_medication: Medication):
        """Test re-expansion deletes the old rows and inserts the new set"""
        await schedule_service.expand_medication(test_medication.id, db=db_session)

        test_medication.time_of_day = "morning, evening, bedtime"
        db_session.commit()
        await schedule_service.expand_medication(test_medication.id, db=db_session)

        rows = db_session.query(Schedule).filter(Schedule.medication_id == test_medication.id).all()
        assert sorted(s.time_of_day for s in rows) == ["08:00:00", "20:00:00", "22:00:00"]

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_expansion_is_idempotent(self, schedule_service, db_session: Session, test_medication: Medication):
        """Test expanding twice leaves one set of schedules"""
        await schedule_service.expand_medication(test_medication.id, db=db_session)
        await schedule_service.expand_medication(test_medication.id, db=db_session)

        count = db_session.query(Schedule).filter(Schedule.medication_id == test_medication.id).count()
        assert count == 1

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_inactive_medication_has_no_schedules(self, schedule_service, db_session: Session, test_medication: Medication):
        """Test an inactive medication expands to nothing"""
        await schedule_service.expand_medication(test_medication.id, db=db_session)
        test_medication.active = False
        db_session.commit()

        result = await schedule_service.expand_medication(test_medication.id, db=db_session)

        assert result["schedules"] == []
        assert db_session.query(Schedule).count() == 0

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_weekday_mask_carried(self, schedule_service, db_session: Session, test_medication: Medication):
        """Test the medication's weekday mask is copied to every schedule"""
        test_medication.time_of_day = "morning, evening"
        test_medication.days_of_week_mask = 0b0101010
        db_session.commit()

        result = await schedule_service.expand_medication(test_medication.id, db=db_session)

        assert {s.days_of_week_mask for s in result["schedules"]} == {0b0101010}

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_invalid_mask_rejected(self, schedule_service, db_session: Session, test_medication: Medication):
        """Test an out-of-range weekday mask fails validation"""
        test_medication.days_of_week_mask = 200
        db_session.commit()

        with pytest.raises(ScheduleValidationError):
            await schedule_service.expand_medication(test_medication.id, db=db_session)

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_unknown_slot_reported(self, schedule_service, db_session: Session, test_medication: Medication):
        """Test unknown slots are skipped and reported"""
        test_medication.time_of_day = "morning, brunch"
        db_session.commit()

        result = await schedule_service.expand_medication(test_medication.id, db=db_session)

        assert len(result["schedules"]) == 1
        assert result["skipped"] == ["brunch"]

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_advance_falls_back_to_default(self, schedule_service, db_session: Session, test_patient: Patient, test_medication: Medication):
        """Test a patient without a reminder preference gets the default window"""
        test_patient.preferred_reminder_minutes = None
        db_session.commit()

        result = await schedule_service.expand_medication(test_medication.id, db=db_session)

        assert result["schedules"][0].advance_window_minutes == 15

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_unknown_medication(self, schedule_service, db_session: Session):
        """Test expanding a missing medication raises ValueError"""
        with pytest.raises(ValueError):
            await schedule_service.expand_medication(999, db=db_session)


class TestBulkExpansion:
    """Tests for patient-wide and full repopulation"""

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_expand_patient_after_preference_change(
        self, schedule_service, db_session: Session, test_patient: Patient,
        test_medication: Medication, second_medication: Medication
    ):
        """Test changing the morning preference moves every morning schedule"""
        await schedule_service.expand_patient(test_patient.id, db=db_session)
        test_patient.morning_time = "07:30"
        db_session.commit()

        result = await schedule_service.expand_patient(test_patient.id, db=db_session)

        assert result["schedulesCreated"] == 2
        times = {s.time_of_day for s in db_session.query(Schedule).all()}
        assert times == {"07:30:00"}

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_populate_all_collects_errors(
        self, schedule_service, db_session: Session,
        test_medication: Medication, second_medication: Medication
    ):
        """Test one bad medication does not stop the batch"""
        second_medication.days_of_week_mask = -3
        db_session.commit()

        result = await schedule_service.populate_all(db=db_session)

        assert result["success"] is True
        assert result["schedulesCreated"] == 1
        assert len(result["errors"]) == 1
        assert f"Medication {second_medication.id}" in result["errors"][0]

    @pytest.mark.asyncio
    @pytest.mark.database
    async def test_get_medication_schedules(self, schedule_service, db_session: Session, test_medication: Medication):
        """Test active schedules are listed in time order"""
        test_medication.time_of_day = "evening, morning"
        db_session.commit()
        await schedule_service.expand_medication(test_medication.id, db=db_session)

        schedules = await schedule_service.get_medication_schedules(test_medication.id, db=db_session)

        assert [s.time_of_day for s in schedules] == ["08:00:00", "20:00:00"]
