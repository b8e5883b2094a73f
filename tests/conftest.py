"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all DoseCheck tests.
Fixtures include database sessions, test clients, sample data, and a fake SMS transport.
"""

import os
import sys
from datetime import datetime, timedelta
from typing import Generator, Dict, Any, List

# Test configuration must be in place before config.settings is first built
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CRON_SECRET_TOKEN", "test-cron-secret")
os.environ.setdefault("SMS_TEST_MODE", "true")
os.environ.setdefault("APP_BASE_URL", "https://dosecheck.test")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session

# Project root holds the flat top-level modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import settings
from database import build_engine, init_db, drop_db
from api.deps import get_db
from models import (
    Patient, Medication, Schedule, ConfirmationSession, MedicationLogEvent,
    SessionState, LogStatus
)
from services.reminder_service import ReminderDispatcher
from tools.sms_transport import SmsTransport, TransportReceipt
from app import app


# Wednesday; naive values are UTC and the sample patient lives in UTC
BASE_TIME = datetime(2024, 3, 6, 8, 0, 0)


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine():
    """Fresh in-memory SQLite engine with every DoseCheck table"""
    engine = build_engine("sqlite:///:memory:")
    init_db(bind=engine)

    yield engine

    drop_db(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """Session bound to the per-test engine; rolled back on teardown"""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine
    )

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """TestClient whose routes share the test session"""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def cron_headers() -> Dict[str, str]:
    """Bearer header accepted by cron and admin triggers"""
    return {"Authorization": f"Bearer {settings.CRON_SECRET_TOKEN}"}


# ==================== TRANSPORT FIXTURES ====================

class FakeTransport(SmsTransport):
    """In-memory transport; accepts everything unless told otherwise"""

    def __init__(self, accept: bool = True, error: str = "carrier rejected"):
        self.accept = accept
        self.error = error
        self.sent: List[Dict[str, Any]] = []

    def send(self, to: str, body: str) -> TransportReceipt:
        if not self.accept:
            return TransportReceipt(accepted=False, error=self.error)
        message_id = f"SM{len(self.sent) + 1:032d}"
        self.sent.append({"to": to, "body": body, "message_id": message_id})
        return TransportReceipt(accepted=True, message_id=message_id)


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def dispatcher(fake_transport: FakeTransport) -> ReminderDispatcher:
    """Reminder dispatcher wired to the fake transport"""
    return ReminderDispatcher(transport=fake_transport)


# ==================== SAMPLE DATA FIXTURES ====================

@pytest.fixture
def sample_patient_data() -> Dict[str, Any]:
    """Patient fields for a UTC patient with an 08:00 morning"""
    return {
        "first_name": "Jane",
        "last_name": "Doe",
        "phone": "(555) 123-4567",
        "phone_verified": True,
        "timezone": "UTC",
        "morning_time": "08:00:00",
        "evening_time": "20:00:00",
        "preferred_reminder_minutes": 15,
        "is_active": True
    }


@pytest.fixture
def sample_medication_data() -> Dict[str, Any]:
    """Daily morning medication"""
    return {
        "name": "Metformin",
        "dosage": "500mg",
        "time_of_day": "morning",
        "days_of_week_mask": 127,
        "active": True
    }


@pytest.fixture
def test_patient(db_session: Session, sample_patient_data: Dict) -> Patient:
    """Jane Doe, committed"""
    patient = Patient(**sample_patient_data)
    db_session.add(patient)
    db_session.commit()
    db_session.refresh(patient)
    return patient


@pytest.fixture
def other_patient(db_session: Session) -> Patient:
    """A second patient with the same clock-time routine"""
    patient = Patient(
        first_name="Bob",
        last_name="Johnson",
        phone="+15559876543",
        timezone="UTC",
        morning_time="08:00:00",
        is_active=True
    )
    db_session.add(patient)
    db_session.commit()
    db_session.refresh(patient)
    return patient


@pytest.fixture
def test_medication(db_session: Session, test_patient: Patient, sample_medication_data: Dict) -> Medication:
    """Metformin for the test patient"""
    medication = Medication(
        patient_id=test_patient.id,
        **sample_medication_data
    )
    db_session.add(medication)
    db_session.commit()
    db_session.refresh(medication)
    return medication


@pytest.fixture
def second_medication(db_session: Session, test_patient: Patient) -> Medication:
    """Another morning medication of the test patient"""
    medication = Medication(
        patient_id=test_patient.id,
        name="Lisinopril",
        dosage="10mg",
        time_of_day="morning",
        active=True
    )
    db_session.add(medication)
    db_session.commit()
    db_session.refresh(medication)
    return medication


@pytest.fixture
def test_schedule(db_session: Session, test_patient: Patient, test_medication: Medication) -> Schedule:
    """08:00 every day, 15 minute advance window"""
    schedule = Schedule(
        patient_id=test_patient.id,
        medication_id=test_medication.id,
        time_of_day="08:00:00",
        days_of_week_mask=127,
        active=True,
        advance_window_minutes=15,
        notify_enabled=True
    )
    db_session.add(schedule)
    db_session.commit()
    db_session.refresh(schedule)
    return schedule


@pytest.fixture
def make_session(db_session: Session):
    """Factory inserting a confirmation session directly"""
    counter = {"n": 0}

    def _make(
        patient: Patient,
        medication_ids: List[int],
        scheduled_time: datetime = BASE_TIME,
        state: SessionState = SessionState.PENDING,
        schedule_id: int = None,
        ttl_minutes: int = 120,
        notified_at: datetime = None
    ) -> ConfirmationSession:
        counter["n"] += 1
        record = ConfirmationSession(
            token=f"token-{counter['n']}",
            patient_id=patient.id,
            schedule_id=schedule_id,
            medication_ids=list(medication_ids),
            idempotency_key=f"{patient.id}:test-{counter['n']}:{scheduled_time.date().isoformat()}",
            scheduled_time=scheduled_time,
            expires_at=scheduled_time + timedelta(minutes=ttl_minutes),
            state=state,
            created_at=scheduled_time,
            notified_at=notified_at
        )
        db_session.add(record)
        db_session.commit()
        db_session.refresh(record)
        return record

    return _make


@pytest.fixture
def make_event(db_session: Session):
    """Factory inserting a log event directly"""

    def _make(
        patient: Patient,
        medication: Medication,
        event_time: datetime,
        status: LogStatus,
        source: str = "test"
    ) -> MedicationLogEvent:
        log_event = MedicationLogEvent(
            patient_id=patient.id,
            medication_id=medication.id,
            event_time=event_time,
            event_key=event_time.strftime("%Y-%m-%dT%H"),
            status=status,
            source=source,
            raw_evidence={"fixture": True},
            recorded_at=event_time
        )
        db_session.add(log_event)
        db_session.commit()
        db_session.refresh(log_event)
        return log_event

    return _make


# ==================== MARKERS ====================

def pytest_configure(config):
    for marker in (
        "unit: pure helper or single-service test",
        "database: needs the in-memory database",
        "api: goes through the FastAPI app",
        "slow: waits on a real timeout",
    ):
        config.addinivalue_line("markers", marker)
