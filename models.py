"""
Database Models
SQLAlchemy ORM models for DoseCheck

All DateTime columns hold naive UTC values.
"""

from sqlalchemy import Column, Integer, String, Boolean, Float, DateTime, ForeignKey, Text, Enum, Index, JSON
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum

from database import Base
from config import TableNames
from tools.clock import utcnow


# ==================== ENUMS ====================

class SessionState(str, PyEnum):
    """Lifecycle of a confirmation session"""
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED_PROCESSED = "expired_processed"


class LogStatus(str, PyEnum):
    """Outcome recorded for one dose opportunity"""
    TAKEN = "taken"
    MISSED = "missed"


class DispatchKind(str, PyEnum):
    """Outbound message flavour"""
    REMINDER = "reminder"
    FOLLOW_UP = "follow_up"


class DeliveryStatus(str, PyEnum):
    """Transport delivery status reported by the status callback"""
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    UNDELIVERED = "undelivered"


class AlertStatus(str, PyEnum):
    """Operational alert status"""
    OPEN = "open"
    RESOLVED = "resolved"


# ==================== MODELS ====================

class Patient(Base):
    """Patient row owned by the surrounding dashboard; read for time preferences and contact"""
    __tablename__ = TableNames.PATIENTS

    id = Column(Integer, primary_key=True, index=True)

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(20))
    phone_verified = Column(Boolean, default=False)

    # Lifestyle preferences (wall-clock strings in the patient's timezone)
    timezone = Column(String(50), default="America/New_York")
    morning_time = Column(String(8))
    afternoon_time = Column(String(8))
    evening_time = Column(String(8))
    bedtime = Column(String(8))
    preferred_reminder_minutes = Column(Integer)

    # Last computed adherence score (derived, recomputed on demand)
    compliance_score = Column(Float)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    medications = relationship("Medication", back_populates="patient", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def slot_preferences(self) -> dict:
        return {
            "morning": self.morning_time,
            "afternoon": self.afternoon_time,
            "evening": self.evening_time,
            "bedtime": self.bedtime,
        }


class Medication(Base):
    """Medication with its frequency label"""
    __tablename__ = TableNames.MEDICATIONS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey(f"{TableNames.PATIENTS}.id"), nullable=False)

    name = Column(String(255), nullable=False)
    dosage = Column(String(100))

    # Frequency label, e.g. "morning, evening" or "custom (14:30:00)"
    time_of_day = Column(String(255))
    custom_time = Column(String(8))
    days_of_week_mask = Column(Integer, default=127)

    active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    patient = relationship("Patient", back_populates="medications")
    schedules = relationship("Schedule", back_populates="medication", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_medications_patient_active", "patient_id", "active"),
    )


class Schedule(Base):
    """Recurring dose opportunity produced by the schedule expander"""
    __tablename__ = TableNames.SCHEDULES

    id = Column(Integer, primary_key=True, index=True)
    medication_id = Column(Integer, ForeignKey(f"{TableNames.MEDICATIONS}.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey(f"{TableNames.PATIENTS}.id"), nullable=False)

    time_of_day = Column(String(8), nullable=False)  # "HH:MM:SS"
    days_of_week_mask = Column(Integer, nullable=False, default=127)  # bit 0 = Sunday

    active = Column(Boolean, default=True)
    advance_window_minutes = Column(Integer, default=15)
    notify_enabled = Column(Boolean, default=True)

    created_at = Column(DateTime, default=utcnow)

    # Relationships
    medication = relationship("Medication", back_populates="schedules")
    patient = relationship("Patient")

    __table_args__ = (
        Index("ix_schedules_active_notify", "active", "notify_enabled"),
    )


class ConfirmationSession(Base):
    """Bounded-lifetime confirmation request for one dose opportunity"""
    __tablename__ = TableNames.CONFIRMATION_SESSIONS

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(64), unique=True, index=True, nullable=False)
    patient_id = Column(Integer, ForeignKey(f"{TableNames.PATIENTS}.id"), nullable=False)
    schedule_id = Column(Integer, ForeignKey(f"{TableNames.SCHEDULES}.id", ondelete="SET NULL"))
    medication_ids = Column(JSON, nullable=False, default=list)

    # patient + schedule (or medication set) + local calendar day; checked, not constrained
    idempotency_key = Column(String(120), index=True, nullable=False)

    scheduled_time = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    state = Column(Enum(SessionState), nullable=False, default=SessionState.PENDING)

    created_at = Column(DateTime, default=utcnow)
    notified_at = Column(DateTime)
    follow_up_sent_at = Column(DateTime)
    completed_at = Column(DateTime)
    processed_for_missed = Column(DateTime)

    # Relationships
    patient = relationship("Patient")
    dispatches = relationship("ReminderDispatch", back_populates="session")

    __table_args__ = (
        Index("ix_sessions_state_expires", "state", "expires_at"),
    )


class MedicationLogEvent(Base):
    """Append-only dose outcome; reconciliation is the only writer after insert"""
    __tablename__ = TableNames.MEDICATION_LOGS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey(f"{TableNames.PATIENTS}.id"), nullable=False)
    medication_id = Column(Integer, ForeignKey(f"{TableNames.MEDICATIONS}.id"), nullable=False)
    schedule_id = Column(Integer, ForeignKey(f"{TableNames.SCHEDULES}.id", ondelete="SET NULL"))
    session_id = Column(Integer, ForeignKey(f"{TableNames.CONFIRMATION_SESSIONS}.id"))

    event_time = Column(DateTime, nullable=False)
    event_key = Column(String(13), nullable=False)  # "YYYY-MM-DDTHH"
    status = Column(Enum(LogStatus), nullable=False)
    source = Column(String(50), nullable=False)
    raw_evidence = Column(JSON, default=dict)
    recorded_at = Column(DateTime, default=utcnow)

    # Provenance, written only by reconciliation
    original_status = Column(Enum(LogStatus))
    fixed_at = Column(DateTime)
    correction_reason = Column(String(100))
    correction_group_key = Column(String(80))

    corrections = relationship("LogCorrection", back_populates="event")

    __table_args__ = (
        Index("ix_medication_logs_patient_time", "patient_id", "event_time"),
        Index("ix_medication_logs_session", "session_id"),
    )


class LogCorrection(Base):
    """Audit record of a reconciliation rewrite"""
    __tablename__ = TableNames.LOG_CORRECTIONS

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey(f"{TableNames.MEDICATION_LOGS}.id"), nullable=False)
    patient_id = Column(Integer, nullable=False, index=True)
    original_status = Column(Enum(LogStatus), nullable=False)
    new_status = Column(Enum(LogStatus), nullable=False)
    reason = Column(String(100), nullable=False)
    group_key = Column(String(80), nullable=False)
    fixed_at = Column(DateTime, default=utcnow)

    event = relationship("MedicationLogEvent", back_populates="corrections")


class ReminderDispatch(Base):
    """One outbound message attempt for a session"""
    __tablename__ = TableNames.REMINDER_DISPATCHES

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey(f"{TableNames.CONFIRMATION_SESSIONS}.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey(f"{TableNames.PATIENTS}.id"), nullable=False)
    kind = Column(Enum(DispatchKind), nullable=False, default=DispatchKind.REMINDER)

    to_number = Column(String(20))
    body = Column(Text)
    accepted = Column(Boolean, nullable=False, default=False)
    transport_message_id = Column(String(64), index=True)
    error = Column(Text)

    delivery_status = Column(Enum(DeliveryStatus))
    error_code = Column(String(20))
    error_message = Column(Text)

    sent_at = Column(DateTime, default=utcnow)
    status_updated_at = Column(DateTime)

    session = relationship("ConfirmationSession", back_populates="dispatches")


class DeliveryStatusLog(Base):
    """Raw delivery-status callback as received"""
    __tablename__ = TableNames.DELIVERY_STATUS_LOGS

    id = Column(Integer, primary_key=True, index=True)
    transport_message_id = Column(String(64), index=True)
    patient_id = Column(Integer, ForeignKey(f"{TableNames.PATIENTS}.id"))
    to_number = Column(String(20))
    status = Column(String(20))
    error_code = Column(String(20))
    error_message = Column(Text)
    received_at = Column(DateTime, default=utcnow)


class OperationalAlert(Base):
    """Alert for a human to review (e.g. carrier blocking)"""
    __tablename__ = TableNames.OPERATIONAL_ALERTS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey(f"{TableNames.PATIENTS}.id"))
    alert_type = Column(String(50), nullable=False)
    status = Column(Enum(AlertStatus), nullable=False, default=AlertStatus.OPEN)
    message = Column(Text, nullable=False)
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, default=utcnow)
