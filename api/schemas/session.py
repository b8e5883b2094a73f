"""
Session Schemas
Pydantic models for the scan page and confirmation endpoints
"""

from typing import Optional, List, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict
from enum import Enum


class LogStatusEnum(str, Enum):
    """Recorded dose outcome"""
    TAKEN = "taken"
    MISSED = "missed"


# ==================== REQUEST SCHEMAS ====================

class ConfirmRequest(BaseModel):
    """Inbound confirmation from the scan page"""
    model_config = ConfigDict(populate_by_name=True)

    session_token: str = Field(..., alias="sessionToken", min_length=1, max_length=64)
    evidence: Dict[str, Any] = Field(
        default_factory=dict,
        description="Opaque label data and confidence from the recognizer"
    )


# ==================== RESPONSE SCHEMAS ====================

class MedicationSummary(BaseModel):
    """Medication as shown on the scan page"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    dosage: Optional[str] = None


class SessionView(BaseModel):
    """Session details for the scan page"""
    id: int
    patient_id: int
    patient_name: str
    timezone: Optional[str] = None
    medication_ids: List[int]
    medications: List[MedicationSummary] = []
    scheduled_time: datetime
    expires_at: datetime
    state: str


class LogEventResponse(BaseModel):
    """Recorded dose outcome"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: int
    medication_id: int
    schedule_id: Optional[int] = None
    session_id: Optional[int] = None
    event_time: datetime
    event_key: str
    status: LogStatusEnum
    source: str
    raw_evidence: Optional[Dict[str, Any]] = None
    recorded_at: datetime
    original_status: Optional[LogStatusEnum] = None
    fixed_at: Optional[datetime] = None


class ConfirmResponse(BaseModel):
    """Result of a successful confirmation"""
    success: bool = True
    events: List[LogEventResponse]
