"""
Schedule Schemas
Pydantic models for schedule expansion responses
"""

from typing import List
from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict


class ScheduleResponse(BaseModel):
    """Expanded schedule row"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    medication_id: int
    patient_id: int
    time_of_day: str
    days_of_week_mask: int = Field(..., ge=0, le=127)
    active: bool
    advance_window_minutes: int
    notify_enabled: bool
    created_at: datetime


class MedicationExpansionResponse(BaseModel):
    """Result of re-expanding one medication"""
    medication_id: int
    schedules: List[ScheduleResponse]
    skipped: List[str] = []


class PatientExpansionResponse(BaseModel):
    """Result of re-expanding every medication of a patient"""
    model_config = ConfigDict(populate_by_name=True)

    patient_id: int
    schedules_created: int = Field(0, alias="schedulesCreated")
    errors: List[str] = []
