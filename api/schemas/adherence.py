"""
Adherence Schemas
Pydantic models for adherence score responses
"""

from datetime import date
from pydantic import BaseModel, Field, ConfigDict


class AdherenceScoreResponse(BaseModel):
    """Expected-vs-taken dose ratio over the period"""
    model_config = ConfigDict(from_attributes=True)

    patient_id: int
    period_start: date
    period_end: date
    expected_doses: int = Field(..., ge=0)
    taken_doses: int = Field(..., ge=0)
    score: float = Field(..., ge=0, le=100)
