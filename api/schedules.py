"""
Schedules API Router
Endpoints for schedule expansion
"""

from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from api.deps import get_db, services
from api.schemas.schedule import (
    ScheduleResponse,
    MedicationExpansionResponse,
    PatientExpansionResponse,
)
from tools.time_slots import ScheduleValidationError


router = APIRouter(prefix="/schedules", tags=["schedules"])


@router.post("/medication/{medication_id}/expand", response_model=MedicationExpansionResponse)
async def expand_medication(
    medication_id: int,
    db: Session = Depends(get_db)
):
    """
    Replace a medication's schedules with a fresh expansion of its frequency label
    """
    schedule_service = services.get_schedule_service()
    try:
        result = await schedule_service.expand_medication(medication_id, db=db)
    except ScheduleValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )

    return MedicationExpansionResponse(
        medication_id=result["medication_id"],
        schedules=[ScheduleResponse.model_validate(s) for s in result["schedules"]],
        skipped=result["skipped"]
    )


@router.post("/patient/{patient_id}/expand", response_model=PatientExpansionResponse)
async def expand_patient(
    patient_id: int,
    db: Session = Depends(get_db)
):
    """
    Re-expand every medication of a patient after their time preferences change
    """
    schedule_service = services.get_schedule_service()
    try:
        return await schedule_service.expand_patient(patient_id, db=db)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )


@router.get("/medication/{medication_id}", response_model=List[ScheduleResponse])
async def get_medication_schedules(
    medication_id: int,
    db: Session = Depends(get_db)
):
    """
    Get the active schedules of a medication
    """
    schedule_service = services.get_schedule_service()
    return await schedule_service.get_medication_schedules(medication_id, db=db)
