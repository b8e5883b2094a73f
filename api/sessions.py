"""
Sessions API Router
Scan-page lookup and inbound confirmation
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from api.deps import get_db, services
from api.schemas.session import (
    ConfirmRequest,
    ConfirmResponse,
    SessionView,
    MedicationSummary,
    LogEventResponse,
)
from services.session_service import (
    SessionNotFoundError,
    SessionExpiredError,
    SessionAlreadyCompletedError,
)
from models import Medication


router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("/{token}", response_model=SessionView)
async def get_session(
    token: str,
    db: Session = Depends(get_db)
):
    """
    Get a confirmation session for the scan page

    404 for an unknown token, 410 once the session has expired.
    """
    session_service = services.get_session_service()
    try:
        record = await session_service.get_by_token(token, db=db)
    except SessionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")

    if session_service.is_expired(record):
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Session has expired")

    medications = db.query(Medication).filter(
        Medication.id.in_(record.medication_ids)
    ).order_by(Medication.id).all()

    return SessionView(
        id=record.id,
        patient_id=record.patient_id,
        patient_name=record.patient.full_name,
        timezone=record.patient.timezone,
        medication_ids=record.medication_ids,
        medications=[MedicationSummary.model_validate(m) for m in medications],
        scheduled_time=record.scheduled_time,
        expires_at=record.expires_at,
        state=record.state.value
    )


@router.post("/confirm", response_model=ConfirmResponse)
async def confirm_session(
    payload: ConfirmRequest,
    db: Session = Depends(get_db)
):
    """
    Confirm a dose and record TAKEN events

    - **200**: confirmed
    - **404**: unknown token
    - **410**: session expired
    - **409**: already confirmed
    """
    session_service = services.get_session_service()
    try:
        events = await session_service.complete(
            payload.session_token,
            evidence=payload.evidence,
            db=db
        )
    except SessionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    except SessionExpiredError:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Session has expired")
    except SessionAlreadyCompletedError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Session already completed")

    return ConfirmResponse(
        success=True,
        events=[LogEventResponse.model_validate(event) for event in events]
    )
