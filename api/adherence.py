"""
Adherence API Router
Adherence score endpoint
"""

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from api.deps import get_db, services
from api.schemas.adherence import AdherenceScoreResponse


router = APIRouter(prefix="/adherence", tags=["adherence"])


@router.get("/score/{patient_id}", response_model=AdherenceScoreResponse)
async def get_adherence_score(
    patient_id: int,
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db)
):
    """
    Get the adherence score over the last `days` local calendar days
    """
    adherence_service = services.get_adherence_service()
    try:
        score = await adherence_service.calculate(patient_id, days=days, db=db)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e)
        )
    return score.to_dict()
