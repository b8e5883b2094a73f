"""
Admin API Router
Idempotent maintenance jobs over the full event log and schedule table
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.deps import get_db, services, verify_cron_token
from api.schemas.job import ReconcileResult, SweepResult, PopulateResult, MixedGroupList


router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(verify_cron_token)]
)


@router.post("/reconcile", response_model=ReconcileResult)
async def reconcile(
    patient_id: Optional[int] = Query(None, description="Limit to one patient"),
    db: Session = Depends(get_db)
):
    """
    Rewrite MISSED events to TAKEN in 15-minute buckets that also hold a TAKEN event
    """
    event_log_service = services.get_event_log_service()
    return await event_log_service.reconcile(patient_id=patient_id, db=db)


@router.get("/mixed-groups", response_model=MixedGroupList)
async def mixed_groups(
    patient_id: Optional[int] = Query(None, description="Limit to one patient"),
    db: Session = Depends(get_db)
):
    """
    List buckets that reconciliation would rewrite (dry run)
    """
    event_log_service = services.get_event_log_service()
    groups = await event_log_service.find_mixed_groups(patient_id=patient_id, db=db)
    return {"groups": groups, "total": len(groups)}


@router.post("/backfill-missed-logs", response_model=SweepResult)
async def backfill_missed_logs(db: Session = Depends(get_db)):
    """
    Write MISSED events for expired sessions that have none
    """
    event_log_service = services.get_event_log_service()
    return await event_log_service.backfill_missed(db=db)


@router.post("/populate-schedules", response_model=PopulateResult)
async def populate_schedules(db: Session = Depends(get_db)):
    """
    Re-expand every medication into schedules
    """
    schedule_service = services.get_schedule_service()
    return await schedule_service.populate_all(db=db)
