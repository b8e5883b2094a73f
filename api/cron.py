"""
Cron API Router
Timer-driven triggers: due-window tick, expiry sweep, follow-ups
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from api.deps import get_db, services, verify_cron_token
from api.schemas.job import TickResult, SweepResult, FollowUpResult
from tools.sms_transport import TransportConfigurationError


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/cron",
    tags=["cron"],
    dependencies=[Depends(verify_cron_token)]
)


@router.api_route("/send-reminders", methods=["GET", "POST"], response_model=TickResult)
async def send_reminders(db: Session = Depends(get_db)):
    """
    Run one due-window tick: open sessions for due schedules and send reminders
    """
    due_window_service = services.get_due_window_service()
    try:
        return await due_window_service.run_tick(db=db)
    except TransportConfigurationError as e:
        logger.error(f"Reminder tick aborted: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )


@router.api_route("/process-expired-sessions", methods=["GET", "POST"], response_model=SweepResult)
async def process_expired_sessions(db: Session = Depends(get_db)):
    """
    Expire overdue sessions and record their MISSED events
    """
    session_service = services.get_session_service()
    return await session_service.expire_sweep(db=db)


@router.api_route("/send-follow-ups", methods=["GET", "POST"], response_model=FollowUpResult)
async def send_follow_ups(db: Session = Depends(get_db)):
    """
    Send one follow-up for sessions still pending after the follow-up delay
    """
    reminder_dispatcher = services.get_reminder_dispatcher()
    try:
        return await reminder_dispatcher.send_follow_ups(db=db)
    except TransportConfigurationError as e:
        logger.error(f"Follow-up run aborted: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )
