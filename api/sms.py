"""
SMS API Router
Delivery-status webhook for the SMS transport
"""

import logging
from typing import Any, Dict
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from api.deps import get_db, services


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sms", tags=["sms"])


async def _read_payload(request: Request) -> Dict[str, Any]:
    body = await request.body()
    if not body:
        return {}
    if request.headers.get("content-type", "").startswith("application/json"):
        data = await request.json()
        return data if isinstance(data, dict) else {}
    # Twilio posts application/x-www-form-urlencoded
    form = await request.form()
    return {key: value for key, value in form.items()}


@router.post("/status-callback")
async def status_callback(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Receive a delivery-status update

    Always answers 200 so the transport never retries; failures are logged.
    """
    try:
        payload = await _read_payload(request)
    except ValueError as e:
        logger.warning(f"Unreadable status callback body: {e}")
        return {"received": True, "error": "Unreadable payload"}

    reminder_dispatcher = services.get_reminder_dispatcher()
    return await reminder_dispatcher.handle_status_callback(payload, db=db)
