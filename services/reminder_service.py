"""
Reminder Service
Formats and dispatches confirmation requests and processes delivery-status callbacks
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from datetime import datetime, timedelta
from sqlalchemy.orm import Session

from config import Settings, settings, engine_config
from database import get_db_context
import models
from models import SessionState, DispatchKind, DeliveryStatus, AlertStatus
from tools.clock import resolve_now, get_zone
from tools.reminder_text import render_message, confirmation_link, format_phone_number
from tools.sms_transport import SmsTransport, TransportReceipt, build_transport


logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    """accepted=True means the transport took the message, not that it was delivered"""
    accepted: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def _phone_digits(phone: Optional[str]) -> str:
    return re.sub(r"\D", "", phone or "")[-10:]


class ReminderDispatcher:
    """
    Service for outbound reminders

    The transport is built on first use, so a missing Twilio configuration
    raises TransportConfigurationError only when something is actually sent.
    """

    def __init__(
        self,
        transport: Optional[SmsTransport] = None,
        config: Optional[Settings] = None
    ):
        self._transport = transport
        self.config = config or settings

    @property
    def transport(self) -> SmsTransport:
        if self._transport is None:
            self._transport = build_transport(self.config)
            logger.info(f"Reminder transport ready: {type(self._transport).__name__}")
        return self._transport

    async def _deliver(self, to_number: Optional[str], body: str) -> TransportReceipt:
        if not to_number:
            return TransportReceipt(accepted=False, error="Patient has no phone number")

        transport = self.transport
        timeout = self.config.TRANSPORT_TIMEOUT_SECONDS
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(transport.send, to_number, body),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Transport timed out after {timeout}s sending to {to_number}")
            return TransportReceipt(accepted=False, error=f"Transport timed out after {timeout}s")

    async def _send(
        self,
        session: Session,
        record: models.ConfirmationSession,
        kind: DispatchKind,
        now_utc: datetime
    ) -> DeliveryResult:
        patient = record.patient
        zone = get_zone(patient.timezone, self.config.DEFAULT_TIMEZONE)
        to_number = format_phone_number(patient.phone)
        body = render_message(
            kind.value,
            patient.full_name,
            record.scheduled_time,
            zone,
            confirmation_link(self.config.APP_BASE_URL, record.token)
        )

        receipt = await self._deliver(to_number, body)

        session.add(models.ReminderDispatch(
            session_id=record.id,
            patient_id=record.patient_id,
            kind=kind,
            to_number=to_number,
            body=body,
            accepted=receipt.accepted,
            transport_message_id=receipt.message_id,
            error=receipt.error,
            sent_at=now_utc
        ))
        if receipt.accepted:
            if kind == DispatchKind.FOLLOW_UP:
                record.follow_up_sent_at = now_utc
            else:
                record.notified_at = now_utc
        session.commit()

        if receipt.accepted:
            logger.info(f"{kind.value} for session {record.id} accepted ({receipt.message_id})")
        else:
            logger.warning(f"{kind.value} for session {record.id} not accepted: {receipt.error}")

        return DeliveryResult(
            accepted=receipt.accepted,
            message_id=receipt.message_id,
            error=receipt.error
        )

    async def send(
        self,
        session_record: models.ConfirmationSession,
        kind: DispatchKind = DispatchKind.REMINDER,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> DeliveryResult:
        """
        Send the confirmation request for a session

        Every attempt is recorded as a ReminderDispatch row. No retry happens
        here; the next tick re-dispatches a session that was never accepted.

        Args:
            session_record: ConfirmationSession to notify about
            kind: reminder or follow_up
            now: Injected clock
            db: Database session

        Returns:
            DeliveryResult
        """
        now_utc = resolve_now(now)

        if db:
            return await self._send(db, session_record, kind, now_utc)

        with get_db_context() as session:
            record = session.get(models.ConfirmationSession, session_record.id)
            return await self._send(session, record, kind, now_utc)

    async def send_follow_ups(
        self,
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Send one follow-up for each notified session still pending after
        FOLLOW_UP_AFTER_MINUTES

        Returns:
            {"success", "processedCount", "sent", "errors"}
        """
        now_utc = resolve_now(now)
        cutoff = now_utc - timedelta(minutes=self.config.FOLLOW_UP_AFTER_MINUTES)

        async def _follow_up(session: Session) -> Dict[str, Any]:
            session_ids = [
                row.id for row in session.query(models.ConfirmationSession.id).filter(
                    models.ConfirmationSession.state == SessionState.PENDING,
                    models.ConfirmationSession.notified_at.isnot(None),
                    models.ConfirmationSession.notified_at <= cutoff,
                    models.ConfirmationSession.follow_up_sent_at.is_(None),
                    models.ConfirmationSession.expires_at > now_utc
                ).order_by(models.ConfirmationSession.id).all()
            ]

            sent = 0
            errors: List[str] = []
            for session_id in session_ids:
                try:
                    record = session.get(models.ConfirmationSession, session_id)
                    result = await self._send(session, record, DispatchKind.FOLLOW_UP, now_utc)
                    if result.accepted:
                        sent += 1
                    else:
                        errors.append(f"Session {session_id}: {result.error}")
                except Exception as e:
                    session.rollback()
                    logger.exception(f"Error sending follow-up for session {session_id}")
                    errors.append(f"Session {session_id}: {e}")

            logger.info(f"Follow-ups: {sent}/{len(session_ids)} sent, {len(errors)} errors")
            return {
                "success": True,
                "processedCount": len(session_ids),
                "sent": sent,
                "errors": errors,
            }

        if db:
            return await _follow_up(db)

        with get_db_context() as session:
            return await _follow_up(session)

    def _alert_message(self, error_code: Optional[str], status: str, error_message: Optional[str]) -> str:
        if error_code == engine_config.CARRIER_FILTERED_ERROR_CODE:
            return (
                "SMS blocked by carrier filtering (error 30007). "
                "Messages to this patient are being filtered as spam; review A2P registration."
            )
        if error_code == engine_config.A2P_BLOCKED_ERROR_CODE:
            return (
                "SMS blocked: messaging service is not registered for A2P 10DLC (error 30034)."
            )
        return f"SMS {status}: {error_message or 'unknown error'}"

    def _process_callback(self, session: Session, payload: Dict[str, Any], now_utc: datetime) -> Dict[str, Any]:
        message_id = payload.get("transportMessageId") or payload.get("MessageSid")
        status = str(payload.get("status") or payload.get("MessageStatus") or "").lower()
        error_code = payload.get("errorCode") or payload.get("ErrorCode")
        error_message = payload.get("errorMessage") or payload.get("ErrorMessage")
        to_number = payload.get("to") or payload.get("To")
        if error_code is not None:
            error_code = str(error_code)

        dispatch = None
        if message_id:
            dispatch = session.query(models.ReminderDispatch).filter(
                models.ReminderDispatch.transport_message_id == message_id
            ).order_by(models.ReminderDispatch.id.desc()).first()

        patient_id = dispatch.patient_id if dispatch else None
        if patient_id is None and to_number:
            digits = _phone_digits(to_number)
            for patient in session.query(models.Patient).filter(models.Patient.phone.isnot(None)):
                if digits and _phone_digits(patient.phone) == digits:
                    patient_id = patient.id
                    break

        session.add(models.DeliveryStatusLog(
            transport_message_id=message_id,
            patient_id=patient_id,
            to_number=to_number,
            status=status,
            error_code=error_code,
            error_message=error_message,
            received_at=now_utc
        ))

        if dispatch:
            try:
                dispatch.delivery_status = DeliveryStatus(status)
            except ValueError:
                logger.warning(f"Unrecognized delivery status {status!r} for {message_id}")
            dispatch.error_code = error_code
            dispatch.error_message = error_message
            dispatch.status_updated_at = now_utc
        elif message_id:
            logger.warning(f"Status callback for unknown message {message_id}")

        alert_created = False
        if status in engine_config.FAILED_DELIVERY_STATUSES:
            session.add(models.OperationalAlert(
                patient_id=patient_id,
                alert_type="sms_delivery_failed",
                status=AlertStatus.OPEN,
                message=self._alert_message(error_code, status, error_message),
                details={
                    "message_id": message_id,
                    "to": to_number,
                    "status": status,
                    "error_code": error_code,
                    "error_message": error_message,
                },
                created_at=now_utc
            ))
            alert_created = True
            logger.warning(
                f"SMS {status} for patient {patient_id} (message {message_id}, code {error_code})"
            )

        session.commit()
        return {"received": True, "status": status, "alertCreated": alert_created}

    async def handle_status_callback(
        self,
        payload: Dict[str, Any],
        now: Optional[datetime] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Record a delivery-status callback

        Accepts both the camelCase shape and Twilio's form field names
        (MessageSid, MessageStatus, To, ErrorCode, ErrorMessage). Never raises:
        processing failures are logged and reported in the result.
        """
        now_utc = resolve_now(now)
        try:
            if db:
                return self._process_callback(db, payload, now_utc)

            with get_db_context() as session:
                return self._process_callback(session, payload, now_utc)
        except Exception as e:
            if db:
                db.rollback()
            logger.exception("Error processing delivery-status callback")
            return {"received": True, "error": str(e)}


# Singleton instance
reminder_dispatcher = ReminderDispatcher()
