"""
SMS Transport Tool
send(to, body) capability backed by Twilio, plus a logging transport for test mode
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from twilio.rest import Client
from twilio.http.http_client import TwilioHttpClient

from config import Settings
from tools.clock import utcnow


logger = logging.getLogger(__name__)


class TransportConfigurationError(RuntimeError):
    """Transport credentials are missing"""


@dataclass
class TransportReceipt:
    """
    Result of handing a message to the transport

    accepted=True means the transport took the message, not that it was delivered.
    """
    accepted: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    submitted_at: datetime = field(default_factory=utcnow)


class SmsTransport(ABC):
    """Outbound SMS capability"""

    @abstractmethod
    def send(self, to: str, body: str) -> TransportReceipt:
        ...


class TwilioTransport(SmsTransport):
    """Sends through a Twilio messaging service"""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        messaging_service_sid: str,
        timeout: float = 10.0,
        status_callback_url: Optional[str] = None
    ):
        self.messaging_service_sid = messaging_service_sid
        self.status_callback_url = status_callback_url
        self.client = Client(
            account_sid,
            auth_token,
            http_client=TwilioHttpClient(timeout=timeout)
        )

    def send(self, to: str, body: str) -> TransportReceipt:
        params = {
            "body": body,
            "to": to,
            "messaging_service_sid": self.messaging_service_sid,
        }
        if self.status_callback_url:
            params["status_callback"] = self.status_callback_url
        try:
            message = self.client.messages.create(**params)
        except Exception as e:
            logger.error(f"Twilio rejected message to {to}: {e}")
            return TransportReceipt(accepted=False, error=str(e))

        logger.info(f"SMS accepted by Twilio for {to}. SID: {message.sid}")
        return TransportReceipt(accepted=True, message_id=message.sid)


class LoggingTransport(SmsTransport):
    """Logs messages instead of sending them (SMS test mode)"""

    def __init__(self):
        self.sent: List[dict] = []

    def send(self, to: str, body: str) -> TransportReceipt:
        message_id = f"test_{uuid.uuid4().hex[:16]}"
        self.sent.append({"to": to, "body": body, "message_id": message_id})
        logger.info(f"[TEST MODE] SMS to {to}: {body}")
        return TransportReceipt(accepted=True, message_id=message_id)


def build_transport(config: Settings) -> SmsTransport:
    """
    Pick the transport for the current configuration

    Raises:
        TransportConfigurationError: Twilio credentials missing outside test mode
    """
    if config.SMS_TEST_MODE:
        return LoggingTransport()

    missing = [
        name for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_MESSAGING_SERVICE_SID")
        if not getattr(config, name)
    ]
    if missing:
        raise TransportConfigurationError(
            f"Missing Twilio configuration: {', '.join(missing)}"
        )

    return TwilioTransport(
        account_sid=config.TWILIO_ACCOUNT_SID,
        auth_token=config.TWILIO_AUTH_TOKEN,
        messaging_service_sid=config.TWILIO_MESSAGING_SERVICE_SID,
        timeout=config.TRANSPORT_TIMEOUT_SECONDS,
        status_callback_url=f"{config.APP_BASE_URL.rstrip('/')}{config.API_PREFIX}/sms/status-callback",
    )
