"""
Reminder Text Tool
Message templates and formatting for outbound confirmation requests
"""

import logging
import re
from datetime import datetime
from typing import Dict, Optional
from zoneinfo import ZoneInfo

from tools.clock import to_local


logger = logging.getLogger(__name__)


REMINDER_TEMPLATES: Dict[str, str] = {
    "reminder": (
        "Hi {display_name}! It's time to take your {time} medication. "
        "Please scan your medication label to confirm: {link}"
    ),
    "follow_up": (
        "Reminder: {display_name}, please don't forget to take your {time} medication. "
        "Scan here: {link}"
    ),
}


def display_name(full_name: Optional[str]) -> str:
    """
    Reduce a name to first name + last initial ("Jane Q. Doe" -> "Jane D.")

    Only the truncated form ever leaves the system in a message body.
    """
    parts = (full_name or "").split()
    if not parts:
        return "there"
    if len(parts) == 1:
        return parts[0]
    return f"{parts[0]} {parts[-1][0].upper()}."


def format_local_time(scheduled_time: datetime, zone: ZoneInfo) -> str:
    """Human time in the patient's zone, e.g. '8:05 AM'"""
    local = to_local(scheduled_time, zone)
    hour = local.hour % 12 or 12
    return f"{hour}:{local.minute:02d} {'AM' if local.hour < 12 else 'PM'}"


def confirmation_link(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/scan/{token}"


def format_phone_number(phone: Optional[str]) -> Optional[str]:
    """E.164 for US numbers; anything else is returned untouched"""
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return phone.strip()


def render_message(
    kind: str,
    patient_name: str,
    scheduled_time: datetime,
    zone: ZoneInfo,
    link: str
) -> str:
    template = REMINDER_TEMPLATES[kind]
    return template.format(
        display_name=display_name(patient_name),
        time=format_local_time(scheduled_time, zone),
        link=link,
    )
