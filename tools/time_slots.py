"""
Time Slot Tool
Turns a medication frequency label into concrete wall-clock dose times
"""

import logging
import re
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime, date, time
from enum import Enum

from config import engine_config


logger = logging.getLogger(__name__)


TIME_FORMATS = ("%H:%M:%S", "%H:%M", "%H", "%I:%M %p", "%I:%M:%S %p", "%I %p")

# "morning (06:30:00)" -> ("morning", "06:30:00")
_SLOT_WITH_TIME = re.compile(r"^(?P<name>[a-z_ ]*?)\s*\((?P<time>[^)]+)\)$")


class ScheduleValidationError(ValueError):
    """Malformed time string or weekday mask"""


class Slot(str, Enum):
    """Named dose slots"""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    BEDTIME = "bedtime"
    CUSTOM = "custom"


@dataclass
class SlotTime:
    """One resolved dose time"""
    slot: Slot
    time_of_day: str  # "HH:MM:SS"

    def to_dict(self) -> Dict[str, Any]:
        return {"slot": self.slot.value, "time_of_day": self.time_of_day}


@dataclass
class SlotExpansion:
    """Resolved times plus the tokens that could not be used"""
    times: List[SlotTime] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def parse_time(value: Any) -> time:
    """Parse a time object or a string like '6', '06:30', '06:30:00' or '6:30 PM'"""
    if isinstance(value, time):
        return value.replace(microsecond=0)
    if not isinstance(value, str) or not value.strip():
        raise ScheduleValidationError(f"Unsupported time value: {value!r}")
    text = value.strip().upper()
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ScheduleValidationError(f"Cannot parse time string: {value!r}")


def normalize_time(value: Any) -> str:
    """Normalize to HH:MM:SS"""
    return parse_time(value).strftime("%H:%M:%S")


def validate_mask(mask: Optional[int]) -> int:
    """Weekday mask in [0, 127]; None means every day"""
    if mask is None:
        return engine_config.ALL_DAYS_MASK
    if isinstance(mask, bool) or not isinstance(mask, int) or not 0 <= mask <= engine_config.ALL_DAYS_MASK:
        raise ScheduleValidationError(f"days_of_week_mask out of range: {mask!r}")
    return mask


def sunday_weekday(day: date) -> int:
    """Weekday index with 0 = Sunday"""
    return (day.weekday() + 1) % 7


def mask_includes(mask: int, day: date) -> bool:
    return bool(mask & (1 << sunday_weekday(day)))


def split_label(label: Optional[str]) -> List[str]:
    if not label:
        return []
    return [token.strip().lower() for token in re.split(r"[,;]", label) if token.strip()]


def resolve_slot(
    token: str,
    preferences: Dict[str, Optional[str]],
    custom_time: Optional[str] = None
) -> SlotTime:
    """
    Resolve one label token to a dose time

    Explicit parenthesized times win, then the patient's preference for the
    slot, then the fixed default. A bare time ("14:30") is a custom slot.

    Raises:
        ScheduleValidationError: unknown slot name or unusable time
    """
    explicit = None
    name = token
    match = _SLOT_WITH_TIME.match(token)
    if match:
        name = match.group("name").strip() or Slot.CUSTOM.value
        explicit = match.group("time")
    elif token[:1].isdigit():
        name, explicit = Slot.CUSTOM.value, token

    try:
        slot = Slot(name)
    except ValueError:
        raise ScheduleValidationError(f"Unknown time slot: {name!r}")

    if explicit is not None:
        return SlotTime(slot=slot, time_of_day=normalize_time(explicit))

    if slot == Slot.CUSTOM:
        if not custom_time:
            raise ScheduleValidationError("Custom slot without a custom time")
        return SlotTime(slot=slot, time_of_day=normalize_time(custom_time))

    preferred = preferences.get(slot.value)
    if preferred:
        try:
            return SlotTime(slot=slot, time_of_day=normalize_time(preferred))
        except ScheduleValidationError:
            logger.warning(f"Ignoring malformed {slot.value} preference {preferred!r}, using default")
    return SlotTime(slot=slot, time_of_day=engine_config.SLOT_DEFAULT_TIMES[slot.value])


def expand_label(
    label: Optional[str],
    preferences: Optional[Dict[str, Optional[str]]] = None,
    custom_time: Optional[str] = None
) -> SlotExpansion:
    """
    Expand a frequency label such as "morning, evening" into dose times

    Unusable tokens are skipped (and reported) rather than failing the whole
    label. Duplicate times collapse to the first slot that produced them.
    """
    preferences = preferences or {}
    expansion = SlotExpansion()
    seen = set()

    tokens = split_label(label)
    if not tokens and custom_time:
        tokens = [Slot.CUSTOM.value]

    for token in tokens:
        try:
            slot_time = resolve_slot(token, preferences, custom_time)
        except ScheduleValidationError as e:
            logger.warning(f"Skipping slot {token!r}: {e}")
            expansion.skipped.append(token)
            continue
        if slot_time.time_of_day in seen:
            continue
        seen.add(slot_time.time_of_day)
        expansion.times.append(slot_time)

    return expansion
