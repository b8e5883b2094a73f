"""
Due Window Tool
Decides whether a schedule is due at a given local wall-clock time
"""

from datetime import datetime, time
from typing import Any

from tools.time_slots import parse_time, mask_includes


def minutes_since_midnight(value: Any) -> int:
    """Minutes since midnight for a time, datetime or HH:MM[:SS] string (seconds dropped)"""
    if isinstance(value, datetime):
        value = value.time()
    if not isinstance(value, time):
        value = parse_time(value)
    return value.hour * 60 + value.minute


def minutes_until(time_of_day: Any, local_now: datetime) -> int:
    """Signed minutes from local_now to today's occurrence of time_of_day"""
    return minutes_since_midnight(time_of_day) - minutes_since_midnight(local_now)


def is_due(time_of_day: Any, local_now: datetime, advance_window_minutes: int, days_of_week_mask: int = 127) -> bool:
    """
    A schedule is due iff today is in its weekday mask and
    0 <= scheduled_minutes - current_minutes <= advance_window_minutes.

    The window never wraps across midnight.
    """
    if not mask_includes(days_of_week_mask, local_now.date()):
        return False
    diff = minutes_until(time_of_day, local_now)
    return 0 <= diff <= advance_window_minutes
