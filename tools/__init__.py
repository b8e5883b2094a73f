"""
Tools Package
Storage-free helpers for the DoseCheck engine
"""

from .clock import (
    utcnow,
    to_naive_utc,
    resolve_now,
    get_zone,
    to_local,
    local_to_utc,
    local_day_bounds,
)

from .time_slots import (
    Slot,
    SlotTime,
    SlotExpansion,
    ScheduleValidationError,
    parse_time,
    normalize_time,
    validate_mask,
    mask_includes,
    sunday_weekday,
    expand_label,
)

from .due_window import (
    minutes_since_midnight,
    minutes_until,
    is_due,
)

from .event_buckets import (
    floor_to_bucket,
    hour_event_key,
    group_by_bucket,
    group_key_label,
)

from .reminder_text import (
    REMINDER_TEMPLATES,
    display_name,
    format_local_time,
    format_phone_number,
    confirmation_link,
    render_message,
)

from .sms_transport import (
    SmsTransport,
    TwilioTransport,
    LoggingTransport,
    TransportReceipt,
    TransportConfigurationError,
    build_transport,
)


__all__ = [
    # Clock
    "utcnow",
    "to_naive_utc",
    "resolve_now",
    "get_zone",
    "to_local",
    "local_to_utc",
    "local_day_bounds",
    # Time slots
    "Slot",
    "SlotTime",
    "SlotExpansion",
    "ScheduleValidationError",
    "parse_time",
    "normalize_time",
    "validate_mask",
    "mask_includes",
    "sunday_weekday",
    "expand_label",
    # Due window
    "minutes_since_midnight",
    "minutes_until",
    "is_due",
    # Event buckets
    "floor_to_bucket",
    "hour_event_key",
    "group_by_bucket",
    "group_key_label",
    # Reminder text
    "REMINDER_TEMPLATES",
    "display_name",
    "format_local_time",
    "format_phone_number",
    "confirmation_link",
    "render_message",
    # Transport
    "SmsTransport",
    "TwilioTransport",
    "LoggingTransport",
    "TransportReceipt",
    "TransportConfigurationError",
    "build_transport",
]
