"""
Test Tools Package
Tests for the tools module (time slots, due window, event buckets, reminder text, transport)
"""

__all__ = [
    "test_time_slots",
    "test_due_window",
    "test_event_buckets",
    "test_reminder_text",
    "test_sms_transport",
]
