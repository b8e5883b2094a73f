"""
Tests for Reminder Text Tool
Tests message formatting and privacy-preserving name truncation
"""

import pytest
from datetime import datetime
from zoneinfo import ZoneInfo

from tools.reminder_text import (
    display_name,
    format_local_time,
    format_phone_number,
    confirmation_link,
    render_message,
)


class TestDisplayName:
    """Tests for first name + last initial"""

    @pytest.mark.unit
    @pytest.mark.parametrize("full_name,expected", [
        ("Jane Doe", "Jane D."),
        ("Jane Quinn doe", "Jane D."),
        ("Cher", "Cher"),
        ("", "there"),
        (None, "there"),
    ])
    def test_display_name(self, full_name, expected):
        """Test the surname never appears in full"""
        assert display_name(full_name) == expected


class TestFormatting:
    """Tests for time, link and phone formatting"""

    @pytest.mark.unit
    def test_local_time_in_patient_zone(self):
        """Test 13:05 UTC renders as 8:05 AM in New York (EST)"""
        assert format_local_time(datetime(2024, 1, 10, 13, 5), ZoneInfo("America/New_York")) == "8:05 AM"

    @pytest.mark.unit
    def test_noon_and_midnight(self):
        """Test 12-hour clock edge cases"""
        utc = ZoneInfo("UTC")
        assert format_local_time(datetime(2024, 1, 10, 12, 0), utc) == "12:00 PM"
        assert format_local_time(datetime(2024, 1, 10, 0, 30), utc) == "12:30 AM"

    @pytest.mark.unit
    def test_confirmation_link(self):
        """Test the scan link embeds the token"""
        assert confirmation_link("https://app.example/", "abc") == "https://app.example/scan/abc"

    @pytest.mark.unit
    @pytest.mark.parametrize("phone,expected", [
        ("(555) 123-4567", "+15551234567"),
        ("1-555-123-4567", "+15551234567"),
        ("+44 20 7946 0958", "+44 20 7946 0958"),
        (None, None),
    ])
    def test_format_phone_number(self, phone, expected):
        """Test US numbers are normalized to E.164"""
        assert format_phone_number(phone) == expected


class TestRenderMessage:
    """Tests for full message rendering"""

    @pytest.mark.unit
    def test_reminder_message(self):
        """Test the reminder template"""
        body = render_message(
            "reminder",
            "Jane Doe",
            datetime(2024, 3, 6, 8, 0),
            ZoneInfo("UTC"),
            "https://app.example/scan/tok"
        )

        assert body == (
            "Hi Jane D.! It's time to take your 8:00 AM medication. "
            "Please scan your medication label to confirm: https://app.example/scan/tok"
        )
        assert "Doe" not in body

    @pytest.mark.unit
    def test_follow_up_message(self):
        """Test the follow-up template"""
        body = render_message(
            "follow_up",
            "Jane Doe",
            datetime(2024, 3, 6, 20, 0),
            ZoneInfo("UTC"),
            "https://app.example/scan/tok"
        )

        assert body.startswith("Reminder: Jane D., please don't forget to take your 8:00 PM medication.")
