"""
Tests for Due Window Tool
Tests the advance-notice window arithmetic
"""

import pytest
from datetime import datetime

from tools.due_window import minutes_since_midnight, minutes_until, is_due


# Wednesday
def local(hour: int, minute: int) -> datetime:
    return datetime(2024, 3, 6, hour, minute)


class TestDueWindow:
    """Tests for the due-window check"""

    @pytest.mark.unit
    def test_minutes_since_midnight(self):
        """Test minute arithmetic ignores seconds"""
        assert minutes_since_midnight("08:00:00") == 480
        assert minutes_since_midnight("08:00:59") == 480
        assert minutes_since_midnight(local(23, 59)) == 1439

    @pytest.mark.unit
    def test_minutes_until(self):
        """Test the signed difference to today's dose time"""
        assert minutes_until("08:00:00", local(7, 50)) == 10
        assert minutes_until("08:00:00", local(8, 5)) == -5

    @pytest.mark.unit
    def test_due_inside_window(self):
        """Test 07:50 is due for an 08:00 dose with a 15 minute window"""
        assert is_due("08:00:00", local(7, 50), 15)

    @pytest.mark.unit
    def test_not_due_before_window(self):
        """Test 07:30 is too early (diff 30 > 15)"""
        assert not is_due("08:00:00", local(7, 30), 15)

    @pytest.mark.unit
    def test_not_due_after_dose_time(self):
        """Test 08:05 is past the dose (negative diff)"""
        assert not is_due("08:00:00", local(8, 5), 15)

    @pytest.mark.unit
    def test_window_edges_inclusive(self):
        """Test both ends of the window count as due"""
        assert is_due("08:00:00", local(7, 45), 15)
        assert is_due("08:00:00", local(8, 0), 15)

    @pytest.mark.unit
    def test_no_wrap_across_midnight(self):
        """Test a 00:05 dose is not due at 23:55 the evening before"""
        assert not is_due("00:05:00", local(23, 55), 15)

    @pytest.mark.unit
    def test_weekday_mask_respected(self):
        """Test a dose is not due on a weekday outside the mask"""
        weekends_only = 0b1000001
        assert not is_due("08:00:00", local(7, 50), 15, weekends_only)
        assert is_due("08:00:00", local(7, 50), 15, 0b0001000)  # Wednesday bit
