"""
Unit tests for due-date repair and PACK reminders.
"""
from datetime import datetime

import pytest

from homeroom.core.analysis.due_dates import fix_due_date, next_weekday, weekday_from_pattern
from homeroom.core.analysis.reminders import pack_reminders

# Monday
RECEIVED = datetime(2024, 3, 4, 8, 30)


class TestFixDueDate:
    """Test fix_due_date"""

    def test_valid_due_date_kept(self):
        assert fix_due_date("2024-03-08T15:00:00", "every Tuesday", RECEIVED) == "2024-03-08T15:00:00"

    def test_valid_due_date_with_zone_kept(self):
        assert fix_due_date("2024-03-08T15:00:00Z", None, RECEIVED) == "2024-03-08T15:00:00Z"

    def test_next_tuesday_from_monday(self):
        assert fix_due_date(None, "every Tuesday", RECEIVED) == "2024-03-05T09:00:00"

    def test_invalid_due_date_repaired(self):
        assert fix_due_date("next week sometime", "Tuesdays", RECEIVED) == "2024-03-05T09:00:00"

    def test_same_weekday_rolls_a_full_week(self):
        assert fix_due_date(None, "every Monday", RECEIVED) == "2024-03-11T09:00:00"

    def test_abbreviation(self):
        assert fix_due_date("", "weekly on Thurs", RECEIVED) == "2024-03-07T09:00:00"

    def test_case_insensitive(self):
        assert fix_due_date(None, "EVERY FRIDAY", RECEIVED) == "2024-03-08T09:00:00"

    def test_sunday(self):
        assert fix_due_date(None, "Sunday mornings", RECEIVED) == "2024-03-10T09:00:00"

    def test_no_weekday_returns_none(self):
        assert fix_due_date(None, "every week", RECEIVED) is None

    def test_no_pattern_returns_none(self):
        assert fix_due_date(None, None, RECEIVED) is None


class TestWeekdayHelpers:
    """Test weekday parsing (Sunday = 0)"""

    @pytest.mark.parametrize("pattern,expected", [
        ("every Tuesday", 2),
        ("tue and thu", 2),
        ("on Saturdays", 6),
        ("Sun", 0),
        ("Wednesday club", 3),
    ])
    def test_weekday_from_pattern(self, pattern, expected):
        assert weekday_from_pattern(pattern) == expected

    def test_word_inside_other_word_ignored(self):
        assert weekday_from_pattern("monthly summary") is None

    def test_next_weekday_strictly_after(self):
        friday = datetime(2024, 3, 8, 18, 0)

        assert next_weekday(friday, 6) == datetime(2024, 3, 9, 18, 0)
        assert next_weekday(friday, 5) == datetime(2024, 3, 15, 18, 0)


class TestPackReminders:
    """Test the two reminders derived from a PACK todo"""

    def test_evening_before_and_morning_of(self):
        reminders = pack_reminders("PE kit", datetime(2024, 3, 5, 9, 0))

        assert [r.date for r in reminders] == [
            datetime(2024, 3, 4, 19, 0),
            datetime(2024, 3, 5, 7, 0),
        ]
        assert reminders[0].title == "Pack tonight: PE kit"
        assert reminders[1].title == "Don't forget: PE kit"

    def test_month_boundary(self):
        reminders = pack_reminders("Swimming bag", datetime(2024, 3, 1, 8, 0))

        assert reminders[0].date == datetime(2024, 2, 29, 19, 0)
