"""
Due-date repair for recurring todos.

Models often return a recurring todo ("Pack PE kit every Tuesday") with no
usable due date. When the recurrence names a weekday we pin the todo to the
next occurrence after the email arrived.
"""
import re
from datetime import datetime, timedelta
from typing import Optional

# Sunday = 0 ... Saturday = 6
WEEKDAYS = {
    'sunday': 0, 'sun': 0,
    'monday': 1, 'mon': 1,
    'tuesday': 2, 'tue': 2, 'tues': 2,
    'wednesday': 3, 'wed': 3,
    'thursday': 4, 'thu': 4, 'thur': 4, 'thurs': 4,
    'friday': 5, 'fri': 5,
    'saturday': 6, 'sat': 6,
}

# Longest alternatives first so "tuesday" is not read as "tue"
_WEEKDAY_PATTERN = re.compile(
    r"\b(" + "|".join(sorted(WEEKDAYS, key=len, reverse=True)) + r")s?\b",
    re.IGNORECASE,
)

DEFAULT_DUE_HOUR = 9


def is_valid_iso(value: Optional[str]) -> bool:
    if not value or not value.strip():
        return False
    try:
        datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    except ValueError:
        return False
    return True


def weekday_from_pattern(pattern: Optional[str]) -> Optional[int]:
    """First weekday named in a recurrence pattern (Sunday=0), or None."""
    if not pattern:
        return None
    match = _WEEKDAY_PATTERN.search(pattern)
    if not match:
        return None
    return WEEKDAYS[match.group(1).lower()]


def next_weekday(after: datetime, weekday: int) -> datetime:
    """
    Next date strictly after `after` falling on `weekday` (Sunday=0).

    Same weekday rolls over a full week.
    """
    current = (after.weekday() + 1) % 7  # Python: Monday=0 -> Sunday=0 scheme
    days_ahead = (weekday - current) % 7 or 7
    return after + timedelta(days=days_ahead)


def fix_due_date(due_date: Optional[str], recurrence_pattern: Optional[str],
                 email_received: datetime) -> Optional[str]:
    """
    Return a usable due date for a todo.

    Args:
        due_date: Due date as returned by the model
        recurrence_pattern: e.g. "every Tuesday"
        email_received: When the source email arrived

    Returns:
        The original due date if it is valid ISO-8601, otherwise the next
        matching weekday at 09:00 as "YYYY-MM-DDTHH:MM:SS", otherwise None
    """
    if is_valid_iso(due_date):
        return due_date

    weekday = weekday_from_pattern(recurrence_pattern)
    if weekday is None:
        return None

    target = next_weekday(email_received, weekday)
    target = target.replace(hour=DEFAULT_DUE_HOUR, minute=0, second=0, microsecond=0, tzinfo=None)
    return target.strftime("%Y-%m-%dT%H:%M:%S")
