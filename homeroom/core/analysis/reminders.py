"""Calendar reminders derived from PACK todos."""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List

EVENING_PREP_HOUR = 19
MORNING_REMINDER_HOUR = 7


@dataclass
class DerivedReminder:
    title: str
    date: datetime
    description: str


def pack_reminders(description: str, due: datetime) -> List[DerivedReminder]:
    """
    Two reminders for something that has to be packed: 19:00 the evening
    before, and 07:00 on the day it is needed.
    """
    day = due.replace(hour=0, minute=0, second=0, microsecond=0)
    return [
        DerivedReminder(
            title=f"Pack tonight: {description}",
            date=(day - timedelta(days=1)).replace(hour=EVENING_PREP_HOUR),
            description=f"Evening prep for tomorrow: {description}",
        ),
        DerivedReminder(
            title=f"Don't forget: {description}",
            date=day.replace(hour=MORNING_REMINDER_HOUR),
            description=f"Morning reminder: {description}",
        ),
    ]
