"""
Cleanup of items whose date has passed.

Runs after each batch analysis: pending todos due before today are closed
as auto-completed, events before today are removed.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from homeroom.core.database.repository import ActionItemRepository

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    cutoff: datetime
    todos_completed: int = 0
    events_removed: int = 0
    todo_ids: List[int] = field(default_factory=list)
    event_ids: List[int] = field(default_factory=list)


def start_of_day(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def cleanup_past_items(db: Session, owner_id: str, now: Optional[datetime] = None) -> CleanupResult:
    """
    Auto-complete overdue todos and delete past events for one owner.

    Args:
        db: Database session (committed here)
        owner_id: Account owner
        now: Reference time (defaults to now); the cutoff is its midnight

    Returns:
        CleanupResult with affected ids
    """
    repo = ActionItemRepository(db)
    cutoff = start_of_day(now)

    try:
        todo_ids = repo.mark_todos_auto_completed(owner_id, cutoff)
        event_ids = repo.delete_past_events(owner_id, cutoff)
        repo.commit()
    except Exception:
        repo.rollback()
        raise

    if todo_ids or event_ids:
        logger.info(
            f"Cleanup for {owner_id}: {len(todo_ids)} todo(s) auto-completed, "
            f"{len(event_ids)} past event(s) removed (before {cutoff:%Y-%m-%d})"
        )

    return CleanupResult(
        cutoff=cutoff,
        todos_completed=len(todo_ids),
        events_removed=len(event_ids),
        todo_ids=todo_ids,
        event_ids=event_ids,
    )
