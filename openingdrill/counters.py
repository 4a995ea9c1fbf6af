"""
Per-day counters keyed by user, deck and pivoted local day.

The set of new lines consumed today drives the daily new-line cap; the set of
new lines queued today lets a restarted session see what it offered before.
Time spent is bucketed per user and day.
"""

import logging
from datetime import date
from typing import Iterable, Set
from uuid import UUID

from .db.database import DrillDatabase

logger = logging.getLogger(__name__)

NEW_SHOWN_TABLE = "daily_new_shown"
NEW_QUEUED_TABLE = "daily_new_queued"


class DailyCounterStore:
    """Thin keyed view over the daily counter tables of a DrillDatabase."""

    def __init__(self, db: DrillDatabase):
        self.db = db

    def new_shown(self, user_id: str, deck_id: UUID, day: date) -> Set[UUID]:
        return self.db.get_daily_line_ids(NEW_SHOWN_TABLE, user_id, deck_id, day)

    def mark_new_shown(
        self, user_id: str, deck_id: UUID, day: date, line_ids: Iterable[UUID]
    ) -> None:
        """Record new lines as consumed for the day. Re-marking is a no-op."""
        ids = list(line_ids)
        if not ids:
            return
        self.db.add_daily_line_ids(NEW_SHOWN_TABLE, user_id, deck_id, day, ids)
        logger.debug(f"Marked {len(ids)} new line(s) shown on {day}")

    def queued_new(self, user_id: str, deck_id: UUID, day: date) -> Set[UUID]:
        return self.db.get_daily_line_ids(
            NEW_QUEUED_TABLE, user_id, deck_id, day
        )

    def set_queued_new(
        self, user_id: str, deck_id: UUID, day: date, line_ids: Iterable[UUID]
    ) -> None:
        """Replace the day's queued-new set with ``line_ids``."""
        wanted = set(line_ids)
        current = self.queued_new(user_id, deck_id, day)
        stale = current - wanted
        if stale:
            self.db.remove_daily_line_ids(
                NEW_QUEUED_TABLE, user_id, deck_id, day, sorted(stale, key=str)
            )
        fresh = wanted - current
        if fresh:
            self.db.add_daily_line_ids(
                NEW_QUEUED_TABLE, user_id, deck_id, day, sorted(fresh, key=str)
            )

    def drop_queued_new(
        self, user_id: str, deck_id: UUID, day: date, line_ids: Iterable[UUID]
    ) -> None:
        ids = list(line_ids)
        if ids:
            self.db.remove_daily_line_ids(
                NEW_QUEUED_TABLE, user_id, deck_id, day, ids
            )

    def add_time_spent(self, user_id: str, day: date, seconds: int) -> None:
        self.db.add_time_spent(user_id, day, seconds)

    def time_spent(self, user_id: str, day: date) -> int:
        return self.db.get_time_spent(user_id, day)

    def remaining_new_slots(
        self, user_id: str, deck_id: UUID, day: date, cap: int
    ) -> int:
        """How many more new lines may be queued today under ``cap``."""
        return max(0, cap - len(self.new_shown(user_id, deck_id, day)))
