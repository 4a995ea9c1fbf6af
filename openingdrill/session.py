"""
This module defines the DrillSession class, which maintains the ordered
presentation of lines for one sitting and turns every finished attempt into a
persisted scheduling decision.
"""

import logging
import random
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set
from uuid import UUID

from . import config as drill_config
from .attempt import Attempt
from .config import Settings, clamp_daily_cap
from .counters import DailyCounterStore
from .day_boundary import local_day, resolve_timezone, utc_now
from .db import db_utils
from .db.database import DrillDatabase
from .delay_queue import DelayQueue
from .exceptions import (
    CounterOperationError,
    DatabaseError,
    InvalidAttemptStateError,
    ReviewOperationError,
)
from .models import QueueItem, UserChoice
from .review_processor import ReviewProcessor
from .scheduler import BaseScheduler, DrillScheduler

# Initialize logger
logger = logging.getLogger(__name__)


class DrillSession:
    """
    Manages one drill sitting over a deck.

    This class is responsible for:
    - Building the main queue from due reviews followed by capped new lines.
    - Picking the next line, letting ready same-day retries cut in line.
    - Driving the per-line attempt and saving each decision at most once.
    - Removing lines for good and keeping the cursor consistent.
    - Accounting new lines against the daily cap.

    Items at index ``<= cursor`` of ``main_queue`` have been consumed; a line
    is never shown twice from the main queue and a removed line is never shown
    again in the session.
    """

    def __init__(
        self,
        db: DrillDatabase,
        user_id: str,
        deck_id: UUID,
        scheduler: Optional[BaseScheduler] = None,
        counters: Optional[DailyCounterStore] = None,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Create a DrillSession for a user's deck.

        Parameters:
            db (DrillDatabase): Persistence facade for reviews, events and lines.
            user_id (str): The learner.
            deck_id (UUID): The deck being drilled.
            scheduler (BaseScheduler): Decision policy; defaults to a DrillScheduler sharing ``rng``.
            counters (DailyCounterStore): Daily counter store; defaults to one over ``db``.
            settings (Settings): Policy settings; defaults to the global settings.
            rng (random.Random): Source for queue shuffles and interval draws.
            clock (callable): Returns the current aware UTC time.
        """
        self.db = db
        self.user_id = user_id
        self.deck_id = deck_id
        self.settings = settings or drill_config.settings
        self.rng = rng or random.Random()
        self.scheduler = scheduler or DrillScheduler(rng=self.rng)
        self.counters = counters or DailyCounterStore(db)
        self.clock = clock or utc_now

        self.tz = resolve_timezone(self.settings.timezone)
        self.boundary_hours = self.settings.day_boundary_hours
        self.retry_delay = timedelta(minutes=self.settings.retry_delay_minutes)
        self.daily_new_cap = clamp_daily_cap(self.settings.daily_new_cap)
        self.processor = ReviewProcessor(
            db, self.scheduler, self.tz, boundary_hours=self.boundary_hours
        )

        self.main_queue: List[QueueItem] = []
        self.cursor = -1
        self.delay_queue = DelayQueue()
        self.override: Optional[QueueItem] = None
        self.attempt: Optional[Attempt] = None
        self.removed_ids: Set[UUID] = set()
        self.completed = False

        self._loaded = False
        # New lines consumed against the cap but not yet written.
        self._pending_new: Set[UUID] = set()
        self._consumed_new: Set[UUID] = set()
        self._shown_at_load: Set[UUID] = set()
        # New lines offered this day, mirrored from the counter store.
        self._queued_new: Set[UUID] = set()
        self._time_flushed_at: Optional[datetime] = None

    # --- Queue construction ---

    def today(self) -> date:
        return local_day(
            self.clock(), self.tz, boundary_hours=self.boundary_hours
        )

    def load(self) -> List[QueueItem]:
        """
        Build the main queue: shuffled due reviews, then capped new lines.

        Returns:
            The main queue.
        """
        today = self.today()
        due_items = self.db.get_due_reviews(self.user_id, self.deck_id, today)
        self.rng.shuffle(due_items)
        due_ids = {item.line_id for item in due_items}

        self._shown_at_load = self.counters.new_shown(
            self.user_id, self.deck_id, today
        )
        slots = max(0, self.daily_new_cap - len(self._shown_at_load))

        rows = self.db.get_lines_with_review_flag(self.user_id, self.deck_id)
        new_items = [
            db_utils.db_row_to_queue_item(row, is_new=True)
            for row in rows
            if not row["has_review"]
            and row["is_active"]
            and row["line_id"] not in due_ids
            and row["line_id"] not in self._shown_at_load
        ]
        self.rng.shuffle(new_items)
        new_items = new_items[:slots]

        self.main_queue = due_items + new_items
        self.cursor = -1
        self.completed = False
        self._loaded = True
        self._queued_new = {item.line_id for item in new_items}
        try:
            self.counters.set_queued_new(
                self.user_id, self.deck_id, today, self._queued_new
            )
        except CounterOperationError as e:
            logger.warning(f"Could not record new lines queued today: {e}")
        logger.info(
            f"Loaded drill queue for deck {self.deck_id}: "
            f"{len(due_items)} due, {len(new_items)} new "
            f"({slots} new slot(s) left today)."
        )
        return self.main_queue

    def start(self) -> Optional[QueueItem]:
        """Load the queue if needed and show the first line."""
        if not self._loaded:
            self.load()
        if self._time_flushed_at is None:
            self._time_flushed_at = self.clock()
        return self.pick_next()

    # --- Presentation ---

    @property
    def current(self) -> Optional[QueueItem]:
        if self.completed:
            return None
        if self.override is not None:
            return self.override
        if 0 <= self.cursor < len(self.main_queue):
            return self.main_queue[self.cursor]
        return None

    def _next_main_index(self) -> Optional[int]:
        index = self.cursor + 1
        while index < len(self.main_queue):
            if self.main_queue[index].line_id not in self.removed_ids:
                return index
            index += 1
        return None

    def _pop_delayed(self, now: Optional[datetime]) -> Optional[QueueItem]:
        """Pop the earliest ready entry, or the soonest one when ``now`` is None."""
        while True:
            if now is None:
                item = self.delay_queue.pop_soonest()
            else:
                item = self.delay_queue.pop_ready(now)
            if item is None or item.line_id not in self.removed_ids:
                return item

    def pick_next(self) -> Optional[QueueItem]:
        """
        Choose the next line to display.

        1. An elapsed same-day retry cuts in line as the override.
        2. Otherwise the next untouched main-queue item becomes current.
        3. Otherwise the soonest pending retry is shown early.
        4. Otherwise the session is complete and None is returned.
        """
        self._flush_pending_new()

        ready = self._pop_delayed(self.clock())
        if ready is not None:
            self.override = ready
            return self._present(ready)

        self.override = None
        next_index = self._next_main_index()
        if next_index is not None:
            self.cursor = next_index
            return self._present(self.main_queue[next_index])

        soonest = self._pop_delayed(None)
        if soonest is not None:
            self.override = soonest
            return self._present(soonest)

        self.cursor = len(self.main_queue) - 1
        self.attempt = None
        self.completed = True
        logger.info(f"Drill session for deck {self.deck_id} complete.")
        return None

    def _present(self, item: QueueItem) -> QueueItem:
        self.completed = False
        self.attempt = Attempt(item)
        logger.debug(f"Presenting line {item.line_id} ({item.title})")
        self._after_step(was_failed=False)
        return item

    # --- Attempt actions ---

    def _require_attempt(self) -> Attempt:
        if self.attempt is None:
            raise InvalidAttemptStateError("No line is being drilled.")
        return self.attempt

    def _require_finished(self, action: str) -> Attempt:
        attempt = self._require_attempt()
        if not attempt.finished:
            raise InvalidAttemptStateError(
                f"Cannot {action} before the line is finished."
            )
        return attempt

    def play_move(self, san: str) -> bool:
        """Submit the learner's move; returns whether it matched."""
        attempt = self._require_attempt()
        was_failed = attempt.failed
        correct = attempt.play_move(san)
        self._after_step(was_failed)
        return correct

    def show_solution(self) -> None:
        attempt = self._require_attempt()
        was_failed = attempt.failed
        attempt.show_solution()
        self._after_step(was_failed)

    def _after_step(self, was_failed: bool) -> None:
        attempt = self.attempt
        if attempt is None:
            return
        if attempt.failed and not was_failed:
            self._schedule_retry(attempt.item)
        if attempt.finished:
            self._log_event_once(strict=False)

    def _schedule_retry(self, item: QueueItem) -> None:
        ready_at = self.clock() + self.retry_delay
        self.delay_queue.schedule(item, ready_at)
        if item.is_new:
            self._pending_new.add(item.line_id)
        logger.info(
            f"Line {item.line_id} failed; retry scheduled at {ready_at.isoformat()}"
        )

    def _log_event_once(self, strict: bool) -> None:
        attempt = self.attempt
        if attempt is None or attempt.event_logged or not attempt.finished:
            return
        try:
            self.processor.log_event(self.user_id, attempt, self.clock())
        except DatabaseError as e:
            if strict:
                if isinstance(e, ReviewOperationError):
                    raise
                raise ReviewOperationError(
                    f"Failed to log attempt on line {attempt.item.line_id}: {e}",
                    original_exception=e,
                ) from e
            logger.warning(
                f"Could not log attempt on line {attempt.item.line_id}, "
                f"will retry on advance: {e}"
            )
            return
        attempt.event_logged = True

    def repeat(self) -> Optional[QueueItem]:
        """Restart the finished line at move 0 without persisting anything."""
        attempt = self._require_finished("repeat")
        self._log_event_once(strict=False)
        attempt.reset()
        self._after_step(was_failed=False)
        logger.debug(f"Repeating line {attempt.item.line_id}")
        return attempt.item

    def advance(
        self, user_choice: Optional[UserChoice] = UserChoice.NextOpening
    ) -> Optional[QueueItem]:
        """
        Persist the finished attempt's decision and move to the next line.

        Raises:
            InvalidAttemptStateError: If the attempt is still in progress.
            ReviewOperationError: If the save fails. The attempt stays
                unsaved and the queue is left as it was, so the call can be
                retried.
        """
        attempt = self._require_finished("advance")
        self._log_event_once(strict=True)
        if not attempt.saved:
            self.processor.process(
                self.user_id, attempt, user_choice, self.clock()
            )
            attempt.mark_saved()
        if attempt.item.is_new and not attempt.failed:
            self._pending_new.add(attempt.item.line_id)
        return self.pick_next()

    # --- Removal ---

    def _find_item(self, line_id: UUID) -> Optional[QueueItem]:
        if self.override is not None and self.override.line_id == line_id:
            return self.override
        for item in self.main_queue:
            if item.line_id == line_id:
                return item
        for item in self.delay_queue:
            if item.line_id == line_id:
                return item
        return None

    def remove(self, line_id: Optional[UUID] = None) -> Optional[QueueItem]:
        """
        Remove a line for good (defaults to the current line).

        The removed status is persisted first; local state only changes once
        the write succeeded. Returns the line that is current afterwards.
        """
        current = self.current
        if line_id is None:
            if current is None:
                raise InvalidAttemptStateError("There is no line to remove.")
            line_id = current.line_id

        self.db.mark_line_removed(self.user_id, line_id, self.clock())

        item = self._find_item(line_id)
        if item is not None and item.is_new:
            # A removed new line never frees its slot.
            self._pending_new.add(line_id)
        if line_id in self._queued_new:
            self._drop_queued_new(line_id)
        self.removed_ids.add(line_id)
        self.delay_queue.discard(line_id)

        for index in reversed(range(len(self.main_queue))):
            if self.main_queue[index].line_id == line_id:
                del self.main_queue[index]
                if index <= self.cursor:
                    self.cursor -= 1

        was_current = current is not None and current.line_id == line_id
        if self.override is not None and self.override.line_id == line_id:
            self.override = None
        logger.info(f"Removed line {line_id} from the session.")

        if was_current:
            self.attempt = None
            return self.pick_next()
        self._flush_pending_new()
        return self.current

    # --- Counters and shutdown ---

    def _flush_pending_new(self) -> None:
        pending = self._pending_new - self._consumed_new
        if not pending:
            self._pending_new.clear()
            return
        try:
            self.counters.mark_new_shown(
                self.user_id, self.deck_id, self.today(), sorted(pending, key=str)
            )
        except CounterOperationError as e:
            logger.warning(f"Could not record new lines shown today: {e}")
            return
        self._consumed_new |= pending
        self._pending_new.clear()

    def _drop_queued_new(self, line_id: UUID) -> None:
        self._queued_new.discard(line_id)
        try:
            self.counters.drop_queued_new(
                self.user_id, self.deck_id, self.today(), [line_id]
            )
        except CounterOperationError as e:
            logger.warning(f"Could not update new lines queued today: {e}")

    def queued_new_left(self) -> int:
        """
        New lines queued today that have not been consumed yet.

        Reads the day's queued set back from the counter store so a
        restarted session reports what the earlier one offered.
        """
        try:
            queued = self.counters.queued_new(
                self.user_id, self.deck_id, self.today()
            )
        except CounterOperationError as e:
            logger.warning(f"Could not read new lines queued today: {e}")
            queued = self._queued_new
        consumed = self._shown_at_load | self._consumed_new | self._pending_new
        return len(queued - consumed - self.removed_ids)

    def _flush_time_spent(self) -> None:
        now = self.clock()
        if self._time_flushed_at is None:
            self._time_flushed_at = now
            return
        seconds = int((now - self._time_flushed_at).total_seconds())
        if seconds <= 0:
            return
        try:
            self.counters.add_time_spent(self.user_id, self.today(), seconds)
        except CounterOperationError as e:
            logger.warning(f"Could not record time spent: {e}")
            return
        self._time_flushed_at = now

    def close(self) -> None:
        """
        Best-effort shutdown: save a finished but unsaved attempt, then flush
        the daily counters. Failures are logged, never raised.
        """
        attempt = self.attempt
        if (
            attempt is not None
            and attempt.finished
            and not attempt.saved
            and attempt.item.line_id not in self.removed_ids
        ):
            try:
                self._log_event_once(strict=True)
                self.processor.process(
                    self.user_id, attempt, UserChoice.NextOpening, self.clock()
                )
                attempt.mark_saved()
                if attempt.item.is_new and not attempt.failed:
                    self._pending_new.add(attempt.item.line_id)
            except DatabaseError as e:
                logger.warning(
                    f"Best-effort save of line {attempt.item.line_id} failed: {e}"
                )
        self._flush_pending_new()
        self._flush_time_spent()
        logger.info(f"Drill session for deck {self.deck_id} closed.")

    def stats(self) -> Dict[str, Any]:
        """Counts for display."""
        upcoming = self.main_queue[self.cursor + 1 :]
        consumed = self._shown_at_load | self._consumed_new | self._pending_new
        return {
            "queued": len(self.main_queue),
            "remaining": len(upcoming),
            "delayed": len(self.delay_queue),
            "new_remaining_today": max(0, self.daily_new_cap - len(consumed)),
            "new_queued": self.queued_new_left(),
            "recurring_due": sum(1 for item in upcoming if not item.is_new),
        }
