"""
Shared review processing logic for openingdrill.

The ReviewProcessor turns one finished attempt into a scheduler decision and
persists it:
1. Timestamp handling
2. Same-day fail lookback
3. Scheduler decision
4. Review row construction and upsert
5. Error handling
"""

import logging
from datetime import datetime, tzinfo
from typing import Optional, Tuple

from .attempt import Attempt
from .constants import DAY_BOUNDARY_HOURS
from .day_boundary import day_start, local_day, utc_now
from .db.database import DrillDatabase
from .exceptions import DatabaseError, InvalidAttemptStateError, ReviewOperationError
from .models import Outcome, Review, ReviewEvent, UserChoice
from .scheduler import BaseScheduler, Decision, DrillContext, clamp_interval

# Initialize logger
logger = logging.getLogger(__name__)


class ReviewProcessor:
    """
    Applies the scheduler to finished attempts and writes the outcome.

    Writes are idempotent per (user, line): processing the same decision twice
    overwrites the same review row. The event log is append-only, so callers
    guard ``log_event`` with the attempt's ``event_logged`` flag.
    """

    def __init__(
        self,
        db_manager: DrillDatabase,
        scheduler: BaseScheduler,
        tz: tzinfo,
        boundary_hours: int = DAY_BOUNDARY_HOURS,
    ):
        """
        Initialize the ReviewProcessor.

        Args:
            db_manager: Database facade used for persistence
            scheduler: Scheduler computing the next review state
            tz: The learner's timezone, used for every "today"
            boundary_hours: Local hour at which a new day begins
        """
        self.db_manager = db_manager
        self.scheduler = scheduler
        self.tz = tz
        self.boundary_hours = boundary_hours

    def had_prior_fail_today(
        self, user_id: str, attempt: Attempt, now: datetime
    ) -> bool:
        since = day_start(now, self.tz, boundary_hours=self.boundary_hours)
        fails = self.db_manager.count_fail_events_since(
            user_id, attempt.item.line_id, since
        )
        return fails > 0

    def build_context(
        self,
        user_id: str,
        attempt: Attempt,
        user_choice: Optional[UserChoice],
        now: datetime,
    ) -> DrillContext:
        item = attempt.item
        # The lookback only matters for a clean recurring pass.
        prior_fail = False
        if not attempt.failed and not item.is_new:
            prior_fail = self.had_prior_fail_today(user_id, attempt, now)
        return DrillContext(
            is_new=item.is_new,
            had_mistakes=attempt.had_mistakes,
            clicked_show_solution=attempt.clicked_show_solution,
            was_recurring=not item.is_new,
            interval_days=clamp_interval(item.interval_days),
            user_choice=user_choice,
            had_prior_fail_today=prior_fail,
        )

    def process(
        self,
        user_id: str,
        attempt: Attempt,
        user_choice: Optional[UserChoice] = UserChoice.NextOpening,
        reviewed_at: Optional[datetime] = None,
    ) -> Tuple[Decision, Review]:
        """
        Decide and persist the next review state for a finished attempt.

        Args:
            user_id: The learner
            attempt: A finished attempt
            user_choice: The explicit action taken after the attempt
            reviewed_at: Timestamp of the decision (defaults to now)

        Returns:
            The scheduler decision and the review row that was written.

        Raises:
            InvalidAttemptStateError: If the attempt is still in progress
            ReviewOperationError: If the lookback or the upsert fails
        """
        if not attempt.finished:
            raise InvalidAttemptStateError(
                "Cannot save an attempt that is still in progress."
            )
        ts = reviewed_at or utc_now()
        line_id = attempt.item.line_id

        logger.debug(
            f"Processing attempt on line {line_id} "
            f"(outcome={attempt.outcome.value}, choice={user_choice})"
        )

        try:
            context = self.build_context(user_id, attempt, user_choice, ts)
            decision = self.scheduler.decide(context)
            review = Review(
                user_id=user_id,
                line_id=line_id,
                status=decision.status,
                due_on=local_day(
                    ts,
                    self.tz,
                    offset_days=decision.today_offset,
                    boundary_hours=self.boundary_hours,
                ),
                interval_days=decision.interval_days,
                last_result=Outcome.Fail if attempt.failed else Outcome.Pass,
                last_seen_at=ts,
            )
            self.db_manager.upsert_review(review)
        except ReviewOperationError:
            logger.exception(f"Failed to save review for line {line_id}")
            raise
        except DatabaseError as e:
            logger.exception(f"Failed to save review for line {line_id}")
            raise ReviewOperationError(
                f"Failed to save review for line {line_id}: {e}",
                original_exception=e,
            ) from e

        logger.debug(
            f"Line {line_id} scheduled: {review.status.value}, "
            f"due {review.due_on}, interval {review.interval_days}"
        )
        return decision, review

    def log_event(
        self,
        user_id: str,
        attempt: Attempt,
        seen_at: Optional[datetime] = None,
    ) -> int:
        """Append the finished attempt's outcome to the event log."""
        if attempt.outcome is None:
            raise InvalidAttemptStateError(
                "Cannot log an attempt that is still in progress."
            )
        event = ReviewEvent(
            user_id=user_id,
            line_id=attempt.item.line_id,
            result=attempt.outcome,
            seen_at=seen_at or utc_now(),
        )
        return self.db_manager.append_review_event(event)
