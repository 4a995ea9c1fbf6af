# openingdrill/scheduler.py

"""
Defines the BaseScheduler abstract class and the DrillScheduler, the policy
that decides what happens to a line after each drill attempt.
"""

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_PRIOR_INTERVAL_DAYS,
    INTERVAL_GROWTH_FACTOR,
    MAKEUP_INTERVAL_RANGE,
    MIN_INTERVAL_DAYS,
    NEW_INTERVAL_RANGE,
)
from .models import ReviewStatus, UserChoice

logger = logging.getLogger(__name__)


class DrillContext(BaseModel):
    """Everything the scheduler needs to know about one finished attempt."""

    is_new: bool
    had_mistakes: bool = False
    clicked_show_solution: bool = False
    was_recurring: bool = False
    interval_days: Optional[int] = None
    user_choice: Optional[UserChoice] = None
    had_prior_fail_today: bool = False

    @property
    def failed(self) -> bool:
        return self.had_mistakes or self.clicked_show_solution


@dataclass(frozen=True)
class ReinsertToday:
    """Show the line again today: learning, due today, interval reset."""

    reinsert_today: bool = True
    status: ReviewStatus = ReviewStatus.Learning
    interval_days: int = 0
    today_offset: int = 0


@dataclass(frozen=True)
class ScheduledForward:
    """Schedule the line ``today_offset`` days ahead with a new interval."""

    interval_days: int
    today_offset: int
    counter: str
    status: ReviewStatus = ReviewStatus.Review
    reinsert_today: bool = False


Decision = Union[ReinsertToday, ScheduledForward]


def clamp_interval(value: Optional[int]) -> Optional[int]:
    """Clamp a stored interval before handing it to the scheduler."""
    if value is None:
        return None
    return max(0, int(value))


class BaseScheduler(ABC):
    """
    Abstract base class for all schedulers in openingdrill.
    """

    @abstractmethod
    def decide(self, context: DrillContext) -> Decision:
        """
        Computes the next review state of a line from one attempt's outcome.

        Args:
            context: The attempt flags and the line's prior review state.

        Returns:
            A ReinsertToday or ScheduledForward decision.
        """
        pass


class SchedulerConfig(BaseModel):
    """Configuration for the DrillScheduler."""

    new_interval_range: Tuple[int, int] = Field(default=NEW_INTERVAL_RANGE)
    makeup_interval_range: Tuple[int, int] = Field(
        default=MAKEUP_INTERVAL_RANGE
    )
    min_interval_days: int = MIN_INTERVAL_DAYS
    default_prior_interval_days: int = DEFAULT_PRIOR_INTERVAL_DAYS
    growth_factor: int = INTERVAL_GROWTH_FACTOR


class DrillScheduler(BaseScheduler):
    """
    Leitner-style doubling scheduler with randomized first intervals.

    Rules, in order:
      1. A failed attempt (mistake or revealed solution) is reinserted today.
      2. A new line passed cleanly gets a random interval in [1, 4].
      3. A recurring line that failed earlier today, passed cleanly and was
         advanced with "next opening" gets a random make-up interval in [1, 2].
      4. Any other recurring success doubles the interval, floored at 2.

    The random source is injectable so decisions can be reproduced in tests.
    """

    def __init__(
        self,
        config: Optional[SchedulerConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        if config is None:
            config = SchedulerConfig()
        self.config = config
        self.rng = rng or random.Random()

    def _draw(self, bounds: Tuple[int, int]) -> int:
        low, high = bounds
        return self.rng.randint(low, high)

    def decide(self, context: DrillContext) -> Decision:
        if context.is_new == context.was_recurring:
            # is_new is authoritative; the mismatch only comes from stale data.
            logger.debug(
                f"Inconsistent recurrence flags (is_new={context.is_new}, "
                f"was_recurring={context.was_recurring}); using is_new."
            )

        if context.failed:
            return ReinsertToday()

        if context.is_new:
            days = self._draw(self.config.new_interval_range)
            return ScheduledForward(
                interval_days=days, today_offset=days, counter="new"
            )

        if (
            context.had_prior_fail_today
            and context.user_choice == UserChoice.NextOpening
        ):
            days = self._draw(self.config.makeup_interval_range)
            return ScheduledForward(
                interval_days=days, today_offset=days, counter="recurring"
            )

        prior = context.interval_days
        if prior is None:
            prior = self.config.default_prior_interval_days
        days = max(
            self.config.min_interval_days, prior * self.config.growth_factor
        )
        return ScheduledForward(
            interval_days=days, today_offset=days, counter="recurring"
        )
