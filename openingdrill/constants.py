"""
Drill policy constants.

This module contains the static parameters of the drill scheduling policy.
No runtime configuration or path defaults - pure constants only.
"""
from typing import Tuple

# Hours after local midnight at which a "day" turns over. A day runs from
# 03:00 to 03:00 the next calendar day in the learner's timezone.
DAY_BOUNDARY_HOURS: int = 3

# Delay before a failed line is offered again in the same session.
RETRY_DELAY_MINUTES: int = 7

# First interval for a brand-new line passed cleanly (inclusive bounds).
NEW_INTERVAL_RANGE: Tuple[int, int] = (1, 4)

# Make-up interval after a same-day fail followed by a clean pass.
MAKEUP_INTERVAL_RANGE: Tuple[int, int] = (1, 2)

# Floor for an ordinary recurring success, and the prior interval assumed
# when a recurring line has none recorded.
MIN_INTERVAL_DAYS: int = 2
DEFAULT_PRIOR_INTERVAL_DAYS: int = 2
INTERVAL_GROWTH_FACTOR: int = 2

# Daily cap on never-attempted lines offered per deck.
DEFAULT_DAILY_NEW_CAP: int = 10
MIN_DAILY_NEW_CAP: int = 1
MAX_DAILY_NEW_CAP: int = 90
