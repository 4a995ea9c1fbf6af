"""
Local-day arithmetic with a fixed 03:00 pivot.

Every "today" in openingdrill (due dates, daily caps, fail lookback, time
buckets) is computed here so all callers share the same boundary.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .constants import DAY_BOUNDARY_HOURS

logger = logging.getLogger(__name__)


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """Return the ZoneInfo for ``name``; unknown or empty names fall back to UTC."""
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', falling back to UTC.")
        return timezone.utc


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_aware(ts: datetime) -> datetime:
    """Assumes UTC if naive."""
    if ts.tzinfo is None or ts.tzinfo.utcoffset(ts) is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def local_day(
    now: datetime,
    tz: tzinfo,
    offset_days: int = 0,
    boundary_hours: int = DAY_BOUNDARY_HOURS,
) -> date:
    """
    Return the learner's current day, shifted so it starts at ``boundary_hours``.

    Parameters:
        now (datetime): Instant to evaluate; naive values are treated as UTC.
        tz (tzinfo): The learner's timezone.
        offset_days (int): Whole days to add after pivoting (e.g. an interval).
        boundary_hours (int): Hours after local midnight at which a day begins.

    Returns:
        date: The pivoted local day plus ``offset_days``.
    """
    local = _ensure_aware(now).astimezone(tz)
    shifted = local - timedelta(hours=boundary_hours)
    return shifted.date() + timedelta(days=offset_days)


def day_start(
    now: datetime, tz: tzinfo, boundary_hours: int = DAY_BOUNDARY_HOURS
) -> datetime:
    """
    Return the aware instant at which the current pivoted day began.

    At 02:30 local time this is 03:00 of the previous calendar day.
    """
    today = local_day(now, tz, boundary_hours=boundary_hours)
    return datetime.combine(today, time(hour=boundary_hours), tzinfo=tz)
