"""
Calendar arithmetic for task due instants.

Weekdays follow the task application's convention: 0 = Sunday ... 6 = Saturday.
All returned instants are timezone-aware UTC datetimes; wall-clock evaluation
happens in the task's timezone (or the configured default).
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil.relativedelta import relativedelta

from app.config.settings import settings
from app.db.models import Task
from app.utils.datetime_utils import to_utc
from app.utils.logging import get_logger

logger = get_logger()

_TIME_OF_DAY_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def _sunday_based_weekday(day: date) -> int:
    # date.weekday() is Monday = 0
    return (day.weekday() + 1) % 7


def _resolve_timezone(timezone_hint: Optional[str]) -> ZoneInfo:
    return ZoneInfo(timezone_hint or settings.DEFAULT_TIMEZONE)


def parse_time_of_day(value: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parse "HH:mm" into (hour, minute); None when empty or malformed."""
    if not value:
        return None
    match = _TIME_OF_DAY_PATTERN.match(value)
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def next_occurrence(
    day_of_week: int,
    hour: int,
    minute: int,
    timezone_hint: Optional[str],
    week_offset: int,
    from_date: datetime,
) -> Optional[datetime]:
    """
    Return the week_offset-th occurrence of day_of_week at hour:minute on or
    after from_date, evaluated on the wall clock of timezone_hint.

    If from_date already falls on day_of_week and hour:minute has not passed
    yet, offset 0 is that same day. Returns None (and logs) on invalid input.
    """
    try:
        if not 0 <= day_of_week <= 6:
            raise ValueError(f"day_of_week out of range: {day_of_week}")
        if week_offset < 0:
            raise ValueError(f"week_offset must not be negative: {week_offset}")

        tz = _resolve_timezone(timezone_hint)
        local_from = to_utc(from_date).astimezone(tz)

        days_ahead = (day_of_week - _sunday_based_weekday(local_from.date())) % 7
        candidate = datetime.combine(
            local_from.date() + timedelta(days=days_ahead),
            time(hour, minute),
            tzinfo=tz,
        )
        if candidate < local_from:
            candidate += timedelta(days=7)

        # Wall-clock arithmetic keeps the local time stable across DST changes
        candidate += relativedelta(weeks=week_offset)
        return candidate.astimezone(timezone.utc)

    except (ValueError, TypeError, OverflowError, ZoneInfoNotFoundError) as e:
        logger.error(
            f"Failed to compute next occurrence for day {day_of_week} "
            f"at {hour}:{minute} ({timezone_hint}): {e}"
        )
        return None


def bounded_occurrences(task: Task, now: datetime) -> Iterator[datetime]:
    """
    Lazily yield the future due instants of a weekday-recurring task.

    Without repeat_weeks the task is planned one step ahead per weekday. With
    repeat_weeks each weekday's sequence stops past the repeat window
    (repeat_start_date + repeat_weeks weeks) and after repeat_weeks * 2 steps.
    """
    time_of_day = parse_time_of_day(task.available_days_time)
    if not task.available_days or time_of_day is None:
        return

    hour, minute = time_of_day
    now = to_utc(now)
    weekdays = sorted(set(task.available_days))

    if not task.repeat_weeks or task.repeat_weeks <= 0:
        for day_of_week in weekdays:
            occurrence = next_occurrence(
                day_of_week, hour, minute, task.user_timezone, 0, now
            )
            if occurrence is not None:
                yield occurrence
        return

    window_start = (
        to_utc(task.repeat_start_date) if task.repeat_start_date is not None else now
    )
    window_end = window_start + relativedelta(weeks=task.repeat_weeks)
    search_from = max(now, window_start)
    max_steps = task.repeat_weeks * 2

    for day_of_week in weekdays:
        for week_offset in range(max_steps):
            occurrence = next_occurrence(
                day_of_week, hour, minute, task.user_timezone, week_offset, search_from
            )
            if occurrence is None or occurrence > window_end:
                break
            yield occurrence
