"""
Fire-time arithmetic for calendar tasks.

A task's start instant is its calendar date combined with its HH:MM time of
day on the configured local clock. No other timezone conversion happens.
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Tuple

import pytz

from server.enums import EventKind

logger = logging.getLogger(__name__)


def parse_time_of_day(value: Optional[str]) -> Optional[time]:
    """Parse 'HH:MM' into a time, or None when missing/invalid."""
    if not value:
        return None
    try:
        hours, minutes = value.strip().split(":")
        return time(int(hours), int(minutes))
    except (ValueError, AttributeError):
        return None


def start_instant(task_date: date, task_time: Optional[str], tz) -> Optional[datetime]:
    tod = parse_time_of_day(task_time)
    if task_date is None or tod is None:
        return None
    return tz.localize(datetime.combine(task_date, tod))


def fire_times(task, lead_minutes: int, tz) -> List[Tuple[EventKind, datetime]]:
    """
    Candidate (kind, instant) pairs for a task, reminder first.

    The reminder is dropped when the lead time is not positive, so a
    reminder always fires strictly before the start.
    """
    start = start_instant(task.date, task.time, tz)
    if start is None:
        logger.debug(f"Task {task.id} has no valid start time ({task.date!r} {task.time!r})")
        return []

    events = []
    if lead_minutes and lead_minutes > 0:
        reminder = start - timedelta(minutes=lead_minutes)
        if reminder < start:
            events.append((EventKind.reminder, reminder))
    events.append((EventKind.start, start))
    return events


def select_upcoming(tasks: Iterable, now: datetime, window_minutes: int, tz) -> list:
    """Incomplete, undelivered tasks of today starting within the next window."""
    horizon = now + timedelta(minutes=window_minutes)
    today = now.astimezone(tz).date()
    upcoming = []
    for task in tasks:
        if task.completed or task.start_sent or task.date != today:
            continue
        start = start_instant(task.date, task.time, tz)
        if start is not None and now <= start <= horizon:
            upcoming.append((start, task))
    upcoming.sort(key=lambda pair: pair[0])
    return [task for _, task in upcoming]


def get_timezone(name: str):
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.error(f"Unknown TIMEZONE {name!r}; falling back to UTC")
        return pytz.utc
