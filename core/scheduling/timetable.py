"""Pure timetable arithmetic for weekly class schedules.

Nothing here touches a timer or the database, so the scheduler can be driven
from any clock: given ``now`` and a schedule, compute when the next
attendance window opens and closes.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional, Tuple


DAILY = 'Daily'
WEEKDAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')


class ScheduleError(ValueError):
    """Raised when a class schedule carries malformed time or day fields."""


@dataclass(frozen=True)
class TriggerTimes:
    open_at: datetime
    close_at: datetime


def parse_time_of_day(value: str) -> Tuple[int, int]:
    """Parse a 24-hour ``HH:MM`` string into ``(hour, minute)``."""
    if not isinstance(value, str):
        raise ScheduleError(f"Invalid time {value!r}, expected HH:MM")
    parts = value.strip().split(':')
    if len(parts) != 2 or not all(p.strip().isdigit() for p in parts):
        raise ScheduleError(f"Invalid time {value!r}, expected HH:MM")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ScheduleError(f"Invalid time {value!r}, out of range")
    return hour, minute


def minutes_since_midnight(value: str) -> int:
    hour, minute = parse_time_of_day(value)
    return hour * 60 + minute


def compute_duration(start_time: str, end_time: str) -> int:
    """Class length in minutes; the end must fall after the start on the same day."""
    duration = minutes_since_midnight(end_time) - minutes_since_midnight(start_time)
    if duration <= 0:
        raise ScheduleError('End time must be after start time')
    return duration


def normalize_day_of_week(value: Optional[str]) -> str:
    """Return ``Daily`` or a canonical weekday name; blank means ``Daily``."""
    if value is None or not str(value).strip():
        return DAILY
    cleaned = str(value).strip().capitalize()
    if cleaned == DAILY or cleaned in WEEKDAYS:
        return cleaned
    raise ScheduleError(f"Invalid day of week: {value}")


def required_duration_seconds(class_duration_seconds: float, fraction: float) -> int:
    return int(math.floor(class_duration_seconds * fraction))


def next_occurrence(now: datetime, schedule: Mapping[str, Any]) -> datetime:
    """
    Next start of ``schedule`` at or after ``now``.

    ``now`` decides the time zone of the result. A start that equals ``now``
    is due immediately rather than pushed to the next cycle.
    """
    hour, minute = parse_time_of_day(schedule['start_time'])
    day = normalize_day_of_week(schedule.get('day_of_week'))
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)

    if day == DAILY:
        if candidate < now:
            candidate += timedelta(days=1)
        return candidate

    days_ahead = (WEEKDAYS.index(day) - now.weekday()) % 7
    candidate += timedelta(days=days_ahead)
    if candidate < now:
        candidate += timedelta(days=7)
    return candidate


def compute_trigger_times(schedule: Mapping[str, Any], now: datetime) -> TriggerTimes:
    open_at = next_occurrence(now, schedule)
    duration = schedule.get('duration')
    if not duration:
        duration = compute_duration(schedule['start_time'], schedule['end_time'])
    return TriggerTimes(open_at=open_at, close_at=open_at + timedelta(minutes=int(duration)))


def schedule_signature(schedule: Mapping[str, Any]) -> Tuple[Any, ...]:
    """Fields whose change forces the next trigger to be recomputed."""
    return (
        schedule.get('start_time'),
        schedule.get('end_time'),
        schedule.get('day_of_week'),
        schedule.get('duration'),
    )
