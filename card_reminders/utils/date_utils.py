"""Civil-date arithmetic in a single reference time zone"""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo


def to_reference_date(moment: datetime, tz: str = "UTC") -> date:
    """Calendar date of a timestamp in the reference zone (naive values are taken as UTC)"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(tz)).date()


def civil_days_between(start: datetime, end: datetime, tz: str = "UTC") -> int:
    """Calendar days from start to end, ignoring time of day. Positive when end is later."""
    return (to_reference_date(end, tz) - to_reference_date(start, tz)).days


def days_until(target: date, now: datetime, tz: str = "UTC") -> int:
    """Signed day offset of a calendar date relative to today"""
    return (target - to_reference_date(now, tz)).days


def reminder_slot(now: datetime, tz: str = "UTC", fixed: str | None = None) -> time:
    """
    Time-of-day slot a run serves.

    A fixed "HH:MM" wins over the clock so deployments that run once a day
    can pin the slot regardless of when the trigger actually fires.
    """
    if fixed:
        return parse_slot(fixed)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(ZoneInfo(tz))
    return time(local.hour, local.minute)


def parse_slot(value: str) -> time:
    """Parse "HH:MM" (seconds are tolerated and dropped)"""
    parts = value.strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid reminder time: {value!r}")
    return time(int(parts[0]), int(parts[1]))
