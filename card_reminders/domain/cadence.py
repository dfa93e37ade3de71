"""Cadence evaluator - decides whether a reminder fires today"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Union
from card_reminders.domain.models import NotificationKind
from card_reminders.utils.date_utils import civil_days_between


@dataclass(frozen=True)
class CadenceRule:
    """
    Near zone and far-zone throttle for one reminder kind.

    near_days: width of the window (in days) where the reminder fires every run.
               None means the kind has no near zone.
    repeat_interval_days: minimum civil days between sends outside the near zone.
    """

    near_days: int | None
    repeat_interval_days: int


CADENCE_RULES: Dict[NotificationKind, CadenceRule] = {
    NotificationKind.DUE: CadenceRule(near_days=5, repeat_interval_days=3),
    NotificationKind.OVERDUE: CadenceRule(near_days=7, repeat_interval_days=3),
    NotificationKind.BILLING: CadenceRule(near_days=3, repeat_interval_days=3),
    NotificationKind.PARTIAL: CadenceRule(near_days=None, repeat_interval_days=3),
}


@dataclass(frozen=True)
class DueSoon:
    """Payment due in the future"""

    days_until: int


@dataclass(frozen=True)
class DueToday:
    """Payment due today"""

    pass


@dataclass(frozen=True)
class PastDue:
    """Payment past its due date"""

    days_overdue: int


PaymentTiming = Union[DueSoon, DueToday, PastDue]


def classify_due(day_offset: int) -> PaymentTiming:
    """Map a signed due-date offset onto exactly one timing variant"""
    if day_offset > 0:
        return DueSoon(days_until=day_offset)
    if day_offset == 0:
        return DueToday()
    return PastDue(days_overdue=-day_offset)


def timing_kind(timing: PaymentTiming) -> NotificationKind:
    """Due and overdue are mutually exclusive: the timing variant picks one"""
    if isinstance(timing, (DueSoon, DueToday)):
        return NotificationKind.DUE
    if isinstance(timing, PastDue):
        return NotificationKind.OVERDUE
    raise TypeError(f"Unknown payment timing: {timing!r}")


def timing_offset(timing: PaymentTiming) -> int:
    """Signed day offset back from a timing variant"""
    if isinstance(timing, DueSoon):
        return timing.days_until
    if isinstance(timing, DueToday):
        return 0
    if isinstance(timing, PastDue):
        return -timing.days_overdue
    raise TypeError(f"Unknown payment timing: {timing!r}")


def in_near_zone(kind: NotificationKind, day_offset: int) -> bool:
    """
    Whether the offset sits in the kind's always-fire window.

    - due:     0 <= offset <= 5 (today included)
    - overdue: offset < 0 and |offset| <= 7
    - billing: |offset| <= 3 (billing day included)
    - partial: never
    """
    rule = CADENCE_RULES[kind]
    if rule.near_days is None:
        return False

    if kind == NotificationKind.DUE:
        return 0 <= day_offset <= rule.near_days
    if kind == NotificationKind.OVERDUE:
        return day_offset < 0 and -day_offset <= rule.near_days
    return abs(day_offset) <= rule.near_days


def decide(
    kind: NotificationKind,
    day_offset: int,
    last_sent_at: datetime | None,
    now: datetime,
    tz: str = "UTC",
) -> bool:
    """
    Decide whether a reminder of this kind fires today.

    Near zone: always. Far zone: on first touch (no history), otherwise once
    the civil-day gap since the last send of this kind reaches the repeat interval.
    """
    if in_near_zone(kind, day_offset):
        return True

    if last_sent_at is None:
        return True

    days_since_last_send = civil_days_between(last_sent_at, now, tz)
    return days_since_last_send >= CADENCE_RULES[kind].repeat_interval_days
