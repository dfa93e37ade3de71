"""Domain models - pure Python dataclasses representing reminder entities"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import List


class NotificationKind(str, Enum):
    """Reminder kinds tracked in notification history"""

    BILLING = "billing"
    DUE = "due"
    OVERDUE = "overdue"
    PARTIAL = "partial"


@dataclass
class Card:
    """Credit card as read from the store"""

    card_id: str
    name: str
    last_4_digits: str
    billing_date: date | None = None
    is_auto_debit_enabled: bool = False
    is_archived: bool = False


@dataclass
class Payment:
    """Unpaid statement joined with its card"""

    payment_id: str
    card: Card
    due_date: date | None
    due_amount: float = 0.0
    statement_amount: float | None = None
    paid_amount: float = 0.0
    is_paid: bool = False

    @property
    def remaining_amount(self) -> float:
        billed = self.statement_amount if self.statement_amount is not None else self.due_amount
        return max((billed or 0.0) - (self.paid_amount or 0.0), 0.0)

    @property
    def is_partially_paid(self) -> bool:
        return (self.paid_amount or 0.0) > 0 and self.remaining_amount > 0


@dataclass
class UserProfile:
    """Notification settings for a user (read-only input)"""

    user_id: str
    language: str | None
    currency: str | None
    notifications_enabled: bool = True
    reminder_time: time | None = None
    utilization_alert_threshold: int = 30


@dataclass
class Obligation:
    """Something to remind about today, derived fresh on every run"""

    kind: NotificationKind
    subject_id: str
    day_offset: int  # negative = past, 0 = today, positive = future
    card: Card
    amount: float | None = None
    paid_amount: float | None = None


@dataclass
class RenderedMessage:
    """Localized push content"""

    title: str
    body: str
    deep_link: str


@dataclass
class PushMessage:
    """One multicast request covering all of a user's tokens"""

    title: str
    body: str
    data: dict
    tokens: List[str]
    collapse_key: str


@dataclass
class DeliveryResult:
    """Per-token gateway outcome, aligned with the input token list"""

    token: str
    success: bool
    error_code: str | None = None


@dataclass
class HistoryEntry:
    """Successful send, appended to notification history"""

    user_id: str
    subject_id: str
    kind: NotificationKind
    title: str
    body: str
    payload: str
    sent_at: datetime


@dataclass
class DispatchOutcome:
    """Classified result of one multicast send"""

    sent: int = 0
    invalid_tokens: List[str] = field(default_factory=list)
    transient_failures: int = 0
    gateway_error: bool = False


@dataclass
class RunSummary:
    """Observable result of a full run"""

    run_id: str
    slot: str
    users_considered: int = 0
    users_processed: int = 0
    users_skipped: int = 0
    users_failed: int = 0
    reminders_sent: int = 0
    history_entries: int = 0
    tokens_deleted: int = 0
