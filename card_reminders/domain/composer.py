"""Message composer - renders localized reminder content"""

from dataclasses import dataclass
from card_reminders.domain.models import NotificationKind, Obligation, RenderedMessage
from card_reminders.domain.templates import templates_for


@dataclass
class MessageParams:
    """Everything a template needs, independent of where it came from"""

    language: str | None
    currency: str | None
    subject_id: str
    card_id: str
    card_name: str
    last_4_digits: str
    day_offset: int = 0
    amount: float | None = None
    paid_amount: float | None = None
    auto_debit: bool = False


def deep_link(kind: NotificationKind, subject_id: str) -> str:
    """Stable in-app route for the reminder's subject"""
    if kind == NotificationKind.BILLING:
        return f"/cards/{subject_id}"
    return f"/payments/{subject_id}"


def collapse_key(kind: NotificationKind, subject_id: str) -> str:
    """Identifier that lets a device replace, not stack, repeat reminders"""
    return f"{kind.value}-{subject_id}"


def compose(kind: NotificationKind, params: MessageParams) -> RenderedMessage:
    """
    Render (title, body, deep link) for a reminder.

    Total over its inputs: unknown languages fall back to English, a missing
    card name falls back to a generic label. Due wording clamps the offset at
    zero; overdue wording uses its magnitude.
    """
    strings = templates_for(params.language)
    name = (params.card_name or "").strip() or strings.card_fallback
    last4 = (params.last_4_digits or "").strip() or "----"

    if kind == NotificationKind.BILLING:
        title, body = strings.billing(name, last4, params.day_offset)
    elif kind == NotificationKind.DUE:
        amount = strings.money(params.amount, params.currency)
        title, body = strings.due(name, last4, max(params.day_offset, 0), amount, params.auto_debit)
    elif kind == NotificationKind.OVERDUE:
        amount = strings.money(params.amount, params.currency)
        title, body = strings.overdue(name, last4, abs(params.day_offset), amount, params.auto_debit)
    else:
        paid = strings.money(params.paid_amount, params.currency)
        remaining = strings.money(params.amount, params.currency)
        title, body = strings.partial(name, last4, paid, remaining)

    return RenderedMessage(title=title, body=body, deep_link=deep_link(kind, params.subject_id))


def compose_for(obligation: Obligation, language: str | None, currency: str | None) -> RenderedMessage:
    """Compose straight from a derived obligation"""
    card = obligation.card
    return compose(
        obligation.kind,
        MessageParams(
            language=language,
            currency=currency,
            subject_id=obligation.subject_id,
            card_id=card.card_id,
            card_name=card.name,
            last_4_digits=card.last_4_digits,
            day_offset=obligation.day_offset,
            amount=obligation.amount,
            paid_amount=obligation.paid_amount,
            auto_debit=card.is_auto_debit_enabled,
        ),
    )
