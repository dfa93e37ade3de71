"""Derive today's obligations from card and payment rows"""

from datetime import datetime
from typing import Iterable, List, Set
from card_reminders.domain.models import Card, NotificationKind, Obligation, Payment
from card_reminders.domain.cadence import classify_due, timing_kind, timing_offset
from card_reminders.utils.date_utils import days_until


def cards_with_unpaid_payments(payments: Iterable[Payment]) -> Set[str]:
    """Card ids that currently carry an unpaid payment"""
    return {p.card.card_id for p in payments if p.card is not None and not p.is_paid}


def payment_obligations(
    payment: Payment,
    now: datetime,
    tz: str = "UTC",
    include_partial: bool = True,
) -> List[Obligation]:
    """
    Due-or-overdue obligation for a payment, plus a partial one when a
    part of the statement has been paid and a balance remains.
    """
    if payment.due_date is None or payment.card is None:
        return []

    offset = days_until(payment.due_date, now, tz)
    timing = classify_due(offset)

    obligations = [
        Obligation(
            kind=timing_kind(timing),
            subject_id=payment.payment_id,
            day_offset=timing_offset(timing),
            card=payment.card,
            amount=payment.remaining_amount,
        )
    ]

    if include_partial and payment.is_partially_paid:
        obligations.append(
            Obligation(
                kind=NotificationKind.PARTIAL,
                subject_id=payment.payment_id,
                day_offset=offset,
                card=payment.card,
                amount=payment.remaining_amount,
                paid_amount=payment.paid_amount,
            )
        )

    return obligations


def billing_obligations(
    cards: Iterable[Card],
    payments: Iterable[Payment],
    now: datetime,
    tz: str = "UTC",
) -> List[Obligation]:
    """Billing obligations for cards without an unpaid payment"""
    suppressed = cards_with_unpaid_payments(payments)

    obligations = []
    for card in cards:
        # Due/overdue reminders already cover this bill
        if card.card_id in suppressed or card.is_archived or card.billing_date is None:
            continue
        obligations.append(
            Obligation(
                kind=NotificationKind.BILLING,
                subject_id=card.card_id,
                day_offset=days_until(card.billing_date, now, tz),
                card=card,
            )
        )
    return obligations


def derive_obligations(
    cards: List[Card],
    payments: List[Payment],
    now: datetime,
    tz: str = "UTC",
    include_partial: bool = True,
) -> List[Obligation]:
    """All obligations for one user: payments first, then billing"""
    obligations: List[Obligation] = []
    for payment in payments:
        obligations.extend(payment_obligations(payment, now, tz, include_partial))
    obligations.extend(billing_obligations(cards, payments, now, tz))
    return obligations
