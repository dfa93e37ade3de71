"""Data access layer for reminder inputs and history"""

import uuid
from datetime import datetime, time
from typing import List, Optional
from sqlalchemy import delete, func, insert
from sqlalchemy.orm import Session, joinedload
from card_reminders.infrastructure.database.models import (
    CardRecord,
    DeviceTokenRecord,
    NotificationLogRecord,
    PaymentRecord,
    SettingRecord,
)
from card_reminders.domain.models import Card, HistoryEntry, NotificationKind, Payment, UserProfile


def _to_card(record: CardRecord) -> Card:
    return Card(
        card_id=record.id,
        name=record.name,
        last_4_digits=record.last_4_digits,
        billing_date=record.billing_date,
        is_auto_debit_enabled=bool(record.is_auto_debit_enabled),
        is_archived=bool(record.is_archived),
    )


class SettingsRepository:
    """Repository for notification settings"""

    def __init__(self, db: Session):
        self.db = db

    def get_users_due_at(self, slot: time) -> List[str]:
        """User ids with notifications enabled whose reminder time matches the slot"""
        rows = (
            self.db.query(SettingRecord.user_id)
            .filter(SettingRecord.notifications_enabled.is_(True))
            .filter(SettingRecord.reminder_time == time(slot.hour, slot.minute))
            .order_by(SettingRecord.user_id)
            .all()
        )
        return [row.user_id for row in rows]

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        """Notification profile, only while notifications are enabled"""
        record = (
            self.db.query(SettingRecord)
            .filter(SettingRecord.user_id == user_id)
            .filter(SettingRecord.notifications_enabled.is_(True))
            .first()
        )
        if record is None:
            return None
        return UserProfile(
            user_id=record.user_id,
            language=record.language,
            currency=record.currency,
            notifications_enabled=record.notifications_enabled,
            reminder_time=record.reminder_time,
            utilization_alert_threshold=record.utilization_alert_threshold,
        )


class CardRepository:
    """Repository for cards"""

    def __init__(self, db: Session):
        self.db = db

    def get_active_cards(self, user_id: str) -> List[Card]:
        """Non-archived cards for a user"""
        records = (
            self.db.query(CardRecord)
            .filter(CardRecord.user_id == user_id)
            .filter(CardRecord.is_archived.is_(False))
            .order_by(CardRecord.created_at, CardRecord.id)
            .all()
        )
        return [_to_card(r) for r in records]


class PaymentRepository:
    """Repository for payments"""

    def __init__(self, db: Session):
        self.db = db

    def get_unpaid_payments(self, user_id: str) -> List[Payment]:
        """Unpaid payments joined with their card"""
        records = (
            self.db.query(PaymentRecord)
            .options(joinedload(PaymentRecord.card))
            .filter(PaymentRecord.user_id == user_id)
            .filter(PaymentRecord.is_paid.is_(False))
            .order_by(PaymentRecord.due_date, PaymentRecord.id)
            .all()
        )
        return [
            Payment(
                payment_id=r.id,
                card=_to_card(r.card),
                due_date=r.due_date,
                due_amount=r.due_amount or 0.0,
                statement_amount=r.statement_amount,
                paid_amount=r.paid_amount or 0.0,
                is_paid=bool(r.is_paid),
            )
            for r in records
            if r.card is not None
        ]


class DeviceTokenRepository:
    """Repository for push endpoints"""

    def __init__(self, db: Session):
        self.db = db

    def get_tokens(self, user_id: str) -> List[str]:
        rows = (
            self.db.query(DeviceTokenRecord.device_token)
            .filter(DeviceTokenRecord.user_id == user_id)
            .order_by(DeviceTokenRecord.created_at, DeviceTokenRecord.id)
            .all()
        )
        return [row.device_token for row in rows]

    def delete_tokens(self, tokens: List[str]) -> int:
        """Remove tokens by value across all users; returns rows deleted"""
        if not tokens:
            return 0
        result = self.db.execute(
            delete(DeviceTokenRecord).where(DeviceTokenRecord.device_token.in_(tokens))
        )
        return result.rowcount or 0


class NotificationLogRepository:
    """Repository for notification history"""

    def __init__(self, db: Session):
        self.db = db

    def get_last_sent_at(self, user_id: str, subject_id: str, kind: NotificationKind) -> Optional[datetime]:
        """Most recent send for (user, subject, kind); older entries never matter"""
        return (
            self.db.query(func.max(NotificationLogRecord.sent_at))
            .filter(NotificationLogRecord.user_id == user_id)
            .filter(NotificationLogRecord.subject_id == subject_id)
            .filter(NotificationLogRecord.notification_type == kind.value)
            .scalar()
        )

    def bulk_insert(self, entries: List[HistoryEntry]) -> int:
        """Append history rows in one statement"""
        if not entries:
            return 0
        self.db.execute(
            insert(NotificationLogRecord),
            [
                {
                    "id": str(uuid.uuid4()),
                    "user_id": e.user_id,
                    "subject_id": e.subject_id,
                    "notification_type": e.kind.value,
                    "title": e.title,
                    "body": e.body,
                    "payload": e.payload,
                    "sent_at": e.sent_at,
                }
                for e in entries
            ],
        )
        return len(entries)
