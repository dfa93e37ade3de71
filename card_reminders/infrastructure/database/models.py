"""SQLAlchemy ORM models for the tables the reminder engine reads and writes"""

import uuid
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class CardRecord(Base):
    """Credit card owned by a user"""

    __tablename__ = "cards"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    name = Column(Text, nullable=False)
    last_4_digits = Column(Text, nullable=False)
    billing_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True)
    is_archived = Column(Boolean, nullable=False, default=False)
    is_auto_debit_enabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    payments = relationship("PaymentRecord", back_populates="card", cascade="all, delete-orphan")


class PaymentRecord(Base):
    """Statement payment for a card"""

    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    card_id = Column(String(36), ForeignKey("cards.id", ondelete="CASCADE"), nullable=False)
    due_date = Column(Date, nullable=True)
    due_amount = Column(Float, nullable=True)
    minimum_due_amount = Column(Float, nullable=True)
    statement_amount = Column(Float, nullable=True)
    paid_amount = Column(Float, nullable=True)
    is_paid = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    card = relationship("CardRecord", back_populates="payments")


class SettingRecord(Base):
    """Per-user app settings; the engine only reads the notification fields"""

    __tablename__ = "settings"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, unique=True)
    language = Column(Text, nullable=True)
    currency = Column(Text, nullable=True)
    notifications_enabled = Column(Boolean, nullable=False, default=True)
    reminder_time = Column(Time, nullable=True)
    utilization_alert_threshold = Column(Integer, nullable=False, default=30)

    __table_args__ = (Index("ix_settings_reminder", "notifications_enabled", "reminder_time"),)


class DeviceTokenRecord(Base):
    """Registered push endpoint"""

    __tablename__ = "device_tokens"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    device_token = Column(Text, nullable=False)
    platform = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "device_token", name="unique_user_token"),
        CheckConstraint("platform in ('android', 'ios')", name="ck_device_tokens_platform"),
    )


class NotificationLogRecord(Base):
    """Append-only history of successful sends"""

    __tablename__ = "notification_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False)
    subject_id = Column(Text, nullable=False)
    notification_type = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    payload = Column(Text, nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_notification_logs_lookup", "user_id", "subject_id", "notification_type", "sent_at"),
    )
