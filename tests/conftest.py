"""Pytest fixtures for testing"""

import pytest
from datetime import date, datetime, time, timezone
from typing import Dict, Generator, List
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from card_reminders.api.main import create_app
from card_reminders.api.dependencies import get_orchestrator
from card_reminders.domain.exceptions import PushGatewayError
from card_reminders.domain.models import Card, DeliveryResult, NotificationKind, Payment, PushMessage
from card_reminders.infrastructure.database.models import (
    Base,
    CardRecord,
    DeviceTokenRecord,
    NotificationLogRecord,
    PaymentRecord,
    SettingRecord,
)
from card_reminders.infrastructure.database.store import NotificationStore
from card_reminders.services.orchestrator import ReminderOrchestrator

# Every run in the tests happens at the 05:30 UTC slot
NOW = datetime(2025, 3, 10, 5, 30, tzinfo=timezone.utc)
TODAY = NOW.date()


class FakeGateway:
    """In-memory push gateway: every token succeeds unless given an error code"""

    def __init__(self, error_codes: Dict[str, str] | None = None, raises: Exception | None = None):
        self.error_codes = error_codes or {}
        self.raises = raises
        self.calls: List[PushMessage] = []

    async def send_multicast(self, message: PushMessage) -> List[DeliveryResult]:
        self.calls.append(message)
        if self.raises is not None:
            raise self.raises
        return [
            DeliveryResult(
                token=token,
                success=token not in self.error_codes,
                error_code=self.error_codes.get(token),
            )
            for token in message.tokens
        ]

    def kinds_sent(self) -> List[str]:
        return [call.collapse_key.split("-", 1)[0] for call in self.calls]


class Seeder:
    """Writes rows straight through the ORM"""

    def __init__(self, db: Session):
        self.db = db

    def user(
        self,
        user_id: str,
        tokens: List[str] | None = None,
        reminder_time: time = time(5, 30),
        language: str | None = "english",
        currency: str | None = "INR",
        notifications_enabled: bool = True,
    ) -> None:
        self.db.add(
            SettingRecord(
                user_id=user_id,
                language=language,
                currency=currency,
                notifications_enabled=notifications_enabled,
                reminder_time=reminder_time,
            )
        )
        for i, token in enumerate(tokens or []):
            self.db.add(
                DeviceTokenRecord(
                    user_id=user_id,
                    device_token=token,
                    platform="android" if i % 2 == 0 else "ios",
                )
            )
        self.db.commit()

    def card(
        self,
        user_id: str,
        card_id: str,
        billing_date: date | None = None,
        name: str = "Regalia",
        last_4_digits: str = "4321",
        auto_debit: bool = False,
        archived: bool = False,
    ) -> CardRecord:
        record = CardRecord(
            id=card_id,
            user_id=user_id,
            name=name,
            last_4_digits=last_4_digits,
            billing_date=billing_date,
            is_auto_debit_enabled=auto_debit,
            is_archived=archived,
        )
        self.db.add(record)
        self.db.commit()
        return record

    def payment(
        self,
        user_id: str,
        payment_id: str,
        card_id: str,
        due_date: date,
        statement_amount: float = 4500.0,
        paid_amount: float = 0.0,
        is_paid: bool = False,
    ) -> PaymentRecord:
        record = PaymentRecord(
            id=payment_id,
            user_id=user_id,
            card_id=card_id,
            due_date=due_date,
            due_amount=statement_amount,
            statement_amount=statement_amount,
            paid_amount=paid_amount,
            is_paid=is_paid,
        )
        self.db.add(record)
        self.db.commit()
        return record

    def sent(self, user_id: str, subject_id: str, kind: NotificationKind, sent_at: datetime) -> None:
        self.db.add(
            NotificationLogRecord(
                user_id=user_id,
                subject_id=subject_id,
                notification_type=kind.value,
                title="t",
                body="b",
                payload="/p",
                sent_at=sent_at,
            )
        )
        self.db.commit()


@pytest.fixture
def session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """File-backed SQLite shared by worker threads"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def seed(db: Session) -> Seeder:
    return Seeder(db)


@pytest.fixture
def store(session_factory: sessionmaker) -> NotificationStore:
    return NotificationStore(session_factory, timeout=5.0)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def card() -> Card:
    return Card(
        card_id="card-1",
        name="Millennia",
        last_4_digits="1234",
        billing_date=TODAY,
    )


@pytest.fixture
def payment(card: Card) -> Payment:
    return Payment(
        payment_id="pay-1",
        card=card,
        due_date=TODAY,
        due_amount=4500.0,
        statement_amount=4500.0,
        paid_amount=0.0,
    )


@pytest.fixture
def failing_gateway() -> FakeGateway:
    return FakeGateway(raises=PushGatewayError("Push gateway timeout after 15.0s"))


@pytest.fixture
def client(store: NotificationStore, gateway: FakeGateway) -> TestClient:
    """API client wired to the SQLite store, the fake gateway and a frozen clock"""
    app = create_app()
    app.dependency_overrides[get_orchestrator] = lambda: ReminderOrchestrator(
        store,
        gateway,
        reference_timezone="UTC",
        clock=lambda: NOW,
    )
    return TestClient(app)
