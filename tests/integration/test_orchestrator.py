"""Integration tests for the run orchestrator over SQLite and a fake gateway"""

import asyncio
import pytest
from datetime import time, timedelta
from types import SimpleNamespace
from typing import List
from unittest.mock import MagicMock, patch
from card_reminders.services import orchestrator as orchestrator_module
from card_reminders.domain.exceptions import DataStoreError
from card_reminders.domain.models import DeliveryResult, NotificationKind, PushMessage
from card_reminders.infrastructure.clients.push import FirebasePushGateway
from card_reminders.infrastructure.database.models import DeviceTokenRecord, NotificationLogRecord
from card_reminders.services.orchestrator import ReminderOrchestrator
from conftest import NOW, TODAY, FakeGateway

pytestmark = pytest.mark.integration


def _orchestrator(store, gateway, **kwargs) -> ReminderOrchestrator:
    kwargs.setdefault("reference_timezone", "UTC")
    kwargs.setdefault("include_partial", True)
    return ReminderOrchestrator(store, gateway, clock=lambda: NOW, **kwargs)


def _history(db) -> List[NotificationLogRecord]:
    return db.query(NotificationLogRecord).order_by(NotificationLogRecord.subject_id).all()


async def test_run_sends_due_reminder_and_persists_history(seed, store, gateway, db):
    seed.user("user-a", tokens=["t1", "t2"])
    seed.card("user-a", "card-1", billing_date=TODAY + timedelta(days=20), name="Millennia", last_4_digits="1234")
    seed.payment("user-a", "pay-1", "card-1", TODAY + timedelta(days=3))

    summary = await _orchestrator(store, gateway).run(now=NOW, run_id="run-1")

    assert summary.run_id == "run-1"
    assert summary.slot == "05:30"
    assert summary.users_considered == 1
    assert summary.users_processed == 1
    assert summary.reminders_sent == 1
    assert summary.history_entries == 2
    assert gateway.kinds_sent() == ["due"]
    assert sorted(gateway.calls[0].tokens) == ["t1", "t2"]

    rows = _history(db)
    assert len(rows) == 2
    assert {(r.user_id, r.subject_id, r.notification_type) for r in rows} == {("user-a", "pay-1", "due")}
    assert rows[0].payload == "/payments/pay-1"


async def test_second_run_same_day_does_not_resend_far_zone(seed, store, gateway):
    seed.user("user-a", tokens=["t1"])
    seed.card("user-a", "card-1")
    seed.payment("user-a", "pay-1", "card-1", TODAY - timedelta(days=10))

    first = await _orchestrator(store, gateway).run(now=NOW)
    second = await _orchestrator(store, gateway).run(now=NOW, run_id="retry")

    assert first.reminders_sent == 1
    assert second.reminders_sent == 0
    assert gateway.kinds_sent() == ["overdue"]


async def test_near_zone_ignores_history(seed, store, gateway):
    seed.user("user-a", tokens=["t1"])
    seed.card("user-a", "card-1")
    seed.payment("user-a", "pay-1", "card-1", TODAY + timedelta(days=2))
    seed.sent("user-a", "pay-1", NotificationKind.DUE, NOW - timedelta(hours=3))

    summary = await _orchestrator(store, gateway).run(now=NOW)

    assert summary.reminders_sent == 1


async def test_billing_reminder_for_card_without_unpaid_payment(seed, store, gateway, db):
    seed.user("user-a", tokens=["t1"])
    seed.card("user-a", "card-1", billing_date=TODAY + timedelta(days=1))

    await _orchestrator(store, gateway).run(now=NOW)

    assert gateway.kinds_sent() == ["billing"]
    assert gateway.calls[0].collapse_key == "billing-card-1"
    assert gateway.calls[0].data == {"route": "/cards/card-1"}
    assert _history(db)[0].subject_id == "card-1"


async def test_partial_payment_sends_due_and_partial(seed, store, gateway):
    seed.user("user-a", tokens=["t1"])
    seed.card("user-a", "card-1")
    seed.payment("user-a", "pay-1", "card-1", TODAY + timedelta(days=2), paid_amount=1500.0)

    await _orchestrator(store, gateway).run(now=NOW)

    assert gateway.kinds_sent() == ["due", "partial"]
    assert "₹3,000.00" in gateway.calls[1].body


async def test_partial_reminders_can_be_disabled(seed, store, gateway):
    seed.user("user-a", tokens=["t1"])
    seed.card("user-a", "card-1")
    seed.payment("user-a", "pay-1", "card-1", TODAY + timedelta(days=2), paid_amount=1500.0)

    await _orchestrator(store, gateway, include_partial=False).run(now=NOW)

    assert gateway.kinds_sent() == ["due"]


async def test_users_outside_slot_are_not_touched(seed, store, gateway):
    seed.user("user-late", tokens=["t1"], reminder_time=time(9, 0))
    seed.card("user-late", "card-1")
    seed.payment("user-late", "pay-1", "card-1", TODAY)

    summary = await _orchestrator(store, gateway).run(now=NOW)

    assert summary.users_considered == 0
    assert gateway.calls == []


async def test_fixed_reminder_time_overrides_clock(seed, store, gateway):
    seed.user("user-late", tokens=["t1"], reminder_time=time(9, 0))
    seed.card("user-late", "card-1")
    seed.payment("user-late", "pay-1", "card-1", TODAY)

    summary = await _orchestrator(store, gateway, fixed_reminder_time="09:00").run(now=NOW)

    assert summary.slot == "09:00"
    assert summary.reminders_sent == 1


async def test_user_without_tokens_is_skipped(seed, store, gateway):
    seed.user("user-a", tokens=[])
    seed.card("user-a", "card-1")
    seed.payment("user-a", "pay-1", "card-1", TODAY)

    summary = await _orchestrator(store, gateway).run(now=NOW)

    assert summary.users_skipped == 1
    assert summary.users_processed == 0
    assert gateway.calls == []


async def test_user_without_profile_is_skipped(seed, store, gateway):
    seed.user("user-a", tokens=["t1"])
    seed.card("user-a", "card-1")
    seed.payment("user-a", "pay-1", "card-1", TODAY)

    with patch.object(store, "user_profile", return_value=None):
        summary = await _orchestrator(store, gateway).run(now=NOW)

    assert summary.users_skipped == 1
    assert gateway.calls == []


async def test_missing_language_and_currency_use_defaults(seed, store, gateway):
    seed.user("user-a", tokens=["t1"], language=None, currency=None)
    seed.card("user-a", "card-1", name="Millennia")
    seed.payment("user-a", "pay-1", "card-1", TODAY)

    await _orchestrator(store, gateway).run(now=NOW)

    assert gateway.calls[0].title == "⏰ Payment Due Today: Millennia"
    assert "₹4,500.00" in gateway.calls[0].body


async def test_failed_user_does_not_abort_run(seed, store, gateway, db):
    for user_id in ("user-a", "user-b", "user-c"):
        seed.user(user_id, tokens=[f"{user_id}-token"])
        seed.card(user_id, f"{user_id}-card")
        seed.payment(user_id, f"{user_id}-pay", f"{user_id}-card", TODAY)

    load_cards = store.user_cards

    async def flaky_cards(user_id):
        if user_id == "user-b":
            raise DataStoreError("Store call user_cards timed out after 5.0s")
        return await load_cards(user_id)

    with patch.object(store, "user_cards", side_effect=flaky_cards):
        summary = await _orchestrator(store, gateway, max_concurrent_users=3).run(now=NOW)

    assert summary.users_failed == 1
    assert summary.users_processed == 2
    assert summary.reminders_sent == 2
    assert sorted(r.user_id for r in _history(db)) == ["user-a", "user-c"]


async def test_history_lookup_failure_skips_only_that_obligation(seed, store, gateway):
    seed.user("user-a", tokens=["t1"])
    seed.card("user-a", "card-1")
    seed.card("user-a", "card-2")
    seed.payment("user-a", "pay-old", "card-1", TODAY - timedelta(days=20))
    seed.payment("user-a", "pay-new", "card-2", TODAY + timedelta(days=1))

    with patch.object(store, "last_sent_at", side_effect=DataStoreError("Store call last_sent_at timed out")):
        summary = await _orchestrator(store, gateway).run(now=NOW)

    # The far-zone overdue needed history; the near-zone due did not
    assert summary.users_processed == 1
    assert gateway.kinds_sent() == ["due"]


async def test_enumeration_failure_aborts_run(store, gateway):
    with patch.object(store, "users_due_at", side_effect=DataStoreError("Store call users_due_at failed")):
        with pytest.raises(DataStoreError):
            await _orchestrator(store, gateway).run(now=NOW)

    assert gateway.calls == []


async def test_invalid_tokens_deleted_once_after_run(seed, store, db):
    seed.user("user-a", tokens=["a-good", "a-dead"])
    seed.user("user-b", tokens=["b-dead"])
    for user_id in ("user-a", "user-b"):
        seed.card(user_id, f"{user_id}-card", billing_date=TODAY)

    gateway = FakeGateway(
        error_codes={"a-dead": "registration-token-not-registered", "b-dead": "messaging/invalid-registration-token"}
    )

    deletes = []
    delete_tokens = store.bulk_delete_tokens

    async def spy(tokens):
        deletes.append(sorted(tokens))
        return await delete_tokens(tokens)

    with patch.object(store, "bulk_delete_tokens", side_effect=spy):
        summary = await _orchestrator(store, gateway, max_concurrent_users=2).run(now=NOW)

    assert deletes == [["a-dead", "b-dead"]]
    assert summary.tokens_deleted == 2
    assert [r.device_token for r in db.query(DeviceTokenRecord).all()] == ["a-good"]
    assert len(_history(db)) == 1


class BlockingGateway(FakeGateway):
    """Succeeds immediately except for one token, whose send never returns"""

    def __init__(self, blocking_token: str):
        super().__init__()
        self.blocking_token = blocking_token
        self.blocked = asyncio.Event()

    async def send_multicast(self, message: PushMessage) -> List[DeliveryResult]:
        if self.blocking_token in message.tokens:
            self.blocked.set()
            await asyncio.Event().wait()
        return await super().send_multicast(message)


async def test_cancelled_run_still_flushes_completed_users(seed, store, db):
    for user_id in ("user-a", "user-b"):
        seed.user(user_id, tokens=[f"{user_id}-token"])
        seed.card(user_id, f"{user_id}-card")
        seed.payment(user_id, f"{user_id}-pay", f"{user_id}-card", TODAY)

    gateway = BlockingGateway("user-b-token")
    task = asyncio.create_task(_orchestrator(store, gateway, max_concurrent_users=2).run(now=NOW))

    await asyncio.wait_for(gateway.blocked.wait(), timeout=5)
    for _ in range(100):
        if gateway.calls:
            break
        await asyncio.sleep(0.01)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert [r.user_id for r in _history(db)] == ["user-a"]


async def test_unexpected_load_error_fails_only_that_user(seed, store, gateway, db):
    for user_id in ("user-a", "user-b"):
        seed.user(user_id, tokens=[f"{user_id}-token"])
        seed.card(user_id, f"{user_id}-card")
        seed.payment(user_id, f"{user_id}-pay", f"{user_id}-card", TODAY)

    load_cards = store.user_cards

    async def bad_row(user_id):
        if user_id == "user-a":
            raise ValueError("bad row")
        return await load_cards(user_id)

    with patch.object(store, "user_cards", side_effect=bad_row):
        summary = await _orchestrator(store, gateway, max_concurrent_users=2).run(now=NOW)

    assert summary.users_failed == 1
    assert summary.users_processed == 1
    assert [call.tokens for call in gateway.calls] == [["user-b-token"]]
    assert [r.user_id for r in _history(db)] == ["user-b"]


async def test_unexpected_obligation_error_skips_only_that_reminder(seed, store, gateway):
    seed.user("user-a", tokens=["t1"])
    seed.card("user-a", "card-1")
    seed.card("user-a", "card-2")
    seed.payment("user-a", "pay-bad", "card-1", TODAY)
    seed.payment("user-a", "pay-good", "card-2", TODAY + timedelta(days=1))

    real_compose = orchestrator_module.compose_for

    def compose(obligation, language, currency):
        if obligation.subject_id == "pay-bad":
            raise KeyError("template")
        return real_compose(obligation, language, currency)

    with patch.object(orchestrator_module, "compose_for", side_effect=compose):
        summary = await _orchestrator(store, gateway).run(now=NOW)

    assert summary.users_processed == 1
    assert summary.reminders_sent == 1
    assert [call.collapse_key for call in gateway.calls] == ["due-pay-good"]


async def test_user_with_more_than_500_tokens_still_notified(seed, store):
    tokens = [f"t{i:03d}" for i in range(501)]
    seed.user("user-a", tokens=tokens)
    seed.card("user-a", "card-1")
    seed.payment("user-a", "pay-1", "card-1", TODAY)

    def all_succeed(multicast, app=None):
        return SimpleNamespace(responses=[SimpleNamespace(success=True, exception=None) for _ in multicast.tokens])

    gateway = FirebasePushGateway(app=MagicMock(), timeout=2.0)
    with patch("card_reminders.infrastructure.clients.push.messaging.send_each_for_multicast", side_effect=all_succeed) as send:
        summary = await _orchestrator(store, gateway).run(now=NOW)

    assert send.call_count == 2
    assert summary.users_failed == 0
    assert summary.reminders_sent == 1
    assert summary.history_entries == 501
