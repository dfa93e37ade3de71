"""Async facade over the repositories with per-call timeouts"""

import asyncio
import logging
from datetime import datetime, time
from typing import Any, Callable, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from card_reminders.config import settings
from card_reminders.domain.exceptions import DataStoreError
from card_reminders.domain.models import Card, HistoryEntry, NotificationKind, Payment, UserProfile
from card_reminders.infrastructure.database.repositories import (
    CardRepository,
    DeviceTokenRepository,
    NotificationLogRepository,
    PaymentRepository,
    SettingsRepository,
)
from card_reminders.infrastructure.observability.metrics import store_failures_counter

logger = logging.getLogger(__name__)


class NotificationStore:
    """
    Store operations the reminder engine consumes.

    Each call opens its own short-lived session and runs in a worker thread,
    so independent reads for one user can be awaited concurrently.

    Raises:
        DataStoreError: On SQLAlchemy errors or when a call exceeds the timeout
    """

    def __init__(self, session_factory: sessionmaker, timeout: float | None = None):
        self.session_factory = session_factory
        self.timeout = timeout or settings.store_timeout_seconds

    # --- reads ---

    async def users_due_at(self, slot: time) -> List[str]:
        return await self._run("users_due_at", lambda db: SettingsRepository(db).get_users_due_at(slot))

    async def user_profile(self, user_id: str) -> Optional[UserProfile]:
        return await self._run("user_profile", lambda db: SettingsRepository(db).get_profile(user_id))

    async def user_cards(self, user_id: str) -> List[Card]:
        return await self._run("user_cards", lambda db: CardRepository(db).get_active_cards(user_id))

    async def user_payments(self, user_id: str) -> List[Payment]:
        return await self._run("user_payments", lambda db: PaymentRepository(db).get_unpaid_payments(user_id))

    async def device_tokens(self, user_id: str) -> List[str]:
        return await self._run("device_tokens", lambda db: DeviceTokenRepository(db).get_tokens(user_id))

    async def last_sent_at(self, user_id: str, subject_id: str, kind: NotificationKind) -> Optional[datetime]:
        return await self._run(
            "last_sent_at",
            lambda db: NotificationLogRepository(db).get_last_sent_at(user_id, subject_id, kind),
        )

    # --- writes ---

    async def bulk_insert_history(self, entries: List[HistoryEntry]) -> int:
        if not entries:
            return 0
        return await self._run(
            "bulk_insert_history",
            lambda db: NotificationLogRepository(db).bulk_insert(entries),
            commit=True,
        )

    async def bulk_delete_tokens(self, tokens: List[str]) -> int:
        if not tokens:
            return 0
        return await self._run(
            "bulk_delete_tokens",
            lambda db: DeviceTokenRepository(db).delete_tokens(tokens),
            commit=True,
        )

    async def _run(self, operation: str, work: Callable[[Session], Any], commit: bool = False) -> Any:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._execute, work, commit),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            store_failures_counter.labels(operation=operation).inc()
            raise DataStoreError(f"Store call {operation} timed out after {self.timeout}s") from e
        except SQLAlchemyError as e:
            store_failures_counter.labels(operation=operation).inc()
            raise DataStoreError(f"Store call {operation} failed: {e}") from e

    def _execute(self, work: Callable[[Session], Any], commit: bool) -> Any:
        db = self.session_factory()
        try:
            result = work(db)
            if commit:
                db.commit()
            return result
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
