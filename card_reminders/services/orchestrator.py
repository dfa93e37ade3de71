"""Run orchestrator - one scheduling tick over every user due in the current slot"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, List
from card_reminders.config import settings
from card_reminders.domain.cadence import decide, in_near_zone
from card_reminders.domain.composer import compose_for
from card_reminders.domain.exceptions import DataStoreError
from card_reminders.domain.models import Obligation, RunSummary
from card_reminders.domain.obligations import derive_obligations
from card_reminders.infrastructure.database.store import NotificationStore
from card_reminders.infrastructure.observability.logging import log_run_complete
from card_reminders.infrastructure.observability.metrics import run_duration_histogram, users_counter
from card_reminders.services.dispatcher import DeliveryDispatcher, PushGateway
from card_reminders.services.recorder import RunRecorder
from card_reminders.utils.date_utils import reminder_slot

logger = logging.getLogger(__name__)

PROCESSED = "processed"
SKIPPED = "skipped"
FAILED = "failed"


class ReminderOrchestrator:
    """
    Drives a full reminder run.

    Flow:
    1. Resolve the time slot and enumerate users due in it
    2. Per user, load profile, cards, payments and tokens concurrently
    3. Derive obligations, ask the cadence evaluator, compose, dispatch
    4. Persist accumulated history and token cleanup once, even if the run is cancelled

    Failures are isolated per user and per obligation; only a failure to
    enumerate users aborts the run.
    """

    def __init__(
        self,
        store: NotificationStore,
        gateway: PushGateway,
        reference_timezone: str | None = None,
        fixed_reminder_time: str | None = None,
        max_concurrent_users: int | None = None,
        include_partial: bool | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.gateway = gateway
        self.tz = reference_timezone or settings.reference_timezone
        self.fixed_reminder_time = fixed_reminder_time if fixed_reminder_time is not None else settings.fixed_reminder_time
        self.max_concurrent_users = max(1, max_concurrent_users or settings.max_concurrent_users)
        self.include_partial = settings.partial_reminders_enabled if include_partial is None else include_partial
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def run(self, now: datetime | None = None, run_id: str | None = None) -> RunSummary:
        """
        Execute one run.

        Raises:
            DataStoreError: Users for the slot could not be enumerated
        """
        start_time = time.time()
        now = now or self.clock()
        run_id = run_id or str(uuid.uuid4())
        slot = reminder_slot(now, self.tz, self.fixed_reminder_time)
        summary = RunSummary(run_id=run_id, slot=slot.strftime("%H:%M"))

        user_ids = await self.store.users_due_at(slot)
        summary.users_considered = len(user_ids)
        if not user_ids:
            logger.debug("No users configured for this slot", extra={"run_id": run_id, "slot": summary.slot})
            return summary

        logger.info(
            "Processing reminders",
            extra={"run_id": run_id, "slot": summary.slot, "users": len(user_ids)},
        )

        recorder = RunRecorder()
        dispatcher = DeliveryDispatcher(self.gateway, recorder, clock=self.clock)
        semaphore = asyncio.Semaphore(self.max_concurrent_users)

        async def guarded(user_id: str) -> None:
            async with semaphore:
                status, sent = await self.process_user(user_id, now, dispatcher, run_id)
            users_counter.labels(outcome=status).inc()
            summary.reminders_sent += sent
            if status == PROCESSED:
                summary.users_processed += 1
            elif status == SKIPPED:
                summary.users_skipped += 1
            else:
                summary.users_failed += 1

        try:
            await asyncio.gather(*(guarded(user_id) for user_id in user_ids))
        finally:
            # Flush what completed users produced, even when cancelled mid-run
            flushed = await asyncio.shield(recorder.flush(self.store))
            summary.history_entries = flushed.history_entries
            summary.tokens_deleted = flushed.tokens_deleted

            duration = time.time() - start_time
            run_duration_histogram.observe(duration)
            log_run_complete(
                run_id,
                summary.slot,
                summary.users_processed,
                summary.users_failed,
                summary.reminders_sent,
                summary.tokens_deleted,
                duration * 1000,
            )

        return summary

    async def process_user(
        self,
        user_id: str,
        now: datetime,
        dispatcher: DeliveryDispatcher,
        run_id: str = "",
    ) -> tuple[str, int]:
        """Evaluate and deliver every obligation of one user. Returns (status, reminders sent)."""
        log_extra = {"run_id": run_id, "user_id": user_id}
        try:
            profile, cards, payments, tokens = await asyncio.gather(
                self.store.user_profile(user_id),
                self.store.user_cards(user_id),
                self.store.user_payments(user_id),
                self.store.device_tokens(user_id),
            )
        except DataStoreError as e:
            logger.error(f"Failed to load reminder inputs: {e}", extra=log_extra)
            return FAILED, 0
        except Exception as e:
            logger.exception(f"Unexpected error loading reminder inputs: {e}", extra=log_extra)
            return FAILED, 0

        if profile is None:
            logger.debug("No notification profile, skipping user", extra=log_extra)
            return SKIPPED, 0
        if not tokens:
            logger.debug("No device tokens registered, skipping user", extra=log_extra)
            return SKIPPED, 0

        language = profile.language or settings.default_language
        currency = profile.currency or settings.default_currency

        try:
            obligations = derive_obligations(cards, payments, now, self.tz, self.include_partial)
        except Exception as e:
            logger.exception(f"Unexpected error deriving obligations: {e}", extra=log_extra)
            return FAILED, 0

        sent = 0
        for obligation in obligations:
            obligation_extra = {**log_extra, "subject_id": obligation.subject_id, "kind": obligation.kind.value}
            try:
                if await self.evaluate(user_id, obligation, now, language, currency, tokens, dispatcher):
                    sent += 1
            except DataStoreError as e:
                logger.warning(f"Skipping reminder after store error: {e}", extra=obligation_extra)
            except Exception as e:
                logger.exception(f"Unexpected error evaluating reminder: {e}", extra=obligation_extra)

        return PROCESSED, sent

    async def evaluate(
        self,
        user_id: str,
        obligation: Obligation,
        now: datetime,
        language: str,
        currency: str,
        tokens: List[str],
        dispatcher: DeliveryDispatcher,
    ) -> bool:
        """Run one obligation through cadence, composer and dispatcher. True if delivered anywhere."""
        last_sent_at = None
        # History only matters outside the near zone
        if not in_near_zone(obligation.kind, obligation.day_offset):
            last_sent_at = await self.store.last_sent_at(user_id, obligation.subject_id, obligation.kind)

        if not decide(obligation.kind, obligation.day_offset, last_sent_at, now, self.tz):
            return False

        message = compose_for(obligation, language, currency)
        outcome = await dispatcher.send(user_id, obligation.subject_id, obligation.kind, message, tokens)
        return outcome.sent > 0
