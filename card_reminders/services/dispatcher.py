"""Delivery dispatcher - one multicast per reminder, per-token classification"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Protocol
from card_reminders.domain.composer import collapse_key
from card_reminders.domain.exceptions import PushGatewayError
from card_reminders.domain.models import (
    DeliveryResult,
    DispatchOutcome,
    HistoryEntry,
    NotificationKind,
    PushMessage,
    RenderedMessage,
)
from card_reminders.infrastructure.observability.metrics import delivery_failure_counter, record_delivery
from card_reminders.services.recorder import RunRecorder

logger = logging.getLogger(__name__)

# Codes meaning the token will never work again
PERMANENT_TOKEN_ERRORS = frozenset(
    {
        "registration-token-not-registered",
        "invalid-registration-token",
        "not-found",
    }
)


class PushGateway(Protocol):
    async def send_multicast(self, message: PushMessage) -> List[DeliveryResult]: ...


def is_permanent_failure(error_code: str | None) -> bool:
    if not error_code:
        return False
    return error_code.lower().removeprefix("messaging/") in PERMANENT_TOKEN_ERRORS


class DeliveryDispatcher:
    """Sends a rendered reminder to every endpoint of a user and feeds the recorder"""

    def __init__(
        self,
        gateway: PushGateway,
        recorder: RunRecorder,
        clock: Callable[[], datetime] | None = None,
    ):
        self.gateway = gateway
        self.recorder = recorder
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def send(
        self,
        user_id: str,
        subject_id: str,
        kind: NotificationKind,
        message: RenderedMessage,
        tokens: List[str],
    ) -> DispatchOutcome:
        """
        Deliver one reminder as a single multicast call.

        - success: a history entry is recorded (persisted at run end)
        - permanent failure: the token is queued for deletion
        - transient failure: dropped; the cadence rule retries next run
        A failed or timed-out batch is logged and yields an empty outcome.
        """
        outcome = DispatchOutcome()
        if not tokens:
            return outcome

        push = PushMessage(
            title=message.title,
            body=message.body,
            data={"route": message.deep_link},
            tokens=list(tokens),
            collapse_key=collapse_key(kind, subject_id),
        )

        try:
            results = await self.gateway.send_multicast(push)
        except PushGatewayError as e:
            outcome.gateway_error = True
            delivery_failure_counter.labels(kind=kind.value, reason="gateway_error").inc()
            logger.error(
                f"Push gateway error: {e}",
                extra={"user_id": user_id, "subject_id": subject_id, "kind": kind.value},
            )
            return outcome

        sent_at = self.clock()
        for result in results:
            if result.success:
                outcome.sent += 1
                self.recorder.record_sent(
                    HistoryEntry(
                        user_id=user_id,
                        subject_id=subject_id,
                        kind=kind,
                        title=message.title,
                        body=message.body,
                        payload=message.deep_link,
                        sent_at=sent_at,
                    )
                )
                continue

            logger.warning(
                "Push delivery failed for token",
                extra={
                    "user_id": user_id,
                    "subject_id": subject_id,
                    "kind": kind.value,
                    "token": result.token,
                    "error_code": result.error_code,
                },
            )
            if is_permanent_failure(result.error_code):
                outcome.invalid_tokens.append(result.token)
                self.recorder.record_invalid_token(result.token)
            else:
                outcome.transient_failures += 1

        record_delivery(kind.value, outcome.sent, len(outcome.invalid_tokens), outcome.transient_failures)
        return outcome
