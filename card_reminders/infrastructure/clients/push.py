"""Firebase Cloud Messaging client for multicast reminder delivery"""

import asyncio
import json
import logging
import warnings
from typing import List, Sequence
import firebase_admin
from firebase_admin import credentials, exceptions, messaging
from card_reminders.config import settings
from card_reminders.domain.exceptions import ConfigurationError, PushGatewayError
from card_reminders.domain.models import DeliveryResult, PushMessage
from card_reminders.infrastructure.observability.metrics import gateway_latency_histogram

logger = logging.getLogger(__name__)

# FCM caps one multicast at 500 recipients
MAX_MULTICAST_TOKENS = 500

# Reported for tokens of a sub-batch whose send failed as a whole; not a token error
BATCH_FAILED = "batch-failed"


def error_code_for(exc: Exception | None) -> str:
    """Translate a per-token firebase-admin exception into a gateway error code"""
    # Subclasses first: UnregisteredError is a NotFoundError, QuotaExceededError a ResourceExhaustedError
    if isinstance(exc, messaging.UnregisteredError):
        return "registration-token-not-registered"
    if isinstance(exc, messaging.SenderIdMismatchError):
        return "mismatched-credential"
    if isinstance(exc, messaging.QuotaExceededError):
        return "message-rate-exceeded"
    if isinstance(exc, messaging.ThirdPartyAuthError):
        return "third-party-auth-error"
    if isinstance(exc, exceptions.InvalidArgumentError):
        # INVALID_ARGUMENT also covers payload problems; only a rejected token is a token error
        if "registration token" in str(exc).lower():
            return "invalid-registration-token"
        return "invalid-argument"
    if isinstance(exc, exceptions.NotFoundError):
        return "not-found"
    if isinstance(exc, exceptions.UnavailableError):
        return "server-unavailable"
    if isinstance(exc, exceptions.FirebaseError):
        return str(exc.code).lower().replace("_", "-")
    return "unknown-error"


def build_multicast(message: PushMessage, tokens: Sequence[str] | None = None) -> messaging.MulticastMessage:
    """
    FCM multicast with the collapse key applied on both platforms.

    Stored values are FCM registration tokens, not installation IDs, so they
    go in `tokens`; newer firebase-admin releases flag that argument as
    deprecated in favour of `fids`.
    """
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", DeprecationWarning)
        return messaging.MulticastMessage(
            tokens=list(message.tokens if tokens is None else tokens),
            notification=messaging.Notification(title=message.title, body=message.body),
            data={k: str(v) for k, v in message.data.items()},
            android=messaging.AndroidConfig(
                collapse_key=message.collapse_key,
                notification=messaging.AndroidNotification(tag=message.collapse_key),
            ),
            apns=messaging.APNSConfig(headers={"apns-collapse-id": message.collapse_key}),
        )


class FirebasePushGateway:
    """Client for the push delivery gateway"""

    def __init__(self, app: firebase_admin.App, timeout: float | None = None):
        self.app = app
        self.timeout = timeout or settings.push_timeout_seconds

    @classmethod
    def from_settings(cls, service_account_json: str | None = None, app_name: str | None = None) -> "FirebasePushGateway":
        """
        Initialize (or reuse) the named firebase-admin app.

        Raises:
            ConfigurationError: Service account missing or unusable
        """
        raw = service_account_json or settings.firebase_service_account_json
        name = app_name or settings.firebase_app_name
        if not raw:
            raise ConfigurationError("FIREBASE_SERVICE_ACCOUNT_JSON is not configured")

        try:
            return cls(firebase_admin.get_app(name))
        except ValueError:
            pass

        try:
            credential = credentials.Certificate(json.loads(raw))
            app = firebase_admin.initialize_app(credential, name=name)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Firebase Admin SDK initialization failed: {e}") from e
        return cls(app)

    async def send_multicast(self, message: PushMessage) -> List[DeliveryResult]:
        """
        Send the message to every token, in multicast batches of at most 500.

        Returns results indexed identically to message.tokens. When one batch
        fails as a whole, its tokens are reported as BATCH_FAILED so the other
        batches' outcomes are kept.

        Raises:
            PushGatewayError: On timeout or when every batch call fails
        """
        if not message.tokens:
            return []

        results: List[DeliveryResult] = []
        failures: List[PushGatewayError] = []
        batches = [
            message.tokens[start:start + MAX_MULTICAST_TOKENS]
            for start in range(0, len(message.tokens), MAX_MULTICAST_TOKENS)
        ]
        for tokens in batches:
            try:
                results.extend(await self._send_batch(message, tokens))
            except PushGatewayError as e:
                failures.append(e)
                logger.warning(
                    f"Multicast batch failed: {e}",
                    extra={"collapse_key": message.collapse_key, "tokens": len(tokens)},
                )
                results.extend(DeliveryResult(token=t, success=False, error_code=BATCH_FAILED) for t in tokens)

        if len(failures) == len(batches):
            raise failures[-1]
        return results

    async def _send_batch(self, message: PushMessage, tokens: List[str]) -> List[DeliveryResult]:
        try:
            multicast = build_multicast(message, tokens)
            with gateway_latency_histogram.time():
                batch = await asyncio.wait_for(
                    asyncio.to_thread(messaging.send_each_for_multicast, multicast, app=self.app),
                    timeout=self.timeout,
                )
        except asyncio.TimeoutError as e:
            raise PushGatewayError(f"Push gateway timeout after {self.timeout}s") from e
        except (exceptions.FirebaseError, ValueError) as e:
            raise PushGatewayError(f"Push gateway error: {e}") from e

        return [
            DeliveryResult(
                token=token,
                success=response.success,
                error_code=None if response.success else error_code_for(response.exception),
            )
            for token, response in zip(tokens, batch.responses)
        ]
