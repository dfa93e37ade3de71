"""Run-scoped accumulation of history entries and invalid tokens"""

import logging
from dataclasses import dataclass
from threading import Lock
from typing import List, Protocol
from card_reminders.domain.exceptions import DataStoreError
from card_reminders.domain.models import HistoryEntry
from card_reminders.infrastructure.observability.metrics import invalid_tokens_deleted_counter

logger = logging.getLogger(__name__)


class HistoryStore(Protocol):
    async def bulk_insert_history(self, entries: List[HistoryEntry]) -> int: ...

    async def bulk_delete_tokens(self, tokens: List[str]) -> int: ...


@dataclass
class FlushResult:
    history_entries: int = 0
    tokens_deleted: int = 0
    history_failed: bool = False
    cleanup_failed: bool = False


class RunRecorder:
    """
    Collects successful-send records and permanently invalid tokens across
    all users of a run, then persists both once.

    Appends are guarded by a lock so users may be processed concurrently.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._history: List[HistoryEntry] = []
        self._invalid_tokens: List[str] = []
        self._flushed = False

    def record_sent(self, entry: HistoryEntry) -> None:
        with self._lock:
            self._history.append(entry)

    def record_invalid_token(self, token: str) -> None:
        with self._lock:
            if token not in self._invalid_tokens:
                self._invalid_tokens.append(token)

    @property
    def history(self) -> List[HistoryEntry]:
        with self._lock:
            return list(self._history)

    @property
    def invalid_tokens(self) -> List[str]:
        with self._lock:
            return list(self._invalid_tokens)

    async def flush(self, store: HistoryStore) -> FlushResult:
        """
        One bulk insert and one bulk delete. Each is attempted even if the other
        fails; a second call is a no-op.
        """
        with self._lock:
            if self._flushed:
                return FlushResult()
            self._flushed = True
            history = list(self._history)
            tokens = list(self._invalid_tokens)

        result = FlushResult()

        if history:
            try:
                result.history_entries = await store.bulk_insert_history(history)
                logger.info("Inserted notification history", extra={"count": result.history_entries})
            except DataStoreError as e:
                result.history_failed = True
                logger.error(f"Failed to insert notification history: {e}", extra={"count": len(history)})

        if tokens:
            try:
                result.tokens_deleted = await store.bulk_delete_tokens(tokens)
                invalid_tokens_deleted_counter.inc(result.tokens_deleted)
                logger.info("Deleted invalid device tokens", extra={"count": result.tokens_deleted})
            except DataStoreError as e:
                result.cleanup_failed = True
                logger.error(f"Failed to delete invalid device tokens: {e}", extra={"count": len(tokens)})

        return result
