"""Time-windowed record of locally modified messages.

While a message id is guarded the reconciler neither upserts it nor infers its
removal from a label. Entries older than the grace window are inert and get
purged opportunistically.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable

import structlog

logger = structlog.get_logger()

DEFAULT_GRACE_SECONDS = 300.0


class ModificationGuard:
    """Thread-safe map of message id -> time of the last local mutation."""

    def __init__(
        self,
        grace_seconds: float = DEFAULT_GRACE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.grace_seconds = grace_seconds
        self._clock = clock
        self._entries: dict[str, float] = {}
        self._lock = threading.Lock()

    def mark(self, message_ids: Iterable[str]) -> None:
        now = self._clock()
        with self._lock:
            for message_id in message_ids:
                self._entries[message_id] = now

    def unmark(self, message_ids: Iterable[str]) -> None:
        with self._lock:
            for message_id in message_ids:
                self._entries.pop(message_id, None)

    def is_guarded(self, message_id: str) -> bool:
        now = self._clock()
        with self._lock:
            marked_at = self._entries.get(message_id)
        return marked_at is not None and now - marked_at < self.grace_seconds

    def purge_expired(self) -> int:
        """Drop stale entries and return how many were removed."""

        now = self._clock()
        with self._lock:
            expired = [
                message_id
                for message_id, marked_at in self._entries.items()
                if now - marked_at >= self.grace_seconds
            ]
            for message_id in expired:
                del self._entries[message_id]
        if expired:
            logger.debug("modification_guard_purged", count=len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
