"""Sync progress shared between the reconciler and the presentation layer."""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class SyncSnapshot:
    synced_labels: frozenset[str]
    currently_syncing: str | None


class SyncProgress:
    """Which labels were synced at least once and which one is in flight.

    Only the reconciler writes; readers take a snapshot.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._synced: set[str] = set()
        self._current: str | None = None

    def reset(self) -> None:
        with self._lock:
            self._synced.clear()
            self._current = None

    def begin(self, label_id: str) -> None:
        with self._lock:
            self._current = label_id

    def finish(self, label_id: str, synced: bool = True) -> None:
        with self._lock:
            if synced:
                self._synced.add(label_id)
            if self._current == label_id:
                self._current = None

    def is_synced(self, label_id: str) -> bool:
        with self._lock:
            return label_id in self._synced

    def snapshot(self) -> SyncSnapshot:
        with self._lock:
            return SyncSnapshot(frozenset(self._synced), self._current)
