"""Single-slot priority hint from navigation to the reconciler."""

from __future__ import annotations

import asyncio

import structlog

logger = structlog.get_logger()

DEFAULT_CAPACITY = 16


class PriorityQueue:
    """Bounded queue of label ids the user looked at.

    ``push`` never blocks. The reconciler drains everything at the start of a
    cycle and only honours the last id it saw.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=capacity)

    def push(self, label_id: str) -> None:
        try:
            self._queue.put_nowait(label_id)
        except asyncio.QueueFull:
            # Evict the oldest hint so the newest one survives.
            self._queue.get_nowait()
            self._queue.put_nowait(label_id)
        logger.debug("sync_priority_pushed", label_id=label_id)

    def drain(self) -> str | None:
        last: str | None = None
        while True:
            try:
                last = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return last

    def __len__(self) -> int:
        return self._queue.qsize()
