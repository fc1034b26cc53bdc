"""Coalescing refresh notification for the presentation layer."""

from __future__ import annotations

import asyncio


class RefreshSignal:
    """Any number of ``notify`` calls before a ``consume`` count as one."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def notify(self) -> None:
        self._event.set()

    def consume(self) -> bool:
        pending = self._event.is_set()
        self._event.clear()
        return pending

    async def wait(self) -> None:
        await self._event.wait()

    @property
    def pending(self) -> bool:
        return self._event.is_set()
