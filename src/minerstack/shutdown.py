"""Broadcast shutdown token shared by every manager and watcher."""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class ShutdownSignal:
    """Read-only view of a :class:`Shutdown`; cheap to hand to every component."""

    def __init__(self, event: asyncio.Event) -> None:
        self._event = event

    @property
    def is_triggered(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep for ``seconds``; return ``False`` early if shutdown was triggered."""
        if self._event.is_set():
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:  # policy_guard: allow-silent-handler
            return True
        return False


class Shutdown:
    """Created once per session; triggering it is observed by every holder of :meth:`to_signal`."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._signal = ShutdownSignal(self._event)

    def trigger(self) -> None:
        if not self._event.is_set():
            logger.info("Shutdown triggered")
        self._event.set()

    @property
    def is_triggered(self) -> bool:
        return self._event.is_set()

    def to_signal(self) -> ShutdownSignal:
        return self._signal


__all__ = ["Shutdown", "ShutdownSignal"]
