"""Broadcast cancellation shared by the supervisor and all of its workers."""

import asyncio
import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class CancelSignal:
    """
    Write-once cancellation flag observed by many tasks.

    Raising it is idempotent: the first reason wins and listeners run once.
    Workers only ever read it; the supervisor or an interrupt handler sets it.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self._listeners: List[Callable[[], None]] = []

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def is_set(self) -> bool:
        return self._event.is_set()

    def set(self, reason: str = "stop requested") -> bool:
        """
        Raise the signal.

        Returns:
            True if this call raised it, False if it was already raised
        """
        if self._event.is_set():
            return False

        self._reason = reason
        self._event.set()
        logger.debug("Cancel signal raised: %s", reason)

        for listener in self._listeners:
            try:
                listener()
            except Exception as e:
                logger.error("Error in cancel listener: %s", e, exc_info=True)
        return True

    def add_listener(self, callback: Callable[[], None]) -> None:
        """Call ``callback`` when the signal is raised (immediately if it already is)."""
        if self._event.is_set():
            callback()
            return
        self._listeners.append(callback)

    async def wait(self) -> None:
        await self._event.wait()
