"""
Fair many-producer, single-consumer merge.

Each producer owns a FIFO lane. The consumer polls lanes round-robin and
takes at most one item per lane per pass, so a fast producer never starves
a slow one while the slow one has something queued.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)


class _LaneClosed:
    """Marker returned once per lane after its last item."""

    def __repr__(self) -> str:
        return "LANE_CLOSED"


LANE_CLOSED = _LaneClosed()


class Lane:
    """One producer's ordered queue inside a FanIn."""

    def __init__(self, key: Hashable, fan_in: "FanIn", maxsize: int = 0):
        self.key = key
        self._fan_in = fan_in
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    async def put(self, item: Any) -> None:
        """Append an item, waiting while the lane is full."""
        if self.closed:
            raise RuntimeError(f"Lane {self.key!r} is closed")
        await self._queue.put(item)
        self._fan_in.wake()

    def close(self) -> None:
        """Mark the producer finished. Items already queued are still delivered."""
        if not self.closed:
            self.closed = True
            self._fan_in.wake()

    def pending(self) -> int:
        return self._queue.qsize()

    def _take(self) -> Any:
        return self._queue.get_nowait()

    def _discard(self) -> int:
        count = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            count += 1
        return count


class FanIn:
    """Round-robin merge over producer lanes."""

    def __init__(self, lane_size: int = 0):
        self.lane_size = lane_size
        self._lanes: Dict[Hashable, Lane] = {}
        self._rotation: Deque[Hashable] = deque()
        self._changed = asyncio.Event()

    def open_lane(self, key: Hashable) -> Lane:
        """Register a producer. Keys must be unique."""
        if key in self._lanes:
            raise ValueError(f"Lane {key!r} already exists")
        lane = Lane(key, self, maxsize=self.lane_size)
        self._lanes[key] = lane
        self._rotation.append(key)
        return lane

    @property
    def active(self) -> int:
        """Lanes not yet reported as closed."""
        return len(self._rotation)

    def wake(self) -> None:
        """Wake a consumer blocked in ``wait``."""
        self._changed.set()

    def poll(self) -> Optional[Tuple[Hashable, Any]]:
        """
        Take the next ready item without waiting.

        Returns:
            ``(key, item)`` for the next lane in rotation that has an item,
            ``(key, LANE_CLOSED)`` once for a closed and drained lane, or
            None when no lane is ready
        """
        # Cleared before scanning so a put racing with the scan still wakes wait()
        self._changed.clear()

        for _ in range(len(self._rotation)):
            key = self._rotation[0]
            self._rotation.rotate(-1)
            lane = self._lanes[key]

            if lane.pending():
                return key, lane._take()
            if lane.closed:
                self._rotation.pop()
                return key, LANE_CLOSED

        return None

    async def wait(self) -> None:
        """Wait until a lane changes or ``wake`` is called."""
        await self._changed.wait()

    def discard(self) -> int:
        """Drop every queued item, releasing producers blocked on full lanes."""
        dropped = sum(lane._discard() for lane in self._lanes.values())
        if dropped:
            logger.debug("Discarded %d undelivered items", dropped)
        return dropped
