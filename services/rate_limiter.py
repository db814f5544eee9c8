import asyncio
import logging
import time
import uuid
from collections import deque
from typing import Awaitable, Callable, Deque, Dict, Optional

from constants import RATE_LIMIT_CAPACITY, RATE_LIMIT_PERIOD

logger = logging.getLogger(__name__)

Merger = Callable[[str], bool]


def never_merge(_: str) -> bool:
    return False


class SlidingWindow:
    """At most `capacity` acquisitions in any `period` seconds, served in FIFO order."""

    def __init__(
        self,
        capacity: int,
        period: float,
        clock: Callable[[], float],
        sleep: Callable[[float], Awaitable[None]],
    ):
        self._capacity = capacity
        self._period = period
        self._clock = clock
        self._sleep = sleep
        self._taken: Deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                now = self._clock()
                while self._taken and now - self._taken[0] >= self._period:
                    self._taken.popleft()
                if len(self._taken) < self._capacity:
                    self._taken.append(now)
                    return
                await self._sleep(self._taken[0] + self._period - now)


class Bucket:
    def __init__(self, window: SlidingWindow):
        self.window = window
        self.waiters: Dict[str, Merger] = {}
        self.lock = asyncio.Lock()


class RateLimiter:
    """
    Per channel send limiter that folds new content into messages still
    waiting for their turn.

    `limit` returns True when the caller holds a send slot and must send its
    (possibly grown) content, or False when the content was handed to a
    pending waiter of the same channel and must not be sent.
    """

    def __init__(
        self,
        capacity: int = RATE_LIMIT_CAPACITY,
        period: float = RATE_LIMIT_PERIOD,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._capacity = capacity
        self._period = period
        self._clock = clock
        self._sleep = sleep
        self._buckets: Dict[str, Bucket] = {}
        self._lock = asyncio.Lock()

    async def _bucket(self, channel_id: str) -> Bucket:
        async with self._lock:
            bucket = self._buckets.get(channel_id)
            if bucket is None:
                bucket = Bucket(
                    SlidingWindow(self._capacity, self._period, self._clock, self._sleep)
                )
                self._buckets[channel_id] = bucket
            return bucket

    async def limit(
        self, channel_id: str, content: Optional[str], merge: Merger
    ) -> bool:
        bucket = await self._bucket(channel_id)

        async with bucket.lock:
            # None marks content that can't be folded into text (embeds)
            if content is not None:
                for waiter in bucket.waiters.values():
                    if waiter(content):
                        return False
            waiter_id = str(uuid.uuid4())
            bucket.waiters[waiter_id] = merge

        try:
            await bucket.window.acquire()
        finally:
            async with bucket.lock:
                bucket.waiters.pop(waiter_id, None)
        return True

    def pending(self, channel_id: str) -> int:
        bucket = self._buckets.get(channel_id)
        return len(bucket.waiters) if bucket else 0
