"""FIFO admission queue bounding concurrent encodes.

Encoding is the only CPU and memory heavy part of a request, so only the
probe+encode phase holds a slot. Uploads and downloads are not gated.
"""

import asyncio
import contextlib
import logging
from collections import deque
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from discompress.core.metrics import ADMISSION_QUEUE_CAPACITY, ADMISSION_QUEUE_JOBS

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AdmissionQueue:
    """Bounded-concurrency gate with strict arrival-order admission.

    State (running count and pending waiters) is only touched from the
    event loop thread, which makes every mutation atomic with respect to
    acquire/release. Queue depth is unbounded; upstream upload limits are
    the only back-pressure.
    """

    def __init__(self, capacity: int = 1, name: str = "encode"):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.name = name
        self._running = 0
        self._pending: deque[asyncio.Future] = deque()
        ADMISSION_QUEUE_CAPACITY.labels(queue_name=name).set(capacity)
        self._publish()

    @property
    def running(self) -> int:
        return self._running

    @property
    def pending(self) -> int:
        return sum(1 for waiter in self._pending if not waiter.done())

    async def acquire(self) -> None:
        """Wait for a slot. Arrivals never overtake queued waiters."""
        if self._running < self.capacity and not self._pending:
            self._running += 1
            self._publish()
            return

        waiter = asyncio.get_running_loop().create_future()
        self._pending.append(waiter)
        self._publish()
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The slot was handed over just before we were cancelled.
                self.release()
            else:
                with contextlib.suppress(ValueError):
                    self._pending.remove(waiter)
                self._publish()
            raise

    def release(self) -> None:
        """Give a slot back and admit the next waiter, if any."""
        if self._running <= 0:
            raise RuntimeError("release() called without a held slot")
        self._running -= 1
        self._wake_next()
        self._publish()

    def _wake_next(self) -> None:
        while self._pending and self._running < self.capacity:
            waiter = self._pending.popleft()
            if waiter.done():
                continue
            self._running += 1
            waiter.set_result(None)

    @contextlib.asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one slot for the duration of the block."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    async def enqueue(self, work: Callable[[], Awaitable[T]]) -> T:
        """Run ``work`` once admitted and return its result."""
        async with self.slot():
            return await work()

    def _publish(self) -> None:
        ADMISSION_QUEUE_JOBS.labels(queue_name=self.name, status="running").set(self._running)
        ADMISSION_QUEUE_JOBS.labels(queue_name=self.name, status="pending").set(self.pending)
