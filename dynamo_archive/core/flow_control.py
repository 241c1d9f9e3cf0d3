import asyncio
from typing import Callable

from aiolimiter import AsyncLimiter
from loguru import logger


class FlowController:
    """Admission control shared by a batch writer and its upstream producer.

    The controller counts batch submissions in flight and holds the current
    concurrency limit, which moves by one step per observed outcome: a
    successful submission raises it up to `max_concurrency`, a failed or
    partially processed one lowers it down to `min_concurrency`.

    The producer (scanner or line reader) is paused once the in-flight count
    reaches the limit, or the queue of formed batches reaches
    `max_queue_depth`, and resumed only when both fall below `resume_ratio`
    of their ceiling. Every state change notifies a single condition, so
    waiters are woken by events instead of polling.
    """

    def __init__(
        self,
        min_concurrency: int = 1,
        max_concurrency: int = 200,
        initial_concurrency: int | None = None,
        resume_ratio: float = 0.8,
        max_queue_depth: int | None = None,
        request_interval: float = 0.0,
    ) -> None:
        if min_concurrency < 1:
            raise ValueError("min_concurrency must be at least 1")
        if max_concurrency < min_concurrency:
            raise ValueError("max_concurrency must be >= min_concurrency")
        if not 0 < resume_ratio <= 1:
            raise ValueError("resume_ratio must be in (0, 1]")

        self.min_concurrency = min_concurrency
        self.max_concurrency = max_concurrency
        self.concurrency = min(
            max(initial_concurrency or max_concurrency, min_concurrency),
            max_concurrency,
        )
        self.resume_ratio = resume_ratio
        self.max_queue_depth = max_queue_depth or max_concurrency * 2
        self.request_interval = request_interval
        self._request_limiter = (
            AsyncLimiter(1, request_interval) if request_interval > 0 else None
        )

        self.in_flight = 0
        self.queue_depth = 0
        self._paused = False
        self._condition = asyncio.Condition()

    def admitted(self) -> bool:
        return self.in_flight < self.concurrency

    def should_pause_upstream(self) -> bool:
        if self._paused:
            if (
                self.in_flight < self.resume_ratio * self.concurrency
                and self.queue_depth < self.resume_ratio * self.max_queue_depth
            ):
                self._paused = False
                logger.debug(
                    f"Resuming upstream, {self.in_flight} batches in flight and {self.queue_depth} queued"
                )
        elif (
            self.in_flight >= self.concurrency
            or self.queue_depth >= self.max_queue_depth
        ):
            self._paused = True
            logger.debug(
                f"Pausing upstream, {self.in_flight} batches in flight and {self.queue_depth} queued"
            )
        return self._paused

    def finished(self, pending: int) -> bool:
        return pending == 0 and self.in_flight == 0

    def record_success(self) -> None:
        if self.concurrency < self.max_concurrency:
            self.concurrency += 1

    def record_failure(self) -> None:
        if self.concurrency > self.min_concurrency:
            self.concurrency -= 1
            logger.debug(f"Backing off, concurrency lowered to {self.concurrency}")

    async def acquire(self) -> None:
        async with self._condition:
            await self._condition.wait_for(self.admitted)
            self.in_flight += 1
        if self._request_limiter is not None:
            # one submission per request_interval
            await self._request_limiter.acquire()

    async def release(self, success: bool) -> None:
        async with self._condition:
            self.in_flight -= 1
            if success:
                self.record_success()
            else:
                self.record_failure()
            self._condition.notify_all()

    async def set_queue_depth(self, depth: int) -> None:
        async with self._condition:
            self.queue_depth = depth
            self._condition.notify_all()

    async def notify(self) -> None:
        async with self._condition:
            self._condition.notify_all()

    async def wait_for(self, predicate: Callable[[], bool]) -> None:
        async with self._condition:
            await self._condition.wait_for(predicate)

    async def wait_upstream(self, interrupted: Callable[[], bool] = lambda: False) -> None:
        """Blocks the producer while upstream is paused, or until `interrupted` holds."""
        if self.should_pause_upstream():
            await self.wait_for(
                lambda: interrupted() or not self.should_pause_upstream()
            )

    async def wait_finished(self, pending: Callable[[], int]) -> None:
        await self.wait_for(lambda: self.finished(pending()))
