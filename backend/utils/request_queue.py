"""Priority request queue enforcing a global minimum spacing between provider calls.

Every outbound call to the data provider goes through a single
``PriorityRequestQueue``. One worker task drains the pending heap; before
starting the next call it waits until ``min_interval`` seconds have passed
since the previous call started, so at most one call is in flight and calls
never start closer together than the configured spacing.
"""

import asyncio
import heapq
import itertools
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Awaitable, Callable, Optional

import httpx

from utils.logger import get_logger

logger = get_logger("request_queue")


class Priority(IntEnum):
    LOW = 1  # balance snapshots
    MEDIUM = 2  # transaction polls
    HIGH = 3  # price lookups
    CRITICAL = 4  # explorer SQL runs


class RateLimitedError(Exception):
    """Raised by a queued call when the provider answered with a throttling response."""


class RetriesExhaustedError(Exception):
    """A call was throttled on every attempt, including all retries."""

    def __init__(self, label: str, retries: int, last_error: BaseException):
        super().__init__(f"[{label}] still rate limited after {retries} retries: {last_error}")
        self.label = label
        self.retries = retries
        self.last_error = last_error
        self.status = 429


class QueueClosedError(Exception):
    """The queue was closed before the call could run."""


def is_rate_limited(error: BaseException) -> bool:
    """Check whether an error is a provider throttling signal"""
    if isinstance(error, RateLimitedError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code == 429
    return getattr(error, "status", None) == 429


@dataclass(order=True)
class _QueueItem:
    sort_key: tuple[int, int]
    label: str = field(compare=False)
    call: Callable[[], Awaitable[Any]] = field(compare=False)
    priority: Priority = field(compare=False)
    future: asyncio.Future = field(compare=False)
    retries: int = field(default=0, compare=False)


class PriorityRequestQueue:
    """Serialize provider calls by priority with a minimum start-to-start interval.

    Equal priorities keep arrival order. A call failing with a throttling
    error is parked for ``backoff_unit * 2 ** retries`` seconds and then
    re-enqueued at its original priority and arrival position; after
    ``max_retries`` retries the caller gets ``RetriesExhaustedError``. Any
    other failure reaches the caller immediately.
    """

    def __init__(
        self,
        min_interval: float = 1.1,
        max_retries: int = 3,
        backoff_unit: float = 1.0,
    ):
        self.min_interval = min_interval
        self.max_retries = max_retries
        self.backoff_unit = backoff_unit

        self._pending: list[_QueueItem] = []
        self._parked: set[asyncio.Task] = set()
        self._sequence = itertools.count()
        self._wakeup: Optional[asyncio.Event] = None
        self._worker: Optional[asyncio.Task] = None
        self._last_started: Optional[float] = None
        self._closed = False
        self._stats = {"submitted": 0, "succeeded": 0, "rate_limited": 0, "errored": 0}

    async def submit(
        self,
        call: Callable[[], Awaitable[Any]],
        priority: Priority = Priority.MEDIUM,
        label: Optional[str] = None,
    ) -> Any:
        """Queue ``call`` and wait for its result (or failure)."""
        if self._closed:
            raise QueueClosedError("request queue is closed")

        loop = asyncio.get_running_loop()
        self._stats["submitted"] += 1
        item = _QueueItem(
            sort_key=(-int(priority), next(self._sequence)),
            label=label or f"call-{self._stats['submitted']}",
            call=call,
            priority=Priority(priority),
            future=loop.create_future(),
        )
        self._push(item)
        self._ensure_worker()
        return await item.future

    def get_stats(self) -> dict:
        return {
            **self._stats,
            "queue_depth": len(self._pending) + len(self._parked),
        }

    async def close(self) -> None:
        """Stop the worker and fail anything still waiting."""
        self._closed = True
        tasks = [t for t in (self._worker, *self._parked) if t and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._parked.clear()
        while self._pending:
            item = heapq.heappop(self._pending)
            if not item.future.done():
                item.future.set_exception(QueueClosedError(f"[{item.label}] queue closed"))
        self._worker = None

    def _push(self, item: _QueueItem) -> None:
        heapq.heappush(self._pending, item)
        if self._wakeup is not None:
            self._wakeup.set()

    def _ensure_worker(self) -> None:
        if self._worker is not None and not self._worker.done():
            return
        self._wakeup = asyncio.Event()
        if self._pending:
            self._wakeup.set()
        self._worker = asyncio.create_task(self._run(), name="request-queue-worker")

    async def _wait_for_slot(self) -> None:
        if self._last_started is None:
            return
        wait = self.min_interval - (time.monotonic() - self._last_started)
        if wait > 0:
            await asyncio.sleep(wait)

    async def _run(self) -> None:
        while True:
            if not self._pending:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            await self._wait_for_slot()
            # Pick after waiting so work that arrived meanwhile can jump ahead
            item = heapq.heappop(self._pending)
            if item.future.done():
                continue

            self._last_started = time.monotonic()
            try:
                result = await item.call()
            except asyncio.CancelledError:
                if not item.future.done():
                    item.future.cancel()
                raise
            except Exception as exc:
                self._handle_failure(item, exc)
            else:
                self._stats["succeeded"] += 1
                if not item.future.done():
                    item.future.set_result(result)

    def _handle_failure(self, item: _QueueItem, exc: Exception) -> None:
        if is_rate_limited(exc):
            self._stats["rate_limited"] += 1
            if item.retries < self.max_retries:
                item.retries += 1
                delay = self.backoff_unit * (2**item.retries)
                logger.warning(
                    "Rate limited, backing off",
                    label=item.label,
                    retry=item.retries,
                    max_retries=self.max_retries,
                    delay=delay,
                )
                task = asyncio.create_task(self._requeue_after(item, delay))
                self._parked.add(task)
                task.add_done_callback(self._parked.discard)
                return
            self._stats["errored"] += 1
            logger.error("Retries exhausted", label=item.label, retries=item.retries)
            if not item.future.done():
                item.future.set_exception(RetriesExhaustedError(item.label, item.retries, exc))
            return

        self._stats["errored"] += 1
        logger.debug("Queued call failed", label=item.label, error=str(exc), error_type=type(exc).__name__)
        if not item.future.done():
            item.future.set_exception(exc)

    async def _requeue_after(self, item: _QueueItem, delay: float) -> None:
        await asyncio.sleep(delay)
        if item.future.done():
            return
        self._push(item)
