"""Shared request queue for budget-constrained market data APIs.

Every upstream call is enqueued and drained by a single consumer task on a
fixed tick, so the aggregate call rate stays inside the provider budget no
matter how many tickers are requested at once. Producers never contend on a
lock; they only await the future for their own request.

Usage:
    from wheelscan.core.rate_limiter import get_market_data_queue

    queue = get_market_data_queue()
    data = await queue.submit(lambda: fetch_json(url))
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import date, datetime, timezone
from typing import Any, TypeVar

from wheelscan.core.config import settings
from wheelscan.core.exceptions import BudgetExceededError
from wheelscan.core.logging import get_logger


logger = get_logger("core.rate_limiter")

T = TypeVar("T")

_WINDOW_SECONDS = 60.0


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class RequestQueue:
    """
    Bounded-throughput scheduler for upstream API calls.

    A request is dispatched no sooner than ``interval_seconds`` after the
    previous one and never while ``requests_per_minute`` calls already
    happened in the trailing minute. Once ``daily_budget`` calls were made
    on the current (UTC) day, queued requests fail with BudgetExceededError
    instead of waiting.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float = 12.0,
        requests_per_minute: int = 5,
        daily_budget: int = 500,
        clock: Callable[[], float] = time.monotonic,
        today: Callable[[], date] = _utc_today,
    ):
        """
        Initialize request queue.

        Args:
            name: Identifier for logging
            interval_seconds: Fixed spacing between dispatched requests
            requests_per_minute: Cap on requests in any rolling minute
            daily_budget: Cap on requests per day
            clock: Monotonic clock, injectable for tests
            today: Current-day provider used for budget resets
        """
        self.name = name
        self.interval_seconds = interval_seconds
        self.requests_per_minute = requests_per_minute
        self.daily_budget = daily_budget
        self._clock = clock
        self._today = today

        self._queue: asyncio.Queue | None = None
        self._consumer: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

        self._request_times: deque[float] = deque()
        self._last_dispatch: float | None = None
        self._budget_day: date = today()
        self._daily_count = 0

    # =========================================================================
    # Producer side
    # =========================================================================

    async def submit(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Enqueue an upstream call and wait for its result.

        Args:
            func: Zero-argument coroutine factory performing the call

        Returns:
            Whatever the call returns

        Raises:
            BudgetExceededError: If the daily budget is spent
            Exception: Whatever the call itself raised
        """
        queue = self._ensure_consumer()
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        await queue.put((func, future))
        return await future

    def _ensure_consumer(self) -> asyncio.Queue:
        """Start the consumer task for the running loop if needed."""
        loop = asyncio.get_running_loop()
        if (
            self._queue is None
            or self._loop is not loop
            or self._consumer is None
            or self._consumer.done()
        ):
            self._loop = loop
            self._queue = asyncio.Queue()
            self._consumer = loop.create_task(
                self._drain(self._queue), name=f"request-queue:{self.name}"
            )
            logger.debug(f"Request queue {self.name} consumer started")
        return self._queue

    # =========================================================================
    # Consumer side
    # =========================================================================

    async def _drain(self, queue: asyncio.Queue) -> None:
        """Single consumer: dispatch queued calls one per tick."""
        while True:
            func, future = await queue.get()
            try:
                if future.done():
                    continue

                self._roll_budget_day()
                if self._daily_count >= self.daily_budget:
                    logger.warning(
                        f"Request queue {self.name} daily budget of {self.daily_budget} exhausted"
                    )
                    future.set_exception(BudgetExceededError())
                    continue

                await self._wait_for_slot()
                self._record_dispatch()

                try:
                    result = await func()
                except Exception as e:
                    if not future.done():
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(result)
            finally:
                queue.task_done()

    async def _wait_for_slot(self) -> None:
        """Sleep until both the fixed tick and the rolling window allow a call."""
        while True:
            now = self._clock()
            while self._request_times and now - self._request_times[0] >= _WINDOW_SECONDS:
                self._request_times.popleft()

            wait = 0.0
            if self._last_dispatch is not None:
                wait = max(wait, self._last_dispatch + self.interval_seconds - now)
            if len(self._request_times) >= self.requests_per_minute:
                wait = max(wait, self._request_times[0] + _WINDOW_SECONDS - now)

            if wait <= 0:
                return

            logger.debug(f"Request queue {self.name} waiting {wait:.2f}s")
            await asyncio.sleep(wait)

    def _record_dispatch(self) -> None:
        now = self._clock()
        self._last_dispatch = now
        self._request_times.append(now)
        self._daily_count += 1

    def _roll_budget_day(self) -> None:
        today = self._today()
        if today != self._budget_day:
            self._budget_day = today
            self._daily_count = 0

    # =========================================================================
    # Introspection / lifecycle
    # =========================================================================

    @property
    def budget_remaining(self) -> int:
        """Requests left in today's budget."""
        self._roll_budget_day()
        return max(0, self.daily_budget - self._daily_count)

    def status(self) -> dict[str, Any]:
        """Get current queue status."""
        now = self._clock()
        recent = sum(1 for t in self._request_times if now - t < _WINDOW_SECONDS)
        return {
            "name": self.name,
            "queue_length": self._queue.qsize() if self._queue is not None else 0,
            "requests_last_minute": recent,
            "requests_per_minute": self.requests_per_minute,
            "interval_seconds": self.interval_seconds,
            "daily_used": self._daily_count,
            "daily_budget": self.daily_budget,
            "budget_remaining": self.budget_remaining,
        }

    async def close(self) -> None:
        """Stop the consumer task; pending requests are cancelled."""
        if self._consumer is not None and not self._consumer.done():
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
        if self._queue is not None:
            while not self._queue.empty():
                _, future = self._queue.get_nowait()
                if not future.done():
                    future.cancel()
        self._consumer = None
        self._queue = None
        self._loop = None


# Global request queues
_queues: dict[str, RequestQueue] = {}


def get_request_queue(
    name: str,
    interval_seconds: float = 12.0,
    requests_per_minute: int = 5,
    daily_budget: int = 500,
) -> RequestQueue:
    """
    Get or create a named request queue.

    Args:
        name: Unique name for the queue
        interval_seconds: Drain interval (only used on creation)
        requests_per_minute: Rolling-minute cap (only used on creation)
        daily_budget: Daily cap (only used on creation)

    Returns:
        RequestQueue instance
    """
    if name not in _queues:
        _queues[name] = RequestQueue(
            name,
            interval_seconds=interval_seconds,
            requests_per_minute=requests_per_minute,
            daily_budget=daily_budget,
        )
        logger.info(
            f"Created request queue '{name}': every {interval_seconds}s, "
            f"{requests_per_minute}/min, {daily_budget}/day"
        )
    return _queues[name]


MARKET_DATA_QUEUE = "market_data"


def get_market_data_queue() -> RequestQueue:
    """
    Get the queue shared by every market data and options data provider.

    Both capabilities are billed against the same upstream key, so they
    share one budget.
    """
    return get_request_queue(
        MARKET_DATA_QUEUE,
        interval_seconds=settings.provider_request_interval_seconds,
        requests_per_minute=settings.provider_requests_per_minute,
        daily_budget=settings.provider_daily_budget,
    )


def reset_request_queues() -> None:
    """Forget all named queues (used between test runs)."""
    _queues.clear()


async def close_request_queues() -> None:
    """Stop every queue's consumer and forget the queues."""
    for queue in list(_queues.values()):
        await queue.close()
    _queues.clear()
