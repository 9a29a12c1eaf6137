"""Token bucket rate limiting for outbound provider and page requests."""
from __future__ import annotations

import asyncio
import math
import time
from collections import deque
from typing import Any, Awaitable, Callable, TypeVar

from webevidence.research_core.models.interfaces import SearchProviderName

T = TypeVar("T")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


class RateLimiter:
    """Token bucket with a strict FIFO wait queue.

    Bursts up to ``burst_size`` tokens are admitted immediately; after that
    callers are released at ``requests_per_second``. A request that does not
    fit waits behind every earlier request, even a larger one.
    """

    def __init__(
        self,
        requests_per_second: float,
        burst_size: float | None = None,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        capacity = requests_per_second if burst_size is None else burst_size
        if capacity <= 0:
            raise ValueError("burst_size must be positive")

        self.refill_rate = float(requests_per_second)
        self.max_tokens = float(capacity)
        self._clock = clock
        self._sleep = sleep
        self._tokens = self.max_tokens
        self._last_refill = clock()
        self._queue: deque[tuple[float, asyncio.Future[None]]] = deque()
        self._draining = False
        self._drain_task: asyncio.Future[None] | None = None

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(now - self._last_refill, 0.0)
        self._tokens = min(self.max_tokens, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now

    @property
    def available_tokens(self) -> int:
        self._refill()
        return math.floor(self._tokens)

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def acquire(self, tokens: float = 1.0) -> None:
        """Wait until ``tokens`` are available, then debit them."""
        if tokens <= 0:
            return
        if tokens > self.max_tokens:
            raise ValueError(
                f"Cannot acquire {tokens} tokens from a bucket of capacity {self.max_tokens}"
            )

        self._refill()
        if not self._queue and self._tokens >= tokens:
            self._tokens -= tokens
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._queue.append((tokens, waiter))
        if not self._draining:
            self._draining = True
            self._drain_task = asyncio.ensure_future(self._drain())
        await waiter

    async def execute(self, fn: Callable[[], Awaitable[T]], tokens: float = 1.0) -> T:
        """Acquire, then run ``fn``. Tokens are spent even if ``fn`` raises."""
        await self.acquire(tokens)
        return await fn()

    async def _drain(self) -> None:
        try:
            while self._queue:
                self._refill()
                tokens, waiter = self._queue[0]
                if waiter.done():
                    # Caller gave up (cancelled or timed out) before admission.
                    self._queue.popleft()
                    continue
                if self._tokens >= tokens:
                    self._tokens -= tokens
                    self._queue.popleft()
                    waiter.set_result(None)
                    continue
                await self._sleep((tokens - self._tokens) / self.refill_rate)
        finally:
            self._draining = False


def build_rate_limiters(settings: Any) -> dict[str, RateLimiter]:
    """One limiter per provider plus one for direct page fetches."""
    return {
        SearchProviderName.TAVILY.value: RateLimiter(
            settings.tavily_requests_per_second, settings.tavily_burst_size
        ),
        SearchProviderName.EXA.value: RateLimiter(
            settings.exa_requests_per_second, settings.exa_burst_size
        ),
        "harvest": RateLimiter(
            settings.harvest_requests_per_second, settings.harvest_burst_size
        ),
    }
