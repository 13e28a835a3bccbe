"""Sliding-window admission control for outbound TMDB requests."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class SlidingWindowRateLimiter:
    """Admit at most ``max_requests`` calls within any rolling window.

    Admission timestamps live in a deque ordered oldest first. Expired
    entries are purged lazily whenever a caller asks for a slot. The whole
    check-and-record sequence runs under an ``asyncio.Lock`` so two tasks can
    never both observe the same free slot; callers that have to wait queue on
    the lock in arrival order.
    """

    def __init__(
        self,
        max_requests: int = 40,
        window_seconds: float = 10.0,
        *,
        safety_margin_seconds: float = 0.1,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.safety_margin_seconds = max(0.0, safety_margin_seconds)
        self._clock = clock
        self._sleep = sleep
        self._admitted: deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def in_window(self) -> int:
        """Return how many admissions are still inside the current window."""

        self._purge(self._clock())
        return len(self._admitted)

    async def acquire(self) -> None:
        """Suspend until a slot is free, then record the admission."""

        async with self._lock:
            while True:
                now = self._clock()
                self._purge(now)
                if len(self._admitted) < self.max_requests:
                    self._admitted.append(now)
                    return
                oldest = self._admitted[0]
                wait = self.window_seconds - (now - oldest) + self.safety_margin_seconds
                logger.debug(
                    "Rate window full (%s/%s), waiting %.2fs",
                    len(self._admitted),
                    self.max_requests,
                    wait,
                )
                await self._sleep(max(wait, 0.0))

    def _purge(self, now: float) -> None:
        while self._admitted and now - self._admitted[0] >= self.window_seconds:
            self._admitted.popleft()


class RateLimiterRegistry:
    """Lazily create and reuse one limiter per API credential."""

    def __init__(
        self,
        max_requests: int = 40,
        window_seconds: float = 10.0,
        *,
        safety_margin_seconds: float = 0.1,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._safety_margin_seconds = safety_margin_seconds
        self._clock = clock
        self._sleep = sleep
        self._limiters: dict[str, SlidingWindowRateLimiter] = {}

    def __len__(self) -> int:
        return len(self._limiters)

    def limiter_for(self, credential: str | None) -> SlidingWindowRateLimiter:
        key = credential or ""
        limiter = self._limiters.get(key)
        if limiter is None:
            limiter = SlidingWindowRateLimiter(
                self._max_requests,
                self._window_seconds,
                safety_margin_seconds=self._safety_margin_seconds,
                clock=self._clock,
                sleep=self._sleep,
            )
            self._limiters[key] = limiter
        return limiter

    async def acquire_slot(self, credential: str | None) -> None:
        """Wait for an admission slot on the credential's window."""

        await self.limiter_for(credential).acquire()
