from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import StrEnum
import random
import time


class RateLimitAction(StrEnum):
    BACKOFF = "backoff"
    PAUSE = "pause"
    ACCOUNT_LIMITED = "account_limited"


class AimdConcurrencyController:
    """Integer additive-increase/multiplicative-decrease batch sizing.

    Concurrency stays within [minimum, maximum]. Every second clean batch
    adds one slot; a rate-limited batch halves it (rounded down).
    """

    def __init__(
        self,
        *,
        initial: int = 6,
        minimum: int = 2,
        maximum: int = 10,
        pause_after_hits: int = 3,
        account_limit_after_consecutive: int = 5,
    ) -> None:
        if not minimum <= initial <= maximum:
            raise ValueError("initial concurrency must lie within [minimum, maximum]")
        self.minimum = minimum
        self.maximum = maximum
        self.concurrency = initial
        self.rate_limit_hits = 0
        self.consecutive_rate_limits = 0
        self._pause_after_hits = pause_after_hits
        self._account_limit_after_consecutive = account_limit_after_consecutive
        self._success_streak = 0

    def on_success(self) -> None:
        self.rate_limit_hits = 0
        self.consecutive_rate_limits = 0
        self._success_streak += 1
        if self._success_streak >= 2:
            self._success_streak = 0
            self.concurrency = min(self.maximum, self.concurrency + 1)

    def on_rate_limit(self) -> RateLimitAction:
        self.rate_limit_hits += 1
        self.consecutive_rate_limits += 1
        self._success_streak = 0
        self.concurrency = max(self.minimum, self.concurrency // 2)
        if self.consecutive_rate_limits >= self._account_limit_after_consecutive:
            return RateLimitAction.ACCOUNT_LIMITED
        if self.rate_limit_hits >= self._pause_after_hits:
            return RateLimitAction.PAUSE
        return RateLimitAction.BACKOFF


class RequestBudget:
    """Fixed-window request allowance per replay category."""

    def __init__(
        self,
        limits: dict[str, int],
        *,
        window_seconds: float,
        jitter_seconds: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._limits = dict(limits)
        self._window_seconds = window_seconds
        self._jitter_seconds = jitter_seconds
        self._clock = clock
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._windows: dict[str, tuple[float, int]] = {}

    def remaining(self, category: str) -> int:
        _, used = self._current_window(category)
        return max(0, self._limits[category] - used)

    async def consume(self, category: str) -> float:
        """Take one unit, waiting out the window when it is spent. Returns seconds waited."""
        window_start, used = self._current_window(category)
        waited = 0.0
        if used >= self._limits[category]:
            waited = max(0.0, self._window_seconds - (self._clock() - window_start))
            waited += self._rng.uniform(0.0, self._jitter_seconds)
            await self._sleep(waited)
            window_start, used = self._clock(), 0
        self._windows[category] = (window_start, used + 1)
        return waited

    def _current_window(self, category: str) -> tuple[float, int]:
        if category not in self._limits:
            raise KeyError(f"unknown budget category: {category}")
        now = self._clock()
        window_start, used = self._windows.get(category, (now, 0))
        if now - window_start >= self._window_seconds:
            window_start, used = now, 0
        self._windows[category] = (window_start, used)
        return window_start, used
