"""
Per-provider request budgeting.

RequestLog keeps a rolling window of call timestamps per provider plus a
daily counter. A call that would push the window past the provider's safe
ceiling is delayed until the oldest timestamp ages out; it is never dropped.
The daily ceiling is hard: once spent, acquire() raises RateLimitedError
without waiting.

BackoffPolicy is the single place retry delays are computed, so the retry
loop in the client can be tested without real timers (inject clock/sleep).
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Dict, Optional

from ..errors import RateLimitedError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]

_SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class ProviderBudget:
    """Safe ceiling for one provider."""
    calls_per_window: int = 5
    window_seconds: float = 60.0
    daily_limit: Optional[int] = None


@dataclass(frozen=True)
class BackoffPolicy:
    """Bounded exponential backoff: base, 2×base, 4×base … capped at max_delay."""
    base_delay: float = 10.0
    max_delay: float = 60.0
    max_retries: int = 2
    factor: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        if attempt < 1:
            return 0.0
        return min(self.base_delay * (self.factor ** (attempt - 1)), self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        """True if another attempt is allowed after `attempt` attempts have failed."""
        return attempt <= self.max_retries


class RequestLog:
    """
    Rolling-window request log shared by every call to the same provider.

    One asyncio.Lock per provider serialises check-and-append, so concurrent
    coroutines can never both observe a free slot and both take it. Locks
    are created lazily so they bind to the running event loop on first use.
    """

    def __init__(
        self,
        budgets: Optional[Dict[str, ProviderBudget]] = None,
        default_budget: Optional[ProviderBudget] = None,
        clock: Clock = time.time,
        sleep: Sleeper = asyncio.sleep,
    ):
        self._budgets: Dict[str, ProviderBudget] = dict(budgets or {})
        self._default = default_budget or ProviderBudget()
        self._clock = clock
        self._sleep = sleep
        self._windows: Dict[str, Deque[float]] = {}
        self._daily: Dict[str, Dict[int, int]] = {}
        self._delayed: Dict[str, int] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def budget(self, provider: str) -> ProviderBudget:
        return self._budgets.get(provider, self._default)

    def set_budget(self, provider: str, budget: ProviderBudget) -> None:
        self._budgets[provider] = budget

    def _get_lock(self, provider: str) -> asyncio.Lock:
        lock = self._locks.get(provider)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[provider] = lock
        return lock

    def _prune(self, provider: str, now: float) -> Deque[float]:
        window = self._windows.setdefault(provider, deque())
        horizon = now - self.budget(provider).window_seconds
        while window and window[0] <= horizon:
            window.popleft()
        return window

    def _day_count(self, provider: str, now: float) -> int:
        return self._daily.get(provider, {}).get(int(now // _SECONDS_PER_DAY), 0)

    async def acquire(self, provider: str) -> float:
        """
        Reserve one call slot for `provider`, waiting if the window is full.

        Returns the number of seconds spent waiting (0.0 if the slot was free).
        Raises RateLimitedError if the provider's daily ceiling is spent.
        """
        budget = self.budget(provider)
        waited = 0.0
        while True:
            async with self._get_lock(provider):
                now = self._clock()
                if budget.daily_limit is not None and self._day_count(provider, now) >= budget.daily_limit:
                    raise RateLimitedError(provider, f"daily limit of {budget.daily_limit} calls reached")

                window = self._prune(provider, now)
                if len(window) < budget.calls_per_window:
                    window.append(now)
                    day = int(now // _SECONDS_PER_DAY)
                    per_day = self._daily.setdefault(provider, {})
                    for past in [d for d in per_day if d < day]:
                        del per_day[past]
                    per_day[day] = per_day.get(day, 0) + 1
                    if waited > 0:
                        self._delayed[provider] = self._delayed.get(provider, 0) + 1
                    return waited

                wait = max(window[0] + budget.window_seconds - now, 0.0)

            logger.warning(
                f"[RATE] {provider}: {len(window)}/{budget.calls_per_window} calls in "
                f"{budget.window_seconds:.0f}s window, waiting {wait:.1f}s"
            )
            await self._sleep(wait)
            waited += wait

    def in_window(self, provider: str) -> int:
        """Calls currently counted against the rolling window."""
        return len(self._prune(provider, self._clock()))

    def calls_today(self, provider: str) -> int:
        return self._day_count(provider, self._clock())

    def status(self) -> Dict[str, Dict[str, object]]:
        now = self._clock()
        report = {}
        for provider in sorted(set(self._windows) | set(self._daily)):
            budget = self.budget(provider)
            report[provider] = {
                "in_window": len(self._prune(provider, now)),
                "calls_per_window": budget.calls_per_window,
                "window_seconds": budget.window_seconds,
                "calls_today": self._day_count(provider, now),
                "daily_limit": budget.daily_limit,
                "delayed": self._delayed.get(provider, 0),
            }
        return report
