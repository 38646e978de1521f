"""Windowed attempt counters keyed by (subject x operation).

A window opens at the first attempt for a key and lasts ``window_seconds``.
Once it elapses the next attempt starts a fresh window from that request.
The counter lives behind a ``RateLimitStore`` so the in-memory default can be
swapped for the Redis store without touching the limiter.
"""

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from dispute_core_lib.errors import RateLimitedError
from dispute_core_lib.models.analysis import RateLimitWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """How many attempts one key gets per window.

    Attributes:
        name: Operation tag, part of the counter key
        max_attempts: Attempts allowed within one window
        window_seconds: Window length
        refund_on_failure: Give the attempt back when the guarded call fails
    """

    name: str
    max_attempts: int
    window_seconds: float
    refund_on_failure: bool = False

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

    @classmethod
    def cooldown(cls, name: str, seconds: float, refund_on_failure: bool = True) -> "RateLimitPolicy":
        """One attempt per interval."""
        return cls(name=name, max_attempts=1, window_seconds=seconds, refund_on_failure=refund_on_failure)

    def key_for(self, subject: str) -> str:
        return f"ratelimit:{self.name}:{subject}"


# ============================================================
# Stores
# ============================================================

class RateLimitStore(ABC):
    """Counter storage for rate-limit windows."""

    @abstractmethod
    async def hit(self, key: str, window_seconds: float, now: float) -> RateLimitWindow:
        """Count one attempt, opening a new window when none is active."""

    @abstractmethod
    async def refund(self, key: str, now: float, window_start: Optional[float] = None) -> None:
        """Give back one attempt in the active window.

        With ``window_start`` set, only the window that counted the attempt is
        refunded; a window opened since then is left alone.
        """

    @abstractmethod
    async def reset(self, key: str) -> None:
        ...


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local windows; lost on restart."""

    def __init__(self):
        self._windows: Dict[str, RateLimitWindow] = {}
        self._lock = asyncio.Lock()

    async def hit(self, key: str, window_seconds: float, now: float) -> RateLimitWindow:
        async with self._lock:
            window = self._windows.get(key)
            if window is None or window.is_expired(now):
                window = RateLimitWindow(key=key, count=0, window_start=now, window_seconds=window_seconds)
            window = window.model_copy(update={"count": window.count + 1})
            self._windows[key] = window
            return window

    async def refund(self, key: str, now: float, window_start: Optional[float] = None) -> None:
        async with self._lock:
            window = self._windows.get(key)
            if window is None or window.is_expired(now) or window.count == 0:
                return
            if window_start is not None and window.window_start != window_start:
                return
            self._windows[key] = window.model_copy(update={"count": window.count - 1})

    async def reset(self, key: str) -> None:
        async with self._lock:
            self._windows.pop(key, None)

    async def peek(self, key: str) -> Optional[RateLimitWindow]:
        async with self._lock:
            return self._windows.get(key)


# ============================================================
# Limiter
# ============================================================

class RateLimiter:
    """Checks and counts attempts against a policy."""

    def __init__(self, store: RateLimitStore, clock: Optional[Callable[[], float]] = None):
        self.store = store
        self._clock = clock or time.time

    async def acquire(self, policy: RateLimitPolicy, subject: str) -> RateLimitWindow:
        """Count an attempt or raise RateLimitedError.

        The attempt is counted before it is processed; a rejected attempt does
        not consume quota.
        """
        key = policy.key_for(subject)
        now = self._clock()
        window = await self.store.hit(key, policy.window_seconds, now)

        if window.count > policy.max_attempts:
            await self.store.refund(key, now, window.window_start)
            retry_after = max(1, math.ceil(window.remaining_seconds(now)))
            logger.warning(
                f"[RateLimiter] {policy.name} limit reached for {subject}: "
                f"{policy.max_attempts} per {policy.window_seconds:.0f}s, retry in {retry_after}s"
            )
            raise RateLimitedError(
                retry_after_seconds=retry_after,
                operation=policy.name,
                max_attempts=policy.max_attempts,
            )

        logger.debug(
            f"[RateLimiter] {policy.name} attempt {window.count}/{policy.max_attempts} for {subject}"
        )
        return window

    async def release(
        self, policy: RateLimitPolicy, subject: str, window_start: Optional[float] = None
    ) -> None:
        """Give the attempt back after a failure, when the policy allows it.

        Pass the ``window_start`` of the window returned by ``acquire``; once that
        window has rolled over there is nothing left to refund.
        """
        if not policy.refund_on_failure:
            return
        await self.store.refund(policy.key_for(subject), self._clock(), window_start)
        logger.info(f"[RateLimiter] Refunded {policy.name} attempt for {subject}")
