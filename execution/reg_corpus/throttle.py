"""
Per-Client Request Throttle

Fixed-window admission control: each client may make `limit` requests per
window; the window restarts on the first request after it expires.
Process-local only; separate processes keep separate counters.
"""

import time
import logging
import threading
from typing import Callable, Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class RateLimitedError(Exception):
    """Raised when a client has used up its window."""

    def __init__(self, message: str, remaining: int, reset_at: float):
        super().__init__(message)
        self.remaining = remaining
        self.reset_at = reset_at


@dataclass
class ThrottleDecision:
    """Outcome of one admission check."""
    allowed: bool
    remaining: int
    reset_at: float


@dataclass
class _Window:
    count: int
    reset_at: float


class RequestThrottle:
    """
    Fixed-window rate limiter keyed by client id.

    Usage:
        throttle = RequestThrottle(limit=100, window_seconds=60)

        decision = throttle.check(client_id)
        if not decision.allowed:
            ...

        # Or raise instead of returning a decision
        throttle.enforce(client_id)

    Without sweep() (or sweep_interval_seconds) one record is kept per
    distinct client ever seen.
    """

    def __init__(
        self,
        limit: int = 100,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval_seconds: Optional[float] = None,
    ):
        if limit < 0:
            raise ValueError("limit must be >= 0")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")

        self._limit = limit
        self._window = window_seconds
        self._clock = clock
        self._sweep_interval = sweep_interval_seconds
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def check(self, client_id: str) -> ThrottleDecision:
        """Admit or reject one request, counting it if admitted."""
        with self._lock:
            now = self._clock()
            if self._sweep_interval is not None and now - self._last_sweep >= self._sweep_interval:
                self._sweep_locked(now)

            window = self._windows.get(client_id)
            if window is None or now > window.reset_at:
                window = _Window(count=0, reset_at=now + self._window)
                self._windows[client_id] = window

            if window.count >= self._limit:
                return ThrottleDecision(allowed=False, remaining=0, reset_at=window.reset_at)

            window.count += 1
            return ThrottleDecision(
                allowed=True,
                remaining=self._limit - window.count,
                reset_at=window.reset_at,
            )

    def enforce(self, client_id: str) -> ThrottleDecision:
        """Like check(), but raise RateLimitedError on rejection."""
        decision = self.check(client_id)
        if not decision.allowed:
            logger.warning(f"Rate limit exceeded for client {client_id}")
            raise RateLimitedError(
                f"Rate limit exceeded ({self._limit} requests per {self._window:g}s)",
                remaining=decision.remaining,
                reset_at=decision.reset_at,
            )
        return decision

    def sweep(self) -> int:
        """Evict expired client records. Returns how many were removed."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: float) -> int:
        expired = [cid for cid, window in self._windows.items() if now > window.reset_at]
        for cid in expired:
            del self._windows[cid]
        self._last_sweep = now
        if expired:
            logger.debug(f"Swept {len(expired)} expired throttle records")
        return len(expired)

    def __len__(self) -> int:
        return len(self._windows)
