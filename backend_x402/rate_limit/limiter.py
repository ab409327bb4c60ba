"""
Per-wallet fixed-window rate limiting.

A window opens on a wallet's first message and lasts window_sec. Every call
increments the count; the first call after the window has expired resets the
count to 1 and opens a new window (not a sliding window). Calls 1..limit of a
window are allowed, later calls are limited.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from backend_x402.x402_logging import get_logger
from backend_x402.x402_logging.logger import short_id

logger = get_logger(__name__)

DEFAULT_MAX_MESSAGES = 100
DEFAULT_WINDOW_SEC = 3600.0


class RateDecision(str, Enum):
    ALLOWED = "allowed"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class RateWindow:
    wallet: str
    count: int
    window_start: float


def next_window(current: RateWindow | None, wallet: str, now: float, window_sec: float) -> RateWindow:
    """Window after one more message: reset to 1 once now - window_start exceeds window_sec."""
    if current is None or now - current.window_start > window_sec:
        return RateWindow(wallet=wallet, count=1, window_start=now)
    return RateWindow(wallet=wallet, count=current.count + 1, window_start=current.window_start)


class RateLimitStore(Protocol):
    def get(self, wallet: str) -> RateWindow | None: ...

    def increment_or_reset(self, wallet: str, now: float, window_sec: float) -> RateWindow:
        """Atomically apply next_window() for this wallet and return the new window."""
        ...


class InMemoryRateLimitStore:
    """wallet -> RateWindow map with one lock per wallet key."""

    def __init__(self) -> None:
        self._windows: dict[str, RateWindow] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, wallet: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(wallet)
            if lock is None:
                lock = self._locks[wallet] = threading.Lock()
            return lock

    def get(self, wallet: str) -> RateWindow | None:
        return self._windows.get(wallet)

    def increment_or_reset(self, wallet: str, now: float, window_sec: float) -> RateWindow:
        with self._lock_for(wallet):
            window = next_window(self._windows.get(wallet), wallet, now, window_sec)
            self._windows[wallet] = window
            return window


class RateLimiter:
    def __init__(
        self,
        store: RateLimitStore | None = None,
        *,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        window_sec: float = DEFAULT_WINDOW_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        if window_sec <= 0:
            raise ValueError("window_sec must be positive")
        self._store = store if store is not None else InMemoryRateLimitStore()
        self._max_messages = max_messages
        self._window_sec = window_sec
        self._clock = clock

    @property
    def store(self) -> RateLimitStore:
        return self._store

    def check_and_increment(self, wallet: str) -> RateDecision:
        window = self._store.increment_or_reset(wallet, self._clock(), self._window_sec)
        if window.count <= self._max_messages:
            return RateDecision.ALLOWED
        logger.info(
            "rate_limit_exceeded",
            wallet_id=short_id(wallet),
            count=window.count,
            max_messages=self._max_messages,
        )
        return RateDecision.RATE_LIMITED
