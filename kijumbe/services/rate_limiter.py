"""Fixed-window limiter for outbound sends."""

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

WINDOW_SECONDS = 60.0


class RateLimitExceeded(Exception):
    def __init__(self, limit: int, retry_in: float):
        self.limit = limit
        self.retry_in = retry_in
        super().__init__(f"Rate limit exceeded: {limit} sends per minute, retry in {retry_in:.1f}s")


class RateLimiter:
    """Allows at most `limit` sends per window.

    The window opens on the first call after a reset and closes
    `window_seconds` later; the next call after that opens a fresh one.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float = WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if limit < 1:
            raise ValueError("limit must be positive")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._window_start: Optional[float] = None
        self._sent_count = 0

    def _roll(self, now: float) -> None:
        if self._window_start is None or now > self._window_start + self.window_seconds:
            self._window_start = now
            self._sent_count = 0

    def try_acquire(self) -> bool:
        with self._lock:
            self._roll(self._clock())
            if self._sent_count >= self.limit:
                return False
            self._sent_count += 1
            return True

    def acquire(self) -> None:
        """Like try_acquire, but raises RateLimitExceeded when denied."""
        if not self.try_acquire():
            raise RateLimitExceeded(self.limit, self.seconds_until_reset())

    def seconds_until_reset(self) -> float:
        with self._lock:
            if self._window_start is None:
                return 0.0
            return max(self._window_start + self.window_seconds - self._clock(), 0.0)

    @property
    def sent_count(self) -> int:
        with self._lock:
            return self._sent_count

    def status(self) -> dict:
        remaining = self.seconds_until_reset()
        reset_at = datetime.now(timezone.utc) + timedelta(seconds=remaining)
        return {
            "rateLimitCounter": self.sent_count,
            "rateLimitResetTime": reset_at.isoformat(),
        }
