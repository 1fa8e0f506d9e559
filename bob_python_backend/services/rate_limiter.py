"""Fixed-window request counter keyed by client identity."""

import time
from typing import Callable, MutableMapping, Optional, Tuple

from bob_python_backend.config import RATE_LIMIT_MAX, RATE_LIMIT_WINDOW_SECONDS

# key -> (count, window_reset_at)
Counters = MutableMapping[str, Tuple[int, float]]


class RateLimiter:
    """
    Allows ``limit`` requests per ``window_seconds`` for each key.

    The first request in a window records count=1 and the window's reset
    time; a request is rejected once the stored count has reached the
    limit, so exactly ``limit`` requests pass per window.
    """

    def __init__(
        self,
        limit: int = RATE_LIMIT_MAX,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        counters: Optional[Counters] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self.window_seconds = window_seconds
        self._counters: Counters = counters if counters is not None else {}
        self._clock = clock
        self._next_purge_at = clock() + window_seconds

    def _current(self, key: str, now: float) -> Optional[Tuple[int, float]]:
        entry = self._counters.get(key)
        if entry is None or now >= entry[1]:
            return None
        return entry

    def is_rate_limited(self, key: str) -> bool:
        """Count this request against ``key``; True when it must be rejected."""
        now = self._clock()
        if now >= self._next_purge_at:
            # At most one full sweep per window.
            self.purge_expired()
            self._next_purge_at = now + self.window_seconds

        entry = self._current(key, now)
        if entry is None:
            self._counters[key] = (1, now + self.window_seconds)
            return False

        count, reset_at = entry
        if count >= self.limit:
            return True
        self._counters[key] = (count + 1, reset_at)
        return False

    def remaining(self, key: str) -> int:
        entry = self._current(key, self._clock())
        if entry is None:
            return self.limit
        return max(0, self.limit - entry[0])

    def reset_at(self, key: str) -> Optional[float]:
        entry = self._current(key, self._clock())
        return entry[1] if entry is not None else None

    def retry_after(self, key: str) -> int:
        reset_at = self.reset_at(key)
        if reset_at is None:
            return 0
        return max(1, int(round(reset_at - self._clock())))

    def purge_expired(self) -> int:
        now = self._clock()
        stale = [key for key, (_, reset_at) in self._counters.items() if now >= reset_at]
        for key in stale:
            del self._counters[key]
        return len(stale)

