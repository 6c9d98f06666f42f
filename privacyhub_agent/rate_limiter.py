from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_at: float

    def retry_after_s(self, now: float) -> int:
        return max(1, int(self.reset_at - now + 0.999))


def sanitize_key(identifier: str | None) -> str:
    if not identifier:
        return "unknown"
    return re.sub(r"[^a-zA-Z0-9.:_-]", "", identifier)[:100] or "unknown"


class RateLimiter:
    """Fixed-window request counter per client identifier."""

    def __init__(self, max_requests: int = 10, window_s: float = 15 * 60, clock: Callable[[], float] = time.time):
        self.max_requests = max_requests
        self.window_s = window_s
        self._clock = clock
        self._windows: dict[str, tuple[int, float]] = {}

    def check(self, identifier: str | None) -> RateLimitDecision:
        key = sanitize_key(identifier)
        now = self._clock()
        self._evict(now)

        count, reset_at = self._windows.get(key, (0, 0.0))
        if now > reset_at:
            count, reset_at = 0, now + self.window_s

        if count >= self.max_requests:
            return RateLimitDecision(allowed=False, remaining=0, reset_at=reset_at)

        count += 1
        self._windows[key] = (count, reset_at)
        return RateLimitDecision(allowed=True, remaining=self.max_requests - count, reset_at=reset_at)

    def _evict(self, now: float) -> None:
        if len(self._windows) < 1024:
            return
        for key in [k for k, (_, reset_at) in self._windows.items() if now > reset_at]:
            del self._windows[key]
