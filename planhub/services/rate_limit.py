# planhub/services/rate_limit.py
from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fastapi import Request


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(math.ceil(self.reset_at))),
        }

    @property
    def retry_after(self) -> int:
        return max(0, int(math.ceil(self.reset_at - time.time())))


class FixedWindowRateLimiter:
    """
    In-process fixed window counter. State lives in this process only, so
    each worker counts on its own.
    """

    PRUNE_EVERY = 256

    def __init__(self, limit: int = 10, window_seconds: float = 60, clock: Callable[[], float] = time.time) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, list] = {}  # key -> [count, reset_at]
        self._checks = 0

    def check(self, key: str) -> RateLimitResult:
        now = self._clock()

        self._checks += 1
        if self._checks % self.PRUNE_EVERY == 0:
            self.prune(now)

        window = self._windows.get(key)
        if window is None or now >= window[1]:
            window = [0, now + self.window_seconds]
            self._windows[key] = window

        if window[0] >= self.limit:
            return RateLimitResult(allowed=False, limit=self.limit, remaining=0, reset_at=window[1])

        window[0] += 1
        return RateLimitResult(
            allowed=True,
            limit=self.limit,
            remaining=self.limit - window[0],
            reset_at=window[1],
        )

    def prune(self, now: Optional[float] = None) -> int:
        now = self._clock() if now is None else now
        expired = [k for k, (_, reset_at) in self._windows.items() if now >= reset_at]
        for k in expired:
            del self._windows[k]
        return len(expired)

    def reset(self) -> None:
        self._windows.clear()


def client_ip(req: Request) -> str:
    xff = req.headers.get("x-forwarded-for", "")
    if xff:
        first = xff.split(",")[0].strip()
        if first:
            return first
    return req.headers.get("x-real-ip") or (req.client.host if req.client else "unknown")
