"""
modules/rate_limit.py — Per-subject submission limiter
========================================================
Fixed window keyed by subject:
    window start + WINDOW_MS elapsed → counter resets to 1
    otherwise                        → counter += 1
    counter > MAX                    → limited

The counter is bumped on EVERY call, limited ones included, so a client that
keeps hammering stays locked out until it goes quiet for a full window.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict

from core.clock import epoch_ms

logger = logging.getLogger("racepass.rate_limit")


@dataclass
class RateLimitResult:
    exceeded: bool
    count: int
    limit: int
    reset_at_ms: int

    def retry_after_ms(self, now_ms: int) -> int:
        return max(0, self.reset_at_ms - now_ms) if self.exceeded else 0


@dataclass
class _Window:
    count: int
    start_ms: int


class SubjectRateLimiter:
    def __init__(self, window_ms: int = 60_000, max_requests: int = 5):
        self.window_ms = window_ms
        self.max_requests = max_requests
        self._windows: Dict[str, _Window] = {}
        self._last_sweep_ms = 0

    def _prune(self, now_ms: int):
        """Drop expired windows, at most once per window length."""
        if now_ms - self._last_sweep_ms <= self.window_ms:
            return
        self._last_sweep_ms = now_ms
        expired = [key for key, window in self._windows.items() if now_ms - window.start_ms > self.window_ms]
        for key in expired:
            del self._windows[key]

    def __len__(self) -> int:
        return len(self._windows)

    def hit(self, key: str, now: datetime) -> RateLimitResult:
        now_ms = epoch_ms(now)
        self._prune(now_ms)
        window = self._windows.get(key)
        if window is None or now_ms - window.start_ms > self.window_ms:
            window = _Window(count=1, start_ms=now_ms)
            self._windows[key] = window
        else:
            window.count += 1

        exceeded = window.count > self.max_requests
        if exceeded:
            logger.warning(f"Rate limit exceeded for {key[:10]}... ({window.count}/{self.max_requests})")
        return RateLimitResult(
            exceeded=exceeded,
            count=window.count,
            limit=self.max_requests,
            reset_at_ms=window.start_ms + self.window_ms,
        )
