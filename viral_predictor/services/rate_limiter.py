"""
Per-client fixed-window rate limiting.

A burst of ``max_requests`` at the end of one window followed by another
burst right after the reset is allowed; windows are fixed, not sliding.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, Mapping, Optional

from viral_predictor.models import RateLimitDecision, RateLimitEntry

logger = logging.getLogger(__name__)


def get_client_ip(headers: Mapping[str, str]) -> str:
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return "unknown"


class RateLimiter:
    def __init__(self, max_requests: int = 10, window: timedelta = timedelta(hours=1)):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window <= timedelta(0):
            raise ValueError("window must be positive")
        self.max_requests = max_requests
        self.window = window
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def check_and_admit(self, identifier: str, now: Optional[datetime] = None) -> RateLimitDecision:
        now = now or datetime.now(timezone.utc)

        with self._lock:
            entry = self._entries.get(identifier)

            if entry is None or now > entry.reset_time:
                entry = RateLimitEntry(count=1, reset_time=now + self.window)
                self._entries[identifier] = entry
                return RateLimitDecision(
                    allowed=True,
                    remaining=self.max_requests - 1,
                    reset_time=entry.reset_time,
                    limit=self.max_requests,
                )

            if entry.count >= self.max_requests:
                return RateLimitDecision(
                    allowed=False,
                    remaining=0,
                    reset_time=entry.reset_time,
                    limit=self.max_requests,
                )

            entry.count += 1
            return RateLimitDecision(
                allowed=True,
                remaining=self.max_requests - entry.count,
                reset_time=entry.reset_time,
                limit=self.max_requests,
            )

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Drop entries whose window has expired. Returns how many were removed."""
        now = now or datetime.now(timezone.utc)

        with self._lock:
            expired = [key for key, entry in self._entries.items() if now > entry.reset_time]
            for key in expired:
                del self._entries[key]
            remaining = len(self._entries)

        logger.debug(f"Rate limit sweep removed {len(expired)} expired entries, {remaining} remain")
        return len(expired)

    def get_entry(self, identifier: str) -> Optional[RateLimitEntry]:
        with self._lock:
            entry = self._entries.get(identifier)
            return RateLimitEntry(entry.count, entry.reset_time) if entry else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
