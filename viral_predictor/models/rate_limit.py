import math
from dataclasses import dataclass
from datetime import datetime


@dataclass
class RateLimitEntry:
    count: int
    reset_time: datetime


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_time: datetime
    limit: int

    def retry_after_seconds(self, now: datetime) -> int:
        return max(0, math.ceil((self.reset_time - now).total_seconds()))
