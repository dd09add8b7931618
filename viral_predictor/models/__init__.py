from viral_predictor.models.usage import LedgerTotals, UsageRecord, UsageStats
from viral_predictor.models.rate_limit import RateLimitDecision, RateLimitEntry

__all__ = [
    "LedgerTotals",
    "RateLimitDecision",
    "RateLimitEntry",
    "UsageRecord",
    "UsageStats",
]
