"""
Usage/cost ledger.

Every completed Claude call is appended as an immutable ``UsageRecord``.
Running totals are kept as the fold of all records and the whole ledger is
written to storage on each append.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Iterable, List, Optional

from viral_predictor.exceptions import InvalidUsageError
from viral_predictor.models import LedgerTotals, UsageRecord, UsageStats
from viral_predictor.repositories import UsageLedgerRepository
from viral_predictor.services.pricing import DEFAULT_MODEL, calculate_cost

logger = logging.getLogger(__name__)

PERIODS = ("all", "today", "week", "month")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def calculate_cache_hit_rate(cache_creation_tokens: int, cache_read_tokens: int) -> float:
    total_cache = cache_creation_tokens + cache_read_tokens
    if total_cache == 0:
        return 0.0
    return round((cache_read_tokens / total_cache) * 100, 2)


def _add_cost(a: float, b: float) -> float:
    # Both operands carry at most six fractional digits, so the Decimal sum is exact
    return float(Decimal(str(a)) + Decimal(str(b)))


def add_record(totals: LedgerTotals, record: UsageRecord) -> LedgerTotals:
    """Return new totals with ``record`` folded in."""
    cache_creation = totals.total_cache_creation_tokens + record.cache_creation_tokens
    cache_read = totals.total_cache_read_tokens + record.cache_read_tokens
    return LedgerTotals(
        total_requests=totals.total_requests + 1,
        total_input_tokens=totals.total_input_tokens + record.input_tokens,
        total_output_tokens=totals.total_output_tokens + record.output_tokens,
        total_tokens=totals.total_tokens + record.total_tokens,
        total_cache_creation_tokens=cache_creation,
        total_cache_read_tokens=cache_read,
        total_cost=_add_cost(totals.total_cost, record.total_cost),
        total_savings=_add_cost(totals.total_savings, record.savings),
        cache_hit_rate=calculate_cache_hit_rate(cache_creation, cache_read),
    )


def aggregate_records(records: Iterable[UsageRecord]) -> LedgerTotals:
    totals = LedgerTotals()
    for record in records:
        totals = add_record(totals, record)
    return totals


def period_start(period: str, now: datetime) -> Optional[datetime]:
    """Earliest timestamp included in ``period``; None means no lower bound."""
    if period == "all":
        return None
    if period == "today":
        local_now = now.astimezone()
        return local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return now - timedelta(days=30)
    raise InvalidUsageError(f"Unknown period: {period!r} (expected one of {', '.join(PERIODS)})")


def _validate_tokens(**counts) -> None:
    for name, value in counts.items():
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidUsageError(f"{name} must be an integer, got {value!r}")
        if value < 0:
            raise InvalidUsageError(f"{name} must be non-negative, got {value}")


class UsageLedger:
    def __init__(
        self,
        repository: UsageLedgerRepository,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.clock = clock
        self._lock = threading.Lock()
        self._loaded = False
        self._records: List[UsageRecord] = []
        self._totals = LedgerTotals()

    def _ensure_loaded(self) -> None:
        # Caller holds the lock
        if self._loaded:
            return
        stored_totals, records = self.repository.load()
        totals = aggregate_records(records)
        if records and stored_totals != totals:
            logger.warning("Stored usage totals do not match records, using totals recomputed from records")
        self._records = records
        self._totals = totals
        self._loaded = True
        logger.info(f"Loaded usage ledger with {len(records)} records")

    def record_usage(
        self,
        input_tokens: int,
        output_tokens: int,
        model: Optional[str] = None,
        cache_creation_tokens: int = 0,
        cache_read_tokens: int = 0,
    ) -> UsageRecord:
        _validate_tokens(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cache_creation_tokens=cache_creation_tokens,
            cache_read_tokens=cache_read_tokens,
        )
        model = model or DEFAULT_MODEL

        costs = calculate_cost(
            model,
            input_tokens,
            output_tokens,
            cache_creation_tokens,
            cache_read_tokens,
        )

        with self._lock:
            self._ensure_loaded()

            record = UsageRecord(
                timestamp=self.clock(),
                model=model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                cache_creation_tokens=cache_creation_tokens,
                cache_read_tokens=cache_read_tokens,
                input_cost=costs.input_cost,
                output_cost=costs.output_cost,
                cache_creation_cost=costs.cache_creation_cost,
                cache_read_cost=costs.cache_read_cost,
                total_cost=costs.total_cost,
                savings=costs.savings,
            )
            records = self._records + [record]
            totals = add_record(self._totals, record)

            # Raises PersistenceError; memory is only updated once the write succeeded
            self.repository.save(totals, records)

            self._records = records
            self._totals = totals

        logger.info(
            f"Recorded usage: model={model} input={input_tokens} output={output_tokens} "
            f"cache_write={cache_creation_tokens} cache_read={cache_read_tokens} cost=${record.total_cost:.6f}"
        )
        return record

    def query_stats(self, period: str = "all", now: Optional[datetime] = None) -> UsageStats:
        start = period_start(period, now or self.clock())

        with self._lock:
            self._ensure_loaded()
            records = list(self._records)

        if start is not None:
            records = [r for r in records if r.timestamp >= start]

        totals = aggregate_records(records)
        return UsageStats(period=period, records=records, **totals.to_dict())

    def totals(self) -> LedgerTotals:
        with self._lock:
            self._ensure_loaded()
            return LedgerTotals(**self._totals.to_dict())

    def records(self) -> List[UsageRecord]:
        with self._lock:
            self._ensure_loaded()
            return list(self._records)
