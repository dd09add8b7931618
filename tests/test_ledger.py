"""Tests for the usage ledger."""

import json
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from viral_predictor.exceptions import InvalidUsageError, PersistenceError
from viral_predictor.repositories import UsageLedgerRepository
from viral_predictor.services.ledger import (
    UsageLedger,
    aggregate_records,
    calculate_cache_hit_rate,
    period_start,
)
from viral_predictor.services.pricing import DEFAULT_MODEL

from tests.conftest import FakeClock


def local_time(*args) -> datetime:
    """Aware datetime in the machine's local timezone."""
    return datetime(*args).astimezone()


class TestRecordUsage:
    def test_cost_of_one_million_input_tokens(self, ledger):
        record = ledger.record_usage(1_000_000, 0, "claude-3-5-sonnet-20241022")
        assert record.input_cost == 3.00
        assert record.total_cost == 3.00
        assert record.output_cost == 0.0

    def test_cache_read_savings(self, ledger):
        record = ledger.record_usage(0, 0, DEFAULT_MODEL, cache_creation_tokens=0, cache_read_tokens=1_000_000)
        assert record.cache_read_cost == 0.30
        assert record.savings == 2.70
        assert ledger.totals().total_savings == 2.70

    def test_missing_model_uses_default(self, ledger):
        record = ledger.record_usage(10, 10)
        assert record.model == DEFAULT_MODEL

    def test_timestamp_from_clock(self, ledger, clock):
        record = ledger.record_usage(10, 10)
        assert record.timestamp == clock.now

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"input_tokens": -1, "output_tokens": 0},
            {"input_tokens": 0, "output_tokens": -5},
            {"input_tokens": "12", "output_tokens": 0},
            {"input_tokens": 1.5, "output_tokens": 0},
            {"input_tokens": True, "output_tokens": 0},
            {"input_tokens": 0, "output_tokens": 0, "cache_read_tokens": -1},
        ],
    )
    def test_invalid_token_counts_rejected_without_state_change(self, ledger, ledger_path, kwargs):
        with pytest.raises(InvalidUsageError):
            ledger.record_usage(**kwargs)
        assert ledger.records() == []
        assert not ledger_path.exists()

    def test_totals_equal_fold_of_records(self, ledger, clock):
        calls = [
            (1200, 800, DEFAULT_MODEL, 0, 1500),
            (300, 90, "claude-3-opus-20240229", 2000, 0),
            (5, 7, "unknown-model", 0, 0),
            (10_000, 2_500, DEFAULT_MODEL, 4000, 12_000),
        ]
        for input_tokens, output_tokens, model, cache_write, cache_read in calls:
            ledger.record_usage(input_tokens, output_tokens, model, cache_write, cache_read)
            clock.advance(minutes=5)

        records = ledger.records()
        totals = ledger.totals()
        assert totals == aggregate_records(records)
        assert totals.total_requests == 4
        assert totals.total_input_tokens == sum(r.input_tokens for r in records)
        assert totals.total_output_tokens == sum(r.output_tokens for r in records)
        assert totals.total_tokens == totals.total_input_tokens + totals.total_output_tokens
        assert totals.total_cache_creation_tokens == 6000
        assert totals.total_cache_read_tokens == 13_500
        assert totals.total_cost == pytest.approx(sum(r.total_cost for r in records))
        assert totals.cache_hit_rate == round(13_500 / 19_500 * 100, 2)

    def test_cache_hit_rate_zero_without_cache_tokens(self, ledger):
        ledger.record_usage(100, 100)
        assert ledger.totals().cache_hit_rate == 0.0

    def test_persisted_after_every_append(self, ledger, ledger_path):
        ledger.record_usage(100, 50)
        ledger.record_usage(200, 60)

        data = json.loads(ledger_path.read_text(encoding="utf-8"))
        assert len(data["records"]) == 2
        assert data["totals"]["total_requests"] == 2
        assert data["totals"]["total_input_tokens"] == 300

    def test_second_ledger_sees_persisted_records(self, ledger, ledger_path, clock):
        ledger.record_usage(100, 50)
        other = UsageLedger(UsageLedgerRepository(ledger_path), clock=clock)
        assert other.totals().total_requests == 1
        other.record_usage(1, 1)
        assert len(other.records()) == 2

    def test_write_failure_leaves_ledger_unchanged(self, ledger):
        ledger.record_usage(100, 50)
        with patch.object(ledger.repository, "save", side_effect=PersistenceError("disk full")):
            with pytest.raises(PersistenceError):
                ledger.record_usage(999, 999)

        assert len(ledger.records()) == 1
        assert ledger.totals().total_input_tokens == 100

    def test_corrupt_storage_starts_empty(self, ledger_path, clock):
        ledger_path.parent.mkdir(parents=True)
        ledger_path.write_text("][", encoding="utf-8")
        ledger = UsageLedger(UsageLedgerRepository(ledger_path), clock=clock)

        assert ledger.totals().total_requests == 0
        ledger.record_usage(1, 2)
        assert ledger.totals().total_requests == 1

    def test_mistyped_storage_starts_empty(self, ledger_path, clock):
        ledger_path.parent.mkdir(parents=True)
        row = {"timestamp": "2026-10-18T10:00:00+00:00", "model": DEFAULT_MODEL,
               "input_tokens": "5", "output_tokens": 1, "total_cost": "abc"}
        ledger_path.write_text(json.dumps({"totals": {}, "records": [row]}), encoding="utf-8")
        ledger = UsageLedger(UsageLedgerRepository(ledger_path), clock=clock)

        stats = ledger.query_stats("all")
        assert stats.total_requests == 0
        assert stats.records == []
        ledger.record_usage(1, 1)
        assert ledger.totals() == aggregate_records(ledger.records())
        assert ledger.totals().total_requests == 1

    def test_camel_case_storage_is_kept(self, ledger_path, clock):
        ledger_path.parent.mkdir(parents=True)
        row = {"timestamp": "2026-10-18T10:00:00.000Z", "model": DEFAULT_MODEL,
               "inputTokens": 1000, "outputTokens": 200, "cacheReadTokens": 3000,
               "inputCost": 0.003, "outputCost": 0.003, "cacheReadCost": 0.0009, "totalCost": 0.0069}
        ledger_path.write_text(json.dumps({"totals": {"totalRequests": 1}, "records": [row]}), encoding="utf-8")
        ledger = UsageLedger(UsageLedgerRepository(ledger_path), clock=clock)

        ledger.record_usage(10, 10)

        data = json.loads(ledger_path.read_text(encoding="utf-8"))
        assert data["totals"]["total_requests"] == 2
        assert data["totals"]["total_input_tokens"] == 1010
        assert data["records"][0]["cache_read_tokens"] == 3000

    def test_concurrent_appends_are_all_kept(self, ledger, ledger_path):
        threads_count = 8
        calls_per_thread = 10

        def worker(n):
            for i in range(calls_per_thread):
                ledger.record_usage(n + 1, i, cache_read_tokens=n)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(threads_count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        total_calls = threads_count * calls_per_thread
        records = ledger.records()
        assert len(records) == total_calls
        assert ledger.totals() == aggregate_records(records)
        data = json.loads(ledger_path.read_text(encoding="utf-8"))
        assert data["totals"]["total_requests"] == total_calls
        assert len(data["records"]) == total_calls


class TestQueryStats:
    def test_all_matches_running_totals(self, ledger, clock):
        for i in range(5):
            ledger.record_usage(1000 * (i + 1), 100, cache_read_tokens=500 * i)
            clock.advance(days=3)

        stats = ledger.query_stats("all")
        totals = ledger.totals()
        assert stats.records == ledger.records()
        assert stats.total_requests == totals.total_requests
        assert stats.total_tokens == totals.total_tokens
        assert stats.total_cost == totals.total_cost
        assert stats.total_savings == totals.total_savings
        assert stats.cache_hit_rate == totals.cache_hit_rate

    def test_today_starts_at_local_midnight(self, ledger_path):
        clock = FakeClock(local_time(2026, 10, 17, 23, 59))
        ledger = UsageLedger(UsageLedgerRepository(ledger_path), clock=clock)
        ledger.record_usage(1, 1)
        clock.now = local_time(2026, 10, 18, 0, 0)
        ledger.record_usage(2, 2)
        clock.now = local_time(2026, 10, 18, 12, 0)
        ledger.record_usage(3, 3)

        stats = ledger.query_stats("today", now=local_time(2026, 10, 18, 13, 0))
        assert [r.input_tokens for r in stats.records] == [2, 3]
        assert stats.total_requests == 2

    def test_week_and_month_windows(self, ledger, clock):
        now = clock.now
        for days_ago in (40, 29, 8, 6, 0):
            clock.now = now - timedelta(days=days_ago)
            ledger.record_usage(days_ago, 0)

        week = ledger.query_stats("week", now=now)
        month = ledger.query_stats("month", now=now)
        assert [r.input_tokens for r in week.records] == [6, 0]
        assert [r.input_tokens for r in month.records] == [29, 8, 6, 0]

    def test_filtered_savings_and_hit_rate(self, ledger, clock):
        now = clock.now
        clock.now = now - timedelta(days=10)
        ledger.record_usage(0, 0, cache_creation_tokens=1_000_000)
        clock.now = now
        ledger.record_usage(0, 0, cache_read_tokens=1_000_000)

        week = ledger.query_stats("week", now=now)
        assert week.total_savings == 2.70
        assert week.cache_hit_rate == 100.0
        assert ledger.query_stats("all", now=now).cache_hit_rate == 50.0

    def test_empty_ledger(self, ledger):
        stats = ledger.query_stats("month")
        assert stats.total_requests == 0
        assert stats.records == []
        assert stats.cache_hit_rate == 0.0

    def test_unknown_period_rejected(self, ledger):
        with pytest.raises(InvalidUsageError):
            ledger.query_stats("year")


def test_period_start_all_is_unbounded():
    assert period_start("all", datetime.now(timezone.utc)) is None


def test_calculate_cache_hit_rate():
    assert calculate_cache_hit_rate(0, 0) == 0.0
    assert calculate_cache_hit_rate(1, 3) == 75.0
    assert calculate_cache_hit_rate(2, 1) == 33.33
