#!/usr/bin/env python3
"""
Test suite for trends.py

Trend aggregation, per-test history and duration creep detection.
"""
import pytest

from pulse_report.models import HistoryRecord, TrendPoint
from pulse_report.trends import (
    TrendAggregator,
    detect_duration_trend,
    pass_rate,
    series_summary,
    valid_records,
)


@pytest.fixture
def make_record(make_run, make_result):
    def _make(timestamp, results=(), **run_overrides):
        return HistoryRecord.from_dict({
            "run": make_run(timestamp=timestamp, **run_overrides),
            "results": list(results) or [make_result("t", "passed")],
        })
    return _make


def _points(durations):
    return [
        TrendPoint(date=f"2025-05-{i + 1:02d}T00:00:00Z", total_tests=10, passed=10, failed=0, skipped=0, duration=d)
        for i, d in enumerate(durations)
    ]


# ============================================================================
# Aggregation
# ============================================================================

class TestAggregate:
    """TrendAggregator.aggregate."""

    def test_chronological_order(self, make_record):
        """Records T1 < T2 < T3 give points [T1, T2, T3] whatever the input order."""
        t1, t2, t3 = "2025-05-01T00:00:00Z", "2025-05-02T00:00:00Z", "2025-05-03T00:00:00Z"
        records = [make_record(t3), make_record(t1), make_record(t2)]

        points = TrendAggregator().aggregate(records)

        assert [p.date for p in points] == [t1, t2, t3]

    def test_missing_flakiness_rate_defaults_to_zero(self, make_record):
        """A run summary without flakinessRate yields 0."""
        points = TrendAggregator().aggregate([make_record("2025-05-01T00:00:00Z")])

        assert points[0].flakiness_rate == 0

    def test_flakiness_rate_carried(self, make_record):
        """A supplied flakinessRate is kept."""
        points = TrendAggregator().aggregate([make_record("2025-05-01T00:00:00Z", flakinessRate=0.25)])

        assert points[0].flakiness_rate == 0.25

    def test_length_matches_valid_records(self, make_record, caplog):
        """Only structurally valid records become points."""
        records = [make_record("2025-05-01T00:00:00Z"), {"run": {}}, make_record("2025-05-02T00:00:00Z")]

        points = TrendAggregator().aggregate(records)

        assert len(points) == 2
        assert "Excluding record" in caplog.text

    def test_capped_to_most_recent(self, make_record):
        """Only the newest max_points runs are kept."""
        records = [make_record(f"2025-05-{day:02d}T00:00:00Z") for day in range(1, 21)]

        points = TrendAggregator(max_points=15).aggregate(records)

        assert len(points) == 15
        assert points[0].date == "2025-05-06T00:00:00Z"
        assert points[-1].date == "2025-05-20T00:00:00Z"

    def test_empty(self):
        """No records, no points."""
        assert TrendAggregator().aggregate([]) == []

    def test_invalid_max_points(self):
        """max_points must be positive."""
        with pytest.raises(ValueError):
            TrendAggregator(max_points=0)

    def test_valid_records_sorted(self, make_record):
        """valid_records sorts ascending by timestamp."""
        records = valid_records([make_record("2025-05-02T00:00:00Z"), make_record("2025-05-01T00:00:00Z")])

        assert [r.run.timestamp[:10] for r in records] == ["2025-05-01", "2025-05-02"]


# ============================================================================
# Per-test history
# ============================================================================

class TestTestHistory:
    """TrendAggregator.test_history."""

    def test_history_per_test(self, make_record, make_result):
        """Each test name maps to its statuses across runs, oldest first."""
        records = [
            make_record("2025-05-02T00:00:00Z", [make_result("a", "failed")]),
            make_record("2025-05-01T00:00:00Z", [make_result("a", "passed"), make_result("b", "skipped")]),
        ]

        history = TrendAggregator().test_history(records)

        name_a = "tests/login.spec.ts > Login > a"
        assert [h["status"] for h in history[name_a]] == ["passed", "failed"]
        assert len(history["tests/login.spec.ts > Login > b"]) == 1


# ============================================================================
# Summaries and duration creep
# ============================================================================

class TestDurationTrend:
    """detect_duration_trend / series_summary / pass_rate."""

    def test_insufficient_data(self):
        """Fewer than three points never alert."""
        result = detect_duration_trend(_points([100, 200]))

        assert result.alert is False
        assert "Insufficient data" in result.reason

    def test_constant_series(self):
        """A flat series is OK."""
        result = detect_duration_trend(_points([1000] * 6))

        assert result.alert is False
        assert result.reason.startswith("OK:")

    def test_steady_creep_alerts(self):
        """A clean upward line alerts."""
        result = detect_duration_trend(_points([1000, 1100, 1200, 1300, 1400, 1500]))

        assert result.alert is True
        assert result.reason.startswith("ALERT:")
        assert result.slope == pytest.approx(100.0)
        assert result.total_change_pct == pytest.approx(50.0)

    def test_decreasing_series(self):
        """Getting faster is never an alert."""
        result = detect_duration_trend(_points([1500, 1400, 1300, 1200, 1100]))

        assert result.alert is False
        assert "no upward trend" in result.reason

    def test_series_summary(self):
        """Summary statistics over durations and pass rates."""
        summary = series_summary(_points([100, 200, 600]))

        assert summary["meanDuration"] == pytest.approx(300.0)
        assert summary["medianDuration"] == pytest.approx(200.0)
        assert summary["meanPassRate"] == pytest.approx(1.0)
        assert series_summary([])["meanDuration"] is None

    def test_pass_rate_zero_tests(self):
        """A run with no tests has a pass rate of 0."""
        point = TrendPoint(date="", total_tests=0, passed=0, failed=0, skipped=0, duration=0)

        assert pass_rate(point) == 0.0
