#!/usr/bin/env python3
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from .constants import (
    DEFAULT_FLAKINESS_RATE,
    DURATION_TREND_MIN_POINTS,
    DURATION_TREND_MIN_R_SQUARED,
    DURATION_TREND_P_VALUE,
    DURATION_TREND_SLOPE_PCT,
    DURATION_TREND_TOTAL_PCT,
    MAX_TREND_POINTS,
)
from .errors import AggregationInconsistency
from .models import HistoryRecord, RunSummary, TrendPoint, parse_timestamp, timestamp_ms

logger = logging.getLogger(__name__)


# -----------------------------
# Models
# -----------------------------

@dataclass(frozen=True)
class DurationTrendResult:
    alert: bool
    reason: str
    slope: float                        # ms per run
    slope_pct_per_point: float          # percentage increase per run
    total_change_pct: float             # total percentage change across series
    r_squared: float                    # goodness of fit (0-1)
    p_value: float                      # statistical significance

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert": self.alert,
            "reason": self.reason,
            "slope": self.slope,
            "slopePctPerPoint": self.slope_pct_per_point,
            "totalChangePct": self.total_change_pct,
            "rSquared": self.r_squared,
            "pValue": self.p_value,
        }


# -----------------------------
# Helpers
# -----------------------------

def _check_record(record: Any) -> HistoryRecord:
    if not isinstance(record, HistoryRecord):
        raise AggregationInconsistency(f"expected HistoryRecord, got {type(record).__name__}")
    if record.run is None or record.results is None:
        raise AggregationInconsistency("record is missing 'run' or 'results'")
    return record


def valid_records(records: Iterable[Any]) -> List[HistoryRecord]:
    """Records usable for aggregation, oldest first; inconsistent ones are logged and dropped."""
    kept = []
    for record in records:
        try:
            kept.append(_check_record(record))
        except AggregationInconsistency as e:
            logger.warning("Excluding record from aggregation: %s", e)
    # Stable sort: records without a parsable timestamp keep their relative place at the front
    kept.sort(key=lambda r: r.timestamp_ms if r.timestamp_ms is not None else -1)
    return kept


def trend_point(run: RunSummary) -> TrendPoint:
    rate = run.flakiness_rate
    return TrendPoint(
        date=run.timestamp,
        total_tests=run.total_tests,
        passed=run.passed,
        failed=run.failed,
        skipped=run.skipped,
        duration=run.duration,
        flakiness_rate=DEFAULT_FLAKINESS_RATE if rate is None else rate,
        run_id=timestamp_ms(run.timestamp),
    )


def pass_rate(point: TrendPoint) -> float:
    """Fraction of tests that passed in one run (0 when the run had no tests)."""
    return point.passed / point.total_tests if point.total_tests else 0.0


# -----------------------------
# Aggregation
# -----------------------------

class TrendAggregator:
    """Turn history records into a chronological per-run metrics series."""

    def __init__(self, max_points: int = MAX_TREND_POINTS):
        if max_points <= 0:
            raise ValueError("max_points must be positive")
        self.max_points = max_points

    def aggregate(self, records: Iterable[Any]) -> List[TrendPoint]:
        """
        One TrendPoint per valid record, oldest first.

        Only the most recent `max_points` records are kept. A run summary
        without `flakinessRate` yields a point with flakiness_rate = 0.
        """
        recent = valid_records(records)[-self.max_points:]
        return [trend_point(record.run) for record in recent]

    def test_history(self, records: Iterable[Any]) -> Dict[str, List[Dict[str, Any]]]:
        """
        Per-test execution history across the same window of runs.

        Returns:
            Mapping of full test name to its runs, oldest first:
            [{"runId": ms, "status": ..., "duration": ms, "timestamp": iso}, ...]
        """
        history: Dict[str, List[Dict[str, Any]]] = {}
        for index, record in enumerate(valid_records(records)[-self.max_points:], start=1):
            run_id = record.timestamp_ms or index
            for result in record.results:
                started = parse_timestamp(result.start_time)
                history.setdefault(result.name, []).append({
                    "runId": run_id,
                    "status": result.status,
                    "duration": result.duration,
                    "timestamp": started.isoformat() if started else record.run.timestamp,
                })
        return history


def series_summary(points: List[TrendPoint]) -> Dict[str, Optional[float]]:
    """Mean/median/min/max of run durations and mean pass rate over the series."""
    if not points:
        return {"meanDuration": None, "medianDuration": None, "minDuration": None,
                "maxDuration": None, "meanPassRate": None}
    durations = np.asarray([p.duration for p in points], dtype=float)
    rates = np.asarray([pass_rate(p) for p in points], dtype=float)
    return {
        "meanDuration": float(np.mean(durations)),
        "medianDuration": float(np.median(durations)),
        "minDuration": float(np.min(durations)),
        "maxDuration": float(np.max(durations)),
        "meanPassRate": float(np.mean(rates)),
    }


def detect_duration_trend(
    points: List[TrendPoint],
    slope_pct_threshold: float = DURATION_TREND_SLOPE_PCT,
    total_pct_threshold: float = DURATION_TREND_TOTAL_PCT,
    min_r_squared: float = DURATION_TREND_MIN_R_SQUARED,
    p_value_threshold: float = DURATION_TREND_P_VALUE,
) -> DurationTrendResult:
    """
    Detect gradual creep in run duration using linear regression.

    Args:
        points: Trend series, oldest first
        slope_pct_threshold: Alert if slope exceeds this % of the first duration per run
        total_pct_threshold: Alert if total change exceeds this %
        min_r_squared: Minimum R² for a trustworthy linear fit (0-1)
        p_value_threshold: Maximum p-value for statistical significance

    Returns:
        DurationTrendResult with alert status and statistics
    """
    from scipy import stats

    series = [float(p.duration) for p in points]
    if len(series) < DURATION_TREND_MIN_POINTS:
        return DurationTrendResult(
            alert=False,
            reason=f"Insufficient data for trend detection (n<{DURATION_TREND_MIN_POINTS})",
            slope=0.0,
            slope_pct_per_point=0.0,
            total_change_pct=0.0,
            r_squared=0.0,
            p_value=1.0,
        )

    y = np.asarray(series, dtype=float)
    if np.ptp(y) == 0:
        return DurationTrendResult(
            alert=False,
            reason="OK: run duration is constant",
            slope=0.0,
            slope_pct_per_point=0.0,
            total_change_pct=0.0,
            r_squared=0.0,
            p_value=1.0,
        )

    x = np.arange(len(y))
    slope, intercept, r_value, p_value, std_err = stats.linregress(x, y)

    r_squared = float(r_value ** 2)
    first_value = series[0]
    slope_pct_per_point = (slope / first_value * 100) if first_value != 0 else 0.0
    total_change_pct = ((series[-1] - first_value) / first_value * 100) if first_value != 0 else 0.0

    reason_parts = []
    alert = False
    if slope > 0:
        if p_value > p_value_threshold:
            reason_parts.append(f"not significant (p={p_value:.4f})")
        elif r_squared < min_r_squared:
            reason_parts.append(f"poor fit (R²={r_squared:.2f})")
        elif slope_pct_per_point >= slope_pct_threshold or total_change_pct >= total_pct_threshold:
            alert = True
            reason_parts.append(
                f"duration rising {slope_pct_per_point:.1f}%/run, "
                f"{total_change_pct:.1f}% total (R²={r_squared:.2f}, p={p_value:.4f})"
            )
        else:
            reason_parts.append(f"increase below thresholds ({total_change_pct:.1f}% total)")
    else:
        reason_parts.append(f"no upward trend (slope={slope:.2f} ms/run)")

    return DurationTrendResult(
        alert=alert,
        reason=("ALERT: " if alert else "OK: ") + "; ".join(reason_parts),
        slope=float(slope),
        slope_pct_per_point=float(slope_pct_per_point),
        total_change_pct=float(total_change_pct),
        r_squared=r_squared,
        p_value=float(p_value),
    )
