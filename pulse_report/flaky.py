"""Flaky test detection across archived runs.

A test (keyed by its id, which the runner keeps stable across runs) is
flaky when its history contains at least one pass and at least one
failure or timeout. Flaky tests are ranked by failure rate, most failing
first, with ties going to the test seen in more runs.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

import numpy as np

from .constants import FAILING_STATUSES, STATUS_PASSED, STATUS_PENDING, STATUS_SKIPPED
from .models import FlakyOccurrence, FlakyTestDetail, HistoryRecord
from .trends import valid_records

logger = logging.getLogger(__name__)


def is_flaky_statuses(statuses: Iterable[str]) -> bool:
    """True iff the statuses include a pass and a failure/timeout."""
    seen = set(statuses)
    return STATUS_PASSED in seen and bool(seen & FAILING_STATUSES)


class FlakyTestDetector:
    """Per-test occurrence statistics and flakiness ranking."""

    def collect(self, records: Iterable[Any]) -> List[FlakyTestDetail]:
        """Occurrence statistics for every test id seen in the records, flaky or not."""
        grouped: Dict[str, Dict[str, Any]] = {}
        for record in valid_records(records):
            self._add_record(grouped, record)

        details = []
        for test_id, data in grouped.items():
            # Timestamps are compared as epoch ms; unparsable ones sort first
            occurrences = [occ for _, _, occ in sorted(data["occurrences"], key=lambda t: (t[0], t[1]))]
            statuses = [o.status for o in occurrences]
            failed = sum(1 for s in statuses if s in FAILING_STATUSES)
            details.append(FlakyTestDetail(
                id=test_id,
                name=data["name"],
                suite_name=data["suiteName"],
                occurrences=tuple(occurrences),
                passed_count=statuses.count(STATUS_PASSED),
                failed_count=failed,
                skipped_count=statuses.count(STATUS_SKIPPED),
                pending_count=statuses.count(STATUS_PENDING),
                total_runs=len(occurrences),
                first_seen=occurrences[0].run_timestamp if occurrences else "",
                last_seen=occurrences[-1].run_timestamp if occurrences else "",
            ))
        return details

    def analyze(self, records: Iterable[Any]) -> List[FlakyTestDetail]:
        """Flaky tests only, ranked by failure rate (desc), then total runs (desc)."""
        flaky = [d for d in self.collect(records) if d.is_flaky]
        return rank(flaky)

    def flakiness_rate(self, records: Iterable[Any]) -> float:
        """Fraction of distinct tests in the records that are flaky."""
        details = self.collect(records)
        if not details:
            return 0.0
        return sum(1 for d in details if d.is_flaky) / len(details)

    @staticmethod
    def _add_record(grouped: Dict[str, Dict[str, Any]], record: HistoryRecord) -> None:
        run_ts = record.run.timestamp
        run_ms = record.timestamp_ms if record.timestamp_ms is not None else -1
        for result in record.results:
            entry = grouped.setdefault(result.id, {
                "name": result.name,
                "suiteName": result.suite_name,
                "occurrences": [],
            })
            seq = len(entry["occurrences"])
            entry["occurrences"].append((run_ms, seq, FlakyOccurrence(run_timestamp=run_ts, status=result.status)))


def rank(details: List[FlakyTestDetail]) -> List[FlakyTestDetail]:
    """Sort by failed/total descending, ties broken by total runs descending."""
    if not details:
        return []
    failed = np.asarray([d.failed_count for d in details], dtype=float)
    totals = np.asarray([d.total_runs for d in details], dtype=float)
    rates = np.divide(failed, totals, out=np.zeros_like(failed), where=totals > 0)
    # lexsort uses the last key as primary; negate for descending order
    order = np.lexsort((-totals, -rates))
    return [details[i] for i in order]
