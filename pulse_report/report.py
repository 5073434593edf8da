#!/usr/bin/env python3
"""
Static report assembly and the report-generation CLI.

Pipeline (one sequential pass per invocation):
    load current run -> archive it -> list history -> aggregate trends /
    detect flaky tests -> assemble the document -> write it

Usage:
  pulse-report --output-dir pulse-report
  pulse-report --output-dir pulse-report --max-trend-points 30 --keep-history 100
"""

from __future__ import annotations

import argparse
import logging
import math
import os
import sys
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .ansi import AnsiMarkupConverter, format_error_html, strip_ansi
from .attachments import AttachmentEmbedder
from .constants import (
    ALL_STATUSES,
    COLOR_DURATION,
    COLOR_FAILED,
    COLOR_PASSED,
    COLOR_PENDING,
    COLOR_SKIPPED,
    COLOR_TIMED_OUT,
    DEFAULT_HTML_FILE,
    DEFAULT_JSON_FILE,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_REPORT_TITLE,
    DEFAULT_SUITE_NAME,
    DEFAULT_TAB,
    ERROR_PREVIEW_CHARS,
    EXIT_FAILURE,
    EXIT_PARSE_ERROR,
    EXIT_SUCCESS,
    FAILING_STATUSES,
    HISTORY_DIR_NAME,
    LAZY_LOAD_ROOT_MARGIN,
    MAX_TREND_POINTS,
    SENTINEL_WORKER_ID,
    SENTINEL_WORKER_RATIONALE,
    STATUS_PASSED,
    STATUS_SKIPPED,
    TEST_FILE_SUFFIXES,
    TEST_NAME_DELIMITER,
    USER_CWD_ENV_VAR,
)
from .errors import MissingInputError
from .flaky import FlakyTestDetector
from .history import HistoryArchiver, load_run_document
from .models import (
    EnvValue,
    FlakyTestDetail,
    RunSummary,
    TestResult,
    TrendPoint,
    parse_timestamp,
)
from .report_template import render_report_shell
from .trends import DurationTrendResult, TrendAggregator, detect_duration_trend, series_summary

logger = logging.getLogger(__name__)


# -----------------------------
# Formatting helpers
# -----------------------------

def sanitize(value: Any) -> str:
    """HTML-escape any value for interpolation into markup or attributes."""
    if value is None:
        return ""
    return escape(str(value), quote=True).replace("&#x27;", "&#039;")


def format_duration(ms: Any) -> str:
    """
    Human-readable duration.

    Under a minute: one decimal of seconds ("1.5s"). Otherwise whole seconds
    rounded up, split into hours/minutes/seconds ("2m 3s", "1h 0m 5s").
    Missing or negative input renders as "0.0s".
    """
    try:
        value = float(ms)
    except (TypeError, ValueError):
        return "0.0s"
    if math.isnan(value) or value < 0:
        return "0.0s"
    if value < 60000:
        return f"{value / 1000:.1f}s"

    total = math.ceil(value / 1000)
    hours, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    if hours:
        return f"{hours}h {minutes}m {seconds}s"
    return f"{minutes}m {seconds}s"


def format_date(value: Any) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        return str(value) if value else "N/A"
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _short_date(value: Any) -> str:
    parsed = parse_timestamp(value)
    return parsed.strftime("%m-%d %H:%M") if parsed else "?"


def status_class(status: str) -> str:
    return "status-" + "".join(ch for ch in str(status).lower() if ch.isalnum())


def _badge(status: str) -> str:
    return f'<span class="status-badge {status_class(status)}">{sanitize(str(status).upper())}</span>'


def _no_data(message: str) -> str:
    return f'<div class="no-data">{sanitize(message)}</div>'


def _pct(part: float, whole: float) -> str:
    return f"{(part / whole * 100):.1f}%" if whole else "0.0%"


# -----------------------------
# Derived views
# -----------------------------

def _basename(path: str) -> str:
    return path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]


def _strip_test_file_suffix(name: str) -> str:
    for suffix in TEST_FILE_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name


def derive_suite_name(result: TestResult, prefer_explicit: bool = True) -> str:
    """
    Suite a result is grouped under in the offline report.

    The explicit `suiteName` wins when present (and `prefer_explicit`).
    Otherwise the hierarchical name is split on its delimiter:
    "file > Suite > test" -> "Suite"; "dir/login.spec.ts > test" -> "login";
    a single segment falls back to its basename.
    """
    if prefer_explicit and result.suite_name.strip():
        return result.suite_name.strip()

    parts = [p.strip() for p in result.name.split(TEST_NAME_DELIMITER)]
    if len(parts) > 2 and parts[1]:
        return parts[1]
    return _strip_test_file_suffix(_basename(parts[0])) or DEFAULT_SUITE_NAME


def suites_data(results: Iterable[TestResult], prefer_explicit: bool = True) -> List[Dict[str, Any]]:
    """Per (suite, browser) tallies in first-seen order."""
    suites: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    for result in results:
        name = derive_suite_name(result, prefer_explicit)
        key = f"{name}|{result.browser}"
        suite = suites.setdefault(key, {
            "id": key,
            "name": name,
            "browser": result.browser,
            "passed": 0,
            "failed": 0,
            "skipped": 0,
            "count": 0,
            "tests": [],
        })
        suite["count"] += 1
        suite["tests"].append(result.title)
        if result.status == STATUS_PASSED:
            suite["passed"] += 1
        elif result.status in FAILING_STATUSES:
            suite["failed"] += 1
        elif result.status == STATUS_SKIPPED:
            suite["skipped"] += 1

    for suite in suites.values():
        if suite["failed"]:
            suite["statusOverall"] = "failed"
        elif suite["skipped"]:
            suite["statusOverall"] = "skipped"
        else:
            suite["statusOverall"] = "passed"
    return list(suites.values())


def format_environment(value: EnvValue) -> str:
    """Render arbitrary nested environment data as nested lists."""
    if isinstance(value, dict):
        if not value:
            return "<em>empty</em>"
        items = "".join(
            f'<li><span class="env-key">{sanitize(key)}:</span> {format_environment(item)}</li>'
            for key, item in value.items()
        )
        return f'<ul class="env-tree">{items}</ul>'
    if isinstance(value, list):
        if not value:
            return "<em>none</em>"
        if not any(isinstance(item, (dict, list)) for item in value):
            return ", ".join(format_environment(item) for item in value)
        items = "".join(f"<li>{format_environment(item)}</li>" for item in value)
        return f'<ul class="env-tree">{items}</ul>'
    if value is None:
        return "N/A"
    if isinstance(value, bool):
        return "true" if value else "false"
    return sanitize(value)


def _worker_sort_key(worker_id: Union[int, str]):
    if isinstance(worker_id, int):
        return (0, worker_id, "")
    return (1, 0, str(worker_id))


def build_worker_timeline(results: Sequence[TestResult]) -> Dict[str, Any]:
    """
    Per-worker chronological lanes rebuilt from startTime + duration.

    Offsets (ms) are relative to the earliest start across all lanes.
    Tests on the sentinel worker are counted in `excludedCount` and left
    out; tests without a parsable start time are counted in
    `unscheduledCount`.
    """
    lanes: Dict[Union[int, str], List[Any]] = {}
    excluded = 0
    unscheduled = 0
    for index, result in enumerate(results):
        if result.worker_id == SENTINEL_WORKER_ID:
            excluded += 1
            continue
        started = parse_timestamp(result.start_time)
        if started is None:
            unscheduled += 1
            continue
        lanes.setdefault(result.worker_id, []).append((started.timestamp() * 1000.0, index, result))

    origin = min((start for lane in lanes.values() for start, _, _ in lane), default=None)

    workers = []
    for worker_id in sorted(lanes, key=_worker_sort_key):
        tests = []
        for start, index, result in sorted(lanes[worker_id], key=lambda item: (item[0], item[1])):
            offset = start - origin
            tests.append({
                "index": index,
                "title": result.title,
                "name": result.name,
                "status": result.status,
                "start": offset,
                "end": offset + max(result.duration, 0.0),
                "duration": result.duration,
            })
        workers.append({
            "workerId": worker_id,
            "tests": tests,
            "busyTime": sum(t["duration"] for t in tests),
            "passed": sum(1 for t in tests if t["status"] == STATUS_PASSED),
            "failed": sum(1 for t in tests if t["status"] in FAILING_STATUSES),
        })

    return {
        "workers": workers,
        "excludedCount": excluded,
        "unscheduledCount": unscheduled,
        "sentinelWorkerId": SENTINEL_WORKER_ID,
        "rationale": SENTINEL_WORKER_RATIONALE,
        "origin": datetime.fromtimestamp(origin / 1000.0, tz=timezone.utc).isoformat() if origin is not None else None,
    }


def error_signature(message: Optional[str]) -> str:
    """First non-blank line of an error, without terminal styling."""
    for line in strip_ansi(message).splitlines():
        line = line.strip()
        if line:
            return line[:200]
    return "Unknown error"


def group_failures(results: Sequence[TestResult]) -> List[Dict[str, Any]]:
    """Failed/timed-out tests grouped by error signature, largest group first."""
    groups: "OrderedDict[str, List[int]]" = OrderedDict()
    for index, result in enumerate(results):
        if result.status in FAILING_STATUSES:
            groups.setdefault(error_signature(result.error_message), []).append(index)
    ordered = sorted(groups.items(), key=lambda item: -len(item[1]))
    return [{"signature": sig, "count": len(idx), "indices": idx} for sig, idx in ordered]


# -----------------------------
# Document
# -----------------------------

@dataclass(frozen=True)
class ReportDocument:
    html: str
    payload: Dict[str, Any]

    def write(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.html)
        return path


class ReportAssembler:
    """
    Build the exportable payload and the static document for one run.

    Only the dashboard is rendered into the page body. Every other tab is
    built by the page script from the payload on its first activation, so
    the document carries each piece of data once. Media markup carries only
    indexes into the payload; the browser resolves the data URI when the
    element nears the viewport.
    """

    def __init__(
        self,
        output_root: Union[str, Path],
        converter: Optional[AnsiMarkupConverter] = None,
        embedder: Optional[AttachmentEmbedder] = None,
        prefer_explicit_suite: bool = True,
        title: str = DEFAULT_REPORT_TITLE,
    ):
        self.output_root = Path(output_root)
        self.converter = converter or AnsiMarkupConverter()
        self.embedder = embedder or AttachmentEmbedder(self.output_root)
        self.prefer_explicit_suite = prefer_explicit_suite
        self.title = title

    def assemble(
        self,
        run: Union[RunSummary, Dict[str, Any]],
        results: Sequence[Union[TestResult, Dict[str, Any]]],
        trend_points: Sequence[TrendPoint] = (),
        flaky_tests: Sequence[FlakyTestDetail] = (),
        test_history: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        duration_trend: Optional[DurationTrendResult] = None,
        history_flakiness_rate: Optional[float] = None,
    ) -> ReportDocument:
        if not isinstance(run, RunSummary):
            run = RunSummary.from_dict(run)
        results = [r if isinstance(r, TestResult) else TestResult.from_dict(r) for r in results]

        payload = self.build_payload(
            run, results, trend_points, flaky_tests, test_history or {}, duration_trend, history_flakiness_rate
        )
        html = render_report_shell(
            title=self.title,
            generated_at=format_date(payload["generatedAt"]),
            default_tab_html=self.render_dashboard(run, results, payload),
            payload=payload,
        )
        return ReportDocument(html=html, payload=payload)

    # -----------------------------
    # Payload
    # -----------------------------

    def build_payload(
        self,
        run: RunSummary,
        results: List[TestResult],
        trend_points: Sequence[TrendPoint],
        flaky_tests: Sequence[FlakyTestDetail],
        test_history: Dict[str, List[Dict[str, Any]]],
        duration_trend: Optional[DurationTrendResult],
        history_flakiness_rate: Optional[float],
    ) -> Dict[str, Any]:
        overall = []
        for point in trend_points:
            data = point.to_dict()
            data["label"] = _short_date(point.date)
            overall.append(data)

        return {
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "config": {
                "defaultTab": DEFAULT_TAB,
                "lazyRootMargin": LAZY_LOAD_ROOT_MARGIN,
                "nameDelimiter": TEST_NAME_DELIMITER,
                "statuses": list(ALL_STATUSES),
                "colors": {
                    "passed": COLOR_PASSED,
                    "failed": COLOR_FAILED,
                    "skipped": COLOR_SKIPPED,
                    "timedOut": COLOR_TIMED_OUT,
                    "pending": COLOR_PENDING,
                    "duration": COLOR_DURATION,
                },
            },
            "run": run.to_dict(),
            "results": [self._result_payload(r) for r in results],
            "suites": suites_data(results, self.prefer_explicit_suite),
            "pieData": [
                {"label": "Passed", "value": run.passed},
                {"label": "Failed", "value": run.failed + run.timed_out},
                {"label": "Skipped", "value": run.skipped},
            ],
            "trendData": {"overall": overall, "testHistory": test_history},
            "seriesSummary": series_summary(list(trend_points)),
            "durationTrend": duration_trend.to_dict() if duration_trend else None,
            "flakyTests": [d.to_dict() for d in flaky_tests],
            "historyFlakinessRate": history_flakiness_rate,
            "failureGroups": [
                {
                    "signature": g["signature"],
                    "count": g["count"],
                    "indices": g["indices"],
                    "testIds": [results[i].id for i in g["indices"]],
                }
                for g in group_failures(results)
            ],
            "workers": build_worker_timeline(results),
        }

    def _result_payload(self, result: TestResult) -> Dict[str, Any]:
        """
        Embedded result plus the display fields the browser needs.

        Terminal output is converted to markup here, once per result, so the
        script never parses escape codes.
        """
        data = self.embedder.embed_result(result)
        data["title"] = result.title
        data["suite"] = derive_suite_name(result, self.prefer_explicit_suite)
        data["errorHtml"] = format_error_html(result.error_message, self.converter)
        data["errorPreview"] = strip_ansi(result.error_message)[:ERROR_PREVIEW_CHARS]
        data["stdoutHtml"] = "\n".join(self.converter.convert(line) for line in result.stdout)

        pending = list(data.get("steps") or [])
        while pending:
            step = pending.pop()
            step["errorHtml"] = format_error_html(step.get("errorMessage"), self.converter)
            pending.extend(step.get("steps") or [])
        return data

    # -----------------------------
    # Dashboard
    # -----------------------------

    def render_dashboard(self, run: RunSummary, results: List[TestResult], payload: Dict[str, Any]) -> str:
        total = run.total_tests
        failed = run.failed + run.timed_out
        avg = sum(r.duration for r in results) / len(results) if results else 0.0

        cards = f"""
<div class="dashboard-grid">
  <div class="summary-card"><h3>Total Tests</h3><div class="value">{total}</div></div>
  <div class="summary-card status-passed"><h3>Passed</h3><div class="value">{run.passed}</div>
    <div class="trend-percentage">{_pct(run.passed, total)}</div></div>
  <div class="summary-card status-failed"><h3>Failed</h3><div class="value">{failed}</div>
    <div class="trend-percentage">{_pct(failed, total)}{f" ({run.timed_out} timed out)" if run.timed_out else ""}</div></div>
  <div class="summary-card status-skipped"><h3>Skipped</h3><div class="value">{run.skipped}</div>
    <div class="trend-percentage">{_pct(run.skipped, total)}</div></div>
  <div class="summary-card"><h3>Avg. Test Time</h3><div class="value">{format_duration(avg)}</div></div>
  <div class="summary-card"><h3>Run Duration</h3><div class="value">{format_duration(run.duration)}</div></div>
</div>"""

        if total or any(item["value"] for item in payload["pieData"]):
            pie = '<div class="chart-container lazy-chart" data-chart="status-pie"></div>'
        else:
            pie = _no_data("No test results for this run.")

        if run.environment in (None, {}, []):
            environment = _no_data("No environment information recorded.")
        else:
            environment = format_environment(run.environment)

        if payload["suites"]:
            rows = "".join(
                f"""<tr><td>{sanitize(s["name"])}</td><td>{sanitize(s["browser"])}</td>
<td>{_badge(s["statusOverall"])}</td><td>{s["passed"]}</td><td>{s["failed"]}</td><td>{s["skipped"]}</td><td>{s["count"]}</td></tr>"""
                for s in payload["suites"]
            )
            suites = f"""<table><thead><tr><th>Suite</th><th>Browser</th><th>Status</th><th>Passed</th>
<th>Failed</th><th>Skipped</th><th>Total</th></tr></thead><tbody>{rows}</tbody></table>"""
        else:
            suites = _no_data("No suites found.")

        return f"""{cards}
<div class="dashboard-bottom-row">
  <div class="card"><h3>Test Distribution</h3>{pie}</div>
  <div class="card"><h3>Environment</h3><div class="meta">Run {sanitize(run.id)} &middot; {sanitize(format_date(run.timestamp))}</div>{environment}</div>
</div>
<div class="card"><h3>Test Suites</h3>{suites}</div>"""


# -----------------------------
# Pipeline
# -----------------------------

def resolve_output_dir(output_dir: Union[str, Path]) -> Path:
    """Resolve against PULSE_USER_CWD (when set) or the working directory."""
    path = Path(output_dir)
    if path.is_absolute():
        return path
    return Path(os.getenv(USER_CWD_ENV_VAR) or os.getcwd()) / path


def generate_report(
    output_dir: Union[str, Path] = DEFAULT_OUTPUT_DIR,
    json_file: str = DEFAULT_JSON_FILE,
    html_file: str = DEFAULT_HTML_FILE,
    max_trend_points: int = MAX_TREND_POINTS,
    archive: bool = True,
    keep_history: Optional[int] = None,
    title: str = DEFAULT_REPORT_TITLE,
) -> Path:
    """
    Run the whole pipeline and return the path of the written report.

    Raises:
        MissingInputError: Current-run document is missing or malformed
        OSError: The report could not be written
    """
    out = resolve_output_dir(output_dir)
    document = load_run_document(out / json_file)
    run = RunSummary.from_dict(document["run"])
    results = [TestResult.from_dict(r) for r in document["results"] if isinstance(r, dict)]
    logger.info("Loaded run %s with %d result(s)", run.id or "?", len(results))

    archiver = HistoryArchiver(out / HISTORY_DIR_NAME)
    if archive:
        try:
            archiver.archive(document["run"], document["results"])
            if keep_history is not None:
                archiver.prune(keep_history)
        except OSError as e:
            logger.warning("Could not update history archive: %s", e)

    records = archiver.list()
    aggregator = TrendAggregator(max_trend_points)
    points = aggregator.aggregate(records)
    detector = FlakyTestDetector()

    assembler = ReportAssembler(out, title=title)
    report = assembler.assemble(
        run,
        results,
        trend_points=points,
        flaky_tests=detector.analyze(records),
        test_history=aggregator.test_history(records),
        duration_trend=detect_duration_trend(points),
        history_flakiness_rate=detector.flakiness_rate(records) if records else None,
    )
    return report.write(out / html_file)


def main(argv: Optional[List[str]] = None) -> int:
    p = argparse.ArgumentParser(
        description="Generate a self-contained HTML report from a Playwright Pulse run and its history."
    )
    p.add_argument("--output-dir", default=DEFAULT_OUTPUT_DIR,
                   help="Directory holding the run JSON, attachments and history (relative to $PULSE_USER_CWD or cwd)")
    p.add_argument("--json-file", default=DEFAULT_JSON_FILE, help="Current run JSON file name")
    p.add_argument("--html-file", default=DEFAULT_HTML_FILE, help="Report file name")
    p.add_argument("--title", default=DEFAULT_REPORT_TITLE, help="Report title")
    p.add_argument("--max-trend-points", type=int, default=MAX_TREND_POINTS,
                   help="Most recent runs shown in trend charts")
    p.add_argument("--keep-history", type=int, default=None,
                   help="Prune the archive to this many runs after archiving")
    p.add_argument("--no-archive", action="store_true", help="Do not archive the current run")
    p.add_argument("--verbose", action="store_true", help="Debug logging")
    args = p.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.max_trend_points <= 0:
        print("Error: --max-trend-points must be positive", file=sys.stderr)
        return EXIT_PARSE_ERROR

    print("🚀 Generating static HTML report...")
    try:
        path = generate_report(
            output_dir=args.output_dir,
            json_file=args.json_file,
            html_file=args.html_file,
            max_trend_points=args.max_trend_points,
            archive=not args.no_archive,
            keep_history=args.keep_history,
            title=args.title,
        )
    except MissingInputError as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_PARSE_ERROR
    except OSError as e:
        print(f"❌ Could not write report: {e}", file=sys.stderr)
        return EXIT_FAILURE

    print(f"✅ Report written to {path}")
    return EXIT_SUCCESS


if __name__ == "__main__":
    raise SystemExit(main())
