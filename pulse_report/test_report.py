#!/usr/bin/env python3
"""
Test suite for report.py and report_template.py

Formatting helpers, derived views, document assembly and the CLI pipeline.
"""
import json
import re
from pathlib import Path

import pytest

from pulse_report.constants import EXIT_PARSE_ERROR, EXIT_SUCCESS, SENTINEL_WORKER_ID
from pulse_report.models import TestResult
from pulse_report.report import (
    ReportAssembler,
    build_worker_timeline,
    derive_suite_name,
    error_signature,
    format_duration,
    format_environment,
    generate_report,
    group_failures,
    main,
    suites_data,
)
from pulse_report.report_template import DEFERRED_TABS, SCRIPT, json_for_script


def _embedded_json(html, element_id):
    match = re.search(rf'<script type="application/json" id="{element_id}">(.*?)</script>', html, re.S)
    assert match, f"missing {element_id} block"
    return json.loads(match.group(1))


def _without_payload(html):
    return re.sub(r'<script type="application/json" id="pulse-data">.*?</script>', "", html, flags=re.S)


# ============================================================================
# Formatting
# ============================================================================

class TestFormatDuration:
    """format_duration."""

    @pytest.mark.parametrize("ms,expected", [
        (0, "0.0s"),
        (1500, "1.5s"),
        (59_900, "59.9s"),
        (60_000, "1m 0s"),
        (123_000, "2m 3s"),
        (123_400, "2m 4s"),
        (3_605_000, "1h 0m 5s"),
        (None, "0.0s"),
        (-5, "0.0s"),
        ("abc", "0.0s"),
    ])
    def test_format(self, ms, expected):
        """Seconds below a minute, h/m/s above."""
        assert format_duration(ms) == expected


class TestFormatEnvironment:
    """Recursive environment formatter."""

    def test_nested_values_are_escaped(self):
        """Keys and leaves are escaped at every depth."""
        html = format_environment({"os": "<linux>", "cpu": {"cores": 8}, "tags": ["a", "b&c"]})

        assert "&lt;linux&gt;" in html
        assert '<span class="env-key">cores:</span> 8' in html
        assert "a, b&amp;c" in html
        assert "<linux>" not in html

    def test_scalars(self):
        """Primitives render directly."""
        assert format_environment(None) == "N/A"
        assert format_environment(True) == "true"
        assert format_environment(3.5) == "3.5"


# ============================================================================
# Derived views
# ============================================================================

class TestSuites:
    """Suite grouping."""

    def test_explicit_suite_preferred(self, make_result):
        """suiteName wins when present."""
        result = TestResult.from_dict(make_result("t", "passed", suiteName="Explicit"))

        assert derive_suite_name(result) == "Explicit"

    @pytest.mark.parametrize("name,expected", [
        ("tests/login.spec.ts > Login > works", "Login"),
        ("tests/login.spec.ts > works", "login"),
        ("e2e/cart.test.js", "cart"),
    ])
    def test_heuristic_from_name(self, make_result, name, expected):
        """Without metadata the hierarchical name decides."""
        result = TestResult.from_dict(make_result("t", "passed", name=name, suiteName=""))

        assert derive_suite_name(result) == expected

    def test_heuristic_can_be_forced(self, make_result):
        """prefer_explicit=False ignores suiteName."""
        result = TestResult.from_dict(make_result("t", "passed", suiteName="Explicit"))

        assert derive_suite_name(result, prefer_explicit=False) == "Login"

    def test_suites_data_per_browser(self, make_result):
        """Suites are tallied per (suite, browser)."""
        results = [TestResult.from_dict(r) for r in [
            make_result("a", "passed"),
            make_result("b", "failed"),
            make_result("c", "passed", browser="firefox"),
        ]]

        suites = suites_data(results)

        assert [(s["name"], s["browser"], s["statusOverall"]) for s in suites] == [
            ("Login", "chromium", "failed"),
            ("Login", "firefox", "passed"),
        ]
        assert suites[0]["count"] == 2


class TestWorkerTimeline:
    """build_worker_timeline."""

    def test_sentinel_excluded(self, sample_document):
        """Tests on the sentinel worker are counted, not plotted."""
        results = [TestResult.from_dict(r) for r in sample_document["results"]]

        timeline = build_worker_timeline(results)

        assert timeline["excludedCount"] == 1
        assert [w["workerId"] for w in timeline["workers"]] == [0, 1]
        assert all(t["status"] != "skipped" for w in timeline["workers"] for t in w["tests"])
        assert timeline["sentinelWorkerId"] == SENTINEL_WORKER_ID
        assert timeline["rationale"]

    def test_offsets_and_order(self, make_result):
        """Lanes are chronological with offsets from the earliest start."""
        results = [TestResult.from_dict(r) for r in [
            make_result("late", "passed", startTime="2025-05-01T10:00:02Z", duration=500),
            make_result("early", "passed", startTime="2025-05-01T10:00:00Z", duration=1000),
        ]]

        lane = build_worker_timeline(results)["workers"][0]

        assert [t["title"] for t in lane["tests"]] == ["early", "late"]
        assert lane["tests"][1]["start"] == pytest.approx(2000)
        assert lane["tests"][1]["end"] == pytest.approx(2500)

    def test_missing_start_time(self, make_result):
        """Tests without a start time are counted as unscheduled."""
        results = [TestResult.from_dict(make_result("t", "passed", startTime=None))]

        timeline = build_worker_timeline(results)

        assert timeline["workers"] == []
        assert timeline["unscheduledCount"] == 1


class TestFailureGroups:
    """error_signature / group_failures."""

    def test_signature_is_first_plain_line(self):
        """Styling and trailing lines are dropped."""
        assert error_signature("\n\x1b[31mError: boom\x1b[0m\n  at x") == "Error: boom"
        assert error_signature(None) == "Unknown error"

    def test_grouped_by_signature(self, make_result):
        """Failures sharing a first line are grouped, largest first."""
        results = [TestResult.from_dict(r) for r in [
            make_result("a", "failed", errorMessage="Timeout\nA"),
            make_result("b", "passed"),
            make_result("c", "timedOut", errorMessage="Other"),
            make_result("d", "failed", errorMessage="Timeout\nD"),
        ]]

        groups = group_failures(results)

        assert [(g["signature"], g["count"]) for g in groups] == [("Timeout", 2), ("Other", 1)]
        assert groups[0]["indices"] == [0, 3]


# ============================================================================
# Assembly
# ============================================================================

class TestReportAssembler:
    """ReportAssembler.assemble."""

    def test_payload_embedded_once(self, output_dir, sample_document):
        """The document carries one data block and renders the dashboard eagerly."""
        doc = ReportAssembler(output_dir).assemble(sample_document["run"], sample_document["results"])

        payload = _embedded_json(doc.html, "pulse-data")
        assert payload["run"]["id"] == sample_document["run"]["id"]
        assert len(payload["results"]) == 3
        assert doc.html.count('type="application/json"') == 1
        assert 'id="pulse-tabs"' not in doc.html
        assert "Test Distribution" in doc.html

    def test_deferred_tabs_have_no_markup(self, output_dir, sample_document):
        """Every non-default panel ships empty and has a builder in the page script."""
        doc = ReportAssembler(output_dir).assemble(sample_document["run"], sample_document["results"])

        assert set(DEFERRED_TABS) == {"test-runs", "failures", "trends", "test-history", "flaky-tests", "workers"}
        for tab_id in DEFERRED_TABS:
            assert f'<section id="{tab_id}" class="tab-content"></section>' in doc.html
            assert f"'{tab_id}': build" in SCRIPT

    def test_failure_text_only_in_payload(self, output_dir, make_run, make_result):
        """Error and console text appear only as data, never as rendered markup."""
        doc = ReportAssembler(output_dir).assemble(make_run(), [make_result(
            "x", "failed", errorMessage="UNIQUE_ERROR_MARKER_123", stdout=["UNIQUE_STDOUT_MARKER_456"],
        )])

        outside = _without_payload(doc.html)
        assert "UNIQUE_ERROR_MARKER_123" not in outside
        assert "UNIQUE_STDOUT_MARKER_456" not in outside
        assert 'error-block">UNIQUE' not in doc.html
        result = _embedded_json(doc.html, "pulse-data")["results"][0]
        assert result["errorHtml"] == "UNIQUE_ERROR_MARKER_123"
        assert result["stdoutHtml"] == "UNIQUE_STDOUT_MARKER_456"

    def test_test_names_are_escaped(self, output_dir, make_run, make_result):
        """Markup in names and errors never reaches the document unescaped."""
        evil = "<script>alert(1)</script>"
        doc = ReportAssembler(output_dir).assemble(make_run(), [make_result("x", "failed", name=evil, errorMessage=evil)])

        assert evil not in doc.html
        result = _embedded_json(doc.html, "pulse-data")["results"][0]
        assert result["name"] == evil
        assert result["errorHtml"] == "&lt;script&gt;alert(1)&lt;/script&gt;"

    def test_error_and_stdout_converted(self, output_dir, sample_document):
        """ANSI in errors and stdout is converted once, into the payload."""
        doc = ReportAssembler(output_dir).assemble(sample_document["run"], sample_document["results"])
        results = _embedded_json(doc.html, "pulse-data")["results"]
        failed = next(r for r in results if r["errorMessage"])

        assert failed["errorHtml"] == (
            '<span style="color:#d00">Error: expected 200</span><br>&nbsp;&nbsp;&nbsp;&nbsp;at login.spec.ts:12'
        )
        assert failed["errorPreview"] == "Error: expected 200\n    at login.spec.ts:12"
        assert failed["stdoutHtml"].startswith('<span style="color:#0a0">ok</span>')
        assert all("\x1b" not in r["errorHtml"] + r["stdoutHtml"] for r in results)

    def test_step_errors_converted(self, output_dir, make_run, make_result):
        """Nested step errors carry their converted markup."""
        steps = [{"id": "1", "title": "outer", "status": "failed", "steps": [
            {"id": "2", "title": "inner", "status": "failed", "errorMessage": "\x1b[31mboom\x1b[0m"},
        ]}]
        doc = ReportAssembler(output_dir).assemble(make_run(), [make_result("x", "failed", steps=steps)])

        outer = doc.payload["results"][0]["steps"][0]
        assert outer["errorHtml"] == ""
        assert outer["steps"][0]["errorHtml"] == '<span style="color:#d00">boom</span>'

    def test_failure_groups_reference_results(self, output_dir, sample_document):
        """Failure groups point at payload results by index."""
        doc = ReportAssembler(output_dir).assemble(sample_document["run"], sample_document["results"])
        payload = doc.payload

        group = payload["failureGroups"][0]
        assert group["signature"] == "Error: expected 200"
        assert [payload["results"][i]["id"] for i in group["indices"]] == group["testIds"]

    def test_media_is_deferred(self, output_dir, make_run, make_result):
        """Only the payload holds the data URI; no media element is pre-rendered."""
        (output_dir / "shot.png").write_bytes(b"png")
        doc = ReportAssembler(output_dir).assemble(
            make_run(), [make_result("t", "failed", screenshots=["shot.png", "missing.png"])]
        )

        payload = _embedded_json(doc.html, "pulse-data")
        assert len(payload["results"][0]["screenshots"]) == 1
        assert doc.html.count("data:image/png;base64,") == 1
        assert 'data-test="0"' not in doc.html

    def test_empty_run(self, output_dir, make_run):
        """An empty run yields empty collections; the script has a placeholder for each view."""
        doc = ReportAssembler(output_dir).assemble(make_run(totalTests=0, passed=0, failed=0, skipped=0), [])
        payload = doc.payload

        assert payload["results"] == []
        assert payload["failureGroups"] == []
        assert payload["trendData"] == {"overall": [], "testHistory": {}}
        assert payload["flakyTests"] == []
        assert payload["workers"]["workers"] == []
        assert 'class="no-data"' in doc.html
        for message in (
            "No test results to display.",
            "No failed tests in this run.",
            "No historical runs available for trend analysis.",
            "No execution history available.",
            "No flaky tests detected in the available history.",
            "No worker activity to display.",
        ):
            assert message in SCRIPT

    def test_script_config(self, output_dir, make_run):
        """Display settings the script needs travel in the payload config."""
        config = ReportAssembler(output_dir).assemble(make_run(), []).payload["config"]

        assert config["nameDelimiter"] == " > "
        assert "timedOut" in config["statuses"]
        assert config["lazyRootMargin"] == "200px"

    def test_write(self, output_dir, sample_document, tmp_path):
        """write creates parent directories."""
        doc = ReportAssembler(output_dir).assemble(sample_document["run"], sample_document["results"])

        path = doc.write(tmp_path / "nested" / "report.html")

        assert path.read_text(encoding="utf-8").startswith("<!doctype html>")

    def test_json_for_script_cannot_close_tag(self):
        """Embedded JSON never contains a closing script tag."""
        text = json_for_script({"a": "</script><!--"})

        assert "</script>" not in text
        assert json.loads(text) == {"a": "</script><!--"}


# ============================================================================
# Pipeline
# ============================================================================

class TestGenerateReport:
    """generate_report / main."""

    def test_full_pipeline(self, output_dir, sample_document, write_json):
        """Archives the run, reads history back and writes the report."""
        write_json(output_dir / "playwright-pulse-report.json", sample_document)

        path = generate_report(output_dir)
        path = generate_report(output_dir)

        assert path.name == "playwright-pulse-static-report.html"
        assert len(list((output_dir / "history").glob("trend-*.json"))) == 2
        payload = _embedded_json(path.read_text(encoding="utf-8"), "pulse-data")
        assert len(payload["trendData"]["overall"]) == 2

    def test_relative_dir_uses_user_cwd(self, tmp_path, sample_document, write_json, monkeypatch):
        """Relative output directories resolve against PULSE_USER_CWD."""
        write_json(tmp_path / "out" / "playwright-pulse-report.json", sample_document)
        monkeypatch.setenv("PULSE_USER_CWD", str(tmp_path))

        path = generate_report("out", archive=False)

        assert path == tmp_path / "out" / "playwright-pulse-static-report.html"
        assert not (tmp_path / "out" / "history").exists()

    def test_main_success(self, output_dir, sample_document, write_json, capsys):
        """The CLI exits 0 and reports the path."""
        write_json(output_dir / "playwright-pulse-report.json", sample_document)

        code = main(["--output-dir", str(output_dir)])

        assert code == EXIT_SUCCESS
        assert "Report written" in capsys.readouterr().out

    def test_main_missing_input(self, output_dir, capsys):
        """A missing current-run file exits with the parse-error code."""
        code = main(["--output-dir", str(output_dir)])

        assert code == EXIT_PARSE_ERROR
        assert "not found" in capsys.readouterr().err

    def test_main_unreadable_history(self, output_dir, sample_document, write_json, monkeypatch, caplog):
        """An unlistable history directory still produces a report, with a warning."""
        write_json(output_dir / "playwright-pulse-report.json", sample_document)

        def _denied(self):
            raise PermissionError(13, "Permission denied", str(self))

        monkeypatch.setattr(Path, "iterdir", _denied)

        code = main(["--output-dir", str(output_dir)])

        assert code == EXIT_SUCCESS
        assert (output_dir / "playwright-pulse-static-report.html").is_file()
        assert "Could not read history directory" in caplog.text
