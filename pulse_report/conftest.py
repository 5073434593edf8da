"""Shared fixtures for the pulse_report test suite."""

import json

import pytest


def _run(timestamp="2025-05-01T10:00:00Z", **overrides):
    run = {
        "id": f"run-{timestamp}",
        "timestamp": timestamp,
        "totalTests": 3,
        "passed": 1,
        "failed": 1,
        "skipped": 1,
        "timedOut": 0,
        "pending": 0,
        "duration": 12500,
        "environment": {"os": "linux", "node": "20.11.0", "cpu": {"cores": 8, "model": "x86"}},
    }
    run.update(overrides)
    return run


def _result(test_id, status, **overrides):
    result = {
        "id": test_id,
        "name": f"tests/login.spec.ts > Login > {test_id}",
        "suiteName": "Login",
        "status": status,
        "duration": 1500,
        "startTime": "2025-05-01T10:00:00Z",
        "endTime": "2025-05-01T10:00:01.500Z",
        "browser": "chromium",
        "workerId": 0,
        "retries": 0,
        "steps": [],
        "errorMessage": None,
        "stdout": [],
        "screenshots": [],
        "videoPath": [],
        "tracePath": None,
        "tags": [],
    }
    result.update(overrides)
    return result


@pytest.fixture
def make_run():
    """Factory for current-run summaries (camelCase dicts)."""
    return _run


@pytest.fixture
def make_result():
    """Factory for test results (camelCase dicts)."""
    return _result


@pytest.fixture
def sample_document(make_run, make_result):
    """A current-run document with one passed, one failed and one skipped test."""
    return {
        "run": make_run(),
        "results": [
            make_result("opens the form", "passed", workerId=0),
            make_result(
                "rejects a bad password",
                "failed",
                workerId=1,
                startTime="2025-05-01T10:00:00.500Z",
                errorMessage="\x1b[31mError: expected 200\x1b[0m\n    at login.spec.ts:12",
                stdout=["\x1b[32mok\x1b[39m step one"],
            ),
            make_result("skips on safari", "skipped", workerId=-1, duration=0),
        ],
    }


@pytest.fixture
def output_dir(tmp_path):
    """Empty report output directory."""
    out = tmp_path / "pulse-report"
    out.mkdir()
    return out


@pytest.fixture
def write_json():
    """Write an object as JSON to a path, creating parents."""
    def _write(path, data):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data), encoding="utf-8")
        return path
    return _write
