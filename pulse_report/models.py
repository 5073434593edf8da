"""Data model for runs, test results and the values derived from history.

Input documents are loosely typed JSON written by the test runner
(camelCase keys). Every type parses tolerantly through `from_dict` and
serializes back to the same camelCase shape through `to_dict`, which is
also the shape embedded in the report payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from .constants import DEFAULT_FLAKINESS_RATE, SENTINEL_WORKER_ID, TEST_NAME_DELIMITER
from .errors import AggregationInconsistency


# Arbitrary nested environment data: primitive | list of values | mapping of values
EnvValue = Union[None, bool, int, float, str, List["EnvValue"], Dict[str, "EnvValue"]]


# -----------------------------
# Coercion helpers
# -----------------------------

def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None and str(v) != ""]
    return [str(value)]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a run/test timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (a trailing "Z" included), epoch milliseconds
    as int/float or numeric string, and datetime objects. Returns None for
    anything else.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if text.isdigit():
        return parse_timestamp(int(text))
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def timestamp_ms(value: Any) -> Optional[int]:
    """Epoch milliseconds for a timestamp value, or None if unparsable."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return int(round(parsed.timestamp() * 1000))


def normalize_environment(value: Any) -> EnvValue:
    """Coerce arbitrary environment data into the nested EnvValue variant."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, dict):
        return {str(k): normalize_environment(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [normalize_environment(v) for v in value]
    return str(value)


# -----------------------------
# Models
# -----------------------------

@dataclass(frozen=True)
class RunSummary:
    id: str
    timestamp: str
    total_tests: int
    passed: int
    failed: int
    skipped: int
    timed_out: int = 0
    pending: int = 0
    duration: float = 0.0
    environment: EnvValue = None
    flakiness_rate: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunSummary":
        if not isinstance(data, dict):
            raise AggregationInconsistency("run summary must be an object")
        rate = data.get("flakinessRate")
        return cls(
            id=_str(data.get("id")),
            timestamp=_str(data.get("timestamp")),
            total_tests=_int(data.get("totalTests")),
            passed=_int(data.get("passed")),
            failed=_int(data.get("failed")),
            skipped=_int(data.get("skipped")),
            timed_out=_int(data.get("timedOut")),
            pending=_int(data.get("pending")),
            duration=_float(data.get("duration")),
            environment=normalize_environment(data.get("environment")),
            flakiness_rate=None if rate is None else _float(rate, DEFAULT_FLAKINESS_RATE),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "timestamp": self.timestamp,
            "totalTests": self.total_tests,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "timedOut": self.timed_out,
            "pending": self.pending,
            "duration": self.duration,
            "environment": self.environment,
        }
        if self.flakiness_rate is not None:
            data["flakinessRate"] = self.flakiness_rate
        return data


@dataclass
class TestStep:
    __test__ = False

    id: str
    title: str
    status: str
    duration: float = 0.0
    steps: List["TestStep"] = field(default_factory=list)
    error_message: Optional[str] = None
    code_location: Optional[str] = None
    is_hook: bool = False
    hook_type: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], _ancestry: Optional[set] = None) -> "TestStep":
        # Each node is built fresh, so a dict reused across branches still
        # yields separately owned subtrees. A dict found in its own ancestry
        # would recurse forever and is dropped.
        ancestry = set() if _ancestry is None else _ancestry
        ancestry.add(id(data))
        children = []
        for child in data.get("steps") or []:
            if not isinstance(child, dict) or id(child) in ancestry:
                continue
            children.append(cls.from_dict(child, ancestry))
        ancestry.discard(id(data))

        hook_type = data.get("hookType")
        return cls(
            id=_str(data.get("id")),
            title=_str(data.get("title"), "Untitled step"),
            status=_str(data.get("status"), "unknown"),
            duration=_float(data.get("duration")),
            steps=children,
            error_message=data.get("errorMessage") or data.get("error") or None,
            code_location=data.get("codeLocation") or None,
            is_hook=bool(data.get("isHook")) or bool(hook_type),
            hook_type=hook_type or None,
            start_time=data.get("startTime"),
            end_time=data.get("endTime"),
        )

    def to_dict(self) -> Dict[str, Any]:
        # Explicit stack instead of recursion so very deep trees serialize too
        root: Dict[str, Any] = {}
        stack = [(self, root)]
        while stack:
            step, out = stack.pop()
            out.update({
                "id": step.id,
                "title": step.title,
                "status": step.status,
                "duration": step.duration,
                "errorMessage": step.error_message,
                "codeLocation": step.code_location,
                "isHook": step.is_hook,
                "hookType": step.hook_type,
                "startTime": step.start_time,
                "endTime": step.end_time,
                "steps": [],
            })
            for child in step.steps:
                child_out: Dict[str, Any] = {}
                out["steps"].append(child_out)
                stack.append((child, child_out))
        return root

    def walk(self):
        """Yield this step and all descendants, depth first."""
        stack = [self]
        while stack:
            step = stack.pop()
            yield step
            stack.extend(reversed(step.steps))


@dataclass(frozen=True)
class Attachment:
    name: str
    path: str
    content_type: Optional[str] = None

    @classmethod
    def from_value(cls, value: Any) -> Optional["Attachment"]:
        """Build from a bare path or an {name, path, contentType} object."""
        if isinstance(value, str):
            if not value.strip():
                return None
            return cls(name=value.replace("\\", "/").rsplit("/", 1)[-1], path=value)
        if isinstance(value, dict) and value.get("path"):
            path = str(value["path"])
            return cls(
                name=_str(value.get("name")) or path.replace("\\", "/").rsplit("/", 1)[-1],
                path=path,
                content_type=value.get("contentType") or None,
            )
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "path": self.path, "contentType": self.content_type}


@dataclass
class TestResult:
    __test__ = False

    id: str
    name: str
    suite_name: str
    status: str
    duration: float = 0.0
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    browser: str = "unknown"
    worker_id: Union[int, str] = SENTINEL_WORKER_ID
    retries: int = 0
    steps: List[TestStep] = field(default_factory=list)
    error_message: Optional[str] = None
    stdout: List[str] = field(default_factory=list)
    screenshots: List[Attachment] = field(default_factory=list)
    video_paths: List[str] = field(default_factory=list)
    trace_path: Optional[str] = None
    attachments: List[Attachment] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    code_snippet: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestResult":
        if not isinstance(data, dict):
            raise AggregationInconsistency("test result must be an object")

        stdout = data.get("stdout")
        if isinstance(stdout, str):
            stdout = stdout.splitlines()

        worker = data.get("workerId")
        if worker is None or worker == "":
            worker = SENTINEL_WORKER_ID
        elif not isinstance(worker, int):
            worker = _int(worker, default=None) if str(worker).lstrip("-").isdigit() else str(worker)

        screenshots = [Attachment.from_value(s) for s in data.get("screenshots") or []]
        attachments = [Attachment.from_value(a) for a in data.get("attachments") or []]

        return cls(
            id=_str(data.get("id")) or _str(data.get("name")),
            name=_str(data.get("name"), "Unnamed Test"),
            suite_name=_str(data.get("suiteName")),
            status=_str(data.get("status"), "unknown"),
            duration=_float(data.get("duration")),
            start_time=data.get("startTime"),
            end_time=data.get("endTime"),
            browser=_str(data.get("browser")) or "unknown",
            worker_id=worker,
            retries=_int(data.get("retries")),
            steps=[TestStep.from_dict(s) for s in data.get("steps") or [] if isinstance(s, dict)],
            error_message=data.get("errorMessage") or data.get("error") or None,
            stdout=_str_list(stdout),
            screenshots=[s for s in screenshots if s is not None],
            video_paths=_str_list(data.get("videoPath")),
            trace_path=data.get("tracePath") or None,
            attachments=[a for a in attachments if a is not None],
            tags=_str_list(data.get("tags")),
            code_snippet=data.get("codeSnippet") or None,
        )

    @property
    def title(self) -> str:
        """Last segment of the hierarchical name."""
        parts = self.name.split(TEST_NAME_DELIMITER)
        return parts[-1] or "Unnamed Test"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "suiteName": self.suite_name,
            "status": self.status,
            "duration": self.duration,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "browser": self.browser,
            "workerId": self.worker_id,
            "retries": self.retries,
            "steps": [s.to_dict() for s in self.steps],
            "errorMessage": self.error_message,
            "stdout": list(self.stdout),
            "screenshots": [s.to_dict() for s in self.screenshots],
            "videoPath": list(self.video_paths),
            "tracePath": self.trace_path,
            "attachments": [a.to_dict() for a in self.attachments],
            "tags": list(self.tags),
            "codeSnippet": self.code_snippet,
        }


@dataclass(frozen=True)
class HistoryRecord:
    """Immutable snapshot of one archived run."""
    run: RunSummary
    results: tuple
    source: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any, source: Optional[str] = None) -> "HistoryRecord":
        """
        Raises:
            AggregationInconsistency: If `run` or `results` is missing or mistyped
        """
        if not isinstance(data, dict):
            raise AggregationInconsistency("record must be a JSON object")
        if not isinstance(data.get("run"), dict):
            raise AggregationInconsistency("record is missing 'run'")
        if not isinstance(data.get("results"), list):
            raise AggregationInconsistency("record is missing 'results'")
        return cls(
            run=RunSummary.from_dict(data["run"]),
            results=tuple(TestResult.from_dict(r) for r in data["results"] if isinstance(r, dict)),
            source=source,
        )

    @property
    def timestamp_ms(self) -> Optional[int]:
        return timestamp_ms(self.run.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {"run": self.run.to_dict(), "results": [r.to_dict() for r in self.results]}


@dataclass(frozen=True)
class TrendPoint:
    date: str
    total_tests: int
    passed: int
    failed: int
    skipped: int
    duration: float
    flakiness_rate: float = DEFAULT_FLAKINESS_RATE
    run_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "runId": self.run_id,
            "totalTests": self.total_tests,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "duration": self.duration,
            "flakinessRate": self.flakiness_rate,
        }


@dataclass(frozen=True)
class FlakyOccurrence:
    run_timestamp: str
    status: str

    def to_dict(self) -> Dict[str, Any]:
        return {"runTimestamp": self.run_timestamp, "status": self.status}


@dataclass(frozen=True)
class FlakyTestDetail:
    id: str
    name: str
    suite_name: str
    occurrences: tuple
    passed_count: int
    failed_count: int
    skipped_count: int
    pending_count: int
    total_runs: int
    first_seen: str
    last_seen: str

    @property
    def failure_rate(self) -> float:
        return self.failed_count / self.total_runs if self.total_runs else 0.0

    @property
    def is_flaky(self) -> bool:
        return self.passed_count > 0 and self.failed_count > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "suiteName": self.suite_name,
            "occurrences": [o.to_dict() for o in self.occurrences],
            "passedCount": self.passed_count,
            "failedCount": self.failed_count,
            "skippedCount": self.skipped_count,
            "pendingCount": self.pending_count,
            "totalRuns": self.total_runs,
            "firstSeen": self.first_seen,
            "lastSeen": self.last_seen,
            "failureRate": self.failure_rate,
        }
