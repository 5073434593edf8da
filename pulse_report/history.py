"""History archive: one immutable JSON file per completed run.

Files live in `<output>/history/` and are named `trend-<epoch ms>.json`,
the run timestamp acting as both identity and sort key. Two runs that land
on the same millisecond get a monotonic suffix (`trend-<ms>-1.json`, ...)
since files are created exclusively and never overwritten.
"""

from __future__ import annotations

import itertools
import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .constants import HISTORY_FILE_PREFIX, HISTORY_FILE_SUFFIX
from .errors import AggregationInconsistency, MalformedHistoryRecord, MissingInputError
from .models import HistoryRecord, RunSummary, TestResult, timestamp_ms

logger = logging.getLogger(__name__)

HISTORY_FILE_PATTERN = re.compile(
    r"^" + re.escape(HISTORY_FILE_PREFIX) + r"(\d+)(?:-(\d+))?" + re.escape(HISTORY_FILE_SUFFIX) + r"$"
)


def parse_history_filename(name: str) -> Optional[Tuple[int, int]]:
    """(timestamp ms, collision suffix) for a history file name, else None."""
    match = HISTORY_FILE_PATTERN.match(name)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2) or 0)


def history_filename(key_ms: int, suffix: int = 0) -> str:
    if suffix:
        return f"{HISTORY_FILE_PREFIX}{key_ms}-{suffix}{HISTORY_FILE_SUFFIX}"
    return f"{HISTORY_FILE_PREFIX}{key_ms}{HISTORY_FILE_SUFFIX}"


def load_run_document(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load the current-run JSON document.

    Expected format:
    {
      "run": {"id": "...", "timestamp": "2025-05-01T10:00:00Z", "totalTests": 12, ...},
      "results": [{"id": "...", "name": "file.spec.ts > Suite > test", ...}]
    }

    Raises:
        MissingInputError: If the file is absent, unparsable, or lacks `run`/`results`
    """
    path = Path(path)
    if not path.is_file():
        raise MissingInputError(path, "Current run report not found")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MissingInputError(path, f"Could not read or parse current run report ({e})") from e

    if not isinstance(data, dict):
        raise MissingInputError(path, "Current run report must be a JSON object")
    if not isinstance(data.get("run"), dict):
        raise MissingInputError(path, "Current run report is missing 'run'")
    if not isinstance(data.get("results"), list):
        raise MissingInputError(path, "Current run report is missing 'results'")
    return data


def _as_dict(value: Any) -> Dict[str, Any]:
    return value.to_dict() if hasattr(value, "to_dict") else dict(value)


class HistoryArchiver:
    """Write and list archived runs in a history directory."""

    def __init__(self, history_dir: Union[str, Path]):
        self.history_dir = Path(history_dir)

    # -----------------------------
    # Writing
    # -----------------------------

    def archive(
        self,
        run: Union[RunSummary, Dict[str, Any]],
        results: Sequence[Union[TestResult, Dict[str, Any]]],
    ) -> Path:
        """
        Persist one run as a new history file and return its path.

        The full run summary and result list are written, not a diff.
        Existing files are never touched; a key collision picks the next
        free suffix.
        """
        run_dict = _as_dict(run)
        document = {"run": run_dict, "results": [_as_dict(r) for r in results]}

        key = timestamp_ms(run_dict.get("timestamp"))
        if key is None:
            key = int(time.time() * 1000)
            logger.warning(
                "Run %s has no parsable timestamp (%r); archiving under current time %d",
                run_dict.get("id", "?"), run_dict.get("timestamp"), key,
            )

        self.history_dir.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(document, indent=2)

        for suffix in itertools.count():
            path = self.history_dir / history_filename(key, suffix)
            try:
                with open(path, "x", encoding="utf-8") as f:
                    f.write(payload)
            except FileExistsError:
                continue
            if suffix:
                logger.info("History key %d already taken; archived as %s", key, path.name)
            logger.info("Archived run %s to %s", run_dict.get("id", "?"), path)
            return path

    def archive_file(self, report_path: Union[str, Path]) -> Path:
        """Archive the current-run document at `report_path` as-is."""
        data = load_run_document(report_path)
        return self.archive(data["run"], data["results"])

    # -----------------------------
    # Reading
    # -----------------------------

    def files(self) -> List[Tuple[Tuple[int, int], Path]]:
        """History files with their (ms, suffix) keys, oldest first."""
        if not self.history_dir.is_dir():
            return []
        found = []
        try:
            for path in self.history_dir.iterdir():
                key = parse_history_filename(path.name)
                if key is not None and path.is_file():
                    found.append((key, path))
        except OSError as e:
            logger.warning("Could not read history directory %s: %s", self.history_dir, e)
            return []
        found.sort(key=lambda item: item[0])
        return found

    def read(self, path: Union[str, Path]) -> HistoryRecord:
        """
        Parse one history file.

        Raises:
            MalformedHistoryRecord: If the file is unreadable, not JSON, or lacks `run`/`results`
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedHistoryRecord(path, str(e)) from e
        try:
            return HistoryRecord.from_dict(data, source=str(path))
        except AggregationInconsistency as e:
            raise MalformedHistoryRecord(path, str(e)) from e

    def list(self, limit: Optional[int] = None) -> List[HistoryRecord]:
        """
        All structurally valid records, sorted ascending by run timestamp.

        A missing history directory yields an empty list. Each file is
        parsed on its own; a bad file is logged and skipped.

        Args:
            limit: Keep only the newest `limit` records (still oldest first)
        """
        if not self.history_dir.exists():
            logger.info("History directory %s not found; no historical runs yet", self.history_dir)
            return []

        keyed = []
        for file_key, path in self.files():
            try:
                record = self.read(path)
            except MalformedHistoryRecord as e:
                logger.warning("%s", e)
                continue
            run_ms = record.timestamp_ms
            keyed.append(((run_ms if run_ms is not None else file_key[0], file_key), record))

        keyed.sort(key=lambda item: item[0])
        records = [record for _, record in keyed]
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return records

    def prune(self, keep: int) -> List[Path]:
        """Delete all but the newest `keep` history files; returns removed paths."""
        if keep < 0:
            raise ValueError("keep must be non-negative")
        files = self.files()
        doomed = [path for _, path in files[:max(0, len(files) - keep)]]
        for path in doomed:
            path.unlink()
            logger.info("Pruned history file %s", path.name)
        return doomed
