"""Error taxonomy for report generation.

Only MissingInputError aborts a report. The others are raised at the
smallest affected unit (one history file, one attachment, one record) and
caught directly above it, where they are logged and the unit is dropped.
"""


class PulseReportError(Exception):
    """Base class for report-generation errors."""


class MissingInputError(PulseReportError):
    """Current-run document is absent, unreadable or lacks `run`/`results`."""

    def __init__(self, path, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"{reason}: {self.path}")


class MalformedHistoryRecord(PulseReportError):
    """A single history file could not be parsed."""

    def __init__(self, path, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Skipping history file {self.path}: {reason}")


class MissingAttachment(PulseReportError):
    """An attachment file referenced by a test result could not be read."""

    def __init__(self, path, reason: str = "file not found"):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Attachment unavailable ({reason}): {self.path}")


class AggregationInconsistency(PulseReportError):
    """A record lacks the `run`/`results` structure aggregation needs."""
