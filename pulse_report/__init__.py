"""
Pulse Report - static reporting for Playwright test runs.

Archives each run, aggregates trends and flaky tests across the archive,
and renders one self-contained HTML report.
"""

from .ansi import AnsiMarkupConverter, ansi_to_html, format_error_html, strip_ansi
from .attachments import AttachmentEmbedder
from .errors import (
    AggregationInconsistency,
    MalformedHistoryRecord,
    MissingAttachment,
    MissingInputError,
    PulseReportError,
)
from .flaky import FlakyTestDetector
from .history import HistoryArchiver
from .models import FlakyTestDetail, HistoryRecord, RunSummary, TestResult, TestStep, TrendPoint
from .report import ReportAssembler, generate_report
from .trends import TrendAggregator, detect_duration_trend

__version__ = "0.1.0"
