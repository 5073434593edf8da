"""
Pulse Report - Constants Configuration

This module centralizes all configuration constants used throughout the
report-generation pipeline. Each constant is documented with its purpose
and acceptable value ranges.
"""

# ==============================================================================
# FILE SYSTEM LAYOUT
# ==============================================================================

# Directory (relative to the working directory) holding the current run's
# JSON, its attachments, the history archive and the generated report
DEFAULT_OUTPUT_DIR = "pulse-report"

# Current run document written by the test runner: {"run": ..., "results": [...]}
DEFAULT_JSON_FILE = "playwright-pulse-report.json"

# Static, self-contained report written by this tool
DEFAULT_HTML_FILE = "playwright-pulse-static-report.html"

# Sub-directory of the output directory holding one JSON file per archived run
HISTORY_DIR_NAME = "history"

# History file naming: trend-<epoch ms>.json, or trend-<epoch ms>-<n>.json
# when two runs land on the same millisecond
HISTORY_FILE_PREFIX = "trend-"
HISTORY_FILE_SUFFIX = ".json"

# Environment variable that overrides the base directory used to resolve
# working-directory-relative paths
USER_CWD_ENV_VAR = "PULSE_USER_CWD"


# ==============================================================================
# TREND / HISTORY LIMITS
# ==============================================================================

# Number of most recent history records shown in trend charts
# Bounds downstream rendering cost; 15 keeps charts legible
MAX_TREND_POINTS = 15

# Default flakiness rate for trend points whose run summary omits it
DEFAULT_FLAKINESS_RATE = 0.0

# Duration creep detection (linear regression over run durations)
# Alert if the fitted slope exceeds this % of the first duration per run
DURATION_TREND_SLOPE_PCT = 3.0
# Alert if the total change across the series exceeds this %
DURATION_TREND_TOTAL_PCT = 5.0
# Minimum goodness of fit (0-1) before a linear trend is trusted
DURATION_TREND_MIN_R_SQUARED = 0.7
# Maximum p-value for the slope to count as significant
DURATION_TREND_P_VALUE = 0.05
# Minimum number of points before a trend is computed at all
DURATION_TREND_MIN_POINTS = 3


# ==============================================================================
# TEST RESULT SEMANTICS
# ==============================================================================

STATUS_PASSED = "passed"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"
STATUS_TIMED_OUT = "timedOut"
STATUS_PENDING = "pending"

ALL_STATUSES = (STATUS_PASSED, STATUS_FAILED, STATUS_SKIPPED, STATUS_TIMED_OUT, STATUS_PENDING)

# Statuses counted as failures when tallying and when classifying flakiness
FAILING_STATUSES = frozenset({STATUS_FAILED, STATUS_TIMED_OUT})

# Delimiter joining the hierarchical parts of a test name
# e.g. "tests/login.spec.ts > Login > rejects a bad password"
TEST_NAME_DELIMITER = " > "

# Worker id assigned by the runner to tests that never occupied an
# execution slot (e.g. skipped tests)
SENTINEL_WORKER_ID = -1

# Shown next to the worker timeline to explain the excluded sentinel worker
SENTINEL_WORKER_RATIONALE = (
    "Tests reported on worker -1 were never assigned to an execution slot. "
    "The runner places skipped tests there because they do not need a browser, "
    "which keeps real workers focused on tests that execute. They are left out "
    "of the timeline but still appear in the test list."
)

# Suffixes stripped from a test file name when it is used as a suite name
TEST_FILE_SUFFIXES = (".spec.ts", ".spec.js", ".spec.mjs", ".spec.cjs",
                      ".test.ts", ".test.js", ".test.mjs", ".test.cjs")

# Fallback suite name when neither metadata nor the test name yield one
DEFAULT_SUITE_NAME = "Default Suite"


# ==============================================================================
# ATTACHMENTS
# ==============================================================================

# Video content types resolved from the file extension
VIDEO_MIME_TYPES = {
    "mp4": "video/mp4",
    "webm": "video/webm",
    "ogg": "video/ogg",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
}

# Used when the video extension is not in VIDEO_MIME_TYPES
DEFAULT_VIDEO_MIME_TYPE = "video/mp4"

# Used for screenshots referenced by bare path (no content type supplied)
DEFAULT_SCREENSHOT_MIME_TYPE = "image/png"

# Playwright traces are zip archives
TRACE_MIME_TYPE = "application/zip"

# Used for generic attachments that do not declare a content type
DEFAULT_ATTACHMENT_MIME_TYPE = "application/octet-stream"


# ==============================================================================
# UI/HTML REPORT CONSTANTS
# ==============================================================================

# Chart.js CDN URL; the only external resource the report loads at view time
CHARTJS_CDN_URL = "https://cdn.jsdelivr.net/npm/chart.js@4.4.1/dist/chart.umd.min.js"

# Default report title (overridden with --title)
DEFAULT_REPORT_TITLE = "Playwright Pulse Report"

# Tab rendered eagerly; every other tab is injected on first access
DEFAULT_TAB = "dashboard"

# Media elements start resolving when they come this close to the viewport
LAZY_LOAD_ROOT_MARGIN = "200px"

# Characters of an error message shown in collapsed failure cards
ERROR_PREVIEW_CHARS = 150

# Status colours (charts and badges)
COLOR_PASSED = "#4caf50"
COLOR_FAILED = "#f44336"
COLOR_SKIPPED = "#ff9800"
COLOR_TIMED_OUT = "#9c27b0"
COLOR_PENDING = "#2196f3"
COLOR_DURATION = "#0066ff"

# Light theme (matches the rest of the report family)
LIGHT_BG_PRIMARY = "#f8f9fa"      # Main background
LIGHT_BG_SECONDARY = "#ffffff"    # Cards and sections
LIGHT_BG_TERTIARY = "#f0f0f0"     # Nested elements
LIGHT_TEXT_PRIMARY = "#333333"    # Main text
LIGHT_TEXT_SECONDARY = "#666666"  # Secondary text
LIGHT_BORDER = "#e5e5e5"          # Border color


# ==============================================================================
# LIVE DATA ENDPOINT
# ==============================================================================

# Default port for the data endpoint server (overridden by PORT)
DEFAULT_SERVER_PORT = 5000

# Interval (ms) at which live-view consumers are expected to poll
LIVE_POLL_INTERVAL_MS = 5000


# ==============================================================================
# EXIT CODES
# ==============================================================================

# Exit code for successful report generation
EXIT_SUCCESS = 0

# Exit code when the report could not be assembled or written
EXIT_FAILURE = 1

# Exit code for missing/malformed current-run input
EXIT_PARSE_ERROR = 2
