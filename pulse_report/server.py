#!/usr/bin/env python3
"""
Pulse Report - live data endpoint (Flask backend)

Serves the current run and history-derived data as JSON for a polling
dashboard. Every request re-reads the files on disk; nothing is cached.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Union

from flask import Flask, jsonify
from flask_cors import CORS

from .constants import (
    DEFAULT_JSON_FILE,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_SERVER_PORT,
    HISTORY_DIR_NAME,
    LIVE_POLL_INTERVAL_MS,
    MAX_TREND_POINTS,
)
from .errors import MissingInputError
from .flaky import FlakyTestDetector
from .history import HistoryArchiver, load_run_document
from .report import resolve_output_dir
from .trends import TrendAggregator

logger = logging.getLogger(__name__)


def create_app(output_dir: Optional[Union[str, Path]] = None, json_file: str = DEFAULT_JSON_FILE) -> Flask:
    """
    Build the data endpoint app.

    Args:
        output_dir: Report output directory (defaults to pulse-report under
            $PULSE_USER_CWD or the working directory)
        json_file: Current run JSON file name inside output_dir
    """
    out = resolve_output_dir(output_dir or DEFAULT_OUTPUT_DIR)
    archiver = HistoryArchiver(out / HISTORY_DIR_NAME)

    app = Flask(__name__)
    CORS(app)

    @app.route('/api/health')
    def health():
        return jsonify({
            'status': 'ok',
            'outputDir': str(out),
            'pollIntervalMs': LIVE_POLL_INTERVAL_MS,
        })

    @app.route('/api/current-run')
    def current_run():
        """Current run document as written by the test runner."""
        path = out / json_file
        try:
            return jsonify(load_run_document(path))
        except MissingInputError as e:
            logger.warning("%s", e)
            return jsonify({
                'error': 'Failed to load current run',
                'message': e.reason,
                'path': e.path,
            }), 500

    @app.route('/api/historical-trends')
    def historical_trends():
        """Trend points for the most recent archived runs."""
        try:
            points = TrendAggregator(MAX_TREND_POINTS).aggregate(archiver.list())
            return jsonify({'success': True, 'trends': [p.to_dict() for p in points]})
        except OSError as e:
            logger.error("Failed to read history: %s", e)
            return jsonify({'success': False, 'error': str(e)}), 500

    @app.route('/api/flaky-tests')
    def flaky_tests():
        """Flaky tests across all archived runs, most failing first."""
        try:
            flaky = FlakyTestDetector().analyze(archiver.list())
            return jsonify({'success': True, 'flakyTests': [d.to_dict() for d in flaky]})
        except OSError as e:
            logger.error("Failed to read history: %s", e)
            return jsonify({'success': False, 'error': str(e)}), 500

    return app


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    port = int(os.getenv('PORT', DEFAULT_SERVER_PORT))
    debug = os.getenv('FLASK_ENV', 'production') == 'development'

    app = create_app()
    print(f"🚀 Serving Pulse data on http://localhost:{port}")
    app.run(host='0.0.0.0', port=port, debug=debug)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
