"""
HTML shell for the static Pulse report.

The shell is static markup, CSS and JS. Data reaches it through a single
JSON block, the exportable report payload (`pulse-data`). Only the default
tab is rendered server-side; the script builds every other view from the
payload on first activation, escaping payload strings itself. Fields named
`*Html` in the payload were converted and escaped when the report was built
and are inserted as-is. Everything interpolated into the markup here is
escaped by the caller or by `escape` below.
"""

import json
from html import escape
from typing import Any, Dict, List, Tuple

from .constants import (
    CHARTJS_CDN_URL,
    COLOR_DURATION,
    COLOR_FAILED,
    COLOR_PASSED,
    COLOR_PENDING,
    COLOR_SKIPPED,
    COLOR_TIMED_OUT,
    DEFAULT_TAB,
    LIGHT_BG_PRIMARY,
    LIGHT_BG_SECONDARY,
    LIGHT_BG_TERTIARY,
    LIGHT_BORDER,
    LIGHT_TEXT_PRIMARY,
    LIGHT_TEXT_SECONDARY,
)

# (tab id, label) in display order
TABS: Tuple[Tuple[str, str], ...] = (
    ("dashboard", "Dashboard"),
    ("test-runs", "Test Run Summary"),
    ("failures", "Failure Analysis"),
    ("trends", "Trends"),
    ("test-history", "Test History"),
    ("flaky-tests", "Flaky Tests"),
    ("workers", "Workers"),
)


def json_for_script(data: Any) -> str:
    """Serialize for a <script type="application/json"> block without ending it early."""
    return (
        json.dumps(data, ensure_ascii=False)
        .replace("</", "<\\/")
        .replace("<!--", "\\u003c!--")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


def _root_vars() -> str:
    return f"""
    :root {{
      --bg-primary: {LIGHT_BG_PRIMARY};
      --bg-secondary: {LIGHT_BG_SECONDARY};
      --bg-tertiary: {LIGHT_BG_TERTIARY};
      --text-primary: {LIGHT_TEXT_PRIMARY};
      --text-secondary: {LIGHT_TEXT_SECONDARY};
      --border: {LIGHT_BORDER};
      --passed: {COLOR_PASSED};
      --failed: {COLOR_FAILED};
      --skipped: {COLOR_SKIPPED};
      --timed-out: {COLOR_TIMED_OUT};
      --pending: {COLOR_PENDING};
      --accent: {COLOR_DURATION};
    }}"""


STYLES = """
    * { box-sizing: border-box; }
    body { font-family: system-ui, -apple-system, "Segoe UI", sans-serif; margin: 0;
           background: var(--bg-primary); color: var(--text-primary); }
    header { padding: 20px 24px; background: var(--bg-secondary); border-bottom: 1px solid var(--border);
             display: flex; justify-content: space-between; align-items: center; gap: 16px; flex-wrap: wrap; }
    header h1 { margin: 0; font-size: 22px; }
    .meta { color: var(--text-secondary); font-size: 13px; }
    .tabs { display: flex; gap: 4px; padding: 0 24px; background: var(--bg-secondary);
            border-bottom: 1px solid var(--border); overflow-x: auto; }
    .tab-button { border: none; background: none; padding: 12px 16px; cursor: pointer; font-size: 14px;
                  color: var(--text-secondary); border-bottom: 3px solid transparent; }
    .tab-button.active { color: var(--accent); border-bottom-color: var(--accent); font-weight: 600; }
    main { padding: 24px; }
    .tab-content { display: none; }
    .tab-content.active { display: block; }
    .card { background: var(--bg-secondary); border: 1px solid var(--border); border-radius: 12px;
            padding: 16px; margin-bottom: 16px; }
    .card h3 { margin-top: 0; }
    .dashboard-grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(160px, 1fr)); gap: 16px;
                      margin-bottom: 16px; }
    .summary-card { background: var(--bg-secondary); border: 1px solid var(--border); border-radius: 12px;
                    padding: 16px; }
    .summary-card h3 { margin: 0 0 8px; font-size: 13px; color: var(--text-secondary); font-weight: 500; }
    .summary-card .value { font-size: 26px; font-weight: 700; }
    .summary-card.status-passed .value { color: var(--passed); }
    .summary-card.status-failed .value { color: var(--failed); }
    .summary-card.status-skipped .value { color: var(--skipped); }
    .trend-percentage { color: var(--text-secondary); font-size: 13px; }
    .dashboard-bottom-row { display: grid; grid-template-columns: minmax(280px, 1fr) minmax(280px, 1fr); gap: 16px; }
    .chart-container { position: relative; min-height: 280px; }
    .no-data { padding: 24px; text-align: center; color: var(--text-secondary); font-style: italic; }
    table { width: 100%; border-collapse: collapse; font-size: 14px; }
    td, th { border-bottom: 1px solid var(--border); padding: 8px; text-align: left; vertical-align: top; }
    th { background: var(--bg-tertiary); }
    .status-badge { display: inline-block; padding: 2px 8px; border-radius: 10px; font-size: 11px;
                    font-weight: 700; color: #fff; background: #9e9e9e; }
    .status-passed .status-badge, .status-badge.status-passed { background: var(--passed); }
    .status-badge.status-failed { background: var(--failed); }
    .status-badge.status-skipped { background: var(--skipped); }
    .status-badge.status-timedout { background: var(--timed-out); }
    .status-badge.status-pending { background: var(--pending); }
    .status-dot { display: inline-block; width: 10px; height: 10px; border-radius: 50%; margin-right: 2px;
                  background: #9e9e9e; }
    .status-dot.status-passed { background: var(--passed); }
    .status-dot.status-failed { background: var(--failed); }
    .status-dot.status-skipped { background: var(--skipped); }
    .status-dot.status-timedout { background: var(--timed-out); }
    .status-dot.status-pending { background: var(--pending); }
    .filters { display: flex; gap: 8px; flex-wrap: wrap; margin-bottom: 16px; }
    .filters input, .filters select, .filters button, .export-button { padding: 6px 10px; border-radius: 6px;
                    border: 1px solid var(--border); background: var(--bg-secondary); font-size: 13px; }
    .filters button, .export-button { cursor: pointer; }
    .test-case { background: var(--bg-secondary); border: 1px solid var(--border); border-radius: 8px;
                 margin-bottom: 8px; }
    .test-case-header { display: flex; justify-content: space-between; gap: 12px; padding: 10px 12px;
                        cursor: pointer; }
    .test-case-summary { display: flex; gap: 8px; align-items: center; min-width: 0; }
    .test-case-title { overflow: hidden; text-overflow: ellipsis; white-space: nowrap; }
    .test-case-browser, .test-duration { color: var(--text-secondary); font-size: 13px; }
    .test-case-content { padding: 12px; border-top: 1px solid var(--border); }
    .tag { background: var(--bg-tertiary); border-radius: 4px; padding: 1px 6px; font-size: 12px; }
    .error-block, .stdout-block { font-family: ui-monospace, Menlo, Consolas, monospace; font-size: 12px;
                    background: #1e1e1e; color: #e0e0e0; padding: 12px; border-radius: 6px; overflow-x: auto; }
    .stdout-block { white-space: pre-wrap; }
    .step-children { padding-left: 18px; border-left: 1px dashed var(--border); }
    .step-header { display: flex; gap: 8px; padding: 4px 0; cursor: pointer; }
    .step-hook { color: var(--text-secondary); font-style: italic; }
    .step-duration { color: var(--text-secondary); margin-left: auto; font-size: 12px; }
    .step-details { display: none; padding: 4px 0 4px 26px; font-size: 13px; }
    .step-details.open { display: block; }
    .media-grid { display: flex; flex-wrap: wrap; gap: 12px; }
    .media-grid img { max-width: 320px; border: 1px solid var(--border); border-radius: 6px; }
    .media-grid video { max-width: 480px; }
    .failure-group summary, .flaky-row summary { cursor: pointer; }
    .history-grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(320px, 1fr)); gap: 16px; }
    .history-card-header { display: flex; justify-content: space-between; gap: 8px; }
    .env-tree { list-style: none; padding-left: 16px; margin: 4px 0; }
    .env-key { font-weight: 600; }
    .notice { background: var(--bg-tertiary); border-left: 4px solid var(--accent); padding: 10px 12px;
              font-size: 13px; margin-bottom: 16px; }
    .alert { border-left-color: var(--failed); }
    @media (max-width: 800px) { .dashboard-bottom-row { grid-template-columns: 1fr; } }
"""


SCRIPT = r"""
(function () {
  const pulseData = JSON.parse(document.getElementById('pulse-data').textContent);
  const config = pulseData.config || {};
  const colors = config.colors || {};
  const delimiter = config.nameDelimiter || ' > ';
  window._pulseData = pulseData;

  // ---------- Markup helpers ----------
  // Every string from the payload goes through esc(). The only exception is
  // the *Html fields, which were converted and escaped when the report was built.
  const ESCAPES = { '&': '&amp;', '<': '&lt;', '>': '&gt;', '"': '&quot;', "'": '&#039;' };
  function esc(value) {
    if (value === null || value === undefined) return '';
    return String(value).replace(/[&<>"']/g, function (ch) { return ESCAPES[ch]; });
  }

  function formatDuration(ms) {
    const value = Number(ms);
    if (ms === null || ms === undefined || !isFinite(value) || value < 0) return '0.0s';
    if (value < 60000) return (value / 1000).toFixed(1) + 's';
    const total = Math.ceil(value / 1000);
    const h = Math.floor(total / 3600), m = Math.floor((total % 3600) / 60), s = total % 60;
    return h ? h + 'h ' + m + 'm ' + s + 's' : m + 'm ' + s + 's';
  }

  function formatDate(value) {
    if (value === null || value === undefined || value === '') return 'N/A';
    const d = new Date(typeof value === 'number' || /^\d+$/.test(value) ? Number(value) : value);
    if (isNaN(d.getTime())) return String(value);
    return d.toISOString().slice(0, 19).replace('T', ' ') + ' UTC';
  }

  function pct(rate) { return ((Number(rate) || 0) * 100).toFixed(1) + '%'; }
  function statusClass(status) { return 'status-' + String(status).toLowerCase().replace(/[^a-z0-9]/g, ''); }
  function badge(status) {
    return '<span class="status-badge ' + statusClass(status) + '">' + esc(String(status).toUpperCase()) + '</span>';
  }
  function statusDot(status, when) {
    return '<span class="status-dot ' + statusClass(status) + '" title="' + esc(formatDate(when)) + ': ' + esc(status) + '"></span>';
  }
  function statusIcon(status) {
    if (status === 'passed') return '✅';
    if (status === 'timedOut') return '⏱️';
    if (status === 'failed') return '❌';
    if (status === 'skipped') return '⏭️';
    return '❓';
  }
  function noData(message) { return '<div class="no-data">' + esc(message) + '</div>'; }
  function lastSegment(name) { const parts = String(name).split(delimiter); return parts[parts.length - 1]; }
  function options(values) {
    return values.map(function (v) { return '<option value="' + esc(v) + '">' + esc(v) + '</option>'; }).join('');
  }
  function table(headers, rows) {
    return '<table><thead><tr>' + headers.map(function (h) { return '<th>' + h + '</th>'; }).join('') +
      '</tr></thead><tbody>' + rows.join('') + '</tbody></table>';
  }
  function row(cells) { return '<tr>' + cells.map(function (c) { return '<td>' + c + '</td>'; }).join('') + '</tr>'; }

  // ---------- Test Run Summary ----------
  function buildTestRuns() {
    const results = pulseData.results;
    if (!results.length) return noData('No test results to display.');
    const browsers = Array.from(new Set(results.map(function (r) { return r.browser; }))).sort();
    return '<div class="filters">' +
      '<input type="text" id="filter-name" placeholder="Filter by test name/path..."/>' +
      '<select id="filter-status"><option value="">All Statuses</option>' + options(config.statuses || []) + '</select>' +
      '<select id="filter-browser"><option value="">All Browsers</option>' + options(browsers) + '</select>' +
      '<button id="expand-all-tests">Expand All</button>' +
      '<button id="collapse-all-tests">Collapse All</button>' +
      '<button id="clear-run-summary-filters">Clear Filters</button></div>' +
      '<div class="test-cases-list">' + results.map(buildTestCase).join('') + '</div>';
  }

  // Only the header is built up front; details are built on first expand.
  function buildTestCase(r, i) {
    return '<div class="test-case" data-index="' + i + '" data-name="' + esc(String(r.name).toLowerCase()) +
      '" data-status="' + esc(r.status) + '" data-browser="' + esc(r.browser) + '">' +
      '<div class="test-case-header" role="button" aria-expanded="false"><div class="test-case-summary">' +
      badge(r.status) + '<span class="test-case-title" title="' + esc(r.name) + '">' + esc(r.title) + '</span>' +
      '<span class="test-case-browser">(' + esc(r.browser) + ')</span></div>' +
      '<span class="test-duration">' + formatDuration(r.duration) + '</span></div>' +
      '<div class="test-case-content" style="display: none"></div></div>';
  }

  function buildTestDetail(i) {
    const r = pulseData.results[i];
    const worker = r.workerId === pulseData.workers.sentinelWorkerId ? 'not assigned' : esc(r.workerId);
    let html = '<p><strong>Full path:</strong> ' + esc(r.name) + '</p>' +
      '<p><strong>Suite:</strong> ' + esc(r.suite) + ' &middot; <strong>Worker:</strong> ' + worker +
      ' &middot; <strong>Started:</strong> ' + esc(formatDate(r.startTime)) + '</p>';
    if (r.retries) html += '<p><strong>Retries:</strong> ' + esc(r.retries) + '</p>';
    if (r.tags && r.tags.length) {
      html += '<p>' + r.tags.map(function (t) { return '<span class="tag">' + esc(t) + '</span>'; }).join(' ') + '</p>';
    }
    if (r.errorHtml) html += '<h4>Error</h4><div class="error-block">' + r.errorHtml + '</div>';
    if (r.codeSnippet) html += '<h4>Code</h4><pre class="stdout-block">' + esc(r.codeSnippet) + '</pre>';
    html += '<h4>Steps</h4>' + (r.steps && r.steps.length ? r.steps.map(buildStep).join('') : noData('No steps recorded.'));
    if (r.stdoutHtml) html += '<h4>Console Output</h4><div class="stdout-block">' + r.stdoutHtml + '</div>';
    return html + buildMedia(i, r);
  }

  function buildStep(step) {
    const hook = step.isHook ? '<span class="step-hook">[' + esc(step.hookType || 'hook') + ']</span>' : '';
    let details = '';
    if (step.codeLocation) details += '<div><strong>Location:</strong> ' + esc(step.codeLocation) + '</div>';
    if (step.errorHtml) details += '<div class="error-block">' + step.errorHtml + '</div>';
    const children = step.steps && step.steps.length
      ? '<div class="step-children">' + step.steps.map(buildStep).join('') + '</div>' : '';
    return '<div class="step-item"><div class="step-header ' + statusClass(step.status) + '"><span>' +
      statusIcon(step.status) + '</span>' + hook + '<span class="step-title">' + esc(step.title) + '</span>' +
      '<span class="step-duration">' + formatDuration(step.duration) + '</span></div>' +
      '<div class="step-details">' + (details || 'No details.') + '</div>' + children + '</div>';
  }

  // Placeholders only; resolveMedia fills them from the payload near the viewport.
  function buildMedia(i, r) {
    let html = '';
    const shots = r.screenshots || [];
    if (shots.length) {
      html += '<h4>Screenshots</h4><div class="media-grid">' + shots.map(function (shot, k) {
        return '<img class="lazy-media" data-kind="screenshot" data-test="' + i + '" data-index="' + k +
          '" alt="' + esc(shot.name || 'Screenshot ' + (k + 1)) + '"/>';
      }).join('') + '</div>';
    }
    const videos = r.videoPath || [];
    if (videos.length) {
      html += '<h4>Videos</h4><div class="media-grid">' + videos.map(function (v, k) {
        return '<video class="lazy-media" data-kind="video" data-test="' + i + '" data-index="' + k +
          '" controls preload="none"></video>';
      }).join('') + '</div>';
    }
    if (r.tracePath) {
      html += '<h4>Trace</h4><a class="lazy-media" data-kind="trace" data-test="' + i +
        '" href="#" download="trace-' + i + '.zip">Download trace</a>';
    }
    const attachments = r.attachments || [];
    if (attachments.length) {
      html += '<h4>Attachments</h4><ul>' + attachments.map(function (a, k) {
        return '<li><a class="lazy-media" data-kind="attachment" data-test="' + i + '" data-index="' + k +
          '" href="#" download="' + esc(a.name) + '">' + esc(a.name) + '</a> <span class="meta">' +
          esc(a.contentType) + '</span></li>';
      }).join('') + '</ul>';
    }
    return html;
  }

  // ---------- Failure Analysis ----------
  function buildFailures() {
    const groups = pulseData.failureGroups;
    if (!groups.length) return noData('No failed tests in this run.');
    const total = groups.reduce(function (n, g) { return n + g.count; }, 0);
    return '<div class="notice">' + total + ' failing test(s) across ' + groups.length + ' distinct error(s).</div>' +
      groups.map(function (g) {
        const items = g.indices.map(function (i) {
          const r = pulseData.results[i];
          return '<li>' + badge(r.status) + ' <strong>' + esc(r.title) + '</strong> <span class="meta">' +
            esc(r.suite) + ' &middot; ' + esc(r.browser) + ' &middot; ' + formatDuration(r.duration) + '</span>' +
            '<div class="meta">' + esc(r.errorPreview) + '</div>' +
            '<details><summary>Full error</summary><div class="error-block">' + (r.errorHtml || '') + '</div></details></li>';
        }).join('');
        return '<details class="failure-group card" open><summary><strong>' + esc(g.signature) + '</strong> (' +
          g.count + ')</summary><ul>' + items + '</ul></details>';
      }).join('');
  }

  // ---------- Trends ----------
  function buildTrends() {
    const points = pulseData.trendData.overall;
    if (!points.length) return noData('No historical runs available for trend analysis.');
    let html = '';
    const trend = pulseData.durationTrend;
    if (trend) {
      html += '<div class="notice' + (trend.alert ? ' alert' : '') + '"><strong>Run duration:</strong> ' + esc(trend.reason) + '</div>';
    }
    if (pulseData.historyFlakinessRate !== null && pulseData.historyFlakinessRate !== undefined) {
      html += '<div class="notice"><strong>History flakiness:</strong> ' + pct(pulseData.historyFlakinessRate) +
        ' of tests seen in history are flaky.</div>';
    }
    const summary = pulseData.seriesSummary;
    if (summary && summary.meanDuration !== null) {
      html += '<div class="notice">Mean run duration ' + formatDuration(summary.meanDuration) + ', median ' +
        formatDuration(summary.medianDuration) + ', mean pass rate ' + pct(summary.meanPassRate) + ' over ' +
        points.length + ' run(s).</div>';
    }
    const rows = points.map(function (p, k) {
      return row([k + 1, esc(formatDate(p.date)), p.totalTests, p.passed, p.failed, p.skipped,
                  formatDuration(p.duration), pct(p.flakinessRate)]);
    });
    return html + '<div class="dashboard-bottom-row">' +
      '<div class="card"><h3>Test Volume &amp; Outcome</h3><div class="chart-container lazy-chart" data-chart="trend-status"></div></div>' +
      '<div class="card"><h3>Run Duration</h3><div class="chart-container lazy-chart" data-chart="trend-duration"></div></div></div>' +
      '<div class="card"><h3>Runs</h3>' +
      table(['#', 'Date', 'Total', 'Passed', 'Failed', 'Skipped', 'Duration', 'Flakiness'], rows) + '</div>';
  }

  // ---------- Test History ----------
  function buildTestHistory() {
    const history = pulseData.trendData.testHistory || {};
    const names = Object.keys(history).sort();
    if (!names.length) return noData('No execution history available.');
    const cards = names.map(function (name) {
      const runs = history[name];
      const latest = runs.length ? runs[runs.length - 1].status : 'unknown';
      const dots = runs.map(function (r) { return statusDot(r.status, r.timestamp); }).join('');
      const rows = runs.slice().reverse().map(function (r) {
        return row([esc(formatDate(r.timestamp)), badge(r.status), formatDuration(r.duration)]);
      });
      return '<div class="history-card card" data-name="' + esc(name.toLowerCase()) + '" data-latest-status="' + esc(latest) + '">' +
        '<div class="history-card-header"><strong title="' + esc(name) + '">' + esc(lastSegment(name)) + '</strong>' + badge(latest) + '</div>' +
        '<div>' + dots + '</div><details><summary>' + runs.length + ' run(s)</summary>' +
        table(['Run', 'Status', 'Duration'], rows) + '</details></div>';
    });
    return '<div class="filters"><input type="text" id="history-filter-name" placeholder="Filter by test name..."/>' +
      '<select id="history-filter-status"><option value="">All Latest Statuses</option>' + options(config.statuses || []) +
      '</select></div><div class="history-grid">' + cards.join('') + '</div>';
  }

  // ---------- Flaky Tests ----------
  function buildFlaky() {
    const flaky = pulseData.flakyTests;
    if (!flaky.length) return noData('No flaky tests detected in the available history.');
    const rows = flaky.map(function (t, k) {
      const dots = t.occurrences.map(function (o) { return statusDot(o.status, o.runTimestamp); }).join('');
      return '<tr><td>' + (k + 1) + '</td><td title="' + esc(t.name) + '">' + esc(lastSegment(t.name)) + '</td>' +
        '<td>' + esc(t.suiteName || '-') + '</td><td>' + pct(t.failureRate) + '</td>' +
        '<td>' + t.passedCount + ' / ' + t.failedCount + ' / ' + t.skippedCount + ' / ' + t.pendingCount + '</td>' +
        '<td>' + t.totalRuns + '</td><td>' + esc(formatDate(t.firstSeen)) + '</td><td>' + esc(formatDate(t.lastSeen)) + '</td>' +
        '<td>' + dots + '</td></tr>';
    });
    return '<div class="notice">' + flaky.length + ' test(s) both passed and failed across the archived runs.</div>' +
      table(['#', 'Test', 'Suite', 'Failure Rate', 'Passed / Failed / Skipped / Pending', 'Runs', 'First Seen',
             'Last Seen', 'History'], rows);
  }

  // ---------- Workers ----------
  function buildWorkers() {
    const timeline = pulseData.workers;
    let html = '<div class="notice"><strong>' + timeline.excludedCount + ' test(s) on worker ' +
      esc(timeline.sentinelWorkerId) + '.</strong> ' + esc(timeline.rationale) + '</div>';
    if (timeline.unscheduledCount) {
      html += '<div class="notice">' + timeline.unscheduledCount + ' test(s) have no start time and are not plotted.</div>';
    }
    if (!timeline.workers.length) return html + noData('No worker activity to display.');
    const rows = timeline.workers.map(function (w) {
      return row([esc(w.workerId), w.tests.length, formatDuration(w.busyTime), w.passed, w.failed]);
    });
    return html + '<div class="card"><h3>Worker Timeline</h3><div class="chart-container lazy-chart" data-chart="worker-timeline"></div></div>' +
      '<div class="card"><h3>Workers</h3>' + table(['Worker', 'Tests', 'Busy Time', 'Passed', 'Failed'], rows) + '</div>';
  }

  const tabBuilders = {
    'test-runs': buildTestRuns,
    'failures': buildFailures,
    'trends': buildTrends,
    'test-history': buildTestHistory,
    'flaky-tests': buildFlaky,
    'workers': buildWorkers
  };

  // ---------- Deferred media ----------
  function resolveMedia(el) {
    const test = pulseData.results[Number(el.dataset.test)];
    if (!test) return;
    const idx = Number(el.dataset.index || 0);
    const kind = el.dataset.kind;
    let item = null;
    if (kind === 'screenshot') item = (test.screenshots || [])[idx];
    else if (kind === 'video') item = (test.videoPath || [])[idx];
    else if (kind === 'attachment') item = (test.attachments || [])[idx];
    else if (kind === 'trace') item = test.tracePath ? { dataUri: test.tracePath } : null;
    if (!item || !item.dataUri) return;
    if (kind === 'screenshot') {
      el.src = item.dataUri;
    } else if (kind === 'video') {
      const source = document.createElement('source');
      source.src = item.dataUri;
      source.type = item.mimeType || 'video/mp4';
      el.appendChild(source);
      el.load();
    } else {
      el.href = item.dataUri;
    }
    el.classList.remove('lazy-media');
  }

  // ---------- Deferred charts ----------
  const chartRenderers = {
    'status-pie': function (canvas) {
      new Chart(canvas, { type: 'doughnut', data: {
        labels: pulseData.pieData.map(function (d) { return d.label; }),
        datasets: [{ data: pulseData.pieData.map(function (d) { return d.value; }),
                     backgroundColor: [colors.passed, colors.failed, colors.skipped] }] },
        options: { maintainAspectRatio: false } });
    },
    'trend-status': function (canvas) {
      const pts = pulseData.trendData.overall;
      new Chart(canvas, { type: 'line', data: {
        labels: pts.map(function (p) { return p.label; }),
        datasets: [
          { label: 'Total', data: pts.map(function (p) { return p.totalTests; }), borderColor: colors.duration },
          { label: 'Passed', data: pts.map(function (p) { return p.passed; }), borderColor: colors.passed },
          { label: 'Failed', data: pts.map(function (p) { return p.failed; }), borderColor: colors.failed },
          { label: 'Skipped', data: pts.map(function (p) { return p.skipped; }), borderColor: colors.skipped }
        ] }, options: { maintainAspectRatio: false } });
    },
    'trend-duration': function (canvas) {
      const pts = pulseData.trendData.overall;
      new Chart(canvas, { type: 'bar', data: {
        labels: pts.map(function (p) { return p.label; }),
        datasets: [{ label: 'Duration (s)', data: pts.map(function (p) { return p.duration / 1000; }),
                     backgroundColor: colors.duration }] }, options: { maintainAspectRatio: false } });
    },
    'worker-timeline': function (canvas) {
      const workers = pulseData.workers.workers;
      const statuses = ['passed', 'failed', 'timedOut', 'skipped', 'pending'];
      const datasets = statuses.map(function (status) {
        const data = [];
        workers.forEach(function (w) {
          w.tests.forEach(function (t) {
            if (t.status === status) data.push({ x: [t.start / 1000, t.end / 1000], y: 'Worker ' + w.workerId, name: t.title });
          });
        });
        return { label: status, data: data, backgroundColor: colors[status] || '#9e9e9e', borderSkipped: false };
      }).filter(function (d) { return d.data.length > 0; });
      new Chart(canvas, { type: 'bar', data: { datasets: datasets },
        options: { indexAxis: 'y', maintainAspectRatio: false,
          scales: { x: { title: { display: true, text: 'seconds since first test' } },
                    y: { type: 'category', labels: workers.map(function (w) { return 'Worker ' + w.workerId; }) } },
          plugins: { tooltip: { callbacks: { label: function (ctx) { return ctx.raw.name; } } } } } });
    }
  };

  function renderChart(container) {
    const renderer = chartRenderers[container.dataset.chart];
    if (!renderer) return;
    if (typeof Chart === 'undefined') {
      container.innerHTML = noData('Charting library not available.');
      return;
    }
    const canvas = document.createElement('canvas');
    container.appendChild(canvas);
    try {
      renderer(canvas);
    } catch (e) {
      console.error('Error rendering chart', container.dataset.chart, e);
      container.innerHTML = noData('Error rendering chart.');
    }
  }

  const observer = 'IntersectionObserver' in window ? new IntersectionObserver(function (entries, obs) {
    entries.forEach(function (entry) {
      if (!entry.isIntersecting) return;
      obs.unobserve(entry.target);
      if (entry.target.classList.contains('lazy-chart')) {
        entry.target.classList.remove('lazy-chart');
        renderChart(entry.target);
      } else {
        resolveMedia(entry.target);
      }
    });
  }, { rootMargin: config.lazyRootMargin || '200px' }) : null;

  function observeLazy(root) {
    root.querySelectorAll('.lazy-media, .lazy-chart').forEach(function (el) {
      if (observer) {
        observer.observe(el);
      } else if (el.classList.contains('lazy-chart')) {
        el.classList.remove('lazy-chart');
        renderChart(el);
      } else {
        resolveMedia(el);
      }
    });
  }

  // ---------- Deferred tabs ----------
  const loadedTabs = {};
  function loadTab(tabId) {
    if (loadedTabs[tabId]) return;
    loadedTabs[tabId] = true;
    const container = document.getElementById(tabId);
    if (!container) return;
    const build = tabBuilders[tabId];
    if (build) {
      try {
        container.innerHTML = build();
      } catch (e) {
        console.error('Error building tab', tabId, e);
        container.innerHTML = noData('Error building this view.');
      }
    }
    observeLazy(container);
    wireTab(tabId, container);
  }

  function showTab(tabId) {
    loadTab(tabId);
    document.querySelectorAll('.tab-button').forEach(function (b) {
      b.classList.toggle('active', b.dataset.tab === tabId);
    });
    document.querySelectorAll('.tab-content').forEach(function (c) {
      c.classList.toggle('active', c.id === tabId);
    });
  }

  // ---------- Interactivity ----------
  function setExpanded(testCase, open) {
    const content = testCase.querySelector('.test-case-content');
    if (open && !content.dataset.built) {
      content.innerHTML = buildTestDetail(Number(testCase.dataset.index));
      content.dataset.built = 'true';
      observeLazy(content);
    }
    content.style.display = open ? 'block' : 'none';
    testCase.querySelector('.test-case-header').setAttribute('aria-expanded', open ? 'true' : 'false');
  }

  function wireTab(tabId, container) {
    container.addEventListener('click', function (event) {
      const caseHeader = event.target.closest('.test-case-header');
      if (caseHeader) {
        const content = caseHeader.nextElementSibling;
        setExpanded(caseHeader.parentElement, content.style.display === 'none');
        return;
      }
      const stepHeader = event.target.closest('.step-header');
      if (stepHeader && stepHeader.nextElementSibling) stepHeader.nextElementSibling.classList.toggle('open');
    });
    if (tabId === 'test-runs') wireTestFilters(container);
    if (tabId === 'test-history') wireHistoryFilters(container);
  }

  function wireTestFilters(container) {
    const name = container.querySelector('#filter-name');
    const status = container.querySelector('#filter-status');
    const browser = container.querySelector('#filter-browser');
    if (!name || !status || !browser) return;
    function apply() {
      const n = name.value.toLowerCase();
      container.querySelectorAll('.test-case').forEach(function (tc) {
        const ok = (tc.dataset.name || '').includes(n)
          && (!status.value || tc.dataset.status === status.value)
          && (!browser.value || tc.dataset.browser === browser.value);
        tc.style.display = ok ? '' : 'none';
      });
    }
    [name, status, browser].forEach(function (el) { el.addEventListener('input', apply); });
    container.querySelector('#clear-run-summary-filters').addEventListener('click', function () {
      name.value = ''; status.value = ''; browser.value = ''; apply();
    });
    function setAll(open) {
      container.querySelectorAll('.test-case').forEach(function (tc) {
        if (tc.style.display === 'none') return;
        setExpanded(tc, open);
      });
    }
    container.querySelector('#expand-all-tests').addEventListener('click', function () { setAll(true); });
    container.querySelector('#collapse-all-tests').addEventListener('click', function () { setAll(false); });
  }

  function wireHistoryFilters(container) {
    const name = container.querySelector('#history-filter-name');
    const status = container.querySelector('#history-filter-status');
    if (!name || !status) return;
    function apply() {
      const n = name.value.toLowerCase();
      container.querySelectorAll('.history-card').forEach(function (card) {
        const ok = (card.dataset.name || '').includes(n)
          && (!status.value || card.dataset.latestStatus === status.value);
        card.style.display = ok ? '' : 'none';
      });
    }
    name.addEventListener('input', apply);
    status.addEventListener('change', apply);
  }

  document.querySelectorAll('.tab-button').forEach(function (button) {
    button.addEventListener('click', function () { showTab(button.dataset.tab); });
  });

  document.getElementById('export-json').addEventListener('click', function () {
    const blob = new Blob([document.getElementById('pulse-data').textContent], { type: 'application/json' });
    const a = document.createElement('a');
    a.href = URL.createObjectURL(blob);
    a.download = 'pulse-report-data.json';
    a.click();
    URL.revokeObjectURL(a.href);
  });

  const initial = config.defaultTab || 'dashboard';
  if (tabBuilders[initial]) {
    loadTab(initial);
  } else {
    loadedTabs[initial] = true;
    observeLazy(document.getElementById(initial));
    wireTab(initial, document.getElementById(initial));
  }
})();
"""

# Tab ids the browser builds from the payload on first activation
DEFERRED_TABS = tuple(tab_id for tab_id, _ in TABS if tab_id != DEFAULT_TAB)


def render_report_shell(
    title: str,
    generated_at: str,
    default_tab_html: str,
    payload: Dict[str, Any],
    tabs: Tuple[Tuple[str, str], ...] = TABS,
    default_tab: str = DEFAULT_TAB,
) -> str:
    """
    Assemble the final document.

    Only the default tab has a body. The other panels are empty sections
    that the script fills from the payload when they are first shown.

    Args:
        title: Report title (escaped here)
        generated_at: Human-readable generation time (escaped here)
        default_tab_html: Already-sanitized markup of the eagerly rendered tab
        payload: Exportable report data, embedded once as JSON
    """
    buttons: List[str] = []
    panels: List[str] = []
    for tab_id, label in tabs:
        active = " active" if tab_id == default_tab else ""
        buttons.append(
            f'<button class="tab-button{active}" data-tab="{escape(tab_id)}">{escape(label)}</button>'
        )
        body = default_tab_html if tab_id == default_tab else ""
        panels.append(f'<section id="{escape(tab_id)}" class="tab-content{active}">{body}</section>')

    return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8"/>
  <meta name="viewport" content="width=device-width, initial-scale=1"/>
  <title>{escape(title)}</title>
  <script src="{CHARTJS_CDN_URL}" crossorigin="anonymous"></script>
  <style>{_root_vars()}
{STYLES}
  </style>
</head>
<body>
<header>
  <div>
    <h1>{escape(title)}</h1>
    <div class="meta">Generated {escape(generated_at)}</div>
  </div>
  <button id="export-json" class="export-button">Export JSON</button>
</header>
<nav class="tabs">
  {''.join(buttons)}
</nav>
<main>
  {''.join(panels)}
</main>
<script type="application/json" id="pulse-data">{json_for_script(payload)}</script>
<script>{SCRIPT}</script>
</body>
</html>
"""
