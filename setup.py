"""
Pulse Report - Static Reporting for Playwright Test Runs

Turns one Playwright Pulse run plus an archive of past runs into a single
self-contained HTML report.

Features:
- Immutable per-run history archive
- Run trends and duration creep detection (linear regression)
- Flaky test detection and ranking across runs
- Terminal colour output rendered as HTML
- Screenshots, videos and traces embedded inline
- Optional JSON data endpoint for live dashboards
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text() if readme_file.exists() else __doc__

setup(
    name="pulse-report",
    version="0.1.0",
    description="Self-contained HTML reports, trends and flaky-test detection for Playwright runs",
    long_description=long_description,
    long_description_content_type="text/markdown",
    python_requires=">=3.8",
    packages=find_packages(exclude=["tests", "*.tests", "*.tests.*", "tests.*"]),
    install_requires=[
        "numpy>=1.20.0",
        "scipy>=1.7.0",
        "flask>=2.0.0",
        "flask-cors>=3.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "pulse-report=pulse_report.report:main",
            "pulse-report-server=pulse_report.server:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Testing",
        "Topic :: Software Development :: Quality Assurance",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
    keywords="playwright testing report flaky-tests trends ci-cd",
)
