# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "pandas",
#   "rich",
#   "tzdata",
# ]
# ///
"""Lighthouse Batch Analyzer.

Runs the Lighthouse CLI against a list of URLs (mobile + desktop),
extracts category scores and Core Web Vitals timings, and writes a CSV
export, an HTML email summary, and an append-only JSON history file.
"""

from __future__ import annotations

import argparse
import html
import json
import math
import os
import subprocess
import sys
import tempfile
import time
import tomllib
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pandas as pd
from rich.console import Console
from rich.markup import escape

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

URLS_ENV_VAR = "LIGHTHOUSE_URLS"

PROFILES = ("mobile", "desktop")
CATEGORIES = ("performance", "accessibility", "best-practices", "seo")

DEFAULT_LIGHTHOUSE_BIN = "lighthouse"
DEFAULT_AUDIT_TIMEOUT = 300.0
DEFAULT_CHROME_FLAGS = "--headless --no-sandbox"
DEFAULT_OUTPUT_DIR = "."
DEFAULT_HISTORY_DIR = "historical-data"
DEFAULT_TIMEZONE = "Europe/Madrid"
DEFAULT_DASHBOARD_URL = "https://analyzerbotreporter-crypto.github.io/HL/dashboard.html"

CONFIG_FILENAMES = ["lighthouse.toml"]
CONFIG_SEARCH_PATHS = [
    Path.cwd(),
    Path.home() / ".config" / "lighthouse-analyzer",
]

CONFIG_ERROR_EXIT_CODE = 1
FATAL_ERROR_EXIT_CODE = 1

ERROR_MARKER = "ERROR"
MAX_CONSOLE_ERROR_LENGTH = 200

# Metric fields: (attribute, serialized_key, csv_label)
METRIC_FIELDS = [
    ("performance", "performance", "Performance"),
    ("accessibility", "accessibility", "Accessibility"),
    ("best_practices", "bestPractices", "Best Practices"),
    ("seo", "seo", "SEO"),
    ("fcp", "fcp", "FCP (ms)"),
    ("lcp", "lcp", "LCP (ms)"),
    ("tbt", "tbt", "TBT (ms)"),
    ("cls", "cls", "CLS"),
    ("si", "si", "SI (ms)"),
]

# Category scores: (category_id, attribute)
SCORE_FIELDS = [
    ("performance", "performance"),
    ("accessibility", "accessibility"),
    ("best-practices", "best_practices"),
    ("seo", "seo"),
]

# Millisecond timings rounded to integers: (audit_id, attribute)
TIMING_AUDITS = [
    ("first-contentful-paint", "fcp"),
    ("largest-contentful-paint", "lcp"),
    ("total-blocking-time", "tbt"),
    ("speed-index", "si"),
]
CLS_AUDIT = "cumulative-layout-shift"

# Column order of the CSV export: desktop block first, then mobile.
EXPORT_PROFILES = ("desktop", "mobile")
CSV_COLUMNS = ["URL"] + [
    f"{profile.capitalize()} {label}"
    for profile in EXPORT_PROFILES
    for _, _, label in METRIC_FIELDS
]

# Scores shown in the HTML summary: (attribute, header)
HTML_SCORE_COLUMNS = [
    ("performance", "Perf"),
    ("accessibility", "Acc"),
    ("best_practices", "BP"),
    ("seo", "SEO"),
]

WEEKDAY_NAMES = ("lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo")
MONTH_NAMES = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)

err_console = Console(stderr=True, highlight=False)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigurationError(Exception):
    """Raised when the run cannot start because its configuration is unusable."""


class AuditFailure(Exception):
    """Raised when a single Lighthouse invocation fails or returns an unusable report."""


# ---------------------------------------------------------------------------
# Data Model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MetricSet:
    """Scores and timings for one (URL, profile) audit. ``None`` means absent."""

    performance: int | None = None
    accessibility: int | None = None
    best_practices: int | None = None
    seo: int | None = None
    fcp: int | None = None
    lcp: int | None = None
    tbt: int | None = None
    cls: float | None = None
    si: int | None = None
    error: str | None = None

    @classmethod
    def failed(cls, message: str) -> MetricSet:
        return cls(error=message)

    def to_dict(self) -> dict:
        data = {key: getattr(self, attr) for attr, key, _ in METRIC_FIELDS}
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict) -> MetricSet:
        values = {attr: data.get(key) for attr, key, _ in METRIC_FIELDS}
        return cls(**values, error=data.get("error"))


@dataclass(frozen=True)
class UrlResult:
    url: str
    mobile: MetricSet
    desktop: MetricSet

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "desktop": self.desktop.to_dict(),
            "mobile": self.mobile.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> UrlResult:
        return cls(
            url=data["url"],
            mobile=MetricSet.from_dict(data.get("mobile") or {}),
            desktop=MetricSet.from_dict(data.get("desktop") or {}),
        )


BatchResult = tuple[UrlResult, ...]


@dataclass(frozen=True)
class HistoricalRecord:
    """One archived run: raw ISO timestamp, localized date, and the batch."""

    timestamp: str
    date: str
    results: BatchResult

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "date": self.date,
            "results": [result.to_dict() for result in self.results],
        }


@dataclass(frozen=True)
class Settings:
    lighthouse_bin: str = DEFAULT_LIGHTHOUSE_BIN
    audit_timeout: float = DEFAULT_AUDIT_TIMEOUT
    chrome_flags: str = DEFAULT_CHROME_FLAGS
    output_dir: str = DEFAULT_OUTPUT_DIR
    history_dir: str = DEFAULT_HISTORY_DIR
    timezone: str = DEFAULT_TIMEZONE
    dashboard_url: str = DEFAULT_DASHBOARD_URL
    verbose: bool = False


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def discover_config_path() -> Path | None:
    """Find the first existing config file in search paths."""
    for search_dir in CONFIG_SEARCH_PATHS:
        for filename in CONFIG_FILENAMES:
            candidate = search_dir / filename
            if candidate.is_file():
                return candidate
    return None


def load_config(config_path: Path | None) -> dict:
    """Parse a TOML config file and return its contents as a dict."""
    if config_path is None:
        return {}
    try:
        with open(config_path, "rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"malformed config file {config_path}: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"cannot read config file {config_path}: {exc}") from exc


def build_settings(args: argparse.Namespace, config: dict) -> Settings:
    """Resolve run settings from CLI flags and the config [settings] table.

    Resolution order (highest priority wins):
      1. Explicit CLI flags
      2. [settings] values from config
      3. Built-in defaults (already in args)
    """
    file_settings = config.get("settings", {})
    cli_explicit = set(getattr(args, "_explicit_args", []))

    # Map config keys to argparse dest names
    config_key_map = {
        "lighthouse_bin": "lighthouse_bin",
        "timeout": "audit_timeout",
        "chrome_flags": "chrome_flags",
        "output_dir": "output_dir",
        "history_dir": "history_dir",
        "timezone": "timezone",
        "dashboard_url": "dashboard_url",
        "verbose": "verbose",
    }

    values = {}
    for config_key, arg_dest in config_key_map.items():
        if arg_dest not in cli_explicit and config_key in file_settings:
            values[arg_dest] = file_settings[config_key]
        else:
            values[arg_dest] = getattr(args, arg_dest, getattr(Settings, arg_dest))

    try:
        values["audit_timeout"] = float(values["audit_timeout"])
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"invalid timeout: {values['audit_timeout']!r}") from exc
    if values["audit_timeout"] <= 0:
        raise ConfigurationError("timeout must be greater than zero")

    try:
        ZoneInfo(values["timezone"])
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"unknown time zone '{values['timezone']}'") from exc

    return Settings(**values)


def parse_url_list(raw_value: str | None) -> list[str]:
    """Split a comma-separated URL list. Returns distinct absolute URLs in input order."""
    if not raw_value or not raw_value.strip():
        raise ConfigurationError(
            f"{URLS_ENV_VAR} is not set. Expected format: https://example.com,https://example2.com"
        )

    seen: set[str] = set()
    urls: list[str] = []
    for raw in raw_value.split(","):
        candidate = raw.strip()
        if not candidate:
            continue
        parsed = urlparse(candidate)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            err_console.print(f"Warning: skipping invalid URL: {escape(candidate)}")
            continue
        if candidate not in seen:
            seen.add(candidate)
            urls.append(candidate)

    if not urls:
        raise ConfigurationError(
            f"{URLS_ENV_VAR} contains no valid URLs. Expected format: https://example.com,https://example2.com"
        )
    return urls


def load_urls_from_env(environ: dict | None = None) -> list[str]:
    """Read the URL list from the process environment."""
    env = os.environ if environ is None else environ
    return parse_url_list(env.get(URLS_ENV_VAR))


# ---------------------------------------------------------------------------
# CLI Argument Parser
# ---------------------------------------------------------------------------


class TrackingAction(argparse.Action):
    """Argparse action that records which flags were explicitly provided."""

    def __call__(self, parser, namespace, values, option_string=None):
        setattr(namespace, self.dest, values)
        explicit = getattr(namespace, "_explicit_args", [])
        explicit.append(self.dest)
        namespace._explicit_args = explicit


class TrackingStoreTrueAction(argparse.Action):
    """Like store_true but tracks that the flag was explicitly set."""

    def __init__(self, option_strings, dest, default=False, required=False, help=None):
        super().__init__(option_strings=option_strings, dest=dest, nargs=0, const=True, default=default, required=required, help=help)

    def __call__(self, parser, namespace, values, option_string=None):
        setattr(namespace, self.dest, True)
        explicit = getattr(namespace, "_explicit_args", [])
        explicit.append(self.dest)
        namespace._explicit_args = explicit


def build_argument_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="lighthouse-analyzer",
        description=f"Lighthouse batch analyzer (desktop + mobile). URLs are read from the {URLS_ENV_VAR} environment variable.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-c", "--config", dest="config", action=TrackingAction, default=None, help="Path to config TOML file")
    parser.add_argument("-v", "--verbose", dest="verbose", action=TrackingStoreTrueAction, default=False, help="Print each Lighthouse command to stderr")
    parser.add_argument("--output-dir", dest="output_dir", action=TrackingAction, default=DEFAULT_OUTPUT_DIR, help="Directory for the CSV and HTML files")
    parser.add_argument("--history-dir", dest="history_dir", action=TrackingAction, default=DEFAULT_HISTORY_DIR, help="Directory for the JSON history files")
    parser.add_argument("--lighthouse-bin", dest="lighthouse_bin", action=TrackingAction, default=DEFAULT_LIGHTHOUSE_BIN, help="Lighthouse executable")
    parser.add_argument("--timeout", dest="audit_timeout", action=TrackingAction, type=float, default=DEFAULT_AUDIT_TIMEOUT, help="Seconds before a single audit is abandoned")
    parser.add_argument("--chrome-flags", dest="chrome_flags", action=TrackingAction, default=DEFAULT_CHROME_FLAGS, help="Flags passed to Chrome by Lighthouse")
    parser.add_argument("--timezone", dest="timezone", action=TrackingAction, default=DEFAULT_TIMEZONE, help="Time zone for the human-readable run date")
    parser.add_argument("--dashboard-url", dest="dashboard_url", action=TrackingAction, default=DEFAULT_DASHBOARD_URL, help="Historical dashboard linked from the HTML email")
    return parser


# ---------------------------------------------------------------------------
# Audit Invoker
# ---------------------------------------------------------------------------


def build_lighthouse_command(url: str, profile: str, output_path: Path, settings: Settings) -> list[str]:
    """Build the Lighthouse argument list for one (URL, profile) audit."""
    command = [settings.lighthouse_bin, url]
    if profile == "desktop":
        command.append("--preset=desktop")
    command.extend([
        "--output=json",
        f"--output-path={output_path}",
        f"--chrome-flags={settings.chrome_flags}",
        f"--only-categories={','.join(CATEGORIES)}",
        "--quiet",
    ])
    return command


@contextmanager
def temporary_report_path(profile: str) -> Iterator[Path]:
    """Yield a unique path for a Lighthouse JSON report and remove it afterwards."""
    fd, name = tempfile.mkstemp(prefix=f"lighthouse_{profile}_{time.time_ns() // 1_000_000}_", suffix=".json")
    os.close(fd)
    path = Path(name)
    try:
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
        except OSError:
            pass


def _failure_detail(completed: subprocess.CompletedProcess) -> str:
    """Pick the most useful line from a failed Lighthouse run."""
    for stream in (completed.stderr, completed.stdout):
        lines = [line.strip() for line in (stream or "").splitlines() if line.strip()]
        if lines:
            return lines[-1]
    return f"exit code {completed.returncode}"


def validate_report(report: object) -> dict:
    """Check the parts of the Lighthouse report schema that extraction relies on."""
    if not isinstance(report, dict):
        raise AuditFailure("Lighthouse report is not a JSON object")

    runtime_error = report.get("runtimeError")
    # Lighthouse 3-5 always emit runtimeError, with code NO_ERROR on success
    if isinstance(runtime_error, dict) and runtime_error.get("code") == "NO_ERROR":
        runtime_error = None
    if runtime_error:
        code = runtime_error.get("code", "UNKNOWN") if isinstance(runtime_error, dict) else "UNKNOWN"
        message = runtime_error.get("message", "") if isinstance(runtime_error, dict) else str(runtime_error)
        raise AuditFailure(f"Lighthouse runtime error {code}: {message}".rstrip(": "))

    categories = report.get("categories")
    if not isinstance(categories, dict):
        raise AuditFailure("Lighthouse report has no categories")
    for category_id in CATEGORIES:
        category = categories.get(category_id)
        if not isinstance(category, dict) or "score" not in category:
            raise AuditFailure(f"Lighthouse report is missing the '{category_id}' category")

    audits = report.get("audits")
    if audits is not None and not isinstance(audits, dict):
        raise AuditFailure("Lighthouse report has a malformed audits section")
    return report


def run_lighthouse(url: str, profile: str, settings: Settings) -> dict:
    """Run Lighthouse once for ``url`` under ``profile`` and return the parsed JSON report.

    Blocks until the process exits. Raises AuditFailure on any failure.
    """
    with temporary_report_path(profile) as report_path:
        command = build_lighthouse_command(url, profile, report_path, settings)
        if settings.verbose:
            err_console.print(f"    $ {escape(' '.join(command))}")

        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                errors="replace",
                check=False,
                timeout=settings.audit_timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise AuditFailure(f"Lighthouse timed out after {settings.audit_timeout:g}s") from exc
        except OSError as exc:
            raise AuditFailure(f"cannot start {settings.lighthouse_bin}: {exc}") from exc

        if completed.returncode != 0:
            raise AuditFailure(f"Lighthouse exited with code {completed.returncode}: {_failure_detail(completed)}")

        try:
            report = json.loads(report_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise AuditFailure(f"cannot read Lighthouse report: {exc}") from exc
        except ValueError as exc:
            raise AuditFailure(f"unparsable Lighthouse report: {exc}") from exc

    return validate_report(report)


# ---------------------------------------------------------------------------
# Metrics Extraction
# ---------------------------------------------------------------------------


def _numeric_value(audits: dict, audit_id: str) -> float | None:
    audit_data = audits.get(audit_id)
    if not isinstance(audit_data, dict):
        return None
    value = audit_data.get("numericValue")
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        return None
    return value


def extract_metrics(report: dict) -> MetricSet:
    """Reduce a Lighthouse report to category scores and timing metrics."""
    categories = report["categories"]
    values: dict[str, int | float | None] = {}

    for category_id, attribute in SCORE_FIELDS:
        score = categories[category_id]["score"]
        values[attribute] = round(score * 100) if score is not None else None

    audits = report.get("audits") or {}
    for audit_id, attribute in TIMING_AUDITS:
        value = _numeric_value(audits, audit_id)
        values[attribute] = round(value) if value is not None else None

    # CLS is unitless; keep full precision
    values["cls"] = _numeric_value(audits, CLS_AUDIT)

    return MetricSet(**values)


# ---------------------------------------------------------------------------
# Batch Processing
# ---------------------------------------------------------------------------


def _trim_message(message: str) -> str:
    first_line = message.strip().splitlines()[0] if message.strip() else message
    if len(first_line) > MAX_CONSOLE_ERROR_LENGTH:
        return first_line[:MAX_CONSOLE_ERROR_LENGTH - 3] + "..."
    return first_line


def _audit_profile(url: str, profile: str, settings: Settings) -> MetricSet:
    """Audit one profile, converting AuditFailure into an all-absent MetricSet."""
    label = profile.capitalize()
    err_console.print(f"  Running {label} audit...")
    try:
        report = run_lighthouse(url, profile, settings)
        metrics = extract_metrics(report)
    except AuditFailure as exc:
        err_console.print(f"  [red]✗[/red] {label} error: {escape(_trim_message(str(exc)))}")
        return MetricSet.failed(str(exc))

    err_console.print(f"  [green]✓[/green] {label} completed: Performance={metrics.performance}")
    return metrics


def analyze_urls(urls: list[str], settings: Settings) -> BatchResult:
    """Audit every URL sequentially, mobile then desktop, one attempt each."""
    err_console.print("Starting Lighthouse analysis (Desktop + Mobile)...")
    results: list[UrlResult] = []
    total = len(urls)

    for index, url in enumerate(urls, start=1):
        err_console.print(f"\n[{index}/{total}] Analyzing: {url}", markup=False)
        mobile = _audit_profile(url, "mobile", settings)
        desktop = _audit_profile(url, "desktop", settings)
        results.append(UrlResult(url=url, mobile=mobile, desktop=desktop))

    return tuple(results)


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def format_iso_timestamp(run_time: datetime) -> str:
    """UTC ISO-8601 with milliseconds and a trailing Z, e.g. 2026-02-16T12:00:00.000Z."""
    utc_time = run_time.astimezone(timezone.utc)
    return utc_time.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc_time.microsecond // 1000:03d}Z"


def filename_timestamp(run_time: datetime) -> str:
    """Filesystem-safe stamp derived from the ISO timestamp, e.g. 2026-02-16T12-00-00."""
    stamp = format_iso_timestamp(run_time).replace(":", "-").replace(".", "-")
    # Drop the "-mmmZ" suffix
    return stamp[:-5]


def format_local_timestamp(run_time: datetime, tz_name: str = DEFAULT_TIMEZONE) -> str:
    """Spanish full date plus short time in the given zone, e.g. lunes, 16 de febrero de 2026, 13:00."""
    local_time = run_time.astimezone(ZoneInfo(tz_name))
    weekday = WEEKDAY_NAMES[local_time.weekday()]
    month = MONTH_NAMES[local_time.month - 1]
    return f"{weekday}, {local_time.day} de {month} de {local_time.year}, {local_time.strftime('%H:%M')}"


# ---------------------------------------------------------------------------
# Output: CSV
# ---------------------------------------------------------------------------


def build_results_table(results: BatchResult) -> pd.DataFrame:
    """One row per URL, desktop then mobile metric columns, absent values as ERROR."""
    rows = []
    for result in results:
        row = [result.url]
        for profile in EXPORT_PROFILES:
            metrics = getattr(result, profile)
            for attribute, _, _ in METRIC_FIELDS:
                value = getattr(metrics, attribute)
                row.append(ERROR_MARKER if value is None else value)
        rows.append(row)
    return pd.DataFrame(rows, columns=CSV_COLUMNS, dtype=object)


def save_results_csv(results: BatchResult, run_time: datetime, output_dir: str) -> Path:
    """Write the CSV export. Returns the file path."""
    output_path = Path(output_dir) / f"lighthouse_results_{filename_timestamp(run_time)}.csv"
    output_path.parent.mkdir(parents=True, exist_ok=True)
    build_results_table(results).to_csv(output_path, index=False)
    return output_path


# ---------------------------------------------------------------------------
# Output: HTML email
# ---------------------------------------------------------------------------


def score_indicator(score: int | None) -> str:
    """Traffic-light emoji for a 0-100 score."""
    if score is None:
        return "⚫"
    if score >= 90:
        return "🟢"
    if score >= 50:
        return "🟡"
    return "🔴"


def _score_cells(metrics: MetricSet) -> str:
    cells = []
    for attribute, _ in HTML_SCORE_COLUMNS:
        score = getattr(metrics, attribute)
        display = score if score is not None else "ERR"
        cells.append(f'          <td class="score">{score_indicator(score)} {display}</td>')
    return "\n".join(cells)


def generate_email_html(results: BatchResult, run_time: datetime, settings: Settings) -> str:
    """Generate a self-contained, inline-styled HTML summary for email."""
    date_label = format_local_timestamp(run_time, settings.timezone)
    dashboard_url = html.escape(settings.dashboard_url, quote=True)
    header_cells = "\n".join(
        f"          <th>{header}</th>" for _ in EXPORT_PROFILES for _, header in HTML_SCORE_COLUMNS
    )

    table_rows = []
    for result in results:
        url = html.escape(result.url, quote=True)
        table_rows.append(f"""        <tr>
          <td class="url-cell" title="{url}">{url}</td>
{_score_cells(result.desktop)}
{_score_cells(result.mobile)}
        </tr>""")
    table_rows_html = "\n".join(table_rows)

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <style>
    body {{ font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; background-color: #f5f5f5; margin: 0; padding: 20px; }}
    .container {{ max-width: 1200px; margin: 0 auto; background-color: white; padding: 30px; border-radius: 8px; box-shadow: 0 2px 4px rgba(0,0,0,0.1); }}
    h1 {{ color: #333; border-bottom: 3px solid #4CAF50; padding-bottom: 10px; margin-bottom: 20px; }}
    .date {{ color: #666; font-size: 14px; margin-bottom: 20px; }}
    table {{ width: 100%; border-collapse: collapse; margin-top: 20px; font-size: 13px; }}
    th {{ background-color: #4CAF50; color: white; padding: 12px 8px; text-align: center; font-weight: 600; border: 1px solid #ddd; }}
    td {{ padding: 10px 8px; border: 1px solid #ddd; text-align: center; }}
    .url-cell {{ text-align: left; font-weight: 500; max-width: 300px; overflow: hidden; text-overflow: ellipsis; white-space: nowrap; }}
    tr:nth-child(even) {{ background-color: #f9f9f9; }}
    .device-header {{ background-color: #2196F3; color: white; }}
    .score {{ font-weight: 600; font-size: 14px; }}
    .footer {{ margin-top: 30px; padding-top: 20px; border-top: 1px solid #ddd; text-align: center; color: #666; font-size: 12px; }}
  </style>
</head>
<body>
  <div class="container">
    <h1>📊 Lighthouse Analysis Report</h1>
    <div class="date">Date: {html.escape(date_label)}</div>
    <div class="date">URLs analyzed: {len(results)}</div>

    <div style="background: #e3f2fd; border-left: 4px solid #2196F3; padding: 15px; margin: 20px 0; border-radius: 4px;">
      <p style="margin: 0; color: #1976d2; font-weight: 600; font-size: 14px;">
        📊 <strong>Historical dashboard:</strong>
        <a href="{dashboard_url}" style="color: #1976d2; text-decoration: none; border-bottom: 2px solid #2196F3;">
          See how every metric evolves
        </a>
      </p>
    </div>

    <table>
      <thead>
        <tr>
          <th rowspan="2" style="vertical-align: middle;">URL</th>
          <th colspan="{len(HTML_SCORE_COLUMNS)}" class="device-header">🖥️ DESKTOP</th>
          <th colspan="{len(HTML_SCORE_COLUMNS)}" class="device-header">📱 MOBILE</th>
        </tr>
        <tr>
{header_cells}
        </tr>
      </thead>
      <tbody>
{table_rows_html}
      </tbody>
    </table>

    <div class="footer">
      <p>🟢 &ge;90 | 🟡 50-89 | 🔴 &lt;50 | ⚫ no data</p>
      <p>Generated automatically by Lighthouse Analyzer v{__version__}</p>
      <p style="margin-top: 20px; padding-top: 15px; border-top: 1px solid #ddd; font-size: 13px; color: #495057;">
        <strong>Metric legend:</strong><br>
        <span style="display: inline-block; margin-right: 15px;">⚡ <strong>Perf</strong> = Performance</span>
        <span style="display: inline-block; margin-right: 15px;">♿ <strong>Acc</strong> = Accessibility</span>
        <span style="display: inline-block; margin-right: 15px;">✨ <strong>BP</strong> = Best Practices</span>
        <span style="display: inline-block;">🔍 <strong>SEO</strong> = Search Engine Optimization</span>
      </p>
    </div>
  </div>
</body>
</html>"""


def save_email_html(results: BatchResult, run_time: datetime, settings: Settings) -> Path:
    """Write the HTML email summary. Returns the file path."""
    output_path = Path(settings.output_dir) / f"lighthouse_email_{filename_timestamp(run_time)}.html"
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(generate_email_html(results, run_time, settings), encoding="utf-8")
    return output_path


# ---------------------------------------------------------------------------
# Output: Historical archive
# ---------------------------------------------------------------------------


def build_historical_record(results: BatchResult, run_time: datetime, settings: Settings) -> HistoricalRecord:
    return HistoricalRecord(
        timestamp=format_iso_timestamp(run_time),
        date=format_local_timestamp(run_time, settings.timezone),
        results=results,
    )


def save_historical_data(results: BatchResult, run_time: datetime, settings: Settings) -> Path:
    """Write this run's snapshot into the history directory. Returns the file path.

    One file per run, named from the run timestamp; earlier files are never touched.
    """
    history_dir = Path(settings.history_dir)
    history_dir.mkdir(parents=True, exist_ok=True)
    output_path = history_dir / f"lighthouse_{filename_timestamp(run_time)}.json"

    record = build_historical_record(results, run_time, settings)
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(record.to_dict(), fh, indent=2, ensure_ascii=False)

    return output_path


def load_historical_data(file_path: str | Path) -> HistoricalRecord:
    """Load a history file written by save_historical_data()."""
    with open(file_path, encoding="utf-8") as fh:
        data = json.load(fh)
    return HistoricalRecord(
        timestamp=data["timestamp"],
        date=data.get("date", ""),
        results=tuple(UrlResult.from_dict(item) for item in data.get("results", [])),
    )


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def print_run_summary(results: BatchResult) -> None:
    """Print URL count, average performance per profile, and failed audit count to stderr."""
    rows = [
        {"url": result.url, "profile": profile, "performance": getattr(result, profile).performance, "error": getattr(result, profile).error}
        for result in results
        for profile in PROFILES
    ]
    dataframe = pd.DataFrame(rows, columns=["url", "profile", "performance", "error"])

    err_console.print("\nSummary:")
    err_console.print(f"  URLs analyzed: {dataframe['url'].nunique()}")
    for profile in PROFILES:
        scores = pd.to_numeric(dataframe.loc[dataframe["profile"] == profile, "performance"], errors="coerce").dropna()
        if len(scores) > 0:
            err_console.print(f"  Avg {profile} performance: {scores.mean():.0f}")
    failed = int(dataframe["error"].notna().sum())
    if failed > 0:
        err_console.print(f"  Failed audits: {failed}")


def run_pipeline(urls: list[str], settings: Settings, run_time: datetime | None = None) -> dict[str, Path]:
    """Audit all URLs, then write the CSV, HTML, and history artifacts."""
    run_time = run_time or datetime.now(timezone.utc)

    results = analyze_urls(urls, settings)

    written = {
        "csv": save_results_csv(results, run_time, settings.output_dir),
        "html": save_email_html(results, run_time, settings),
        "history": save_historical_data(results, run_time, settings),
    }

    print_run_summary(results)
    err_console.print("\n" + "=" * 60, markup=False)
    err_console.print("Analysis completed successfully!")
    err_console.print(f"CSV file:     {written['csv']}", markup=False)
    err_console.print(f"HTML email:   {written['html']}", markup=False)
    err_console.print(f"History JSON: {written['history']}", markup=False)
    err_console.print("=" * 60, markup=False)
    return written


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def main() -> None:
    parser = build_argument_parser()
    args = parser.parse_args()

    try:
        config_path = Path(args.config) if args.config else discover_config_path()
        config = load_config(config_path)
        settings = build_settings(args, config)
        urls = load_urls_from_env()
    except ConfigurationError as exc:
        err_console.print(f"\n[red]Error:[/red] {escape(str(exc))}")
        sys.exit(CONFIG_ERROR_EXIT_CODE)

    err_console.print("=" * 60, markup=False)
    err_console.print("LIGHTHOUSE ANALYZER - Desktop & Mobile")
    err_console.print("=" * 60, markup=False)
    err_console.print(f"URLs to analyze: {len(urls)}")
    err_console.print(f"URLs loaded from {URLS_ENV_VAR}")
    err_console.print("=" * 60, markup=False)

    try:
        run_pipeline(urls, settings)
    except Exception as exc:
        err_console.print(f"\n[red]Fatal error:[/red] {escape(f'{type(exc).__name__}: {exc}')}")
        sys.exit(FATAL_ERROR_EXIT_CODE)

    sys.exit(0)


if __name__ == "__main__":
    main()
