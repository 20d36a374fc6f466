"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def load_env_files() -> None:
    """
    Load simple KEY=VALUE pairs from `.env` and `.env.local` (if present).
    Existing process environment variables are not overwritten.
    """

    project_root = Path(__file__).resolve().parents[1]
    for filename in (".env", ".env.local"):
        env_path = project_root / filename
        if not env_path.exists():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = value


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


@dataclass(frozen=True)
class ExternalHTTPSettings:
    """
    Shared HTTP behavior settings for external connectors.
    """

    timeout_seconds: float = 15.0
    max_retries: int = 3
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    rate_limit_per_second: float = 5.0


@dataclass(frozen=True)
class ReportEngineSettings:
    """
    Concurrency and deadline settings for multi-property report batches.
    """

    max_concurrent_queries: int = 5
    query_timeout_seconds: float = 30.0
    batch_deadline_seconds: float = 120.0


@dataclass(frozen=True)
class GoogleAnalyticsSettings:
    """
    Google Analytics 4 Data and Admin API connector settings.
    """

    data_api_base_url: str = "https://analyticsdata.googleapis.com/v1beta"
    admin_api_base_url: str = "https://analyticsadmin.googleapis.com/v1beta"
    page_size: int = 1000
    max_pages: int = 10


@lru_cache(maxsize=1)
def get_external_http_settings() -> ExternalHTTPSettings:
    """
    Return shared connector HTTP settings from environment variables.
    """

    return ExternalHTTPSettings(
        timeout_seconds=max(1.0, _get_float_env("EXTERNAL_HTTP_TIMEOUT_SECONDS", 15.0)),
        max_retries=max(0, _get_int_env("EXTERNAL_HTTP_MAX_RETRIES", 3)),
        backoff_initial_seconds=max(0.1, _get_float_env("EXTERNAL_HTTP_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("EXTERNAL_HTTP_BACKOFF_MULTIPLIER", 2.0)),
        rate_limit_per_second=max(0.1, _get_float_env("EXTERNAL_HTTP_RATE_LIMIT_PER_SECOND", 5.0)),
    )


@lru_cache(maxsize=1)
def get_report_engine_settings() -> ReportEngineSettings:
    """
    Return report engine settings from environment variables.

    The worker pool width is clamped to 1-50.
    """

    return ReportEngineSettings(
        max_concurrent_queries=min(50, max(1, _get_int_env("REPORT_MAX_CONCURRENT_QUERIES", 5))),
        query_timeout_seconds=max(1.0, _get_float_env("REPORT_QUERY_TIMEOUT_SECONDS", 30.0)),
        batch_deadline_seconds=max(1.0, _get_float_env("REPORT_BATCH_DEADLINE_SECONDS", 120.0)),
    )


@lru_cache(maxsize=1)
def get_google_analytics_settings() -> GoogleAnalyticsSettings:
    """
    Return Google Analytics connector settings from environment variables.
    """

    return GoogleAnalyticsSettings(
        data_api_base_url=_get_str_env(
            "GA_DATA_API_BASE_URL", "https://analyticsdata.googleapis.com/v1beta"
        ).rstrip("/"),
        admin_api_base_url=_get_str_env(
            "GA_ADMIN_API_BASE_URL", "https://analyticsadmin.googleapis.com/v1beta"
        ).rstrip("/"),
        page_size=min(250_000, max(1, _get_int_env("GA_DATA_PAGE_SIZE", 1000))),
        max_pages=max(1, _get_int_env("GA_DATA_MAX_PAGES", 10)),
    )
