"""
tests/test_config_and_logging.py

Pytest unit tests for environment-driven settings and structured logging.
"""

from __future__ import annotations

import json
import logging

import pytest

from app.config import get_google_analytics_settings, get_report_engine_settings
from reporting.logging_utils import log_event


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_report_engine_settings.cache_clear()
    get_google_analytics_settings.cache_clear()
    yield
    get_report_engine_settings.cache_clear()
    get_google_analytics_settings.cache_clear()


class TestReportEngineSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "REPORT_MAX_CONCURRENT_QUERIES",
            "REPORT_QUERY_TIMEOUT_SECONDS",
            "REPORT_BATCH_DEADLINE_SECONDS",
        ):
            monkeypatch.delenv(name, raising=False)
        settings = get_report_engine_settings()
        assert settings.max_concurrent_queries == 5
        assert settings.query_timeout_seconds == 30.0
        assert settings.batch_deadline_seconds == 120.0

    @pytest.mark.parametrize("raw, expected", [("0", 1), ("200", 50), ("8", 8), ("junk", 5)])
    def test_pool_width_is_clamped(self, monkeypatch: pytest.MonkeyPatch, raw: str, expected: int) -> None:
        monkeypatch.setenv("REPORT_MAX_CONCURRENT_QUERIES", raw)
        assert get_report_engine_settings().max_concurrent_queries == expected


class TestGoogleAnalyticsSettings:
    def test_base_url_trailing_slash_is_removed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GA_DATA_API_BASE_URL", "https://example.test/v1beta/")
        assert get_google_analytics_settings().data_api_base_url == "https://example.test/v1beta"

    def test_page_size_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GA_DATA_PAGE_SIZE", "250")
        assert get_google_analytics_settings().page_size == 250


class TestLogEvent:
    def test_emits_sorted_json_and_redacts_credentials(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("tests.log_event")
        with caplog.at_level(logging.INFO, logger="tests.log_event"):
            log_event(logger, logging.INFO, "report_batch_started", properties=2, credential="secret")

        (record,) = caplog.records
        payload = json.loads(record.getMessage())
        assert payload == {"credential": "***", "event": "report_batch_started", "properties": 2}
        assert "secret" not in record.getMessage()

    def test_disabled_level_emits_nothing(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("tests.log_event.quiet")
        with caplog.at_level(logging.WARNING, logger="tests.log_event.quiet"):
            log_event(logger, logging.DEBUG, "ignored")
        assert caplog.records == []
