"""
tests/test_report_router.py

API tests for the traffic report endpoints using FastAPI's TestClient.

The report service dependency is overridden with one backed by an
in-memory query, so no Google credentials or network are needed.
"""

from __future__ import annotations

import csv
import io
from typing import Any

import pytest
import requests
from fastapi.testclient import TestClient

from app.config import ReportEngineSettings
from app import main as main_module
from app.main import create_app
from app.services.report_service import ReportService, get_report_service
from reporting.base import REASON_AUTH, QueryError, RawRow, ReportCancelledError
from reporting.csv_export import CSV_FIELDS

AUTH = {"Authorization": "Bearer test-token"}

ROWS = {
    "123456789": [
        RawRow("California", ("100", "40", "90", "125.6")),
        RawRow("Texas", ("50", "10", "45", "125.6")),
    ],
}


def _query(property_id: str, **kwargs: Any) -> list[RawRow]:
    if property_id == "000000001":
        raise QueryError(REASON_AUTH, "User does not have sufficient permissions for this property.")
    if property_id == "999999999":
        raise requests.ConnectionError("unreachable")
    return list(ROWS.get(property_id, []))


def _body(**overrides: Any) -> dict[str, Any]:
    body = {
        "property_ids": ["123456789", "000000001"],
        "source_medium_filter": "google / organic",
        "top_states_count": 10,
        "start_date": "2024-01-01",
        "end_date": "2024-01-31",
    }
    body.update(overrides)
    return body


class _CancelledService:
    settings = ReportEngineSettings()

    def generate(self, **kwargs: Any):
        raise ReportCancelledError("deadline passed")


@pytest.fixture()
def app():
    application = create_app()
    application.dependency_overrides[get_report_service] = lambda: ReportService(
        query=_query,
        name_resolver=lambda property_id, credential: "Main Shop" if property_id == "123456789" else None,
        settings=ReportEngineSettings(max_concurrent_queries=2, query_timeout_seconds=5, batch_deadline_seconds=10),
    )
    return application


@pytest.fixture()
def client(app) -> TestClient:
    return TestClient(app)


class TestTrafficReportEndpoint:
    def test_partial_success(self, client: TestClient) -> None:
        response = client.post("/reports/traffic", json=_body(), headers=AUTH)
        assert response.status_code == 200
        payload = response.json()

        (result,) = payload["results"]
        assert result["property_id"] == "123456789"
        assert result["property_name"] == "Main Shop"
        assert result["date_range"] == "2024-01-01 - 2024-01-31"
        assert result["total_users"] == 150
        assert result["total_new_users"] == 50
        assert result["average_session_duration"] == {"minutes": 2, "seconds": 6, "label": "2m 6s"}
        assert [r["state"] for r in result["regions"]] == ["California", "Texas"]
        assert result["regions"][0]["percentage_of_new_users"] == pytest.approx(40.0)

        (error,) = payload["errors"]
        assert error["property_id"] == "000000001"
        assert error["reason"] == "auth"
        assert "permissions" in error["error_message"]

    def test_missing_credential(self, client: TestClient) -> None:
        response = client.post("/reports/traffic", json=_body())
        assert response.status_code == 401

    def test_validation_errors_are_400(self, client: TestClient) -> None:
        response = client.post(
            "/reports/traffic",
            json=_body(source_medium_filter="google", top_states_count=0),
            headers=AUTH,
        )
        assert response.status_code == 400
        assert len(response.json()["detail"]["errors"]) == 2

    def test_all_transport_failures_are_503(self, client: TestClient) -> None:
        response = client.post("/reports/traffic", json=_body(property_ids=["999999999"]), headers=AUTH)
        assert response.status_code == 503

    def test_cancellation_is_504(self, app, client: TestClient) -> None:
        app.dependency_overrides[get_report_service] = lambda: _CancelledService()
        response = client.post("/reports/traffic", json=_body(), headers=AUTH)
        assert response.status_code == 504


class TestTrafficReportCsvEndpoint:
    def test_csv_download(self, client: TestClient) -> None:
        response = client.post("/reports/traffic/csv", json=_body(), headers=AUTH)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        assert response.headers["x-error-count"] == "1"

        rows = list(csv.reader(io.StringIO(response.text)))
        assert tuple(rows[0]) == CSV_FIELDS
        assert rows[1][3] == "Total"
        assert rows[-1][3].startswith("ERROR: ")


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_generate_csv_matches_generate_signature() -> None:
    service = ReportService(query=_query, name_resolver=None, settings=ReportEngineSettings())
    text = service.generate_csv(
        property_ids=["123456789"],
        source_medium_filter="google / organic",
        top_states_count=5,
        start_date="2024-01-01",
        end_date="2024-01-31",
        credential="tok",
    )
    rows = list(csv.reader(io.StringIO(text)))
    assert tuple(rows[0]) == CSV_FIELDS
    assert rows[1][0] == "123456789"


def test_run_serves_with_uvicorn(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[tuple[tuple, dict]] = []
    monkeypatch.setattr(main_module.uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs)))
    monkeypatch.setenv("HOST", "127.0.0.1")
    monkeypatch.setenv("PORT", "9001")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    main_module.run()

    ((args, kwargs),) = calls
    assert args == ("app.main:app",)
    assert kwargs == {"host": "127.0.0.1", "port": 9001, "log_level": "debug"}
