"""
tests/test_composer.py

Pytest unit tests for duration formatting and response composition.
"""

from __future__ import annotations

import math
from datetime import date

import pytest

from reporting.base import (
    REASON_AUTH,
    DateRange,
    PropertyError,
    PropertyReport,
    ReportSystemError,
)
from reporting.composer import DurationParts, compose_response, format_duration
from reporting.validation import build_report_request


def _request(*property_ids: str):
    return build_report_request(
        property_ids=list(property_ids),
        source_medium_filter="google / organic",
        top_states_count=5,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
    )


def _report(property_id: str) -> PropertyReport:
    return PropertyReport(
        property_id=property_id,
        property_name=property_id,
        date_range=DateRange(date(2024, 1, 1), date(2024, 1, 31)),
        total_users=0,
        total_new_users=0,
        total_active_users=0,
        total_average_session_duration_per_user=0.0,
        total_percentage_of_new_users=0.0,
    )


class TestFormatDuration:
    @pytest.mark.parametrize(
        "total_seconds, minutes, seconds",
        [
            (0.0, 0, 0),
            (59.4, 0, 59),
            (59.5, 1, 0),
            (60.0, 1, 0),
            (125.6, 2, 6),
            (179.7, 3, 0),
            (3600.0, 60, 0),
        ],
    )
    def test_splits_minutes_and_seconds(self, total_seconds: float, minutes: int, seconds: int) -> None:
        assert format_duration(total_seconds) == DurationParts(minutes=minutes, seconds=seconds)

    @pytest.mark.parametrize("bad", [-0.1, math.nan, math.inf])
    def test_rejects_negative_and_non_finite(self, bad: float) -> None:
        with pytest.raises(ValueError):
            format_duration(bad)

    def test_labels(self) -> None:
        assert DurationParts(minutes=2, seconds=6).label() == "2m 6s"
        assert DurationParts(minutes=0, seconds=45).label() == "45s"


class TestComposeResponse:
    def test_orders_by_request_and_splits(self) -> None:
        request = _request("3", "1", "2")
        outcomes = [
            _report("2"),
            PropertyError("1", "denied", REASON_AUTH),
            _report("3"),
        ]
        response = compose_response(request, outcomes)
        assert [r.property_id for r in response.results] == ["3", "2"]
        assert [e.property_id for e in response.errors] == ["1"]

    def test_every_property_accounted_for(self) -> None:
        request = _request("1", "2")
        response = compose_response(request, [_report("1"), _report("2")])
        assert len(response.results) + len(response.errors) == len(request.property_ids)

    def test_missing_outcome_raises(self) -> None:
        with pytest.raises(ReportSystemError):
            compose_response(_request("1", "2"), [_report("1")])

    def test_duplicate_outcome_raises(self) -> None:
        with pytest.raises(ReportSystemError):
            compose_response(_request("1"), [_report("1"), _report("1")])

    def test_unexpected_outcome_raises(self) -> None:
        with pytest.raises(ReportSystemError):
            compose_response(_request("1"), [_report("1"), _report("9")])
