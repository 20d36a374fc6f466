"""
tests/test_validation.py

Pytest unit tests for report request validation.
"""

from __future__ import annotations

from datetime import date

import pytest

from reporting.base import ReportValidationError, SourceMedium
from reporting.validation import build_report_request, normalize_property_id, parse_source_medium


def _build(**overrides):
    fields = dict(
        property_ids=["123456789"],
        source_medium_filter="google / organic",
        top_states_count=10,
        start_date="2024-01-01",
        end_date="2024-01-31",
    )
    fields.update(overrides)
    return build_report_request(**fields)


class TestParseSourceMedium:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("google / cpc", SourceMedium("google", "cpc")),
            ("google/cpc", SourceMedium("google", "cpc")),
            ("  (direct)  /  (none) ", SourceMedium("(direct)", "(none)")),
        ],
    )
    def test_valid(self, raw: str, expected: SourceMedium) -> None:
        assert parse_source_medium(raw) == expected

    @pytest.mark.parametrize("raw", ["", "google", "google / ", " / cpc", "a / b / c"])
    def test_invalid(self, raw: str) -> None:
        assert parse_source_medium(raw) is None


class TestNormalizePropertyId:
    def test_strips_resource_prefix_and_whitespace(self) -> None:
        assert normalize_property_id("  properties/123 ") == "123"

    def test_plain_id_unchanged(self) -> None:
        assert normalize_property_id("456") == "456"


class TestBuildReportRequest:
    def test_valid_request(self) -> None:
        request = _build(property_ids=["properties/123", "456"])
        assert request.property_ids == ("123", "456")
        assert request.source_medium == SourceMedium("google", "organic")
        assert request.top_states_count == 10
        assert request.date_range.start_date == date(2024, 1, 1)
        assert request.date_range.end_date == date(2024, 1, 31)

    def test_accepts_date_objects(self) -> None:
        request = _build(start_date=date(2024, 2, 1), end_date=date(2024, 2, 1))
        assert request.date_range.label() == "2024-02-01 - 2024-02-01"

    def test_collects_every_error(self) -> None:
        with pytest.raises(ReportValidationError) as exc_info:
            _build(
                property_ids=[],
                source_medium_filter="bad",
                top_states_count=0,
                start_date="2024-02-01",
                end_date="2024-01-01",
            )
        assert len(exc_info.value.errors) == 4

    def test_too_many_ids(self) -> None:
        with pytest.raises(ReportValidationError):
            _build(property_ids=[str(100 + i) for i in range(51)])

    def test_fifty_ids_allowed(self) -> None:
        assert len(_build(property_ids=[str(100 + i) for i in range(50)]).property_ids) == 50

    @pytest.mark.parametrize("bad_id", ["abc", "12a", "", "1" * 21])
    def test_malformed_ids(self, bad_id: str) -> None:
        with pytest.raises(ReportValidationError):
            _build(property_ids=[bad_id])

    def test_duplicate_ids_after_normalization(self) -> None:
        with pytest.raises(ReportValidationError) as exc_info:
            _build(property_ids=["123", "properties/123"])
        assert any("Duplicate" in error for error in exc_info.value.errors)

    @pytest.mark.parametrize("count", [0, 101, True, "5"])
    def test_bad_top_states_count(self, count) -> None:
        with pytest.raises(ReportValidationError):
            _build(top_states_count=count)

    def test_bad_date_format(self) -> None:
        with pytest.raises(ReportValidationError):
            _build(start_date="01/02/2024")

    def test_validation_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            _build(source_medium_filter="")
