"""
tests/test_aggregation.py

Pytest unit tests for row parsing and region aggregation.

Coverage
--------
- Duplicate regions are summed with a users-weighted duration
- Malformed rows are dropped and counted
- All-malformed input raises NoValidRowsError
- Empty input is a valid empty result
- Count and duration parsing rules
"""

from __future__ import annotations

import pytest

from reporting.aggregation import RowParseError, aggregate_rows, parse_row
from reporting.base import NoValidRowsError, RawRow


def _row(region: str, users: str, new_users: str, active: str, duration: str) -> RawRow:
    return RawRow(region=region, metric_values=(users, new_users, active, duration))


# ---------------------------------------------------------------------------
# parse_row
# ---------------------------------------------------------------------------


class TestParseRow:
    def test_parses_well_formed_row(self) -> None:
        parsed = parse_row(_row(" California ", "100", "40", "90", "120.5"))
        assert parsed.state == "California"
        assert parsed.users == 100
        assert parsed.new_users == 40
        assert parsed.active_users == 90
        assert parsed.average_session_duration == pytest.approx(120.5)

    def test_accepts_integral_float_counts_and_thousands_separator(self) -> None:
        parsed = parse_row(_row("Texas", "1,200", "12.0", "0", "0"))
        assert parsed.users == 1200
        assert parsed.new_users == 12

    @pytest.mark.parametrize(
        "row",
        [
            _row("", "1", "1", "1", "1"),
            _row("   ", "1", "1", "1", "1"),
            RawRow(region="Ohio", metric_values=("1", "1", "1")),
            _row("Ohio", "abc", "1", "1", "1"),
            _row("Ohio", "-1", "1", "1", "1"),
            _row("Ohio", "1.5", "1", "1", "1"),
            _row("Ohio", "1", "1", "1", "nan"),
            _row("Ohio", "1", "1", "1", "-3"),
            _row("Ohio", "inf", "1", "1", "1"),
        ],
    )
    def test_rejects_malformed_rows(self, row: RawRow) -> None:
        with pytest.raises(RowParseError):
            parse_row(row)


# ---------------------------------------------------------------------------
# aggregate_rows
# ---------------------------------------------------------------------------


class TestAggregateRows:
    def test_duplicate_regions_are_merged(self) -> None:
        result = aggregate_rows(
            [
                _row("California", "100", "50", "80", "60"),
                _row("California", "300", "30", "200", "120"),
            ]
        )
        record = result.regions["California"]
        assert record.users == 400
        assert record.new_users == 80
        assert record.active_users == 280
        assert record.average_session_duration_per_user == pytest.approx(105.0)

    def test_malformed_rows_are_dropped_not_fatal(self) -> None:
        result = aggregate_rows(
            [
                _row("California", "100", "50", "80", "60"),
                _row("Texas", "oops", "1", "1", "1"),
            ],
            property_id="123",
        )
        assert list(result.regions) == ["California"]
        assert result.rows_seen == 2
        assert result.rows_dropped == 1

    def test_all_malformed_raises(self) -> None:
        with pytest.raises(NoValidRowsError) as exc_info:
            aggregate_rows([_row("", "1", "1", "1", "1"), _row("Texas", "x", "1", "1", "1")])
        assert exc_info.value.rows_seen == 2

    def test_empty_input_is_empty_success(self) -> None:
        result = aggregate_rows([])
        assert result.regions == {}
        assert result.rows_seen == 0

    def test_zero_users_gives_zero_duration(self) -> None:
        result = aggregate_rows([_row("Maine", "0", "0", "0", "45")])
        assert result.regions["Maine"].average_session_duration_per_user == 0.0

    def test_first_seen_order_is_kept(self) -> None:
        result = aggregate_rows(
            [
                _row("Texas", "1", "0", "1", "1"),
                _row("Alaska", "5", "0", "1", "1"),
                _row("Texas", "2", "0", "1", "1"),
            ]
        )
        assert list(result.regions) == ["Texas", "Alaska"]
