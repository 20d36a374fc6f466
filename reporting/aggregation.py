"""
reporting/aggregation.py

Row aggregation for one property's query result.

Upstream rows arrive as untyped text and may repeat a region (paging or
dimension-combination artifacts). Rows are parsed, grouped by region name,
and merged:

    users, new_users, active_users  – summed
    average session duration        – users-weighted mean
                                      Σ(duration_i × users_i) / Σ(users_i)

A row whose metrics fail to parse is dropped and counted; it never fails
the property on its own. Percentages are not computed here; see
:mod:`reporting.assembly`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable

from reporting.base import REPORT_METRICS, NoValidRowsError, RawRow, RegionRecord

logger = logging.getLogger(__name__)


class RowParseError(ValueError):
    """
    Raised internally when one row cannot be parsed; never escapes this module.
    """


@dataclass(frozen=True)
class ParsedRow:
    state: str
    users: int
    new_users: int
    active_users: int
    average_session_duration: float


@dataclass(frozen=True)
class AggregationResult:
    """
    Grouped region records plus row accounting for logging.
    """

    regions: dict[str, RegionRecord] = field(default_factory=dict)
    rows_seen: int = 0
    rows_dropped: int = 0


@dataclass
class _RegionAccumulator:
    users: int = 0
    new_users: int = 0
    active_users: int = 0
    weighted_duration: float = 0.0

    def add(self, row: ParsedRow) -> None:
        self.users += row.users
        self.new_users += row.new_users
        self.active_users += row.active_users
        self.weighted_duration += row.average_session_duration * row.users

    def to_record(self, state: str) -> RegionRecord:
        average = self.weighted_duration / self.users if self.users > 0 else 0.0
        return RegionRecord(
            state=state,
            users=self.users,
            new_users=self.new_users,
            active_users=self.active_users,
            average_session_duration_per_user=average,
        )


def _parse_count(raw: str, metric: str) -> int:
    try:
        value = float(raw.strip().replace(",", ""))
    except (AttributeError, ValueError) as exc:
        raise RowParseError(f"{metric}={raw!r} is not numeric") from exc
    if not math.isfinite(value) or value < 0 or not value.is_integer():
        raise RowParseError(f"{metric}={raw!r} is not a non-negative integer")
    return int(value)


def _parse_duration(raw: str, metric: str) -> float:
    try:
        value = float(raw.strip().replace(",", ""))
    except (AttributeError, ValueError) as exc:
        raise RowParseError(f"{metric}={raw!r} is not numeric") from exc
    if not math.isfinite(value) or value < 0:
        raise RowParseError(f"{metric}={raw!r} is not a non-negative duration")
    return value


def parse_row(row: RawRow) -> ParsedRow:
    """
    Convert one :class:`RawRow` into typed values.

    Raises
    ------
    RowParseError
        When the region is blank, a metric is missing, or a value is not a
        valid non-negative number.
    """
    state = (row.region or "").strip()
    if not state:
        raise RowParseError("region is empty")
    if len(row.metric_values) < len(REPORT_METRICS):
        raise RowParseError(
            f"expected {len(REPORT_METRICS)} metric values, got {len(row.metric_values)}"
        )

    users_raw, new_users_raw, active_users_raw, duration_raw = row.metric_values[: len(REPORT_METRICS)]
    return ParsedRow(
        state=state,
        users=_parse_count(users_raw, REPORT_METRICS[0]),
        new_users=_parse_count(new_users_raw, REPORT_METRICS[1]),
        active_users=_parse_count(active_users_raw, REPORT_METRICS[2]),
        average_session_duration=_parse_duration(duration_raw, REPORT_METRICS[3]),
    )


def aggregate_rows(rows: Iterable[RawRow], *, property_id: str | None = None) -> AggregationResult:
    """
    Group *rows* by region and merge duplicates.

    Returns
    -------
    AggregationResult
        ``regions`` keyed by state name in first-seen order. Empty when no
        rows were returned, which is a valid (empty) success.

    Raises
    ------
    NoValidRowsError
        When at least one row was returned but every row was malformed.
    """
    accumulators: dict[str, _RegionAccumulator] = {}
    rows_seen = 0
    rows_dropped = 0

    for index, row in enumerate(rows):
        rows_seen += 1
        try:
            parsed = parse_row(row)
        except RowParseError as exc:
            rows_dropped += 1
            logger.debug(
                "Dropping malformed row property=%s index=%d error=%s",
                property_id,
                index,
                exc,
            )
            continue
        accumulators.setdefault(parsed.state, _RegionAccumulator()).add(parsed)

    if rows_seen > 0 and not accumulators:
        raise NoValidRowsError(rows_seen)

    if rows_dropped:
        logger.warning(
            "Dropped %d of %d malformed row(s) property=%s",
            rows_dropped,
            rows_seen,
            property_id,
        )

    return AggregationResult(
        regions={state: acc.to_record(state) for state, acc in accumulators.items()},
        rows_seen=rows_seen,
        rows_dropped=rows_dropped,
    )
