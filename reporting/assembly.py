"""
reporting/assembly.py

Per-region percentages and per-property totals.

Formulas
--------
percentage_of_new_users        = new_users / users * 100       (0 when users == 0)
total_average_session_duration = Σ(duration_i × users_i) / Σ(users_i)
                                                               (0 when Σ users == 0)
total_percentage_of_new_users  = total_new_users / total_users * 100

Percentages are applied to the full region map before top-N truncation;
totals are computed over whatever region list the caller passes, which
for a finished report is the selected top-N.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Mapping, Sequence

from reporting.base import DateRange, PropertyReport, RegionRecord
from reporting.selection import select_top_regions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportTotals:
    users: int
    new_users: int
    active_users: int
    average_session_duration_per_user: float
    percentage_of_new_users: float


def percentage_of(part: int, whole: int) -> float:
    """Return ``part / whole * 100`` clamped to [0, 100]; 0 when *whole* is 0."""
    if whole <= 0:
        return 0.0
    return min(100.0, max(0.0, part / whole * 100.0))


def apply_percentages(regions: Mapping[str, RegionRecord]) -> dict[str, RegionRecord]:
    """
    Return a copy of *regions* with ``percentage_of_new_users`` filled in.
    """
    return {
        state: replace(record, percentage_of_new_users=percentage_of(record.new_users, record.users))
        for state, record in regions.items()
    }


def compute_totals(regions: Iterable[RegionRecord]) -> ReportTotals:
    """
    Sum counts and users-weight the session duration across *regions*.
    """
    users = 0
    new_users = 0
    active_users = 0
    weighted_duration = 0.0
    for record in regions:
        users += record.users
        new_users += record.new_users
        active_users += record.active_users
        weighted_duration += record.average_session_duration_per_user * record.users

    return ReportTotals(
        users=users,
        new_users=new_users,
        active_users=active_users,
        average_session_duration_per_user=weighted_duration / users if users > 0 else 0.0,
        percentage_of_new_users=percentage_of(new_users, users),
    )


def build_property_report(
    *,
    property_id: str,
    property_name: str,
    date_range: DateRange,
    regions: Mapping[str, RegionRecord],
    top_states_count: int,
) -> PropertyReport:
    """
    Turn one property's aggregated regions into a finished report.

    Order: percentages on every region, then top-N selection, then totals
    over the selected regions.
    """
    with_percentages = apply_percentages(regions)
    selected: Sequence[RegionRecord] = select_top_regions(with_percentages.values(), top_states_count)
    totals = compute_totals(selected)
    logger.debug(
        "Assembled report property=%s regions=%d selected=%d total_users=%d",
        property_id,
        len(regions),
        len(selected),
        totals.users,
    )
    return PropertyReport(
        property_id=property_id,
        property_name=property_name,
        date_range=date_range,
        total_users=totals.users,
        total_new_users=totals.new_users,
        total_active_users=totals.active_users,
        total_average_session_duration_per_user=totals.average_session_duration_per_user,
        total_percentage_of_new_users=totals.percentage_of_new_users,
        regions=tuple(selected),
    )
