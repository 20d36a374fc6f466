"""
reporting/selection.py

Top-N region selection.
"""

from __future__ import annotations

from typing import Iterable

from reporting.base import RegionRecord


def _rank_key(record: RegionRecord) -> tuple[int, str, str]:
    # Raw state breaks ties between names that only differ in case.
    return (-record.users, record.state.casefold(), record.state)


def select_top_regions(records: Iterable[RegionRecord], top_n: int) -> list[RegionRecord]:
    """
    Rank regions by users (descending) and keep the first ``top_n``.

    Ties are broken by state name ascending, case-insensitive, so the
    result is deterministic regardless of upstream row order. The result
    holds ``min(top_n, distinct regions)`` records.
    """
    if top_n < 1:
        raise ValueError(f"top_n must be at least 1, got {top_n}.")
    return sorted(records, key=_rank_key)[:top_n]
