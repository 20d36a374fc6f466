"""
reporting/composer.py

Final response composition and duration formatting.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from reporting.base import (
    PropertyError,
    PropertyOutcome,
    PropertyReport,
    ReportRequest,
    ReportResponse,
    ReportSystemError,
)


@dataclass(frozen=True)
class DurationParts:
    """
    A duration split into whole minutes and rounded seconds (0-59).
    """

    minutes: int
    seconds: int

    def label(self) -> str:
        if self.minutes > 0:
            return f"{self.minutes}m {self.seconds}s"
        return f"{self.seconds}s"


def format_duration(total_seconds: float) -> DurationParts:
    """
    Split *total_seconds* into minutes and seconds.

    ``minutes = floor(s / 60)`` and ``seconds = round(s mod 60)``, rounding
    half up. A remainder that rounds to 60 carries into the next minute::

        format_duration(125.6)  -> DurationParts(minutes=2, seconds=6)
        format_duration(179.7)  -> DurationParts(minutes=3, seconds=0)
    """
    if not math.isfinite(total_seconds) or total_seconds < 0:
        raise ValueError(f"Duration must be a finite, non-negative number, got {total_seconds!r}.")

    minutes = int(total_seconds // 60)
    seconds = int(math.floor(total_seconds % 60 + 0.5))
    if seconds >= 60:
        minutes += 1
        seconds = 0
    return DurationParts(minutes=minutes, seconds=seconds)


def compose_response(request: ReportRequest, outcomes: Sequence[PropertyOutcome]) -> ReportResponse:
    """
    Order outcomes by the request's property ids and split them into
    reports and errors.

    Raises
    ------
    ReportSystemError
        When the outcome ids are not exactly the requested ids; this is a
        broken engine invariant, never a per-property failure.
    """
    by_id: dict[str, PropertyOutcome] = {}
    for outcome in outcomes:
        if outcome.property_id in by_id:
            raise ReportSystemError(f"Duplicate outcome for property {outcome.property_id!r}.")
        by_id[outcome.property_id] = outcome

    missing = [pid for pid in request.property_ids if pid not in by_id]
    unexpected = sorted(set(by_id) - set(request.property_ids))
    if missing or unexpected:
        raise ReportSystemError(
            f"Outcome ids do not match request: missing={missing} unexpected={unexpected}."
        )

    results: list[PropertyReport] = []
    errors: list[PropertyError] = []
    for property_id in request.property_ids:
        outcome = by_id[property_id]
        if isinstance(outcome, PropertyReport):
            results.append(outcome)
        elif isinstance(outcome, PropertyError):
            errors.append(outcome)
        else:
            raise ReportSystemError(f"Unknown outcome type {type(outcome).__name__}.")

    return ReportResponse(results=tuple(results), errors=tuple(errors))
