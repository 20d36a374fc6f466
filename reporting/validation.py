"""
reporting/validation.py

Builds a :class:`ReportRequest` from untrusted input.

All problems are collected before raising so a caller sees every invalid
field at once. Nothing in this module touches the network.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Final, Sequence

from reporting.base import DateRange, ReportRequest, ReportValidationError, SourceMedium

MIN_PROPERTY_IDS: Final[int] = 1
MAX_PROPERTY_IDS: Final[int] = 50
MIN_TOP_STATES: Final[int] = 1
MAX_TOP_STATES: Final[int] = 100

_PROPERTY_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9]{1,20}$")
_PROPERTY_RESOURCE_PREFIX: Final[str] = "properties/"
_SOURCE_MEDIUM_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\s*([^/]*?)\s*/\s*([^/]*?)\s*$")


def normalize_property_id(raw: str) -> str:
    """Strip whitespace and an optional ``properties/`` resource prefix."""
    value = raw.strip()
    if value.startswith(_PROPERTY_RESOURCE_PREFIX):
        value = value[len(_PROPERTY_RESOURCE_PREFIX):]
    return value


def parse_source_medium(raw: str) -> SourceMedium | None:
    """
    Parse ``"<source> / <medium>"``; return ``None`` when malformed.

    Both parts must be non-empty and the string must contain exactly one
    ``/`` separator.
    """
    match = _SOURCE_MEDIUM_PATTERN.match(raw or "")
    if match is None:
        return None
    source, medium = match.group(1), match.group(2)
    if not source or not medium:
        return None
    return SourceMedium(source=source, medium=medium)


def _coerce_date(value: date | str, field_name: str, errors: list[str]) -> date | None:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        errors.append(f"{field_name} must be a calendar date in YYYY-MM-DD format, got {value!r}.")
        return None


def build_report_request(
    *,
    property_ids: Sequence[str],
    source_medium_filter: str,
    top_states_count: int,
    start_date: date | str,
    end_date: date | str,
) -> ReportRequest:
    """
    Validate raw request fields and return an immutable :class:`ReportRequest`.

    Raises
    ------
    ReportValidationError
        Listing every malformed field. Raised before any query is issued.
    """
    errors: list[str] = []

    normalized_ids: list[str] = []
    if not (MIN_PROPERTY_IDS <= len(property_ids) <= MAX_PROPERTY_IDS):
        errors.append(
            f"property_ids must contain between {MIN_PROPERTY_IDS} and "
            f"{MAX_PROPERTY_IDS} ids, got {len(property_ids)}."
        )
    seen: set[str] = set()
    for raw_id in property_ids:
        property_id = normalize_property_id(str(raw_id))
        if not _PROPERTY_ID_PATTERN.match(property_id):
            errors.append(f"Malformed property id {raw_id!r}; expected a numeric id.")
            continue
        if property_id in seen:
            errors.append(f"Duplicate property id {property_id!r}.")
            continue
        seen.add(property_id)
        normalized_ids.append(property_id)

    source_medium = parse_source_medium(source_medium_filter)
    if source_medium is None:
        errors.append(
            f"source_medium_filter must look like 'source / medium', got {source_medium_filter!r}."
        )

    if isinstance(top_states_count, bool) or not isinstance(top_states_count, int):
        errors.append(f"top_states_count must be an integer, got {top_states_count!r}.")
    elif not (MIN_TOP_STATES <= top_states_count <= MAX_TOP_STATES):
        errors.append(
            f"top_states_count must be between {MIN_TOP_STATES} and {MAX_TOP_STATES}, "
            f"got {top_states_count}."
        )

    start = _coerce_date(start_date, "start_date", errors)
    end = _coerce_date(end_date, "end_date", errors)
    if start is not None and end is not None and start > end:
        errors.append(f"start_date {start.isoformat()} is after end_date {end.isoformat()}.")

    if errors:
        raise ReportValidationError(errors)

    return ReportRequest(
        property_ids=tuple(normalized_ids),
        source_medium=source_medium,  # type: ignore[arg-type]
        top_states_count=top_states_count,
        date_range=DateRange(start_date=start, end_date=end),  # type: ignore[arg-type]
    )
