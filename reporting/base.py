"""
reporting/base.py

Request-scoped domain types and the error taxonomy for multi-property
traffic reports.

Every type here is a frozen dataclass: a report is built once per request,
handed to the caller, and never mutated afterwards.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Final, Union

# ---------------------------------------------------------------------------
# Upstream query shape
# ---------------------------------------------------------------------------

REGION_DIMENSION: Final[str] = "region"

METRIC_USERS: Final[str] = "totalUsers"
METRIC_NEW_USERS: Final[str] = "newUsers"
METRIC_ACTIVE_USERS: Final[str] = "activeUsers"
METRIC_AVERAGE_SESSION_DURATION: Final[str] = "averageSessionDuration"

REPORT_DIMENSIONS: Final[tuple[str, ...]] = (REGION_DIMENSION,)
"""Dimensions requested for every property query."""

REPORT_METRICS: Final[tuple[str, ...]] = (
    METRIC_USERS,
    METRIC_NEW_USERS,
    METRIC_ACTIVE_USERS,
    METRIC_AVERAGE_SESSION_DURATION,
)
"""Metrics requested for every property query, in RawRow metric order."""


# ---------------------------------------------------------------------------
# Error taxonomy
# ---------------------------------------------------------------------------

REASON_AUTH: Final[str] = "auth"
REASON_QUOTA: Final[str] = "quota"
REASON_INVALID_PROPERTY: Final[str] = "invalid_property"
REASON_TIMEOUT: Final[str] = "timeout"
REASON_TRANSPORT: Final[str] = "transport"
REASON_NO_VALID_ROWS: Final[str] = "no_valid_rows"
REASON_UNEXPECTED: Final[str] = "unexpected"
REASON_CANCELLED: Final[str] = "cancelled"


class ReportError(Exception):
    """
    Base class for every report engine failure.
    """


class ReportValidationError(ReportError, ValueError):
    """
    Raised when a report request is malformed.

    Detected before any query is dispatched; the whole request fails.

    Attributes:
        errors: Every validation problem found, so callers can fix them
            in one round trip.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid report request.")


class QueryError(ReportError):
    """
    Raised by the query collaborator when one property's query fails.

    The orchestrator converts it into a :class:`PropertyError` for that
    property only.
    """

    def __init__(self, reason: str, message: str) -> None:
        self.reason = reason
        self.message = message
        super().__init__(f"{reason}: {message}")


class NoValidRowsError(ReportError):
    """
    Raised when a property returned rows but none of them could be parsed.
    """

    def __init__(self, rows_seen: int) -> None:
        self.rows_seen = rows_seen
        super().__init__(f"No valid rows ({rows_seen} row(s) returned, all malformed).")


class ReportSystemError(ReportError):
    """
    Raised when the batch as a whole cannot produce a response.
    """


class QueryServiceUnavailableError(ReportSystemError):
    """
    Raised when every property query failed at the transport layer.
    """


class ReportCancelledError(ReportSystemError):
    """
    Raised when the caller cancels the batch or its deadline passes.
    """


# ---------------------------------------------------------------------------
# Request types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DateRange:
    """
    Inclusive calendar date range for a report.
    """

    start_date: date
    end_date: date

    def as_api_dict(self) -> dict[str, str]:
        return {
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
        }

    def label(self) -> str:
        return f"{self.start_date.isoformat()} - {self.end_date.isoformat()}"


@dataclass(frozen=True)
class SourceMedium:
    """
    Parsed ``"source / medium"`` filter.
    """

    source: str
    medium: str

    def label(self) -> str:
        return f"{self.source} / {self.medium}"


@dataclass(frozen=True)
class ReportRequest:
    """
    Validated traffic report request.

    Build instances through :func:`reporting.validation.build_report_request`
    so the id, filter, count, and date range checks always run.
    """

    property_ids: tuple[str, ...]
    source_medium: SourceMedium
    top_states_count: int
    date_range: DateRange


# ---------------------------------------------------------------------------
# Row and record types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RawRow:
    """
    One untyped upstream row: a region name and its metric values as text.

    ``metric_values`` follows :data:`REPORT_METRICS` order.
    """

    region: str
    metric_values: tuple[str, ...]


@dataclass(frozen=True)
class RegionRecord:
    """
    Aggregated metrics for one state within one property.
    """

    state: str
    users: int
    new_users: int
    active_users: int
    average_session_duration_per_user: float
    percentage_of_new_users: float = 0.0


@dataclass(frozen=True)
class PropertyReport:
    """
    Finished report for one property.

    Totals are computed over ``regions``, which holds the ranked top-N
    selection rather than every region returned upstream.
    """

    property_id: str
    property_name: str
    date_range: DateRange
    total_users: int
    total_new_users: int
    total_active_users: int
    total_average_session_duration_per_user: float
    total_percentage_of_new_users: float
    regions: tuple[RegionRecord, ...] = ()


@dataclass(frozen=True)
class PropertyError:
    """
    Failure for one property; never aborts sibling properties.
    """

    property_id: str
    message: str
    reason: str = REASON_UNEXPECTED


PropertyOutcome = Union[PropertyReport, PropertyError]
"""Exactly one outcome per requested property id."""


@dataclass(frozen=True)
class ReportResponse:
    """
    Reports in request order plus per-property errors in request order.
    """

    results: tuple[PropertyReport, ...] = ()
    errors: tuple[PropertyError, ...] = ()


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


@dataclass
class CancelToken:
    """
    Cancellation signal for one batch or one query.

    The token is cancelled when :meth:`cancel` is called or when the
    optional monotonic ``deadline`` passes, whichever comes first. Tokens
    made with :meth:`child` share the parent's stop signal and carry the
    earlier of the two deadlines.
    """

    deadline: float | None = None
    _event: threading.Event = field(default_factory=threading.Event, repr=False)

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancelToken":
        return cls(deadline=time.monotonic() + max(0.0, seconds))

    def child(self, seconds: float) -> "CancelToken":
        deadline = time.monotonic() + max(0.0, seconds)
        if self.deadline is not None:
            deadline = min(deadline, self.deadline)
        return CancelToken(deadline=deadline, _event=self._event)

    def cancel(self) -> None:
        self._event.set()

    @property
    def stopped(self) -> bool:
        """``True`` once :meth:`cancel` was called, ignoring the deadline."""
        return self._event.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def cancelled(self) -> bool:
        return self.stopped or self.expired

    def remaining(self) -> float | None:
        """Seconds left before the deadline (never negative), or ``None``."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """
        Sleep up to *seconds*, waking early on :meth:`cancel` or the deadline.

        Returns ``True`` when the token is cancelled by the time it wakes.
        """
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self._event.wait(seconds)
        return self.cancelled
