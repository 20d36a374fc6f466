"""
reporting/orchestrator.py

Fans one report request out to the external query collaborator, one query
per property, on a bounded thread pool.

Each property runs independently:

    Pending → InFlight → Succeeded | Failed

A failed property (auth, quota, unknown id, timeout, transport, or rows
that all fail to parse) becomes a :class:`PropertyError` and never affects
its siblings. Only two things fail the whole batch once dispatch has
started: caller cancellation and every query failing at the transport
layer.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Optional, Protocol, Sequence

import requests

from reporting.aggregation import aggregate_rows
from reporting.assembly import build_property_report
from reporting.base import (
    REASON_CANCELLED,
    REASON_NO_VALID_ROWS,
    REASON_TIMEOUT,
    REASON_TRANSPORT,
    REASON_UNEXPECTED,
    REPORT_DIMENSIONS,
    REPORT_METRICS,
    CancelToken,
    DateRange,
    NoValidRowsError,
    PropertyError,
    PropertyOutcome,
    QueryError,
    QueryServiceUnavailableError,
    RawRow,
    ReportCancelledError,
    ReportRequest,
    SourceMedium,
)
from reporting.logging_utils import log_event

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 5
DEFAULT_QUERY_TIMEOUT_SECONDS = 30.0
_POLL_SECONDS = 0.05


class PropertyQuery(Protocol):
    """
    External query collaborator: returns raw region rows for one property.

    Implementations raise :class:`QueryError` with a reason code on failure
    and should honour ``timeout`` and ``cancel`` for their own network
    calls: ``cancel`` carries the query deadline and is stopped when the
    batch is cancelled.
    """

    def __call__(
        self,
        property_id: str,
        *,
        dimensions: Sequence[str],
        metrics: Sequence[str],
        source_medium: SourceMedium,
        date_range: DateRange,
        credential: str,
        timeout: float,
        cancel: CancelToken,
    ) -> list[RawRow]:
        ...


NameResolver = Callable[[str, str], Optional[str]]
"""``(property_id, credential) -> display name``; ``None`` means unknown."""


class ReportOrchestrator:
    """
    Runs per-property queries with bounded parallelism and failure isolation.

    Parameters
    ----------
    query:
        The external query collaborator.
    name_resolver:
        Optional display-name lookup. Failures fall back to the property id.
    max_workers:
        Worker pool width; extra properties queue until a worker frees up.
    query_timeout_seconds:
        Per-query budget, counted from when a worker picks the property up.
        A query past it is recorded as a timeout without waiting for it.
    """

    def __init__(
        self,
        query: PropertyQuery,
        *,
        name_resolver: NameResolver | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        query_timeout_seconds: float = DEFAULT_QUERY_TIMEOUT_SECONDS,
    ) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}.")
        if query_timeout_seconds <= 0:
            raise ValueError(f"query_timeout_seconds must be positive, got {query_timeout_seconds}.")
        self._query = query
        self._name_resolver = name_resolver
        self._max_workers = max_workers
        self._query_timeout_seconds = query_timeout_seconds

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(
        self,
        request: ReportRequest,
        *,
        credential: str,
        cancel: CancelToken | None = None,
    ) -> list[PropertyOutcome]:
        """
        Query every property in *request* and return one outcome per id,
        in request order.

        A query still running when its own timeout passes is recorded as a
        ``timeout`` error right away; the batch does not wait for it.

        Raises
        ------
        ReportCancelledError
            When *cancel* fires before every property has finished. No
            partial outcomes are returned.
        QueryServiceUnavailableError
            When every property failed at the transport layer.
        """
        property_ids = request.property_ids
        slots: list[PropertyOutcome | None] = [None] * len(property_ids)
        query_tokens: list[CancelToken | None] = [None] * len(property_ids)
        stop = CancelToken()
        started = time.monotonic()

        log_event(
            logger,
            logging.INFO,
            "report_batch_started",
            properties=len(property_ids),
            max_workers=self._max_workers,
            source_medium=request.source_medium.label(),
            date_range=request.date_range.label(),
        )

        executor = ThreadPoolExecutor(
            max_workers=min(self._max_workers, max(1, len(property_ids))),
            thread_name_prefix="report-query",
        )
        try:
            futures: dict[Future[PropertyOutcome], int] = {
                executor.submit(
                    self._process_property, index, property_id, request, credential, stop, query_tokens
                ): index
                for index, property_id in enumerate(property_ids)
            }
            pending: set[Future[PropertyOutcome]] = set(futures)
            while pending:
                if cancel is not None and cancel.cancelled:
                    stop.cancel()
                    for future in pending:
                        future.cancel()
                    log_event(
                        logger,
                        logging.WARNING,
                        "report_batch_cancelled",
                        properties=len(property_ids),
                        unfinished=len(pending),
                    )
                    raise ReportCancelledError(
                        f"Report batch cancelled with {len(pending)} of "
                        f"{len(property_ids)} properties unfinished."
                    )
                done, pending = wait(
                    pending,
                    timeout=self._next_wakeup(pending, futures, query_tokens),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    slots[futures[future]] = future.result()
                for future in [f for f in pending if _expired(query_tokens[futures[f]])]:
                    pending.discard(future)
                    slots[futures[future]] = self._timeout(property_ids[futures[future]])
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        outcomes: list[PropertyOutcome] = [outcome for outcome in slots if outcome is not None]
        failures = [outcome for outcome in outcomes if isinstance(outcome, PropertyError)]

        log_event(
            logger,
            logging.INFO,
            "report_batch_completed",
            properties=len(property_ids),
            succeeded=len(outcomes) - len(failures),
            failed=len(failures),
            elapsed_seconds=round(time.monotonic() - started, 3),
        )

        if failures and len(failures) == len(property_ids) and all(
            failure.reason == REASON_TRANSPORT for failure in failures
        ):
            raise QueryServiceUnavailableError(
                f"Analytics query service unreachable for all {len(property_ids)} properties."
            )
        return outcomes

    @staticmethod
    def _next_wakeup(
        pending: set[Future[PropertyOutcome]],
        futures: dict[Future[PropertyOutcome], int],
        query_tokens: list[CancelToken | None],
    ) -> float:
        # Queued queries get their deadline when a worker picks them up, so
        # the loop never sleeps longer than one poll slice.
        wakeup = _POLL_SECONDS
        for future in pending:
            token = query_tokens[futures[future]]
            remaining = token.remaining() if token is not None else None
            if remaining is not None:
                wakeup = min(wakeup, remaining)
        return wakeup

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _process_property(
        self,
        index: int,
        property_id: str,
        request: ReportRequest,
        credential: str,
        stop: CancelToken,
        query_tokens: list[CancelToken | None],
    ) -> PropertyOutcome:
        if stop.stopped:
            return PropertyError(property_id, "Batch cancelled before the query started.", REASON_CANCELLED)
        token = stop.child(self._query_timeout_seconds)
        query_tokens[index] = token
        try:
            return self._build_outcome(property_id, request, credential, token)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected failure while building report property=%s", property_id)
            return self._failure(property_id, REASON_UNEXPECTED, f"{type(exc).__name__}: {exc}")

    def _build_outcome(
        self,
        property_id: str,
        request: ReportRequest,
        credential: str,
        token: CancelToken,
    ) -> PropertyOutcome:
        try:
            rows = self._query(
                property_id,
                dimensions=REPORT_DIMENSIONS,
                metrics=REPORT_METRICS,
                source_medium=request.source_medium,
                date_range=request.date_range,
                credential=credential,
                timeout=self._query_timeout_seconds,
                cancel=token,
            )
        except QueryError as exc:
            return self._failure(property_id, exc.reason, exc.message)
        except requests.ConnectionError as exc:
            return self._failure(property_id, REASON_TRANSPORT, f"Transport error: {exc}")
        except (requests.Timeout, TimeoutError):
            return self._timeout(property_id)
        except requests.RequestException as exc:
            return self._failure(property_id, REASON_TRANSPORT, f"Transport error: {exc}")

        if token.stopped:
            return PropertyError(property_id, "Batch cancelled while the query was running.", REASON_CANCELLED)
        if token.expired:
            return self._timeout(property_id)

        try:
            aggregation = aggregate_rows(rows, property_id=property_id)
        except NoValidRowsError as exc:
            return self._failure(property_id, REASON_NO_VALID_ROWS, str(exc))

        return build_property_report(
            property_id=property_id,
            property_name=self._resolve_name(property_id, credential, token),
            date_range=request.date_range,
            regions=aggregation.regions,
            top_states_count=request.top_states_count,
        )

    def _resolve_name(self, property_id: str, credential: str, token: CancelToken) -> str:
        if self._name_resolver is None or token.stopped:
            return property_id
        try:
            name = self._name_resolver(property_id, credential)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Could not resolve display name property=%s error=%s; using id instead.",
                property_id,
                exc,
            )
            return property_id
        return name or property_id

    def _timeout(self, property_id: str) -> PropertyError:
        return self._failure(
            property_id,
            REASON_TIMEOUT,
            f"Query timed out after {self._query_timeout_seconds:g}s.",
        )

    @staticmethod
    def _failure(property_id: str, reason: str, message: str) -> PropertyError:
        log_event(
            logger,
            logging.WARNING,
            "report_property_failed",
            property_id=property_id,
            reason=reason,
            error=message,
        )
        return PropertyError(property_id=property_id, message=message, reason=reason)


def _expired(token: CancelToken | None) -> bool:
    return token is not None and token.expired
