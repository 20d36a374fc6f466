"""
app/connectors/google_analytics_data_connector.py

Google Analytics 4 Data API connector (``properties/{id}:runReport``).

Fetches region rows for one property, following ``limit``/``offset`` paging,
and classifies failures into report error reasons.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import requests

from app.config import ExternalHTTPSettings, GoogleAnalyticsSettings
from app.connectors.base import BaseConnector, ConnectorRequestError
from reporting.base import (
    REASON_AUTH,
    REASON_CANCELLED,
    REASON_INVALID_PROPERTY,
    REASON_QUOTA,
    REASON_TIMEOUT,
    REASON_TRANSPORT,
    REASON_UNEXPECTED,
    REGION_DIMENSION,
    CancelToken,
    DateRange,
    QueryError,
    RawRow,
    SourceMedium,
)

logger = logging.getLogger(__name__)

SOURCE_FIELD = "sessionSource"
MEDIUM_FIELD = "sessionMedium"


def build_source_medium_filter(source_medium: SourceMedium) -> dict[str, Any]:
    """
    Build a GA4 ``FilterExpression`` matching source AND medium exactly.
    """

    return {
        "andGroup": {
            "expressions": [
                {
                    "filter": {
                        "fieldName": SOURCE_FIELD,
                        "stringFilter": {"matchType": "EXACT", "value": source_medium.source},
                    }
                },
                {
                    "filter": {
                        "fieldName": MEDIUM_FIELD,
                        "stringFilter": {"matchType": "EXACT", "value": source_medium.medium},
                    }
                },
            ]
        }
    }


def classify_connector_error(exc: ConnectorRequestError) -> str:
    """
    Map a connector failure onto a report error reason.
    """

    if exc.cancelled:
        return REASON_CANCELLED
    if exc.timed_out:
        return REASON_TIMEOUT
    status_code = exc.status_code
    if status_code is None or status_code >= 500:
        return REASON_TRANSPORT
    if status_code in {401, 403}:
        return REASON_AUTH
    if status_code == 429:
        return REASON_QUOTA
    if status_code in {400, 404}:
        return REASON_INVALID_PROPERTY
    return REASON_UNEXPECTED


class GoogleAnalyticsDataConnector(BaseConnector):
    """
    Connector for the GA4 Data API ``runReport`` method.

    The caller's OAuth access token is attached to every request; this class
    never stores it.
    """

    def __init__(
        self,
        *,
        settings: GoogleAnalyticsSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(source="google_analytics_data", http_settings=http_settings, session=session)
        self._settings = settings

    def fetch_region_rows(
        self,
        property_id: str,
        *,
        dimensions: Sequence[str],
        metrics: Sequence[str],
        source_medium: SourceMedium,
        date_range: DateRange,
        credential: str,
        timeout: float,
        cancel: CancelToken | None = None,
    ) -> list[RawRow]:
        """
        Return every region row for *property_id*, across pages.

        *timeout* bounds the whole fetch, retries and backoff included.
        *cancel* is checked before every page and every retry.

        Raises
        ------
        QueryError
            With reason ``auth``, ``quota``, ``invalid_property``,
            ``timeout``, ``transport``, or ``cancelled``.
        """

        url = f"{self._settings.data_api_base_url}/properties/{property_id}:runReport"
        token = cancel.child(timeout) if cancel is not None else CancelToken.with_timeout(timeout)
        body: dict[str, Any] = {
            "dimensions": [{"name": name} for name in dimensions],
            "metrics": [{"name": name} for name in metrics],
            "dateRanges": [date_range.as_api_dict()],
            "dimensionFilter": build_source_medium_filter(source_medium),
            "limit": str(self._settings.page_size),
        }

        rows: list[RawRow] = []
        offset = 0
        for page in range(self._settings.max_pages):
            if token.stopped:
                raise QueryError(REASON_CANCELLED, f"Query cancelled after {len(rows)} row(s).")
            if token.expired:
                raise QueryError(REASON_TIMEOUT, f"Query timed out after {timeout:g}s.")

            try:
                payload = self._request_json(
                    method="POST",
                    url=url,
                    headers=self.bearer_headers(credential),
                    json_body={**body, "offset": str(offset)},
                    cancel=token,
                )
            except ConnectorRequestError as exc:
                reason = classify_connector_error(exc)
                message = exc.detail or str(exc)
                raise QueryError(reason, message) from exc

            if not isinstance(payload, dict):
                raise QueryError(REASON_UNEXPECTED, "Unexpected runReport payload shape.")

            page_rows = self._parse_rows(payload, metrics)
            rows.extend(page_rows)
            row_count = _as_int(payload.get("rowCount"), default=len(rows))
            logger.debug(
                "runReport page property=%s page=%d rows=%d row_count=%d",
                property_id,
                page + 1,
                len(page_rows),
                row_count,
            )

            offset += self._settings.page_size
            if not page_rows or offset >= row_count:
                break
        else:
            logger.warning(
                "runReport page cap reached property=%s max_pages=%d rows=%d",
                property_id,
                self._settings.max_pages,
                len(rows),
            )

        logger.info("runReport completed property=%s rows=%d", property_id, len(rows))
        return rows

    @staticmethod
    def _parse_rows(payload: dict[str, Any], metrics: Sequence[str]) -> list[RawRow]:
        dimension_names = [header.get("name") for header in payload.get("dimensionHeaders") or []]
        metric_names = [header.get("name") for header in payload.get("metricHeaders") or []]
        region_index = dimension_names.index(REGION_DIMENSION) if REGION_DIMENSION in dimension_names else 0
        metric_indexes = [
            metric_names.index(name) if name in metric_names else position
            for position, name in enumerate(metrics)
        ]

        parsed: list[RawRow] = []
        for row in payload.get("rows") or []:
            dimension_values = [item.get("value", "") for item in row.get("dimensionValues") or []]
            metric_values = [item.get("value", "") for item in row.get("metricValues") or []]
            region = dimension_values[region_index] if region_index < len(dimension_values) else ""
            parsed.append(
                RawRow(
                    region=region,
                    metric_values=tuple(
                        metric_values[index] if index < len(metric_values) else ""
                        for index in metric_indexes
                    ),
                )
            )
        return parsed


def _as_int(value: Any, *, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
