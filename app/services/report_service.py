"""
app/services/report_service.py

Wires the Google Analytics connectors into the report engine.

    validate → orchestrate (fan-out) → compose

No HTTP concerns live here; the router maps exceptions to status codes.
"""

from __future__ import annotations

import logging
from datetime import date
from functools import lru_cache
from typing import Sequence

from app.config import (
    ReportEngineSettings,
    get_external_http_settings,
    get_google_analytics_settings,
    get_report_engine_settings,
)
from app.connectors import GoogleAnalyticsAdminConnector, GoogleAnalyticsDataConnector
from reporting.base import CancelToken, ReportResponse
from reporting.composer import compose_response
from reporting.csv_export import render_report_csv
from reporting.orchestrator import NameResolver, PropertyQuery, ReportOrchestrator
from reporting.validation import build_report_request

logger = logging.getLogger(__name__)


class ReportService:
    """
    Generates multi-property traffic reports for one caller credential.

    Parameters
    ----------
    query:
        External query collaborator, normally
        :meth:`GoogleAnalyticsDataConnector.fetch_region_rows`.
    name_resolver:
        Optional display-name lookup, normally
        :meth:`GoogleAnalyticsAdminConnector.get_display_name`.
    settings:
        Pool width, per-query timeout, and batch deadline.
    """

    def __init__(
        self,
        *,
        query: PropertyQuery,
        name_resolver: NameResolver | None,
        settings: ReportEngineSettings,
    ) -> None:
        self._settings = settings
        self._orchestrator = ReportOrchestrator(
            query,
            name_resolver=name_resolver,
            max_workers=settings.max_concurrent_queries,
            query_timeout_seconds=settings.query_timeout_seconds,
        )

    @property
    def settings(self) -> ReportEngineSettings:
        return self._settings

    def generate(
        self,
        *,
        property_ids: Sequence[str],
        source_medium_filter: str,
        top_states_count: int,
        start_date: date | str,
        end_date: date | str,
        credential: str,
        cancel: CancelToken | None = None,
    ) -> ReportResponse:
        """
        Validate the request, query every property, and compose the response.

        Raises
        ------
        ReportValidationError
            Malformed request; nothing was dispatched.
        ReportSystemError
            Cancellation or the query service being unreachable.
        """

        request = build_report_request(
            property_ids=property_ids,
            source_medium_filter=source_medium_filter,
            top_states_count=top_states_count,
            start_date=start_date,
            end_date=end_date,
        )
        outcomes = self._orchestrator.run(request, credential=credential, cancel=cancel)
        response = compose_response(request, outcomes)
        logger.info(
            "Report generated properties=%d results=%d errors=%d",
            len(request.property_ids),
            len(response.results),
            len(response.errors),
        )
        return response

    def generate_csv(
        self,
        *,
        property_ids: Sequence[str],
        source_medium_filter: str,
        top_states_count: int,
        start_date: date | str,
        end_date: date | str,
        credential: str,
        cancel: CancelToken | None = None,
    ) -> str:
        """
        Same as :meth:`generate`, rendered as CSV text.
        """

        return render_report_csv(
            self.generate(
                property_ids=property_ids,
                source_medium_filter=source_medium_filter,
                top_states_count=top_states_count,
                start_date=start_date,
                end_date=end_date,
                credential=credential,
                cancel=cancel,
            )
        )


@lru_cache(maxsize=1)
def get_report_service() -> ReportService:
    """
    Build and cache the report service from environment settings.
    """

    http_settings = get_external_http_settings()
    ga_settings = get_google_analytics_settings()
    data_connector = GoogleAnalyticsDataConnector(settings=ga_settings, http_settings=http_settings)
    admin_connector = GoogleAnalyticsAdminConnector(settings=ga_settings, http_settings=http_settings)
    return ReportService(
        query=data_connector.fetch_region_rows,
        name_resolver=admin_connector.get_display_name,
        settings=get_report_engine_settings(),
    )
