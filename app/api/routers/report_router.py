"""
app/api/routers/report_router.py

Multi-property traffic report endpoints.

POST /reports/traffic      → JSON: per-property reports plus per-property errors
POST /reports/traffic/csv  → streamed CSV download of the same report

Per-property failures are returned inside a 200 response. Whole-request
failures map to:

    ReportValidationError         → 400
    QueryServiceUnavailableError  → 503
    ReportCancelledError          → 504 (batch deadline exceeded)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from app.api.dependencies import get_bearer_credential
from app.schemas.report import (
    DurationResponse,
    PropertyErrorResponse,
    PropertyReportResponse,
    RegionRecordResponse,
    TrafficReportRequest,
    TrafficReportResponse,
)
from app.services.report_service import ReportService, get_report_service
from reporting.base import (
    CancelToken,
    PropertyError,
    PropertyReport,
    QueryServiceUnavailableError,
    ReportCancelledError,
    ReportResponse,
    ReportSystemError,
    ReportValidationError,
)
from reporting.composer import format_duration
from reporting.csv_export import iter_report_csv

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reports"])


@router.post(
    "/reports/traffic",
    response_model=TrafficReportResponse,
    status_code=status.HTTP_200_OK,
)
def generate_traffic_report(
    body: TrafficReportRequest,
    credential: str = Depends(get_bearer_credential),
    service: ReportService = Depends(get_report_service),
) -> TrafficReportResponse:
    """
    Generate a top-N regional traffic report for each requested property.
    """
    response = _run_report(body, credential, service)
    return TrafficReportResponse(
        results=[_to_report_response(report) for report in response.results],
        errors=[_to_error_response(error) for error in response.errors],
    )


@router.post("/reports/traffic/csv", summary="Download a traffic report as CSV")
def export_traffic_report_csv(
    body: TrafficReportRequest,
    credential: str = Depends(get_bearer_credential),
    service: ReportService = Depends(get_report_service),
) -> StreamingResponse:
    response = _run_report(body, credential, service)
    filename = f"analytics_report_{body.start_date}_{body.end_date}.csv"
    return StreamingResponse(
        content=iter_report_csv(response),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Result-Count": str(len(response.results)),
            "X-Error-Count": str(len(response.errors)),
        },
    )


def _run_report(body: TrafficReportRequest, credential: str, service: ReportService) -> ReportResponse:
    try:
        return service.generate(
            property_ids=body.property_ids,
            source_medium_filter=body.source_medium_filter,
            top_states_count=body.top_states_count,
            start_date=body.start_date,
            end_date=body.end_date,
            credential=credential,
            cancel=CancelToken.with_timeout(service.settings.batch_deadline_seconds),
        )
    except ReportValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Invalid report request.", "errors": exc.errors},
        ) from exc
    except QueryServiceUnavailableError as exc:
        logger.error("Analytics query service unavailable: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except ReportCancelledError as exc:
        logger.error("Report batch cancelled: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail=str(exc),
        ) from exc
    except ReportSystemError as exc:
        logger.exception("Report generation failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Report generation failed; see server logs for details.",
        ) from exc


def _to_report_response(report: PropertyReport) -> PropertyReportResponse:
    duration = format_duration(report.total_average_session_duration_per_user)
    return PropertyReportResponse(
        property_id=report.property_id,
        property_name=report.property_name,
        start_date=report.date_range.start_date.isoformat(),
        end_date=report.date_range.end_date.isoformat(),
        date_range=report.date_range.label(),
        total_users=report.total_users,
        total_new_users=report.total_new_users,
        total_active_users=report.total_active_users,
        total_average_session_duration_per_user=report.total_average_session_duration_per_user,
        total_percentage_of_new_users=report.total_percentage_of_new_users,
        average_session_duration=DurationResponse(
            minutes=duration.minutes,
            seconds=duration.seconds,
            label=duration.label(),
        ),
        regions=[
            RegionRecordResponse(
                state=region.state,
                users=region.users,
                new_users=region.new_users,
                active_users=region.active_users,
                average_session_duration_per_user=region.average_session_duration_per_user,
                percentage_of_new_users=region.percentage_of_new_users,
            )
            for region in report.regions
        ],
    )


def _to_error_response(error: PropertyError) -> PropertyErrorResponse:
    return PropertyErrorResponse(
        property_id=error.property_id,
        error_message=error.message,
        reason=error.reason,
    )
