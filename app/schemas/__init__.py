"""
app/schemas package marker.
"""

from app.schemas.report import (
    DurationResponse,
    PropertyErrorResponse,
    PropertyReportResponse,
    RegionRecordResponse,
    TrafficReportRequest,
    TrafficReportResponse,
)

__all__ = [
    "DurationResponse",
    "PropertyErrorResponse",
    "PropertyReportResponse",
    "RegionRecordResponse",
    "TrafficReportRequest",
    "TrafficReportResponse",
]
