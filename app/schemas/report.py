"""
app/schemas/report.py

Request and response schemas for traffic report endpoints.

Field-level range checks (id format, counts, date order) are performed by
``reporting.validation`` so every violation is reported together with a
400 status; the schemas here only fix the JSON shape.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class TrafficReportRequest(BaseModel):
    property_ids: list[str] = Field(..., description="GA4 property ids (1-50, numeric).")
    source_medium_filter: str = Field(..., description="Filter in the form 'source / medium'.")
    top_states_count: int = Field(default=10, description="Number of top regions per property (1-100).")
    start_date: str = Field(..., description="Inclusive start date (YYYY-MM-DD).")
    end_date: str = Field(..., description="Inclusive end date (YYYY-MM-DD).")


class DurationResponse(BaseModel):
    minutes: int = Field(..., ge=0)
    seconds: int = Field(..., ge=0, le=59)
    label: str


class RegionRecordResponse(BaseModel):
    state: str
    users: int = Field(..., ge=0)
    new_users: int = Field(..., ge=0)
    active_users: int = Field(..., ge=0)
    average_session_duration_per_user: float = Field(..., ge=0)
    percentage_of_new_users: float = Field(..., ge=0, le=100)


class PropertyReportResponse(BaseModel):
    property_id: str
    property_name: str
    start_date: str
    end_date: str
    date_range: str
    total_users: int = Field(..., ge=0)
    total_new_users: int = Field(..., ge=0)
    total_active_users: int = Field(..., ge=0)
    total_average_session_duration_per_user: float = Field(..., ge=0)
    total_percentage_of_new_users: float = Field(..., ge=0, le=100)
    average_session_duration: DurationResponse
    regions: list[RegionRecordResponse] = Field(default_factory=list)


class PropertyErrorResponse(BaseModel):
    property_id: str
    error_message: str
    reason: str


class TrafficReportResponse(BaseModel):
    results: list[PropertyReportResponse] = Field(default_factory=list)
    errors: list[PropertyErrorResponse] = Field(default_factory=list)
