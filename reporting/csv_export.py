"""
reporting/csv_export.py

Flat tabular rendering of a :class:`ReportResponse` for CSV hand-off
(email attachments, spreadsheet import).

Layout: one ``Total`` row per property followed by its ranked region rows,
then one row per failed property with the error in the ``Region`` column.
Column order is fixed so identical responses render byte-identical CSV.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from typing import Any, Final, Iterator

from reporting.base import PropertyReport, ReportResponse

TOTAL_ROW_LABEL: Final[str] = "Total"

CSV_FIELDS: Final[tuple[str, ...]] = (
    "Property ID",
    "Property Name",
    "Date Range",
    "Region",
    "Total Users",
    "New Users",
    "Active Users",
    "Average Session Duration Per User",
    "% New Users",
)


@dataclass
class ReportTable:
    """
    Flat rows ready for CSV serialisation.

    Attributes
    ----------
    rows:   One dict per CSV line, keyed by :data:`CSV_FIELDS`.
    fields: Ordered column names.
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    fields: list[str] = field(default_factory=lambda: list(CSV_FIELDS))


def _property_rows(report: PropertyReport) -> list[dict[str, Any]]:
    base = {
        "Property ID": report.property_id,
        "Property Name": report.property_name,
        "Date Range": report.date_range.label(),
    }
    rows = [
        {
            **base,
            "Region": TOTAL_ROW_LABEL,
            "Total Users": report.total_users,
            "New Users": report.total_new_users,
            "Active Users": report.total_active_users,
            "Average Session Duration Per User": f"{report.total_average_session_duration_per_user:.2f}",
            "% New Users": f"{report.total_percentage_of_new_users:.2f}",
        }
    ]
    for region in report.regions:
        rows.append(
            {
                **base,
                "Region": region.state,
                "Total Users": region.users,
                "New Users": region.new_users,
                "Active Users": region.active_users,
                "Average Session Duration Per User": f"{region.average_session_duration_per_user:.2f}",
                "% New Users": f"{region.percentage_of_new_users:.2f}",
            }
        )
    return rows


def flatten_response(response: ReportResponse) -> ReportTable:
    """Flatten reports and errors into a :class:`ReportTable`."""
    table = ReportTable()
    for report in response.results:
        table.rows.extend(_property_rows(report))
    for error in response.errors:
        table.rows.append(
            {
                "Property ID": error.property_id,
                "Property Name": error.property_id,
                "Region": f"ERROR: {error.message}",
            }
        )
    return table


def iter_report_csv(response: ReportResponse) -> Iterator[str]:
    """Yield *response* as CSV text, header first, one chunk per row."""
    table = flatten_response(response)
    buf = io.StringIO()
    writer = csv.DictWriter(
        buf,
        fieldnames=table.fields,
        extrasaction="ignore",
        restval="",
        lineterminator="\r\n",
    )
    writer.writeheader()
    yield buf.getvalue()

    for row in table.rows:
        buf.seek(0)
        buf.truncate(0)
        writer.writerow(row)
        yield buf.getvalue()


def render_report_csv(response: ReportResponse) -> str:
    """Render *response* as RFC 4180 CSV text with a header row."""
    return "".join(iter_report_csv(response))
