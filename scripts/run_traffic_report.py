"""
Run a multi-property traffic report from CLI.
"""

from __future__ import annotations

import argparse
import json
import os
import sys

from app.config import load_env_files
from app.services.report_service import get_report_service
from reporting.base import CancelToken, ReportError, ReportValidationError
from reporting.composer import format_duration


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a regional traffic report for GA4 properties.")
    parser.add_argument("property_ids", nargs="+", help="GA4 property ids.")
    parser.add_argument("--filter", dest="source_medium", required=True, help="Filter as 'source / medium'.")
    parser.add_argument("--start-date", dest="start_date", required=True, help="YYYY-MM-DD")
    parser.add_argument("--end-date", dest="end_date", required=True, help="YYYY-MM-DD")
    parser.add_argument("--top", dest="top_states_count", type=int, default=10, help="Regions per property.")
    parser.add_argument(
        "--token",
        dest="token",
        default=None,
        help="OAuth access token. Defaults to GA_ACCESS_TOKEN.",
    )
    parser.add_argument("--csv", dest="as_csv", action="store_true", help="Print CSV instead of JSON.")
    args = parser.parse_args()

    load_env_files()
    token = (args.token or os.getenv("GA_ACCESS_TOKEN", "")).strip()
    if not token:
        print("An access token is required (--token or GA_ACCESS_TOKEN).", file=sys.stderr)
        return 2

    service = get_report_service()
    kwargs = dict(
        property_ids=args.property_ids,
        source_medium_filter=args.source_medium,
        top_states_count=args.top_states_count,
        start_date=args.start_date,
        end_date=args.end_date,
        credential=token,
        cancel=CancelToken.with_timeout(service.settings.batch_deadline_seconds),
    )

    try:
        if args.as_csv:
            sys.stdout.write(service.generate_csv(**kwargs))
            return 0
        response = service.generate(**kwargs)
    except ReportValidationError as exc:
        for error in exc.errors:
            print(error, file=sys.stderr)
        return 2
    except ReportError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    payload = {
        "results": [
            {
                "property_id": report.property_id,
                "property_name": report.property_name,
                "date_range": report.date_range.label(),
                "total_users": report.total_users,
                "total_new_users": report.total_new_users,
                "total_active_users": report.total_active_users,
                "total_percentage_of_new_users": round(report.total_percentage_of_new_users, 2),
                "average_session_duration": format_duration(
                    report.total_average_session_duration_per_user
                ).label(),
                "regions": [
                    {
                        "state": region.state,
                        "users": region.users,
                        "new_users": region.new_users,
                        "active_users": region.active_users,
                        "percentage_of_new_users": round(region.percentage_of_new_users, 2),
                    }
                    for region in report.regions
                ],
            }
            for report in response.results
        ],
        "errors": [
            {"property_id": error.property_id, "reason": error.reason, "error_message": error.message}
            for error in response.errors
        ],
    }
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
