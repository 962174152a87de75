#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
from datetime import date, datetime, timezone
from typing import Any

from attendance_desk.errors import UpstreamError
from attendance_desk.models import Period
from attendance_desk.services.normalizer import GroupedPayload, normalize_payload, resolve_payload
from attendance_desk.services.upstream import HttpAttendanceClient
from attendance_desk.settings import get_upstream_base_url


def _payload_check(raw: Any) -> tuple[str, dict[str, Any]]:
    payload = resolve_payload(raw)
    batch = normalize_payload(payload)
    details = {
        "shape": "grouped" if isinstance(payload, GroupedPayload) else "flat",
        "rows": batch.total,
        "normalized": len(batch.records),
        "dropped": batch.dropped,
    }
    if batch.total == 0:
        return "warn", details
    return ("warn" if batch.dropped else "ok"), details


def run(department_id: str | None = None) -> dict:
    client = HttpAttendanceClient()
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "upstream_base_url": get_upstream_base_url(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    try:
        try:
            status, details = _payload_check(client.fetch_latest())
            add("latest_attendance", status, details)
        except UpstreamError as exc:
            add("latest_attendance", "fail", {"error": exc.message, "status_code": exc.status_code})

        period = Period.of(date.today()).previous()
        try:
            status, details = _payload_check(client.fetch_monthly(year=period.year, month=period.month))
            add("monthly_attendance", status, {"year": period.year, "month": period.month, **details})
        except UpstreamError as exc:
            add("monthly_attendance", "fail", {"error": exc.message, "status_code": exc.status_code})

        if department_id:
            try:
                info = client.get_department_by_id(department_id)
                add("department_lookup", "ok", {"department_id": department_id, "name": info.name, "code": info.code})
            except UpstreamError as exc:
                add("department_lookup", "fail", {"department_id": department_id, "error": exc.message})
    finally:
        client.close()

    return report


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Check the HR attendance API used by attendance-desk.")
    parser.add_argument("--department-id", default=None)
    args = parser.parse_args()
    print(json.dumps(run(args.department_id), ensure_ascii=False, indent=2))
