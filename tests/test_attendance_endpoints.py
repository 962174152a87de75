from __future__ import annotations

import os
import unittest
from typing import Any, Mapping
from unittest.mock import patch

from fastapi.testclient import TestClient

from attendance_desk.errors import UpstreamError
from attendance_desk.main import app
from attendance_desk.models import UserContext
from attendance_desk.routers.attendance import get_session_registry
from attendance_desk.security import create_access_token, require_user
from attendance_desk.services.attendance import AttendanceSessionRegistry
from attendance_desk.services.upstream import DepartmentInfo
from attendance_desk.settings import get_settings


class _FakeSource:
    def __init__(self, rows: list[dict[str, Any]] | None = None, *, fail: bool = False):
        self.rows = rows or []
        self.fail = fail

    def fetch_latest(self, filters: Mapping[str, Any] | None = None) -> Any:
        if self.fail:
            raise UpstreamError("Upstream returned HTTP 503.", endpoint="latest", status_code=503)
        return {"content": list(self.rows)}

    def fetch_monthly(self, *, year: int, month: int, **_: Any) -> Any:
        if self.fail:
            raise UpstreamError("Upstream returned HTTP 503.", endpoint="monthly", status_code=503)
        prefix = f"{year:04d}-{month:02d}"
        return [row for row in self.rows if str(row.get("attendanceDate", "")).startswith(prefix)]

    def get_department_by_id(self, department_id: str) -> DepartmentInfo:
        return DepartmentInfo(department_id=department_id, name="E-Centric")


ROWS = [
    {
        "employeeId": "E1",
        "fullName": "Ayla Demir",
        "department": "All Departments>E-CENTRIC",
        "attendanceDate": "2025-01-06",
        "requiredCheckInTime": "09:00:00",
        "requiredCheckOutTime": "18:00:00",
        "actualCheckInTime": "09:20:00",
        "actualCheckOutTime": "18:00:00",
        "lateCheckInTime": "00:20:00",
        "totalDuration": "08:40:00",
    },
    {
        "employeeId": "E2",
        "fullName": "Baran Kaya",
        "department": "Finance",
        "attendanceDate": "2025-01-06",
        "actualCheckInTime": "08:50:00",
        "actualCheckOutTime": "18:00:00",
    },
]


class AttendanceEndpointTests(unittest.TestCase):
    def setUp(self) -> None:
        get_settings.cache_clear()
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        get_settings.cache_clear()

    def _use(self, user: UserContext | None, source: _FakeSource) -> None:
        registry = AttendanceSessionRegistry(lambda: source)
        app.dependency_overrides[get_session_registry] = lambda: registry
        if user is not None:
            app.dependency_overrides[require_user] = lambda: user

    def test_admin_lists_latest_records(self) -> None:
        self._use(UserContext(user_id="u1", role_name="Admin"), _FakeSource(ROWS))
        response = self.client.get("/api/attendance")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual([record["employee_id"] for record in body["records"]], ["E1", "E2"])
        self.assertEqual(body["records"][0]["status"], "Late")
        self.assertTrue(body["records"][0]["is_late"])
        self.assertEqual(body["records"][0]["attendance_date"], "2025-01-06")
        self.assertEqual(body["records"][0]["display_department"], "E-CENTRIC")
        self.assertIsNone(body["empty_reason"])
        self.assertEqual(body["generation"], 1)
        self.assertIn("X-Request-Id", response.headers)

    def test_manager_is_scoped_and_period_filter_applies(self) -> None:
        manager = UserContext(user_id="u2", role_name="Manager", manager_department_id="D7")
        self._use(manager, _FakeSource(ROWS))
        response = self.client.get("/api/attendance", params={"year": 2025, "month": 1})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual([record["employee_id"] for record in body["records"]], ["E1"])
        self.assertEqual(body["period"], {"year": 2025, "month": 1})

    def test_empty_period_returns_reason_and_message(self) -> None:
        self._use(UserContext(user_id="u1", role_name="HR"), _FakeSource(ROWS))
        response = self.client.get("/api/attendance", params={"year": 2024, "month": 2, "day": 29})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["records"], [])
        self.assertEqual(body["empty_reason"], "NO_DATA_FOR_PERIOD")
        self.assertEqual(body["message"], "No attendance data available for the selected period.")

    def test_manager_without_department_is_forbidden(self) -> None:
        self._use(UserContext(user_id="u2", role_name="Manager"), _FakeSource(ROWS))
        response = self.client.get("/api/attendance")

        self.assertEqual(response.status_code, 403)
        error = response.json()["error"]
        self.assertEqual(error["code"], "FORBIDDEN")
        self.assertEqual(error["message"], "Access restricted: No department assigned to your manager account.")

    def test_employee_search_is_forbidden(self) -> None:
        self._use(UserContext(user_id="u3", role_name="Employee", employee_id="E1"), _FakeSource(ROWS))
        response = self.client.get("/api/attendance", params={"search": "baran"})
        self.assertEqual(response.status_code, 403)

    def test_upstream_failure_maps_to_bad_gateway(self) -> None:
        self._use(UserContext(user_id="u1", role_name="Admin"), _FakeSource(fail=True))
        response = self.client.get("/api/attendance")

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["error"]["code"], "UPSTREAM_UNAVAILABLE")

    def test_invalid_date_filter_is_rejected(self) -> None:
        self._use(UserContext(user_id="u1", role_name="Admin"), _FakeSource(ROWS))
        missing_month = self.client.get("/api/attendance", params={"year": 2025})
        bad_day = self.client.get("/api/attendance", params={"year": 2025, "month": 2, "day": 30})
        bad_status = self.client.get("/api/attendance", params={"status": "Sleeping"})

        self.assertEqual(missing_month.status_code, 422)
        self.assertEqual(bad_day.status_code, 422)
        self.assertEqual(bad_status.status_code, 422)
        self.assertEqual(bad_day.json()["error"]["code"], "VALIDATION_ERROR")

    def test_access_endpoint_describes_scope(self) -> None:
        self._use(UserContext(user_id="u2", role_name="Manager", manager_department_id="D7"), _FakeSource())
        response = self.client.get("/api/attendance/access")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["role"], "MANAGER")
        self.assertEqual(body["scope"], "SingleDepartment")
        self.assertEqual(body["department_name"], "E-Centric")
        self.assertTrue(body["permissions"]["search"])
        self.assertFalse(body["permissions"]["view_all_branches"])

    def test_monthly_summary_endpoint(self) -> None:
        self._use(UserContext(user_id="u1", role_name="Admin"), _FakeSource(ROWS))
        response = self.client.get("/api/attendance/summary", params={"year": 2025, "month": 1})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["working_days"], 23)
        self.assertEqual([item["employee_id"] for item in body["employees"]], ["E1", "E2"])
        self.assertEqual(body["employees"][0]["totals"]["late_days"], 1)

    def test_missing_token_is_unauthorized(self) -> None:
        self._use(None, _FakeSource(ROWS))
        response = self.client.get("/api/attendance")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "INVALID_TOKEN")

    def test_bearer_token_resolves_user(self) -> None:
        self._use(None, _FakeSource(ROWS))
        with patch.dict(os.environ, {"JWT_SECRET": "endpoint-secret"}, clear=False):
            get_settings.cache_clear()
            token, _, _ = create_access_token(sub="u3", role="Employee", employee_id="E2")
            response = self.client.get(
                "/api/attendance",
                params={"year": 2025, "month": 1},
                headers={"Authorization": f"Bearer {token}"},
            )

        self.assertEqual(response.status_code, 200)
        self.assertEqual([record["employee_id"] for record in response.json()["records"]], ["E2"])

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")


if __name__ == "__main__":
    unittest.main()
