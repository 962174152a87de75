from __future__ import annotations

import unittest
from unittest.mock import MagicMock

import requests

from attendance_desk.errors import UpstreamError
from attendance_desk.services.upstream import (
    DEPARTMENT_PATH,
    LATEST_PATH,
    MONTHLY_PATH,
    HttpAttendanceClient,
    parse_department,
)
from attendance_desk.settings import get_settings


def _session(status_code: int = 200, payload: object = None) -> MagicMock:
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else []
    session.get.return_value = response
    return session


class UpstreamClientTests(unittest.TestCase):
    def setUp(self) -> None:
        get_settings.cache_clear()

    def tearDown(self) -> None:
        get_settings.cache_clear()

    def _client(self, session: MagicMock) -> HttpAttendanceClient:
        return HttpAttendanceClient(
            base_url="http://hr.example.test/",
            token="svc-token",
            timeout_seconds=5,
            page_size=50,
            session=session,
        )

    def test_sets_auth_header(self) -> None:
        session = _session()
        self._client(session)
        self.assertEqual(session.headers["Authorization"], "Bearer svc-token")
        self.assertEqual(session.headers["Accept"], "application/json")

    def test_fetch_latest_sends_paging_and_filters(self) -> None:
        session = _session(payload={"content": []})
        result = self._client(session).fetch_latest({"branchId": "B1"})

        self.assertEqual(result, {"content": []})
        session.get.assert_called_once_with(
            f"http://hr.example.test{LATEST_PATH}",
            params={"page": 0, "size": 50, "branchId": "B1"},
            timeout=5,
        )

    def test_fetch_monthly_drops_empty_params(self) -> None:
        session = _session()
        self._client(session).fetch_monthly(year=2025, month=1, employee_id="E1")
        _, kwargs = session.get.call_args
        self.assertEqual(session.get.call_args.args[0], f"http://hr.example.test{MONTHLY_PATH}")
        self.assertEqual(kwargs["params"], {"year": 2025, "month": 1, "employeeId": "E1", "page": 0, "size": 50})

    def test_warns_when_total_exceeds_page_size(self) -> None:
        session = _session(payload={"content": [], "totalElements": 120})
        with self.assertLogs("attendance_desk.upstream", level="WARNING") as logs:
            self._client(session).fetch_latest()
        truncated = [record for record in logs.records if record.getMessage() == "upstream_page_truncated"]
        self.assertEqual(len(truncated), 1)
        self.assertEqual(truncated[0].total_elements, 120)
        self.assertEqual(truncated[0].page_size, 50)
        self.assertEqual(truncated[0].path, LATEST_PATH)

    def test_no_truncation_warning_within_one_page(self) -> None:
        session = _session(payload={"content": [], "totalElements": 50})
        with self.assertNoLogs("attendance_desk.upstream", level="WARNING"):
            self._client(session).fetch_monthly(year=2025, month=1)

    def test_transport_error_becomes_upstream_error(self) -> None:
        session = _session()
        session.get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(UpstreamError) as ctx:
            self._client(session).fetch_latest()
        self.assertEqual(ctx.exception.endpoint, LATEST_PATH)

    def test_http_error_status_becomes_upstream_error(self) -> None:
        session = _session(status_code=503)
        with self.assertRaises(UpstreamError) as ctx:
            self._client(session).fetch_monthly(year=2025, month=1)
        self.assertEqual(ctx.exception.status_code, 503)

    def test_invalid_json_becomes_upstream_error(self) -> None:
        session = _session()
        session.get.return_value.json.side_effect = ValueError("no json")
        with self.assertRaises(UpstreamError):
            self._client(session).fetch_latest()

    def test_get_department_by_id_unwraps_envelope(self) -> None:
        session = _session(payload={"success": True, "data": {"dept_name": "E-Centric", "dept_code": "EC"}})
        info = self._client(session).get_department_by_id("D7")
        self.assertEqual((info.department_id, info.name, info.code), ("D7", "E-Centric", "EC"))
        self.assertEqual(session.get.call_args.args[0], "http://hr.example.test" + DEPARTMENT_PATH.format(department_id="D7"))

    def test_parse_department_accepts_plain_object(self) -> None:
        info = parse_department("D1", {"name": "Finance"})
        self.assertEqual(info.name, "Finance")
        self.assertIsNone(info.code)
        with self.assertRaises(UpstreamError):
            parse_department("D1", {"success": True, "data": {}})


if __name__ == "__main__":
    unittest.main()
