from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

import requests

from attendance_desk.errors import UpstreamError
from attendance_desk.settings import get_settings, get_upstream_base_url

logger = logging.getLogger("attendance_desk.upstream")

LATEST_PATH = "/api/v1/employee-attendance/latest"
MONTHLY_PATH = "/api/v1/employee-attendance/monthly-grouped"
DEPARTMENT_PATH = "/api/v1/departments/{department_id}"


@dataclass(frozen=True)
class DepartmentInfo:
    department_id: str
    name: str
    code: str | None = None


class AttendanceDataSource(Protocol):
    def fetch_latest(self, filters: Mapping[str, Any] | None = None) -> Any:
        raise NotImplementedError

    def fetch_monthly(
        self,
        *,
        year: int,
        month: int,
        employee_id: str | None = None,
        department_id: str | None = None,
        branch_id: str | None = None,
        day: int | None = None,
    ) -> Any:
        raise NotImplementedError

    def get_department_by_id(self, department_id: str) -> DepartmentInfo:
        raise NotImplementedError


def parse_department(department_id: str, payload: Any) -> DepartmentInfo:
    body = payload
    if isinstance(payload, Mapping) and isinstance(payload.get("data"), Mapping):
        body = payload["data"]
    if not isinstance(body, Mapping):
        raise UpstreamError("Department response is not an object.", endpoint=DEPARTMENT_PATH)

    name = str(body.get("dept_name") or body.get("name") or "").strip()
    if not name:
        raise UpstreamError("Department response has no name.", endpoint=DEPARTMENT_PATH)
    code = str(body.get("dept_code") or body.get("code") or "").strip() or None
    return DepartmentInfo(department_id=department_id, name=name, code=code)


class HttpAttendanceClient:
    """Blocking client for the HR attendance API.

    Calls are synchronous; the service layer runs them with ``asyncio.to_thread``.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        token: str | None = None,
        timeout_seconds: float | None = None,
        page_size: int | None = None,
        session: requests.Session | None = None,
    ):
        settings = get_settings()
        self._base_url = (base_url or get_upstream_base_url()).rstrip("/")
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.upstream_timeout_seconds
        self._page_size = page_size or settings.upstream_page_size
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json", "Content-Type": "application/json"})
        api_token = token if token is not None else settings.upstream_api_token
        if api_token:
            self._session.headers["Authorization"] = f"Bearer {api_token}"

    def close(self) -> None:
        self._session.close()

    def _get(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        url = f"{self._base_url}{path}"
        clean_params = {key: value for key, value in (params or {}).items() if value not in (None, "")}
        start = time.perf_counter()
        try:
            response = self._session.get(url, params=clean_params, timeout=self._timeout)
        except requests.RequestException as exc:
            logger.warning("upstream_request_failed", extra={"path": path, "error": str(exc)})
            raise UpstreamError("Upstream request failed.", endpoint=path) from exc

        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.info(
            "upstream_request_complete",
            extra={"path": path, "status_code": response.status_code, "latency_ms": latency_ms},
        )
        if response.status_code >= 400:
            raise UpstreamError(
                f"Upstream returned HTTP {response.status_code}.",
                endpoint=path,
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError("Upstream returned invalid JSON.", endpoint=path) from exc

    def _warn_if_truncated(self, path: str, payload: Any) -> None:
        # Only the first page is requested.
        if not isinstance(payload, Mapping):
            return
        total = payload.get("totalElements")
        if isinstance(total, int) and not isinstance(total, bool) and total > self._page_size:
            logger.warning(
                "upstream_page_truncated",
                extra={"path": path, "total_elements": total, "page_size": self._page_size},
            )

    def fetch_latest(self, filters: Mapping[str, Any] | None = None) -> Any:
        params: dict[str, Any] = {"page": 0, "size": self._page_size}
        for key, value in (filters or {}).items():
            params[key] = value
        payload = self._get(LATEST_PATH, params)
        self._warn_if_truncated(LATEST_PATH, payload)
        return payload

    def fetch_monthly(
        self,
        *,
        year: int,
        month: int,
        employee_id: str | None = None,
        department_id: str | None = None,
        branch_id: str | None = None,
        day: int | None = None,
    ) -> Any:
        params = {
            "year": year,
            "month": month,
            "day": day,
            "employeeId": employee_id,
            "departmentId": department_id,
            "branchId": branch_id,
            "page": 0,
            "size": self._page_size,
        }
        payload = self._get(MONTHLY_PATH, params)
        self._warn_if_truncated(MONTHLY_PATH, payload)
        return payload

    def get_department_by_id(self, department_id: str) -> DepartmentInfo:
        payload = self._get(DEPARTMENT_PATH.format(department_id=department_id))
        return parse_department(department_id, payload)
