from __future__ import annotations

import asyncio
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Callable, Sequence

from attendance_desk.errors import AccessDeniedError, RequestSupersededError, UpstreamError
from attendance_desk.models import (
    AccessDecision,
    AttendanceRecord,
    AttendanceResult,
    AttendanceStatus,
    DateFilter,
    Denied,
    DepartmentScope,
    EmptyReason,
    Period,
    Role,
    SingleDepartment,
    SingleEmployee,
    UserContext,
)
from attendance_desk.services.access import resolve_access
from attendance_desk.services.departments import UNASSIGNED_DEPARTMENT
from attendance_desk.services.fallback import search_latest_period
from attendance_desk.services.monthly import MonthlySummary, build_monthly_summary
from attendance_desk.services.normalizer import normalize_payload, resolve_payload
from attendance_desk.services.reconciler import (
    filter_by_search,
    filter_by_status,
    reconcile_records,
    with_display_departments,
)
from attendance_desk.services.upstream import AttendanceDataSource
from attendance_desk.settings import get_settings

logger = logging.getLogger("attendance_desk.attendance")


@dataclass(frozen=True)
class AttendanceQuery:
    date_filter: DateFilter | None = None
    status: AttendanceStatus | None = None
    search: str | None = None
    branch_id: str | None = None


class ResultGeneration:
    """Monotonic request counter; only the newest generation may publish results."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def advance(self) -> int:
        with self._lock:
            self._current += 1
            return self._current

    def ensure_current(self, generation: int) -> None:
        if generation != self._current:
            raise RequestSupersededError(generation, self._current)


def empty_message(reason: EmptyReason, *, role: Role, scope: DepartmentScope) -> str:
    department_name = scope.department_name if isinstance(scope, SingleDepartment) else None
    department_label = department_name or "your"
    if reason == EmptyReason.NO_RECENT_DATA:
        months = get_settings().fallback_search_months
        return f"No attendance data found for your account in the last {months} months."
    if reason == EmptyReason.NO_DEPARTMENT_ASSIGNMENT:
        return f"No employees assigned to {department_label} department have attendance records."
    if reason == EmptyReason.NO_MATCHES:
        if role == Role.MANAGER:
            return f"No employees found in {department_label} department matching your search criteria."
        return "No employees found matching your search criteria."
    if reason == EmptyReason.NO_DATA_FOR_PERIOD:
        if role == Role.EMPLOYEE:
            return "No attendance data available for your account for the selected period."
        if role == Role.MANAGER:
            return f"No attendance data available for {department_label} department for the selected period."
        return "No attendance data available for the selected period."
    return "No employee records found."


class AttendanceService:
    """Attendance screen state for one authenticated user.

    Holds the resolved access decision and the generation counter. Every call to
    ``get_attendance`` supersedes the previous one; a superseded call raises
    ``RequestSupersededError`` instead of publishing its result.
    """

    def __init__(
        self,
        user: UserContext | None,
        source: AttendanceDataSource,
        *,
        today: Callable[[], date] | None = None,
    ):
        self._user = user
        self._source = source
        self._today = today or date.today
        self._decision: AccessDecision = resolve_access(user)
        self._scope: DepartmentScope = self._decision.scope
        self._generation = ResultGeneration()
        self._last_result: AttendanceResult | None = None

    @property
    def user(self) -> UserContext | None:
        return self._user

    @property
    def decision(self) -> AccessDecision:
        return self._decision

    @property
    def scope(self) -> DepartmentScope:
        return self._scope

    @property
    def last_result(self) -> AttendanceResult | None:
        return self._last_result

    @property
    def generation(self) -> int:
        return self._generation.current

    def check_query(self, query: AttendanceQuery) -> None:
        permissions = self._decision.permissions
        if isinstance(self._scope, Denied):
            raise AccessDeniedError(self._scope.reason)
        if query.date_filter is not None and not permissions.filter_by_date:
            raise AccessDeniedError("Filtering by date is not permitted for your role.")
        if query.status is not None and not permissions.filter_by_status:
            raise AccessDeniedError("Filtering by status is not permitted for your role.")
        if query.search and query.search.strip() and not permissions.search:
            raise AccessDeniedError("Searching attendance records is not permitted for your role.")
        if query.branch_id and not permissions.view_all_branches:
            raise AccessDeniedError("Selecting a branch is not permitted for your role.")

    async def resolve_scope(self) -> DepartmentScope:
        scope = self._scope
        if isinstance(scope, SingleDepartment) and not scope.department_name:
            info = await asyncio.to_thread(self._source.get_department_by_id, scope.department_id)
            scope = replace(scope, department_name=info.name, department_code=info.code)
            self._scope = scope
            logger.info(
                "manager_department_resolved",
                extra={"department_id": scope.department_id, "department_name": info.name},
            )
        return scope

    async def _lookup_department_names(self, records: Sequence[AttendanceRecord]) -> dict[str, str]:
        department_ids = sorted(
            {
                record.department_id
                for record in records
                if record.department_id and record.display_department == UNASSIGNED_DEPARTMENT
            }
        )
        if not department_ids:
            return {}

        results = await asyncio.gather(
            *(asyncio.to_thread(self._source.get_department_by_id, department_id) for department_id in department_ids),
            return_exceptions=True,
        )
        names: dict[str, str] = {}
        for department_id, result in zip(department_ids, results):
            if isinstance(result, UpstreamError):
                logger.warning(
                    "department_lookup_failed",
                    extra={"department_id": department_id, "error": result.message},
                )
                continue
            if isinstance(result, BaseException):
                raise result
            names[department_id] = result.name
        return names

    def _fetch(self, scope: DepartmentScope, query: AttendanceQuery) -> Any:
        date_filter = query.date_filter
        employee_id = scope.employee_id if isinstance(scope, SingleEmployee) else None
        if date_filter is not None:
            return self._source.fetch_monthly(
                year=date_filter.year,
                month=date_filter.month,
                day=date_filter.day,
                employee_id=employee_id,
                branch_id=query.branch_id,
            )
        filters: dict[str, Any] = {}
        if query.branch_id:
            filters["branchId"] = query.branch_id
        return self._source.fetch_latest(filters)

    async def _load_records(
        self,
        scope: DepartmentScope,
        query: AttendanceQuery,
        generation: int,
    ) -> tuple[list[AttendanceRecord], int]:
        raw = await asyncio.to_thread(self._fetch, scope, query)
        self._generation.ensure_current(generation)
        batch = normalize_payload(resolve_payload(raw))
        department_names = await self._lookup_department_names(batch.records)
        self._generation.ensure_current(generation)
        return with_display_departments(batch.records, department_names), batch.dropped

    async def get_attendance(self, query: AttendanceQuery | None = None) -> AttendanceResult:
        query = query or AttendanceQuery()
        generation = self._generation.advance()
        self.check_query(query)
        scope = await self.resolve_scope()
        self._generation.ensure_current(generation)

        if isinstance(scope, SingleEmployee) and query.date_filter is None:
            outcome = await search_latest_period(
                self._source,
                employee_id=scope.employee_id,
                today=self._today(),
                check_current=lambda: self._generation.ensure_current(generation),
            )
            result = AttendanceResult(
                records=outcome.records,
                empty_reason=EmptyReason.NO_RECENT_DATA if outcome.exhausted else None,
                period=outcome.period,
                dropped_records=outcome.dropped,
                failed_months=outcome.failed_months,
            )
        else:
            records, dropped = await self._load_records(scope, query, generation)
            outcome = reconcile_records(records, scope=scope, date_filter=query.date_filter, dropped=dropped)
            period = None
            if query.date_filter is not None:
                period = Period(year=query.date_filter.year, month=query.date_filter.month)
            result = AttendanceResult(
                records=outcome.records,
                empty_reason=outcome.empty_reason,
                period=period,
                dropped_records=dropped,
            )

        result = self._apply_filters(result, query)
        if result.empty_reason is not None:
            result.message = empty_message(result.empty_reason, role=self._decision.role, scope=scope)
        result.generation = generation

        self._generation.ensure_current(generation)
        self._last_result = result
        logger.info(
            "attendance_result_ready",
            extra={
                "user_id": self._user.user_id if self._user else None,
                "role": self._decision.role.value,
                "generation": generation,
                "records": len(result.records),
                "empty_reason": result.empty_reason.value if result.empty_reason else None,
                "dropped_records": result.dropped_records,
                "failed_months": result.failed_months,
            },
        )
        return result

    def _apply_filters(self, result: AttendanceResult, query: AttendanceQuery) -> AttendanceResult:
        records = result.records
        if query.status is not None:
            records = filter_by_status(records, query.status)
        if query.search and query.search.strip():
            records = filter_by_search(records, query.search)
        if result.records and not records:
            result.empty_reason = EmptyReason.NO_MATCHES
        result.records = records
        return result

    async def get_monthly_summary(self, *, year: int, month: int) -> MonthlySummary:
        date_filter = DateFilter(year=year, month=month)
        query = AttendanceQuery(date_filter=date_filter)
        self.check_query(query)
        scope = await self.resolve_scope()
        raw = await asyncio.to_thread(self._fetch, scope, query)
        batch = normalize_payload(resolve_payload(raw))
        outcome = reconcile_records(batch.records, scope=scope, date_filter=date_filter, dropped=batch.dropped)
        return build_monthly_summary(outcome.records, year=year, month=month)


class AttendanceSessionRegistry:
    """One ``AttendanceService`` per user, rebuilt whenever the identity changes.

    Holds at most ``max_sessions`` services; the least recently used one is evicted first.
    """

    def __init__(self, source_factory: Callable[[], AttendanceDataSource], max_sessions: int | None = None):
        self._source_factory = source_factory
        self._max_sessions = max(1, max_sessions if max_sessions is not None else get_settings().max_sessions)
        self._lock = threading.Lock()
        self._sessions: OrderedDict[str, AttendanceService] = OrderedDict()

    def get(self, user: UserContext) -> AttendanceService:
        with self._lock:
            service = self._sessions.get(user.user_id)
            if service is None or service.user != user:
                service = AttendanceService(user, self._source_factory())
                self._sessions[user.user_id] = service
            self._sessions.move_to_end(user.user_id)
            while len(self._sessions) > self._max_sessions:
                evicted_id, _ = self._sessions.popitem(last=False)
                logger.info(
                    "attendance_session_evicted",
                    extra={"evicted_user_id": evicted_id, "max_sessions": self._max_sessions},
                )
            return service

    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
