from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from attendance_desk.errors import ApiError
from attendance_desk.models import (
    AttendanceStatus,
    DateFilter,
    Denied,
    SingleDepartment,
    SingleEmployee,
    UserContext,
)
from attendance_desk.schemas import AccessRead, AttendanceResponse, MonthlySummaryRead, PermissionSetRead
from attendance_desk.security import require_user
from attendance_desk.services.attendance import (
    AttendanceQuery,
    AttendanceService,
    AttendanceSessionRegistry,
)

router = APIRouter(prefix="/api/attendance", tags=["attendance"])


def get_session_registry(request: Request) -> AttendanceSessionRegistry:
    registry: AttendanceSessionRegistry | None = getattr(request.app.state, "session_registry", None)
    if registry is None:
        raise ApiError(status_code=503, code="UPSTREAM_UNAVAILABLE", message="Attendance service is not ready.")
    return registry


def get_attendance_service(
    request: Request,
    user: UserContext = Depends(require_user),
    registry: AttendanceSessionRegistry = Depends(get_session_registry),
) -> AttendanceService:
    request.state.employee_id = user.employee_id
    return registry.get(user)


def _date_filter(year: int | None, month: int | None, day: int | None) -> DateFilter | None:
    if year is None and month is None and day is None:
        return None
    if year is None or month is None:
        raise ApiError(
            status_code=422,
            code="VALIDATION_ERROR",
            message="Both year and month are required when filtering by date.",
        )
    try:
        return DateFilter(year=year, month=month, day=day)
    except ValueError as exc:
        raise ApiError(status_code=422, code="VALIDATION_ERROR", message=str(exc)) from exc


@router.get("", response_model=AttendanceResponse)
async def list_attendance(
    year: int | None = Query(default=None),
    month: int | None = Query(default=None),
    day: int | None = Query(default=None),
    status: AttendanceStatus | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    branch_id: str | None = Query(default=None),
    service: AttendanceService = Depends(get_attendance_service),
) -> AttendanceResponse:
    query = AttendanceQuery(
        date_filter=_date_filter(year, month, day),
        status=status,
        search=search,
        branch_id=branch_id,
    )
    result = await service.get_attendance(query)
    return AttendanceResponse.model_validate(result, from_attributes=True)


@router.get("/access", response_model=AccessRead)
async def read_access(service: AttendanceService = Depends(get_attendance_service)) -> AccessRead:
    decision = service.decision
    scope = await service.resolve_scope()
    return AccessRead(
        role=decision.role,
        scope=type(scope).__name__,
        department_id=scope.department_id if isinstance(scope, SingleDepartment) else None,
        department_name=scope.department_name if isinstance(scope, SingleDepartment) else None,
        employee_id=scope.employee_id if isinstance(scope, SingleEmployee) else None,
        denied_reason=scope.reason if isinstance(scope, Denied) else None,
        permissions=PermissionSetRead.model_validate(decision.permissions, from_attributes=True),
    )


@router.get("/summary", response_model=MonthlySummaryRead)
async def read_monthly_summary(
    year: int = Query(ge=2000, le=2100),
    month: int = Query(ge=1, le=12),
    service: AttendanceService = Depends(get_attendance_service),
) -> MonthlySummaryRead:
    summary = await service.get_monthly_summary(year=year, month=month)
    return MonthlySummaryRead.model_validate(summary, from_attributes=True)
