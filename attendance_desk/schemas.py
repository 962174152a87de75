from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict

from attendance_desk.models import AttendanceStatus, EmptyReason, Role


class AttendanceRecordRead(BaseModel):
    employee_id: str
    emp_code: str
    full_name: str
    department: str
    display_department: str
    department_id: str | None = None
    attendance_group: str | None = None
    attendance_date: date
    day_of_week: str
    time_period: str
    required_check_in: str
    required_check_out: str
    actual_check_in: str
    actual_check_out: str
    late_check_in_time: str
    early_time: str
    total_duration: str
    over_time: str
    status: AttendanceStatus
    is_late: bool

    model_config = ConfigDict(from_attributes=True)


class PeriodRead(BaseModel):
    year: int
    month: int

    model_config = ConfigDict(from_attributes=True)


class AttendanceResponse(BaseModel):
    records: list[AttendanceRecordRead]
    empty_reason: EmptyReason | None = None
    message: str | None = None
    period: PeriodRead | None = None
    generation: int
    dropped_records: int = 0
    failed_months: int = 0

    model_config = ConfigDict(from_attributes=True)


class PermissionSetRead(BaseModel):
    view_all_branches: bool
    view_all_departments: bool
    view_all_employees: bool
    search: bool
    export: bool
    filter_by_status: bool
    filter_by_date: bool

    model_config = ConfigDict(from_attributes=True)


class AccessRead(BaseModel):
    role: Role
    scope: str
    department_id: str | None = None
    department_name: str | None = None
    employee_id: str | None = None
    denied_reason: str | None = None
    permissions: PermissionSetRead


class MonthTotalsRead(BaseModel):
    full_days: int
    half_days: int
    present_days: int
    absent_days: int
    late_days: int
    early_days: int
    holidays: int
    penalty_minutes: int
    overtime_minutes: int
    worked_minutes: int

    model_config = ConfigDict(from_attributes=True)


class EmployeeMonthSummaryRead(BaseModel):
    employee_id: str
    full_name: str
    department: str
    totals: MonthTotalsRead

    model_config = ConfigDict(from_attributes=True)


class MonthlySummaryRead(BaseModel):
    year: int
    month: int
    working_days: int
    attendance_ratio: int
    totals: MonthTotalsRead
    employees: list[EmployeeMonthSummaryRead]

    model_config = ConfigDict(from_attributes=True)
