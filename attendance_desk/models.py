from __future__ import annotations

import calendar
import enum
from dataclasses import dataclass
from datetime import date
from typing import Any, Union


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    HR = "HR"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"
    UNKNOWN = "UNKNOWN"


class AttendanceStatus(str, enum.Enum):
    PRESENT = "Present"
    LATE = "Late"
    ABSENT = "Absent"
    EARLY_DEPARTURE = "EarlyDeparture"


class EmptyReason(str, enum.Enum):
    NO_DEPARTMENT_ASSIGNMENT = "NO_DEPARTMENT_ASSIGNMENT"
    NO_DATA_FOR_PERIOD = "NO_DATA_FOR_PERIOD"
    NO_DATA = "NO_DATA"
    NO_RECENT_DATA = "NO_RECENT_DATA"
    NO_MATCHES = "NO_MATCHES"


@dataclass(frozen=True)
class UserContext:
    user_id: str
    role_name: str
    employee_id: str | None = None
    manager_department_id: str | None = None
    username: str | None = None


@dataclass(frozen=True)
class PermissionSet:
    view_all_branches: bool = False
    view_all_departments: bool = False
    view_all_employees: bool = False
    search: bool = False
    export: bool = False
    filter_by_status: bool = False
    filter_by_date: bool = False

    @classmethod
    def all_granted(cls) -> PermissionSet:
        return cls(
            view_all_branches=True,
            view_all_departments=True,
            view_all_employees=True,
            search=True,
            export=True,
            filter_by_status=True,
            filter_by_date=True,
        )

    @classmethod
    def none_granted(cls) -> PermissionSet:
        return cls()

    def is_denied(self) -> bool:
        return not any(
            (
                self.view_all_branches,
                self.view_all_departments,
                self.view_all_employees,
                self.search,
                self.export,
                self.filter_by_status,
                self.filter_by_date,
            )
        )


@dataclass(frozen=True)
class Unrestricted:
    pass


@dataclass(frozen=True)
class SingleDepartment:
    department_id: str
    department_name: str | None = None
    department_code: str | None = None

    def match_targets(self) -> list[str]:
        targets: list[str] = []
        for value in (self.department_name, self.department_code):
            if value and value.strip() and value not in targets:
                targets.append(value)
        return targets


@dataclass(frozen=True)
class SingleEmployee:
    employee_id: str


@dataclass(frozen=True)
class Denied:
    reason: str


DepartmentScope = Union[Unrestricted, SingleDepartment, SingleEmployee, Denied]


@dataclass(frozen=True)
class AccessDecision:
    role: Role
    permissions: PermissionSet
    scope: DepartmentScope


@dataclass(frozen=True)
class DateFilter:
    year: int
    month: int
    day: int | None = None

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Invalid month: {self.month}")
        if self.year < 1:
            raise ValueError(f"Invalid year: {self.year}")
        if self.day is not None:
            days_in_month = calendar.monthrange(self.year, self.month)[1]
            if not 1 <= self.day <= days_in_month:
                raise ValueError(f"Invalid day: {self.day}")

    def matches(self, value: date) -> bool:
        if value.year != self.year or value.month != self.month:
            return False
        return self.day is None or value.day == self.day


@dataclass(frozen=True)
class AttendanceRecord:
    employee_id: str
    emp_code: str
    full_name: str
    department: str
    display_department: str
    attendance_date: date
    day_of_week: str
    required_check_in: str
    required_check_out: str
    actual_check_in: str
    actual_check_out: str
    late_check_in_time: str
    total_duration: str
    over_time: str
    status: AttendanceStatus
    is_late: bool
    department_id: str | None = None
    attendance_group: str | None = None
    time_period: str = "--"
    early_time: str = "--"

    def to_raw(self) -> dict[str, Any]:
        """Upstream-shaped dict for this record, accepted back by the normalizer."""
        return {
            "employeeId": self.employee_id,
            "empCode": self.emp_code,
            "fullName": self.full_name,
            "department": self.department,
            "displayDepartment": self.display_department,
            "departmentId": self.department_id,
            "attendanceGroup": self.attendance_group,
            "attendanceDate": self.attendance_date.isoformat(),
            "dayOfWeek": self.day_of_week,
            "timePeriod": self.time_period,
            "requiredCheckInTime": self.required_check_in,
            "requiredCheckOutTime": self.required_check_out,
            "actualCheckInTime": self.actual_check_in,
            "actualCheckOutTime": self.actual_check_out,
            "lateCheckInTime": self.late_check_in_time,
            "earlyTime": self.early_time,
            "totalDuration": self.total_duration,
            "overTime": self.over_time,
        }


@dataclass(frozen=True)
class Period:
    year: int
    month: int

    def previous(self) -> Period:
        if self.month == 1:
            return Period(year=self.year - 1, month=12)
        return Period(year=self.year, month=self.month - 1)

    @classmethod
    def of(cls, value: date) -> Period:
        return cls(year=value.year, month=value.month)


@dataclass
class AttendanceResult:
    records: list[AttendanceRecord]
    empty_reason: EmptyReason | None = None
    message: str | None = None
    period: Period | None = None
    generation: int = 0
    dropped_records: int = 0
    failed_months: int = 0
