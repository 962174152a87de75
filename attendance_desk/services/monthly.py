from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass, field, fields
from datetime import date
from typing import Iterable

from attendance_desk.models import AttendanceRecord
from attendance_desk.services.clock import parse_minutes
from attendance_desk.services.reconciler import employee_key

FULL_DAY_MINUTES = 480
HALF_DAY_MINUTES = 240
SUNDAY = 6
SATURDAY = 5


@dataclass
class EmployeeMonthTotals:
    full_days: int = 0
    half_days: int = 0
    present_days: int = 0
    absent_days: int = 0
    late_days: int = 0
    early_days: int = 0
    holidays: int = 0
    penalty_minutes: int = 0
    overtime_minutes: int = 0
    worked_minutes: int = 0


@dataclass
class EmployeeMonthSummary:
    employee_id: str
    full_name: str
    department: str
    totals: EmployeeMonthTotals = field(default_factory=EmployeeMonthTotals)


@dataclass(frozen=True)
class MonthlySummary:
    year: int
    month: int
    working_days: int
    attendance_ratio: int
    totals: EmployeeMonthTotals
    employees: list[EmployeeMonthSummary]


def working_days_in_month(year: int, month: int) -> int:
    days_in_month = monthrange(year, month)[1]
    return sum(1 for day in range(1, days_in_month + 1) if date(year, month, day).weekday() < SATURDAY)


def day_status(record: AttendanceRecord) -> str:
    """``PP`` full day, ``PA`` half day, ``AA`` absent."""
    check_in = parse_minutes(record.actual_check_in)
    check_out = parse_minutes(record.actual_check_out)
    if check_in is None or check_out is None:
        return "AA"
    worked = parse_minutes(record.total_duration) or 0
    if record.attendance_date.weekday() == SATURDAY:
        return "PP" if worked >= HALF_DAY_MINUTES else "AA"
    if worked >= FULL_DAY_MINUTES:
        return "PP"
    if worked >= HALF_DAY_MINUTES:
        return "PA"
    return "AA"


def _add_record(totals: EmployeeMonthTotals, record: AttendanceRecord) -> None:
    if record.attendance_date.weekday() == SUNDAY:
        totals.holidays += 1
        return

    status = day_status(record)
    if status == "PP":
        totals.present_days += 1
        totals.full_days += 1
    elif status == "PA":
        totals.present_days += 1
        totals.half_days += 1
    else:
        totals.absent_days += 1

    late_minutes = parse_minutes(record.late_check_in_time) or 0
    if late_minutes:
        totals.late_days += 1
        totals.penalty_minutes += late_minutes
    early_minutes = parse_minutes(record.early_time) or 0
    if early_minutes:
        totals.early_days += 1
        totals.penalty_minutes += early_minutes
    totals.worked_minutes += parse_minutes(record.total_duration) or 0
    totals.overtime_minutes += parse_minutes(record.over_time) or 0


def _sum_totals(items: Iterable[EmployeeMonthTotals]) -> EmployeeMonthTotals:
    result = EmployeeMonthTotals()
    for item in items:
        for total_field in fields(result):
            name = total_field.name
            setattr(result, name, getattr(result, name) + getattr(item, name))
    return result


def build_monthly_summary(records: Iterable[AttendanceRecord], *, year: int, month: int) -> MonthlySummary:
    employees: dict[str, EmployeeMonthSummary] = {}
    for record in records:
        if record.attendance_date.year != year or record.attendance_date.month != month:
            continue
        key = employee_key(record)
        summary = employees.get(key)
        if summary is None:
            summary = EmployeeMonthSummary(
                employee_id=record.employee_id,
                full_name=record.full_name,
                department=record.attendance_group or record.display_department,
            )
            employees[key] = summary
        _add_record(summary.totals, record)

    ordered = sorted(employees.values(), key=lambda item: item.full_name.casefold())
    totals = _sum_totals(item.totals for item in ordered)
    working_days = working_days_in_month(year, month)
    possible_days = working_days * max(1, len(ordered))
    ratio = round(totals.present_days / possible_days * 100) if possible_days else 0
    return MonthlySummary(
        year=year,
        month=month,
        working_days=working_days,
        attendance_ratio=min(max(0, ratio), 100),
        totals=totals,
        employees=ordered,
    )
