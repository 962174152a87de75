from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterator, Mapping, Union

from attendance_desk.models import AttendanceRecord
from attendance_desk.services.clock import BLANK, clean_text, format_minutes, is_blank_time, parse_minutes, truncate_hhmm
from attendance_desk.services.departments import UNASSIGNED_DEPARTMENT, department_leaf
from attendance_desk.services.status import classify_record
from attendance_desk.settings import get_settings

logger = logging.getLogger("attendance_desk.normalizer")

UNKNOWN_NAME = "Unknown"
_DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y")
_ENVELOPE_KEYS = ("content", "data", "items", "records")


@dataclass(frozen=True)
class FlatPayload:
    records: list[Mapping[str, Any]]


@dataclass(frozen=True)
class EmployeeGroup:
    employee_id: str | None
    records: list[Mapping[str, Any]]


@dataclass(frozen=True)
class GroupedPayload:
    groups: list[EmployeeGroup]


RawPayload = Union[FlatPayload, GroupedPayload]


@dataclass(frozen=True)
class NormalizedBatch:
    records: list[AttendanceRecord]
    dropped: int
    total: int


def _unwrap(raw: Any) -> list[Any]:
    if isinstance(raw, list):
        return raw
    if isinstance(raw, Mapping):
        for key in _ENVELOPE_KEYS:
            inner = raw.get(key)
            if isinstance(inner, list):
                return inner
            if isinstance(inner, Mapping):
                return _unwrap(inner)
        if "attendanceList" in raw:
            return [raw]
    return []


def resolve_payload(raw: Any) -> RawPayload:
    """Detect the upstream response shape once, at ingestion."""
    items = [item for item in _unwrap(raw) if isinstance(item, Mapping)]
    if any(isinstance(item.get("attendanceList"), list) for item in items):
        groups: list[EmployeeGroup] = []
        skipped = 0
        for item in items:
            attendance_list = item.get("attendanceList")
            if not isinstance(attendance_list, list):
                skipped += 1
                continue
            employee_id = clean_text(item.get("employeeId")) or None
            groups.append(
                EmployeeGroup(
                    employee_id=employee_id,
                    records=[entry for entry in attendance_list if isinstance(entry, Mapping)],
                )
            )
        if skipped:
            logger.warning("payload_items_without_attendance_list", extra={"skipped": skipped})
        return GroupedPayload(groups=groups)
    return FlatPayload(records=items)


def iter_raw_records(payload: RawPayload) -> Iterator[tuple[str | None, Mapping[str, Any]]]:
    if isinstance(payload, GroupedPayload):
        for group in payload.groups:
            for record in group.records:
                yield group.employee_id, record
        return
    for record in payload.records:
        yield None, record


def parse_attendance_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = clean_text(value)
    if not text:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    # Best effort: ISO datetime strings such as 2025-01-05T00:00:00Z.
    if len(text) > 10 and text[10] in {"T", " "}:
        try:
            return datetime.strptime(text[:10], "%Y-%m-%d").date()
        except ValueError:
            return None
    return None


def compute_overtime(
    actual_check_out: Any,
    *,
    threshold: str | None = None,
    ignore_until: str | None = None,
) -> str:
    settings = get_settings()
    out_minutes = parse_minutes(actual_check_out)
    threshold_minutes = parse_minutes(threshold or settings.overtime_threshold)
    ignore_minutes = parse_minutes(ignore_until or settings.overtime_ignore_until)
    if out_minutes is None or threshold_minutes is None:
        return BLANK
    # Early-morning check-outs never count as overtime.
    if ignore_minutes is not None and out_minutes <= ignore_minutes:
        return BLANK
    if out_minutes > threshold_minutes:
        return format_minutes(out_minutes - threshold_minutes)
    return BLANK


def _full_name(raw: Mapping[str, Any]) -> str:
    first = clean_text(raw.get("firstName"))
    last = clean_text(raw.get("lastName"))
    name = f"{first} {last}".strip()
    if name:
        return name
    for key in ("fullName", "name", "employeeName"):
        candidate = clean_text(raw.get(key))
        if candidate:
            return candidate
    return UNKNOWN_NAME


def _department_fields(raw: Mapping[str, Any]) -> tuple[str, str]:
    department = clean_text(raw.get("department"))
    if department and department != UNASSIGNED_DEPARTMENT:
        return department, department_leaf(department) or UNASSIGNED_DEPARTMENT
    display = clean_text(raw.get("displayDepartment"))
    if display:
        return UNASSIGNED_DEPARTMENT, display
    return UNASSIGNED_DEPARTMENT, UNASSIGNED_DEPARTMENT


def _over_time(raw: Mapping[str, Any]) -> str:
    supplied = raw.get("overTime")
    if not is_blank_time(supplied) and parse_minutes(supplied) is not None:
        return truncate_hhmm(supplied)
    return compute_overtime(raw.get("actualCheckOutTime"))


def _text_or_blank(value: Any) -> str:
    return clean_text(value) or BLANK


def _optional_text(value: Any) -> str | None:
    text = clean_text(value)
    return text or None


def normalize_record(
    raw: Mapping[str, Any] | AttendanceRecord,
    *,
    employee_id_hint: str | None = None,
) -> AttendanceRecord | None:
    """Canonical record for one upstream row, or None when its date is unusable."""
    if isinstance(raw, AttendanceRecord):
        raw = raw.to_raw()

    attendance_date = parse_attendance_date(raw.get("attendanceDate"))
    if attendance_date is None:
        return None

    day_of_week = clean_text(raw.get("dayOfWeek")) or attendance_date.strftime("%A")
    decision = classify_record(raw, day_of_week=day_of_week)
    department, display_department = _department_fields(raw)
    employee_id = clean_text(raw.get("employeeId")) or clean_text(employee_id_hint) or BLANK

    return AttendanceRecord(
        employee_id=employee_id,
        emp_code=_text_or_blank(raw.get("empCode")),
        full_name=_full_name(raw),
        department=department,
        display_department=display_department,
        attendance_date=attendance_date,
        day_of_week=day_of_week,
        required_check_in=truncate_hhmm(raw.get("requiredCheckInTime")),
        required_check_out=truncate_hhmm(raw.get("requiredCheckOutTime")),
        actual_check_in=truncate_hhmm(raw.get("actualCheckInTime")),
        actual_check_out=truncate_hhmm(raw.get("actualCheckOutTime")),
        late_check_in_time=truncate_hhmm(raw.get("lateCheckInTime")),
        total_duration=truncate_hhmm(raw.get("totalDuration")),
        over_time=_over_time(raw),
        status=decision.status,
        is_late=decision.is_late,
        department_id=_optional_text(raw.get("departmentId")),
        attendance_group=_optional_text(raw.get("attendanceGroup")),
        time_period=_text_or_blank(raw.get("timePeriod")),
        early_time=truncate_hhmm(raw.get("earlyTime")),
    )


def normalize_payload(payload: RawPayload) -> NormalizedBatch:
    records: list[AttendanceRecord] = []
    total = 0
    dropped = 0
    for employee_id_hint, raw in iter_raw_records(payload):
        total += 1
        record = normalize_record(raw, employee_id_hint=employee_id_hint)
        if record is None:
            dropped += 1
            continue
        records.append(record)

    if dropped:
        logger.warning(
            "attendance_records_dropped",
            extra={"dropped": dropped, "total": total, "reason": "invalid_attendance_date"},
        )
    return NormalizedBatch(records=records, dropped=dropped, total=total)
