from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from attendance_desk.models import (
    AttendanceRecord,
    AttendanceStatus,
    DateFilter,
    Denied,
    DepartmentScope,
    EmptyReason,
    SingleDepartment,
    SingleEmployee,
    Unrestricted,
)
from attendance_desk.services.clock import BLANK
from attendance_desk.services.departments import UNASSIGNED_DEPARTMENT, matches_any
from attendance_desk.services.normalizer import RawPayload, normalize_payload

logger = logging.getLogger("attendance_desk.reconciler")


@dataclass(frozen=True)
class ReconcileOutcome:
    records: list[AttendanceRecord]
    empty_reason: EmptyReason | None
    total_before_scope: int
    dropped: int


def employee_key(record: AttendanceRecord) -> str:
    if record.employee_id and record.employee_id != BLANK:
        return record.employee_id
    return f"{record.emp_code}|{record.full_name.lower()}"


def _department_candidates(record: AttendanceRecord) -> list[str]:
    candidates = [record.department, record.attendance_group, record.display_department]
    return [value for value in candidates if value and value != UNASSIGNED_DEPARTMENT]


def in_scope(record: AttendanceRecord, scope: DepartmentScope) -> bool:
    if isinstance(scope, Unrestricted):
        return True
    if isinstance(scope, SingleEmployee):
        return record.employee_id == scope.employee_id
    if isinstance(scope, SingleDepartment):
        if record.department_id and record.department_id == scope.department_id:
            return True
        targets = scope.match_targets()
        if not targets:
            return False
        return any(matches_any(candidate, targets) for candidate in _department_candidates(record))
    return False


def apply_scope(records: Iterable[AttendanceRecord], scope: DepartmentScope) -> list[AttendanceRecord]:
    return [record for record in records if in_scope(record, scope)]


def apply_date_filter(records: Iterable[AttendanceRecord], date_filter: DateFilter) -> list[AttendanceRecord]:
    return [record for record in records if date_filter.matches(record.attendance_date)]


def latest_per_employee(records: Iterable[AttendanceRecord]) -> list[AttendanceRecord]:
    latest: dict[str, AttendanceRecord] = {}
    for record in records:
        key = employee_key(record)
        current = latest.get(key)
        if current is None or record.attendance_date > current.attendance_date:
            latest[key] = record
    return list(latest.values())


def order_by_name(records: Iterable[AttendanceRecord]) -> list[AttendanceRecord]:
    by_date = sorted(records, key=lambda record: record.attendance_date, reverse=True)
    return sorted(by_date, key=lambda record: record.full_name.casefold())


def order_by_date(records: Iterable[AttendanceRecord]) -> list[AttendanceRecord]:
    return sorted(records, key=lambda record: record.attendance_date, reverse=True)


def classify_empty(
    *,
    scope: DepartmentScope,
    date_filter: DateFilter | None,
    records_in_period: int,
) -> EmptyReason:
    """Why a scoped result is empty; ``records_in_period`` counts rows in the selected period before scoping."""
    if isinstance(scope, SingleDepartment) and records_in_period > 0:
        return EmptyReason.NO_DEPARTMENT_ASSIGNMENT
    if date_filter is not None:
        return EmptyReason.NO_DATA_FOR_PERIOD
    return EmptyReason.NO_DATA


def reconcile_records(
    records: Sequence[AttendanceRecord],
    *,
    scope: DepartmentScope,
    date_filter: DateFilter | None,
    dropped: int = 0,
) -> ReconcileOutcome:
    """Scope, filter, deduplicate and order already-normalized records.

    Without a date filter every multi-employee scope collapses to the latest
    record per employee. Single-employee requests without a date filter are
    resolved by the period fallback search, not here.
    """
    if isinstance(scope, Denied):
        return ReconcileOutcome(records=[], empty_reason=None, total_before_scope=len(records), dropped=dropped)

    scoped = apply_scope(records, scope)
    if date_filter is not None:
        scoped = apply_date_filter(scoped, date_filter)

    if isinstance(scope, SingleEmployee):
        result = order_by_date(scoped)
    elif date_filter is None:
        result = order_by_name(latest_per_employee(scoped))
    else:
        result = order_by_name(scoped)

    empty_reason = None
    if not result:
        in_period = records if date_filter is None else apply_date_filter(records, date_filter)
        empty_reason = classify_empty(scope=scope, date_filter=date_filter, records_in_period=len(in_period))
        logger.info(
            "attendance_result_empty",
            extra={
                "scope": type(scope).__name__,
                "empty_reason": empty_reason.value,
                "total_before_scope": len(records),
                "records_in_period": len(in_period),
            },
        )
    return ReconcileOutcome(
        records=result,
        empty_reason=empty_reason,
        total_before_scope=len(records),
        dropped=dropped,
    )


def reconcile(
    payloads: Sequence[RawPayload],
    *,
    scope: DepartmentScope,
    date_filter: DateFilter | None,
) -> ReconcileOutcome:
    records: list[AttendanceRecord] = []
    dropped = 0
    for payload in payloads:
        batch = normalize_payload(payload)
        records.extend(batch.records)
        dropped += batch.dropped
    return reconcile_records(records, scope=scope, date_filter=date_filter, dropped=dropped)


def with_display_departments(
    records: Sequence[AttendanceRecord],
    department_names: dict[str, str],
) -> list[AttendanceRecord]:
    """Fill the display department for records that only carry a department id."""
    resolved: list[AttendanceRecord] = []
    for record in records:
        name = department_names.get(record.department_id or "")
        if name and record.display_department == UNASSIGNED_DEPARTMENT:
            record = replace(record, display_department=name)
        resolved.append(record)
    return resolved


def filter_by_status(records: Iterable[AttendanceRecord], status: AttendanceStatus) -> list[AttendanceRecord]:
    return [record for record in records if record.status == status]


def filter_by_search(records: Iterable[AttendanceRecord], query: str) -> list[AttendanceRecord]:
    needle = query.strip().casefold()
    if not needle:
        return list(records)
    return [
        record
        for record in records
        if needle in record.full_name.casefold()
        or needle in record.employee_id.casefold()
        or needle in record.department.casefold()
        or needle in record.display_department.casefold()
    ]
