from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from attendance_desk.models import AttendanceStatus
from attendance_desk.services.clock import clean_text, parse_minutes
from attendance_desk.settings import get_settings

HALF_DAY_WEEKDAY = "saturday"


@dataclass(frozen=True)
class StatusDecision:
    status: AttendanceStatus
    is_late: bool


def effective_required_checkout(
    required_check_out: Any,
    day_of_week: Any,
    *,
    saturday_checkout: str | None = None,
) -> str:
    if clean_text(day_of_week).lower() == HALF_DAY_WEEKDAY:
        return saturday_checkout or get_settings().saturday_required_checkout
    return clean_text(required_check_out)


def classify_status(
    *,
    actual_check_in: Any,
    actual_check_out: Any,
    required_check_in: Any,
    required_check_out: Any,
    day_of_week: Any,
    saturday_checkout: str | None = None,
) -> AttendanceStatus:
    actual_in_minutes = parse_minutes(actual_check_in)
    if actual_in_minutes is None:
        return AttendanceStatus.ABSENT

    required_out = effective_required_checkout(
        required_check_out,
        day_of_week,
        saturday_checkout=saturday_checkout,
    )
    required_in_minutes = parse_minutes(required_check_in)
    required_out_minutes = parse_minutes(required_out)
    if required_in_minutes is None or required_out_minutes is None:
        # No baseline to compare against.
        return AttendanceStatus.PRESENT

    if actual_in_minutes > required_in_minutes:
        return AttendanceStatus.LATE

    actual_out_minutes = parse_minutes(actual_check_out)
    if actual_out_minutes is not None and actual_out_minutes < required_out_minutes:
        return AttendanceStatus.EARLY_DEPARTURE
    return AttendanceStatus.PRESENT


def is_late_check_in(late_check_in_time: Any) -> bool:
    return parse_minutes(late_check_in_time) not in (None, 0)


def classify_record(
    raw: Mapping[str, Any],
    *,
    day_of_week: str | None = None,
    saturday_checkout: str | None = None,
) -> StatusDecision:
    """Classify one upstream row; ``day_of_week`` overrides the row's own ``dayOfWeek``."""
    status = classify_status(
        actual_check_in=raw.get("actualCheckInTime"),
        actual_check_out=raw.get("actualCheckOutTime"),
        required_check_in=raw.get("requiredCheckInTime"),
        required_check_out=raw.get("requiredCheckOutTime"),
        day_of_week=day_of_week if day_of_week is not None else raw.get("dayOfWeek"),
        saturday_checkout=saturday_checkout,
    )
    return StatusDecision(status=status, is_late=is_late_check_in(raw.get("lateCheckInTime")))
