from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable

from attendance_desk.errors import UpstreamError
from attendance_desk.models import AttendanceRecord, DateFilter, Period, SingleEmployee
from attendance_desk.services.normalizer import normalize_payload, resolve_payload
from attendance_desk.services.reconciler import reconcile_records
from attendance_desk.services.upstream import AttendanceDataSource
from attendance_desk.settings import get_settings

logger = logging.getLogger("attendance_desk.fallback")


@dataclass(frozen=True)
class FallbackOutcome:
    records: list[AttendanceRecord]
    period: Period | None
    months_checked: int
    failed_months: int
    dropped: int

    @property
    def exhausted(self) -> bool:
        return self.period is None


def candidate_periods(today: date, months: int) -> list[Period]:
    periods: list[Period] = []
    period = Period.of(today)
    for _ in range(max(0, months)):
        period = period.previous()
        periods.append(period)
    return periods


async def search_latest_period(
    source: AttendanceDataSource,
    *,
    employee_id: str,
    today: date,
    max_months: int | None = None,
    check_current: Callable[[], None] | None = None,
) -> FallbackOutcome:
    """Walk backwards one month at a time until the employee has records.

    Months are checked strictly one after another so the search stops at the first
    populated month. A failed fetch counts as an empty month.
    """
    months = max_months if max_months is not None else get_settings().fallback_search_months
    scope = SingleEmployee(employee_id=employee_id)
    months_checked = 0
    failed_months = 0
    dropped = 0

    for period in candidate_periods(today, months):
        if check_current is not None:
            check_current()
        months_checked += 1
        try:
            raw = await asyncio.to_thread(
                source.fetch_monthly,
                year=period.year,
                month=period.month,
                employee_id=employee_id,
            )
        except UpstreamError as exc:
            failed_months += 1
            logger.warning(
                "fallback_month_failed",
                extra={
                    "employee_id": employee_id,
                    "year": period.year,
                    "month": period.month,
                    "error": exc.message,
                },
            )
            continue

        batch = normalize_payload(resolve_payload(raw))
        dropped += batch.dropped
        outcome = reconcile_records(
            batch.records,
            scope=scope,
            date_filter=DateFilter(year=period.year, month=period.month),
        )
        if outcome.records:
            logger.info(
                "fallback_period_found",
                extra={
                    "employee_id": employee_id,
                    "year": period.year,
                    "month": period.month,
                    "months_checked": months_checked,
                    "failed_months": failed_months,
                },
            )
            return FallbackOutcome(
                records=outcome.records,
                period=period,
                months_checked=months_checked,
                failed_months=failed_months,
                dropped=dropped,
            )

    if check_current is not None:
        check_current()
    logger.info(
        "fallback_search_exhausted",
        extra={"employee_id": employee_id, "months_checked": months_checked, "failed_months": failed_months},
    )
    return FallbackOutcome(
        records=[], period=None, months_checked=months_checked, failed_months=failed_months, dropped=dropped
    )
