from __future__ import annotations

import unittest
from datetime import date
from typing import Any, Mapping

from attendance_desk.errors import RequestSupersededError, UpstreamError
from attendance_desk.models import Period
from attendance_desk.services.fallback import candidate_periods, search_latest_period
from attendance_desk.services.upstream import DepartmentInfo
from attendance_desk.settings import get_settings


class _MonthlySource:
    def __init__(self, rows_by_period: dict[tuple[int, int], list[dict[str, Any]]], failing: set[tuple[int, int]] | None = None):
        self.rows_by_period = rows_by_period
        self.failing = failing or set()
        self.monthly_calls: list[tuple[int, int]] = []

    def fetch_latest(self, filters: Mapping[str, Any] | None = None) -> Any:
        raise AssertionError("latest endpoint must not be used by the period search")

    def fetch_monthly(self, *, year: int, month: int, employee_id: str | None = None, **_: Any) -> Any:
        self.monthly_calls.append((year, month))
        if (year, month) in self.failing:
            raise UpstreamError("boom", endpoint="monthly")
        return [{"employeeId": employee_id, "attendanceList": self.rows_by_period.get((year, month), [])}]

    def get_department_by_id(self, department_id: str) -> DepartmentInfo:
        raise AssertionError("unexpected department lookup")


def _row(employee_id: str, attendance_date: str) -> dict[str, Any]:
    return {
        "employeeId": employee_id,
        "fullName": "Ayla Demir",
        "attendanceDate": attendance_date,
        "actualCheckInTime": "08:55:00",
        "actualCheckOutTime": "18:00:00",
    }


class PeriodFallbackTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        get_settings.cache_clear()

    def tearDown(self) -> None:
        get_settings.cache_clear()

    def test_candidate_periods_start_at_previous_month(self) -> None:
        periods = candidate_periods(date(2025, 2, 14), 3)
        self.assertEqual(periods, [Period(2025, 1), Period(2024, 12), Period(2024, 11)])

    async def test_stops_at_first_populated_month(self) -> None:
        source = _MonthlySource({(2025, 1): [_row("E1", "2025-01-20"), _row("E1", "2025-01-21")]})
        outcome = await search_latest_period(source, employee_id="E1", today=date(2025, 4, 15))

        self.assertEqual(source.monthly_calls, [(2025, 3), (2025, 2), (2025, 1)])
        self.assertEqual(outcome.months_checked, 3)
        self.assertEqual(outcome.period, Period(2025, 1))
        self.assertEqual([record.attendance_date.day for record in outcome.records], [21, 20])
        self.assertFalse(outcome.exhausted)

    async def test_exhausts_after_twelve_months(self) -> None:
        source = _MonthlySource({(2023, 1): [_row("E1", "2023-01-05")]})
        outcome = await search_latest_period(source, employee_id="E1", today=date(2025, 4, 15))

        self.assertEqual(len(source.monthly_calls), 12)
        self.assertEqual(source.monthly_calls[-1], (2024, 4))
        self.assertTrue(outcome.exhausted)
        self.assertEqual(outcome.records, [])

    async def test_other_employees_rows_do_not_count(self) -> None:
        source = _MonthlySource({(2025, 3): [_row("E2", "2025-03-04")], (2025, 2): [_row("E1", "2025-02-04")]})
        outcome = await search_latest_period(source, employee_id="E1", today=date(2025, 4, 1), max_months=4)
        self.assertEqual(outcome.period, Period(2025, 2))
        self.assertEqual(outcome.months_checked, 2)

    async def test_failed_fetch_counts_as_empty_month(self) -> None:
        source = _MonthlySource({(2025, 2): [_row("E1", "2025-02-10")]}, failing={(2025, 3)})
        outcome = await search_latest_period(source, employee_id="E1", today=date(2025, 4, 15))
        self.assertEqual(outcome.period, Period(2025, 2))
        self.assertEqual(outcome.failed_months, 1)
        self.assertEqual(outcome.months_checked, 2)

    async def test_superseded_search_stops_probing(self) -> None:
        source = _MonthlySource({})
        checks = 0

        def check_current() -> None:
            nonlocal checks
            checks += 1
            if checks > 2:
                raise RequestSupersededError(1, 2)

        with self.assertRaises(RequestSupersededError):
            await search_latest_period(source, employee_id="E1", today=date(2025, 4, 15), check_current=check_current)
        self.assertEqual(len(source.monthly_calls), 2)


if __name__ == "__main__":
    unittest.main()
