from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from types import SimpleNamespace

from app.errors import ApiError
from app.models import (
    AttendanceMark,
    AttendanceType,
    DailyStatus,
    Department,
    Profile,
    RestSchedule,
    Role,
    VacationRequest,
    VacationStatus,
    WorkCalendarDay,
)
from app.security import Actor
from app.services.reports import build_attendance_rows, build_daily_report, resolve_report_departments


class _ScalarResult:
    def __init__(self, rows: list[object]):
        self._rows = rows

    def all(self) -> list[object]:
        return list(self._rows)


class FakeReportDB:
    """Answers each query by the entity it selects."""

    def __init__(  # type: ignore[no-untyped-def]
        self,
        *,
        departments: list[Department],
        schedule=None,
        rows: dict[type, list[object]] | None = None,
    ):
        self.departments = {item.id: item for item in departments}
        self.schedule = schedule
        self.rows = rows or {}
        self.statements: list[object] = []

    def get(self, model, ident):  # type: ignore[no-untyped-def]
        if model is Department:
            return self.departments.get(ident)
        return None

    def scalar(self, _statement):  # type: ignore[no-untyped-def]
        return self.schedule

    def scalars(self, statement):  # type: ignore[no-untyped-def]
        self.statements.append(statement)
        entity = statement.column_descriptions[0]["entity"]
        if entity is Department:
            return _ScalarResult(list(self.departments.values()))
        return _ScalarResult(self.rows.get(entity, []))


EMPLOYEE = Actor(user_id=10, role=Role.EMPLOYEE, department_id=1)
HEAD = Actor(user_id=20, role=Role.DEPARTMENT_HEAD, department_id=1)
MANAGER = Actor(user_id=30, role=Role.GLOBAL_MANAGER, department_id=None)
OPERATIONS = Department(id=1, name="Operaciones")
SALES = Department(id=2, name="Ventas")


def _schedule() -> SimpleNamespace:
    return SimpleNamespace(
        checkin_start_time="08:00",
        checkin_end_time="09:00",
        checkout_start_time="17:00",
        timezone="UTC",
        allow_early_checkin=False,
    )


def _utc(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 10, hour, minute, tzinfo=timezone.utc)


class ReportScopeTests(unittest.TestCase):
    def test_employee_cannot_run_reports(self) -> None:
        db = FakeReportDB(departments=[OPERATIONS])

        with self.assertRaises(ApiError) as ctx:
            resolve_report_departments(db, actor=EMPLOYEE, department_id=None)  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.status_code, 403)

    def test_department_head_cannot_request_other_department(self) -> None:
        db = FakeReportDB(departments=[OPERATIONS, SALES])

        with self.assertRaises(ApiError) as ctx:
            resolve_report_departments(db, actor=HEAD, department_id=2)  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.code, "FORBIDDEN")

    def test_department_head_is_scoped_to_own_department(self) -> None:
        db = FakeReportDB(departments=[OPERATIONS, SALES])

        departments = resolve_report_departments(db, actor=HEAD, department_id=None)  # type: ignore[arg-type]

        self.assertEqual([item.id for item in departments], [1])

    def test_global_manager_sees_every_department(self) -> None:
        db = FakeReportDB(departments=[OPERATIONS, SALES])

        departments = resolve_report_departments(db, actor=MANAGER, department_id=None)  # type: ignore[arg-type]

        self.assertEqual({item.id for item in departments}, {1, 2})

    def test_unknown_department_is_not_found(self) -> None:
        db = FakeReportDB(departments=[OPERATIONS])

        with self.assertRaises(ApiError) as ctx:
            resolve_report_departments(db, actor=MANAGER, department_id=9)  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.status_code, 404)


class ReportRangeTests(unittest.TestCase):
    def test_inverted_range_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            build_attendance_rows(
                FakeReportDB(departments=[OPERATIONS]),  # type: ignore[arg-type]
                actor=MANAGER,
                start=date(2026, 3, 10),
                end=date(2026, 3, 1),
            )

        self.assertEqual(ctx.exception.status_code, 422)
        self.assertEqual(ctx.exception.code, "INVALID_DATE_RANGE")

    def test_range_is_capped_at_ninety_two_days(self) -> None:
        db = FakeReportDB(departments=[OPERATIONS])

        rows = build_attendance_rows(db, actor=MANAGER, start=date(2026, 1, 1), end=date(2026, 4, 2))  # type: ignore[arg-type]
        self.assertEqual(rows, [])

        with self.assertRaises(ApiError) as ctx:
            build_attendance_rows(db, actor=MANAGER, start=date(2026, 1, 1), end=date(2026, 4, 3))  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.code, "INVALID_DATE_RANGE")


class DailyReportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ana = Profile(user_id=10, full_name="Ana", email="ana@example.com", department_id=1)
        self.beto = Profile(user_id=11, full_name="Beto", email="beto@example.com", department_id=1)
        self.carla = Profile(user_id=12, full_name="Carla", email="carla@example.com", department_id=1)
        self.db = FakeReportDB(
            departments=[OPERATIONS],
            schedule=_schedule(),
            rows={
                Profile: [self.ana, self.beto, self.carla],
                AttendanceMark: [
                    AttendanceMark(
                        id=1,
                        user_id=10,
                        mark_type=AttendanceType.IN,
                        timestamp=_utc(9, 25),
                        inside_geofence=True,
                        distance_to_center=14.0,
                        blocked=False,
                    ),
                    AttendanceMark(id=2, user_id=10, mark_type=AttendanceType.OUT, timestamp=_utc(17, 5), blocked=False),
                ],
                RestSchedule: [RestSchedule(id=1, user_id=12, days_of_week=[2], effective_from=date(2026, 1, 1))],
                VacationRequest: [
                    VacationRequest(
                        user_id=11,
                        department_id=1,
                        start_date=date(2026, 3, 9),
                        end_date=date(2026, 3, 11),
                        requested_days=3,
                        status=VacationStatus.APPROVED,
                    )
                ],
                WorkCalendarDay: [],
            },
        )

    def test_rows_carry_status_per_employee(self) -> None:
        rows = build_daily_report(self.db, actor=HEAD, day=date(2026, 3, 10))  # type: ignore[arg-type]
        by_user = {row.user_id: row for row in rows}

        self.assertEqual([row.full_name for row in rows], ["Ana", "Beto", "Carla"])
        self.assertEqual(by_user[10].status, DailyStatus.TARDE)
        self.assertEqual(by_user[10].late_minutes, 25)
        self.assertEqual(by_user[10].first_in_local, "09:25")
        self.assertEqual(by_user[10].last_out_local, "17:05")
        self.assertTrue(by_user[10].inside_geofence)
        self.assertEqual(by_user[10].distance_to_center, 14.0)
        self.assertEqual(by_user[11].status, DailyStatus.AUSENTE)
        self.assertTrue(by_user[11].on_vacation)
        self.assertEqual(by_user[12].status, DailyStatus.DESCANSO)
        self.assertEqual(by_user[12].department_name, "Operaciones")

    def test_population_is_limited_to_employees(self) -> None:
        build_daily_report(self.db, actor=MANAGER, day=date(2026, 3, 10), department_id=1)  # type: ignore[arg-type]

        profile_query = next(
            item for item in self.db.statements if item.column_descriptions[0]["entity"] is Profile
        )
        params = profile_query.compile().params
        self.assertIn(Role.EMPLOYEE, params.values())
        self.assertIn(1, params.values())

    def test_department_without_employees_yields_no_rows(self) -> None:
        self.db.rows[Profile] = []

        self.assertEqual(build_daily_report(self.db, actor=MANAGER, day=date(2026, 3, 10)), [])  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
