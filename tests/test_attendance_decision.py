from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import patch

from sqlalchemy.exc import OperationalError, SQLAlchemyError

from app.errors import ApiError
from app.models import AttendanceMark, AttendanceType, DailyStatus, Profile, Role
from app.security import Actor
from app.services.attendance import (
    DayState,
    MarkContext,
    MarkEligibility,
    available_actions,
    check_mark_eligibility,
    decide_mark,
    derive_day_state,
    derive_daily_status,
    get_today_overview,
    list_marks_history,
    parse_mark_type,
    submit_mark,
)
from app.services.geofence import GeofenceReading


def _utc(hour: int, minute: int = 0, second: int = 0) -> datetime:
    return datetime(2026, 3, 10, hour, minute, second, tzinfo=timezone.utc)


def _schedule(**overrides) -> SimpleNamespace:  # type: ignore[no-untyped-def]
    values = {
        "checkin_start_time": "08:00",
        "checkin_end_time": "09:00",
        "checkout_start_time": "17:00",
        "checkout_end_time": "18:00",
        "timezone": "UTC",
        "allow_early_checkin": False,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _mark(mark_id: int, mark_type: AttendanceType, ts: datetime, *, blocked: bool | None = False) -> AttendanceMark:
    return AttendanceMark(id=mark_id, user_id=10, mark_type=mark_type, timestamp=ts, blocked=blocked)


class DayStateTests(unittest.TestCase):
    def test_fresh_day_allows_only_check_in(self) -> None:
        self.assertEqual(derive_day_state([]), DayState.NONE)
        self.assertEqual(available_actions([]), (True, False))

    def test_after_check_in_only_check_out_is_available(self) -> None:
        marks = [_mark(1, AttendanceType.IN, _utc(8, 30))]

        self.assertEqual(derive_day_state(marks), DayState.IN_MARKED)
        self.assertEqual(available_actions(marks), (False, True))

    def test_completed_day_has_no_actions(self) -> None:
        marks = [_mark(2, AttendanceType.OUT, _utc(17, 5)), _mark(1, AttendanceType.IN, _utc(8, 30))]

        self.assertEqual(derive_day_state(marks), DayState.OUT_MARKED)
        self.assertEqual(available_actions(marks), (False, False))

    def test_blocked_marks_are_ignored(self) -> None:
        marks = [_mark(1, AttendanceType.IN, _utc(8, 30), blocked=True)]

        self.assertEqual(derive_day_state(marks), DayState.NONE)

    def test_unknown_blocked_flag_counts_as_not_blocked(self) -> None:
        marks = [_mark(1, AttendanceType.IN, _utc(8, 30), blocked=None)]

        self.assertEqual(derive_day_state(marks), DayState.IN_MARKED)


class EligibilityTests(unittest.TestCase):
    def test_second_check_in_is_rejected(self) -> None:
        result = check_mark_eligibility(
            mark_type=AttendanceType.IN,
            marks=[_mark(1, AttendanceType.IN, _utc(8, 10))],
            schedule=_schedule(),
            now=_utc(8, 20),
        )

        self.assertFalse(result.allowed)
        self.assertEqual(result.reason, "Ya registraste tu entrada hoy")

    def test_check_out_requires_check_in(self) -> None:
        result = check_mark_eligibility(
            mark_type=AttendanceType.OUT,
            marks=[],
            schedule=_schedule(),
            now=_utc(17, 0),
        )

        self.assertEqual(result.reason, "Debes registrar tu entrada antes de la salida")

    def test_second_check_out_is_rejected(self) -> None:
        marks = [_mark(1, AttendanceType.IN, _utc(8, 10)), _mark(2, AttendanceType.OUT, _utc(17, 1))]

        result = check_mark_eligibility(
            mark_type=AttendanceType.OUT,
            marks=marks,
            schedule=_schedule(),
            now=_utc(17, 30),
        )

        self.assertEqual(result.reason, "Ya registraste tu salida hoy")

    def test_check_in_outside_window_carries_window_message(self) -> None:
        result = check_mark_eligibility(
            mark_type=AttendanceType.IN,
            marks=[],
            schedule=_schedule(),
            now=_utc(7, 59),
        )

        self.assertFalse(result.allowed)
        self.assertEqual(result.reason, "Entrada anticipada no permitida. Horario: 08:00 - 09:00 (UTC)")

    def test_check_in_inside_window_is_allowed(self) -> None:
        result = check_mark_eligibility(
            mark_type=AttendanceType.IN,
            marks=[],
            schedule=_schedule(),
            now=_utc(8, 0),
            department_id=3,
        )

        self.assertTrue(result.allowed)
        self.assertEqual(result.department_id, 3)


class DecideMarkTests(unittest.TestCase):
    def test_global_manager_is_never_allowed(self) -> None:
        decision = decide_mark(MarkContext(role=Role.GLOBAL_MANAGER, mark_type=AttendanceType.IN))

        self.assertFalse(decision.allowed)
        self.assertEqual(decision.code.value, "UNAUTHORIZED")
        self.assertEqual(decision.status_code, 403)

    def test_vacation_wins_even_when_everything_else_passes(self) -> None:
        decision = decide_mark(
            MarkContext(role=Role.EMPLOYEE, mark_type=AttendanceType.IN, on_vacation=True, rest_day=True)
        )

        self.assertEqual(decision.code.value, "ON_VACATION")

    def test_rest_day_is_denied(self) -> None:
        decision = decide_mark(MarkContext(role=Role.DEPARTMENT_HEAD, mark_type=AttendanceType.IN, rest_day=True))

        self.assertEqual(decision.code.value, "REST_DAY")
        self.assertEqual(decision.message, "Hoy es tu día de descanso")

    def test_eligibility_reason_is_surfaced(self) -> None:
        decision = decide_mark(
            MarkContext(
                role=Role.EMPLOYEE,
                mark_type=AttendanceType.IN,
                eligibility=MarkEligibility(allowed=False, reason="Ya registraste tu entrada hoy"),
            )
        )

        self.assertEqual(decision.code.value, "FORBIDDEN")
        self.assertEqual(decision.message, "Ya registraste tu entrada hoy")

    def test_check_in_requires_trusted_inside_reading(self) -> None:
        for reading in (GeofenceReading.OUTSIDE, GeofenceReading.UNTRUSTED):
            with self.subTest(reading=reading):
                decision = decide_mark(
                    MarkContext(role=Role.EMPLOYEE, mark_type=AttendanceType.IN, reading=reading)
                )
                self.assertEqual(decision.code.value, "OUTSIDE_GEOFENCE")

    def test_check_out_inside_before_checkout_time_is_denied(self) -> None:
        decision = decide_mark(
            MarkContext(
                role=Role.EMPLOYEE,
                mark_type=AttendanceType.OUT,
                reading=GeofenceReading.INSIDE,
                checkout_reached=False,
            )
        )

        self.assertEqual(decision.code.value, "OUT_NOT_ALLOWED_YET")

    def test_check_out_inside_after_checkout_time_is_allowed(self) -> None:
        decision = decide_mark(
            MarkContext(
                role=Role.EMPLOYEE,
                mark_type=AttendanceType.OUT,
                reading=GeofenceReading.INSIDE,
                checkout_reached=True,
            )
        )

        self.assertTrue(decision.allowed)
        self.assertEqual(decision.status_code, 200)

    def test_check_out_outside_is_always_allowed(self) -> None:
        decision = decide_mark(
            MarkContext(role=Role.EMPLOYEE, mark_type=AttendanceType.OUT, reading=GeofenceReading.OUTSIDE)
        )

        self.assertTrue(decision.allowed)

    def test_mark_type_is_parsed_case_insensitively(self) -> None:
        self.assertEqual(parse_mark_type(" in "), AttendanceType.IN)
        with self.assertRaises(ApiError) as ctx:
            parse_mark_type("LUNCH")
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.code, "INVALID_MARK_TYPE")


class DailyStatusTests(unittest.TestCase):
    def test_rest_day_is_descanso(self) -> None:
        summary = derive_daily_status(marks=[], schedule=_schedule(), rest_day=True)

        self.assertEqual(summary.status, DailyStatus.DESCANSO)

    def test_non_workday_is_no_laborable(self) -> None:
        calendar_day = SimpleNamespace(is_workday=False, late_tolerance_minutes=0)

        summary = derive_daily_status(marks=[], schedule=_schedule(), rest_day=False, calendar_day=calendar_day)

        self.assertEqual(summary.status, DailyStatus.NO_LABORABLE)

    def test_missing_check_in_is_ausente(self) -> None:
        summary = derive_daily_status(marks=[], schedule=_schedule(), rest_day=False)

        self.assertEqual(summary.status, DailyStatus.AUSENTE)

    def test_check_in_after_tolerance_is_tarde(self) -> None:
        calendar_day = SimpleNamespace(is_workday=True, late_tolerance_minutes=10)
        marks = [_mark(1, AttendanceType.IN, _utc(9, 25)), _mark(2, AttendanceType.OUT, _utc(17, 10))]

        summary = derive_daily_status(marks=marks, schedule=_schedule(), rest_day=False, calendar_day=calendar_day)

        self.assertEqual(summary.status, DailyStatus.TARDE)
        self.assertEqual(summary.late_minutes, 25)
        self.assertEqual(summary.last_out, _utc(17, 10))

    def test_check_in_within_tolerance_is_presente(self) -> None:
        calendar_day = SimpleNamespace(is_workday=True, late_tolerance_minutes=10)
        marks = [_mark(1, AttendanceType.IN, _utc(9, 10))]

        summary = derive_daily_status(marks=marks, schedule=_schedule(), rest_day=False, calendar_day=calendar_day)

        self.assertEqual(summary.status, DailyStatus.PRESENTE)
        self.assertEqual(summary.first_in, _utc(9, 10))


class _ScalarResult:
    def __init__(self, rows: list[object]):
        self._rows = rows

    def all(self) -> list[object]:
        return list(self._rows)


class _FakeMarkDB:
    def __init__(self, profile: Profile | None, commit_error: Exception | None = None):
        self.profile = profile
        self.commit_error = commit_error
        self.added: list[object] = []
        self.committed = False
        self.rolled_back = False

    def scalar(self, _statement):  # type: ignore[no-untyped-def]
        return self.profile

    def scalars(self, _statement):  # type: ignore[no-untyped-def]
        return _ScalarResult([])

    def add(self, obj: object) -> None:
        self.added.append(obj)

    def commit(self) -> None:
        if self.commit_error is not None:
            raise self.commit_error
        self.committed = True

    def rollback(self) -> None:
        self.rolled_back = True

    def refresh(self, obj: object) -> None:
        if getattr(obj, "id", None) is None:
            obj.id = 501  # type: ignore[attr-defined]


class _PatchedAttendanceCase(unittest.TestCase):
    def setUp(self) -> None:
        self.actor = Actor(user_id=10, role=Role.EMPLOYEE, department_id=1)
        self.profile = Profile(user_id=10, full_name="Ana", email="ana@example.com", department_id=1)
        self.geofence = SimpleNamespace(
            center_lat=0.0,
            center_lng=0.0,
            radius_meters=100.0,
            accuracy_threshold=50.0,
            block_on_poor_accuracy=False,
        )
        patchers = [
            patch("app.services.attendance.get_or_create_geofence_config", return_value=self.geofence),
            patch("app.services.attendance.get_department_schedule", return_value=_schedule()),
            patch("app.services.attendance.resolve_rest_day_for_user", return_value=False),
        ]
        self.marks_patch = patch("app.services.attendance.list_marks_for_day", return_value=[])
        self.vacation_patch = patch("app.services.attendance.is_on_vacation", return_value=False)
        patchers.extend([self.marks_patch, self.vacation_patch])
        self.mocks = [item.start() for item in patchers]
        for item in patchers:
            self.addCleanup(item.stop)


class SubmitMarkTests(_PatchedAttendanceCase):
    def test_check_in_inside_window_is_stored(self) -> None:
        fake_db = _FakeMarkDB(self.profile)

        result = submit_mark(
            fake_db,  # type: ignore[arg-type]
            actor=self.actor,
            mark_type="IN",
            latitude=0.0,
            longitude=0.0,
            accuracy=5.0,
            distance_to_center=12.0,
            inside_geofence=True,
            now=_utc(8, 30),
        )

        self.assertTrue(fake_db.committed)
        self.assertEqual(result.mark.id, 501)
        self.assertEqual(result.mark.mark_type, AttendanceType.IN)
        self.assertEqual(result.message, "Entrada registrada correctamente")

    def test_vacation_denial_rolls_back_and_flags_not_allowed(self) -> None:
        fake_db = _FakeMarkDB(self.profile)
        self.mocks[4].return_value = True

        with self.assertRaises(ApiError) as ctx:
            submit_mark(
                fake_db,  # type: ignore[arg-type]
                actor=self.actor,
                mark_type="IN",
                inside_geofence=True,
                accuracy=5.0,
                now=_utc(8, 30),
            )

        self.assertEqual(ctx.exception.status_code, 403)
        self.assertEqual(ctx.exception.code, "ON_VACATION")
        self.assertEqual(ctx.exception.extra, {"allowed": False})
        self.assertTrue(fake_db.rolled_back)
        self.assertEqual(fake_db.added, [])

    def test_check_out_outside_before_checkout_time_is_stored(self) -> None:
        fake_db = _FakeMarkDB(self.profile)
        self.mocks[3].return_value = [_mark(1, AttendanceType.IN, _utc(8, 30))]

        result = submit_mark(
            fake_db,  # type: ignore[arg-type]
            actor=self.actor,
            mark_type="out",
            inside_geofence=False,
            distance_to_center=450.0,
            now=_utc(12, 0),
        )

        self.assertEqual(result.mark.mark_type, AttendanceType.OUT)
        self.assertFalse(result.mark.inside_geofence)
        self.assertEqual(result.message, "Salida registrada correctamente")

    def test_global_manager_is_rejected_before_touching_the_database(self) -> None:
        fake_db = _FakeMarkDB(None)
        manager = Actor(user_id=1, role=Role.GLOBAL_MANAGER, department_id=None)

        with self.assertRaises(ApiError) as ctx:
            submit_mark(fake_db, actor=manager, mark_type="IN", now=_utc(8, 30))  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.code, "UNAUTHORIZED")
        self.mocks[0].assert_not_called()

    def test_missing_profile_is_not_found(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            submit_mark(_FakeMarkDB(None), actor=self.actor, mark_type="IN", now=_utc(8, 30))  # type: ignore[arg-type]

        self.assertEqual(ctx.exception.status_code, 404)

    def test_device_sampler_failure_is_reported_before_database(self) -> None:
        fake_db = _FakeMarkDB(self.profile)

        with self.assertRaises(ApiError) as ctx:
            submit_mark(
                fake_db,  # type: ignore[arg-type]
                actor=self.actor,
                mark_type="IN",
                geolocation_error="PERMISSION_DENIED",
                now=_utc(8, 30),
            )

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(ctx.exception.code, "GEOLOCATION_PERMISSION_DENIED")
        self.mocks[0].assert_not_called()
        self.assertEqual(fake_db.added, [])

    def test_database_unavailable_is_connection_error(self) -> None:
        fake_db = _FakeMarkDB(self.profile)
        self.mocks[0].side_effect = OperationalError("SELECT geofence_config", {}, Exception("server closed"))

        with self.assertRaises(ApiError) as ctx:
            submit_mark(
                fake_db,  # type: ignore[arg-type]
                actor=self.actor,
                mark_type="IN",
                inside_geofence=True,
                now=_utc(8, 30),
            )

        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(ctx.exception.code, "CONNECTION_ERROR")
        self.assertTrue(fake_db.rolled_back)

    def test_eligibility_lookup_failure_is_validation_error(self) -> None:
        fake_db = _FakeMarkDB(self.profile)
        self.mocks[3].side_effect = SQLAlchemyError("bad marks query")

        with self.assertRaises(ApiError) as ctx:
            submit_mark(
                fake_db,  # type: ignore[arg-type]
                actor=self.actor,
                mark_type="IN",
                inside_geofence=True,
                now=_utc(8, 30),
            )

        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(ctx.exception.code, "VALIDATION_ERROR")
        self.assertTrue(fake_db.rolled_back)

    def test_insert_failure_is_insert_error(self) -> None:
        fake_db = _FakeMarkDB(self.profile, commit_error=SQLAlchemyError("constraint violated"))

        with self.assertRaises(ApiError) as ctx:
            submit_mark(
                fake_db,  # type: ignore[arg-type]
                actor=self.actor,
                mark_type="IN",
                inside_geofence=True,
                accuracy=5.0,
                now=_utc(8, 30),
            )

        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(ctx.exception.code, "INSERT_ERROR")
        self.assertTrue(fake_db.rolled_back)
        self.assertFalse(fake_db.committed)

    def test_connection_lost_on_insert_is_connection_error(self) -> None:
        lost = OperationalError("INSERT INTO attendance_marks", {}, Exception("connection reset"))
        fake_db = _FakeMarkDB(self.profile, commit_error=lost)

        with self.assertRaises(ApiError) as ctx:
            submit_mark(
                fake_db,  # type: ignore[arg-type]
                actor=self.actor,
                mark_type="IN",
                inside_geofence=True,
                accuracy=5.0,
                now=_utc(8, 30),
            )

        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(ctx.exception.code, "CONNECTION_ERROR")

    def test_server_recompute_overrides_claimed_inside(self) -> None:
        fake_db = _FakeMarkDB(self.profile)
        settings = SimpleNamespace(geofence_recompute_server_side=True)

        with patch("app.services.attendance.get_settings", return_value=settings):
            with self.assertRaises(ApiError) as ctx:
                submit_mark(
                    fake_db,  # type: ignore[arg-type]
                    actor=self.actor,
                    mark_type="IN",
                    latitude=1.0,
                    longitude=1.0,
                    accuracy=5.0,
                    inside_geofence=True,
                    now=_utc(8, 30),
                )

        self.assertEqual(ctx.exception.code, "OUTSIDE_GEOFENCE")
        self.assertEqual(fake_db.added, [])

    def test_server_recompute_overrides_claimed_outside(self) -> None:
        fake_db = _FakeMarkDB(self.profile)
        self.mocks[3].return_value = [_mark(1, AttendanceType.IN, _utc(8, 30))]
        settings = SimpleNamespace(geofence_recompute_server_side=True)

        with patch("app.services.attendance.get_settings", return_value=settings):
            with self.assertRaises(ApiError) as ctx:
                submit_mark(
                    fake_db,  # type: ignore[arg-type]
                    actor=self.actor,
                    mark_type="OUT",
                    latitude=0.0,
                    longitude=0.0,
                    accuracy=5.0,
                    inside_geofence=False,
                    distance_to_center=900.0,
                    now=_utc(12, 0),
                )

        self.assertEqual(ctx.exception.code, "OUT_NOT_ALLOWED_YET")

    def test_claimed_values_are_kept_without_server_recompute(self) -> None:
        fake_db = _FakeMarkDB(self.profile)
        settings = SimpleNamespace(geofence_recompute_server_side=False)

        with patch("app.services.attendance.get_settings", return_value=settings):
            result = submit_mark(
                fake_db,  # type: ignore[arg-type]
                actor=self.actor,
                mark_type="IN",
                latitude=1.0,
                longitude=1.0,
                accuracy=5.0,
                distance_to_center=12.0,
                inside_geofence=True,
                now=_utc(8, 30),
            )

        self.assertEqual(result.mark.distance_to_center, 12.0)
        self.assertTrue(result.mark.inside_geofence)


class TodayOverviewTests(_PatchedAttendanceCase):
    def test_fresh_day_allows_check_in_only(self) -> None:
        fake_db = _FakeMarkDB(self.profile)

        overview = get_today_overview(fake_db, actor=self.actor, now=_utc(8, 30))  # type: ignore[arg-type]

        self.assertEqual(overview["day"], date(2026, 3, 10))
        self.assertEqual(overview["state"], DayState.NONE)
        self.assertTrue(overview["can_mark_in"])
        self.assertFalse(overview["can_mark_out"])
        self.assertTrue(overview["checkin_window_open"])

    def test_after_check_in_only_check_out_is_offered(self) -> None:
        self.mocks[3].return_value = [_mark(1, AttendanceType.IN, _utc(8, 30))]
        fake_db = _FakeMarkDB(self.profile)

        overview = get_today_overview(fake_db, actor=self.actor, now=_utc(9, 30))  # type: ignore[arg-type]

        self.assertEqual(overview["state"], DayState.IN_MARKED)
        self.assertFalse(overview["can_mark_in"])
        self.assertTrue(overview["can_mark_out"])

    def test_rest_day_suppresses_actions(self) -> None:
        self.mocks[2].return_value = True
        fake_db = _FakeMarkDB(self.profile)

        overview = get_today_overview(fake_db, actor=self.actor, now=_utc(8, 30))  # type: ignore[arg-type]

        self.assertEqual(overview["state"], DayState.RESTING)
        self.assertTrue(overview["is_rest_day"])
        self.assertFalse(overview["can_mark_in"])
        self.assertFalse(overview["can_mark_out"])

    def test_vacation_wins_over_rest_day(self) -> None:
        self.mocks[2].return_value = True
        self.mocks[4].return_value = True
        self.mocks[3].return_value = [_mark(1, AttendanceType.IN, _utc(8, 30))]
        fake_db = _FakeMarkDB(self.profile)

        overview = get_today_overview(fake_db, actor=self.actor, now=_utc(9, 0))  # type: ignore[arg-type]

        self.assertEqual(overview["state"], DayState.ON_VACATION)
        self.assertTrue(overview["is_on_vacation"])
        self.assertFalse(overview["can_mark_out"])

    def test_global_manager_has_no_personal_actions(self) -> None:
        manager = Actor(user_id=1, role=Role.GLOBAL_MANAGER, department_id=None)

        overview = get_today_overview(_FakeMarkDB(None), actor=manager, now=_utc(8, 30))  # type: ignore[arg-type]

        self.assertFalse(overview["can_mark_in"])
        self.assertFalse(overview["can_mark_out"])
        self.mocks[3].assert_not_called()
        self.mocks[4].assert_not_called()


class MarksHistoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.actor = Actor(user_id=10, role=Role.EMPLOYEE, department_id=1)
        self.profile = Profile(user_id=10, full_name="Ana", email="ana@example.com", department_id=1)
        sunday_rest = SimpleNamespace(id=1, effective_from=date(2026, 1, 1), days_of_week=[0])
        monday_vacation = SimpleNamespace(start_date=date(2026, 3, 9), end_date=date(2026, 3, 9))
        patchers = [
            patch("app.services.attendance.get_department_schedule", return_value=_schedule()),
            patch(
                "app.services.attendance._list_marks_between",
                return_value=[_mark(1, AttendanceType.IN, _utc(8, 30)), _mark(2, AttendanceType.OUT, _utc(17, 10))],
            ),
            patch("app.services.attendance.list_rest_schedules", return_value=[sunday_rest]),
            patch("app.services.attendance.list_approved_requests_in_range", return_value=[monday_vacation]),
        ]
        self.mocks = [item.start() for item in patchers]
        for item in patchers:
            self.addCleanup(item.stop)

    def test_days_are_listed_newest_first_with_statuses(self) -> None:
        history = list_marks_history(
            _FakeMarkDB(self.profile),  # type: ignore[arg-type]
            actor=self.actor,
            start=date(2026, 3, 8),
            end=date(2026, 3, 10),
        )

        self.assertEqual([item["day"] for item in history], [date(2026, 3, 10), date(2026, 3, 9), date(2026, 3, 8)])
        self.assertEqual(
            [item["status"] for item in history],
            [DailyStatus.PRESENTE, DailyStatus.AUSENTE, DailyStatus.DESCANSO],
        )
        self.assertEqual([item["on_vacation"] for item in history], [False, True, False])
        self.assertEqual(len(history[0]["marks"]), 2)

    def test_inverted_range_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            list_marks_history(
                _FakeMarkDB(self.profile),  # type: ignore[arg-type]
                actor=self.actor,
                start=date(2026, 3, 10),
                end=date(2026, 3, 8),
            )

        self.assertEqual(ctx.exception.status_code, 422)
        self.assertEqual(ctx.exception.code, "INVALID_DATE_RANGE")

    def test_range_longer_than_limit_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            list_marks_history(
                _FakeMarkDB(self.profile),  # type: ignore[arg-type]
                actor=self.actor,
                start=date(2026, 1, 1),
                end=date(2026, 4, 30),
            )

        self.assertEqual(ctx.exception.code, "INVALID_DATE_RANGE")
        self.mocks[1].assert_not_called()


if __name__ == "__main__":
    unittest.main()
