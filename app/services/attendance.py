from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import ApiError, ErrorCode, user_message
from app.models import (
    AttendanceMark,
    AttendanceType,
    DailyStatus,
    DepartmentSchedule,
    Profile,
    Role,
    WorkCalendarDay,
)
from app.security import Actor
from app.services.geofence import (
    GeofenceReading,
    classify_reading,
    evaluate_geofence,
    get_or_create_geofence_config,
    sample_from_payload,
    sampler_failure_error,
)
from app.services.rest_days import (
    is_rest_day,
    list_rest_schedules,
    resolve_rest_day_for_user,
    select_effective_rest_schedule,
)
from app.services.schedule import (
    current_time_label,
    get_department_schedule,
    has_reached_checkout_time,
    is_within_checkin_window,
    local_date,
    local_day_bounds_utc,
    local_seconds_since_midnight,
    parse_time_to_seconds,
)
from app.services.vacations import (
    is_on_vacation,
    list_approved_requests_in_range,
    vacation_days_in_range,
)
from app.settings import get_settings

logger = logging.getLogger("app.attendance")

SUCCESS_MESSAGES = {
    AttendanceType.IN: "Entrada registrada correctamente",
    AttendanceType.OUT: "Salida registrada correctamente",
}
MAX_HISTORY_DAYS = 92


class DayState(str, enum.Enum):
    NONE = "NONE"
    IN_MARKED = "IN_MARKED"
    OUT_MARKED = "OUT_MARKED"
    RESTING = "RESTING"
    ON_VACATION = "ON_VACATION"


@dataclass(frozen=True, slots=True)
class MarkEligibility:
    allowed: bool
    reason: str | None = None
    department_id: int | None = None


@dataclass(frozen=True, slots=True)
class MarkContext:
    role: Role
    mark_type: AttendanceType
    on_vacation: bool = False
    rest_day: bool = False
    eligibility: MarkEligibility = field(default_factory=lambda: MarkEligibility(allowed=True))
    reading: GeofenceReading = GeofenceReading.INSIDE
    checkout_reached: bool = False


@dataclass(frozen=True, slots=True)
class MarkDecision:
    allowed: bool
    code: ErrorCode | None = None
    message: str | None = None

    @property
    def status_code(self) -> int:
        return 200 if self.allowed else 403


@dataclass(frozen=True, slots=True)
class MarkResult:
    mark: AttendanceMark
    message: str


@dataclass(frozen=True, slots=True)
class DailySummary:
    status: DailyStatus
    first_in: datetime | None = None
    last_out: datetime | None = None
    late_minutes: int = 0


def _normalize_ts(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_mark_type(raw_value: Any) -> AttendanceType:
    try:
        return AttendanceType(str(raw_value).strip().upper())
    except ValueError as exc:
        raise ApiError(status_code=400, code=ErrorCode.INVALID_MARK_TYPE) from exc


def _ordered(marks: Sequence[AttendanceMark]) -> list[AttendanceMark]:
    return sorted(
        (item for item in marks if not item.blocked),
        key=lambda item: (_normalize_ts(item.timestamp), item.id or 0),
    )


def derive_day_state(marks: Sequence[AttendanceMark]) -> DayState:
    ordered = _ordered(marks)
    if not ordered:
        return DayState.NONE
    if ordered[-1].mark_type == AttendanceType.IN:
        return DayState.IN_MARKED
    return DayState.OUT_MARKED


def available_actions(marks: Sequence[AttendanceMark]) -> tuple[bool, bool]:
    state = derive_day_state(marks)
    return state == DayState.NONE, state == DayState.IN_MARKED


def check_mark_eligibility(
    *,
    mark_type: AttendanceType,
    marks: Sequence[AttendanceMark],
    schedule: DepartmentSchedule | None,
    now: datetime,
    department_id: int | None = None,
) -> MarkEligibility:
    state = derive_day_state(marks)
    if mark_type == AttendanceType.IN:
        if state != DayState.NONE:
            return MarkEligibility(
                allowed=False,
                reason="Ya registraste tu entrada hoy",
                department_id=department_id,
            )
        window = is_within_checkin_window(schedule, now)
        if not window.allowed:
            return MarkEligibility(allowed=False, reason=window.message, department_id=department_id)
        return MarkEligibility(allowed=True, department_id=department_id)

    if state == DayState.NONE:
        return MarkEligibility(
            allowed=False,
            reason="Debes registrar tu entrada antes de la salida",
            department_id=department_id,
        )
    if state == DayState.OUT_MARKED:
        return MarkEligibility(
            allowed=False,
            reason="Ya registraste tu salida hoy",
            department_id=department_id,
        )
    return MarkEligibility(allowed=True, department_id=department_id)


def _deny(code: ErrorCode, message: str | None = None) -> MarkDecision:
    return MarkDecision(allowed=False, code=code, message=message or user_message(code))


def decide_mark(context: MarkContext) -> MarkDecision:
    if not context.role.can_mark_attendance():
        return _deny(ErrorCode.UNAUTHORIZED)
    if context.on_vacation:
        return _deny(ErrorCode.ON_VACATION)
    if context.rest_day:
        return _deny(ErrorCode.REST_DAY)
    if not context.eligibility.allowed:
        return _deny(ErrorCode.FORBIDDEN, context.eligibility.reason)
    if context.mark_type == AttendanceType.IN and context.reading != GeofenceReading.INSIDE:
        return _deny(ErrorCode.OUTSIDE_GEOFENCE)
    if (
        context.mark_type == AttendanceType.OUT
        and context.reading != GeofenceReading.OUTSIDE
        and not context.checkout_reached
    ):
        return _deny(ErrorCode.OUT_NOT_ALLOWED_YET)
    return MarkDecision(allowed=True)


def _list_marks_between(
    db: Session,
    *,
    user_id: int,
    start_utc: datetime,
    end_utc: datetime,
) -> list[AttendanceMark]:
    return list(
        db.scalars(
            select(AttendanceMark)
            .where(
                AttendanceMark.user_id == user_id,
                AttendanceMark.timestamp >= start_utc,
                AttendanceMark.timestamp < end_utc,
            )
            .order_by(AttendanceMark.timestamp.asc(), AttendanceMark.id.asc())
        ).all()
    )


def list_marks_for_day(
    db: Session,
    *,
    user_id: int,
    day: date,
    timezone_name: str | None,
) -> list[AttendanceMark]:
    start_utc, end_utc = local_day_bounds_utc(day, timezone_name)
    return _list_marks_between(db, user_id=user_id, start_utc=start_utc, end_utc=end_utc)


def _timezone_of(schedule: DepartmentSchedule | None) -> str | None:
    return schedule.timezone if schedule is not None else None


def _deny_error(decision: MarkDecision) -> ApiError:
    return ApiError(
        status_code=decision.status_code,
        code=decision.code or ErrorCode.FORBIDDEN,
        message=decision.message,
        extra={"allowed": False},
    )


def submit_mark(
    db: Session,
    *,
    actor: Actor,
    mark_type: Any,
    latitude: float | None = None,
    longitude: float | None = None,
    accuracy: float | None = None,
    distance_to_center: float | None = None,
    inside_geofence: bool | None = None,
    geolocation_error: str | None = None,
    now: datetime | None = None,
) -> MarkResult:
    resolved_type = parse_mark_type(mark_type)
    ts = _normalize_ts(now)

    if not actor.role.can_mark_attendance():
        decision = decide_mark(MarkContext(role=actor.role, mark_type=resolved_type))
        logger.info(
            "attendance_mark_denied",
            extra={"user_id": actor.user_id, "mark_type": resolved_type.value, "code": decision.code},
        )
        raise _deny_error(decision)

    if geolocation_error:
        error = sampler_failure_error(geolocation_error)
        logger.info(
            "attendance_sample_unavailable",
            extra={"user_id": actor.user_id, "mark_type": resolved_type.value, "code": error.code},
        )
        raise error

    settings = get_settings()
    try:
        geofence_config = get_or_create_geofence_config(db)
        # Serializes concurrent submissions for the same user until commit/rollback.
        profile = db.scalar(
            select(Profile).where(Profile.user_id == actor.user_id).with_for_update()
        )
    except OperationalError as exc:
        db.rollback()
        logger.exception("attendance_db_unavailable", extra={"user_id": actor.user_id})
        raise ApiError(status_code=503, code=ErrorCode.CONNECTION_ERROR) from exc

    if profile is None:
        db.rollback()
        raise ApiError(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            message="Perfil no encontrado.",
            extra={"allowed": False},
        )

    try:
        schedule = get_department_schedule(db, profile.department_id)
        timezone_name = _timezone_of(schedule)
        today = local_date(ts, timezone_name)
        marks_today = list_marks_for_day(db, user_id=actor.user_id, day=today, timezone_name=timezone_name)
        rest_day = resolve_rest_day_for_user(db, user_id=actor.user_id, day=today)
        on_vacation = is_on_vacation(db, user_id=actor.user_id, day=today)
    except OperationalError as exc:
        db.rollback()
        logger.exception("attendance_db_unavailable", extra={"user_id": actor.user_id})
        raise ApiError(status_code=503, code=ErrorCode.CONNECTION_ERROR) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("attendance_eligibility_failed", extra={"user_id": actor.user_id})
        raise ApiError(status_code=500, code=ErrorCode.VALIDATION_ERROR) from exc

    eligibility = check_mark_eligibility(
        mark_type=resolved_type,
        marks=marks_today,
        schedule=schedule,
        now=ts,
        department_id=profile.department_id,
    )

    sample = sample_from_payload(latitude, longitude, accuracy)
    if settings.geofence_recompute_server_side and sample is not None:
        evaluated = evaluate_geofence(sample, geofence_config)
        inside_geofence = evaluated.is_inside
        distance_to_center = float(evaluated.distance)
    reading = classify_reading(inside_geofence, accuracy, geofence_config)

    decision = decide_mark(
        MarkContext(
            role=actor.role,
            mark_type=resolved_type,
            on_vacation=on_vacation,
            rest_day=rest_day,
            eligibility=eligibility,
            reading=reading,
            checkout_reached=has_reached_checkout_time(schedule, ts),
        )
    )
    if not decision.allowed:
        db.rollback()
        logger.info(
            "attendance_mark_denied",
            extra={
                "user_id": actor.user_id,
                "mark_type": resolved_type.value,
                "code": decision.code,
                "reading": reading.value,
            },
        )
        raise _deny_error(decision)

    mark = AttendanceMark(
        user_id=actor.user_id,
        mark_type=resolved_type,
        timestamp=ts,
        latitude=latitude,
        longitude=longitude,
        accuracy=accuracy,
        distance_to_center=distance_to_center,
        inside_geofence=inside_geofence is not False,
        blocked=False,
        block_reason=None,
    )
    try:
        db.add(mark)
        db.commit()
        db.refresh(mark)
    except OperationalError as exc:
        db.rollback()
        logger.exception("attendance_db_unavailable", extra={"user_id": actor.user_id})
        raise ApiError(status_code=503, code=ErrorCode.CONNECTION_ERROR) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("attendance_insert_failed", extra={"user_id": actor.user_id})
        raise ApiError(status_code=500, code=ErrorCode.INSERT_ERROR) from exc

    logger.info(
        "attendance_mark_accepted",
        extra={
            "user_id": actor.user_id,
            "mark_id": mark.id,
            "mark_type": resolved_type.value,
            "distance_to_center": distance_to_center,
        },
    )
    return MarkResult(mark=mark, message=SUCCESS_MESSAGES[resolved_type])


def derive_daily_status(
    *,
    marks: Sequence[AttendanceMark],
    schedule: DepartmentSchedule | None,
    rest_day: bool,
    calendar_day: WorkCalendarDay | None = None,
) -> DailySummary:
    ordered = _ordered(marks)
    first_in = next((item.timestamp for item in ordered if item.mark_type == AttendanceType.IN), None)
    outs = [item.timestamp for item in ordered if item.mark_type == AttendanceType.OUT]
    last_out = outs[-1] if outs else None

    if rest_day:
        return DailySummary(status=DailyStatus.DESCANSO, first_in=first_in, last_out=last_out)
    if calendar_day is not None and not calendar_day.is_workday:
        return DailySummary(status=DailyStatus.NO_LABORABLE, first_in=first_in, last_out=last_out)
    if first_in is None:
        return DailySummary(status=DailyStatus.AUSENTE)
    if schedule is None:
        return DailySummary(status=DailyStatus.PRESENTE, first_in=first_in, last_out=last_out)

    if calendar_day is not None:
        tolerance_minutes = calendar_day.late_tolerance_minutes
    else:
        tolerance_minutes = get_settings().default_late_tolerance_minutes
    first_in_seconds = local_seconds_since_midnight(first_in, schedule.timezone)
    end_seconds = parse_time_to_seconds(schedule.checkin_end_time)
    if first_in_seconds > end_seconds + tolerance_minutes * 60:
        return DailySummary(
            status=DailyStatus.TARDE,
            first_in=first_in,
            last_out=last_out,
            late_minutes=(first_in_seconds - end_seconds) // 60,
        )
    return DailySummary(status=DailyStatus.PRESENTE, first_in=first_in, last_out=last_out)


def get_calendar_day(db: Session, *, department_id: int | None, day: date) -> WorkCalendarDay | None:
    if department_id is None:
        return None
    return db.scalar(
        select(WorkCalendarDay).where(
            WorkCalendarDay.department_id == department_id,
            WorkCalendarDay.day == day,
        )
    )


def _resolve_profile(db: Session, actor: Actor) -> Profile | None:
    return db.scalar(select(Profile).where(Profile.user_id == actor.user_id))


def get_today_overview(db: Session, *, actor: Actor, now: datetime | None = None) -> dict[str, Any]:
    ts = _normalize_ts(now)
    geofence_config = get_or_create_geofence_config(db)
    profile = _resolve_profile(db, actor)
    department_id = profile.department_id if profile is not None else actor.department_id
    schedule = get_department_schedule(db, department_id)
    timezone_name = _timezone_of(schedule)
    today = local_date(ts, timezone_name)

    marks: list[AttendanceMark] = []
    rest_day = False
    on_vacation = False
    if actor.role.can_mark_attendance():
        marks = list_marks_for_day(db, user_id=actor.user_id, day=today, timezone_name=timezone_name)
        rest_day = resolve_rest_day_for_user(db, user_id=actor.user_id, day=today)
        on_vacation = is_on_vacation(db, user_id=actor.user_id, day=today)

    state = derive_day_state(marks)
    if on_vacation:
        state = DayState.ON_VACATION
    elif rest_day:
        state = DayState.RESTING
    blocked_day = on_vacation or rest_day or not actor.role.can_mark_attendance()
    can_mark_in, can_mark_out = available_actions(marks)
    window = is_within_checkin_window(schedule, ts)

    return {
        "day": today,
        "state": state,
        "marks": marks,
        "can_mark_in": can_mark_in and not blocked_day,
        "can_mark_out": can_mark_out and not blocked_day,
        "is_rest_day": rest_day,
        "is_on_vacation": on_vacation,
        "checkin_window_open": window.allowed,
        "checkin_window_message": window.message,
        "checkout_reached": has_reached_checkout_time(schedule, ts),
        "current_time_label": current_time_label(schedule, ts),
        "schedule": schedule,
        "geofence": geofence_config,
        "geolocation_timeout_seconds": get_settings().geolocation_timeout_seconds,
    }


def list_marks_history(
    db: Session,
    *,
    actor: Actor,
    start: date,
    end: date,
) -> list[dict[str, Any]]:
    if end < start:
        raise ApiError(status_code=422, code=ErrorCode.INVALID_DATE_RANGE)
    if (end - start).days + 1 > MAX_HISTORY_DAYS:
        raise ApiError(
            status_code=422,
            code=ErrorCode.INVALID_DATE_RANGE,
            message=f"El rango máximo es de {MAX_HISTORY_DAYS} días.",
        )

    profile = _resolve_profile(db, actor)
    department_id = profile.department_id if profile is not None else actor.department_id
    schedule = get_department_schedule(db, department_id)
    timezone_name = _timezone_of(schedule)
    start_utc, _ = local_day_bounds_utc(start, timezone_name)
    _, end_utc = local_day_bounds_utc(end, timezone_name)
    marks = _list_marks_between(db, user_id=actor.user_id, start_utc=start_utc, end_utc=end_utc)
    rest_schedules = list_rest_schedules(db, user_id=actor.user_id)
    vacation_days = vacation_days_in_range(
        list_approved_requests_in_range(db, user_ids=[actor.user_id], start=start, end=end),
        start,
        end,
    )
    calendar_by_day: dict[date, WorkCalendarDay] = {}
    if department_id is not None:
        for row in db.scalars(
            select(WorkCalendarDay).where(
                WorkCalendarDay.department_id == department_id,
                WorkCalendarDay.day >= start,
                WorkCalendarDay.day <= end,
            )
        ).all():
            calendar_by_day[row.day] = row

    marks_by_day: dict[date, list[AttendanceMark]] = {}
    for mark in marks:
        marks_by_day.setdefault(local_date(mark.timestamp, timezone_name), []).append(mark)

    history: list[dict[str, Any]] = []
    cursor = end
    while cursor >= start:
        day_marks = marks_by_day.get(cursor, [])
        summary = derive_daily_status(
            marks=day_marks,
            schedule=schedule,
            rest_day=is_rest_day(select_effective_rest_schedule(rest_schedules, cursor), cursor),
            calendar_day=calendar_by_day.get(cursor),
        )
        history.append(
            {
                "day": cursor,
                "status": summary.status,
                "late_minutes": summary.late_minutes,
                "on_vacation": cursor in vacation_days,
                "marks": day_marks,
            }
        )
        cursor -= timedelta(days=1)
    return history
