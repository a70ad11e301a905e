from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.errors import ApiError, ErrorCode
from app.models import (
    AttendanceMark,
    AttendanceType,
    DailyStatus,
    Department,
    DepartmentSchedule,
    Profile,
    RestSchedule,
    Role,
    UserRole,
    WorkCalendarDay,
)
from app.security import Actor
from app.services.attendance import derive_daily_status
from app.services.rest_days import is_rest_day, select_effective_rest_schedule
from app.services.schedule import get_department_schedule, local_date, local_day_bounds_utc, local_now
from app.services.vacations import list_approved_requests_in_range, vacation_days_in_range

MAX_REPORT_DAYS = 92


@dataclass(frozen=True, slots=True)
class AttendanceReportRow:
    day: date
    user_id: int
    full_name: str
    email: str
    department_id: int
    department_name: str
    status: DailyStatus
    first_in_local: str | None
    last_out_local: str | None
    late_minutes: int
    on_vacation: bool
    inside_geofence: bool | None
    distance_to_center: float | None


def resolve_report_departments(db: Session, *, actor: Actor, department_id: int | None) -> list[Department]:
    if actor.role.is_scoped_to_department():
        if not actor.role.can_review_vacations():
            raise ApiError(status_code=403, code=ErrorCode.FORBIDDEN)
        if department_id is not None and department_id != actor.department_id:
            raise ApiError(status_code=403, code=ErrorCode.FORBIDDEN)
        department_id = actor.department_id

    if department_id is not None:
        department = db.get(Department, department_id)
        if department is None:
            raise ApiError(status_code=404, code=ErrorCode.NOT_FOUND, message="Departamento no encontrado.")
        return [department]
    return list(db.scalars(select(Department).order_by(Department.name.asc(), Department.id.asc())).all())


def _employees_of(db: Session, department_id: int) -> list[Profile]:
    return list(
        db.scalars(
            select(Profile)
            .join(UserRole, UserRole.user_id == Profile.user_id)
            .where(
                Profile.department_id == department_id,
                UserRole.role == Role.EMPLOYEE,
            )
            .order_by(Profile.full_name.asc(), Profile.user_id.asc())
        ).all()
    )


def _local_hhmm(value: datetime | None, timezone_name: str | None) -> str | None:
    if value is None:
        return None
    return f"{local_now(value, timezone_name):%H:%M}"


def _department_rows(
    db: Session,
    *,
    department: Department,
    start: date,
    end: date,
) -> list[AttendanceReportRow]:
    employees = _employees_of(db, department.id)
    if not employees:
        return []
    user_ids = [item.user_id for item in employees]
    schedule: DepartmentSchedule | None = get_department_schedule(db, department.id)
    timezone_name = schedule.timezone if schedule is not None else None

    start_utc, _ = local_day_bounds_utc(start, timezone_name)
    _, end_utc = local_day_bounds_utc(end, timezone_name)
    marks_by_user_day: dict[tuple[int, date], list[AttendanceMark]] = defaultdict(list)
    for mark in db.scalars(
        select(AttendanceMark)
        .where(
            AttendanceMark.user_id.in_(user_ids),
            AttendanceMark.timestamp >= start_utc,
            AttendanceMark.timestamp < end_utc,
        )
        .order_by(AttendanceMark.timestamp.asc(), AttendanceMark.id.asc())
    ).all():
        marks_by_user_day[(mark.user_id, local_date(mark.timestamp, timezone_name))].append(mark)

    rest_by_user: dict[int, list[RestSchedule]] = defaultdict(list)
    for item in db.scalars(select(RestSchedule).where(RestSchedule.user_id.in_(user_ids))).all():
        rest_by_user[item.user_id].append(item)

    approved = list_approved_requests_in_range(db, user_ids=user_ids, start=start, end=end)
    vacation_by_user = {
        user_id: vacation_days_in_range([item for item in approved if item.user_id == user_id], start, end)
        for user_id in user_ids
    }

    calendar_by_day = {
        item.day: item
        for item in db.scalars(
            select(WorkCalendarDay).where(
                WorkCalendarDay.department_id == department.id,
                WorkCalendarDay.day >= start,
                WorkCalendarDay.day <= end,
            )
        ).all()
    }

    rows: list[AttendanceReportRow] = []
    cursor = start
    while cursor <= end:
        for profile in employees:
            day_marks = marks_by_user_day.get((profile.user_id, cursor), [])
            rest_schedule = select_effective_rest_schedule(rest_by_user.get(profile.user_id, []), cursor)
            summary = derive_daily_status(
                marks=day_marks,
                schedule=schedule,
                rest_day=is_rest_day(rest_schedule, cursor),
                calendar_day=calendar_by_day.get(cursor),
            )
            first_in_mark = next(
                (item for item in day_marks if item.mark_type == AttendanceType.IN and not item.blocked),
                None,
            )
            rows.append(
                AttendanceReportRow(
                    day=cursor,
                    user_id=profile.user_id,
                    full_name=profile.full_name,
                    email=profile.email,
                    department_id=department.id,
                    department_name=department.name,
                    status=summary.status,
                    first_in_local=_local_hhmm(summary.first_in, timezone_name),
                    last_out_local=_local_hhmm(summary.last_out, timezone_name),
                    late_minutes=summary.late_minutes,
                    on_vacation=cursor in vacation_by_user.get(profile.user_id, set()),
                    inside_geofence=first_in_mark.inside_geofence if first_in_mark else None,
                    distance_to_center=first_in_mark.distance_to_center if first_in_mark else None,
                )
            )
        cursor += timedelta(days=1)
    return rows


def build_attendance_rows(
    db: Session,
    *,
    actor: Actor,
    start: date,
    end: date,
    department_id: int | None = None,
) -> list[AttendanceReportRow]:
    if end < start:
        raise ApiError(status_code=422, code=ErrorCode.INVALID_DATE_RANGE)
    if (end - start).days + 1 > MAX_REPORT_DAYS:
        raise ApiError(
            status_code=422,
            code=ErrorCode.INVALID_DATE_RANGE,
            message=f"El rango máximo es de {MAX_REPORT_DAYS} días.",
        )

    rows: list[AttendanceReportRow] = []
    for department in resolve_report_departments(db, actor=actor, department_id=department_id):
        rows.extend(_department_rows(db, department=department, start=start, end=end))
    rows.sort(key=lambda item: (item.day, item.department_name, item.full_name, item.user_id))
    return rows


def build_daily_report(
    db: Session,
    *,
    actor: Actor,
    day: date,
    department_id: int | None = None,
) -> list[AttendanceReportRow]:
    return build_attendance_rows(db, actor=actor, start=day, end=day, department_id=department_id)
