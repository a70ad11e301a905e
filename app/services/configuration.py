from __future__ import annotations

from datetime import date, time
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.audit import log_audit
from app.errors import ApiError, ErrorCode
from app.models import AppConfig, Department, DepartmentSchedule, GeofenceConfig, WorkCalendarDay
from app.security import Actor
from app.services.geofence import get_or_create_geofence_config
from app.services.schedule import is_valid_timezone, parse_time_to_seconds


def _geofence_snapshot(config: GeofenceConfig) -> dict[str, Any]:
    return {
        "center_lat": config.center_lat,
        "center_lng": config.center_lng,
        "radius_meters": config.radius_meters,
        "accuracy_threshold": config.accuracy_threshold,
        "block_on_poor_accuracy": config.block_on_poor_accuracy,
    }


def update_geofence_config(
    db: Session,
    *,
    actor: Actor,
    center_lat: float,
    center_lng: float,
    radius_meters: float,
    accuracy_threshold: float,
    block_on_poor_accuracy: bool,
    request_id: str | None = None,
) -> GeofenceConfig:
    if not -90 <= center_lat <= 90 or not -180 <= center_lng <= 180:
        raise ApiError(status_code=422, code=ErrorCode.VALIDATION_ERROR, message="Coordenadas fuera de rango.")
    if radius_meters <= 0 or accuracy_threshold <= 0:
        raise ApiError(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            message="El radio y el umbral de precisión deben ser mayores que cero.",
        )

    config = get_or_create_geofence_config(db)
    old_data = _geofence_snapshot(config)
    config.center_lat = center_lat
    config.center_lng = center_lng
    config.radius_meters = radius_meters
    config.accuracy_threshold = accuracy_threshold
    config.block_on_poor_accuracy = block_on_poor_accuracy
    config.updated_by = actor.user_id
    log_audit(
        db,
        user_id=actor.user_id,
        action="geofence_updated",
        table_name="geofence_config",
        record_id=str(config.id),
        old_data=old_data,
        new_data=_geofence_snapshot(config),
        request_id=request_id,
        commit=False,
    )
    db.commit()
    db.refresh(config)
    return config


def list_departments(db: Session) -> list[Department]:
    return list(db.scalars(select(Department).order_by(Department.name.asc(), Department.id.asc())).all())


def create_department(db: Session, *, actor: Actor, name: str, request_id: str | None = None) -> Department:
    clean_name = (name or "").strip()
    if not clean_name:
        raise ApiError(status_code=422, code=ErrorCode.VALIDATION_ERROR, message="El nombre es obligatorio.")
    existing = db.scalar(select(Department).where(func.lower(Department.name) == clean_name.lower()))
    if existing is not None:
        raise ApiError(status_code=409, code=ErrorCode.CONFLICT, message="Ya existe un departamento con ese nombre.")

    department = Department(name=clean_name)
    db.add(department)
    db.flush()
    log_audit(
        db,
        user_id=actor.user_id,
        action="department_created",
        table_name="departments",
        record_id=str(department.id),
        new_data={"name": clean_name},
        request_id=request_id,
        commit=False,
    )
    db.commit()
    db.refresh(department)
    return department


def list_department_schedules(db: Session) -> list[tuple[Department, DepartmentSchedule | None]]:
    schedules = {item.department_id: item for item in db.scalars(select(DepartmentSchedule)).all()}
    return [(department, schedules.get(department.id)) for department in list_departments(db)]


def validate_schedule_times(
    *,
    checkin_start_time: time,
    checkin_end_time: time,
    checkout_start_time: time | None,
    checkout_end_time: time | None,
    timezone_name: str,
) -> None:
    if not is_valid_timezone(timezone_name):
        raise ApiError(status_code=422, code=ErrorCode.INVALID_SCHEDULE, message="Zona horaria inválida.")
    if parse_time_to_seconds(checkin_end_time) < parse_time_to_seconds(checkin_start_time):
        raise ApiError(
            status_code=422,
            code=ErrorCode.INVALID_SCHEDULE,
            message="La hora fin de entrada debe ser posterior a la hora de inicio.",
        )
    if (
        checkout_start_time is not None
        and checkout_end_time is not None
        and parse_time_to_seconds(checkout_end_time) < parse_time_to_seconds(checkout_start_time)
    ):
        raise ApiError(
            status_code=422,
            code=ErrorCode.INVALID_SCHEDULE,
            message="La hora fin de salida debe ser posterior a la hora de inicio de salida.",
        )


def upsert_department_schedule(
    db: Session,
    *,
    actor: Actor,
    department_id: int,
    checkin_start_time: time,
    checkin_end_time: time,
    checkout_start_time: time | None,
    checkout_end_time: time | None,
    timezone_name: str,
    allow_early_checkin: bool = False,
    allow_late_checkout: bool = True,
    request_id: str | None = None,
) -> DepartmentSchedule:
    if db.get(Department, department_id) is None:
        raise ApiError(status_code=404, code=ErrorCode.NOT_FOUND, message="Departamento no encontrado.")
    timezone_name = (timezone_name or "").strip()
    validate_schedule_times(
        checkin_start_time=checkin_start_time,
        checkin_end_time=checkin_end_time,
        checkout_start_time=checkout_start_time,
        checkout_end_time=checkout_end_time,
        timezone_name=timezone_name,
    )

    schedule = db.scalar(select(DepartmentSchedule).where(DepartmentSchedule.department_id == department_id))
    old_data = None
    if schedule is None:
        schedule = DepartmentSchedule(department_id=department_id)
        db.add(schedule)
    else:
        old_data = {
            "checkin_start_time": schedule.checkin_start_time,
            "checkin_end_time": schedule.checkin_end_time,
            "checkout_start_time": schedule.checkout_start_time,
            "timezone": schedule.timezone,
        }

    schedule.checkin_start_time = checkin_start_time
    schedule.checkin_end_time = checkin_end_time
    schedule.checkout_start_time = checkout_start_time
    schedule.checkout_end_time = checkout_end_time
    schedule.timezone = timezone_name
    schedule.allow_early_checkin = allow_early_checkin
    schedule.allow_late_checkout = allow_late_checkout
    log_audit(
        db,
        user_id=actor.user_id,
        action="department_schedule_upserted",
        table_name="department_schedules",
        record_id=str(department_id),
        old_data={key: str(value) for key, value in old_data.items()} if old_data else None,
        new_data={
            "checkin_start_time": str(checkin_start_time),
            "checkin_end_time": str(checkin_end_time),
            "checkout_start_time": str(checkout_start_time) if checkout_start_time else None,
            "timezone": timezone_name,
        },
        request_id=request_id,
        commit=False,
    )
    db.commit()
    db.refresh(schedule)
    return schedule


def list_work_calendar(
    db: Session,
    *,
    department_id: int,
    start: date | None = None,
    end: date | None = None,
) -> list[WorkCalendarDay]:
    stmt = select(WorkCalendarDay).where(WorkCalendarDay.department_id == department_id)
    if start is not None:
        stmt = stmt.where(WorkCalendarDay.day >= start)
    if end is not None:
        stmt = stmt.where(WorkCalendarDay.day <= end)
    return list(db.scalars(stmt.order_by(WorkCalendarDay.day.asc())).all())


def upsert_work_calendar_day(
    db: Session,
    *,
    actor: Actor,
    department_id: int,
    day: date,
    is_workday: bool,
    late_tolerance_minutes: int = 0,
    notes: str | None = None,
    request_id: str | None = None,
) -> WorkCalendarDay:
    if db.get(Department, department_id) is None:
        raise ApiError(status_code=404, code=ErrorCode.NOT_FOUND, message="Departamento no encontrado.")
    if late_tolerance_minutes < 0:
        raise ApiError(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            message="La tolerancia de retraso no puede ser negativa.",
        )

    entry = db.scalar(
        select(WorkCalendarDay).where(
            WorkCalendarDay.department_id == department_id,
            WorkCalendarDay.day == day,
        )
    )
    if entry is None:
        entry = WorkCalendarDay(department_id=department_id, day=day)
        db.add(entry)
    entry.is_workday = is_workday
    entry.late_tolerance_minutes = late_tolerance_minutes
    entry.notes = (notes or "").strip() or None
    log_audit(
        db,
        user_id=actor.user_id,
        action="work_calendar_upserted",
        table_name="work_calendar",
        record_id=f"{department_id}:{day.isoformat()}",
        new_data={"is_workday": is_workday, "late_tolerance_minutes": late_tolerance_minutes},
        request_id=request_id,
        commit=False,
    )
    db.commit()
    db.refresh(entry)
    return entry


def get_app_config_value(db: Session, key: str, default: Any = None) -> Any:
    entry = db.scalar(select(AppConfig).where(AppConfig.key == key))
    return entry.value if entry is not None else default


def set_app_config_value(
    db: Session,
    *,
    actor: Actor,
    key: str,
    value: Any,
    description: str | None = None,
    request_id: str | None = None,
) -> AppConfig:
    entry = db.scalar(select(AppConfig).where(AppConfig.key == key))
    old_value = None
    if entry is None:
        entry = AppConfig(key=key, value=value, description=description)
        db.add(entry)
    else:
        old_value = entry.value
        entry.value = value
        if description is not None:
            entry.description = description
    log_audit(
        db,
        user_id=actor.user_id,
        action="app_config_updated",
        table_name="app_config",
        record_id=key,
        old_data={"value": old_value},
        new_data={"value": value},
        request_id=request_id,
        commit=False,
    )
    db.commit()
    db.refresh(entry)
    return entry
