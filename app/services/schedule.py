from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import DepartmentSchedule
from app.settings import get_default_timezone_name


class ScheduleWindow(Protocol):
    checkin_start_time: time | str
    checkin_end_time: time | str
    checkout_start_time: time | str | None
    timezone: str
    allow_early_checkin: bool


@dataclass(frozen=True, slots=True)
class WindowCheck:
    allowed: bool
    message: str | None = None


NOT_CONFIGURED_MESSAGE = "Departamento sin horario configurado"


def parse_time_to_seconds(value: time | str) -> int:
    """Seconds since midnight for a ``time`` or an "HH:MM[:SS]" string."""
    if isinstance(value, time):
        return value.hour * 3600 + value.minute * 60 + value.second

    parts = value.strip().split(":")
    if not parts or len(parts) > 3 or not all(part.strip().isdigit() for part in parts):
        raise ValueError(f"Invalid time of day: {value!r}")
    hours, minutes, seconds = (int(part) for part in parts + ["0"] * (3 - len(parts)))
    if hours > 23 or minutes > 59 or seconds > 59:
        raise ValueError(f"Invalid time of day: {value!r}")
    return hours * 3600 + minutes * 60 + seconds


def format_hhmm(value: time | str) -> str:
    total = parse_time_to_seconds(value)
    return f"{total // 3600:02d}:{(total % 3600) // 60:02d}"


@lru_cache(maxsize=128)
def resolve_timezone(name: str | None) -> ZoneInfo:
    raw_name = (name or "").strip() or get_default_timezone_name()
    try:
        return ZoneInfo(raw_name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def _normalize_now(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def local_now(now: datetime, timezone_name: str | None) -> datetime:
    return _normalize_now(now).astimezone(resolve_timezone(timezone_name))


def local_date(now: datetime, timezone_name: str | None) -> date:
    return local_now(now, timezone_name).date()


def local_seconds_since_midnight(now: datetime, timezone_name: str | None) -> int:
    local_value = local_now(now, timezone_name)
    return local_value.hour * 3600 + local_value.minute * 60 + local_value.second


def _window_label(schedule: ScheduleWindow) -> str:
    return (
        f"Horario: {format_hhmm(schedule.checkin_start_time)} - "
        f"{format_hhmm(schedule.checkin_end_time)} ({schedule.timezone})"
    )


def is_within_checkin_window(schedule: ScheduleWindow | None, now: datetime) -> WindowCheck:
    if schedule is None:
        return WindowCheck(allowed=False, message=NOT_CONFIGURED_MESSAGE)

    current_seconds = local_seconds_since_midnight(now, schedule.timezone)
    start_seconds = parse_time_to_seconds(schedule.checkin_start_time)
    end_seconds = parse_time_to_seconds(schedule.checkin_end_time)

    if current_seconds < start_seconds and not schedule.allow_early_checkin:
        return WindowCheck(
            allowed=False,
            message=f"Entrada anticipada no permitida. {_window_label(schedule)}",
        )

    if current_seconds > end_seconds:
        return WindowCheck(
            allowed=False,
            message=f"Hora de entrada excedida. {_window_label(schedule)}",
        )

    return WindowCheck(allowed=True)


def has_reached_checkout_time(schedule: ScheduleWindow | None, now: datetime) -> bool:
    if schedule is None or schedule.checkout_start_time is None:
        return False
    current_seconds = local_seconds_since_midnight(now, schedule.timezone)
    return current_seconds >= parse_time_to_seconds(schedule.checkout_start_time)


def current_time_label(schedule: ScheduleWindow | None, now: datetime) -> str | None:
    if schedule is None:
        return None
    local_value = local_now(now, schedule.timezone)
    return f"{local_value:%H:%M} ({schedule.timezone})"


def get_department_schedule(db: Session, department_id: int | None) -> DepartmentSchedule | None:
    if department_id is None:
        return None
    return db.scalar(select(DepartmentSchedule).where(DepartmentSchedule.department_id == department_id))


def local_day_bounds_utc(day: date, timezone_name: str | None) -> tuple[datetime, datetime]:
    tz = resolve_timezone(timezone_name)
    local_start = datetime.combine(day, time.min, tzinfo=tz)
    local_end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return local_start.astimezone(timezone.utc), local_end.astimezone(timezone.utc)


def department_local_date(db: Session, department_id: int | None, now: datetime | None = None) -> date:
    schedule = get_department_schedule(db, department_id)
    return local_date(now or datetime.now(timezone.utc), schedule.timezone if schedule is not None else None)
