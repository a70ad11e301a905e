from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Protocol, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.errors import ApiError, ErrorCode
from app.models import RestSchedule

MIN_REST_DAY_SEPARATION = 3
SEPARATION_ERROR = "Los días de descanso deben tener al menos 3 días de separación entre ellos"


class RestScheduleLike(Protocol):
    id: int
    days_of_week: list[int]
    effective_from: date


RestScheduleT = TypeVar("RestScheduleT", bound=RestScheduleLike)


@dataclass(frozen=True, slots=True)
class SeparationCheck:
    valid: bool
    error: str | None = None


def circular_day_distance(day_a: int, day_b: int) -> int:
    direct = abs(day_a - day_b)
    return min(direct, 7 - direct)


def validate_rest_days_separation(days: Iterable[int]) -> SeparationCheck:
    selected = sorted(set(days))
    if len(selected) < 2:
        return SeparationCheck(valid=True)

    for index, first in enumerate(selected):
        for second in selected[index + 1:]:
            if circular_day_distance(first, second) < MIN_REST_DAY_SEPARATION:
                return SeparationCheck(valid=False, error=SEPARATION_ERROR)
    return SeparationCheck(valid=True)


def sunday_based_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


def select_effective_rest_schedule(
    schedules: Sequence[RestScheduleT],
    day: date,
) -> RestScheduleT | None:
    candidates = [item for item in schedules if item.effective_from <= day]
    if not candidates:
        return None
    return max(candidates, key=lambda item: (item.effective_from.toordinal(), item.id or 0))


def is_rest_day(schedule: RestScheduleLike | None, day: date) -> bool:
    if schedule is None:
        return False
    return sunday_based_weekday(day) in set(schedule.days_of_week or [])


def normalize_days_of_week(raw_days: Iterable[int]) -> list[int]:
    normalized: list[int] = []
    for raw_day in raw_days:
        day = int(raw_day)
        if day < 0 or day > 6:
            raise ApiError(
                status_code=422,
                code=ErrorCode.INVALID_REST_DAYS,
                message="Los días de descanso deben estar entre 0 (domingo) y 6 (sábado).",
            )
        if day not in normalized:
            normalized.append(day)
    return sorted(normalized)


def list_rest_schedules(db: Session, *, user_id: int) -> list[RestSchedule]:
    return list(
        db.scalars(
            select(RestSchedule)
            .where(RestSchedule.user_id == user_id)
            .order_by(RestSchedule.effective_from.desc(), RestSchedule.id.desc())
        ).all()
    )


def resolve_rest_day_for_user(db: Session, *, user_id: int, day: date) -> bool:
    schedule = select_effective_rest_schedule(list_rest_schedules(db, user_id=user_id), day)
    return is_rest_day(schedule, day)


def create_rest_schedule(
    db: Session,
    *,
    user_id: int,
    days_of_week: Iterable[int],
    effective_from: date,
    notes: str | None = None,
) -> RestSchedule:
    days = normalize_days_of_week(days_of_week)
    check = validate_rest_days_separation(days)
    if not check.valid:
        raise ApiError(status_code=422, code=ErrorCode.INVALID_REST_DAYS, message=check.error)

    schedule = RestSchedule(
        user_id=user_id,
        days_of_week=days,
        effective_from=effective_from,
        notes=(notes or "").strip() or None,
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    return schedule
