from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.audit import log_audit
from app.errors import ApiError, ErrorCode
from app.models import (
    AppConfig,
    AttendanceMark,
    AttendanceType,
    Profile,
    VacationRequest,
    VacationStatus,
)
from app.security import Actor
from app.services.schedule import get_department_schedule, local_date, local_day_bounds_utc
from app.settings import get_settings

logger = logging.getLogger("app.vacations")

ACCRUAL_RATE_CONFIG_KEY = "vacation_accrual_rate"
GLOBAL_MANAGER_REQUEST_MESSAGE = "Los gestores globales no pueden solicitar vacaciones personales."
ACTIVE_STATUSES = (VacationStatus.PENDING, VacationStatus.APPROVED)


@dataclass(frozen=True, slots=True)
class VacationBalance:
    worked_days: int
    accrual_rate: float
    earned_days: float
    approved_days: int
    pending_days: int
    available_days: float

    def to_dict(self) -> dict[str, float | int]:
        return asdict(self)


def compute_balance(
    worked_days: int,
    accrual_rate: float,
    approved_days: int,
    pending_days: int,
) -> VacationBalance:
    earned_days = worked_days * accrual_rate
    return VacationBalance(
        worked_days=worked_days,
        accrual_rate=accrual_rate,
        earned_days=earned_days,
        approved_days=approved_days,
        pending_days=pending_days,
        # Not clamped: reviewers need to see over-allocation.
        available_days=earned_days - approved_days,
    )


def requested_days_inclusive(start_date: date | None, end_date: date | None) -> int:
    if start_date is None or end_date is None or end_date < start_date:
        return 0
    return (end_date - start_date).days + 1


def resolve_accrual_rate(db: Session) -> float:
    entry = db.scalar(select(AppConfig).where(AppConfig.key == ACCRUAL_RATE_CONFIG_KEY))
    if entry is not None:
        try:
            return float(entry.value)
        except (TypeError, ValueError):
            logger.warning("vacation_accrual_rate_invalid", extra={"value": entry.value})
    return float(get_settings().vacation_accrual_rate)


def count_worked_days(db: Session, *, user_id: int, year: int, timezone_name: str | None) -> int:
    range_start, _ = local_day_bounds_utc(date(year, 1, 1), timezone_name)
    _, range_end = local_day_bounds_utc(date(year, 12, 31), timezone_name)
    timestamps = db.scalars(
        select(AttendanceMark.timestamp).where(
            AttendanceMark.user_id == user_id,
            AttendanceMark.mark_type == AttendanceType.IN,
            AttendanceMark.blocked.is_(False),
            AttendanceMark.timestamp >= range_start,
            AttendanceMark.timestamp < range_end,
        )
    ).all()
    return len({local_date(item, timezone_name) for item in timestamps})


def _sum_requested_days(db: Session, *, user_id: int, year: int, status: VacationStatus) -> int:
    total = db.scalar(
        select(func.coalesce(func.sum(VacationRequest.requested_days), 0)).where(
            VacationRequest.user_id == user_id,
            VacationRequest.status == status,
            VacationRequest.start_date >= date(year, 1, 1),
            VacationRequest.start_date <= date(year, 12, 31),
        )
    )
    return int(total or 0)


def get_vacation_balance(db: Session, *, user_id: int, year: int) -> VacationBalance:
    profile = db.scalar(select(Profile).where(Profile.user_id == user_id))
    schedule = get_department_schedule(db, profile.department_id if profile else None)
    return compute_balance(
        worked_days=count_worked_days(
            db,
            user_id=user_id,
            year=year,
            timezone_name=schedule.timezone if schedule else None,
        ),
        accrual_rate=resolve_accrual_rate(db),
        approved_days=_sum_requested_days(db, user_id=user_id, year=year, status=VacationStatus.APPROVED),
        pending_days=_sum_requested_days(db, user_id=user_id, year=year, status=VacationStatus.PENDING),
    )


def is_on_vacation(db: Session, *, user_id: int, day: date) -> bool:
    request = db.scalar(
        select(VacationRequest.id).where(
            VacationRequest.user_id == user_id,
            VacationRequest.status == VacationStatus.APPROVED,
            VacationRequest.start_date <= day,
            VacationRequest.end_date >= day,
        )
    )
    return request is not None


def _find_overlapping_request(
    db: Session,
    *,
    user_id: int,
    start_date: date,
    end_date: date,
) -> VacationRequest | None:
    return db.scalar(
        select(VacationRequest).where(
            VacationRequest.user_id == user_id,
            VacationRequest.status.in_(ACTIVE_STATUSES),
            VacationRequest.start_date <= end_date,
            VacationRequest.end_date >= start_date,
        )
    )


def request_vacation(
    db: Session,
    *,
    actor: Actor,
    start_date: date,
    end_date: date,
    reason: str | None = None,
) -> VacationRequest:
    if not actor.role.can_request_vacation():
        raise ApiError(status_code=403, code=ErrorCode.FORBIDDEN, message=GLOBAL_MANAGER_REQUEST_MESSAGE)

    requested_days = requested_days_inclusive(start_date, end_date)
    if requested_days <= 0:
        raise ApiError(status_code=422, code=ErrorCode.INVALID_DATE_RANGE)

    # Serializes overlap and balance checks for the same user until commit/rollback.
    profile = db.scalar(select(Profile).where(Profile.user_id == actor.user_id).with_for_update())
    if profile is None:
        db.rollback()
        raise ApiError(status_code=404, code=ErrorCode.NOT_FOUND, message="Perfil no encontrado.")

    if _find_overlapping_request(db, user_id=actor.user_id, start_date=start_date, end_date=end_date) is not None:
        db.rollback()
        raise ApiError(status_code=409, code=ErrorCode.VACATION_OVERLAP)

    if get_settings().vacation_enforce_balance:
        balance = get_vacation_balance(db, user_id=actor.user_id, year=start_date.year)
        if requested_days > balance.available_days - balance.pending_days:
            db.rollback()
            raise ApiError(
                status_code=422,
                code=ErrorCode.INSUFFICIENT_BALANCE,
                extra={"balance": balance.to_dict(), "requested_days": requested_days},
            )

    request = VacationRequest(
        user_id=actor.user_id,
        department_id=profile.department_id,
        start_date=start_date,
        end_date=end_date,
        requested_days=requested_days,
        status=VacationStatus.PENDING,
        reason=(reason or "").strip() or None,
    )
    db.add(request)
    db.commit()
    db.refresh(request)
    logger.info(
        "vacation_requested",
        extra={"user_id": actor.user_id, "request_id": request.id, "requested_days": requested_days},
    )
    return request


def _get_request_or_404(db: Session, request_id: int) -> VacationRequest:
    request = db.get(VacationRequest, request_id)
    if request is None:
        raise ApiError(status_code=404, code=ErrorCode.NOT_FOUND, message="Solicitud no encontrada.")
    return request


def cancel_vacation_request(db: Session, *, actor: Actor, request_id: int) -> VacationRequest:
    request = _get_request_or_404(db, request_id)
    if request.user_id != actor.user_id:
        raise ApiError(status_code=403, code=ErrorCode.FORBIDDEN)
    if request.status != VacationStatus.PENDING:
        raise ApiError(status_code=409, code=ErrorCode.INVALID_STATUS_TRANSITION)

    request.status = VacationStatus.CANCELLED
    db.commit()
    db.refresh(request)
    logger.info("vacation_cancelled", extra={"user_id": actor.user_id, "request_id": request.id})
    return request


def _assert_can_review(actor: Actor, request: VacationRequest) -> None:
    if not actor.role.can_review_vacations():
        raise ApiError(status_code=403, code=ErrorCode.FORBIDDEN)
    if request.user_id == actor.user_id:
        raise ApiError(
            status_code=403,
            code=ErrorCode.FORBIDDEN,
            message="No puedes revisar tu propia solicitud de vacaciones.",
        )
    if actor.role.is_scoped_to_department() and request.department_id != actor.department_id:
        raise ApiError(status_code=403, code=ErrorCode.FORBIDDEN)


def review_vacation_request(
    db: Session,
    *,
    actor: Actor,
    request_id: int,
    decision: VacationStatus,
    review_comment: str | None = None,
    request_id_header: str | None = None,
) -> VacationRequest:
    if decision not in (VacationStatus.APPROVED, VacationStatus.REJECTED):
        raise ApiError(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            message="La decisión debe ser 'approved' o 'rejected'.",
        )

    request = _get_request_or_404(db, request_id)
    _assert_can_review(actor, request)
    if request.status != VacationStatus.PENDING:
        raise ApiError(status_code=409, code=ErrorCode.INVALID_STATUS_TRANSITION)

    previous_status = request.status
    request.status = decision
    request.review_comment = (review_comment or "").strip() or None
    request.reviewed_by = actor.user_id
    request.reviewed_at = datetime.now(timezone.utc)
    log_audit(
        db,
        user_id=actor.user_id,
        action="vacation_reviewed",
        table_name="vacation_requests",
        record_id=str(request.id),
        old_data={"status": previous_status.value},
        new_data={"status": decision.value, "review_comment": request.review_comment},
        request_id=request_id_header,
        commit=False,
    )
    db.commit()
    db.refresh(request)
    return request


def list_my_requests(db: Session, *, actor: Actor) -> list[VacationRequest]:
    if not actor.role.can_request_vacation():
        return []
    return list(
        db.scalars(
            select(VacationRequest)
            .where(VacationRequest.user_id == actor.user_id)
            .order_by(VacationRequest.created_at.desc(), VacationRequest.id.desc())
        ).all()
    )


def list_review_queue(db: Session, *, actor: Actor) -> list[VacationRequest]:
    if not actor.role.can_review_vacations():
        return []
    stmt = (
        select(VacationRequest)
        .where(
            VacationRequest.status == VacationStatus.PENDING,
            VacationRequest.user_id != actor.user_id,
        )
        .order_by(VacationRequest.created_at.asc(), VacationRequest.id.asc())
    )
    if actor.role.is_scoped_to_department():
        stmt = stmt.where(VacationRequest.department_id == actor.department_id)
    return list(db.scalars(stmt).all())


def vacation_days_in_range(requests: list[VacationRequest], start: date, end: date) -> set[date]:
    days: set[date] = set()
    for request in requests:
        cursor = max(request.start_date, start)
        last = min(request.end_date, end)
        while cursor <= last:
            days.add(cursor)
            cursor += timedelta(days=1)
    return days


def list_approved_requests_in_range(
    db: Session,
    *,
    user_ids: list[int],
    start: date,
    end: date,
) -> list[VacationRequest]:
    if not user_ids:
        return []
    return list(
        db.scalars(
            select(VacationRequest).where(
                VacationRequest.user_id.in_(user_ids),
                VacationRequest.status == VacationStatus.APPROVED,
                VacationRequest.start_date <= end,
                VacationRequest.end_date >= start,
            )
        ).all()
    )
