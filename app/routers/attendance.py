from datetime import date, timedelta

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.audit import log_audit
from app.db import get_db
from app.errors import ApiError, ErrorCode
from app.schemas import (
    DailyHistoryRead,
    GeofenceCheckRequest,
    GeofenceCheckResponse,
    MarkCreate,
    MarkRead,
    MarkResponse,
    RestScheduleCreate,
    RestScheduleRead,
    TodayOverviewResponse,
)
from app.security import Actor, require_actor
from app.services.attendance import get_today_overview, list_marks_history, submit_mark
from app.services.geofence import (
    GeoSample,
    classify_reading,
    evaluate_geofence,
    get_or_create_geofence_config,
)
from app.services.rest_days import create_rest_schedule, list_rest_schedules
from app.services.schedule import department_local_date

router = APIRouter(tags=["attendance"])


@router.post("/api/attendance/marks", response_model=MarkResponse)
def create_mark(
    payload: MarkCreate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> MarkResponse:
    request.state.mark_type = payload.mark_type
    try:
        result = submit_mark(
            db,
            actor=actor,
            mark_type=payload.mark_type,
            latitude=payload.latitude,
            longitude=payload.longitude,
            accuracy=payload.accuracy,
            distance_to_center=payload.distance_to_center,
            inside_geofence=payload.inside_geofence,
            geolocation_error=payload.geolocation_error,
        )
    except ApiError as exc:
        request.state.decision = exc.code
        raise

    request.state.decision = "ALLOW"
    mark = result.mark
    log_audit(
        db,
        user_id=actor.user_id,
        action="attendance_mark_created",
        table_name="attendance_marks",
        record_id=str(mark.id),
        new_data={
            "mark_type": mark.mark_type.value,
            "inside_geofence": mark.inside_geofence,
            "distance_to_center": mark.distance_to_center,
        },
        request_id=getattr(request.state, "request_id", None),
    )
    return MarkResponse(mark=MarkRead.model_validate(mark), message=result.message)


@router.get("/api/attendance/today", response_model=TodayOverviewResponse)
def attendance_today(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> TodayOverviewResponse:
    return TodayOverviewResponse.model_validate(get_today_overview(db, actor=actor), from_attributes=True)


@router.get("/api/attendance/history", response_model=list[DailyHistoryRead])
def attendance_history(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> list[DailyHistoryRead]:
    resolved_end = end_date or department_local_date(db, actor.department_id)
    resolved_start = start_date or (resolved_end - timedelta(days=29))
    history = list_marks_history(db, actor=actor, start=resolved_start, end=resolved_end)
    return [DailyHistoryRead.model_validate(item, from_attributes=True) for item in history]


@router.post("/api/attendance/geofence-check", response_model=GeofenceCheckResponse)
def geofence_check(
    payload: GeofenceCheckRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> GeofenceCheckResponse:
    config = get_or_create_geofence_config(db)
    result = evaluate_geofence(
        GeoSample(latitude=payload.latitude, longitude=payload.longitude, accuracy=payload.accuracy),
        config,
    )
    reading = classify_reading(result.is_inside, payload.accuracy, config)
    return GeofenceCheckResponse(
        is_inside=result.is_inside,
        distance=result.distance,
        accuracy_ok=result.accuracy_ok,
        reading=reading.value,
    )


def _resolve_rest_schedule_target(actor: Actor, user_id: int | None) -> int:
    if user_id is None or user_id == actor.user_id:
        return actor.user_id
    if not actor.role.can_manage_configuration():
        raise ApiError(status_code=403, code=ErrorCode.FORBIDDEN)
    return user_id


@router.get("/api/rest-schedules", response_model=list[RestScheduleRead])
def get_rest_schedules(
    user_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> list[RestScheduleRead]:
    target_user_id = _resolve_rest_schedule_target(actor, user_id)
    return [RestScheduleRead.model_validate(item) for item in list_rest_schedules(db, user_id=target_user_id)]


@router.post("/api/rest-schedules", response_model=RestScheduleRead, status_code=201)
def post_rest_schedule(
    payload: RestScheduleCreate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> RestScheduleRead:
    target_user_id = _resolve_rest_schedule_target(actor, payload.user_id)
    schedule = create_rest_schedule(
        db,
        user_id=target_user_id,
        days_of_week=payload.days_of_week,
        effective_from=payload.effective_from,
        notes=payload.notes,
    )
    log_audit(
        db,
        user_id=actor.user_id,
        action="rest_schedule_created",
        table_name="user_rest_schedule",
        record_id=str(schedule.id),
        new_data={
            "user_id": target_user_id,
            "days_of_week": schedule.days_of_week,
            "effective_from": schedule.effective_from.isoformat(),
        },
        request_id=getattr(request.state, "request_id", None),
    )
    return RestScheduleRead.model_validate(schedule)
