from datetime import date

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from app.audit import log_audit
from app.db import get_db
from app.errors import ApiError, ErrorCode
from app.schemas import (
    AppConfigRead,
    AppConfigUpdate,
    DailyReportRow,
    DepartmentCreate,
    DepartmentRead,
    DepartmentScheduleRead,
    DepartmentScheduleUpsert,
    DepartmentWithScheduleRead,
    GeofenceConfigRead,
    GeofenceConfigUpdate,
    UserCreate,
    UserCreatedRead,
    UserCreateResponse,
    UserRead,
    UserUpdate,
    WorkCalendarDayRead,
    WorkCalendarDayUpsert,
)
from app.security import Actor, require_actor, require_global_manager, require_reviewer
from app.services.configuration import (
    create_department,
    get_app_config_value,
    list_department_schedules,
    list_departments,
    list_work_calendar,
    set_app_config_value,
    update_geofence_config,
    upsert_department_schedule,
    upsert_work_calendar_day,
)
from app.services.exports import export_attendance_range
from app.services.geofence import get_or_create_geofence_config
from app.services.reports import build_daily_report
from app.services.users import create_user, list_users, update_user

router = APIRouter(tags=["admin"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


@router.post("/api/admin/users", response_model=UserCreateResponse)
def admin_create_user(
    payload: UserCreate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_global_manager),
) -> UserCreateResponse:
    user = create_user(
        db,
        actor=actor,
        email=payload.email,
        password=payload.password,
        full_name=payload.full_name,
        department_id=payload.department_id,
        role=payload.role,
        request_id=_request_id(request),
    )
    return UserCreateResponse(user=UserCreatedRead.model_validate(user))


@router.get("/api/admin/users", response_model=list[UserRead])
def admin_list_users(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_reviewer),
) -> list[UserRead]:
    return [UserRead.model_validate(item) for item in list_users(db, actor=actor)]


@router.patch("/api/admin/users/{user_id}", response_model=UserRead)
def admin_update_user(
    user_id: int,
    payload: UserUpdate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_global_manager),
) -> UserRead:
    summary = update_user(
        db,
        actor=actor,
        user_id=user_id,
        full_name=payload.full_name,
        department_id=payload.department_id,
        role=payload.role,
        is_active=payload.is_active,
        request_id=_request_id(request),
    )
    return UserRead.model_validate(summary)


@router.get("/api/config/geofence", response_model=GeofenceConfigRead)
def get_geofence_config(
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_actor),
) -> GeofenceConfigRead:
    return GeofenceConfigRead.model_validate(get_or_create_geofence_config(db))


@router.put("/api/config/geofence", response_model=GeofenceConfigRead)
def put_geofence_config(
    payload: GeofenceConfigUpdate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_global_manager),
) -> GeofenceConfigRead:
    config = update_geofence_config(
        db,
        actor=actor,
        center_lat=payload.center_lat,
        center_lng=payload.center_lng,
        radius_meters=payload.radius_meters,
        accuracy_threshold=payload.accuracy_threshold,
        block_on_poor_accuracy=payload.block_on_poor_accuracy,
        request_id=_request_id(request),
    )
    return GeofenceConfigRead.model_validate(config)


@router.get("/api/config/app/{key}", response_model=AppConfigRead)
def get_app_config(
    key: str,
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_global_manager),
) -> AppConfigRead:
    value = get_app_config_value(db, key)
    if value is None:
        raise ApiError(status_code=404, code=ErrorCode.NOT_FOUND, message="Clave de configuración no encontrada.")
    return AppConfigRead(key=key, value=value)


@router.put("/api/config/app/{key}", response_model=AppConfigRead)
def put_app_config(
    key: str,
    payload: AppConfigUpdate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_global_manager),
) -> AppConfigRead:
    entry = set_app_config_value(
        db,
        actor=actor,
        key=key,
        value=payload.value,
        description=payload.description,
        request_id=_request_id(request),
    )
    return AppConfigRead.model_validate(entry)


@router.get("/api/departments", response_model=list[DepartmentRead])
def get_departments(
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_actor),
) -> list[DepartmentRead]:
    return [DepartmentRead.model_validate(item) for item in list_departments(db)]


@router.post("/api/departments", response_model=DepartmentRead, status_code=201)
def post_department(
    payload: DepartmentCreate,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_global_manager),
) -> DepartmentRead:
    department = create_department(db, actor=actor, name=payload.name, request_id=_request_id(request))
    return DepartmentRead.model_validate(department)


@router.get("/api/departments/schedules", response_model=list[DepartmentWithScheduleRead])
def get_department_schedules(
    db: Session = Depends(get_db),
    _actor: Actor = Depends(require_reviewer),
) -> list[DepartmentWithScheduleRead]:
    return [
        DepartmentWithScheduleRead(
            department=DepartmentRead.model_validate(department),
            schedule=DepartmentScheduleRead.model_validate(schedule) if schedule is not None else None,
        )
        for department, schedule in list_department_schedules(db)
    ]


@router.put("/api/departments/{department_id}/schedule", response_model=DepartmentScheduleRead)
def put_department_schedule(
    department_id: int,
    payload: DepartmentScheduleUpsert,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_global_manager),
) -> DepartmentScheduleRead:
    schedule = upsert_department_schedule(
        db,
        actor=actor,
        department_id=department_id,
        checkin_start_time=payload.checkin_start_time,
        checkin_end_time=payload.checkin_end_time,
        checkout_start_time=payload.checkout_start_time,
        checkout_end_time=payload.checkout_end_time,
        timezone_name=payload.timezone,
        allow_early_checkin=payload.allow_early_checkin,
        allow_late_checkout=payload.allow_late_checkout,
        request_id=_request_id(request),
    )
    return DepartmentScheduleRead.model_validate(schedule)


@router.get("/api/departments/{department_id}/calendar", response_model=list[WorkCalendarDayRead])
def get_work_calendar(
    department_id: int,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_reviewer),
) -> list[WorkCalendarDayRead]:
    if actor.role.is_scoped_to_department() and department_id != actor.department_id:
        raise ApiError(status_code=403, code=ErrorCode.FORBIDDEN)
    rows = list_work_calendar(db, department_id=department_id, start=start_date, end=end_date)
    return [WorkCalendarDayRead.model_validate(item) for item in rows]


@router.put("/api/departments/{department_id}/calendar", response_model=WorkCalendarDayRead)
def put_work_calendar_day(
    department_id: int,
    payload: WorkCalendarDayUpsert,
    request: Request,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_global_manager),
) -> WorkCalendarDayRead:
    entry = upsert_work_calendar_day(
        db,
        actor=actor,
        department_id=department_id,
        day=payload.day,
        is_workday=payload.is_workday,
        late_tolerance_minutes=payload.late_tolerance_minutes,
        notes=payload.notes,
        request_id=_request_id(request),
    )
    return WorkCalendarDayRead.model_validate(entry)


@router.get("/api/reports/daily", response_model=list[DailyReportRow])
def daily_report(
    day: date = Query(...),
    department_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_reviewer),
) -> list[DailyReportRow]:
    rows = build_daily_report(db, actor=actor, day=day, department_id=department_id)
    return [DailyReportRow.model_validate(item) for item in rows]


@router.get("/api/reports/attendance.xlsx")
def export_attendance_xlsx(
    request: Request,
    start_date: date = Query(...),
    end_date: date = Query(...),
    department_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_reviewer),
) -> Response:
    payload = export_attendance_range(
        db,
        actor=actor,
        start_date=start_date,
        end_date=end_date,
        department_id=department_id,
    )
    log_audit(
        db,
        user_id=actor.user_id,
        action="attendance_export_xlsx",
        table_name="attendance_marks",
        new_data={
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "department_id": department_id,
        },
        request_id=_request_id(request),
    )
    return Response(
        content=payload,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": (
                f'attachment; filename="asistencia-{start_date.isoformat()}-{end_date.isoformat()}.xlsx"'
            ),
        },
    )
