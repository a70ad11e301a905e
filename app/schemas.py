from datetime import date, datetime, time
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.models import AttendanceType, DailyStatus, Role, VacationStatus
from app.services.attendance import DayState


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=256)


class TokenResponse(BaseModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_in: int
    role: Role
    department_id: int | None = None


class MeResponse(BaseModel):
    user_id: int
    email: str
    full_name: str | None = None
    role: Role
    department_id: int | None = None


class DepartmentCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)


class DepartmentRead(BaseModel):
    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)


class UserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=256)
    full_name: str = Field(min_length=1, max_length=255)
    department_id: int = Field(ge=1)
    role: Role = Role.EMPLOYEE


class UserUpdate(BaseModel):
    full_name: str | None = Field(default=None, max_length=255)
    department_id: int | None = Field(default=None, ge=1)
    role: Role | None = None
    is_active: bool | None = None


class UserCreatedRead(BaseModel):
    id: int
    email: str

    model_config = ConfigDict(from_attributes=True)


class UserCreateResponse(BaseModel):
    success: bool = True
    user: UserCreatedRead


class UserRead(BaseModel):
    id: int
    email: str
    full_name: str
    department_id: int
    role: Role
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class MarkCreate(BaseModel):
    # Untyped so unknown values surface as INVALID_MARK_TYPE rather than a 422.
    mark_type: Any = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)
    distance_to_center: float | None = Field(default=None, ge=0)
    inside_geofence: bool | None = None
    # Set by the device when it could not produce a position sample.
    geolocation_error: str | None = Field(default=None, max_length=64)


class MarkRead(BaseModel):
    id: int
    user_id: int
    mark_type: AttendanceType
    timestamp: datetime
    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    distance_to_center: float | None = None
    inside_geofence: bool
    blocked: bool
    block_reason: str | None = None

    model_config = ConfigDict(from_attributes=True)


class MarkResponse(BaseModel):
    success: bool = True
    allowed: bool = True
    mark: MarkRead
    message: str


class GeofenceConfigRead(BaseModel):
    center_lat: float
    center_lng: float
    radius_meters: float
    accuracy_threshold: float
    block_on_poor_accuracy: bool
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class GeofenceConfigUpdate(BaseModel):
    center_lat: float = Field(ge=-90, le=90)
    center_lng: float = Field(ge=-180, le=180)
    radius_meters: float = Field(gt=0)
    accuracy_threshold: float = Field(gt=0)
    block_on_poor_accuracy: bool = False


class GeofenceCheckRequest(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)


class GeofenceCheckResponse(BaseModel):
    is_inside: bool
    distance: int
    accuracy_ok: bool
    reading: Literal["INSIDE", "OUTSIDE", "UNTRUSTED"]


class DepartmentScheduleUpsert(BaseModel):
    checkin_start_time: time
    checkin_end_time: time
    checkout_start_time: time | None = None
    checkout_end_time: time | None = None
    timezone: str = Field(min_length=1, max_length=64)
    allow_early_checkin: bool = False
    allow_late_checkout: bool = True


class DepartmentScheduleRead(BaseModel):
    department_id: int
    checkin_start_time: time
    checkin_end_time: time
    checkout_start_time: time | None = None
    checkout_end_time: time | None = None
    timezone: str
    allow_early_checkin: bool
    allow_late_checkout: bool

    model_config = ConfigDict(from_attributes=True)


class DepartmentWithScheduleRead(BaseModel):
    department: DepartmentRead
    schedule: DepartmentScheduleRead | None = None


class WorkCalendarDayUpsert(BaseModel):
    day: date
    is_workday: bool = True
    late_tolerance_minutes: int = Field(default=0, ge=0, le=24 * 60)
    notes: str | None = Field(default=None, max_length=1000)


class WorkCalendarDayRead(BaseModel):
    id: int
    department_id: int
    day: date
    is_workday: bool
    late_tolerance_minutes: int
    notes: str | None = None

    model_config = ConfigDict(from_attributes=True)


class RestScheduleCreate(BaseModel):
    days_of_week: list[int] = Field(min_length=0, max_length=7)
    effective_from: date
    notes: str | None = Field(default=None, max_length=1000)
    user_id: int | None = Field(default=None, ge=1)


class RestScheduleRead(BaseModel):
    id: int
    user_id: int
    days_of_week: list[int]
    effective_from: date
    notes: str | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class TodayOverviewResponse(BaseModel):
    day: date
    state: DayState
    marks: list[MarkRead]
    can_mark_in: bool
    can_mark_out: bool
    is_rest_day: bool
    is_on_vacation: bool
    checkin_window_open: bool
    checkin_window_message: str | None = None
    checkout_reached: bool
    current_time_label: str | None = None
    schedule: DepartmentScheduleRead | None = None
    geofence: GeofenceConfigRead
    geolocation_timeout_seconds: int


class DailyHistoryRead(BaseModel):
    day: date
    status: DailyStatus
    late_minutes: int
    on_vacation: bool
    marks: list[MarkRead]


class VacationRequestCreate(BaseModel):
    start_date: date
    end_date: date
    reason: str | None = Field(default=None, max_length=1000)


class VacationReviewRequest(BaseModel):
    status: Literal["approved", "rejected"]
    review_comment: str | None = Field(default=None, max_length=1000)


class VacationRequestRead(BaseModel):
    id: int
    user_id: int
    department_id: int
    start_date: date
    end_date: date
    requested_days: int
    status: VacationStatus
    reason: str | None = None
    review_comment: str | None = None
    reviewed_by: int | None = None
    reviewed_at: datetime | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class VacationBalanceRead(BaseModel):
    year: int
    worked_days: int
    accrual_rate: float
    earned_days: float
    approved_days: int
    pending_days: int
    available_days: float


class AppConfigUpdate(BaseModel):
    value: Any
    description: str | None = Field(default=None, max_length=1000)


class AppConfigRead(BaseModel):
    key: str
    value: Any
    description: str | None = None

    model_config = ConfigDict(from_attributes=True)


class DailyReportRow(BaseModel):
    day: date
    user_id: int
    full_name: str
    email: str
    department_id: int
    department_name: str
    status: DailyStatus
    first_in_local: str | None = None
    last_out_local: str | None = None
    late_minutes: int
    on_vacation: bool
    inside_geofence: bool | None = None
    distance_to_center: float | None = None

    model_config = ConfigDict(from_attributes=True)
