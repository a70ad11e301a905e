from __future__ import annotations

import enum
from datetime import date, datetime, time, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base


class AttendanceType(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"


class Role(str, enum.Enum):
    EMPLOYEE = "employee"
    DEPARTMENT_HEAD = "department_head"
    GLOBAL_MANAGER = "global_manager"

    def can_mark_attendance(self) -> bool:
        if self is Role.EMPLOYEE:
            return True
        if self is Role.DEPARTMENT_HEAD:
            return True
        if self is Role.GLOBAL_MANAGER:
            return False
        raise ValueError(f"Unknown role: {self}")

    def can_request_vacation(self) -> bool:
        if self is Role.EMPLOYEE:
            return True
        if self is Role.DEPARTMENT_HEAD:
            return True
        if self is Role.GLOBAL_MANAGER:
            return False
        raise ValueError(f"Unknown role: {self}")

    def can_review_vacations(self) -> bool:
        if self is Role.EMPLOYEE:
            return False
        if self is Role.DEPARTMENT_HEAD:
            return True
        if self is Role.GLOBAL_MANAGER:
            return True
        raise ValueError(f"Unknown role: {self}")

    def can_manage_configuration(self) -> bool:
        if self is Role.EMPLOYEE:
            return False
        if self is Role.DEPARTMENT_HEAD:
            return False
        if self is Role.GLOBAL_MANAGER:
            return True
        raise ValueError(f"Unknown role: {self}")

    def is_scoped_to_department(self) -> bool:
        if self is Role.EMPLOYEE:
            return True
        if self is Role.DEPARTMENT_HEAD:
            return True
        if self is Role.GLOBAL_MANAGER:
            return False
        raise ValueError(f"Unknown role: {self}")


class VacationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class DailyStatus(str, enum.Enum):
    PRESENTE = "PRESENTE"
    TARDE = "TARDE"
    AUSENTE = "AUSENTE"
    DESCANSO = "DESCANSO"
    NO_LABORABLE = "NO_LABORABLE"


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    profiles: Mapped[list[Profile]] = relationship(back_populates="department")
    schedule: Mapped[DepartmentSchedule | None] = relationship(back_populates="department", uselist=False)
    calendar_days: Mapped[list[WorkCalendarDay]] = relationship(back_populates="department")


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    profile: Mapped[Profile | None] = relationship(back_populates="user", uselist=False)
    role: Mapped[UserRole | None] = relationship(back_populates="user", uselist=False)


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    department_id: Mapped[int] = mapped_column(
        ForeignKey("departments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    user: Mapped[User] = relationship(back_populates="profile")
    department: Mapped[Department] = relationship(back_populates="profiles")


class UserRole(Base):
    __tablename__ = "user_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    role: Mapped[Role] = mapped_column(
        Enum(Role, name="app_role", values_callable=lambda items: [item.value for item in items]),
        nullable=False,
        default=Role.EMPLOYEE,
    )

    user: Mapped[User] = relationship(back_populates="role")


class AttendanceMark(Base):
    __tablename__ = "attendance_marks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    mark_type: Mapped[AttendanceType] = mapped_column(
        Enum(AttendanceType, name="attendance_mark_type"),
        nullable=False,
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)
    distance_to_center: Mapped[float | None] = mapped_column(Float, nullable=True)
    inside_geofence: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    block_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class GeofenceConfig(Base):
    __tablename__ = "geofence_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    center_lat: Mapped[float] = mapped_column(Float, nullable=False)
    center_lng: Mapped[float] = mapped_column(Float, nullable=False)
    radius_meters: Mapped[float] = mapped_column(Float, nullable=False, default=100, server_default=text("100"))
    accuracy_threshold: Mapped[float] = mapped_column(Float, nullable=False, default=50, server_default=text("50"))
    block_on_poor_accuracy: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    updated_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )


class DepartmentSchedule(Base):
    __tablename__ = "department_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    department_id: Mapped[int] = mapped_column(
        ForeignKey("departments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    checkin_start_time: Mapped[time] = mapped_column(Time(timezone=False), nullable=False)
    checkin_end_time: Mapped[time] = mapped_column(Time(timezone=False), nullable=False)
    checkout_start_time: Mapped[time | None] = mapped_column(Time(timezone=False), nullable=True)
    checkout_end_time: Mapped[time | None] = mapped_column(Time(timezone=False), nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)
    allow_early_checkin: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    allow_late_checkout: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    department: Mapped[Department] = relationship(back_populates="schedule")


class RestSchedule(Base):
    __tablename__ = "user_rest_schedule"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    days_of_week: Mapped[list[int]] = mapped_column(ARRAY(Integer), nullable=False)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )


class WorkCalendarDay(Base):
    __tablename__ = "work_calendar"
    __table_args__ = (
        UniqueConstraint("department_id", "date", name="uq_work_calendar_department_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    department_id: Mapped[int] = mapped_column(
        ForeignKey("departments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day: Mapped[date] = mapped_column("date", Date, nullable=False)
    is_workday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    late_tolerance_minutes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    department: Mapped[Department] = relationship(back_populates="calendar_days")


class VacationRequest(Base):
    __tablename__ = "vacation_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    department_id: Mapped[int] = mapped_column(
        ForeignKey("departments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    requested_days: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[VacationStatus] = mapped_column(
        Enum(VacationStatus, name="vacation_status", values_callable=lambda items: [item.value for item in items]),
        nullable=False,
        default=VacationStatus.PENDING,
        server_default=text("'pending'"),
    )
    reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    review_comment: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    reviewed_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class AppConfig(Base):
    __tablename__ = "app_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    value: Mapped[Any] = mapped_column(JSONB, nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    table_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    record_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    old_data: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    new_data: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
