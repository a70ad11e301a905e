"""Initial geolocated attendance schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

app_role = postgresql.ENUM(
    "employee",
    "department_head",
    "global_manager",
    name="app_role",
    create_type=False,
)
attendance_mark_type = postgresql.ENUM(
    "IN",
    "OUT",
    name="attendance_mark_type",
    create_type=False,
)
vacation_status = postgresql.ENUM(
    "pending",
    "approved",
    "rejected",
    "cancelled",
    name="vacation_status",
    create_type=False,
)


def _timestamps(*, with_updated: bool = False) -> list[sa.Column]:
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    ]
    if with_updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.text("CURRENT_TIMESTAMP"),
            )
        )
    return columns


def upgrade() -> None:
    bind = op.get_bind()
    app_role.create(bind, checkfirst=True)
    attendance_mark_type.create(bind, checkfirst=True)
    vacation_status.create(bind, checkfirst=True)

    op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("name", name="uq_departments_name"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=False),
        *_timestamps(with_updated=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("user_id", name="uq_profiles_user_id"),
    )
    op.create_index("ix_profiles_department_id", "profiles", ["department_id"], unique=False)

    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role", app_role, nullable=False, server_default=sa.text("'employee'")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", name="uq_user_roles_user_id"),
    )

    op.create_table(
        "attendance_marks",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("mark_type", attendance_mark_type, nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("accuracy", sa.Float(), nullable=True),
        sa.Column("distance_to_center", sa.Float(), nullable=True),
        sa.Column("inside_geofence", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("blocked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("block_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_attendance_marks_user_id", "attendance_marks", ["user_id"], unique=False)
    op.create_index("ix_attendance_marks_timestamp", "attendance_marks", ["timestamp"], unique=False)
    op.create_index(
        "ix_attendance_marks_user_timestamp",
        "attendance_marks",
        ["user_id", "timestamp"],
        unique=False,
    )

    op.create_table(
        "geofence_config",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("center_lat", sa.Float(), nullable=False),
        sa.Column("center_lng", sa.Float(), nullable=False),
        sa.Column("radius_meters", sa.Float(), nullable=False, server_default=sa.text("100")),
        sa.Column("accuracy_threshold", sa.Float(), nullable=False, server_default=sa.text("50")),
        sa.Column("block_on_poor_accuracy", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["updated_by"], ["users.id"], ondelete="SET NULL"),
    )
    # At most one row: every key expression is the constant true.
    op.execute("CREATE UNIQUE INDEX ux_geofence_config_singleton ON geofence_config ((true))")
    op.execute(
        "INSERT INTO geofence_config (center_lat, center_lng, radius_meters, accuracy_threshold, block_on_poor_accuracy) "
        "VALUES (0, 0, 100, 50, false)"
    )

    op.create_table(
        "department_schedules",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=False),
        sa.Column("checkin_start_time", sa.Time(timezone=False), nullable=False),
        sa.Column("checkin_end_time", sa.Time(timezone=False), nullable=False),
        sa.Column("checkout_start_time", sa.Time(timezone=False), nullable=True),
        sa.Column("checkout_end_time", sa.Time(timezone=False), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("allow_early_checkin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("allow_late_checkout", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(with_updated=True),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("department_id", name="uq_department_schedules_department_id"),
    )

    op.create_table(
        "user_rest_schedule",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("days_of_week", postgresql.ARRAY(sa.Integer()), nullable=False),
        sa.Column("effective_from", sa.Date(), nullable=False),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_user_rest_schedule_user_id", "user_rest_schedule", ["user_id"], unique=False)
    op.create_index(
        "ix_user_rest_schedule_effective_from",
        "user_rest_schedule",
        ["effective_from"],
        unique=False,
    )

    op.create_table(
        "work_calendar",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("is_workday", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("late_tolerance_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("department_id", "date", name="uq_work_calendar_department_date"),
    )
    op.create_index("ix_work_calendar_department_id", "work_calendar", ["department_id"], unique=False)

    op.create_table(
        "vacation_requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("requested_days", sa.Integer(), nullable=False),
        sa.Column("status", vacation_status, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("reason", sa.String(length=1000), nullable=True),
        sa.Column("review_comment", sa.String(length=1000), nullable=True),
        sa.Column("reviewed_by", sa.Integer(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(with_updated=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reviewed_by"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("end_date >= start_date", name="ck_vacation_requests_date_range"),
    )
    op.create_index("ix_vacation_requests_user_id", "vacation_requests", ["user_id"], unique=False)
    op.create_index("ix_vacation_requests_department_id", "vacation_requests", ["department_id"], unique=False)

    op.create_table(
        "app_config",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("value", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("key", name="uq_app_config_key"),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("ts_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("table_name", sa.String(length=100), nullable=True),
        sa.Column("record_id", sa.String(length=100), nullable=True),
        sa.Column("old_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("new_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )
    op.create_index("ix_audit_log_ts_utc", "audit_log", ["ts_utc"], unique=False)
    op.create_index("ix_audit_log_user_id", "audit_log", ["user_id"], unique=False)
    op.create_index("ix_audit_log_action", "audit_log", ["action"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_log_action", table_name="audit_log")
    op.drop_index("ix_audit_log_user_id", table_name="audit_log")
    op.drop_index("ix_audit_log_ts_utc", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_table("app_config")
    op.drop_index("ix_vacation_requests_department_id", table_name="vacation_requests")
    op.drop_index("ix_vacation_requests_user_id", table_name="vacation_requests")
    op.drop_table("vacation_requests")
    op.drop_index("ix_work_calendar_department_id", table_name="work_calendar")
    op.drop_table("work_calendar")
    op.drop_index("ix_user_rest_schedule_effective_from", table_name="user_rest_schedule")
    op.drop_index("ix_user_rest_schedule_user_id", table_name="user_rest_schedule")
    op.drop_table("user_rest_schedule")
    op.drop_table("department_schedules")
    op.drop_index("ux_geofence_config_singleton", table_name="geofence_config")
    op.drop_table("geofence_config")
    op.drop_index("ix_attendance_marks_user_timestamp", table_name="attendance_marks")
    op.drop_index("ix_attendance_marks_timestamp", table_name="attendance_marks")
    op.drop_index("ix_attendance_marks_user_id", table_name="attendance_marks")
    op.drop_table("attendance_marks")
    op.drop_table("user_roles")
    op.drop_index("ix_profiles_department_id", table_name="profiles")
    op.drop_table("profiles")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    op.drop_table("departments")

    bind = op.get_bind()
    vacation_status.drop(bind, checkfirst=True)
    attendance_mark_type.drop(bind, checkfirst=True)
    app_role.drop(bind, checkfirst=True)
