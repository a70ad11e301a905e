#!/usr/bin/env python
from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url

from app.services.schema_guard import EXPECTED_ALEMBIC_HEAD, REQUIRED_TABLE_COLUMNS
from app.settings import get_settings

COUNTED_TABLES = (
    "departments",
    "users",
    "profiles",
    "attendance_marks",
    "user_rest_schedule",
    "work_calendar",
    "vacation_requests",
    "audit_log",
)


def run() -> dict:
    database_url = get_settings().database_url
    engine = create_engine(database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "database_url": make_url(database_url).render_as_string(hide_password=True),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    with engine.connect() as conn:
        tables = set(
            conn.execute(
                text(
                    """
                    select table_name
                    from information_schema.tables
                    where table_schema='public'
                    """
                )
            ).scalars()
        )

        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})
        add(
            "migration_up_to_date",
            "ok" if EXPECTED_ALEMBIC_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_ALEMBIC_HEAD, "current": current_versions},
        )

        missing_tables = sorted(table for table in REQUIRED_TABLE_COLUMNS if table not in tables)
        add("missing_tables", "fail" if missing_tables else "ok", {"tables": missing_tables})

        counts = {
            table: conn.execute(text(f"select count(*) from {table}")).scalar_one()
            for table in COUNTED_TABLES
            if table in tables
        }
        add("row_counts", "ok", counts)

        if "geofence_config" in tables:
            geofence_rows = conn.execute(text("select count(*) from geofence_config")).scalar_one()
            add(
                "geofence_singleton",
                "ok" if geofence_rows == 1 else "warn",
                {"rows": geofence_rows},
            )

        if {"users", "profiles", "user_roles"} <= tables:
            incomplete_users = conn.execute(
                text(
                    """
                    select u.id
                    from users u
                    left join profiles p on p.user_id = u.id
                    left join user_roles r on r.user_id = u.id
                    where p.id is null or r.id is null
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "users_without_profile_or_role",
                "fail" if incomplete_users else "ok",
                {"sample_ids": [row[0] for row in incomplete_users]},
            )

        if {"profiles", "department_schedules"} <= tables:
            unscheduled_departments = conn.execute(
                text(
                    """
                    select distinct p.department_id
                    from profiles p
                    left join department_schedules s on s.department_id = p.department_id
                    where s.id is null
                    """
                )
            ).fetchall()
            add(
                "departments_without_schedule",
                "warn" if unscheduled_departments else "ok",
                {"department_ids": [row[0] for row in unscheduled_departments]},
            )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2, default=str))
