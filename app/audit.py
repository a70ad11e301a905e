from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from app.models import AuditLog

logger = logging.getLogger("app.audit")


def log_audit(
    db: Session,
    *,
    user_id: int | None,
    action: str,
    success: bool = True,
    table_name: str | None = None,
    record_id: str | None = None,
    old_data: dict[str, Any] | None = None,
    new_data: dict[str, Any] | None = None,
    request_id: str | None = None,
    commit: bool = True,
) -> None:
    """Record an audit row.

    With ``commit=False`` the row joins the caller's transaction, so it is only
    persisted if the audited change is.
    """
    audit = AuditLog(
        ts_utc=datetime.now(timezone.utc),
        user_id=user_id,
        action=action,
        table_name=table_name,
        record_id=record_id,
        old_data=old_data,
        new_data=new_data,
        success=success,
    )
    db.add(audit)
    if commit:
        try:
            db.commit()
        except Exception:
            db.rollback()
            logger.exception(
                "audit_log_write_failed",
                extra={
                    "request_id": request_id,
                    "action": action,
                    "user_id": user_id,
                    "success": success,
                },
            )
            return

    logger.info(
        "audit_event",
        extra={
            "request_id": request_id,
            "action": action,
            "user_id": user_id,
            "table_name": table_name,
            "record_id": record_id,
            "success": success,
            "new_data": new_data or {},
        },
    )
