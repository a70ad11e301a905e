from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.audit import log_audit
from app.db import get_db
from app.errors import ApiError, ErrorCode
from app.models import Profile
from app.schemas import LoginRequest, MeResponse, TokenResponse
from app.security import (
    Actor,
    create_access_token,
    ensure_login_attempt_allowed,
    register_login_failure,
    register_login_success,
    require_actor,
)
from app.services.users import authenticate, normalize_email

router = APIRouter(tags=["auth"])


def client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


@router.post("/api/auth/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> TokenResponse:
    ip = client_ip(request)
    request_id = getattr(request.state, "request_id", None)
    request.state.actor = "anonymous"

    if ip:
        try:
            ensure_login_attempt_allowed(ip)
        except ApiError:
            log_audit(
                db,
                user_id=None,
                action="login_failed",
                success=False,
                new_data={"reason": ErrorCode.TOO_MANY_ATTEMPTS.value, "ip": ip},
                request_id=request_id,
            )
            raise

    identity = authenticate(db, email=payload.email, password=payload.password)
    if identity is None:
        if ip:
            register_login_failure(ip)
        log_audit(
            db,
            user_id=None,
            action="login_failed",
            success=False,
            new_data={"reason": ErrorCode.INVALID_CREDENTIALS.value, "email": normalize_email(payload.email)},
            request_id=request_id,
        )
        raise ApiError(status_code=401, code=ErrorCode.INVALID_CREDENTIALS)

    if ip:
        register_login_success(ip)

    user, profile, role = identity
    department_id = profile.department_id if profile is not None else None
    access_token, expires_in, claims = create_access_token(
        user_id=user.id,
        email=user.email,
        role=role,
        department_id=department_id,
    )
    request.state.actor = role.value
    request.state.actor_id = str(user.id)
    log_audit(
        db,
        user_id=user.id,
        action="login_success",
        success=True,
        new_data={"jti": claims["jti"]},
        request_id=request_id,
    )
    return TokenResponse(
        access_token=access_token,
        expires_in=expires_in,
        role=role,
        department_id=department_id,
    )


@router.get("/api/auth/me", response_model=MeResponse)
def me(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> MeResponse:
    profile = db.scalar(select(Profile).where(Profile.user_id == actor.user_id))
    return MeResponse(
        user_id=actor.user_id,
        email=profile.email if profile is not None else "",
        full_name=profile.full_name if profile is not None else None,
        role=actor.role,
        department_id=actor.department_id,
    )
