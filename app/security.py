from __future__ import annotations

import threading
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from uuid import uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from passlib.exc import UnknownHashError
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import ApiError, ErrorCode
from app.models import Role, User
from app.settings import get_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)

_LOCK = threading.Lock()
_FAILED_ATTEMPTS: dict[str, deque[datetime]] = defaultdict(deque)
_MAX_ATTEMPTS = 10
_ATTEMPT_WINDOW = timedelta(minutes=10)


@dataclass(frozen=True, slots=True)
class Actor:
    """Session snapshot of the caller, threaded explicitly through services."""

    user_id: int
    role: Role
    department_id: int | None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _cleanup_attempts(ip: str, now: datetime) -> None:
    queue = _FAILED_ATTEMPTS[ip]
    threshold = now - _ATTEMPT_WINDOW
    while queue and queue[0] < threshold:
        queue.popleft()
    if not queue:
        _FAILED_ATTEMPTS.pop(ip, None)


def ensure_login_attempt_allowed(ip: str) -> None:
    now = _utcnow()
    with _LOCK:
        _cleanup_attempts(ip, now)
        queue = _FAILED_ATTEMPTS.get(ip, deque())
        if len(queue) >= _MAX_ATTEMPTS:
            raise ApiError(status_code=429, code=ErrorCode.TOO_MANY_ATTEMPTS)


def register_login_failure(ip: str) -> None:
    now = _utcnow()
    with _LOCK:
        _cleanup_attempts(ip, now)
        _FAILED_ATTEMPTS[ip].append(now)


def register_login_success(ip: str) -> None:
    with _LOCK:
        _FAILED_ATTEMPTS.pop(ip, None)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError, UnknownHashError):
        return False


def create_access_token(
    *,
    user_id: int,
    email: str,
    role: Role,
    department_id: int | None,
) -> tuple[str, int, dict[str, Any]]:
    settings = get_settings()
    now = _utcnow()
    exp = now + timedelta(minutes=settings.access_token_minutes)
    claims = {
        "sub": str(user_id),
        "email": email,
        "role": role.value,
        "department_id": department_id,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "jti": str(uuid4()),
        "typ": "access",
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm="HS256")
    return token, settings.access_token_minutes * 60, claims


def decode_token(token: str) -> Actor:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_iat": True, "require_exp": True},
        )
    except JWTError as exc:
        raise ApiError(status_code=401, code=ErrorCode.UNAUTHORIZED, message="No autorizado") from exc

    if payload.get("typ") != "access":
        raise ApiError(status_code=401, code=ErrorCode.UNAUTHORIZED, message="No autorizado")

    try:
        user_id = int(payload["sub"])
        role = Role(payload.get("role"))
    except (KeyError, TypeError, ValueError) as exc:
        raise ApiError(status_code=401, code=ErrorCode.UNAUTHORIZED, message="No autorizado") from exc

    raw_department_id = payload.get("department_id")
    department_id = int(raw_department_id) if raw_department_id is not None else None
    return Actor(user_id=user_id, role=role, department_id=department_id)


def require_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Actor:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise ApiError(status_code=401, code=ErrorCode.UNAUTHORIZED, message="No autorizado")

    claims = decode_token(credentials.credentials)

    # Role and department are read from storage, not trusted from the token.
    user = db.get(User, claims.user_id)
    if user is None or not user.is_active:
        raise ApiError(status_code=401, code=ErrorCode.UNAUTHORIZED, message="No autorizado")

    role = user.role.role if user.role is not None else Role.EMPLOYEE
    department_id = user.profile.department_id if user.profile is not None else None
    actor = Actor(user_id=user.id, role=role, department_id=department_id)

    request.state.actor = actor.role.value
    request.state.actor_id = str(actor.user_id)
    return actor


def require_roles(*roles: Role) -> Callable[..., Actor]:
    if not roles:
        raise ValueError("At least one role is required")
    allowed = frozenset(roles)

    def _dependency(actor: Actor = Depends(require_actor)) -> Actor:
        if actor.role not in allowed:
            raise ApiError(status_code=403, code=ErrorCode.FORBIDDEN)
        return actor

    return _dependency


require_global_manager = require_roles(*(role for role in Role if role.can_manage_configuration()))
require_reviewer = require_roles(*(role for role in Role if role.can_review_vacations()))
