from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.audit import log_audit
from app.errors import ApiError, ErrorCode
from app.models import Department, Profile, Role, User, UserRole
from app.security import Actor, hash_password, verify_password

logger = logging.getLogger("app.users")

MIN_PASSWORD_LENGTH = 6


@dataclass(frozen=True, slots=True)
class UserSummary:
    id: int
    email: str
    full_name: str
    department_id: int
    role: Role
    is_active: bool


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


def _summary(user: User, profile: Profile, role: Role) -> UserSummary:
    return UserSummary(
        id=user.id,
        email=user.email,
        full_name=profile.full_name,
        department_id=profile.department_id,
        role=role,
        is_active=user.is_active,
    )


def _require_department(db: Session, department_id: int) -> Department:
    department = db.get(Department, department_id)
    if department is None:
        raise ApiError(status_code=404, code=ErrorCode.NOT_FOUND, message="Departamento no encontrado.")
    return department


def create_user(
    db: Session,
    *,
    actor: Actor,
    email: str,
    password: str,
    full_name: str,
    department_id: int,
    role: Role = Role.EMPLOYEE,
    request_id: str | None = None,
) -> User:
    normalized_email = normalize_email(email)
    clean_name = (full_name or "").strip()
    if not normalized_email or not clean_name or not password:
        raise ApiError(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            message="Email, contraseña, nombre y departamento son obligatorios.",
        )
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ApiError(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            message=f"La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres.",
        )

    existing = db.scalar(select(User).where(func.lower(User.email) == normalized_email))
    if existing is not None:
        raise ApiError(status_code=409, code=ErrorCode.EMAIL_TAKEN)
    _require_department(db, department_id)

    user = User(email=normalized_email, password_hash=hash_password(password), is_active=True)
    db.add(user)
    try:
        db.flush()
        db.add(
            Profile(
                user_id=user.id,
                full_name=clean_name,
                email=normalized_email,
                department_id=department_id,
            )
        )
        db.add(UserRole(user_id=user.id, role=role))
        log_audit(
            db,
            user_id=actor.user_id,
            action="user_created",
            table_name="users",
            record_id=str(user.id),
            new_data={"email": normalized_email, "department_id": department_id, "role": role.value},
            request_id=request_id,
            commit=False,
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(status_code=409, code=ErrorCode.EMAIL_TAKEN) from exc

    db.refresh(user)
    logger.info("user_created", extra={"user_id": user.id, "role": role.value, "department_id": department_id})
    return user


def list_users(db: Session, *, actor: Actor) -> list[UserSummary]:
    stmt = (
        select(User, Profile, UserRole)
        .join(Profile, Profile.user_id == User.id)
        .join(UserRole, UserRole.user_id == User.id)
        .order_by(Profile.full_name.asc(), User.id.asc())
    )
    if actor.role.is_scoped_to_department():
        if actor.department_id is None:
            return []
        stmt = stmt.where(Profile.department_id == actor.department_id)
    return [_summary(user, profile, user_role.role) for user, profile, user_role in db.execute(stmt).all()]


def update_user(
    db: Session,
    *,
    actor: Actor,
    user_id: int,
    full_name: str | None = None,
    department_id: int | None = None,
    role: Role | None = None,
    is_active: bool | None = None,
    request_id: str | None = None,
) -> UserSummary:
    user = db.get(User, user_id)
    if user is None or user.profile is None:
        raise ApiError(status_code=404, code=ErrorCode.NOT_FOUND, message="Usuario no encontrado.")
    profile = user.profile
    user_role = user.role
    if user_role is None:
        user_role = UserRole(user_id=user.id, role=Role.EMPLOYEE)
        db.add(user_role)

    old_data = {
        "full_name": profile.full_name,
        "department_id": profile.department_id,
        "role": user_role.role.value,
        "is_active": user.is_active,
    }

    if full_name is not None:
        clean_name = full_name.strip()
        if not clean_name:
            raise ApiError(status_code=422, code=ErrorCode.VALIDATION_ERROR, message="El nombre es obligatorio.")
        profile.full_name = clean_name
    if department_id is not None and department_id != profile.department_id:
        _require_department(db, department_id)
        profile.department_id = department_id
    if role is not None:
        user_role.role = role
    if is_active is not None:
        if user.id == actor.user_id and not is_active:
            raise ApiError(
                status_code=409,
                code=ErrorCode.CONFLICT,
                message="No puedes desactivar tu propio usuario.",
            )
        user.is_active = is_active

    new_data = {
        "full_name": profile.full_name,
        "department_id": profile.department_id,
        "role": user_role.role.value,
        "is_active": user.is_active,
    }
    log_audit(
        db,
        user_id=actor.user_id,
        action="user_updated",
        table_name="users",
        record_id=str(user.id),
        old_data=old_data,
        new_data=new_data,
        request_id=request_id,
        commit=False,
    )
    db.commit()
    db.refresh(user)
    return _summary(user, profile, user_role.role)


def authenticate(db: Session, *, email: str, password: str) -> tuple[User, Profile | None, Role] | None:
    user = db.scalar(select(User).where(func.lower(User.email) == normalize_email(email)))
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    role = user.role.role if user.role is not None else Role.EMPLOYEE
    return user, user.profile, role
