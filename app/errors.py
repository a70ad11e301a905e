from __future__ import annotations

import enum
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class ErrorCode(str, enum.Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    TOO_MANY_ATTEMPTS = "TOO_MANY_ATTEMPTS"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_MARK_TYPE = "INVALID_MARK_TYPE"
    OUTSIDE_GEOFENCE = "OUTSIDE_GEOFENCE"
    OUT_NOT_ALLOWED_YET = "OUT_NOT_ALLOWED_YET"
    ON_VACATION = "ON_VACATION"
    REST_DAY = "REST_DAY"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INSERT_ERROR = "INSERT_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    GEOLOCATION_TIMEOUT = "GEOLOCATION_TIMEOUT"
    GEOLOCATION_PERMISSION_DENIED = "GEOLOCATION_PERMISSION_DENIED"
    GEOLOCATION_UNAVAILABLE = "GEOLOCATION_UNAVAILABLE"
    INVALID_SCHEDULE = "INVALID_SCHEDULE"
    INVALID_REST_DAYS = "INVALID_REST_DAYS"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    VACATION_OVERLAP = "VACATION_OVERLAP"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    EMAIL_TAKEN = "EMAIL_TAKEN"


# Localized end-user messages, keyed by code. Policy denials that carry their own
# message (check-in window, eligibility reasons) are surfaced verbatim instead.
USER_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.UNAUTHORIZED: "No tienes permisos para registrar asistencia.",
    ErrorCode.FORBIDDEN: "No tienes permisos suficientes para realizar esta acción.",
    ErrorCode.NOT_FOUND: "El recurso solicitado no existe.",
    ErrorCode.CONFLICT: "La operación entra en conflicto con el estado actual.",
    ErrorCode.TOO_MANY_ATTEMPTS: "Demasiados intentos. Intenta nuevamente en unos minutos.",
    ErrorCode.INVALID_CREDENTIALS: "Email o contraseña incorrectos.",
    ErrorCode.INVALID_MARK_TYPE: "Tipo de marcaje inválido",
    ErrorCode.OUTSIDE_GEOFENCE: "Debes estar dentro de la zona autorizada para registrar asistencia.",
    ErrorCode.OUT_NOT_ALLOWED_YET: "Aún no es hora de registrar la salida.",
    ErrorCode.ON_VACATION: "Estás de vacaciones hoy; no es necesario registrar asistencia.",
    ErrorCode.REST_DAY: "Hoy es tu día de descanso",
    ErrorCode.VALIDATION_ERROR: "Error al validar asistencia",
    ErrorCode.INSERT_ERROR: "Error al registrar asistencia",
    ErrorCode.INTERNAL_ERROR: "Error interno del servidor",
    ErrorCode.CONNECTION_ERROR: "No se pudo conectar con el servidor. Intenta de nuevo.",
    ErrorCode.GEOLOCATION_TIMEOUT: "Tiempo de espera agotado",
    ErrorCode.GEOLOCATION_PERMISSION_DENIED: "Permiso de ubicación denegado. Por favor, habilita la ubicación.",
    ErrorCode.GEOLOCATION_UNAVAILABLE: "Ubicación no disponible",
    ErrorCode.INVALID_SCHEDULE: "El horario del departamento no es válido.",
    ErrorCode.INVALID_REST_DAYS: "Los días de descanso deben tener al menos 3 días de separación entre ellos",
    ErrorCode.INVALID_DATE_RANGE: "La fecha de fin debe ser igual o posterior a la fecha de inicio.",
    ErrorCode.VACATION_OVERLAP: "Ya tienes una solicitud de vacaciones para esas fechas.",
    ErrorCode.INSUFFICIENT_BALANCE: "No tienes suficientes días de vacaciones disponibles.",
    ErrorCode.INVALID_STATUS_TRANSITION: "La solicitud ya no está pendiente.",
    ErrorCode.EMAIL_TAKEN: "El correo ingresado ya está en uso por otro usuario.",
}

HTTP_STATUS_CODES: dict[int, ErrorCode] = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.TOO_MANY_ATTEMPTS,
    503: ErrorCode.CONNECTION_ERROR,
}


def user_message(code: ErrorCode | str, fallback: str | None = None) -> str:
    try:
        normalized = ErrorCode(code)
    except ValueError:
        return fallback or USER_MESSAGES[ErrorCode.INTERNAL_ERROR]
    return USER_MESSAGES.get(normalized) or fallback or USER_MESSAGES[ErrorCode.INTERNAL_ERROR]


def code_for_status(status_code: int) -> ErrorCode:
    if status_code >= 500 and status_code != 503:
        return ErrorCode.INTERNAL_ERROR
    return HTTP_STATUS_CODES.get(status_code, ErrorCode.VALIDATION_ERROR)


class ApiError(Exception):
    def __init__(
        self,
        status_code: int,
        code: ErrorCode | str,
        message: str | None = None,
        *,
        extra: dict[str, Any] | None = None,
    ):
        normalized_code = code.value if isinstance(code, ErrorCode) else str(code)
        resolved_message = message or user_message(normalized_code)
        super().__init__(resolved_message)
        self.status_code = status_code
        self.code = normalized_code
        self.message = resolved_message
        self.extra = dict(extra or {})


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    extra: dict[str, Any] | None = None,
) -> JSONResponse:
    payload: dict[str, Any] = {
        "error": message,
        "code": code,
        "request_id": get_request_id(request),
    }
    if extra:
        payload.update(extra)
    return JSONResponse(status_code=status_code, content=payload)
