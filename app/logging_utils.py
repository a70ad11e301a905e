from __future__ import annotations

import json
import logging
from contextvars import ContextVar, Token
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any


_RESERVED_LOG_RECORD_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
}
_SECRET_FIELDS = {"password", "password_hash", "access_token", "authorization", "jwt_secret"}

_request_context: ContextVar[dict[str, Any] | None] = ContextVar("request_context", default=None)


def bind_request_context(**values: Any) -> Token:
    """Attach values (request_id, path) to every record logged until the token is reset."""
    context = dict(_request_context.get() or {})
    context.update({key: value for key, value in values.items() if value is not None})
    return _request_context.set(context)


def reset_request_context(token: Token) -> None:
    _request_context.reset(token)


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in (_request_context.get() or {}).items():
            # Non-null extra= values win.
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_LOG_RECORD_FIELDS or key.startswith("_"):
                continue
            payload[key] = "***" if key in _SECRET_FIELDS else value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default, ensure_ascii=False)


def setup_json_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestContextFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.getLevelName(level.strip().upper() or "INFO"))

    # Uvicorn's access log duplicates request_complete.
    logging.getLogger("uvicorn.access").disabled = True
