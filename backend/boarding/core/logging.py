# Structured JSON logging for the whole package. Every logger obtained
# through get_structured_logger emits one JSON object per record, with any
# `extra=` fields (tour_id, site_id, operation, ...) flattened into it.
# The middleware below records one line per HTTP request.

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from time import monotonic
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from boarding.core.config import settings
from boarding.core.security import decode_access_token


_STANDARD_ATTRS = {
    "args",
    "asctime",
    "created",
    "exc_info",
    "exc_text",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "msg",
    "name",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "taskName",
    "thread",
    "threadName",
}

_ALWAYS_FIELDS = {
    "request_id",
    "site_id",
    "user_id",
    "route",
    "method",
    "status_code",
    "duration_ms",
    "error_code",
}


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            if value is None and key not in _ALWAYS_FIELDS:
                continue
            payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, default=str)


def get_structured_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())
    logger.addHandler(handler)
    logger.setLevel(settings.LOG_LEVEL.upper())
    return logger


logger = get_structured_logger("boarding.api")


def _resolve_route(request: Request) -> str:
    route = request.scope.get("route")
    route_path = getattr(route, "path", None)
    return route_path or request.url.path


def _resolve_user_id(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        token = auth.split()[1]
        try:
            payload = decode_access_token(token)
            return payload.get("user_id") or payload.get("sub")
        except Exception:
            return None
    return None


class APILoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = monotonic()
        try:
            response = await call_next(request)
        except Exception:
            extra = {
                "request_id": getattr(request.state, "request_id", None),
                "site_id": getattr(request.state, "site_ref", None),
                "user_id": _resolve_user_id(request),
                "route": _resolve_route(request),
                "path": request.url.path,
                "method": request.method,
                "status_code": 500,
                "duration_ms": round((monotonic() - start) * 1000.0, 2),
                "error_code": "unhandled_exception",
            }
            logger.exception("request.failed", extra=extra)
            raise

        extra = {
            "request_id": getattr(request.state, "request_id", None),
            "site_id": getattr(request.state, "site_ref", None),
            "user_id": _resolve_user_id(request),
            "route": _resolve_route(request),
            "path": request.url.path,
            "method": request.method,
            "status_code": response.status_code,
            "duration_ms": round((monotonic() - start) * 1000.0, 2),
            "error_code": response.headers.get("X-Error-Code"),
        }
        logger.info("request.completed", extra=extra)
        return response
