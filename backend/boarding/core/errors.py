"""
Error taxonomy for tour operations and the single mapping from an error to
the uniform failure payload returned to callers.

Services raise the typed errors below. Callers either let the FastAPI
exception handler convert them, or run the operation through
``run_operation`` and receive a tagged ``OperationResult``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError

from boarding.core.config import settings
from boarding.core.logging import get_structured_logger
from boarding.core.metrics import record_handled_error


logger = get_structured_logger("boarding.errors")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    ACCESS_DENIED = "access_denied"
    SAVE_FAILURE = "save_failure"
    DATABASE = "database"
    UNEXPECTED = "unexpected"


# Category strings are part of the payload contract consumed by the UI.
_CATEGORIES = {
    ErrorKind.NOT_FOUND: "tour_not_found",
    ErrorKind.VALIDATION: "validation_error",
    ErrorKind.ACCESS_DENIED: "access_denied",
    ErrorKind.SAVE_FAILURE: "tour_save",
    ErrorKind.DATABASE: "database_error",
    ErrorKind.UNEXPECTED: "unexpected_error",
}

_STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 422,
    ErrorKind.ACCESS_DENIED: 403,
    ErrorKind.SAVE_FAILURE: 500,
    ErrorKind.DATABASE: 500,
    ErrorKind.UNEXPECTED: 500,
}

UNEXPECTED_USER_MESSAGE = "An unexpected error occurred. Please try again."


class BoardingError(Exception):
    kind: ErrorKind = ErrorKind.UNEXPECTED
    default_user_message = UNEXPECTED_USER_MESSAGE

    def __init__(
        self,
        message: str,
        *,
        user_message: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.user_message = user_message or self.default_user_message
        self.context: dict[str, Any] = dict(context or {})

    @property
    def category(self) -> str:
        return _CATEGORIES[self.kind]

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self.kind]

    def add_context(self, key: str, value: Any) -> "BoardingError":
        self.context[key] = value
        return self

    def with_context(self, context: dict[str, Any]) -> "BoardingError":
        self.context.update(context)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "user_message": self.user_message,
            "code": self.status_code,
            "category": self.category,
            "context": self.context,
        }


class TourNotFoundError(BoardingError):
    kind = ErrorKind.NOT_FOUND
    default_user_message = "The requested tour could not be found."

    @classmethod
    def for_tour_id(cls, tour_id: Any, context: dict[str, Any] | None = None) -> "TourNotFoundError":
        ctx = dict(context or {})
        ctx["tour_id"] = tour_id
        return cls(f"Tour not found with ID: {tour_id}", context=ctx)

    @classmethod
    def for_operation(
        cls,
        tour_id: Any,
        operation: str,
        context: dict[str, Any] | None = None,
    ) -> "TourNotFoundError":
        exc = cls.for_tour_id(tour_id, context)
        exc.user_message = f"Tour not found for {operation} operation."
        exc.add_context("operation", operation)
        return exc


class TourValidationError(BoardingError):
    kind = ErrorKind.VALIDATION

    def __init__(self, errors: Iterable[str], *, context: dict[str, Any] | None = None) -> None:
        self.validation_errors = list(errors)
        joined = ", ".join(self.validation_errors)
        ctx = dict(context or {})
        ctx["validation_errors"] = self.validation_errors
        super().__init__(
            f"Tour validation failed: {joined}",
            user_message=f"Please correct the following errors: {joined}",
            context=ctx,
        )

    @classmethod
    def for_step(cls, step_index: int, error: str) -> "TourValidationError":
        return cls(
            [f"Step {step_index + 1}: {error}"],
            context={"step_index": step_index, "step_number": step_index + 1},
        )

    @classmethod
    def required_fields(cls, fields: Iterable[str]) -> "TourValidationError":
        names = list(fields)
        return cls([f"{name} is required" for name in names], context={"required_fields": names})


class TourAccessError(BoardingError):
    kind = ErrorKind.ACCESS_DENIED
    default_user_message = "You don't have permission to access this tour."

    @classmethod
    def missing_permission(cls, permission: str, context: dict[str, Any] | None = None) -> "TourAccessError":
        ctx = dict(context or {})
        ctx["required_permission"] = permission
        return cls(
            f"Missing required permission: {permission}",
            user_message="You don't have the required permission to perform this action.",
            context=ctx,
        )

    @classmethod
    def site_restricted(cls, site_id: int, context: dict[str, Any] | None = None) -> "TourAccessError":
        ctx = dict(context or {})
        ctx["site_id"] = site_id
        return cls(
            f"Tour is not enabled for site: {site_id}",
            user_message="This tour is not available on the current site.",
            context=ctx,
        )


class TourSaveError(BoardingError):
    kind = ErrorKind.SAVE_FAILURE
    default_user_message = "Unable to save the tour. Please try again."

    @classmethod
    def database_failed(
        cls,
        operation: str,
        context: dict[str, Any] | None = None,
    ) -> "TourSaveError":
        ctx = dict(context or {})
        ctx["operation"] = operation
        return cls(
            f"Database operation '{operation}' failed during tour save",
            user_message="A database error occurred while saving the tour.",
            context=ctx,
        )

    @classmethod
    def missing_required_data(cls, fields: Iterable[str]) -> "TourSaveError":
        names = list(fields)
        joined = ", ".join(names)
        return cls(
            f"Missing required data for tour save: {joined}",
            user_message=f"Please provide all required information: {joined}",
            context={"missing_fields": names},
        )


class DatabaseError(BoardingError):
    kind = ErrorKind.DATABASE
    default_user_message = "A database error occurred. Please try again."

    @classmethod
    def query_failed(cls, detail: str, context: dict[str, Any] | None = None) -> "DatabaseError":
        ctx = dict(context or {})
        ctx["query"] = detail
        suffix = "..." if len(detail) > 100 else ""
        return cls(
            f"Database query failed: {detail[:100]}{suffix}",
            user_message="A database query failed. Please try again.",
            context=ctx,
        )

    @classmethod
    def transaction_failed(cls, operation: str, context: dict[str, Any] | None = None) -> "DatabaseError":
        ctx = dict(context or {})
        ctx["operation"] = operation
        return cls(
            f"Database transaction failed during: {operation}",
            user_message="A database transaction failed. Changes have been rolled back.",
            context=ctx,
        )


def _coerce(exc: BaseException, context: dict[str, Any]) -> BoardingError | None:
    if isinstance(exc, BoardingError):
        return exc
    if isinstance(exc, SQLAlchemyError):
        return DatabaseError.query_failed(str(exc), context)
    return None


def to_error_payload(
    exc: BaseException,
    context: dict[str, Any] | None = None,
    *,
    dev_mode: bool | None = None,
) -> dict[str, Any]:
    """Map any exception onto the uniform failure payload."""
    show_context = settings.DEV_MODE if dev_mode is None else dev_mode
    base_context = dict(context or {})
    error = _coerce(exc, base_context)

    if error is None:
        payload: dict[str, Any] = {
            "success": False,
            "error": UNEXPECTED_USER_MESSAGE,
            "code": 500,
            "category": _CATEGORIES[ErrorKind.UNEXPECTED],
        }
        if show_context:
            payload["context"] = {
                **base_context,
                "exception": type(exc).__name__,
                "message": str(exc),
            }
        else:
            payload["context"] = {}
        return payload

    full_context = {**base_context, **error.context}
    payload = {
        "success": False,
        "error": error.user_message,
        "code": error.status_code,
        "category": error.category,
        "context": full_context if show_context else {},
    }
    if isinstance(error, TourValidationError):
        payload["validation_errors"] = error.validation_errors
    return payload


def handle_error(exc: BaseException, context: dict[str, Any] | None = None) -> dict[str, Any]:
    """Log the error once and return its failure payload."""
    payload = to_error_payload(exc, context)
    record_handled_error(payload["category"])
    extra = {"category": payload["category"], "error_context": {**(context or {})}}
    if isinstance(exc, BoardingError):
        extra["error_context"].update(exc.context)
        logger.error(exc.message, extra=extra)
    else:
        logger.error(str(exc), exc_info=exc, extra=extra)
    return payload


@dataclass
class OperationResult:
    ok: bool
    value: Any = None
    error: dict[str, Any] | None = field(default=None)

    def to_payload(self) -> dict[str, Any]:
        if self.ok:
            return {"success": True, "data": self.value}
        return dict(self.error or {})


def run_operation(fn: Callable[[], Any], context: dict[str, Any] | None = None) -> OperationResult:
    try:
        return OperationResult(ok=True, value=fn())
    except Exception as exc:
        return OperationResult(ok=False, error=handle_error(exc, context))
