"""Application errors and their RFC 7807 rendering.

Each :class:`ApoDataError` subclass fixes one HTTP status and error code;
raising it anywhere below a route produces the matching problem response.
Client errors are logged as warnings; server errors as errors with a
traceback. ``details`` only ever reaches the logs.
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.logging import get_logger
from app.core.problem_details import (
    ERROR_TYPES,
    ProblemDetailResponse,
    code_for_status,
    problem_response,
    title_for_code,
)

logger = get_logger(__name__)


# =============================================================================
# Exception Classes
# =============================================================================


class ApoDataError(Exception):
    """Base class for errors with a dedicated HTTP status."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"
    headers: dict[str, str] | None = None

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        """Initialize the error.

        Args:
            message: Client-facing message (defaults to the class message).
            details: Diagnostic context for the logs.
        """
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def title(self) -> str:
        return title_for_code(self.code)

    @property
    def type_uri(self) -> str:
        return ERROR_TYPES.get(self.code, ERROR_TYPES["INTERNAL_ERROR"])


class BadRequestError(ApoDataError):
    """Missing or inconsistent filter fields (e.g. no date range)."""

    status_code = 400
    code = "BAD_REQUEST"
    default_message = "Bad request"


class UnauthorizedError(ApoDataError):
    """Missing, expired or invalid bearer token or cron secret."""

    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"
    headers = {"WWW-Authenticate": "Bearer"}


class ForbiddenError(ApoDataError):
    """Authenticated, but the role or pharmacy does not allow it."""

    status_code = 403
    code = "FORBIDDEN"
    default_message = "Forbidden"


class NotFoundError(ApoDataError):
    """Unknown resource, or one owned by another user."""

    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(ApoDataError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource conflict"


class ValidationError(ApoDataError):
    """Input that passed the schema but fails a business rule."""

    status_code = 422
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class DatabaseError(ApoDataError):
    """A query failed. The message stays generic; the driver error goes to ``details``."""

    status_code = 500
    code = "DATABASE_ERROR"
    default_message = "Database operation failed"


# =============================================================================
# Exception Handlers
# =============================================================================


async def apodata_exception_handler(
    request: Request,
    exc: ApoDataError,
) -> ProblemDetailResponse:
    server_error = exc.status_code >= 500
    log = logger.error if server_error else logger.warning
    log(
        "app.error_handled",
        error=exc.message,
        error_type=type(exc).__name__,
        error_code=exc.code,
        status_code=exc.status_code,
        method=request.method,
        path=request.url.path,
        details=exc.details,
        exc_info=server_error,
    )
    return problem_response(
        status=exc.status_code,
        detail=exc.message,
        error_code=exc.code,
        title=exc.title,
        headers=exc.headers,
    )


async def database_exception_handler(
    request: Request,
    exc: SQLAlchemyError,
) -> ProblemDetailResponse:
    """Catch query failures that a route did not translate itself."""
    logger.error(
        "app.database_error",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        exc_info=True,
    )
    return problem_response(
        status=500,
        detail=DatabaseError.default_message,
        error_code=DatabaseError.code,
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> ProblemDetailResponse:
    """Unknown routes, wrong methods and other framework-level errors."""
    logger.warning(
        "app.http_error",
        status_code=exc.status_code,
        method=request.method,
        path=request.url.path,
        detail=str(exc.detail),
    )
    return problem_response(
        status=exc.status_code,
        detail=str(exc.detail),
        error_code=code_for_status(exc.status_code),
        headers=getattr(exc, "headers", None),
    )


def _field_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    """Flatten pydantic errors to ``{field, message, type}``; body fields lose the ``body.``."""
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        errors.append(
            {
                "field": ".".join(location),
                "message": str(error.get("msg", "Invalid value")),
                "type": str(error.get("type", "value_error")),
            }
        )
    return errors


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> ProblemDetailResponse:
    errors = _field_errors(exc)
    logger.warning(
        "app.validation_failed",
        path=request.url.path,
        fields=[error["field"] for error in errors],
    )
    return problem_response(
        status=422,
        detail=f"Request validation failed with {len(errors)} error(s).",
        error_code="VALIDATION_ERROR",
        errors=errors,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> ProblemDetailResponse:
    logger.error(
        "app.unhandled_error",
        error=str(exc),
        error_type=type(exc).__name__,
        method=request.method,
        path=request.url.path,
        exc_info=True,
    )
    return problem_response(status=500, detail="Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    """Attach every problem handler to ``app``."""
    handlers: list[tuple[type[Exception], Any]] = [
        (ApoDataError, apodata_exception_handler),
        (SQLAlchemyError, database_exception_handler),
        (StarletteHTTPException, http_exception_handler),
        (RequestValidationError, validation_exception_handler),
        (Exception, unhandled_exception_handler),
    ]
    for exc_class, handler in handlers:
        app.add_exception_handler(exc_class, handler)
