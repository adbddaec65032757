"""RFC 7807 problem documents.

Every error leaving the API is rendered as ``application/problem+json``:
application errors, request validation failures, framework HTTP errors
(unknown route, wrong method) and unexpected exceptions alike.

Reference: https://datatracker.ietf.org/doc/html/rfc7807
"""

from http import HTTPStatus
from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from app.core.logging import request_id_ctx

PROBLEM_JSON = "application/problem+json"

# Relative type URIs; the dashboard matches on the last segment.
ERROR_TYPE_BASE = "/errors"

ERROR_TYPES = {
    "BAD_REQUEST": f"{ERROR_TYPE_BASE}/bad-request",
    "UNAUTHORIZED": f"{ERROR_TYPE_BASE}/unauthorized",
    "FORBIDDEN": f"{ERROR_TYPE_BASE}/forbidden",
    "NOT_FOUND": f"{ERROR_TYPE_BASE}/not-found",
    "CONFLICT": f"{ERROR_TYPE_BASE}/conflict",
    "VALIDATION_ERROR": f"{ERROR_TYPE_BASE}/validation",
    "DATABASE_ERROR": f"{ERROR_TYPE_BASE}/database",
    "INTERNAL_ERROR": f"{ERROR_TYPE_BASE}/internal",
    "SERVICE_UNAVAILABLE": f"{ERROR_TYPE_BASE}/service-unavailable",
}

# Codes for statuses raised by Starlette itself rather than by ApoDataError.
STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "BAD_REQUEST",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


def code_for_status(status: int) -> str:
    """Error code for a bare HTTP status."""
    if status in STATUS_CODES:
        return STATUS_CODES[status]
    return "INTERNAL_ERROR" if status >= 500 else "BAD_REQUEST"


def title_for_code(code: str) -> str:
    """``DATABASE_ERROR`` -> ``Database Error``."""
    return code.replace("_", " ").title()


class ProblemDetail(BaseModel):
    """RFC 7807 body, extended with ``code``, ``request_id`` and ``errors``."""

    model_config = ConfigDict(extra="allow")

    type: str = "about:blank"
    title: str
    status: int = Field(..., ge=400, le=599)
    detail: str | None = None
    instance: str | None = None
    code: str | None = None
    request_id: str | None = None
    errors: list[dict[str, Any]] | None = Field(
        None, description="Field-level validation errors, on 422 only."
    )


class ProblemDetailResponse(JSONResponse):
    media_type = PROBLEM_JSON


def problem_response(
    status: int,
    detail: str | None = None,
    error_code: str | None = None,
    title: str | None = None,
    errors: list[dict[str, Any]] | None = None,
    headers: dict[str, str] | None = None,
) -> ProblemDetailResponse:
    """Render a problem for the request in flight.

    Args:
        status: HTTP status code.
        detail: Client-facing explanation; never a driver or stack message.
        error_code: Machine-readable code (derived from ``status`` if omitted).
        title: Summary (derived from the code if omitted).
        errors: Field errors for validation failures.
        headers: Extra headers such as ``WWW-Authenticate``.

    Returns:
        Problem response bound to the current request id.
    """
    code = error_code or code_for_status(status)
    request_id = request_id_ctx.get()
    problem = ProblemDetail(
        type=ERROR_TYPES.get(code, f"{ERROR_TYPE_BASE}/{code.lower().replace('_', '-')}"),
        title=title or title_for_code(code),
        status=status,
        detail=detail if detail is not None else HTTPStatus(status).phrase,
        instance=f"/requests/{request_id}" if request_id else None,
        code=code,
        request_id=request_id,
        errors=errors,
    )
    return ProblemDetailResponse(
        status_code=status,
        content=problem.model_dump(exclude_none=True),
        headers=headers,
    )
