"""Error envelope shared by the exception handlers and refusal responses."""

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field


class ErrorBody(BaseModel):
    """Structured error body returned inside every error response."""

    code: str
    message: str
    details: list[dict] = []
    request_id: str = Field(alias="requestId")

    model_config = {"populate_by_name": True}


class ErrorResponse(BaseModel):
    """Top-level error envelope.

    Conflict responses may carry extra top-level keys such as
    ``settlement_blockers`` or ``reward_settlement``.
    """

    error: ErrorBody

    model_config = {"extra": "allow"}


def get_request_id(request: Request) -> str:
    """Retrieve the request ID stored by RequestIdMiddleware."""
    return getattr(request.state, "request_id", "unknown")


def error_response(
    status_code: int,
    code: str,
    message: str,
    request_id: str,
    details: list | None = None,
    context: dict | None = None,
) -> JSONResponse:
    body = ErrorBody(code=code, message=message, details=details or [], request_id=request_id)
    content = {"error": body.model_dump(by_alias=True)}
    for key, value in (context or {}).items():
        if key != "error":
            content[key] = value
    return JSONResponse(status_code=status_code, content=content)
