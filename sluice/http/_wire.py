"""Wire models and error mapping for the HTTP adapter."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel

from sluice._errors import (
    FlowCancelledError,
    FlowError,
    FlowValidationError,
    StepError,
)

STATUS_CLIENT_CLOSED = 499


class ErrorBody(BaseModel):
    message: str
    details: Any = None


class ResultResponse(BaseModel):
    result: Any


class ErrorResponse(BaseModel):
    error: ErrorBody


class ChunkMessage(BaseModel):
    type: Literal["chunk"] = "chunk"
    data: Any


class ResultMessage(BaseModel):
    type: Literal["result"] = "result"
    data: Any


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    error: ErrorBody


def error_body(exc: BaseException) -> ErrorBody:
    """Describe *exc* for a client. ``details`` is left unset when empty."""
    message = str(exc) or type(exc).__name__
    details: Any = None
    if isinstance(exc, (FlowError, FlowValidationError)):
        details = exc.details
    elif isinstance(exc, StepError):
        details = {"step": exc.step}
        if isinstance(exc.cause, FlowError) and exc.cause.details is not None:
            details["cause"] = exc.cause.details
    return ErrorBody(message=message, details=details)


def status_for(exc: BaseException) -> int:
    """HTTP status for a synchronous failure."""
    if isinstance(exc, StepError):
        exc = exc.cause
    if isinstance(exc, FlowValidationError):
        return 400
    if isinstance(exc, FlowError):
        return exc.status_code
    if isinstance(exc, FlowCancelledError):
        return STATUS_CLIENT_CLOSED
    return 500


def error_payload(exc: BaseException) -> dict[str, Any]:
    """``{"error": {...}}`` document for a synchronous failure."""
    return ErrorResponse(error=error_body(exc)).model_dump(exclude_none=True)


def ndjson_line(message: BaseModel) -> str:
    """One newline-terminated JSON event of a streaming response."""
    if isinstance(message, ErrorMessage):
        return message.model_dump_json(exclude_none=True) + "\n"
    return message.model_dump_json() + "\n"
