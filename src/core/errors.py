"""
FILE: src/core/errors.py
Error taxonomy, HTTP status mapping and the uniform {"error": str} body
"""

import enum
import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    UNAUTHENTICATED = "Unauthenticated"
    PROFILE_NOT_FOUND = "ProfileNotFound"
    FORBIDDEN = "Forbidden"
    VALIDATION_ERROR = "ValidationError"
    NOT_FOUND = "NotFound"
    BACKEND_ERROR = "BackendError"
    PROPAGATION_ERROR = "PropagationError"
    CONFLICTING_CONTEXT = "ConflictingContext"


STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    # An identity without a profile has no granted capability
    ErrorKind.PROFILE_NOT_FOUND: status.HTTP_403_FORBIDDEN,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.BACKEND_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.PROPAGATION_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.CONFLICTING_CONTEXT: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# Authorization failures never carry details to the client
FIXED_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.UNAUTHENTICATED: "Unauthenticated",
    ErrorKind.PROFILE_NOT_FOUND: "Forbidden",
    ErrorKind.FORBIDDEN: "Forbidden",
    ErrorKind.PROPAGATION_ERROR: "Failed to set tenant context",
    ErrorKind.CONFLICTING_CONTEXT: "Conflicting tenant context",
}


def public_message(kind: ErrorKind, message: Optional[str] = None) -> str:
    if kind in FIXED_MESSAGES:
        return FIXED_MESSAGES[kind]
    return message or kind.value


class ApiError(Exception):
    """Raised by request handlers and dependencies; rendered as {"error": ...}."""

    def __init__(self, kind: ErrorKind, message: Optional[str] = None):
        self.kind = kind
        self.message = message
        super().__init__(message or kind.value)

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    @property
    def body(self) -> dict:
        return {"error": public_message(self.kind, self.message)}


def error_response(kind: ErrorKind, message: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_CODES[kind],
        content={"error": public_message(kind, message)},
    )


def backend_message(exc: SQLAlchemyError) -> str:
    """Driver message without the SQL statement or parameters."""
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig).strip().splitlines()[0]
    return exc.__class__.__name__


def _format_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    # ("body", "quantity") -> "quantity"
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(loc)
    return f"{field}: {first.get('msg')}" if field else str(first.get("msg"))


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.kind in (ErrorKind.BACKEND_ERROR, ErrorKind.PROPAGATION_ERROR, ErrorKind.CONFLICTING_CONTEXT):
        logger.error(f"{exc.kind.value} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.body)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(ErrorKind.VALIDATION_ERROR, _format_validation_error(exc))


async def backend_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    message = backend_message(exc)
    logger.error(f"BackendError on {request.method} {request.url.path}: {message}")
    return error_response(ErrorKind.BACKEND_ERROR, message)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)  # type: ignore
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore
    app.add_exception_handler(SQLAlchemyError, backend_error_handler)  # type: ignore
    app.add_exception_handler(StarletteHTTPException, http_error_handler)  # type: ignore
