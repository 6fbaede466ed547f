# errors.py
"""
Error taxonomy and the single place where errors become HTTP responses.

Domain code raises `AppError`; the handlers registered by `register_exception_handlers`
map it (and anything else that escapes a route) onto the response envelope.
"""

import enum
import logging
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from shopfront.responses import send_error

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    STATE_CONFLICT = "state_conflict"
    UPSTREAM = "upstream"
    SIGNATURE = "signature"
    INTERNAL = "internal"


DEFAULT_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.STATE_CONFLICT: 400,
    ErrorKind.UPSTREAM: 500,
    ErrorKind.SIGNATURE: 400,
    ErrorKind.INTERNAL: 500,
}


class AppError(Exception):
    """A domain error carrying the message and HTTP status shown to the caller."""

    def __init__(self, message: str, status_code: Optional[int] = None, kind: ErrorKind = ErrorKind.VALIDATION):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status_code = status_code or DEFAULT_STATUS[kind]

    def __repr__(self) -> str:
        return f"AppError(kind={self.kind.value!r}, status_code={self.status_code}, message={self.message!r})"


def parse_uuid(value: str, label: str = "ID") -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise AppError(f"Invalid {label} format", 400)


def _request_context(request: Request) -> dict:
    return {
        "method": request.method,
        "path": request.url.path,
        "params": dict(request.path_params),
        "query": dict(request.query_params),
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


# --- Exception Handlers ---

async def app_error_handler(request: Request, exc: AppError):
    context = _request_context(request)
    if exc.status_code >= 500:
        logger.error(f"AppError occurred: {exc!r} context={context}")
    else:
        logger.warning(f"AppError occurred: {exc!r} context={context}")
    return send_error(exc.message, exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    logger.warning(f"Validation error: {errors} context={_request_context(request)}")
    return send_error("Validation failed", 400, {"errors": errors})


async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.error(f"Database constraint violation: {exc.orig} context={_request_context(request)}")
    return send_error("Database error occurred", 400)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return send_error("Route Not Found", 404, {"path": request.url.path})
    return send_error(str(exc.detail), exc.status_code)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error occurred: {exc} context={_request_context(request)}")
    return send_error("Internal server error", 500)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
