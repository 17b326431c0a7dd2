"""
Exception handlers rendering every error in one JSON envelope:
{"error": {"code", "message", "details"}, "meta": {"requestId"}}
Reference: https://fastapi.tiangolo.com/tutorial/handling-errors/#install-custom-exception-handlers
"""
import logging
import uuid
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import ConflictError, NotFoundError, PerseoError

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "AUTH_INVALID_TOKEN",
    403: "AUTH_FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}


def get_request_id(request: Request) -> str:
    """Request id set by the middleware, or a fresh one outside it"""
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
    return request_id


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    request_id = get_request_id(request)
    payload = {
        "error": {"code": code, "message": message, "details": details},
        "meta": {"requestId": request_id},
    }
    response_headers = {REQUEST_ID_HEADER: request_id, **(headers or {})}
    return JSONResponse(content=jsonable_encoder(payload), status_code=status_code, headers=response_headers)


async def perseo_error_handler(request: Request, exc: PerseoError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return error_response(request, exc.status_code, exc.code, exc.message, exc.details)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg"),
            "type": error.get("type"),
        }
        for error in exc.errors()
    ]
    return error_response(request, 422, "VALIDATION_ERROR", "Validation error", {"errors": errors})


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict):
        code = str(detail.get("code") or _DEFAULT_ERROR_CODES.get(exc.status_code, "ERROR"))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}} or None
    else:
        code = _DEFAULT_ERROR_CODES.get(exc.status_code, "ERROR")
        message = str(detail) if detail else "Request failed"
        details = None
    return error_response(request, exc.status_code, code, message, details, headers=getattr(exc, "headers", None))


def _integrity_kind(exc: IntegrityError) -> str:
    """'unique', 'foreign_key' or 'other' for PostgreSQL and SQLite drivers"""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == "23505":
        return "unique"
    if sqlstate == "23503":
        return "foreign_key"
    text = str(orig).lower()
    if "unique" in text or "duplicate key" in text:
        return "unique"
    if "foreign key" in text:
        return "foreign_key"
    return "other"


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Constraint violations that slipped past service-level checks (e.g. concurrent inserts)"""
    kind = _integrity_kind(exc)
    logger.warning(f"Integrity error on {request.method} {request.url.path} ({kind}): {exc.orig}")
    if kind == "unique":
        error = ConflictError("Resource already exists")
    elif kind == "foreign_key":
        error = NotFoundError("Referenced resource not found")
    else:
        error = ConflictError("Request conflicts with existing data")
    return error_response(request, error.status_code, error.code, error.message)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return error_response(request, 500, "INTERNAL_ERROR", "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PerseoError, perseo_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
