"""
Application error taxonomy and the FastAPI handlers that render it.

Every error leaves the API in the same shape:

    {"success": false,
     "error": {"code": ..., "message": ..., "details": ...},
     "timestamp": "..."}

Operational errors (AppError subclasses) are logged as warnings; anything
else is a programming error, logged with its traceback and masked outside
development.
"""
from __future__ import annotations

import traceback
from datetime import datetime
from typing import Any, Optional

import jwt
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from pharmadist.core.config import settings


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Any = None,
        is_operational: bool = True,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details
        self.is_operational = is_operational


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"


class AuthorizationError(AppError):
    status_code = 403
    code = "AUTHORIZATION_ERROR"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Any = None) -> None:
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} {identifier} not found"
        super().__init__(message, details={"resource": resource, "id": identifier})


class ConflictError(AppError):
    status_code = 409
    code = "DUPLICATE_ENTRY"


class BusinessRuleError(AppError):
    status_code = 422
    code = "BUSINESS_RULE_VIOLATION"


class DatabaseError(AppError):
    status_code = 500
    code = "DATABASE_ERROR"


# ── Rendering ─────────────────────────────────────────────────────────────────


def error_body(code: str, message: str, details: Any = None, stack: Optional[str] = None) -> dict:
    body: dict[str, Any] = {
        "success": False,
        "error": {"code": code, "message": message, "details": details},
        "timestamp": datetime.utcnow().isoformat(),
    }
    if stack and settings.is_development:
        body["error"]["stack"] = stack
    return body


def _respond(request: Request, err: AppError, stack: Optional[str] = None) -> JSONResponse:
    where = f"{request.method} {request.url.path}"
    if err.is_operational:
        logger.warning(f"{where} → {err.status_code} {err.code}: {err.message}")
        return JSONResponse(
            status_code=err.status_code,
            content=error_body(err.code, err.message, err.details, stack),
        )

    logger.error(f"{where} → {err.status_code} {err.code}: {err.message}\n{stack or ''}")
    if settings.is_development:
        return JSONResponse(
            status_code=err.status_code,
            content=error_body(err.code, err.message, err.details, stack),
        )
    return JSONResponse(
        status_code=500,
        content=error_body("INTERNAL_ERROR", "Something went wrong"),
    )


def _duplicate_field(exc: IntegrityError) -> Optional[str]:
    # SQLite: "UNIQUE constraint failed: customers.code"
    text = str(exc.orig) if exc.orig is not None else str(exc)
    if "UNIQUE constraint failed:" in text:
        return text.split("UNIQUE constraint failed:", 1)[1].strip().split(".")[-1]
    return None


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the error handlers to the application."""

    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError):
        return _respond(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        details = [
            {
                "field": ".".join(str(p) for p in e.get("loc", ()) if p != "body"),
                "message": e.get("msg"),
            }
            for e in exc.errors()
        ]
        return _respond(request, ValidationError("Validation failed", details=details))

    @app.exception_handler(IntegrityError)
    async def _integrity(request: Request, exc: IntegrityError):
        field = _duplicate_field(exc)
        if field:
            err = ConflictError(
                f"Duplicate value for {field}", details={"field": field}
            )
        else:
            err = ValidationError("Constraint violation", details=str(exc.orig))
        return _respond(request, err)

    @app.exception_handler(SQLAlchemyError)
    async def _database(request: Request, exc: SQLAlchemyError):
        err = DatabaseError("Database operation failed", is_operational=False)
        return _respond(request, err, traceback.format_exc())

    @app.exception_handler(jwt.ExpiredSignatureError)
    async def _token_expired(request: Request, exc: jwt.ExpiredSignatureError):
        return _respond(
            request,
            AuthenticationError("Authentication token has expired", code="TOKEN_EXPIRED"),
        )

    @app.exception_handler(jwt.InvalidTokenError)
    async def _token_invalid(request: Request, exc: jwt.InvalidTokenError):
        return _respond(
            request,
            AuthenticationError("Invalid authentication token", code="INVALID_TOKEN"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            err = AppError(
                f"Route {request.method} {request.url.path} not found",
                status_code=404,
                code="ROUTE_NOT_FOUND",
            )
        else:
            err = AppError(str(exc.detail), status_code=exc.status_code, code="HTTP_ERROR")
        return _respond(request, err)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        err = AppError(str(exc), is_operational=False)
        return _respond(request, err, traceback.format_exc())
