"""
Error handling and logging utilities
Errors are rendered as {"error": "<machine_readable_message>"} with optional details.
"""
import logging
import traceback
from typing import Optional, Dict, Any
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
import sentry_sdk

from config import settings

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception"""
    def __init__(self, message: str, status_code: int = 500, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(AppException):
    """Invalid request body or query"""
    def __init__(self, message: str = "invalid_body", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details)


class NotFoundException(AppException):
    """Resource not found (or owned by another tenant)"""
    def __init__(self, message: str = "not_found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=404, details=details)


class UnauthorizedException(AppException):
    """Missing or invalid credentials"""
    def __init__(self, message: str = "invalid_token", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=401, details=details)


class ForbiddenException(AppException):
    """Feature or resource not available to the caller"""
    def __init__(self, message: str = "forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=403, details=details)


class ConflictException(AppException):
    """Resource conflict exception"""
    def __init__(self, message: str = "conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=409, details=details)


def log_error(error: Exception, request: Optional[Request] = None, context: Optional[Dict[str, Any]] = None):
    """
    Log error with context and send to Sentry if configured
    """
    error_context = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }

    if request:
        error_context.update({
            "path": request.url.path,
            "method": request.method,
            "client": request.client.host if request.client else None,
        })

    if context:
        error_context.update(context)

    status_code = getattr(error, "status_code", 500)
    if status_code >= 500:
        logger.error(f"Error occurred: {error_context}", exc_info=error)
        # No-op when Sentry was not initialised
        sentry_sdk.capture_exception(error)
    else:
        logger.info(f"Request rejected: {error_context}")


def _error_body(message: str, details: Optional[Any] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": message}
    if details:
        body["details"] = details
    return body


async def app_exception_handler(request: Request, exc: AppException):
    """Handle application exceptions"""
    log_error(exc, request)
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, exc.details))


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTPException raised by FastAPI itself (404 routes, 405, ...)"""
    message = exc.detail if isinstance(exc.detail, str) else "http_error"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(message),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation exceptions with better formatting"""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        })

    log_error(ValidationException(details={"errors": errors}), request)

    # Query-string problems are reported separately from body problems
    in_query = errors and all(e["field"].startswith("query") for e in errors)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("invalid_query" if in_query else "invalid_body", errors),
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    log_error(exc, request)

    # Don't expose internal errors in production
    if settings.is_development:
        content = {
            "error": str(exc) or "internal_error",
            "type": type(exc).__name__,
            "traceback": traceback.format_exception(type(exc), exc, exc.__traceback__),
        }
    else:
        content = {"error": "internal_error"}

    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
