from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gadamagado.logging import get_logger
from gadamagado.service.errors import ServiceError
from gadamagado.storage.errors import ConstraintViolation

logger = get_logger(__name__)

_MISSING_FIELDS = "Please provide all required fields"


def _error_response(status_code: int, message: str) -> JSONResponse:
    """Every failure leaves the API as ``{"success": false, "message": ...}``."""
    return JSONResponse(
        status_code=status_code, content={"success": False, "message": message}
    )


def _validation_message(exc: RequestValidationError) -> str:
    # Surface messages raised by our own validators; pydantic's are too noisy
    for error in exc.errors():
        if error.get("type") == "value_error":
            ctx_error = (error.get("ctx") or {}).get("error")
            if ctx_error:
                return str(ctx_error)
    return _MISSING_FIELDS


def register_exception_handlers(app: FastAPI, *, expose_errors: bool = False) -> None:
    """Install consistent exception handlers for domain and storage errors.

    ``expose_errors`` returns the raw error text on uncaught exceptions and is
    meant for development only.
    """

    @app.exception_handler(ConstraintViolation)
    async def handle_constraint_violation(request: Request, exc: ConstraintViolation):
        logger.warning(
            "constraint_violation",
            path=request.url.path,
            method=request.method,
            message=exc.message,
            detail=exc.detail,
        )
        return _error_response(400, exc.message)

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            message=exc.message,
            detail=exc.detail,
        )
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        logger.warning(
            "request_validation_failed",
            path=request.url.path,
            method=request.method,
            fields=[".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()],
        )
        return _error_response(400, _validation_message(exc))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return _error_response(404, "Route not found")
        if exc.status_code >= 500:
            logger.error(
                "http_error",
                path=request.url.path,
                method=request.method,
                status_code=exc.status_code,
                message=str(exc.detail),
            )
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        message = str(exc) if expose_errors and str(exc) else "Internal Server Error"
        return _error_response(500, message)
