"""Exception handlers that render every failure as ``{success: false, error}``."""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cleanmatch.core.logging import get_logger
from cleanmatch.services.errors import INTERNAL_ERROR_MESSAGE, AuthError

logger = get_logger("api.errors")


def error_response(
    status_code: int,
    message: str,
    field: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "error": message}
    if field:
        content["field"] = field
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def _describe_validation_error(exc: RequestValidationError) -> tuple[str, str | None]:
    """First validation problem as a readable message plus the offending field."""
    errors = exc.errors()
    if not errors:
        return "Invalid request", None

    first = errors[0]
    loc = [part for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = str(loc[-1]) if loc else None
    msg = first.get("msg", "Invalid value")
    if field is None:
        return "Request body is missing or malformed", None
    return f"{field}: {msg}", field


def register_exception_handlers(app: FastAPI) -> None:
    """Install the error envelope for service, validation and HTTP errors."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn(
            f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}",
            extra={"status_code": exc.status_code},
        )
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return error_response(exc.status_code, exc.message, exc.field, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        message, field = _describe_validation_error(exc)
        logger.info(f"Request validation failed on {request.url.path}: {message}")
        return error_response(status.HTTP_400_BAD_REQUEST, message, field)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code >= 500:
            logger.error(f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}")
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}",
            exc_info=exc,
        )
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)
