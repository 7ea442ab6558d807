import logging
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .request_context import get_request_id

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for failures surfaced to callers as a plain message."""

    status_code = 400
    default_message = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationRequired(AppError):
    status_code = 401
    default_message = "Authentication required"


class AuthorizationDenied(AppError):
    status_code = 403
    default_message = "Access denied"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class InvalidStateTransition(AppError):
    status_code = 409
    default_message = "Invalid state transition"


class ValidationFailure(AppError):
    status_code = 400
    default_message = "Validation failed"


class UpstreamFailure(AppError):
    status_code = 502
    default_message = "Upstream service failed"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:  # type: ignore[override]
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationRequired) else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "path": str(request.url)},
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore[override]
        return JSONResponse(
            status_code=422,
            content={
                "detail": "Validation failed.",
                "errors": jsonable_errors(exc),
                "path": str(request.url),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore[override]
        logger.exception(
            "Unhandled error on %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
            extra={"request_id": get_request_id(request)},
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error.",
                "path": str(request.url),
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # type: ignore[override]
        payload: Dict[str, Any] = {"detail": exc.detail or "HTTP error.", "path": str(request.url)}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    errors = []
    for error in exc.errors():
        errors.append(
            {
                "loc": list(error.get("loc", ())),
                "msg": str(error.get("msg", "")),
                "type": error.get("type"),
            }
        )
    return errors
