import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .request_context import get_request_id

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors raised by services and translated into HTTP responses."""

    status_code = 500
    default_message = "Internal server error."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class UnauthorizedError(AppError):
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(AppError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class InvalidStateError(AppError):
    status_code = 409
    default_message = "Action not permitted in the current state"


class ExpiredError(AppError):
    status_code = 410
    default_message = "This item has expired"


class InternalError(AppError):
    status_code = 500


def _error_payload(request: Request, message: str) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"error": message, "path": str(request.url)}
    request_id = get_request_id(request)
    if request_id:
        payload["request_id"] = request_id
    return payload


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:  # type: ignore[override]
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=_error_payload(request, exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore[override]
        payload = _error_payload(request, "Validation failed.")
        payload["errors"] = [
            {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
            for error in exc.errors()
        ]
        return JSONResponse(status_code=400, content=payload)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # type: ignore[override]
        payload = _error_payload(request, str(exc.detail or "HTTP error."))
        return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore[override]
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_payload(request, "Internal server error."))
