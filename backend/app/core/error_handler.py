"""
Error handling

- TripPlannerError subclasses render their own status/body (401/403/404/409/429/400)
- Request body validation errors become 400 with itemized reasons
- Anything else is caught by ErrorSanitizationMiddleware: full details in the log,
  a generic 500 with an error id for the client
"""
import logging
import traceback
import uuid

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings
from app.core.exceptions import TripPlannerError, ValidationFailed

logger = logging.getLogger(__name__)


async def trip_planner_error_handler(request: Request, exc: TripPlannerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc!r} on {request.method} {request.url.path}: {exc.details}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}")
    return exc.to_response()


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        errors.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return ValidationFailed("Invalid request", errors=errors).to_response()


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TripPlannerError, trip_planner_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)


class ErrorSanitizationMiddleware(BaseHTTPMiddleware):
    """
    Catch unhandled exceptions and sanitize error responses.

    - In production: Returns generic error, logs full details
    - In development: Returns full error for debugging
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except HTTPException:
            # Let FastAPI handle HTTPExceptions normally
            raise
        except Exception as e:
            error_id = uuid.uuid4().hex[:12]
            logger.error(
                f"Unhandled exception [{error_id}]: {type(e).__name__}: {str(e)}\n"
                f"Path: {request.url.path}\n"
                f"Method: {request.method}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            content = {
                "error": "internal_error",
                "message": "An unexpected error occurred. Please try again later.",
                "error_id": error_id,
            }
            if settings.DEBUG:
                content["message"] = str(e)
                content["type"] = type(e).__name__

            return JSONResponse(status_code=500, content=content)
