"""
Error handling middleware and exception handlers
"""

import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from chatcoach.core.config import settings
from chatcoach.domain.errors import CoachError, InternalError, ParamInvalidError
from chatcoach.middleware.logging import get_correlation_id

logger = logging.getLogger(__name__)

ERROR_CATEGORIES = {
    400: "INVALID_ARGUMENT",
    401: "UNAUTHENTICATED",
    403: "PERMISSION_DENIED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    500: "INTERNAL_ERROR",
    502: "BAD_GATEWAY",
    503: "SERVICE_UNAVAILABLE",
    504: "GATEWAY_TIMEOUT"
}


def coach_error_response(exc: CoachError, request: Request) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.to_dict(get_correlation_id(request))}
    )


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Last line of defence: anything a route lets escape becomes a 500 body
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except CoachError as e:
            return coach_error_response(e, request)
        except Exception as e:
            return self._handle_unexpected_exception(e, request)

    def _handle_unexpected_exception(self, exc: Exception, request: Request) -> JSONResponse:
        """
        Log the concrete cause and answer with a generic internal error

        Args:
            exc: Exception
            request: Request object

        Returns:
            JSON error response
        """
        logger.error(f"Unexpected exception: {type(exc).__name__} - {str(exc)}", exc_info=True)

        error = InternalError().to_dict(get_correlation_id(request))

        # Include error details in development mode
        if settings.debug:
            error["details"] = {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc)
            }

        return JSONResponse(status_code=500, content={"error": error})


async def handle_coach_error(request: Request, exc: CoachError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.category} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.category} {exc.message}")
    return coach_error_response(exc, request)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body and query validation failures are reported as invalid parameters"""
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{location}: {err.get('msg', 'invalid')}" if location else err.get("msg", "invalid"))
    return coach_error_response(ParamInvalidError("; ".join(problems) or None), request)


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning(f"HTTP exception: {exc.status_code} - {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.status_code * 100,
                "category": ERROR_CATEGORIES.get(exc.status_code, "UNKNOWN_ERROR"),
                "message": str(exc.detail),
                "requestId": get_correlation_id(request),
            }
        },
        headers=getattr(exc, "headers", None)
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(CoachError, handle_coach_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
