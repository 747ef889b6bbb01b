"""
Structured logging middleware
"""

import time
import logging
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from chatcoach.domain.appconfig import APP_ENV_HEADER, APP_VERSION_HEADER

logger = logging.getLogger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"


def get_correlation_id(request: Request) -> str:
    """Correlation id of the current request, as assigned by the middleware"""
    return getattr(request.state, "correlation_id", None) or request.headers.get(CORRELATION_ID_HEADER, "unknown")


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for structured request/response logging
    """

    def __init__(self, app, excluded_paths: list = None):
        super().__init__(app)
        self.excluded_paths = excluded_paths or [
            "/health",
            "/docs",
            "/openapi.json",
            "/redoc"
        ]

    async def dispatch(self, request: Request, call_next):
        """
        Process request with structured logging

        A correlation id sent by the client is kept, otherwise a new one is
        generated. It is exposed on ``request.state`` for error bodies and
        echoed on the response.
        """
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        if request.url.path in self.excluded_paths:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = correlation_id
            return response

        start_time = time.time()
        self._log_request(request, correlation_id)

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            self._log_error(request, e, correlation_id, process_time)
            raise

        process_time = time.time() - start_time
        self._log_response(request, response, correlation_id, process_time)
        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response

    def _log_request(self, request: Request, correlation_id: str):
        logger.info(
            "Request received",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "query_params": str(request.query_params),
                "client_ip": self._get_client_ip(request),
                "user_agent": request.headers.get("User-Agent", "unknown"),
                "app_version": request.headers.get(APP_VERSION_HEADER, ""),
                "app_env": request.headers.get(APP_ENV_HEADER, ""),
                "event_type": "request"
            }
        )

    def _log_response(self, request: Request, response: Response, correlation_id: str, process_time: float):
        logger.info(
            "Response sent",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "process_time_ms": round(process_time * 1000, 2),
                "event_type": "response"
            }
        )

    def _log_error(self, request: Request, error: Exception, correlation_id: str, process_time: float):
        logger.error(
            "Request failed",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "error_type": type(error).__name__,
                "error_message": str(error),
                "process_time_ms": round(process_time * 1000, 2),
                "event_type": "error"
            },
            exc_info=True
        )

    def _get_client_ip(self, request: Request) -> str:
        """
        Extract client IP address from request
        """
        # Proxies put the original client first
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"
