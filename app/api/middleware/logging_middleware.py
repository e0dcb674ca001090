"""
Logging Middleware
Lab Report Analyzer

Logs all HTTP requests with timing, method, path, status, and request ID.
"""

import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request

from app.core.logging_config import RequestLogger

logger = logging.getLogger(__name__)
request_logger = RequestLogger(logger)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Structured request/response logging middleware."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())[:8]
        start_time = time.monotonic()

        # Attach request_id for downstream use
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.error(
                "[%s] %s %s -> ERROR (%.1fms) %s",
                request_id, request.method, request.url.path, duration_ms, exc,
            )
            raise

        duration_ms = (time.monotonic() - start_time) * 1000
        request_logger.log_request(
            request_id, request.method, request.url.path, response.status_code, duration_ms
        )
        response.headers["X-Request-ID"] = request_id
        return response
