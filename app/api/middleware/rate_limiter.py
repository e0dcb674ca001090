"""
Rate Limiting Middleware
Lab Report Analyzer

Sliding window rate limiting of analysis requests, keyed by owner id
(falling back to client IP).
"""

import re
import time
import logging
from collections import defaultdict, deque
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings

logger = logging.getLogger(__name__)

# POST /api/v1/reports/analyze and POST /api/v1/reports/{id}/reanalyze
ANALYSIS_PATH = re.compile(r"^/api/v1/reports/(analyze|[^/]+/reanalyze)/?$")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding window limiter for the analysis endpoints.
    Default: 10 analyses per hour per owner.
    """

    def __init__(
        self,
        app,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ):
        super().__init__(app)
        self.max_requests = (
            settings.report_rate_limit_requests if max_requests is None else max_requests
        )
        self.window_seconds = (
            settings.report_rate_limit_window if window_seconds is None else window_seconds
        )
        self._windows: dict = defaultdict(deque)
        logger.info(
            "Rate limiter: %d analyses/%ds per owner", self.max_requests, self.window_seconds
        )

    def _get_client_key(self, request: Request) -> str:
        """Owner id if present, else client IP (respecting proxy headers)."""
        owner_id = request.headers.get("X-User-Id", "").strip()
        if owner_id:
            return f"owner:{owner_id}"
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return "ip:" + forwarded_for.split(",")[0].strip()
        return "ip:" + (request.client.host if request.client else "unknown")

    async def dispatch(self, request: Request, call_next):
        if request.method != "POST" or not ANALYSIS_PATH.match(request.url.path):
            return await call_next(request)

        key = self._get_client_key(request)
        now = time.time()
        window = self._windows[key]

        # Remove timestamps outside the window
        while window and window[0] <= now - self.window_seconds:
            window.popleft()

        if len(window) >= self.max_requests:
            remaining_wait = int(window[0] + self.window_seconds - now + 1)
            logger.warning(f"Rate limit exceeded for {key}")
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "detail": "Too many report analysis requests. Please try again later.",
                    "retry_after_seconds": remaining_wait,
                    "disclaimer": settings.disclaimer,
                },
                headers={"Retry-After": str(remaining_wait)},
            )

        window.append(now)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(self.max_requests - len(window))
        response.headers["X-RateLimit-Window"] = str(self.window_seconds)
        return response
