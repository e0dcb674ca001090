"""
Logging Configuration
Lab Report Analyzer

Configures stdout logging and attaches request and AI-call context
as `extra` fields on log records.
"""

import logging
import sys
from datetime import datetime, timezone

from app.core.config import settings


def configure_logging() -> None:
    """Configure application-wide logging."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s"
        if settings.log_format != "json"
        else "%(message)s",
        stream=sys.stdout,
    )

    # Quieten noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


class RequestLogger:
    """Contextual logger for HTTP request and AI call tracking."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def log_request(
        self, request_id: str, method: str, path: str, status: int, duration_ms: float
    ) -> None:
        level = logging.WARNING if status >= 400 else logging.INFO
        self.logger.log(
            level,
            "[%s] %s %s -> %d (%.1fms)",
            request_id, method, path, status, duration_ms,
            extra={
                "request_id": request_id,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    def log_ai_call(self, model: str, tokens: int, duration_ms: float) -> None:
        self.logger.info(
            "AI call model=%s tokens=%d (%.0fms)",
            model, tokens, duration_ms,
            extra={
                "model": model,
                "tokens_used": tokens,
                "duration_ms": round(duration_ms, 2),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
