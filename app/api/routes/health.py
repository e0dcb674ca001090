"""
Health & Diagnostics Routes
Lab Report Analyzer

Endpoints:
  GET /api/v1/health      System health check
  GET /api/v1/test-llm    Quick LLM connectivity test
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.database.session import check_database_connection
from app.schemas.report import HealthResponse
from app.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="System health check",
    description="Returns the health status of the database and the AI client configuration.",
)
async def health_check(request: Request):
    db_ok = await check_database_connection()
    ai_ok = getattr(request.app.state, "completion_client", None) is not None

    overall = "healthy" if db_ok and ai_ok else "degraded"

    return HealthResponse(
        status=overall,
        version=settings.app_version,
        database="healthy" if db_ok else "unhealthy",
        ai="configured" if ai_ok else "not configured",
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/test-llm",
    summary="Test LLM connectivity",
    description=(
        "Sends a simple 'Hello' message to Gemini and returns the response. "
        "Use this to verify that the AI API key and model are correctly configured."
    ),
    responses={
        200: {"description": "LLM responded successfully"},
        503: {"description": "LLM unavailable or misconfigured"},
    },
)
async def test_llm(request: Request):
    logger.info("LLM connectivity test requested")
    client = getattr(request.app.state, "completion_client", None)
    if client is None:
        result = {"status": "error", "error": "AI client is not configured"}
    else:
        result = await client.test_connection()

    if result.get("status") == "ok":
        return {
            "status": "ok",
            "model": result.get("model"),
            "response": result.get("response"),
            "disclaimer": settings.disclaimer,
        }

    # 503 so load balancers / monitoring pick it up
    return JSONResponse(
        status_code=503,
        content={
            "status": "error",
            "error": result.get("error", "Unknown error"),
            "hint": "Check MEDICAL_AI_API_KEY in your .env file and verify the model name.",
            "disclaimer": settings.disclaimer,
        },
    )
