"""
FastAPI Application Entry Point
Lab Report Analyzer

Turns uploaded lab reports into structured, plain-language explanations.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import ReportPipelineError
from app.core.logging_config import configure_logging
from app.database.session import init_db
from app.api.errors import FailedReportError, failed_report_handler, pipeline_error_handler
from app.api.middleware.rate_limiter import RateLimitMiddleware
from app.api.middleware.logging_middleware import LoggingMiddleware
from app.api.routes import reports, health
from app.services.ai_service import GeminiCompletionClient

# Configure logging before anything else
configure_logging()
logger = logging.getLogger(__name__)


# -- Lifespan (startup/shutdown) -----------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management."""
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"  Environment: {settings.app_env}")
    logger.info(f"  AI Model:    {settings.ai_model}")

    # Build the completion client once; routes receive it by injection
    app.state.completion_client = None
    try:
        app.state.completion_client = GeminiCompletionClient.from_settings(settings)
        logger.info("  AI client: configured")
    except ValueError as e:
        logger.warning(f"  AI client WARNING: {e}")

    await init_db()
    logger.info("  Database: initialized")

    logger.info(f"  {settings.app_name} is ready at http://localhost:{settings.port}")
    yield

    logger.info("Shutting down...")
    if app.state.completion_client is not None:
        await app.state.completion_client.close()
    logger.info("Shutdown complete.")


# -- FastAPI App ---------------------------------------------------------------
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "AI-powered lab report explanation service. "
        "Extracts text from PDF or image reports, detects the report type "
        "and returns a plain-language analysis.\n\n"
        "**DISCLAIMER:** This system is for informational purposes only "
        "and does not provide medical diagnosis."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# -- Middleware (outermost first) ----------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RateLimitMiddleware)

# -- Routes -------------------------------------------------------------------
app.include_router(health.router)
app.include_router(reports.router)

# -- Exception Handlers -------------------------------------------------------
app.add_exception_handler(ReportPipelineError, pipeline_error_handler)
app.add_exception_handler(FailedReportError, failed_report_handler)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
            "disclaimer": settings.disclaimer,
        },
    )


# -- Root API Info ------------------------------------------------------------
@app.get("/api", include_in_schema=False)
async def api_info():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "disclaimer": settings.disclaimer,
        "docs": "/docs",
        "health": "/api/v1/health",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=not settings.is_production(),
        log_level=settings.log_level.lower(),
    )
