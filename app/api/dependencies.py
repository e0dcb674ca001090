"""
FastAPI dependencies
Lab Report Analyzer
"""

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.session import get_db
from app.services.ai_service import CompletionClient
from app.services.analysis_service import AnalysisEngine
from app.services.credit_ledger import DatabaseCreditLedger
from app.services.extraction_service import TextExtractor
from app.services.pipeline_service import ReportPipeline
from app.services.report_repository import ReportRepository


async def get_owner_id(x_user_id: str = Header(default="", alias="X-User-Id")) -> str:
    """Identity of the caller, supplied by the upstream auth layer."""
    owner_id = x_user_id.strip()
    if not owner_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return owner_id


def get_completion_client(request: Request) -> CompletionClient:
    client = getattr(request.app.state, "completion_client", None)
    if client is None:
        raise HTTPException(
            status_code=503,
            detail="AI service is not configured. Check MEDICAL_AI_API_KEY.",
        )
    return client


def get_text_extractor() -> TextExtractor:
    return TextExtractor()


def get_report_repository(db: AsyncSession = Depends(get_db)) -> ReportRepository:
    return ReportRepository(db)


def get_pipeline(
    db: AsyncSession = Depends(get_db),
    client: CompletionClient = Depends(get_completion_client),
    extractor: TextExtractor = Depends(get_text_extractor),
) -> ReportPipeline:
    return ReportPipeline(
        reports=ReportRepository(db),
        extractor=extractor,
        engine=AnalysisEngine(client),
        ledger=DatabaseCreditLedger(db),
    )
