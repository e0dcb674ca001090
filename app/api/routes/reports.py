"""
Reports API Routes
Lab Report Analyzer

Endpoints:
  POST   /api/v1/reports/analyze          - Upload and analyze a lab report
  POST   /api/v1/reports/{id}/reanalyze   - Re-run analysis on stored text
  GET    /api/v1/reports                  - List analysis history (paginated)
  GET    /api/v1/reports/{id}             - Get single report analysis
  DELETE /api/v1/reports/{id}             - Delete a report
"""

import json
import logging
from math import ceil
from typing import Optional

from fastapi import APIRouter, UploadFile, File, Form, Depends, HTTPException, Query, Response
from pydantic import ValidationError

from app.api.dependencies import get_owner_id, get_pipeline, get_report_repository
from app.api.errors import FailedReportError
from app.core.config import settings
from app.schemas.report import (
    AnalysisResponse,
    AnalysisResult,
    ErrorResponse,
    Language,
    PaginatedReports,
    ReportListItem,
    ReportResponse,
    ReportStatus,
    ReportType,
    UserProfile,
)
from app.services.pipeline_service import PipelineOutcome, ReportPipeline
from app.services.report_repository import ReportRepository
from app.utils.file_handler import is_allowed_mime_type, read_upload

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/reports", tags=["Lab Reports"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    402: {"model": ErrorResponse},
    413: {"model": ErrorResponse},
    415: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def parse_user_profile(
    user_profile: Optional[str],
    age: Optional[int],
    gender: Optional[str],
    conditions: Optional[str],
) -> Optional[UserProfile]:
    """Build the optional profile from a JSON field or individual form fields."""
    try:
        if user_profile:
            profile = UserProfile.model_validate(json.loads(user_profile))
        else:
            profile = UserProfile(age=age, gender=gender, conditions=conditions)
    except (ValueError, ValidationError) as e:
        logger.info("Could not parse user profile, continuing without it: %s", e)
        return None
    return None if profile.is_empty() else profile


def _to_response(outcome: PipelineOutcome) -> AnalysisResponse:
    report = outcome.report
    if not outcome.succeeded:
        raise FailedReportError(report)
    return AnalysisResponse(
        report_id=report.id,
        report_type=ReportType(report.report_type),
        analysis=AnalysisResult.model_validate(report.ai_response),
        processing_time_ms=report.processing_time_ms,
        credits_used=outcome.credits_used,
        credits_remaining=outcome.credits_remaining,
        language=Language(report.language),
    )


# ── Upload & Analyze ───────────────────────────────────────────────
@router.post(
    "/analyze",
    response_model=AnalysisResponse,
    summary="Upload and analyze a lab report",
    description=(
        "Upload a PDF or image (PNG, JPG, JPEG, WEBP) lab report. "
        "Text is extracted, the report type is detected and an AI explanation is returned. "
        "**Disclaimer:** This system is for informational purposes only and does not provide medical diagnosis."
    ),
    responses=_ERROR_RESPONSES,
)
async def analyze_report(
    file: Optional[UploadFile] = File(default=None, description="Lab report (PDF or image, max 10MB)"),
    user_profile: Optional[str] = Form(default=None, description="JSON profile: {age, gender, conditions}"),
    age: Optional[int] = Form(default=None),
    gender: Optional[str] = Form(default=None),
    conditions: Optional[str] = Form(default=None, description="Comma-separated conditions"),
    language: Language = Form(default=Language.ENGLISH),
    owner_id: str = Depends(get_owner_id),
    pipeline: ReportPipeline = Depends(get_pipeline),
):
    content = None
    if file is not None:
        if not is_allowed_mime_type(file.content_type, settings.allowed_mime_types_list):
            raise HTTPException(
                status_code=415,
                detail="Invalid file type. Allowed types: PDF, PNG, JPG, JPEG, WEBP",
            )
        try:
            content = await read_upload(file, settings.max_file_size_bytes)
        except ValueError as e:
            raise HTTPException(status_code=413, detail=str(e))

    profile = parse_user_profile(user_profile, age, gender, conditions)

    outcome = await pipeline.submit(
        owner_id=owner_id,
        file_name=file.filename if file is not None else None,
        content=content,
        mime_type=file.content_type if file is not None else None,
        profile=profile,
        language=language,
    )
    return _to_response(outcome)


# ── Reanalyze ──────────────────────────────────────────────────────
@router.post(
    "/{report_id}/reanalyze",
    response_model=AnalysisResponse,
    summary="Re-run AI analysis on an existing report",
    responses={**_ERROR_RESPONSES, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reanalyze_report(
    report_id: str,
    owner_id: str = Depends(get_owner_id),
    pipeline: ReportPipeline = Depends(get_pipeline),
):
    """Re-analyze stored text. Extraction is not repeated."""
    outcome = await pipeline.reanalyze(owner_id=owner_id, report_id=report_id)
    return _to_response(outcome)


# ── List History ───────────────────────────────────────────────────
@router.get(
    "",
    response_model=PaginatedReports,
    summary="Get report analysis history",
)
async def list_reports(
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(default=10, ge=1, le=100, description="Items per page"),
    status: Optional[ReportStatus] = Query(default=None, description="Filter by status"),
    owner_id: str = Depends(get_owner_id),
    reports: ReportRepository = Depends(get_report_repository),
):
    """Retrieve the caller's reports, newest first."""
    items, total = await reports.list(
        owner_id=owner_id, page=page, page_size=page_size, status=status
    )
    pages = ceil(total / page_size) if total > 0 else 0

    return PaginatedReports(
        items=[ReportListItem.model_validate(item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
        pages=pages,
    )


# ── Get Single Report ──────────────────────────────────────────────
@router.get(
    "/{report_id}",
    response_model=ReportResponse,
    summary="Get a specific report analysis",
)
async def get_report(
    report_id: str,
    owner_id: str = Depends(get_owner_id),
    reports: ReportRepository = Depends(get_report_repository),
):
    report = await reports.get(owner_id=owner_id, report_id=report_id)
    if not report:
        raise HTTPException(status_code=404, detail=f"Report {report_id} not found")
    return ReportResponse.model_validate(report)


# ── Delete Report ──────────────────────────────────────────────────
@router.delete(
    "/{report_id}",
    status_code=204,
    summary="Delete a report",
)
async def delete_report(
    report_id: str,
    owner_id: str = Depends(get_owner_id),
    reports: ReportRepository = Depends(get_report_repository),
):
    """Permanently delete a report and its analysis."""
    deleted = await reports.delete(owner_id=owner_id, report_id=report_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Report {report_id} not found")
    return Response(status_code=204)
