"""
HTTP mapping for pipeline errors
Lab Report Analyzer
"""

import logging
from typing import Dict, Optional, Type

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core import errors
from app.models.report import LabReport

logger = logging.getLogger(__name__)

STATUS_CODES: Dict[Type[errors.ReportPipelineError], int] = {
    errors.NoFileProvided: 400,
    errors.NoExtractedText: 400,
    errors.InsufficientCredits: 402,
    errors.ReportNotFound: 404,
    errors.InvalidStateTransition: 409,
    errors.InputTooLarge: 413,
    errors.UnsupportedFileType: 415,
    errors.ExtractionFailed: 422,
    errors.InsufficientInput: 422,
    errors.MalformedAnalysisResponse: 502,
    errors.ServiceBusy: 503,
    errors.AnalysisServiceUnavailable: 503,
}


def status_code_for(exc: errors.ReportPipelineError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


class FailedReportError(Exception):
    """Raised by routes when the pipeline finished with a `failed` report."""

    def __init__(self, report: LabReport):
        self.report = report
        error_cls = errors.STAGE_ERRORS.get(report.error_code or "", errors.StageError)
        self.error = error_cls(report.error_message)
        super().__init__(self.error.message)


def _error_body(error: errors.ReportPipelineError, report_id: Optional[str] = None) -> dict:
    body = {
        "error": error.code,
        "detail": error.message,
        "disclaimer": settings.disclaimer,
    }
    if report_id:
        body["reportId"] = report_id
    if isinstance(error, errors.InsufficientCredits):
        body["required"] = error.required
        body["available"] = error.available
    return body


def _headers(error: errors.ReportPipelineError) -> Optional[dict]:
    if isinstance(error, errors.ServiceBusy):
        return {"Retry-After": "30"}
    return None


async def pipeline_error_handler(request: Request, exc: errors.ReportPipelineError):
    status = status_code_for(exc)
    logger.warning("%s %s -> %d %s", request.method, request.url.path, status, exc.code)
    return JSONResponse(status_code=status, content=_error_body(exc), headers=_headers(exc))


async def failed_report_handler(request: Request, exc: FailedReportError):
    status = status_code_for(exc.error)
    return JSONResponse(
        status_code=status,
        content=_error_body(exc.error, report_id=exc.report.id),
        headers=_headers(exc.error),
    )
