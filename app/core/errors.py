"""
Pipeline Error Taxonomy
Lab Report Analyzer

Every failure the report pipeline can produce is a subclass of
ReportPipelineError with a stable ``code``. Stage errors are recorded on the
Report; request errors are raised straight to the caller before (or instead
of) touching a Report.
"""

from typing import Optional


class ReportPipelineError(Exception):
    """Base class for all pipeline failures."""

    code: str = "pipeline_error"
    default_message: str = "Report analysis failed. Please try again later."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} code={self.code} message={self.message!r}>"


class StageError(ReportPipelineError):
    """A failure inside a pipeline stage. Recorded on the Report as `failed`."""


class RequestError(ReportPipelineError):
    """A failure of the request itself. Never recorded on a Report."""


# ── Extraction ────────────────────────────────────────────────────
class UnsupportedFileType(StageError):
    code = "unsupported_file_type"
    default_message = (
        "Unsupported file type. Please upload a PDF or image file (PNG, JPG, JPEG, WEBP)."
    )


class ExtractionFailed(StageError):
    code = "extraction_failed"
    default_message = "Text extraction failed."


# ── Analysis ──────────────────────────────────────────────────────
class InsufficientInput(StageError):
    code = "insufficient_input"
    default_message = (
        "Extracted text is too short to analyze. Please ensure the report "
        "image/PDF is clear and readable."
    )


class MalformedAnalysisResponse(StageError):
    code = "malformed_analysis_response"
    default_message = "AI response was not in the expected format. Please try again."


class ServiceBusy(StageError):
    code = "service_busy"
    default_message = "Service is temporarily busy. Please try again in a moment."


class InputTooLarge(StageError):
    code = "input_too_large"
    default_message = (
        "The report is too long to analyze. Please try uploading a smaller section."
    )


class AnalysisServiceUnavailable(StageError):
    code = "analysis_service_unavailable"
    default_message = "AI analysis service is unavailable. Please try again later."


class NoExtractedText(StageError):
    code = "no_extracted_text"
    default_message = "No extracted text available for re-analysis."


# ── Request-level ─────────────────────────────────────────────────
class NoFileProvided(RequestError):
    code = "no_file_provided"
    default_message = "Please upload a report file (PDF or image)."


class InsufficientCredits(RequestError):
    code = "insufficient_credits"
    default_message = "Insufficient credits."

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient credits: {required} required, {available} available."
        )


class ReportNotFound(RequestError):
    code = "report_not_found"
    default_message = "Report not found."


class InvalidStateTransition(RequestError):
    code = "invalid_state_transition"
    default_message = "Report is not in a state that allows this operation."


STAGE_ERRORS = {
    cls.code: cls
    for cls in (
        UnsupportedFileType,
        ExtractionFailed,
        InsufficientInput,
        MalformedAnalysisResponse,
        ServiceBusy,
        InputTooLarge,
        AnalysisServiceUnavailable,
        NoExtractedText,
    )
}
