"""
Pydantic Schemas - Request/Response Models
Lab Report Analyzer

API payloads use camelCase keys; Python attributes stay snake_case.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, List, Optional
from datetime import datetime
from enum import Enum


# ── Enums ──────────────────────────────────────────────────────────
class ReportStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ReportType(str, Enum):
    BLOOD_TEST = "blood_test"
    URINE_TEST = "urine_test"
    LIPID_PANEL = "lipid_panel"
    LIVER_FUNCTION = "liver_function"
    KIDNEY_FUNCTION = "kidney_function"
    THYROID = "thyroid"
    GENERAL = "general"
    OTHER = "other"


class FileKind(str, Enum):
    PDF = "pdf"
    IMAGE = "image"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class FindingStatus(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    LOW = "low"
    CRITICAL_HIGH = "critical_high"
    CRITICAL_LOW = "critical_low"


class Language(str, Enum):
    ENGLISH = "en"
    HINDI = "hi"
    SPANISH = "es"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ── User Profile ───────────────────────────────────────────────────
class UserProfile(CamelModel):
    """Optional context that biases the analysis. Never required."""

    age: Optional[int] = Field(default=None, ge=0, le=130)
    gender: Optional[Gender] = None
    conditions: List[str] = Field(default_factory=list)

    @field_validator("gender", mode="before")
    @classmethod
    def _lower_gender(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("conditions", mode="before")
    @classmethod
    def _split_conditions(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [c.strip() for c in v.split(",") if c.strip()]
        return v

    def is_empty(self) -> bool:
        return self.age is None and self.gender is None and not self.conditions


# ── Analysis Result ────────────────────────────────────────────────
def _as_text(v: Any) -> Any:
    if v is None:
        return ""
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


class KeyFinding(CamelModel):
    test: str = ""
    value: str = ""
    normal_range: str = ""
    status: Optional[FindingStatus] = None

    @field_validator("test", "value", "normal_range", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Any:
        return _as_text(v)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower().replace(" ", "_").replace("-", "_") or None
        return v


class Explanation(CamelModel):
    test: str = ""
    meaning: str = ""

    @field_validator("test", "meaning", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Any:
        return _as_text(v)


class AnalysisResult(CamelModel):
    """Structured, plain-language explanation of a lab report."""

    summary: str
    key_findings: List[KeyFinding] = Field(default_factory=list)
    explanations: List[Explanation] = Field(default_factory=list)
    lifestyle_suggestions: List[str] = Field(default_factory=list)
    doctor_consultation_advice: str
    disclaimer: str = Field(min_length=1)


# ── Pipeline Response ──────────────────────────────────────────────
class AnalysisResponse(CamelModel):
    """Outbound result of a successful analyze or reanalyze call."""

    report_id: str
    report_type: ReportType
    analysis: AnalysisResult
    processing_time_ms: float
    credits_used: int
    credits_remaining: int
    language: Language = Language.ENGLISH
    disclaimer: str = "This system is for informational purposes only and does not provide medical diagnosis."


# ── Report Detail ──────────────────────────────────────────────────
class ReportResponse(CamelModel):
    """Full stored report, including extracted text."""

    id: str
    owner_id: str
    file_name: str
    file_type: Optional[FileKind] = None
    mime_type: Optional[str] = None
    file_size_bytes: int
    report_type: ReportType
    language: Language
    status: ReportStatus
    raw_extracted_text: str = ""
    user_profile: Optional[UserProfile] = None
    ai_response: Optional[AnalysisResult] = None
    processing_time_ms: Optional[float] = None
    tokens_used: Optional[int] = None
    credits_used: int = 0
    analysis_count: int = 0
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    disclaimer: str = "This system is for informational purposes only and does not provide medical diagnosis."


# ── History List Item ──────────────────────────────────────────────
class ReportListItem(CamelModel):
    id: str
    file_name: str
    file_type: Optional[FileKind] = None
    report_type: ReportType
    status: ReportStatus
    ai_response: Optional[AnalysisResult] = None
    processing_time_ms: Optional[float] = None
    error_message: Optional[str] = None
    created_at: datetime


# ── Paginated History ──────────────────────────────────────────────
class PaginatedReports(CamelModel):
    items: List[ReportListItem]
    total: int
    page: int
    page_size: int
    pages: int
    disclaimer: str = "This system is for informational purposes only and does not provide medical diagnosis."


# ── Health Check ───────────────────────────────────────────────────
class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    ai: str
    timestamp: datetime
    disclaimer: str = "This system is for informational purposes only and does not provide medical diagnosis."


# ── Error Response ─────────────────────────────────────────────────
class ErrorResponse(CamelModel):
    error: str
    detail: Optional[str] = None
    report_id: Optional[str] = None
    disclaimer: str = "This system is for informational purposes only and does not provide medical diagnosis."
