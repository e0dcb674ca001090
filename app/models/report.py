"""
SQLAlchemy ORM Models
Lab Report Analyzer - SQLite-compatible version

A LabReport moves processing -> completed | failed. A terminal report can
only re-enter processing through begin_reanalysis(); every other transition
raises InvalidStateTransition.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Column, String, Text, Float, Integer, DateTime, JSON, Index
)

from app.core.errors import InvalidStateTransition, StageError
from app.database.session import Base
from app.schemas.report import AnalysisResult, ReportStatus, ReportType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


ALLOWED_TRANSITIONS: dict[ReportStatus, frozenset[ReportStatus]] = {
    ReportStatus.PROCESSING: frozenset({ReportStatus.COMPLETED, ReportStatus.FAILED}),
    ReportStatus.COMPLETED: frozenset({ReportStatus.PROCESSING}),
    ReportStatus.FAILED: frozenset({ReportStatus.PROCESSING}),
}


class LabReport(Base):
    """Stores one uploaded lab report and its latest analysis attempt."""

    __tablename__ = "lab_reports"
    __table_args__ = (
        Index("ix_lab_reports_owner_created", "owner_id", "created_at"),
    )

    # Primary Key - use String for SQLite compatibility
    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        index=True,
    )
    owner_id = Column(String(64), nullable=False, index=True)

    # File metadata
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(10), nullable=True)
    mime_type = Column(String(100), nullable=True)
    file_size_bytes = Column(Integer, nullable=False, default=0)
    raw_extracted_text = Column(Text, nullable=False, default="")

    # Classification and context
    report_type = Column(String(32), nullable=False, default=ReportType.GENERAL.value)
    user_profile = Column(JSON, nullable=True)
    language = Column(String(5), nullable=False, default="en")

    # Analysis status
    status = Column(
        String(20),
        nullable=False,
        default=ReportStatus.PROCESSING.value,
        index=True,
    )
    ai_response = Column(JSON, nullable=True)
    error_code = Column(String(64), nullable=True)
    error_message = Column(Text, nullable=True)

    # Performance and accounting
    processing_time_ms = Column(Float, nullable=True)
    tokens_used = Column(Integer, nullable=True)
    credits_used = Column(Integer, nullable=False, default=0)
    analysis_count = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    # ── State machine ──────────────────────────────────────────────
    @property
    def current_status(self) -> ReportStatus:
        return ReportStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.current_status in (ReportStatus.COMPLETED, ReportStatus.FAILED)

    def _transition(self, target: ReportStatus) -> None:
        current = self.current_status
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStateTransition(
                f"Report {self.id} cannot move from '{current.value}' to '{target.value}'."
            )
        self.status = target.value

    def mark_completed(
        self,
        result: AnalysisResult,
        processing_time_ms: float,
        credits_used: int,
        tokens_used: Optional[int] = None,
    ) -> None:
        self._transition(ReportStatus.COMPLETED)
        self.ai_response = result.model_dump(mode="json", by_alias=True)
        self.processing_time_ms = processing_time_ms
        self.tokens_used = tokens_used
        self.credits_used = (self.credits_used or 0) + credits_used
        self.analysis_count = (self.analysis_count or 0) + 1
        self.error_code = None
        self.error_message = None

    def mark_failed(self, error: StageError, processing_time_ms: float) -> None:
        self._transition(ReportStatus.FAILED)
        self.ai_response = None
        self.processing_time_ms = processing_time_ms
        self.error_code = error.code
        self.error_message = error.message

    def begin_reanalysis(self) -> None:
        """Re-enter processing. Prior output stays until the new terminal state."""
        if not self.is_terminal:
            raise InvalidStateTransition(
                f"Report {self.id} is still processing and cannot be re-analyzed."
            )
        self._transition(ReportStatus.PROCESSING)

    def __repr__(self) -> str:
        return f"<LabReport id={self.id} file_name={self.file_name} status={self.status}>"
