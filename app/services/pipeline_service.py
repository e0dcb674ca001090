"""
Pipeline Service
Lab Report Analyzer

Orchestrates the full report analysis pipeline:
1. Check the owner's credits (no report is created if this fails)
2. Create a `processing` report record
3. Extract text, then classify the report type
4. Run AI analysis
5. Mark `completed` and persist, then deduct the credit

Any stage failure marks the report `failed` with the stage's error code and
message; later stages do not run and no credit is deducted. Reanalysis
re-runs steps 4-5 against the stored text.
"""

import time
import logging
from dataclasses import dataclass
from typing import Optional

from app.core.config import settings
from app.core.errors import (
    InsufficientCredits,
    InvalidStateTransition,
    NoExtractedText,
    NoFileProvided,
    ReportNotFound,
    StageError,
)
from app.models.report import LabReport
from app.schemas.report import Language, ReportStatus, ReportType, UserProfile
from app.services.analysis_service import AnalysisEngine
from app.services.classification_service import classify_report
from app.services.credit_ledger import CreditCheck, CreditLedger
from app.services.extraction_service import TextExtractor
from app.services.report_repository import ReportRepository
from app.utils.file_handler import detect_file_kind

logger = logging.getLogger(__name__)


@dataclass
class PipelineOutcome:
    report: LabReport
    credits_used: int
    credits_remaining: int

    @property
    def succeeded(self) -> bool:
        return self.report.current_status is ReportStatus.COMPLETED


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 2)


class ReportPipeline:
    """Sequences extraction, classification and analysis for one request."""

    def __init__(
        self,
        reports: ReportRepository,
        extractor: TextExtractor,
        engine: AnalysisEngine,
        ledger: CreditLedger,
        credits_per_analysis: Optional[int] = None,
    ):
        self.reports = reports
        self.extractor = extractor
        self.engine = engine
        self.ledger = ledger
        self.cost = (
            settings.credits_per_analysis if credits_per_analysis is None else credits_per_analysis
        )

    async def _require_credits(self, owner_id: str) -> CreditCheck:
        credit = await self.ledger.check(owner_id, self.cost)
        if not credit.allowed:
            logger.warning(
                "Owner %s has %d credit(s), %d required", owner_id, credit.available, self.cost
            )
            raise InsufficientCredits(required=self.cost, available=credit.available)
        return credit

    # ── Public: submit ───────────────────────────────────────────
    async def submit(
        self,
        owner_id: str,
        file_name: Optional[str],
        content: Optional[bytes],
        mime_type: Optional[str],
        profile: Optional[UserProfile] = None,
        language: Language = Language.ENGLISH,
    ) -> PipelineOutcome:
        started = time.monotonic()

        if not content:
            raise NoFileProvided()

        credit = await self._require_credits(owner_id)

        kind = detect_file_kind(mime_type)
        report = LabReport(
            owner_id=owner_id,
            file_name=file_name or "report",
            file_type=kind.value if kind else None,
            mime_type=mime_type,
            file_size_bytes=len(content),
            raw_extracted_text="",
            report_type=ReportType.GENERAL.value,
            user_profile=(
                profile.model_dump(mode="json")
                if profile is not None and not profile.is_empty()
                else None
            ),
            language=language.value,
            status=ReportStatus.PROCESSING.value,
        )
        await self.reports.add(report)
        logger.info("Processing report %s (%s, %s)", report.id, report.file_name, mime_type)

        try:
            text, kind = await self.extractor.extract(content, mime_type)
        except StageError as e:
            return await self._fail(report, e, started, credit)
        except Exception as exc:
            logger.error("Unexpected extraction error for report %s: %s", report.id, exc, exc_info=True)
            return await self._fail(report, StageError(), started, credit)

        report.raw_extracted_text = text
        report.file_type = kind.value
        report.report_type = classify_report(text).value
        await self.reports.save(report)

        return await self._analyze(report, profile, language, started, credit)

    # ── Public: reanalyze ────────────────────────────────────────
    async def reanalyze(self, owner_id: str, report_id: str) -> PipelineOutcome:
        report = await self.reports.get(owner_id, report_id)
        if report is None:
            raise ReportNotFound(f"Report {report_id} not found.")
        if not report.is_terminal:
            raise InvalidStateTransition(
                f"Report {report_id} is still processing and cannot be re-analyzed."
            )

        credit = await self._require_credits(owner_id)
        started = time.monotonic()

        report.begin_reanalysis()
        await self.reports.save(report)
        logger.info("Re-analyzing report %s", report.id)

        if not report.raw_extracted_text:
            return await self._fail(report, NoExtractedText(), started, credit)

        profile = UserProfile.model_validate(report.user_profile) if report.user_profile else None
        return await self._analyze(report, profile, Language(report.language), started, credit)

    # ── Stages ───────────────────────────────────────────────────
    async def _analyze(
        self,
        report: LabReport,
        profile: Optional[UserProfile],
        language: Language,
        started: float,
        credit: CreditCheck,
    ) -> PipelineOutcome:
        try:
            outcome = await self.engine.analyze(report.raw_extracted_text, profile, language)
        except StageError as e:
            return await self._fail(report, e, started, credit)
        except Exception as exc:
            logger.error("Unexpected analysis error for report %s: %s", report.id, exc, exc_info=True)
            return await self._fail(report, StageError(), started, credit)

        report.mark_completed(
            outcome.result,
            processing_time_ms=_elapsed_ms(started),
            credits_used=self.cost,
            tokens_used=outcome.tokens_used,
        )
        await self.reports.save(report)

        # The report is already committed as completed; a failed deduction is logged, not raised
        try:
            remaining = await self.ledger.deduct(report.owner_id, self.cost)
        except Exception as exc:
            logger.error(
                "Credit deduction failed for completed report %s (owner %s): %s",
                report.id, report.owner_id, exc, exc_info=True,
            )
            await self.reports.reload(report)
            return PipelineOutcome(
                report=report, credits_used=0, credits_remaining=credit.available
            )

        logger.info(
            "Report %s completed in %.0fms | type=%s | findings=%d",
            report.id, report.processing_time_ms, report.report_type,
            len(outcome.result.key_findings),
        )
        return PipelineOutcome(report=report, credits_used=self.cost, credits_remaining=remaining)

    async def _fail(
        self,
        report: LabReport,
        error: StageError,
        started: float,
        credit: CreditCheck,
    ) -> PipelineOutcome:
        report.mark_failed(error, processing_time_ms=_elapsed_ms(started))
        await self.reports.save(report)
        logger.error("Report %s failed [%s]: %s", report.id, error.code, error.message)
        return PipelineOutcome(report=report, credits_used=0, credits_remaining=credit.available)
