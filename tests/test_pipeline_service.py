import asyncio

import pytest

from app.core.errors import (
    InsufficientCredits,
    InvalidStateTransition,
    NoFileProvided,
    ReportNotFound,
    ServiceBusy,
)
from app.models.report import LabReport
from app.schemas.report import Language, ReportStatus, ReportType, UserProfile
from app.services.analysis_service import AnalysisEngine
from app.services.credit_ledger import DatabaseCreditLedger
from app.services.extraction_service import TextExtractor
from app.services.pipeline_service import ReportPipeline
from app.services.report_repository import ReportRepository
from tests.helpers import (
    HEMOGLOBIN_TEXT,
    FakeCompletionClient,
    FakeLedger,
    analysis_payload,
    fixed_ocr,
    make_jpeg,
    make_pdf,
)


def _pipeline(db, client=None, ledger=None, ocr_text: str = "") -> ReportPipeline:
    return ReportPipeline(
        reports=ReportRepository(db),
        extractor=TextExtractor(ocr=fixed_ocr(ocr_text)),
        engine=AnalysisEngine(client or FakeCompletionClient()),
        ledger=ledger or FakeLedger(),
    )


async def test_text_pdf_with_hemoglobin_completes_as_blood_test(db) -> None:
    ledger = FakeLedger(balance=5)
    pdf = make_pdf([HEMOGLOBIN_TEXT, "Page 2 notes", "Page 3 notes", "Page 4 notes", "Page 5 notes"])

    outcome = await _pipeline(db, ledger=ledger).submit(
        owner_id="owner-1", file_name="cbc.pdf", content=pdf, mime_type="application/pdf"
    )

    report = outcome.report
    assert report.current_status is ReportStatus.COMPLETED
    assert report.report_type == ReportType.BLOOD_TEST.value
    assert report.file_type == "pdf"
    assert any(f["test"] == "Hemoglobin" for f in report.ai_response["keyFindings"])
    assert report.error_message is None
    assert report.processing_time_ms is not None
    assert report.tokens_used == 321
    assert ledger.deduct_calls == [("owner-1", 1)]
    assert outcome.credits_used == 1
    assert outcome.credits_remaining == 4


async def test_completed_result_always_carries_disclaimer(db) -> None:
    payload = {"summary": "Values reviewed.", "keyFindings": []}
    outcome = await _pipeline(db, client=FakeCompletionClient(payload=payload)).submit(
        owner_id="owner-1", file_name="cbc.pdf", content=make_pdf([HEMOGLOBIN_TEXT]), mime_type="application/pdf"
    )

    assert outcome.succeeded
    assert len(outcome.report.ai_response["disclaimer"]) >= 80


async def test_blank_image_fails_without_deducting(db) -> None:
    ledger = FakeLedger()

    outcome = await _pipeline(db, ledger=ledger, ocr_text=" \n ").submit(
        owner_id="owner-1", file_name="blank.jpg", content=make_jpeg(), mime_type="image/jpeg"
    )

    report = outcome.report
    assert report.current_status is ReportStatus.FAILED
    assert report.error_code == "extraction_failed"
    assert "image" in report.error_message
    assert report.ai_response is None
    assert ledger.deduct_calls == []
    assert outcome.credits_used == 0


async def test_malformed_completion_fails_report(db) -> None:
    client = FakeCompletionClient(raw="Sure! Here is the analysis: Hemoglobin looks low.")
    ledger = FakeLedger()

    outcome = await _pipeline(db, client=client, ledger=ledger).submit(
        owner_id="owner-1", file_name="cbc.pdf", content=make_pdf([HEMOGLOBIN_TEXT]), mime_type="application/pdf"
    )

    report = outcome.report
    assert report.current_status is ReportStatus.FAILED
    assert report.error_code == "malformed_analysis_response"
    assert report.ai_response is None
    assert report.raw_extracted_text
    assert ledger.deduct_calls == []


async def test_service_busy_is_recorded(db) -> None:
    client = FakeCompletionClient(error=ServiceBusy())

    outcome = await _pipeline(db, client=client).submit(
        owner_id="owner-1", file_name="cbc.pdf", content=make_pdf([HEMOGLOBIN_TEXT]), mime_type="application/pdf"
    )

    assert outcome.report.error_code == "service_busy"
    assert outcome.report.error_message == ServiceBusy.default_message


async def test_unsupported_type_recorded_on_report(db) -> None:
    client = FakeCompletionClient()

    outcome = await _pipeline(db, client=client).submit(
        owner_id="owner-1", file_name="notes.txt", content=b"Hemoglobin 10.2 g/dL", mime_type="text/plain"
    )

    assert outcome.report.current_status is ReportStatus.FAILED
    assert outcome.report.error_code == "unsupported_file_type"
    assert outcome.report.file_type is None
    assert client.calls == []


async def test_missing_file_creates_no_report(db) -> None:
    ledger = FakeLedger()
    pipeline = _pipeline(db, ledger=ledger)

    with pytest.raises(NoFileProvided):
        await pipeline.submit(owner_id="owner-1", file_name=None, content=None, mime_type=None)

    reports, total = await ReportRepository(db).list("owner-1")
    assert total == 0
    assert ledger.check_calls == []


async def test_insufficient_credits_creates_no_report(db) -> None:
    ledger = FakeLedger(balance=0)
    client = FakeCompletionClient()

    with pytest.raises(InsufficientCredits) as exc_info:
        await _pipeline(db, client=client, ledger=ledger).submit(
            owner_id="owner-1", file_name="cbc.pdf", content=make_pdf([HEMOGLOBIN_TEXT]), mime_type="application/pdf"
        )

    assert exc_info.value.available == 0
    _, total = await ReportRepository(db).list("owner-1")
    assert total == 0
    assert client.calls == []


async def test_identical_submissions_produce_independent_reports(db) -> None:
    pipeline = _pipeline(db)
    pdf = make_pdf([HEMOGLOBIN_TEXT])
    profile = UserProfile(age=30, conditions=["anemia"])

    first = await pipeline.submit("owner-1", "cbc.pdf", pdf, "application/pdf", profile=profile)
    second = await pipeline.submit("owner-1", "cbc.pdf", pdf, "application/pdf", profile=profile)

    assert first.report.id != second.report.id
    assert first.report.report_type == second.report.report_type
    assert first.report.ai_response == second.report.ai_response
    _, total = await ReportRepository(db).list("owner-1")
    assert total == 2


async def test_profile_and_language_are_stored(db) -> None:
    client = FakeCompletionClient()
    profile = UserProfile(age=55, gender="male", conditions=["hypertension"])

    outcome = await _pipeline(db, client=client).submit(
        "owner-1", "cbc.pdf", make_pdf([HEMOGLOBIN_TEXT]), "application/pdf",
        profile=profile, language=Language.SPANISH,
    )

    assert outcome.report.user_profile == {"age": 55, "gender": "male", "conditions": ["hypertension"]}
    assert outcome.report.language == "es"
    assert "Spanish" in client.calls[0][0]


async def _failed_report_with_text(db) -> LabReport:
    client = FakeCompletionClient(raw="not json at all")
    outcome = await _pipeline(db, client=client).submit(
        "owner-1", "cbc.pdf", make_pdf([HEMOGLOBIN_TEXT]), "application/pdf"
    )
    assert outcome.report.current_status is ReportStatus.FAILED
    return outcome.report


async def test_reanalyze_failed_report_completes(db) -> None:
    report = await _failed_report_with_text(db)
    text_before = report.raw_extracted_text
    created_before = report.created_at
    ledger = FakeLedger()
    client = FakeCompletionClient()
    extraction_calls = []

    def ocr(content: bytes, language: str) -> str:
        extraction_calls.append(content)
        return ""

    pipeline = ReportPipeline(
        reports=ReportRepository(db),
        extractor=TextExtractor(ocr=ocr),
        engine=AnalysisEngine(client),
        ledger=ledger,
    )
    outcome = await pipeline.reanalyze("owner-1", report.id)

    updated = outcome.report
    assert updated.id == report.id
    assert updated.current_status is ReportStatus.COMPLETED
    assert updated.file_name == "cbc.pdf"
    assert updated.raw_extracted_text == text_before
    assert updated.created_at == created_before
    assert updated.error_code is None and updated.error_message is None
    assert updated.ai_response["keyFindings"][0]["test"] == "Hemoglobin"
    assert extraction_calls == []
    assert ledger.deduct_calls == [("owner-1", 1)]


async def test_reanalyze_completed_report_overwrites_result(db) -> None:
    first = await _pipeline(db).submit("owner-1", "cbc.pdf", make_pdf([HEMOGLOBIN_TEXT]), "application/pdf")
    text_before = first.report.raw_extracted_text
    new_payload = {"summary": "Second opinion summary.", "doctorConsultationAdvice": "Talk to your doctor."}

    outcome = await _pipeline(db, client=FakeCompletionClient(payload=new_payload)).reanalyze(
        "owner-1", first.report.id
    )

    assert outcome.report.ai_response["summary"] == "Second opinion summary."
    assert outcome.report.raw_extracted_text == text_before
    assert outcome.report.analysis_count == 2


async def test_reanalyze_failure_keeps_text_and_skips_deduction(db) -> None:
    first = await _pipeline(db).submit("owner-1", "cbc.pdf", make_pdf([HEMOGLOBIN_TEXT]), "application/pdf")
    text_before = first.report.raw_extracted_text
    ledger = FakeLedger()

    outcome = await _pipeline(db, client=FakeCompletionClient(raw="garbage"), ledger=ledger).reanalyze(
        "owner-1", first.report.id
    )

    assert outcome.report.current_status is ReportStatus.FAILED
    assert outcome.report.ai_response is None
    assert outcome.report.raw_extracted_text == text_before
    assert ledger.deduct_calls == []


async def test_reanalyze_without_text_fails_report(db) -> None:
    first = await _pipeline(db, ocr_text="").submit("owner-1", "blank.png", make_jpeg(), "image/png")
    client = FakeCompletionClient()

    outcome = await _pipeline(db, client=client).reanalyze("owner-1", first.report.id)

    assert outcome.report.current_status is ReportStatus.FAILED
    assert outcome.report.error_code == "no_extracted_text"
    assert client.calls == []


async def test_reanalyze_is_owner_scoped(db) -> None:
    report = await _failed_report_with_text(db)

    with pytest.raises(ReportNotFound):
        await _pipeline(db).reanalyze("someone-else", report.id)


async def test_reanalyze_rejects_processing_report(db) -> None:
    report = LabReport(owner_id="owner-1", file_name="cbc.pdf", raw_extracted_text=HEMOGLOBIN_TEXT)
    await ReportRepository(db).add(report)

    with pytest.raises(InvalidStateTransition):
        await _pipeline(db).reanalyze("owner-1", report.id)


async def test_reanalyze_requires_credits(db) -> None:
    report = await _failed_report_with_text(db)

    with pytest.raises(InsufficientCredits):
        await _pipeline(db, ledger=FakeLedger(balance=0)).reanalyze("owner-1", report.id)


async def test_concurrent_first_submissions_for_new_owner_both_complete(session_factory) -> None:
    pdf = make_pdf([HEMOGLOBIN_TEXT])

    async def submit_once():
        async with session_factory() as session:
            pipeline = ReportPipeline(
                reports=ReportRepository(session),
                extractor=TextExtractor(ocr=fixed_ocr("")),
                engine=AnalysisEngine(FakeCompletionClient()),
                ledger=DatabaseCreditLedger(session, free_credits=5),
            )
            outcome = await pipeline.submit("brand-new-owner", "cbc.pdf", pdf, "application/pdf")
            return outcome.report.current_status

    statuses = await asyncio.gather(submit_once(), submit_once())

    assert statuses == [ReportStatus.COMPLETED, ReportStatus.COMPLETED]
    async with session_factory() as session:
        assert await DatabaseCreditLedger(session).balance("brand-new-owner") == 3
        _, total = await ReportRepository(session).list("brand-new-owner")
    assert total == 2


async def test_incomplete_finding_entries_still_complete(db) -> None:
    payload = analysis_payload(explanations=[{"test": "Hemoglobin"}], keyFindings=[{"value": "10.2"}])

    outcome = await _pipeline(db, client=FakeCompletionClient(payload=payload)).submit(
        "owner-1", "cbc.pdf", make_pdf([HEMOGLOBIN_TEXT]), "application/pdf"
    )

    assert outcome.report.current_status is ReportStatus.COMPLETED
    assert outcome.report.ai_response["explanations"] == [{"test": "Hemoglobin", "meaning": ""}]


class FailingDeductLedger(FakeLedger):
    async def deduct(self, owner_id: str, amount: int) -> int:
        self.deduct_calls.append((owner_id, amount))
        raise RuntimeError("ledger offline")


async def test_failed_deduction_keeps_completed_report(db) -> None:
    ledger = FailingDeductLedger(balance=5)

    outcome = await _pipeline(db, ledger=ledger).submit(
        "owner-1", "cbc.pdf", make_pdf([HEMOGLOBIN_TEXT]), "application/pdf"
    )

    assert outcome.succeeded
    assert outcome.report.ai_response["summary"]
    assert outcome.credits_used == 0
    assert outcome.credits_remaining == 5
    assert ledger.deduct_calls == [("owner-1", 1)]
    stored = await ReportRepository(db).get("owner-1", outcome.report.id)
    assert stored.current_status is ReportStatus.COMPLETED


async def test_zero_cost_override_is_honoured(db) -> None:
    ledger = FakeLedger(balance=0)
    pipeline = ReportPipeline(
        reports=ReportRepository(db),
        extractor=TextExtractor(ocr=fixed_ocr("")),
        engine=AnalysisEngine(FakeCompletionClient()),
        ledger=ledger,
        credits_per_analysis=0,
    )

    outcome = await pipeline.submit("owner-1", "cbc.pdf", make_pdf([HEMOGLOBIN_TEXT]), "application/pdf")

    assert outcome.succeeded
    assert ledger.check_calls == [("owner-1", 0)]
