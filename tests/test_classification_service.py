import pytest

from app.schemas.report import ReportType
from app.services.classification_service import classify_report


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Hemoglobin 13.5 g/dL", ReportType.BLOOD_TEST),
        ("URINALYSIS color yellow", ReportType.URINE_TEST),
        ("Total Cholesterol 210 mg/dL", ReportType.LIPID_PANEL),
        ("SGPT 40 U/L", ReportType.LIVER_FUNCTION),
        ("Serum Creatinine 1.1 mg/dL", ReportType.KIDNEY_FUNCTION),
        ("TSH 2.5 mIU/L", ReportType.THYROID),
    ],
)
def test_classifies_each_category(text: str, expected: ReportType) -> None:
    assert classify_report(text) is expected


def test_first_matching_category_wins() -> None:
    # Mentions both blood-count and lipid keywords; blood test is checked first
    assert classify_report("Platelet 250 Cholesterol 180") is ReportType.BLOOD_TEST
    assert classify_report("Urine protein, creatinine 1.0") is ReportType.URINE_TEST


def test_falls_back_to_general() -> None:
    assert classify_report("Vitamin D 25-OH 32 ng/mL") is ReportType.GENERAL


def test_total_over_empty_input() -> None:
    assert classify_report("") is ReportType.GENERAL
    assert classify_report(None) is ReportType.GENERAL
