"""
Classification Service
Lab Report Analyzer

Rule-based report-type classification. Categories are checked in order and
the first one with a matching keyword wins; nothing matching means 'general'.
"""

import logging
from typing import List, Tuple

from app.schemas.report import ReportType

logger = logging.getLogger(__name__)


# ── Report-Type Keyword Map (order matters) ──────────────────────
REPORT_TYPE_KEYWORDS: List[Tuple[ReportType, List[str]]] = [
    (ReportType.BLOOD_TEST, ["hemoglobin", "rbc", "wbc", "platelet"]),
    (ReportType.URINE_TEST, ["urine", "urinalysis"]),
    (ReportType.LIPID_PANEL, ["cholesterol", "triglyceride", "ldl", "hdl"]),
    (ReportType.LIVER_FUNCTION, ["sgpt", "sgot", "bilirubin", "alt", "ast"]),
    (ReportType.KIDNEY_FUNCTION, ["creatinine", "bun", "urea", "gfr"]),
    (ReportType.THYROID, ["tsh", "t3", "t4", "thyroid"]),
]


def classify_report(text: str) -> ReportType:
    """Map extracted text to a report type. Total over any string."""
    text_lower = (text or "").lower()

    for report_type, keywords in REPORT_TYPE_KEYWORDS:
        if any(kw in text_lower for kw in keywords):
            logger.debug("Classified report as %s", report_type.value)
            return report_type

    return ReportType.GENERAL
