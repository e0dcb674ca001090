"""Shared fakes and document builders for the test suite."""

import io
import json
import textwrap
from typing import Any, Dict, List, Optional

import fitz
from PIL import Image

from app.services.ai_service import CompletionResponse
from app.services.credit_ledger import CreditCheck

HEMOGLOBIN_TEXT = (
    "CITY DIAGNOSTICS LAB Complete Blood Count Patient: Jane Doe "
    "Hemoglobin 10.2 g/dL (12.0 - 15.5) RBC 4.1 million/uL WBC 6.8 thousand/uL "
    "Platelet count 250 thousand/uL"
)


def analysis_payload(**overrides: Any) -> Dict[str, Any]:
    payload = {
        "summary": "Your blood count shows a hemoglobin value slightly below the typical range.",
        "keyFindings": [
            {"test": "Hemoglobin", "value": "10.2 g/dL", "normalRange": "12.0-15.5 g/dL", "status": "low"},
            {"test": "WBC", "value": "6.8", "normalRange": "4.0-11.0", "status": "normal"},
        ],
        "explanations": [
            {"test": "Hemoglobin", "meaning": "A low value may indicate reduced oxygen-carrying capacity."},
        ],
        "lifestyleSuggestions": ["Include iron-rich foods such as leafy greens."],
        "doctorConsultationAdvice": "Consider discussing the low hemoglobin with your doctor.",
        "disclaimer": "Short note.",
    }
    payload.update(overrides)
    return payload


class FakeCompletionClient:
    """Deterministic stand-in for the Gemini client."""

    model_name = "fake-model"

    def __init__(
        self,
        payload: Optional[Dict[str, Any]] = None,
        raw: Optional[str] = None,
        error: Optional[Exception] = None,
        tokens: int = 321,
    ) -> None:
        self.payload = payload if payload is not None else analysis_payload()
        self.raw = raw
        self.error = error
        self.tokens = tokens
        self.calls: List[tuple] = []

    async def complete_json(self, system_prompt: str, user_prompt: str) -> CompletionResponse:
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        text = self.raw if self.raw is not None else json.dumps(self.payload)
        return CompletionResponse(text=text, tokens_used=self.tokens)

    async def test_connection(self) -> dict:
        return {"status": "ok", "model": self.model_name, "response": "Hello there."}


class FakeLedger:
    """In-memory credit ledger that records every call."""

    def __init__(self, balance: int = 5) -> None:
        self.balances: Dict[str, int] = {}
        self.default_balance = balance
        self.check_calls: List[tuple] = []
        self.deduct_calls: List[tuple] = []

    async def check(self, owner_id: str, amount: int) -> CreditCheck:
        self.check_calls.append((owner_id, amount))
        available = self.balances.setdefault(owner_id, self.default_balance)
        return CreditCheck(allowed=available >= amount, available=available, required=amount)

    async def deduct(self, owner_id: str, amount: int) -> int:
        self.deduct_calls.append((owner_id, amount))
        self.balances[owner_id] = self.balances.setdefault(owner_id, self.default_balance) - amount
        return self.balances[owner_id]


def make_pdf(pages: List[str]) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), textwrap.fill(text, 60), fontsize=10)
    data = doc.tobytes()
    doc.close()
    return data


def make_jpeg(color: str = "white", size: tuple = (200, 200)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="JPEG")
    return buf.getvalue()


def fixed_ocr(text: str):
    def ocr(content: bytes, language: str) -> str:
        return text
    return ocr


