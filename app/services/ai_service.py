"""
AI Service: Google Gemini Integration (google-genai AsyncClient)
Lab Report Analyzer

Text-completion client used by the analysis engine. It is built once at
startup and handed to the engine, so tests can substitute any object with
the same complete_json() coroutine.
"""

import re
import time
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from app.core.config import Settings
from app.core.errors import (
    AnalysisServiceUnavailable,
    InputTooLarge,
    ServiceBusy,
    StageError,
)
from app.core.logging_config import RequestLogger

logger = logging.getLogger(__name__)
ai_call_logger = RequestLogger(logger)

_LENGTH_LIMIT_PATTERN = re.compile(
    r"token|context length|context window|too long|too large|exceeds",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class CompletionResponse:
    text: str
    tokens_used: Optional[int] = None


class CompletionClient(Protocol):
    """Anything that can turn a system+user prompt into a JSON-ish string."""

    model_name: str

    async def complete_json(self, system_prompt: str, user_prompt: str) -> CompletionResponse:
        ...


def map_api_error(exc: genai_errors.APIError) -> StageError:
    """Translate a provider error into the pipeline's error taxonomy."""
    code = getattr(exc, "code", None)
    status = (getattr(exc, "status", None) or "").upper()
    message = getattr(exc, "message", None) or str(exc)

    if code == 429 or status == "RESOURCE_EXHAUSTED":
        return ServiceBusy()
    if code == 413 or (code == 400 and _LENGTH_LIMIT_PATTERN.search(message)):
        return InputTooLarge()
    return AnalysisServiceUnavailable(
        f"AI analysis service error ({code or 'unknown'}). Please try again later."
    )


class GeminiCompletionClient:
    """Uses google-genai Client.aio for native async calls, no threading needed."""

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-2.5-flash",
        temperature: float = 0.3,
        max_output_tokens: int = 2500,
        timeout_seconds: float = 120.0,
    ):
        if model_name.startswith("models/"):
            model_name = model_name[len("models/"):]
        self._client: Optional[genai.Client] = genai.Client(api_key=api_key)
        self.model_name = model_name
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.timeout_seconds = timeout_seconds
        logger.info("Gemini client initialized, model: %s", self.model_name)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiCompletionClient":
        """Raises ValueError if the API key is missing."""
        return cls(
            api_key=settings.get_ai_api_key(),
            model_name=settings.ai_model,
            temperature=settings.ai_temperature,
            max_output_tokens=settings.ai_max_tokens,
            timeout_seconds=settings.ai_timeout_seconds,
        )

    def _require_client(self) -> genai.Client:
        if self._client is None:
            raise AnalysisServiceUnavailable("AI client has been closed.")
        return self._client

    async def complete_json(self, system_prompt: str, user_prompt: str) -> CompletionResponse:
        """Single call, no retries. Reanalysis is the only retry path."""
        client = self._require_client()
        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
            response_mime_type="application/json",
        )

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=self.model_name,
                    contents=user_prompt,
                    config=config,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error("Gemini call timed out after %.0fs", self.timeout_seconds)
            raise AnalysisServiceUnavailable(
                "AI analysis timed out. Please try again in a moment."
            )
        except genai_errors.APIError as exc:
            logger.error("Gemini error %s: %s", type(exc).__name__, exc)
            raise map_api_error(exc)

        duration_ms = (time.monotonic() - start) * 1000
        raw = getattr(response, "text", "") or ""
        usage = getattr(response, "usage_metadata", None)
        tokens = getattr(usage, "total_token_count", None) if usage else None
        ai_call_logger.log_ai_call(self.model_name, tokens or 0, duration_ms)
        return CompletionResponse(text=raw, tokens_used=tokens)

    async def test_connection(self) -> dict:
        try:
            client = self._require_client()
            logger.info("Testing Gemini connection with model=%s", self.model_name)
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=self.model_name,
                    contents="Say hello in one sentence.",
                ),
                timeout=30.0,
            )
            reply = getattr(response, "text", "no text") or "no text"
            logger.info("Gemini test OK: %s", reply[:80])
            return {"status": "ok", "model": self.model_name, "response": reply[:300]}
        except asyncio.TimeoutError:
            return {"status": "error", "error": "Timed out after 30s"}
        except (genai_errors.APIError, StageError) as e:
            err = str(e) or repr(e)
            logger.error("LLM test failed %s: %s", type(e).__name__, err)
            return {"status": "error", "error": err}

    async def close(self) -> None:
        self._client = None
        logger.info("AI client closed")
