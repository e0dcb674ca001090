"""
Centralized Configuration Module
Lab Report Analyzer

Loads all settings from environment variables with validation.
Never hardcodes sensitive values - all secrets via .env
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, computed_field
from functools import lru_cache
from typing import List, Optional
import os


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Pydantic validates all fields at startup - fails fast on misconfiguration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ────────────────────────────────────────────────
    app_name: str = "Lab Report Analyzer"
    app_version: str = "1.0.0"
    app_env: str = "development"
    debug: bool = False

    # ── Server ─────────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8000

    # ── Database ───────────────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./lab_reports.db"
    database_sync_url: str = "sqlite:///./lab_reports.db"

    # ── AI Configuration ───────────────────────────────────────────
    medical_ai_api_key: str = ""
    ai_model: str = "gemini-2.5-flash"
    ai_temperature: float = 0.3
    ai_max_tokens: int = 2500
    ai_timeout_seconds: float = 120.0

    # ── Pipeline Thresholds ────────────────────────────────────────
    min_extracted_text_length: int = 10
    min_analysis_text_length: int = 20
    min_disclaimer_length: int = 80

    # ── OCR ────────────────────────────────────────────────────────
    ocr_language: str = "eng"
    tesseract_cmd: Optional[str] = None

    # ── Credits ────────────────────────────────────────────────────
    credits_per_analysis: int = 1
    default_free_credits: int = 5

    # ── Rate Limiting ──────────────────────────────────────────────
    report_rate_limit_requests: int = 10
    report_rate_limit_window: int = 3600  # seconds

    # ── File Upload ────────────────────────────────────────────────
    max_file_size_mb: int = 10
    allowed_mime_types: str = "application/pdf,image/png,image/jpeg,image/jpg,image/webp"

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://localhost:8000,http://127.0.0.1:8000"

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"  # "json": bare messages; "text": timestamp, logger and level prefix

    # ── System Disclaimer (immutable) ─────────────────────────────
    disclaimer: str = (
        "This system is for informational purposes only and does not "
        "provide medical diagnosis."
    )

    # ── Computed Properties ────────────────────────────────────────
    @computed_field
    @property
    def allowed_mime_types_list(self) -> List[str]:
        return [mime.strip().lower() for mime in self.allowed_mime_types.split(",")]

    @computed_field
    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @computed_field
    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    # ── Validators ─────────────────────────────────────────────────
    @field_validator("ai_temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("AI temperature must be between 0.0 and 1.0")
        return v

    @field_validator(
        "min_extracted_text_length",
        "min_analysis_text_length",
        "min_disclaimer_length",
    )
    @classmethod
    def validate_threshold(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Length thresholds must be positive")
        return v

    def get_ai_api_key(self) -> str:
        """Get API key with explicit error if not configured."""
        key = self.medical_ai_api_key or os.environ.get("MEDICAL_AI_API_KEY", "")
        if not key:
            raise ValueError(
                "MEDICAL_AI_API_KEY environment variable is not set. "
                "Please configure your AI provider API key in the .env file."
            )
        return key

    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Cached settings instance, built once.
    Called once at startup, cached for lifetime of application.
    """
    return Settings()


# Module-level convenience access
settings = get_settings()
