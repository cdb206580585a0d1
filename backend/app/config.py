from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from app.dialogue import ReferralPolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Gemini (generative replies) - leave blank to run on fallback replies only
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    generation_timeout_seconds: float = 15.0

    # Dialogue behaviour
    response_language: str = "English"
    referral_policy: ReferralPolicy = ReferralPolicy.PREEMPT
    fallback_seed: int = 0
    specialists_file: Path | None = None   # JSON catalog; built-in catalog if unset

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""

    # Prescription report
    clinic_name: str = "Rwanda Digital Health"
    emergency_number: str = "912"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Return a cached instance of the Settings object."""
    return Settings()
