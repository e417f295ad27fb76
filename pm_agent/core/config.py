from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


ProviderName = Literal["groq", "openai", "gemini"]


class Settings(BaseSettings):
    env: str = "development"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173"]

    # Backend order: primary first, fallback only when the primary fails.
    ai_primary_provider: ProviderName = "groq"
    ai_fallback_provider: ProviderName | Literal["none"] = "gemini"
    # Replaces the configured model name of the primary backend when set.
    ai_model_override: str = ""
    # Per-backend attempt timeout; 0 disables it.
    ai_request_timeout_sec: float = 30
    ai_max_concurrency: int = 4
    # Longest wait for an admission slot; 0 waits as long as it takes.
    ai_backpressure_acquire_timeout_ms: int = 0

    groq_api_key: str = ""
    groq_model: str = "llama-3.1-8b-instant"
    groq_base_url: str = "https://api.groq.com/openai/v1"

    # Accept either GEMINI_API_KEY or GOOGLE_GENERATIVE_AI_API_KEY.
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_GENERATIVE_AI_API_KEY"),
    )
    gemini_model: str = "gemini-2.0-flash"

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com/v1"

    ai_cache_ttl_sec: float = 600
    circuit_failure_threshold: int = 3
    circuit_cooldown_sec: float = 30
    job_retention_sec: float = 1800
    job_sweep_interval_sec: float = 300
    # In-flight jobs get this long to finish on shutdown before being cancelled.
    job_shutdown_grace_sec: float = 10

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
