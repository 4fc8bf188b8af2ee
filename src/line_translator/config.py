"""
Configuration settings for the line translator.

Process-wide service settings (endpoint, credentials, rate budgets, retry
backoff), read from the environment or a .env file (see .env.example).

Per-run translation behaviour (batch sizes, moderation, history...) lives in
TranslatorOptions (line_translator.models.options).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Application ===
    APP_NAME: str = "LLM Line Translator"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # === OpenAI-compatible API ===
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TIMEOUT: int = 120  # seconds
    FALLBACK_MODEL: Optional[str] = None  # Used once for single-line refusals

    # === Rate limiting (requests per minute) ===
    OPENAI_API_RPM: int = 60
    OPENAI_API_MODERATOR_RPM: Optional[int] = None  # Defaults to OPENAI_API_RPM
    COOLDOWN_WINDOW_SECONDS: float = 60.0
    COOLDOWN_BASE_DELAY_SECONDS: float = 0.0

    # === Retry ===
    MAX_RETRIES: int = 3
    RETRY_BACKOFF_BASE: float = 1.0  # seconds, multiplied by attempt^2

    # === Monitoring ===
    PROMETHEUS_ENABLED: bool = True
    METRICS_PORT: Optional[int] = None  # Serve /metrics over HTTP when set

    @property
    def moderator_rpm(self) -> int:
        """Moderation endpoint budget, falls back to the completion budget."""
        return self.OPENAI_API_MODERATOR_RPM or self.OPENAI_API_RPM


# Global settings instance
settings = Settings()
