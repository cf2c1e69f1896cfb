"""
Configuration settings for the LLM layer.

All settings are loaded from environment variables with sensible defaults.
Use .env file for local development. API keys are read from the process
environment first (see backends.credentials) and fall back to these fields.
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Application ===
    APP_NAME: str = "LLM Layer"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # === Request defaults ===
    DEFAULT_FALLBACK_ORDER: list[str] = ["google", "anthropic"]
    DEFAULT_IMAGE_FALLBACK_ORDER: list[str] = ["google", "openai", "kling"]
    DEFAULT_MAX_TOKENS: int = 1024
    DEFAULT_TEMPERATURE: float = 0.7
    DEFAULT_RETRY: int = 1
    DEFAULT_CALLER: str = "[warning] no caller"

    # === Retry & backoff ===
    RETRY_INITIAL_DELAY: float = 1.0  # seconds before the first retry
    RETRY_BACKOFF_MULTIPLIER: float = 2.0
    RETRY_MAX_DELAY: Optional[float] = None  # no ceiling by default
    RETRY_JITTER: float = 0.0  # fraction of the delay added at random

    # === Model defaults by operation kind ===
    # "stream" requests use the "text" table.
    MODEL_DEFAULTS: dict[str, dict[str, str]] = {
        "text": {
            "google": "gemini-2.5-flash",
            "anthropic": "claude-3-7-sonnet-latest",
            "venice": "venice-uncensored",
            "xai": "grok-4-fast-non-reasoning",
        },
        "image": {
            "google": "gemini-2.0-flash-exp-image-generation",
            "openai": "gpt-image-1",
            "kling": "kling-v1-5",
            "venice": "lustify-sdxl",
            "xai": "grok-2-image",
        },
        "structured": {
            "google": "gemini-2.5-flash",
            "anthropic": "claude-3-7-sonnet-latest",
            "venice": "venice-uncensored",
            "xai": "grok-4-fast-non-reasoning",
        },
    }

    # === Backend credentials ===
    ANTHROPIC_API_KEY: Optional[str] = None
    GOOGLE_AI_API_KEY: Optional[str] = None
    OPENAI_API_KEY: Optional[str] = None
    VENICE_API_KEY: Optional[str] = None
    XAI_API_KEY: Optional[str] = None
    KLING_ACCESS_KEY_ID: Optional[str] = None
    KLING_ACCESS_KEY_SECRET: Optional[str] = None

    # === Backend endpoints ===
    ANTHROPIC_BASE_URL: str = "https://api.anthropic.com"
    ANTHROPIC_VERSION: str = "2023-06-01"
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    XAI_BASE_URL: str = "https://api.x.ai/v1"
    VENICE_BASE_URL: str = "https://api.venice.ai/api/v1"
    GOOGLE_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    KLING_BASE_URL: str = "https://api-singapore.klingai.com"
    BACKEND_TIMEOUT: int = 120  # seconds

    # === Kling task polling ===
    KLING_POLL_INTERVAL: float = 10.0  # seconds
    KLING_MAX_POLLS: int = 60
    KLING_TOKEN_TTL: int = 1800  # seconds

    # === HTTP ===
    CORS_ALLOW_ORIGINS: list[str] = ["*"]

    # === Monitoring ===
    PROMETHEUS_ENABLED: bool = True
    TRACKING_LOGGER_NAME: str = "llm_tracking"


# Global settings instance
settings = Settings()
