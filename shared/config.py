"""
Configuration module - Central access point for environment variables.

CRITICAL: Access ALL environment variables through this module.
NEVER use os.getenv() directly in application code.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Redis (slot documents, conversations, staff directory, audit stream)
    REDIS_URL: str = Field(
        default="redis://redis:6379/0",
        description="Redis connection string"
    )

    # WhatsApp Cloud API
    WHATSAPP_TOKEN: str = Field(default="", description="Graph API bearer token")
    WHATSAPP_PHONE_ID: str = Field(default="", description="Sender phone number ID")
    WHATSAPP_VERIFY_TOKEN: str = Field(
        default="whatsapp_verify_token_placeholder",
        description="Token echoed back by Meta during webhook verification"
    )
    WHATSAPP_API_VERSION: str = Field(default="v20.0")

    # OpenRouter (intent classification)
    OPENROUTER_API_KEY: str = Field(default="sk-or-placeholder")
    LLM_MODEL: str = Field(
        default="openai/gpt-4o-mini",
        description="Model used for free-text intent classification (OpenRouter format)"
    )
    SITE_URL: str = Field(default="https://centromedico.example")
    SITE_NAME: str = Field(default="Agenda Bot")

    # Center
    CENTER_NAME: str = Field(default="Centro Médico Los Andes")
    DEFAULT_CENTER_ID: str = Field(
        default="LosAndes",
        description="Center whose staff is offered in the chat booking flow"
    )
    CENTER_INFO_TEXT: str = Field(
        default="Somos Centro Médico Los Andes. Atendemos de Lunes a Viernes de 08:00 a 20:00."
    )

    # Application Settings
    TIMEZONE: str = Field(default="America/Santiago")
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ORIGINS: str = Field(default="http://localhost:3000")

    # Scheduling
    CONVERSATION_IDLE_TIMEOUT_SECONDS: int = Field(
        default=1800,
        description="Idle chat sessions are dropped after this many seconds"
    )
    STAFF_CACHE_TTL_SECONDS: int = Field(default=600)
    BOOKING_DAYS_AHEAD: int = Field(default=7, ge=1, le=10)
    SYNC_BATCH_SIZE: int = Field(default=500, ge=1)
    MAX_LIST_ROWS: int = Field(default=10, ge=1, le=10)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()
