"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the application.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    # e.g., "https://shiftvitals.app,https://www.shiftvitals.app"
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Vitals replay
    # Longest window a single /v1/vitals request may ask for.
    # Replay cost is bounded by history length, not by this value.
    VITALS_MAX_RANGE_DAYS: int = Field(default=366, ge=1, le=3660)
    # Attach the engine diagnostics snapshot to each daily record.
    VITALS_INCLUDE_DIAGNOSTICS: bool = Field(default=True)
    # Add the old short diagnostic names (CSI, SRI, ...) next to the long ones.
    VITALS_LEGACY_DIAGNOSTIC_ALIASES: bool = Field(default=False)


# Global settings instance
settings = Settings()
