"""
Client configuration management with environment-based settings.
"""
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, SecretStr, field_validator
from functools import lru_cache

class Settings(BaseSettings):
    """Main client settings."""

    model_config = SettingsConfigDict(
        env_prefix="APTITUDE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ============= Application Settings =============
    APP_NAME: str = "Aptitude Platform Client"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development")

    # ============= API Settings =============
    API_BASE_URL: str = Field(default="http://localhost:3000/api")
    API_TIMEOUT: float = 10.0
    AUTH_TOKEN: Optional[SecretStr] = None

    # Retries apply to idempotent reads only
    RETRY_ATTEMPTS: int = 3
    RETRY_WAIT_SECONDS: float = 0.5

    # ============= Test Session Settings =============
    TICK_INTERVAL_SECONDS: float = 1.0
    DEFAULT_TIME_LIMIT_MINUTES: int = 60

    # ============= Logging Settings =============
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # json or text

    @field_validator("API_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("RETRY_ATTEMPTS")
    @classmethod
    def at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError("RETRY_ATTEMPTS must be >= 1")
        return v

    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT.lower() == "production"

    def is_testing(self) -> bool:
        """Check if running in testing."""
        return self.ENVIRONMENT.lower() == "testing"

@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
