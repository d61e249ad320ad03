from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


NO_GUARANTEE_ACTIONS = ("ALLOW", "DENY", "ASK")
DETECTION_METHODS = ("pattern", "api", "both")


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables SQL echo and verbose decision logging
    debug: bool = False

    # Database URL (PostgreSQL via asyncpg in production, aiosqlite for tests)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./refillguard.db",
        validation_alias="DATABASE_URL",
    )

    # Connection pool settings (ignored for SQLite)
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 300
    db_pool_pre_ping: bool = True
    db_command_timeout: float = 30.0

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Defaults applied when a user's guarantee config is first created
    guarantee_default_days: int = 30
    guarantee_default_action: str = "DENY"
    guarantee_default_detection: str = "pattern"

    # Tenant regex limits
    regex_max_pattern_length: int = 500
    regex_max_input_length: int = 10_000
    regex_cache_size: int = 256

    @field_validator("guarantee_default_days")
    @classmethod
    def validate_default_days(cls, v: int) -> int:
        """Validate the default guarantee duration is within 1..365."""
        if v < 1 or v > 365:
            raise ValueError("guarantee_default_days must be between 1 and 365")
        return v

    @field_validator("guarantee_default_action")
    @classmethod
    def validate_default_action(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in NO_GUARANTEE_ACTIONS:
            raise ValueError(
                f"guarantee_default_action must be one of {', '.join(NO_GUARANTEE_ACTIONS)}"
            )
        return v

    @field_validator("guarantee_default_detection")
    @classmethod
    def validate_default_detection(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in DETECTION_METHODS:
            raise ValueError(
                f"guarantee_default_detection must be one of {', '.join(DETECTION_METHODS)}"
            )
        return v

    @field_validator(
        "regex_max_pattern_length",
        "regex_max_input_length",
        "regex_cache_size",
        "db_pool_size",
        "db_max_overflow",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate limits and pool sizes are positive."""
        if v < 1:
            raise ValueError("limit values must be at least 1")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
