"""Environment-based configuration for the fraud engine."""

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """Database configuration."""

    model_config = SettingsConfigDict(env_prefix="FRAUD_DB_")

    url: str = Field("sqlite:///fraud_engine.db", description="SQLAlchemy database URL")
    echo: bool = Field(False, description="Echo SQL statements")
    pool_pre_ping: bool = Field(True, description="Check connections before use")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Only dialects with INSERT ... ON CONFLICT are supported."""
        if not v.startswith(("postgresql", "sqlite")):
            raise ValueError("Database URL must use the postgresql or sqlite dialect")
        return v


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="FRAUD_LOG_")

    level: str = Field("INFO", description="Log level")
    format: str = Field("json", description="Log format")

    sensitive_fields: List[str] = Field(
        default=[
            "password", "token", "api_key", "fingerprint_hash",
            "payment_fingerprint", "card_number",
        ],
        description="Fields to mask in logs",
    )

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate renderer name."""
        if v.lower() not in {"json", "console"}:
            raise ValueError("Log format must be 'json' or 'console'")
        return v.lower()


class FraudEngineConfig(BaseSettings):
    """Fraud engine tuning. Auto-suspension is switched on only via persisted policy settings."""

    model_config = SettingsConfigDict(env_prefix="FRAUD_")

    default_auto_suspend_threshold: float = Field(90, description="Threshold used when no policy row exists", ge=0, le=100)
    auto_suspension_days: int = Field(7, description="Length of an automated suspension", ge=1, le=365)
    default_link_confidence: float = Field(0.85, description="Confidence for links without explicit confidence", ge=0, le=1)
    auto_alert_confidence: float = Field(0.95, description="Confidence of auto-enforcement alerts", ge=0, le=1)

    write_retry_attempts: int = Field(3, description="Attempts for transient write failures", ge=1, le=10)
    write_retry_backoff_seconds: float = Field(0.05, description="Base backoff between attempts", ge=0, le=10)
    audit_gap_max_attempts: int = Field(5, description="Replays before a write is dead-lettered", ge=1, le=100)

    score_history_limit: int = Field(100, description="History rows returned with a score", ge=1, le=10000)


class Settings(BaseSettings):
    """Aggregated settings."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    fraud: FraudEngineConfig = Field(default_factory=FraudEngineConfig)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
