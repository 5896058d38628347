"""Application settings with Pydantic validation."""

from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BridgeSettings(BaseSettings):
    """Application settings with validation and environment variable support."""

    # Environment
    env: str = Field(
        default="production", description="Environment (production, development, testing)"
    )

    # Logging
    log_level: str = Field(
        default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_json: bool = Field(default=True, description="Write JSON lines to the log file")
    log_dir: Optional[str] = Field(default="logs", description="Log directory (empty = console only)")

    # Sessions
    session_idle_hours: float = Field(
        default=6.0, gt=0, description="Idle time after which a session is swept"
    )
    max_sessions: Optional[int] = Field(
        default=None, ge=1, description="Maximum concurrent sessions (unset = unlimited)"
    )
    session_sweep_interval_seconds: int = Field(
        default=3600, ge=1, description="Interval of the idle-session sweep"
    )

    # OTP queue
    otp_ttl_seconds: int = Field(default=300, ge=1, description="Lifetime of a queued code")
    otp_sweep_interval_seconds: int = Field(
        default=300, ge=1, description="Interval of the expired-code sweep"
    )
    otp_extra_patterns: List[str] = Field(
        default_factory=list, description="Extra regex patterns tried for SMS notifications"
    )

    # Scheduler
    scheduler_tick_seconds: int = Field(
        default=300, ge=1, description="Interval of the recurring-task evaluation tick"
    )
    default_timezone: str = Field(default="Europe/Moscow", description="Default task timezone")
    jitter_min_minutes: int = Field(default=1, description="Default minimum random delay")
    jitter_max_minutes: int = Field(default=20, description="Default maximum random delay")

    # Shutdown
    shutdown_timeout_seconds: float = Field(
        default=30.0, gt=0, le=300, description="Maximum time to wait for drivers on shutdown"
    )

    # Automation driver
    driver_factory: Optional[str] = Field(
        default=None,
        description="Import path of the driver factory, e.g. 'mypkg.drivers:create_driver'",
    )
    encryption_key: Optional[SecretStr] = Field(
        default=None,
        description=(
            "Base64-encoded Fernet key used to protect credentials handed to drivers. "
            'Generate with: python -c "from cryptography.fernet import Fernet; '
            'print(Fernet.generate_key().decode())"'
        ),
    )
    encryption_key_old: Optional[SecretStr] = Field(
        default=None, description="Previous Fernet key, accepted for decryption during rotation"
    )

    # Rate limiting
    rate_limit_enabled: bool = Field(
        default=True, description="Enable per-client rate limits on login and notification routes"
    )

    # CORS Configuration
    cors_allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Normalize and validate environment name."""
        v = v.lower()
        if v not in {"production", "staging", "development", "testing"}:
            raise ValueError(f"Invalid environment: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return v

    @field_validator("default_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA zone names."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @model_validator(mode="after")
    def validate_jitter_window(self) -> "BridgeSettings":
        """Ensure the default jitter window is ordered."""
        if self.jitter_min_minutes > self.jitter_max_minutes:
            raise ValueError("jitter_min_minutes must not exceed jitter_max_minutes")
        return self

    def get_cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]

    def is_development(self) -> bool:
        return self.env in ("development", "testing")

    def is_production(self) -> bool:
        return self.env == "production"


# Singleton instance
_settings: Optional[BridgeSettings] = None


def get_settings() -> BridgeSettings:
    """
    Get application settings singleton.

    Returns:
        BridgeSettings instance
    """
    global _settings
    if _settings is None:
        _settings = BridgeSettings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
