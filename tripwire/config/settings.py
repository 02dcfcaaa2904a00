"""Configuration management using Pydantic Settings.

Features:
- Environment variable loading
- Type validation
- Default values
- Computed properties
"""

from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tripwire.utils.constants import (
    DEFAULT_API_SERVER_HOST,
    DEFAULT_API_SERVER_PORT,
    DEFAULT_DATA_DIR,
    DEFAULT_DATABASE_URL,
    DEFAULT_EXECUTOR_TIMEOUT_SECONDS,
    DEFAULT_LISTENER_SWEEP_INTERVAL_SECONDS,
    DEFAULT_OWNERS_CONFIG,
    DEFAULT_PUBLIC_EVENTS_HOST,
    DEFAULT_SCHEDULER_TIMEZONE,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage
    data_dir: Path = Field(
        Path(DEFAULT_DATA_DIR), description="Directory for persisted state"
    )
    database_url: str = Field(
        DEFAULT_DATABASE_URL, description="Database connection URL"
    )
    owners_config_path: Optional[Path] = Field(
        None,
        description=(
            "YAML file listing owners and their platform identities "
            "(defaults to <data_dir>/owners.yaml)"
        ),
    )

    # Webhook API
    enable_api_server: bool = Field(True, description="Enable the webhook server")
    api_server_host: str = Field(
        DEFAULT_API_SERVER_HOST, description="Webhook API bind address"
    )
    api_server_port: int = Field(
        DEFAULT_API_SERVER_PORT, description="Webhook API server port"
    )
    public_events_host: str = Field(
        DEFAULT_PUBLIC_EVENTS_HOST,
        description="Public host used when advertising event webhook URLs",
    )

    # Listener lifecycle
    listener_sweep_interval_seconds: int = Field(
        DEFAULT_LISTENER_SWEEP_INTERVAL_SECONDS,
        description="Interval between expired-listener sweeps",
        ge=1,
    )

    # Action scheduling
    enable_scheduler: bool = Field(True, description="Enable the action scheduler")
    scheduler_timezone: str = Field(
        DEFAULT_SCHEDULER_TIMEZONE, description="Timezone for cron actions"
    )

    # Instruction executor
    instruction_executor_url: Optional[str] = Field(
        None, description="HTTP endpoint of the instruction executor"
    )
    instruction_executor_token: Optional[SecretStr] = Field(
        None, description="Bearer token sent to the instruction executor"
    )
    instruction_executor_timeout_seconds: int = Field(
        DEFAULT_EXECUTOR_TIMEOUT_SECONDS,
        description="Instruction executor request timeout",
    )

    # Messaging channel
    telegram_bot_token: Optional[SecretStr] = Field(
        None, description="Telegram bot token used to deliver notifications"
    )

    # Monitoring
    log_level: str = Field("INFO", description="Logging level")

    # Development
    debug: bool = Field(False, description="Enable debug mode")
    development_mode: bool = Field(False, description="Enable development features")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("owners_config_path", mode="before")
    @classmethod
    def blank_path_is_unset(cls, v: Any) -> Optional[Path]:
        """Treat blank paths as unset."""
        if v is None:
            return None
        if isinstance(v, str) and not v.strip():
            return None
        return v  # type: ignore[no-any-return]

    @field_validator("scheduler_timezone")
    @classmethod
    def validate_scheduler_timezone(cls, v: str) -> str:
        """Ensure the cron timezone is a known IANA zone."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown scheduler timezone: {v}")
        return v

    @field_validator("public_events_host")
    @classmethod
    def strip_scheme(cls, v: str) -> str:
        """Store the bare host; the URL scheme is added when advertising."""
        for prefix in ("https://", "http://"):
            if v.startswith(prefix):
                v = v[len(prefix) :]
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: Any) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()  # type: ignore[no-any-return]

    @model_validator(mode="after")
    def validate_cross_field_dependencies(self) -> "Settings":
        """Validate dependencies between fields."""
        if self.instruction_executor_token and not self.instruction_executor_url:
            raise ValueError(
                "instruction_executor_url required when "
                "instruction_executor_token is set"
            )
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not (self.debug or self.development_mode)

    @property
    def database_path(self) -> Optional[Path]:
        """Extract path from SQLite database URL."""
        if self.database_url.startswith("sqlite:///"):
            db_path = self.database_url.replace("sqlite:///", "")
            return Path(db_path).resolve()
        return None

    @property
    def owners_path(self) -> Path:
        """Resolved location of the owner directory file."""
        return self.owners_config_path or self.data_dir / DEFAULT_OWNERS_CONFIG

    @property
    def telegram_token_str(self) -> Optional[str]:
        """Get Telegram token as string."""
        if self.telegram_bot_token:
            return self.telegram_bot_token.get_secret_value()
        return None

    @property
    def executor_token_str(self) -> Optional[str]:
        """Get instruction executor token as string."""
        if self.instruction_executor_token:
            return self.instruction_executor_token.get_secret_value()
        return None
