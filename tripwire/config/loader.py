"""Configuration loading with environment detection."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
from dotenv import load_dotenv

from tripwire.exceptions import ConfigurationError, InvalidConfigError

from .environments import DevelopmentConfig, ProductionConfig, TestingConfig
from .settings import Settings

logger = structlog.get_logger()


def load_config(
    env: Optional[str] = None, config_file: Optional[Path] = None
) -> Settings:
    """Load configuration based on environment.

    Args:
        env: Environment name (development, testing, production)
        config_file: Optional path to configuration file

    Returns:
        Configured Settings instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    env_file = config_file or Path(".env")
    if env_file.exists():
        logger.info("Loading .env file", path=str(env_file))
        load_dotenv(env_file)
    else:
        logger.warning("No .env file found", path=str(env_file))

    env = env or os.getenv("ENVIRONMENT", "development")
    logger.info("Loading configuration", environment=env)

    try:
        settings = Settings()  # type: ignore[call-arg]
        settings = _apply_environment_overrides(settings, env)
        _validate_config(settings)

        logger.info(
            "Configuration loaded successfully",
            environment=env,
            debug=settings.debug,
            data_dir=str(settings.data_dir),
            features_enabled=_get_enabled_features_summary(settings),
        )

        return settings

    except Exception as e:
        logger.error("Failed to load configuration", error=str(e), environment=env)
        raise ConfigurationError(f"Configuration loading failed: {e}") from e


def _apply_environment_overrides(settings: Settings, env: Optional[str]) -> Settings:
    """Apply environment-specific configuration overrides."""
    overrides: Dict[str, Any] = {}

    if env == "development":
        overrides = DevelopmentConfig.as_dict()
    elif env == "testing":
        overrides = TestingConfig.as_dict()
    elif env == "production":
        overrides = ProductionConfig.as_dict()
    else:
        logger.warning("Unknown environment, using default settings", environment=env)

    for key, value in overrides.items():
        if hasattr(settings, key):
            setattr(settings, key, value)
            logger.debug(
                "Applied environment override", key=key, value=value, environment=env
            )

    return settings


def _validate_config(settings: Settings) -> None:
    """Perform additional runtime validation."""
    try:
        settings.data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise InvalidConfigError(f"Cannot create data directory: {e}") from e

    if settings.database_url.startswith("sqlite:///"):
        db_path = settings.database_path
        if db_path:
            db_path.parent.mkdir(parents=True, exist_ok=True)

    if settings.enable_api_server and not settings.owners_path.exists():
        raise InvalidConfigError(
            f"Owner directory not found: {settings.owners_path}. "
            "The webhook server needs it to authenticate callers."
        )

    if not 0 < settings.api_server_port < 65536:
        raise InvalidConfigError("api_server_port must be a valid TCP port")

    if settings.instruction_executor_timeout_seconds <= 0:
        raise InvalidConfigError(
            "instruction_executor_timeout_seconds must be positive"
        )


def _get_enabled_features_summary(settings: Settings) -> list[str]:
    """Get a summary of enabled features for logging."""
    features = []
    if settings.enable_api_server:
        features.append("api_server")
    if settings.enable_scheduler:
        features.append("scheduler")
    if settings.instruction_executor_url:
        features.append("instruction_executor")
    if settings.telegram_bot_token:
        features.append("telegram_notifications")
    return features


def create_test_config(**overrides: Any) -> Settings:
    """Create configuration for testing with optional overrides.

    Args:
        **overrides: Configuration values to override

    Returns:
        Settings instance configured for testing
    """
    test_values = TestingConfig.as_dict()
    test_values.update({"data_dir": "/tmp/tripwire_test_data"})
    test_values.update(overrides)

    Path(test_values["data_dir"]).mkdir(parents=True, exist_ok=True)

    return Settings(_env_file=None, **test_values)  # type: ignore[call-arg]
