"""Environment-specific configuration overrides."""

from typing import Any, Dict


class _EnvironmentConfig:
    @classmethod
    def as_dict(cls) -> Dict[str, Any]:
        """Return config as dictionary."""
        return {
            key: value
            for key, value in vars(cls).items()
            if not key.startswith("_")
            and not callable(value)
            and not isinstance(value, classmethod)
        }


class DevelopmentConfig(_EnvironmentConfig):
    """Development environment overrides."""

    debug: bool = True
    development_mode: bool = True
    log_level: str = "DEBUG"


class TestingConfig(_EnvironmentConfig):
    """Testing environment configuration."""

    debug: bool = True
    development_mode: bool = True
    enable_api_server: bool = False
    enable_scheduler: bool = False
    listener_sweep_interval_seconds: int = 1  # Fast sweeps in tests


class ProductionConfig(_EnvironmentConfig):
    """Production environment configuration."""

    debug: bool = False
    development_mode: bool = False
    log_level: str = "INFO"
