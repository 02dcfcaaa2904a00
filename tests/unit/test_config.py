"""Test configuration loading and validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from tripwire.config import Settings, create_test_config, load_config
from tripwire.config.features import FeatureFlags
from tripwire.exceptions import ConfigurationError


@pytest.fixture
def env_dir(tmp_path, monkeypatch):
    """Point DATA_DIR at a temporary directory holding an owners file."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / "owners.yaml").write_text("owners: []\n", encoding="utf-8")
    monkeypatch.setenv("DATA_DIR", str(data_dir))
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{data_dir / 'tripwire.db'}")
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    return data_dir


def test_settings_defaults():
    """All settings have usable defaults."""
    settings = Settings(_env_file=None)

    assert settings.enable_api_server is True
    assert settings.enable_scheduler is True
    assert settings.api_server_port == 7004
    assert settings.scheduler_timezone == "UTC"
    assert settings.instruction_executor_url is None
    assert settings.telegram_token_str is None
    assert settings.executor_token_str is None


def test_settings_with_valid_data(tmp_path):
    """Test settings creation with valid data."""
    settings = Settings(
        _env_file=None,
        data_dir=tmp_path,
        telegram_bot_token="test_token",
        instruction_executor_url="http://executor.local/run",
        instruction_executor_token="exec-token",
        public_events_host="https://hooks.example.com/",
    )

    assert settings.telegram_token_str == "test_token"
    assert settings.executor_token_str == "exec-token"
    assert settings.public_events_host == "hooks.example.com"
    assert settings.owners_path == tmp_path / "owners.yaml"


def test_owners_config_path_override(tmp_path):
    explicit = tmp_path / "people.yaml"
    settings = Settings(_env_file=None, owners_config_path=str(explicit))
    assert settings.owners_path == explicit

    blank = Settings(_env_file=None, data_dir=tmp_path, owners_config_path="  ")
    assert blank.owners_path == tmp_path / "owners.yaml"


def test_executor_token_requires_url():
    with pytest.raises(ValidationError) as exc_info:
        Settings(_env_file=None, instruction_executor_token="orphan")

    assert "instruction_executor_url required" in str(exc_info.value)


def test_scheduler_timezone_validation():
    assert (
        Settings(_env_file=None, scheduler_timezone="Europe/Berlin").scheduler_timezone
        == "Europe/Berlin"
    )
    with pytest.raises(ValidationError, match="Unknown scheduler timezone"):
        Settings(_env_file=None, scheduler_timezone="Mars/Olympus")


def test_log_level_validation():
    """Test log level validation."""
    settings = Settings(_env_file=None, log_level="debug")
    assert settings.log_level == "DEBUG"

    with pytest.raises(ValidationError) as exc_info:
        Settings(_env_file=None, log_level="INVALID")

    assert "log_level must be one of" in str(exc_info.value)


def test_sweep_interval_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, listener_sweep_interval_seconds=0)


def test_computed_properties(tmp_path):
    """Test computed properties."""
    settings = Settings(
        _env_file=None,
        debug=False,
        development_mode=False,
        database_url="sqlite:///x.db",
    )
    assert settings.is_production is True
    assert settings.database_path == Path("x.db").resolve()

    settings = Settings(_env_file=None, debug=True)
    assert settings.is_production is False

    settings = Settings(_env_file=None, database_url="postgresql://db/tripwire")
    assert settings.database_path is None


def test_feature_flags():
    """Test feature flag system."""
    settings = Settings(
        _env_file=None,
        enable_scheduler=False,
        instruction_executor_url="http://executor.local/run",
        telegram_bot_token="token",
    )
    features = FeatureFlags(settings)

    assert features.api_server_enabled is True
    assert features.scheduler_enabled is False
    assert features.instruction_executor_enabled is True
    assert features.telegram_notifications_enabled is True
    assert features.get_enabled_features() == [
        "api_server",
        "instruction_executor",
        "telegram_notifications",
    ]


def test_environment_loading(env_dir, tmp_path):
    """Test environment-specific configuration loading."""
    no_env_file = tmp_path / "missing.env"

    config = load_config(env="development", config_file=no_env_file)
    assert config.debug is True
    assert config.development_mode is True
    assert config.log_level == "DEBUG"
    assert config.data_dir == env_dir

    config = load_config(env="production", config_file=no_env_file)
    assert config.debug is False
    assert config.development_mode is False
    assert config.log_level == "INFO"


def test_env_file_is_loaded(env_dir, tmp_path, monkeypatch):
    env_file = tmp_path / "custom.env"
    env_file.write_text("API_SERVER_PORT=9100\n", encoding="utf-8")
    monkeypatch.delenv("API_SERVER_PORT", raising=False)

    try:
        config = load_config(env="production", config_file=env_file)
    finally:
        monkeypatch.delenv("API_SERVER_PORT", raising=False)

    assert config.api_server_port == 9100


def test_missing_owners_file_is_a_configuration_error(env_dir, tmp_path):
    (env_dir / "owners.yaml").unlink()

    with pytest.raises(ConfigurationError, match="Owner directory not found"):
        load_config(env="production", config_file=tmp_path / "missing.env")


def test_missing_owners_file_allowed_without_api(env_dir, tmp_path, monkeypatch):
    (env_dir / "owners.yaml").unlink()
    monkeypatch.setenv("ENABLE_API_SERVER", "false")

    config = load_config(env="production", config_file=tmp_path / "missing.env")

    assert config.enable_api_server is False


def test_create_test_config(tmp_path):
    """Test test configuration creation."""
    config = create_test_config(data_dir=str(tmp_path))

    assert config.debug is True
    assert config.enable_api_server is False
    assert config.enable_scheduler is False
    assert config.listener_sweep_interval_seconds == 1

    config = create_test_config(data_dir=str(tmp_path), log_level="ERROR")
    assert config.log_level == "ERROR"


def test_configuration_error_handling(tmp_path, monkeypatch):
    """Test configuration error handling."""
    not_a_dir = tmp_path / "file"
    not_a_dir.write_text("", encoding="utf-8")
    monkeypatch.setenv("DATA_DIR", str(not_a_dir))

    with pytest.raises(ConfigurationError):
        load_config(config_file=tmp_path / "missing.env")
