from pydantic import ValidationError
from pydantic_settings import SettingsConfigDict
import pytest

from shared.config import BaseSettings
from shared.errors import SettingsError


class ToolSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TESTTOOL_")


def test_defaults(monkeypatch):
    monkeypatch.delenv("TESTTOOL_LOG_LEVEL", raising=False)

    settings = ToolSettings()

    assert settings.logging_options() == {"log_format": "console", "log_level": "INFO"}


def test_prefixed_environment_is_read_and_normalized(monkeypatch):
    monkeypatch.setenv("TESTTOOL_LOG_LEVEL", " debug ")
    monkeypatch.setenv("TESTTOOL_LOG_FORMAT", "json")

    settings = ToolSettings()

    assert settings.log_level == "DEBUG"
    assert settings.log_format == "json"


def test_unprefixed_variables_are_ignored(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "ERROR")

    assert ToolSettings().log_level == "INFO"


def test_unknown_level_rejected(monkeypatch):
    monkeypatch.setenv("TESTTOOL_LOG_LEVEL", "loud")

    with pytest.raises(ValidationError, match="log level must be one of"):
        ToolSettings()


def test_load_reports_variable_names(monkeypatch):
    monkeypatch.setenv("TESTTOOL_LOG_LEVEL", "loud")
    monkeypatch.setenv("TESTTOOL_LOG_FORMAT", "xml")

    with pytest.raises(SettingsError) as exc_info:
        ToolSettings.load()

    message = exc_info.value.message
    assert message.startswith("Invalid environment: ")
    assert "TESTTOOL_LOG_LEVEL" in message
    assert "TESTTOOL_LOG_FORMAT" in message
    assert "\n" not in message


def test_load_returns_settings_when_valid(monkeypatch):
    monkeypatch.setenv("TESTTOOL_LOG_FORMAT", "json")

    assert ToolSettings.load().log_format == "json"
