"""Settings shared by the bootstrap tools.

Every tool subclasses BaseSettings with its own ``env_prefix``, so
``N8N_BOOTSTRAP_LOG_LEVEL=DEBUG`` affects only the provisioner and
``CHAINLOADER_LOG_FORMAT=json`` only the chainloader.

Values the operator chooses per run (domain, database identity, consent) are
not settings; the provisioner's resolver handles those explicitly.

    class ChainloaderSettings(BaseSettings):
        model_config = SettingsConfigDict(env_prefix="CHAINLOADER_")

    setup_logging("chainloader", **ChainloaderSettings.load().logging_options())
"""

from typing import Any, Literal, Self

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings as PydanticBaseSettings, SettingsConfigDict

from .errors import SettingsError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_name(prefix: str, loc: tuple) -> str:
    return (prefix + "_".join(str(part) for part in loc)).upper()


class BaseSettings(PydanticBaseSettings):
    """Logging options; everything else belongs to the subclasses."""

    # No env_file: settings come from the process environment only
    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    log_format: Literal["json", "console"] = Field(
        default="console", description="console for terminals, json for collectors"
    )
    log_level: str = Field(default="INFO", description="One of " + ", ".join(LOG_LEVELS))

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}, got {v!r}")
        return level

    @classmethod
    def load(cls) -> Self:
        """Read the environment, turning validation errors into one SettingsError."""
        try:
            return cls()
        except ValidationError as e:
            prefix = cls.model_config.get("env_prefix", "")
            problems = [f"{_env_name(prefix, err['loc'])}: {err['msg']}" for err in e.errors()]
            raise SettingsError(
                "Invalid environment: " + "; ".join(problems),
                hint="fix or unset the variables named above",
            ) from None

    def logging_options(self) -> dict[str, Any]:
        """Keyword arguments for shared.logging.setup_logging."""
        return {"log_format": self.log_format, "log_level": self.log_level}
