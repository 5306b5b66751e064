from pydantic import Field, SecretStr
from pydantic_settings import SettingsConfigDict

from shared.config import BaseSettings


class ChainloaderSettings(BaseSettings):
    """Chainloader configuration.

    The GitHub token is read from the environment only, so it never shows up
    in the process listing.
    """

    model_config = SettingsConfigDict(env_prefix="CHAINLOADER_")

    git_token: SecretStr | None = Field(
        default=None, alias="GIT_TOKEN", description="Token for private repositories"
    )

    @property
    def token(self) -> str | None:
        if self.git_token is None:
            return None
        return self.git_token.get_secret_value().strip() or None
