from pathlib import Path

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from shared.config import BaseSettings


class ProvisionerSettings(BaseSettings):
    """Filesystem layout and fixed parameters of the provisioned host.

    Overridable with N8N_BOOTSTRAP_* variables, mostly so tests and staging
    hosts can point the writers somewhere other than /etc.
    """

    model_config = SettingsConfigDict(env_prefix="N8N_BOOTSTRAP_")

    config_dir: Path = Path("/etc/n8n")
    env_file: Path = Path("/etc/n8n/n8n.env")
    key_file: Path = Path("/etc/n8n/encryption.key")
    data_dir: Path = Path("/var/lib/n8n")
    unit_path: Path = Path("/etc/systemd/system/n8n.service")
    nginx_sites_available: Path = Path("/etc/nginx/sites-available")
    nginx_sites_enabled: Path = Path("/etc/nginx/sites-enabled")
    letsencrypt_live_dir: Path = Path("/etc/letsencrypt/live")

    service_name: str = "n8n"
    service_user: str = "n8n"
    # Group allowed to read the environment file; None leaves it root-owned
    env_file_group: str | None = "n8n"

    app_port: int = Field(default=5678, ge=1, le=65535)
    app_binary: str = "/usr/bin/n8n"
    app_package: str = "n8n"
    node_major: int = Field(default=22, ge=18)
    database_host: str = "127.0.0.1"
    database_port: int = 5432
