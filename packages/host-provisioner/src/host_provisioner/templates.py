"""Renderers for the environment file, the systemd unit and the nginx site."""

from .models import ProvisioningConfig, ServiceUnitDescriptor
from .settings import ProvisionerSettings

ENV_FILE_HEADER = "Managed by n8n-bootstrap. Manual edits are overwritten on the next run."
UNIT_FILE_HEADER = "# Managed by n8n-bootstrap. Manual edits are overwritten on the next run.\n"


def environment_pairs(
    config: ProvisioningConfig, settings: ProvisionerSettings, encryption_key: str
) -> dict[str, str | None]:
    """Variables consumed by the n8n process, in file order."""
    return {
        "N8N_PORT": str(settings.app_port),
        "N8N_PROTOCOL": "http",
        "N8N_HOST": config.host,
        "GENERIC_TIMEZONE": config.timezone,
        # Public URL used in generated webhook links (esp. behind a reverse proxy)
        "WEBHOOK_URL": config.webhook_base_url,
        "N8N_PROXY_HOPS": str(config.proxy_hop_count),
        "N8N_ENCRYPTION_KEY": encryption_key,
        "DB_TYPE": "postgresdb",
        "DB_POSTGRESDB_HOST": settings.database_host,
        "DB_POSTGRESDB_PORT": str(settings.database_port),
        "DB_POSTGRESDB_DATABASE": config.database_name,
        "DB_POSTGRESDB_USER": config.database_user,
        "DB_POSTGRESDB_PASSWORD": config.database_password.get_secret_value(),
        "EXECUTIONS_MODE": "regular",
        "EXECUTIONS_DATA_SAVE_ON_SUCCESS": "none",
        "EXECUTIONS_DATA_SAVE_ON_ERROR": "all",
    }


def service_unit_descriptor(settings: ProvisionerSettings) -> ServiceUnitDescriptor:
    return ServiceUnitDescriptor(
        description="n8n workflow automation",
        user=settings.service_user,
        group=settings.service_user,
        working_directory=settings.data_dir,
        environment_file=settings.env_file,
        exec_start=f"{settings.app_binary} start",
    )


def render_service_unit(unit: ServiceUnitDescriptor) -> str:
    lines = [
        UNIT_FILE_HEADER,
        "[Unit]",
        f"Description={unit.description}",
        f"After={' '.join(unit.after)}",
        f"Wants={' '.join(unit.wants)}",
        "",
        "[Service]",
        "Type=simple",
        f"User={unit.user}",
        f"Group={unit.group}",
        f"EnvironmentFile={unit.environment_file}",
        f"WorkingDirectory={unit.working_directory}",
        f"ExecStart={unit.exec_start}",
        f"Restart={unit.restart_policy}",
        f"RestartSec={unit.restart_sec}",
        "",
        "# Hardening",
    ]
    lines.extend(f"{key}={value}" for key, value in unit.hardening)
    lines.extend(["", "[Install]", "WantedBy=multi-user.target"])
    return "\n".join(lines) + "\n"


def render_nginx_site(domain: str, upstream_port: int) -> str:
    """Plain-HTTP server block; certbot adds the TLS listener and redirect."""
    return f"""server {{
  listen 80;
  server_name {domain};

  location / {{
    proxy_pass http://127.0.0.1:{upstream_port};
    proxy_http_version 1.1;
    proxy_set_header Upgrade $http_upgrade;
    proxy_set_header Connection "upgrade";
    proxy_set_header Host $host;
    proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
    proxy_set_header X-Forwarded-Proto $scheme;
    proxy_set_header X-Forwarded-Host $host;
    proxy_set_header X-Forwarded-Port $server_port;
  }}
}}
"""
