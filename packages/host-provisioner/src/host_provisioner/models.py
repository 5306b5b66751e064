from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, SecretStr

DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_DATABASE_NAME = "n8n"
DEFAULT_DATABASE_USER = "n8n"


class Variant(str, Enum):
    FULL = "full"
    MINIMAL = "minimal"


class ProvisioningConfig(BaseModel):
    """Resolved parameters of one provisioning run. Immutable."""

    model_config = ConfigDict(frozen=True)

    variant: Variant = Variant.FULL
    domain: str | None = None
    contact_email: str | None = None
    timezone: str = DEFAULT_TIMEZONE
    database_name: str = DEFAULT_DATABASE_NAME
    database_user: str = DEFAULT_DATABASE_USER
    database_password: SecretStr
    password_generated: bool = False
    skip_tls: bool = False
    non_interactive: bool = False
    license_accepted: bool = False
    host: str
    webhook_base_url: str | None = None
    proxy_hop_count: int = 0
    app_port: int = 5678

    @property
    def use_tls(self) -> bool:
        return self.variant is Variant.FULL and bool(self.domain) and not self.skip_tls

    @property
    def public_url(self) -> str:
        if self.use_tls:
            return f"https://{self.domain}"
        return f"http://{self.host}:{self.app_port}"


class StepOutcome(str, Enum):
    UNPERFORMED = "unperformed"
    PERFORMED = "performed"
    FAILED_OPTIONAL = "failed_optional"


@dataclass(frozen=True)
class StepReport:
    step: str
    outcome: StepOutcome
    detail: str = ""


HARDENING_DIRECTIVES: tuple[tuple[str, str], ...] = (
    ("NoNewPrivileges", "true"),
    ("ProtectSystem", "full"),
    ("ProtectHome", "true"),
    ("PrivateTmp", "true"),
    ("ProtectHostname", "true"),
    ("ProtectClock", "true"),
    ("ProtectKernelLogs", "true"),
    ("ProtectKernelModules", "true"),
    ("ProtectKernelTunables", "true"),
    ("LockPersonality", "true"),
    ("RestrictRealtime", "true"),
    ("RestrictSUIDSGID", "true"),
    ("SystemCallArchitectures", "native"),
    ("RestrictAddressFamilies", "AF_INET AF_INET6 AF_UNIX"),
    ("CapabilityBoundingSet", ""),
    ("AmbientCapabilities", ""),
)


@dataclass(frozen=True)
class ServiceUnitDescriptor:
    """How systemd supervises the application process."""

    description: str
    user: str
    group: str
    working_directory: Path
    environment_file: Path
    exec_start: str
    restart_policy: str = "on-failure"
    restart_sec: int = 5
    after: tuple[str, ...] = ("network-online.target", "postgresql.service")
    wants: tuple[str, ...] = ("network-online.target",)
    hardening: tuple[tuple[str, str], ...] = field(default=HARDENING_DIRECTIVES)
