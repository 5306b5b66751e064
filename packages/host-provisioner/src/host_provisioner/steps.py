"""Provisioning steps.

Each step checks whether its post-condition already holds (``is_satisfied``,
which must not change the host) and only otherwise ``apply``s its effect, so
rerunning the whole sequence converges instead of failing on "already
exists".
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import os
from pathlib import Path
import shlex

import structlog

from shared.shell import CommandRunner

from .errors import StepFailed
from .files import (
    ENV_FILE_MODE,
    PUBLIC_FILE_MODE,
    file_matches,
    render_environment_file,
    write_environment_file,
    write_public_file,
)
from .host import HostProbe
from .keys import EncryptionKeyStore
from .models import ProvisioningConfig
from .randomness import SecureRandomSource
from .settings import ProvisionerSettings
from .templates import (
    ENV_FILE_HEADER,
    environment_pairs,
    render_nginx_site,
    render_service_unit,
    service_unit_descriptor,
)

logger = structlog.get_logger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}

BASE_PACKAGES = (
    "ca-certificates",
    "curl",
    "gnupg2",
    "lsb-release",
    "build-essential",
    "python3",
    "make",
    "gcc",
    "g++",
    "postgresql",
    "postgresql-contrib",
)
EDGE_PACKAGES = ("nginx", "certbot", "python3-certbot-nginx")

NGINX_SITE_NAME = "n8n"

# Present while the running service predates the current unit or environment file
RESTART_MARKER = ".restart-pending"


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _read(path: Path) -> str:
    try:
        return Path(path).read_text()
    except FileNotFoundError:
        return ""


@dataclass
class StepContext:
    """Everything a step may look at or act through during one run."""

    config: ProvisioningConfig
    settings: ProvisionerSettings
    runner: CommandRunner
    probe: HostProbe
    random_source: SecureRandomSource
    # Environment file contents from before this run
    persisted: dict[str, str] = field(default_factory=dict)

    @property
    def key_store(self) -> EncryptionKeyStore:
        return EncryptionKeyStore(self.settings.key_file)

    @property
    def restart_marker(self) -> Path:
        return self.settings.config_dir / RESTART_MARKER

    @property
    def restart_pending(self) -> bool:
        return self.restart_marker.exists()

    def request_restart(self) -> None:
        """Record on disk that the service must pick up new files.

        The marker outlives a failed run, so the next run still restarts.
        """
        write_public_file(self.restart_marker, "")

    def clear_restart(self) -> None:
        self.restart_marker.unlink(missing_ok=True)


class Step(ABC):
    name: str = "step"
    # Failure of an optional step is reported as a warning; the run goes on.
    optional: bool = False

    @abstractmethod
    def is_satisfied(self, ctx: StepContext) -> bool: ...

    @abstractmethod
    def apply(self, ctx: StepContext) -> None: ...

    def hint(self, ctx: StepContext) -> str | None:
        """Remediation shown when the step fails."""
        return None

    def retry_command(self, ctx: StepContext) -> str:
        return ""


class AptPackagesStep(Step):
    name = "apt-packages"

    def __init__(self, packages: tuple[str, ...]):
        self.packages = packages

    def is_satisfied(self, ctx: StepContext) -> bool:
        return ctx.probe.packages_installed(self.packages)

    def apply(self, ctx: StepContext) -> None:
        ctx.runner.run(["apt-get", "update", "-y"], env=APT_ENV)
        ctx.runner.run(["apt-get", "install", "-y", *self.packages], env=APT_ENV)

    def hint(self, ctx: StepContext) -> str | None:
        return "check network access to the Ubuntu mirrors, then run: apt-get update"


class NodeRuntimeStep(Step):
    name = "nodejs-runtime"

    def is_satisfied(self, ctx: StepContext) -> bool:
        return ctx.probe.command_exists("node")

    def apply(self, ctx: StepContext) -> None:
        setup_url = f"https://deb.nodesource.com/setup_{ctx.settings.node_major}.x"
        ctx.runner.run(["bash", "-c", f"set -o pipefail; curl -fsSL {setup_url} | bash -"])
        ctx.runner.run(["apt-get", "install", "-y", "nodejs"], env=APT_ENV)


class ApplicationPackageStep(Step):
    name = "n8n-package"

    def is_satisfied(self, ctx: StepContext) -> bool:
        return ctx.probe.command_exists(ctx.settings.app_package)

    def apply(self, ctx: StepContext) -> None:
        ctx.runner.run(["npm", "install", "-g", ctx.settings.app_package])


class SystemAccountStep(Step):
    name = "system-account"

    def is_satisfied(self, ctx: StepContext) -> bool:
        user = ctx.settings.service_user
        return ctx.probe.user_exists(user) and ctx.probe.owned_by(ctx.settings.data_dir, user)

    def apply(self, ctx: StepContext) -> None:
        user = ctx.settings.service_user
        data_dir = str(ctx.settings.data_dir)
        if not ctx.probe.user_exists(user):
            ctx.runner.run(
                ["useradd", "-r", "-m", "-d", data_dir, "-s", "/usr/sbin/nologin", user]
            )
        ctx.runner.run(["mkdir", "-p", data_dir])
        ctx.runner.run(["chown", "-R", f"{user}:{user}", data_dir])


class DatabaseRoleStep(Step):
    """Login role for the application.

    The password is sent on psql's stdin, never on the command line.
    """

    name = "database-role"

    def _role_exists(self, ctx: StepContext) -> bool:
        user = ctx.config.database_user
        sql = f"SELECT 1 FROM pg_roles WHERE rolname = {quote_literal(user)}"
        return ctx.probe.postgres_query(sql) == "1"

    def is_satisfied(self, ctx: StepContext) -> bool:
        if not self._role_exists(ctx):
            return False
        # An existing role only matches if it still has the password we persisted.
        return (
            ctx.persisted.get("DB_POSTGRESDB_USER") == ctx.config.database_user
            and ctx.persisted.get("DB_POSTGRESDB_PASSWORD")
            == ctx.config.database_password.get_secret_value()
        )

    def apply(self, ctx: StepContext) -> None:
        user = quote_ident(ctx.config.database_user)
        password = quote_literal(ctx.config.database_password.get_secret_value())
        if self._role_exists(ctx):
            sql = f"ALTER ROLE {user} WITH LOGIN PASSWORD {password};\n"
        else:
            sql = f"CREATE ROLE {user} LOGIN PASSWORD {password};\n"
        ctx.runner.run(["sudo", "-u", "postgres", "psql", "-v", "ON_ERROR_STOP=1"], input=sql)


class DatabaseStep(Step):
    name = "database"

    def is_satisfied(self, ctx: StepContext) -> bool:
        name = ctx.config.database_name
        sql = f"SELECT 1 FROM pg_database WHERE datname = {quote_literal(name)}"
        return ctx.probe.postgres_query(sql) == "1"

    def apply(self, ctx: StepContext) -> None:
        ctx.runner.run(
            [
                "sudo",
                "-u",
                "postgres",
                "createdb",
                "-O",
                ctx.config.database_user,
                ctx.config.database_name,
            ]
        )


class EncryptionKeyStep(Step):
    name = "encryption-key"

    def is_satisfied(self, ctx: StepContext) -> bool:
        return ctx.key_store.exists()

    def apply(self, ctx: StepContext) -> None:
        ctx.key_store.load_or_create(ctx.random_source)


class EnvironmentFileStep(Step):
    name = "environment-file"

    def _render(self, ctx: StepContext) -> tuple[dict[str, str | None], str]:
        key = ctx.key_store.read()
        if not key:
            raise StepFailed(self.name, f"encryption key missing at {ctx.settings.key_file}")
        pairs = environment_pairs(ctx.config, ctx.settings, key)
        return pairs, render_environment_file(pairs, header=ENV_FILE_HEADER)

    def is_satisfied(self, ctx: StepContext) -> bool:
        _, content = self._render(ctx)
        return file_matches(ctx.settings.env_file, content, ENV_FILE_MODE)

    def apply(self, ctx: StepContext) -> None:
        pairs, _ = self._render(ctx)
        ctx.request_restart()
        write_environment_file(
            ctx.settings.env_file,
            pairs,
            header=ENV_FILE_HEADER,
            group=ctx.settings.env_file_group,
        )


class ServiceUnitStep(Step):
    """systemd unit; rewritten whenever it drifted from the rendered one.

    The service is restarted only if it was already running and a restart is
    pending, i.e. the unit or the environment file was rewritten after it
    last (re)started, possibly by an earlier run that failed here.
    """

    name = "service-unit"

    def _content(self, ctx: StepContext) -> str:
        return render_service_unit(service_unit_descriptor(ctx.settings))

    def is_satisfied(self, ctx: StepContext) -> bool:
        service = ctx.settings.service_name
        return (
            not ctx.restart_pending
            and file_matches(ctx.settings.unit_path, self._content(ctx), PUBLIC_FILE_MODE)
            and ctx.probe.service_enabled(service)
            and ctx.probe.service_active(service)
        )

    def apply(self, ctx: StepContext) -> None:
        service = ctx.settings.service_name
        was_active = ctx.probe.service_active(service)
        if write_public_file(ctx.settings.unit_path, self._content(ctx)):
            ctx.request_restart()

        ctx.runner.run(["systemctl", "daemon-reload"])
        ctx.runner.run(["systemctl", "enable", "--now", service])
        if was_active and ctx.restart_pending:
            ctx.runner.run(["systemctl", "restart", service])
        ctx.clear_restart()

    def hint(self, ctx: StepContext) -> str | None:
        name = ctx.settings.service_name
        return f"inspect with: systemctl status {name} && journalctl -u {name} -n 50"


class EdgeProxyStep(Step):
    """nginx site routing the public domain to the local application port.

    certbot edits the site file after us, so the check looks for our routing
    lines instead of comparing the whole file.
    """

    name = "nginx-site"

    def _paths(self, ctx: StepContext) -> tuple[Path, Path]:
        available = ctx.settings.nginx_sites_available / NGINX_SITE_NAME
        enabled = ctx.settings.nginx_sites_enabled / NGINX_SITE_NAME
        return available, enabled

    def is_satisfied(self, ctx: StepContext) -> bool:
        available, enabled = self._paths(ctx)
        content = _read(available)
        return (
            f"server_name {ctx.config.domain};" in content
            and f"proxy_pass http://127.0.0.1:{ctx.settings.app_port};" in content
            and enabled.is_symlink()
            and os.readlink(enabled) == str(available)
        )

    def apply(self, ctx: StepContext) -> None:
        available, enabled = self._paths(ctx)
        write_public_file(available, render_nginx_site(ctx.config.domain, ctx.settings.app_port))
        ctx.runner.run(["ln", "-sf", str(available), str(enabled)])
        ctx.runner.run(["nginx", "-t"])
        ctx.runner.run(["systemctl", "reload", "nginx"])

    def hint(self, ctx: StepContext) -> str | None:
        return "fix the nginx configuration reported above, then rerun the installer"


class CertificateStep(Step):
    """Let's Encrypt certificate via certbot's nginx installer."""

    name = "tls-certificate"
    optional = True

    def _command(self, ctx: StepContext) -> list[str]:
        return [
            "certbot",
            "--nginx",
            "-d",
            ctx.config.domain,
            "--redirect",
            "-m",
            ctx.config.contact_email,
            "--agree-tos",
            "-n",
        ]

    def is_satisfied(self, ctx: StepContext) -> bool:
        live = ctx.settings.letsencrypt_live_dir / ctx.config.domain / "fullchain.pem"
        site = ctx.settings.nginx_sites_available / NGINX_SITE_NAME
        return live.exists() and "ssl_certificate" in _read(site)

    def apply(self, ctx: StepContext) -> None:
        ctx.runner.run(self._command(ctx))
        ctx.runner.run(["systemctl", "reload", "nginx"])

    def retry_command(self, ctx: StepContext) -> str:
        return shlex.join(self._command(ctx))


def build_steps(config: ProvisioningConfig) -> list[Step]:
    """The ordered step list for a configuration."""
    packages = BASE_PACKAGES + (EDGE_PACKAGES if config.use_tls else ())
    steps: list[Step] = [
        AptPackagesStep(packages),
        NodeRuntimeStep(),
        ApplicationPackageStep(),
        SystemAccountStep(),
        DatabaseRoleStep(),
        DatabaseStep(),
        EncryptionKeyStep(),
        EnvironmentFileStep(),
        ServiceUnitStep(),
    ]
    if config.use_tls:
        steps.extend([EdgeProxyStep(), CertificateStep()])
    return steps
