from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
import re

from pydantic import SecretStr
import pytest
import structlog

from shared.shell import CommandFailed, CommandResult

from host_provisioner.models import ProvisioningConfig, Variant
from host_provisioner.settings import ProvisionerSettings
from host_provisioner.steps import StepContext

_PG_NAME_RE = re.compile(r"= '([^']*)'")


@dataclass
class Call:
    args: list[str]
    input: str | None = None
    env: Mapping[str, str] | None = None


@dataclass
class FakeHost:
    """Runner and probe over an in-memory host.

    Commands issued by the steps update the simulated state so a second run
    sees what the first one did. Files are written to real temp paths.
    """

    data_dir: Path
    letsencrypt_live_dir: Path
    calls: list[Call] = field(default_factory=list)
    packages: set[str] = field(default_factory=set)
    commands: set[str] = field(default_factory=set)
    users: set[str] = field(default_factory=set)
    owned: set[tuple[str, str]] = field(default_factory=set)
    roles: dict[str, str] = field(default_factory=dict)
    databases: set[str] = field(default_factory=set)
    enabled: set[str] = field(default_factory=set)
    active: set[str] = field(default_factory=set)
    failing: set[str] = field(default_factory=set)

    # CommandRunner

    def run(
        self,
        args: Sequence[str],
        *,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
    ) -> CommandResult:
        args = list(args)
        self.calls.append(Call(args, input, env))
        if args[0] in self.failing:
            result = CommandResult(args=args, returncode=1, stderr=f"{args[0]}: simulated failure")
            if check:
                raise CommandFailed(result)
            return result
        self._simulate(args, input)
        return CommandResult(args=args, returncode=0)

    def _simulate(self, args: list[str], input: str | None) -> None:
        match args:
            case ["apt-get", "install", "-y", *names]:
                self.packages.update(names)
                if "nodejs" in names:
                    self.commands.add("node")
            case ["npm", "install", "-g", package]:
                self.commands.add(package)
            case ["useradd", *_, user]:
                self.users.add(user)
            case ["chown", "-R", owner, path]:
                self.owned.add((path, owner.split(":")[0]))
            case ["sudo", "-u", "postgres", "psql", *_]:
                match = re.search(r'ROLE "([^"]+)".*PASSWORD \'([^\']*)\'', input or "")
                self.roles[match.group(1)] = match.group(2)
            case ["sudo", "-u", "postgres", "createdb", "-O", _, name]:
                self.databases.add(name)
            case ["systemctl", "enable", "--now", service]:
                self.enabled.add(service)
                self.active.add(service)
            case ["ln", "-sf", target, link]:
                if os.path.lexists(link):
                    os.remove(link)
                Path(link).parent.mkdir(parents=True, exist_ok=True)
                os.symlink(target, link)
            case ["certbot", "--nginx", "-d", domain, *_]:
                live = self.letsencrypt_live_dir / domain
                live.mkdir(parents=True, exist_ok=True)
                (live / "fullchain.pem").write_text("CERT")
            case _:
                pass

    # HostProbe

    def command_exists(self, name: str) -> bool:
        return name in self.commands

    def user_exists(self, name: str) -> bool:
        return name in self.users

    def owned_by(self, path: Path, user: str) -> bool:
        return (str(path), user) in self.owned

    def packages_installed(self, names: Sequence[str]) -> bool:
        return set(names) <= self.packages

    def service_enabled(self, name: str) -> bool:
        return name in self.enabled

    def service_active(self, name: str) -> bool:
        return name in self.active

    def postgres_query(self, sql: str) -> str:
        name = _PG_NAME_RE.search(sql).group(1)
        if "pg_roles" in sql:
            return "1" if name in self.roles else ""
        return "1" if name in self.databases else ""

    def command_lines(self) -> list[list[str]]:
        return [call.args for call in self.calls]


class FixedRandom:
    """Deterministic SecureRandomSource; each call returns a new byte value."""

    def __init__(self):
        self.counter = 0

    def token_bytes(self, nbytes: int) -> bytes:
        self.counter += 1
        return bytes([self.counter % 256]) * nbytes


@pytest.fixture
def settings(tmp_path):
    etc = tmp_path / "etc"
    return ProvisionerSettings(
        config_dir=etc / "n8n",
        env_file=etc / "n8n" / "n8n.env",
        key_file=etc / "n8n" / "encryption.key",
        data_dir=tmp_path / "var" / "lib" / "n8n",
        unit_path=etc / "systemd" / "system" / "n8n.service",
        nginx_sites_available=etc / "nginx" / "sites-available",
        nginx_sites_enabled=etc / "nginx" / "sites-enabled",
        letsencrypt_live_dir=etc / "letsencrypt" / "live",
        env_file_group=None,
    )


@pytest.fixture
def host(settings):
    return FakeHost(data_dir=settings.data_dir, letsencrypt_live_dir=settings.letsencrypt_live_dir)


@pytest.fixture
def random_source():
    return FixedRandom()


def _make_config(**overrides) -> ProvisioningConfig:
    values = {
        "variant": Variant.MINIMAL,
        "database_password": SecretStr("s3cret-pass"),
        "host": "box.example.internal",
        "license_accepted": True,
    }
    values.update(overrides)
    return ProvisioningConfig(**values)


def _tls_config(**overrides) -> ProvisioningConfig:
    return _make_config(
        variant=Variant.FULL,
        domain="n8n.example.com",
        contact_email="ops@example.com",
        host="n8n.example.com",
        webhook_base_url="https://n8n.example.com/",
        proxy_hop_count=1,
        **overrides,
    )


@pytest.fixture
def make_context(settings, host, random_source):
    def factory(config: ProvisioningConfig, persisted: dict[str, str] | None = None):
        return StepContext(
            config=config,
            settings=settings,
            runner=host,
            probe=host,
            random_source=random_source,
            persisted=persisted or {},
        )

    return factory


@pytest.fixture
def make_config():
    return _make_config


@pytest.fixture
def tls_config():
    return _tls_config


@pytest.fixture(autouse=True)
def reset_logging():
    """CLI tests point logging at CliRunner's streams; undo that after each test."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
