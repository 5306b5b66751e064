"""Read-only queries against the live host."""

from collections.abc import Sequence
import os
from pathlib import Path
import pwd
import shutil
from typing import Protocol

from shared.shell import CommandRunner


class HostProbe(Protocol):
    def command_exists(self, name: str) -> bool: ...

    def user_exists(self, name: str) -> bool: ...

    def owned_by(self, path: Path, user: str) -> bool: ...

    def packages_installed(self, names: Sequence[str]) -> bool: ...

    def service_enabled(self, name: str) -> bool: ...

    def service_active(self, name: str) -> bool: ...

    def postgres_query(self, sql: str) -> str:
        """Run a read-only query as the postgres superuser; unaligned, tuples only."""
        ...


class SystemProbe:
    """HostProbe for the machine we are running on."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def command_exists(self, name: str) -> bool:
        return shutil.which(name) is not None

    def user_exists(self, name: str) -> bool:
        try:
            pwd.getpwnam(name)
        except KeyError:
            return False
        return True

    def owned_by(self, path: Path, user: str) -> bool:
        try:
            uid = pwd.getpwnam(user).pw_uid
            return os.stat(path).st_uid == uid
        except (KeyError, FileNotFoundError):
            return False

    def packages_installed(self, names: Sequence[str]) -> bool:
        if not self.command_exists("dpkg-query"):
            return False
        result = self.runner.run(["dpkg-query", "-W", "-f=${Status}\\n", *names], check=False)
        if not result.ok:
            return False
        statuses = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        return len(statuses) == len(names) and all(
            status == "install ok installed" for status in statuses
        )

    def service_enabled(self, name: str) -> bool:
        return self.runner.run(["systemctl", "is-enabled", "--quiet", name], check=False).ok

    def service_active(self, name: str) -> bool:
        return self.runner.run(["systemctl", "is-active", "--quiet", name], check=False).ok

    def postgres_query(self, sql: str) -> str:
        result = self.runner.run(["sudo", "-u", "postgres", "psql", "-tAc", sql], check=False)
        if not result.ok:
            return ""
        return result.stdout.strip()
