"""Subprocess execution for provisioning commands."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import os
import shlex
import subprocess
import time
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)

MAX_LOG_LENGTH = 1000


@dataclass(frozen=True)
class CommandResult:
    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandFailed(Exception):
    """A command exited non-zero (or could not be started)."""

    def __init__(self, result: CommandResult):
        self.result = result
        super().__init__(f"Command failed ({result.returncode}): {format_command(result.args)}")

    @property
    def output(self) -> str:
        """stderr plus the last MAX_LOG_LENGTH chars of stdout."""
        stdout = self.result.stdout
        stdout_tail = stdout[-MAX_LOG_LENGTH:] if len(stdout) > MAX_LOG_LENGTH else stdout
        parts = []
        if self.result.stderr.strip():
            parts.append(self.result.stderr.rstrip())
        if stdout_tail.strip():
            parts.append(stdout_tail.rstrip())
        return "\n".join(parts)


class CommandRunner(Protocol):
    """Runs a command to completion and returns its captured output."""

    def run(
        self,
        args: Sequence[str],
        *,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
    ) -> CommandResult: ...


def format_command(args: Sequence[str]) -> str:
    return shlex.join(args)


class SubprocessRunner:
    """CommandRunner backed by subprocess.run.

    Nothing sensitive may be passed in ``args`` (they show up in the process
    listing and in logs); secrets go through ``input``.
    """

    def run(
        self,
        args: Sequence[str],
        *,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
    ) -> CommandResult:
        args = list(args)
        command = format_command(args)
        logger.info("command_start", command=command)

        full_env = None
        if env:
            full_env = {**os.environ, **env}

        start = time.time()
        try:
            process = subprocess.run(  # noqa: S603
                args,
                input=input,
                env=full_env,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            result = CommandResult(args=args, returncode=127, stderr=str(e))
            logger.error("command_not_found", command=command)
            if check:
                raise CommandFailed(result) from e
            return result

        result = CommandResult(
            args=args,
            returncode=process.returncode,
            stdout=process.stdout or "",
            stderr=process.stderr or "",
        )
        duration = time.time() - start

        stdout_brief = (
            result.stdout[:MAX_LOG_LENGTH] + "..."
            if len(result.stdout) > MAX_LOG_LENGTH
            else result.stdout
        )
        logger.debug("command_stdout", output=stdout_brief)
        logger.info(
            "command_complete",
            command=command,
            exit_code=result.returncode,
            duration_sec=round(duration, 2),
        )

        if check and not result.ok:
            raise CommandFailed(result)
        return result
