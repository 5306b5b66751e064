from collections.abc import Callable, Sequence
from pathlib import Path
import shlex
import stat
import subprocess

import httpx
import structlog

from .errors import EntrypointNotExecutable, WorkdirError
from .extract import extract_archive, locate_entrypoint, prepare_workdir, single_top_level
from .fetch import download_archive
from .source import RemoteSource, parse_origin

logger = structlog.get_logger(__name__)

ARCHIVE_NAME = "repo.tgz"

# Entrypoints with these suffixes run through bash unless --interpreter says otherwise
SHELL_SUFFIXES = (".sh", ".bash")

Executor = Callable[[Sequence[str], Path], int]


def execute(command: Sequence[str], cwd: Path) -> int:
    """Run ``command`` attached to our stdio and return its exit status.

    A child killed by a signal reports 128 + signal number, as a shell would.
    """
    try:
        completed = subprocess.run(list(command), cwd=cwd)
    except OSError as e:
        raise EntrypointNotExecutable(
            f"Could not start entrypoint: {e}",
            hint="scripts without a shebang line need --interpreter (e.g. --interpreter bash)",
        ) from e
    if completed.returncode < 0:
        return 128 - completed.returncode
    return completed.returncode


def interpreter_for(entry: Path, interpreter: str | None) -> list[str]:
    """Command prefix for ``entry``; an empty ``interpreter`` means exec directly."""
    if interpreter is None:
        return ["bash"] if entry.suffix in SHELL_SUFFIXES else []
    return shlex.split(interpreter)


class Delegator:
    """Fetches a repository archive and hands control to a script inside it."""

    def __init__(self, client: httpx.Client | None = None, executor: Executor = execute):
        self.client = client
        self.executor = executor

    def run(self, source: RemoteSource) -> int:
        """Fetch, extract and run ``source``; returns the entrypoint's exit status.

        Raises:
            UnsupportedOrigin: before any network access.
            WorkdirError, FetchFailed, ExtractionLayoutError, EntrypointNotFound,
            EntrypointNotExecutable
        """
        org, repo = parse_origin(source.origin)
        url = source.archive_url
        log = logger.bind(repository=f"{org}/{repo}", ref=source.ref)

        try:
            source.workdir.mkdir(parents=True, exist_ok=True)
            extract_dir = prepare_workdir(source.workdir)
        except OSError as e:
            raise WorkdirError(
                f"Cannot prepare workdir {source.workdir}: {e.strerror or e}",
                hint="pass --workdir with a writable directory, or run as root",
            ) from e
        archive = source.workdir / ARCHIVE_NAME

        token = source.token.get_secret_value() if source.token else None
        if token:
            log.info("using_git_token")
        download_archive(url, archive, token=token, client=self.client)
        try:
            extract_archive(archive, extract_dir)
        finally:
            archive.unlink(missing_ok=True)

        top = single_top_level(extract_dir)
        entry = locate_entrypoint(top, source.entrypoint)
        try:
            entry.chmod(entry.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except OSError as e:
            raise EntrypointNotExecutable(
                f"Cannot mark entrypoint executable: {e.strerror or e}"
            ) from e

        command = [*interpreter_for(entry, source.interpreter), str(entry), *source.args]

        # Argument values are not logged; they may carry credentials
        log.info("entrypoint_exec", entrypoint=source.entrypoint, argc=len(source.args))
        code = self.executor(command, top)
        log.info("entrypoint_exited", exit_code=code)
        return code
