"""Writers for the files the provisioner leaves on the host.

Everything is written to a temporary sibling first and renamed over the
target, so readers only ever see a complete file. Secret files get their
restricted mode before the first byte is written.
"""

from collections.abc import Mapping
import grp
import os
from pathlib import Path
import re
import tempfile

from dotenv import dotenv_values
import structlog

logger = structlog.get_logger(__name__)

ENV_FILE_MODE = 0o640
PUBLIC_FILE_MODE = 0o644

_NEEDS_QUOTING = re.compile(r"[\s#\"'\\$`]")


def _atomic_write(path: Path, content: str, mode: int, group: str | None = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    # mkstemp creates the file 0600, so it is never readable by others
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        os.fchmod(fd, mode)
        if group is not None:
            os.fchown(fd, -1, grp.getgrnam(group).gr_gid)
        with os.fdopen(fd, "w") as f:
            fd = -1
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if fd != -1:
            os.close(fd)
        if os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise


def write_secret_file(
    path: Path, content: str, *, mode: int = 0o600, group: str | None = None
) -> None:
    """Write a file holding secrets. ``mode`` must not grant access to others."""
    if mode & 0o007:
        raise ValueError(f"secret file mode {oct(mode)} is world-accessible")
    _atomic_write(Path(path), content, mode, group)
    logger.info("secret_file_written", path=str(path), mode=oct(mode))


def write_public_file(path: Path, content: str, mode: int = PUBLIC_FILE_MODE) -> bool:
    """Write a non-secret file if its content or mode differ.

    Returns:
        True if the file was (re)written.
    """
    path = Path(path)
    if file_matches(path, content, mode):
        return False
    _atomic_write(path, content, mode)
    logger.info("file_written", path=str(path), mode=oct(mode))
    return True


def file_matches(path: Path, content: str, mode: int | None = None) -> bool:
    """Side-effect free check used by steps to decide whether to rewrite."""
    try:
        if Path(path).read_text() != content:
            return False
        if mode is not None and (os.stat(path).st_mode & 0o777) != mode:
            return False
    except FileNotFoundError:
        return False
    return True


def quote_env_value(value: str) -> str:
    if not _NEEDS_QUOTING.search(value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def render_environment_file(pairs: Mapping[str, str | None], *, header: str = "") -> str:
    """KEY=VALUE lines; keys mapped to None are left out."""
    lines: list[str] = []
    for line in header.splitlines():
        lines.append(f"# {line}" if line else "#")
    if lines:
        lines.append("")
    for key, value in pairs.items():
        if value is None:
            continue
        lines.append(f"{key}={quote_env_value(str(value))}")
    return "\n".join(lines) + "\n"


def write_environment_file(
    path: Path,
    pairs: Mapping[str, str | None],
    *,
    header: str = "",
    mode: int = ENV_FILE_MODE,
    group: str | None = None,
) -> None:
    write_secret_file(path, render_environment_file(pairs, header=header), mode=mode, group=group)


def read_environment_file(path: Path) -> dict[str, str]:
    """Values previously persisted by write_environment_file ({} if absent)."""
    path = Path(path)
    if not path.is_file():
        return {}
    values = dotenv_values(path, interpolate=False)
    return {key: value for key, value in values.items() if value is not None}
