"""Archive extraction and entrypoint lookup."""

from pathlib import Path
import shutil
import tarfile

import structlog

from .errors import EntrypointNotFound, ExtractionLayoutError

logger = structlog.get_logger(__name__)

EXTRACT_DIR = "repo"


def prepare_workdir(workdir: Path) -> Path:
    """Return an empty extraction directory under ``workdir``.

    Content left by a previous run is removed first.
    """
    target = workdir / EXTRACT_DIR
    if target.exists():
        shutil.rmtree(target)
    target.mkdir(parents=True)
    return target


def extract_archive(archive: Path, dest: Path) -> None:
    # The "data" filter rejects absolute paths, links out of dest and device files
    try:
        with tarfile.open(archive, "r:gz") as tar:
            tar.extractall(dest, filter="data")
    except (tarfile.TarError, OSError) as e:
        raise ExtractionLayoutError(f"Could not extract archive: {e}") from e


def single_top_level(dest: Path) -> Path:
    """The one directory the archive unpacked into."""
    entries = sorted(dest.iterdir())
    if len(entries) != 1 or not entries[0].is_dir():
        names = ", ".join(entry.name for entry in entries) or "nothing"
        raise ExtractionLayoutError(
            f"Expected exactly one top-level directory in the archive, found: {names}"
        )
    return entries[0]


def locate_entrypoint(top: Path, entrypoint: str) -> Path:
    root = top.resolve()
    candidate = (root / entrypoint).resolve()
    if not candidate.is_relative_to(root) or not candidate.is_file():
        raise EntrypointNotFound(
            f"Entrypoint not found in repo: {entrypoint}",
            hint="pass --entrypoint with a path relative to the repository root",
        )
    return candidate
