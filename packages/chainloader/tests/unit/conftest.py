import io
import logging
import tarfile

import pytest
import structlog


def _tarball(files: dict[str, str], executable: bool = True) -> bytes:
    """gzip'd tar with ``files`` (path -> text); every path is taken as given."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for name, text in files.items():
            data = text.encode()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755 if executable else 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def tarball():
    return _tarball


@pytest.fixture
def workdir(tmp_path):
    return tmp_path / "chainloader"


@pytest.fixture(autouse=True)
def reset_logging():
    """CLI tests point logging at CliRunner's streams; undo that after each test."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
