from pathlib import Path

import structlog

from .files import write_secret_file
from .randomness import ENCRYPTION_KEY_BYTES, SecureRandomSource, generate_secret

logger = structlog.get_logger(__name__)

KEY_FILE_MODE = 0o600


class EncryptionKeyStore:
    """The application's at-rest encryption key.

    Generated once per host. Regenerating it would make every credential
    already stored by the application unreadable, so an existing key file is
    never replaced.
    """

    def __init__(self, path: Path, mode: int = KEY_FILE_MODE):
        self.path = Path(path)
        self.mode = mode

    def exists(self) -> bool:
        return self.path.is_file() and bool(self.read())

    def read(self) -> str:
        try:
            return self.path.read_text().strip()
        except FileNotFoundError:
            return ""

    def load_or_create(self, source: SecureRandomSource) -> tuple[str, bool]:
        """Return (key, created)."""
        existing = self.read()
        if existing:
            return existing, False

        key = generate_secret(source, ENCRYPTION_KEY_BYTES)
        write_secret_file(self.path, key + "\n", mode=self.mode)
        logger.info("encryption_key_created", path=str(self.path))
        return key, True
