"""Secret generation.

Secrets are URL-safe base64 without padding: printable, and safe to paste in
a shell or an environment file without quoting.
"""

import base64
import secrets
from typing import Protocol

DATABASE_PASSWORD_BYTES = 24
ENCRYPTION_KEY_BYTES = 48


class SecureRandomSource(Protocol):
    def token_bytes(self, nbytes: int) -> bytes: ...


class SystemRandomSource:
    """Backed by the OS CSPRNG."""

    def token_bytes(self, nbytes: int) -> bytes:
        return secrets.token_bytes(nbytes)


def generate_secret(source: SecureRandomSource, nbytes: int) -> str:
    raw = source.token_bytes(nbytes)
    if len(raw) != nbytes:
        raise ValueError(f"random source returned {len(raw)} bytes, expected {nbytes}")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")
