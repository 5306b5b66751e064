from pathlib import Path
import re
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, SecretStr

from .errors import UnsupportedOrigin

DEFAULT_REF = "main"
DEFAULT_ENTRYPOINT = "scripts/n8n-bootstrap.sh"
DEFAULT_WORKDIR = Path("/opt/slyd/chainloader")

# Only https://github.com/<org>/<repo>[.git] is supported
GITHUB_ORIGIN_RE = re.compile(r"^https://github\.com/([^/]+)/([^/.]+)(\.git)?$")
CODELOAD_URL = "https://codeload.github.com/{org}/{repo}/tar.gz/{ref}"


def parse_origin(origin: str) -> tuple[str, str]:
    """Split a GitHub HTTPS URL into (org, repo).

    Raises:
        UnsupportedOrigin: any other URL shape.
    """
    match = GITHUB_ORIGIN_RE.match(origin)
    if not match:
        raise UnsupportedOrigin(
            f"Only HTTPS GitHub URLs are supported by this minimal chainloader. Got: {origin}",
            hint="use the form https://github.com/<org>/<repo>[.git]",
        )
    return match.group(1), match.group(2)


def archive_url(origin: str, ref: str) -> str:
    org, repo = parse_origin(origin)
    return CODELOAD_URL.format(org=org, repo=repo, ref=quote(ref, safe="/"))


class RemoteSource(BaseModel):
    """A fetchable code revision plus what to run from it."""

    model_config = ConfigDict(frozen=True)

    origin: str
    ref: str = DEFAULT_REF
    token: SecretStr | None = None
    entrypoint: str = DEFAULT_ENTRYPOINT
    args: tuple[str, ...] = ()
    workdir: Path = DEFAULT_WORKDIR
    interpreter: str | None = None

    @property
    def repository(self) -> str:
        org, repo = parse_origin(self.origin)
        return f"{org}/{repo}"

    @property
    def archive_url(self) -> str:
        return archive_url(self.origin, self.ref)
