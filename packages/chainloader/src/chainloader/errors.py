from shared.errors import BootstrapError


class DelegatorError(BootstrapError):
    """Base for chainloader failures."""


class UnsupportedOrigin(DelegatorError):
    """--repo is not an HTTPS GitHub repository URL."""


class FetchFailed(DelegatorError):
    """The archive could not be downloaded (network, auth, missing ref)."""


class ExtractionLayoutError(DelegatorError):
    """The archive could not be extracted or has no single top-level directory."""


class EntrypointNotFound(DelegatorError):
    """The entrypoint path does not name a file inside the archive."""


class EntrypointNotExecutable(DelegatorError):
    """The entrypoint exists but the OS refused to start it."""


class WorkdirError(DelegatorError):
    """The working directory could not be prepared or written to."""
