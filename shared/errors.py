"""Error base shared by the provisioner and the chainloader."""


class BootstrapError(Exception):
    """A fatal, operator-facing error.

    The CLI layer prints ``message`` as a single diagnostic line, then ``hint``
    (a corrective command, when there is one) and exits with ``exit_code``.
    """

    exit_code = 1

    def __init__(self, message: str, hint: str | None = None):
        super().__init__(message)
        self.message = message
        self.hint = hint

    def details(self) -> str | None:
        """Extra text shown under the diagnostic line (tool output, usually)."""
        return None


class SettingsError(BootstrapError):
    """An environment variable holds a value the settings model rejects."""
