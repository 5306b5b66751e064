from shared.errors import BootstrapError


class ConsentDenied(BootstrapError):
    """The operator did not accept the license terms."""


class InvalidArgument(BootstrapError):
    """A flag, environment value or prompt answer is malformed."""


class MissingRequiredField(BootstrapError):
    """A value required by the chosen options was not supplied."""


class StepFailed(BootstrapError):
    """A provisioning step failed; the remaining steps are not run."""

    def __init__(self, step: str, reason: str, output: str = "", hint: str | None = None):
        super().__init__(f"step '{step}' failed: {reason}", hint=hint)
        self.step = step
        self.reason = reason
        self.output = output

    def details(self) -> str | None:
        return self.output or None


class OptionalStepFailed(StepFailed):
    """A step whose failure leaves the host usable (certificate issuance).

    Never reaches the operator as a fatal error: the sequencer logs it as a
    warning together with ``retry_command`` and carries on.
    """

    def __init__(self, step: str, reason: str, retry_command: str, output: str = ""):
        super().__init__(step, reason, output=output, hint=f"retry with: {retry_command}")
        self.retry_command = retry_command
