from collections.abc import Sequence

import structlog

from shared.console import warn
from shared.shell import CommandFailed

from .errors import OptionalStepFailed, StepFailed
from .models import StepOutcome, StepReport
from .steps import Step, StepContext

logger = structlog.get_logger(__name__)


class StepSequencer:
    """Runs steps strictly in order; the first fatal failure stops the run.

    There is no rollback: a failed run leaves the host partially provisioned
    and the next run picks up from the first unsatisfied step.
    """

    def __init__(self, steps: Sequence[Step]):
        self.steps = list(steps)

    def ensure(self, step: Step, ctx: StepContext) -> StepOutcome:
        """Apply ``step`` unless its post-condition already holds.

        Raises:
            StepFailed: the check or the action failed.
        """
        with structlog.contextvars.bound_contextvars(step=step.name):
            try:
                if step.is_satisfied(ctx):
                    logger.info("step_skipped")
                    return StepOutcome.UNPERFORMED

                logger.info("step_applying")
                step.apply(ctx)
            except StepFailed:
                raise
            except CommandFailed as e:
                raise StepFailed(step.name, str(e), output=e.output, hint=step.hint(ctx)) from e
            except OSError as e:
                raise StepFailed(step.name, str(e), hint=step.hint(ctx)) from e

            logger.info("step_applied")
            return StepOutcome.PERFORMED

    def run(self, ctx: StepContext) -> list[StepReport]:
        reports: list[StepReport] = []
        for step in self.steps:
            try:
                outcome = self.ensure(step, ctx)
            except StepFailed as e:
                if not step.optional:
                    logger.error("step_failed", step=step.name, reason=e.reason)
                    raise
                failure = OptionalStepFailed(
                    step.name, e.reason, retry_command=step.retry_command(ctx), output=e.output
                )
                logger.warning(
                    "optional_step_failed",
                    step=step.name,
                    reason=failure.reason,
                    retry_command=failure.retry_command,
                )
                warn(f"{failure.message}. Check DNS and firewall, then {failure.hint}")
                reports.append(
                    StepReport(step.name, StepOutcome.FAILED_OPTIONAL, failure.retry_command)
                )
                continue
            reports.append(StepReport(step.name, outcome))
        return reports
