"""License consent gate.

No step may touch the host before the operator has accepted the n8n
Sustainable Use License, either at the prompt or with --yes-sul /
ACCEPT_N8N_SUL=yes when running unattended.
"""

from typing import Protocol

import structlog

from .errors import ConsentDenied, MissingRequiredField
from .prompts import Prompter

logger = structlog.get_logger(__name__)

LICENSE_URL = "https://docs.n8n.io/sustainable-use-license/"

LICENSE_NOTICE = f"""
This installer will download and configure n8n on THIS server.
By continuing you confirm you have reviewed n8n's Sustainable Use License:
  {LICENSE_URL}
and that your use will be for internal business purposes.
Offering hosted access or white-labeling may require a separate license from n8n.
"""

AFFIRMATIVE = "yes"


class ConsentProvider(Protocol):
    def confirm(self, terms: str) -> bool: ...


class InteractiveConsent:
    """Shows the terms and accepts only an exact "yes"."""

    def __init__(self, prompter: Prompter):
        self.prompter = prompter

    def confirm(self, terms: str) -> bool:
        self.prompter.show(terms)
        return self.prompter.ask("Proceed? (yes/no)") == AFFIRMATIVE


def resolve_consent(
    *, non_interactive: bool, pre_accepted: bool, provider: ConsentProvider
) -> bool:
    """Return True or raise; never returns False.

    Raises:
        MissingRequiredField: unattended run without recorded consent.
        ConsentDenied: the operator answered anything but "yes".
    """
    if non_interactive:
        if not pre_accepted:
            raise MissingRequiredField(
                "--non-interactive requires --yes-sul (or ACCEPT_N8N_SUL=yes).",
                hint="add --yes-sul after reviewing " + LICENSE_URL,
            )
        logger.info("license_accepted", source="flag")
        return True

    if not provider.confirm(LICENSE_NOTICE):
        raise ConsentDenied("Aborted by user.")
    logger.info("license_accepted", source="prompt")
    return True
