"""Operator-facing output.

Log lines go through structlog; these helpers are for the few lines the
operator must always see (warnings, the final summary, fatal diagnostics).
Fatal diagnostics go to stderr with an ``[err]`` prefix.
"""

from rich.console import Console
from rich.markup import escape

from .errors import BootstrapError

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)


def info(message: str) -> None:
    console.print(f"[bold green]==>[/bold green] {escape(message)}")


def warn(message: str) -> None:
    console.print(f"[bold yellow]\\[warn][/bold yellow] {escape(message)}")


def fail(message: str) -> None:
    err_console.print(f"[bold red]\\[err][/bold red] {escape(message)}")


def report_error(error: BootstrapError) -> None:
    """Print a BootstrapError the way every tool reports fatal errors."""
    fail(error.message)
    details = error.details()
    if details:
        err_console.print(escape(details.rstrip()), soft_wrap=True)
    if error.hint:
        err_console.print(f"hint: {escape(error.hint)}")
