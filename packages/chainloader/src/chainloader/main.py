from pathlib import Path

import typer

from shared.console import fail, info, report_error
from shared.errors import BootstrapError
from shared.logging import setup_logging

from .delegator import Delegator
from .settings import ChainloaderSettings
from .source import DEFAULT_ENTRYPOINT, DEFAULT_REF, DEFAULT_WORKDIR, RemoteSource

TOOL_NAME = "chainloader"

app = typer.Typer(
    name=TOOL_NAME,
    help="Fetch a GitHub repository archive and run a script from it.",
    add_completion=False,
)


@app.command()
def main(
    repo: str = typer.Option(
        ..., "--repo", help="Repository URL, e.g. https://github.com/org/repo.git"
    ),
    ref: str = typer.Option(DEFAULT_REF, "--ref", "--branch", help="Branch, tag or commit"),
    entrypoint: str = typer.Option(
        DEFAULT_ENTRYPOINT, "--entrypoint", "--path", help="Script path inside the repository"
    ),
    workdir: Path = typer.Option(
        DEFAULT_WORKDIR, "--workdir", help="Where the archive is unpacked"
    ),
    interpreter: str | None = typer.Option(
        None,
        "--interpreter",
        help='Program to run the entrypoint with (default: bash for .sh files; "" execs directly)',
    ),
    forwarded: list[str] | None = typer.Argument(
        None, metavar="[-- ARGS...]", help="Passed to the entrypoint unchanged"
    ),
):
    """Download REPO at REF and exec ENTRYPOINT with everything after --.

    Set GIT_TOKEN in the environment for private repositories.
    """
    try:
        settings = ChainloaderSettings.load()
        setup_logging(TOOL_NAME, **settings.logging_options())
        source = RemoteSource(
            origin=repo,
            ref=ref,
            token=settings.token,
            entrypoint=entrypoint,
            args=tuple(forwarded or ()),
            workdir=workdir,
            interpreter=interpreter,
        )
        info(f"Fetching {repo} @ {ref}")
        code = Delegator().run(source)
    except BootstrapError as e:
        report_error(e)
        raise typer.Exit(code=e.exit_code) from None
    except KeyboardInterrupt:
        fail("Interrupted.")
        raise typer.Exit(code=130) from None

    if code != 0:
        fail(f"Entrypoint exited with status {code}.")
    raise typer.Exit(code=code)


if __name__ == "__main__":
    app()
