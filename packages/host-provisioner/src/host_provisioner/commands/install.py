import os

from rich.table import Table
import structlog
import typer

from shared.console import console, info, report_error, warn
from shared.errors import BootstrapError
from shared.logging import setup_logging
from shared.shell import SubprocessRunner

from host_provisioner.consent import InteractiveConsent
from host_provisioner.files import read_environment_file
from host_provisioner.host import SystemProbe
from host_provisioner.models import ProvisioningConfig, StepOutcome, StepReport, Variant
from host_provisioner.prompts import RichPrompter
from host_provisioner.randomness import SystemRandomSource
from host_provisioner.resolver import ProvisioningFlags, resolve
from host_provisioner.sequencer import StepSequencer
from host_provisioner.settings import ProvisionerSettings
from host_provisioner.steps import StepContext, build_steps

logger = structlog.get_logger(__name__)

TOOL_NAME = "n8n-bootstrap"


def require_root() -> None:
    if os.geteuid() != 0:
        raise BootstrapError("Please run as root (use sudo).")


def provision(flags: ProvisioningFlags, variant: Variant, settings: ProvisionerSettings):
    """Resolve the configuration and run every step against this host."""
    require_root()

    runner = SubprocessRunner()
    prompter = RichPrompter()
    random_source = SystemRandomSource()
    persisted = read_environment_file(settings.env_file)

    config = resolve(
        flags,
        dict(os.environ),
        variant=variant,
        prompter=prompter,
        consent=InteractiveConsent(prompter),
        random_source=random_source,
        persisted=persisted,
        app_port=settings.app_port,
    )
    if config.password_generated:
        info(f"Generated Postgres password for {config.database_user}.")

    ctx = StepContext(
        config=config,
        settings=settings,
        runner=runner,
        probe=SystemProbe(runner),
        random_source=random_source,
        persisted=persisted,
    )
    reports = StepSequencer(build_steps(config)).run(ctx)
    return config, reports


def print_summary(
    config: ProvisioningConfig, reports: list[StepReport], settings: ProvisionerSettings
) -> None:
    table = Table(title="Provisioning steps")
    table.add_column("Step", style="cyan", no_wrap=True)
    table.add_column("Result")
    colors = {
        StepOutcome.PERFORMED: "green",
        StepOutcome.UNPERFORMED: "dim",
        StepOutcome.FAILED_OPTIONAL: "yellow",
    }
    for report in reports:
        table.add_row(report.step, f"[{colors[report.outcome]}]{report.outcome.value}[/]")
    console.print(table)

    if config.variant is Variant.FULL and not config.use_tls:
        warn(f"Skipping Nginx/TLS. n8n will be available on {config.public_url}")

    service = settings.service_name
    info(f"n8n {config.variant.value} bootstrap complete.")
    console.print(f"URL: {config.public_url}")
    console.print(f"Timezone: {config.timezone}")
    console.print(f"DB: {config.database_name} (user: {config.database_user})")
    if config.variant is Variant.MINIMAL:
        if config.webhook_base_url:
            console.print(f"WEBHOOK_URL set to: {config.webhook_base_url}")
        else:
            console.print(
                "Tip: set --webhook-url to your public address so nodes generate "
                "correct callback URLs."
            )
    console.print(f"Service status:  systemctl status {service}")
    console.print(f"Live logs:       journalctl -u {service} -f")


def _execute(flags: ProvisioningFlags, variant: Variant) -> None:
    try:
        settings = ProvisionerSettings.load()
        setup_logging(TOOL_NAME, **settings.logging_options())
        config, reports = provision(flags, variant, settings)
    except BootstrapError as e:
        report_error(e)
        raise typer.Exit(code=e.exit_code) from None
    except KeyboardInterrupt:
        report_error(BootstrapError("Interrupted; the host may be partially provisioned."))
        raise typer.Exit(code=130) from None

    print_summary(config, reports, settings)


def install(
    domain: str | None = typer.Option(
        None, "--domain", help="Public domain (e.g. n8n.example.com); enables TLS"
    ),
    email: str | None = typer.Option(
        None, "--email", help="Email for Let's Encrypt (required with --domain unless --skip-tls)"
    ),
    timezone: str | None = typer.Option(
        None, "--timezone", help="IANA timezone (default: America/New_York)"
    ),
    db_name: str | None = typer.Option(None, "--db-name", help="Postgres database (default: n8n)"),
    db_user: str | None = typer.Option(None, "--db-user", help="Postgres user (default: n8n)"),
    db_pass: str | None = typer.Option(
        None, "--db-pass", help="Postgres password (auto-generated if omitted)"
    ),
    skip_tls: bool = typer.Option(False, "--skip-tls", help="Don't configure Nginx/HTTPS"),
    yes_sul: bool = typer.Option(
        False, "--yes-sul", help="Accept the n8n Sustainable Use License (or ACCEPT_N8N_SUL=yes)"
    ),
    non_interactive: bool = typer.Option(
        False, "--non-interactive", help="Never prompt; requires --yes-sul"
    ),
):
    """Install n8n with PostgreSQL, systemd and optional Nginx + Let's Encrypt."""
    flags = ProvisioningFlags(
        domain=domain,
        email=email,
        timezone=timezone,
        db_name=db_name,
        db_user=db_user,
        db_pass=db_pass,
        skip_tls=skip_tls,
        yes_sul=yes_sul,
        non_interactive=non_interactive,
    )
    _execute(flags, Variant.FULL)


def install_minimal(
    timezone: str | None = typer.Option(
        None, "--timezone", help="IANA timezone (default: America/New_York)"
    ),
    db_name: str | None = typer.Option(None, "--db-name", help="Postgres database (default: n8n)"),
    db_user: str | None = typer.Option(None, "--db-user", help="Postgres user (default: n8n)"),
    db_pass: str | None = typer.Option(
        None, "--db-pass", help="Postgres password (auto-generated if omitted)"
    ),
    webhook_url: str | None = typer.Option(
        None, "--webhook-url", help="Public base URL (e.g. https://n8n.example.com/)"
    ),
    proxy_hops: int | None = typer.Option(
        None, "--proxy-hops", min=0, help="Number of reverse proxies in front of n8n (default: 0)"
    ),
    yes_sul: bool = typer.Option(
        False, "--yes-sul", help="Accept the n8n Sustainable Use License (or ACCEPT_N8N_SUL=yes)"
    ),
    non_interactive: bool = typer.Option(
        False, "--non-interactive", help="Never prompt; requires --yes-sul"
    ),
):
    """Install n8n without Nginx/TLS; HTTPS is terminated elsewhere."""
    flags = ProvisioningFlags(
        timezone=timezone,
        db_name=db_name,
        db_user=db_user,
        db_pass=db_pass,
        webhook_url=webhook_url,
        proxy_hops=proxy_hops,
        yes_sul=yes_sul,
        non_interactive=non_interactive,
    )
    _execute(flags, Variant.MINIMAL)
