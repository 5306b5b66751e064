"""Configuration resolution.

Layers, lowest precedence first: built-in defaults, values persisted by a
previous run (database password only), the process environment, command-line
flags, interactive prompts. Prompts only fire for fields that are still empty
and never in non-interactive mode.

``resolve`` takes everything it needs as arguments; it does not read
os.environ or touch the host.
"""

from collections.abc import Callable, Mapping
import re
import socket
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, SecretStr
import structlog

from .consent import ConsentProvider, resolve_consent
from .errors import InvalidArgument, MissingRequiredField
from .models import (
    DEFAULT_DATABASE_NAME,
    DEFAULT_DATABASE_USER,
    DEFAULT_TIMEZONE,
    ProvisioningConfig,
    Variant,
)
from .prompts import Prompter
from .randomness import DATABASE_PASSWORD_BYTES, SecureRandomSource, generate_secret

logger = structlog.get_logger(__name__)

TRUTHY = {"1", "y", "yes", "true", "on"}

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")
_HOSTNAME_RE = re.compile(
    r"^(?=.{1,253}$)([A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)"
    r"(\.[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)+$"
)


class ProvisioningFlags(BaseModel):
    """Values given on the command line. None means "not given"."""

    domain: str | None = None
    email: str | None = None
    timezone: str | None = None
    db_name: str | None = None
    db_user: str | None = None
    db_pass: str | None = None
    skip_tls: bool = False
    yes_sul: bool = False
    non_interactive: bool = False
    webhook_url: str | None = None
    proxy_hops: int | None = None


def _env_value(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name, "").strip()
    return value or None


def _env_flag(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in TRUTHY


def _pick(flag_value: str | None, env: Mapping[str, str], env_name: str) -> str | None:
    if flag_value is not None and flag_value.strip():
        return flag_value.strip()
    return _env_value(env, env_name)


def _validate_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    # Region names like "America" are directories in tzdata and raise IsADirectoryError
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise InvalidArgument(f"Unknown IANA timezone: {value}") from None
    return value


def _validate_identifier(value: str, what: str) -> str:
    if not _IDENTIFIER_RE.match(value):
        raise InvalidArgument(
            f"Invalid {what} '{value}': use letters, digits and underscores "
            "(max 63 chars, not starting with a digit)."
        )
    return value


def _validate_domain(value: str) -> str:
    if not _HOSTNAME_RE.match(value):
        raise InvalidArgument(f"Domain '{value}' does not look valid.")
    return value.lower()


def _validate_email(value: str) -> str:
    local, _, domain = value.partition("@")
    if not local or not domain or " " in value:
        raise InvalidArgument(f"Invalid email address: {value}")
    return value


def _validate_webhook_url(value: str) -> str:
    if not value.startswith(("http://", "https://")):
        raise InvalidArgument(
            f"Invalid webhook URL '{value}': must start with http:// or https://",
            hint="e.g. --webhook-url https://n8n.example.com/",
        )
    return value


def _parse_hops(flag_value: int | None, env: Mapping[str, str]) -> int:
    if flag_value is not None:
        hops = flag_value
    else:
        raw = _env_value(env, "PROXY_HOPS")
        if raw is None:
            return 0
        try:
            hops = int(raw)
        except ValueError:
            raise InvalidArgument(
                f"PROXY_HOPS must be a non-negative integer, got '{raw}'"
            ) from None
    if hops < 0:
        raise InvalidArgument(f"Proxy hops must be a non-negative integer, got {hops}")
    return hops


def resolve(
    flags: ProvisioningFlags,
    env: Mapping[str, str],
    *,
    variant: Variant,
    prompter: Prompter,
    consent: ConsentProvider,
    random_source: SecureRandomSource,
    persisted: Mapping[str, str] | None = None,
    fqdn: Callable[[], str] = socket.getfqdn,
    app_port: int = 5678,
) -> ProvisioningConfig:
    """Build the immutable ProvisioningConfig for one run.

    Args:
        flags: Parsed command-line flags.
        env: Snapshot of the process environment.
        variant: FULL may configure nginx/TLS; MINIMAL takes explicit
                 webhook URL and proxy hops instead.
        prompter: Used for interactive prompts.
        consent: Asked for license consent in interactive mode.
        random_source: Source for the generated database password.
        persisted: Values from the environment file of a previous run.
        fqdn: Returns this machine's fully-qualified hostname.
        app_port: Local port of the application (used in derived URLs).

    Raises:
        ConsentDenied, MissingRequiredField, InvalidArgument
    """
    persisted = persisted or {}
    full = variant is Variant.FULL

    # Consent comes first: a refused run must not prompt for anything else.
    non_interactive = flags.non_interactive or _env_flag(env, "NON_INTERACTIVE")
    pre_accepted = (
        flags.yes_sul or env.get("YES_SUL") == "yes" or env.get("ACCEPT_N8N_SUL") == "yes"
    )
    license_accepted = resolve_consent(
        non_interactive=non_interactive, pre_accepted=pre_accepted, provider=consent
    )

    timezone = _validate_timezone(_pick(flags.timezone, env, "TIMEZONE") or DEFAULT_TIMEZONE)
    db_name = _validate_identifier(
        _pick(flags.db_name, env, "DB_NAME") or DEFAULT_DATABASE_NAME, "database name"
    )
    db_user = _validate_identifier(
        _pick(flags.db_user, env, "DB_USER") or DEFAULT_DATABASE_USER, "database user"
    )

    domain = _pick(flags.domain, env, "DOMAIN") if full else None
    email = _pick(flags.email, env, "EMAIL") if full else None
    skip_tls = flags.skip_tls or _env_flag(env, "SKIP_TLS")

    password = flags.db_pass or env.get("DB_PASS") or None
    if password is None and persisted.get("DB_POSTGRESDB_USER") == db_user:
        # The role already exists with this password; a new one would not match it.
        password = persisted.get("DB_POSTGRESDB_PASSWORD") or None
        if password:
            logger.info("database_password_reused", user=db_user)

    if not non_interactive:
        if full and not domain:
            domain = prompter.ask("Enter domain for HTTPS (blank to skip)") or None
        if full and domain and not email and not skip_tls:
            email = prompter.ask("Enter email for Let's Encrypt (required for TLS)") or None
        if not password:
            password = (
                prompter.ask(
                    f"Postgres password for user '{db_user}' (blank to auto-generate)",
                    secret=True,
                )
                or None
            )

    if domain:
        domain = _validate_domain(domain)
    use_tls = full and bool(domain) and not skip_tls
    if use_tls and not email:
        raise MissingRequiredField(
            "Email is required when using TLS with a domain.",
            hint=f"pass --email <address> (or --skip-tls) together with --domain {domain}",
        )
    if email:
        email = _validate_email(email)

    password_generated = False
    if not password:
        password = generate_secret(random_source, DATABASE_PASSWORD_BYTES)
        password_generated = True
        logger.info("database_password_generated", user=db_user)

    host = domain if (full and domain) else fqdn()

    if full:
        if use_tls:
            webhook_url: str | None = f"https://{domain}/"
            hops = 1
        else:
            webhook_url = f"http://{host}:{app_port}/"
            hops = 0
    else:
        webhook_url = _pick(flags.webhook_url, env, "WEBHOOK_URL")
        if webhook_url:
            webhook_url = _validate_webhook_url(webhook_url)
        hops = _parse_hops(flags.proxy_hops, env)

    config = ProvisioningConfig(
        variant=variant,
        domain=domain,
        contact_email=email,
        timezone=timezone,
        database_name=db_name,
        database_user=db_user,
        database_password=SecretStr(password),
        password_generated=password_generated,
        skip_tls=skip_tls,
        non_interactive=non_interactive,
        license_accepted=license_accepted,
        host=host,
        webhook_base_url=webhook_url,
        proxy_hop_count=hops,
        app_port=app_port,
    )
    logger.info(
        "configuration_resolved",
        variant=variant.value,
        domain=domain,
        use_tls=config.use_tls,
        timezone=timezone,
        database=db_name,
        database_user=db_user,
    )
    return config
