"""Main CLI entry point for gog."""

from __future__ import annotations

import json

import click

from . import config as config_module
from .auth import SCOPES_FULL, SCOPES_READONLY, run_auth
from .errors import ErrorHandlingGroup
from .gmail import cli as gmail_cli
from .logging import GogError, configure_logging, get_logger
from .paths import TOKEN_FILE

logger = get_logger(__name__)


@click.group(cls=ErrorHandlingGroup)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging to stderr")
@click.option(
    "--json-log",
    metavar="FILE",
    envvar="GOGCLI_LOG",
    default="auto",
    help='JSON log file path (default: auto, "-" for stdout, "none" to disable)',
)
def cli(verbose: bool, json_log: str):
    """gog: Gmail, Calendar, Drive, Contacts, and Tasks from the command line."""
    # Allow "none" to disable file logging
    log_file = None if json_log == "none" else json_log
    configure_logging(verbose=verbose, json_log=log_file)


cli.add_command(gmail_cli, name="gmail")


@cli.command()
@click.option(
    "--readonly", is_flag=True, help="Request read-only access (no send/modify)"
)
@click.option("--logout", is_flag=True, help="Remove stored credentials and log out")
def auth(readonly: bool, logout: bool):
    """Authenticate with Google APIs.

    By default, requests full access (read, send, modify). Use --readonly
    to request only read access.

    Use --logout to remove stored credentials.
    """
    if logout:
        if TOKEN_FILE.exists():
            TOKEN_FILE.unlink()
            click.echo("Logged out. Credentials removed.")
        else:
            click.echo("Not logged in (no credentials found).")
        return
    run_auth(readonly=readonly)


@cli.command()
def status():
    """Show authentication status."""
    if not TOKEN_FILE.exists():
        click.echo("Google: " + click.style("Not authenticated", fg="yellow"))
        click.echo("  Run 'gog auth' to authenticate.")
        return

    try:
        token_data = json.loads(TOKEN_FILE.read_text())
        scopes = set(token_data.get("scopes", []))
    except (json.JSONDecodeError, AttributeError):
        click.echo("Google: " + click.style("Token file corrupted", fg="red"))
        click.echo("  Run 'gog auth --logout' then 'gog auth' to fix.")
        return

    if scopes == set(SCOPES_FULL):
        scope_level = "full access"
    elif scopes == set(SCOPES_READONLY):
        scope_level = "read-only"
    else:
        scope_level = "custom"
    click.echo("Google: " + click.style(f"Authenticated ({scope_level})", fg="green"))


@cli.group()
def config():
    """Show or change gog configuration."""


@config.command("show")
def config_show():
    """Print the configuration with defaults applied."""
    click.echo(json.dumps(config_module.get_config(), indent=2))


@config.command("set")
@click.argument("key", type=click.Choice(sorted(config_module.DEFAULT_CONFIG)))
@click.argument("value")
def config_set(key: str, value: str):
    """Set a configuration value. Use "" to clear it.

    \b
    Keys:
        default_from       Sender used when a message has no "from"
        message_id_domain  Message-ID domain when From has no address
    """
    config_module.set_config_value(key, value or None)
    logger.info(f"Set {key}", value=value or None)


@cli.command()
@click.argument("shell", type=click.Choice(["bash", "zsh", "fish"]))
def completions(shell: str):
    """Generate shell completion script.

    \b
    Bash (~/.bashrc):
        eval "$(gog completions bash)"

    \b
    Zsh (~/.zshrc):
        eval "$(gog completions zsh)"

    \b
    Fish (~/.config/fish/config.fish):
        gog completions fish | source
    """
    from click.shell_completion import get_completion_class

    comp_cls = get_completion_class(shell)
    if comp_cls is None:
        raise GogError(f"Unsupported shell: {shell}")

    comp = comp_cls(cli, {}, "gog", "_GOG_COMPLETE")
    click.echo(comp.source())
