"""CLI entry point for passkey-identity.

Invoked as::

    passkey-identity [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m passkey_identity.cli.main

Commands
--------
login [IDENTIFIER]   Log in with a passkey and store the delegated session
session show         Display the stored session
session clear        Delete the stored session ("log out")
version              Show version information
"""
from __future__ import annotations

import asyncio
import datetime
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from passkey_identity.authenticator import Authenticator, request_options
from passkey_identity.config import EngineConfig, load_config
from passkey_identity.engine.machine import AuthenticationEngine
from passkey_identity.errors import AuthenticatorDeclined, PasskeyIdentityError

console = Console()

DEFAULT_STORAGE_DIR: Path = Path.home() / ".passkey-identity"


class PromptAuthenticator(Authenticator):
    """Prints the challenge options and reads the assertion from the terminal.

    Lets an operator complete the ceremony with an external tool and paste
    the resulting assertion JSON back in.
    """

    async def get_assertion(self, challenge_payload: str) -> str:
        console.print("[bold]Passkey challenge[/bold] (publicKey request options):")
        console.print_json(json.dumps(request_options(challenge_payload)))
        assertion = click.prompt("Assertion", default="", show_default=False).strip()
        if not assertion:
            raise AuthenticatorDeclined("Webauthn fail", detail="no assertion entered")
        return assertion


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(package_name="passkey-identity")
@click.option(
    "--config",
    "config_path",
    type=click.Path(),
    default=None,
    help="Path to a YAML configuration file.",
)
@click.option("--authority-url", default=None, help="Base URL of the remote authority.")
@click.option(
    "--storage-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory holding the stored session.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    authority_url: str | None,
    storage_dir: str | None,
    log_level: str,
) -> None:
    """Passkey login and delegated session management"""
    logging.basicConfig(level=getattr(logging, log_level.upper()))
    config = load_config(config_path)
    if authority_url:
        config.authority_url = authority_url
    if storage_dir:
        config.storage_dir = Path(storage_dir)
    elif config.storage_dir is None:
        config.storage_dir = DEFAULT_STORAGE_DIR
    ctx.obj = config


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from passkey_identity import __version__

    console.print(f"[bold]passkey-identity[/bold] v{__version__}")


# ------------------------------------------------------------------
# login
# ------------------------------------------------------------------


@cli.command(name="login")
@click.argument("identifier", required=False)
@click.pass_obj
def login_command(config: EngineConfig, identifier: str | None) -> None:
    """Log in with a passkey, optionally claiming IDENTIFIER.

    Without IDENTIFIER a discoverable login is performed and the authority
    resolves the identifier from the assertion.
    """

    async def _login() -> tuple[str, int]:
        engine = await AuthenticationEngine.create(config, authenticator=PromptAuthenticator())
        try:
            result = await engine.login(identifier)
            return result.identifier, result.identity.expiration
        finally:
            await engine.aclose()

    try:
        resolved, expiration = asyncio.run(_login())
    except PasskeyIdentityError as exc:
        console.print(f"[red]Error:[/red] {exc.message}")
        if exc.detail:
            console.print(f"  {exc.detail}")
        sys.exit(1)

    console.print(f"[green]Logged in[/green] as [bold]{resolved}[/bold]")
    console.print(f"  Expires: {_format_expiration(expiration)}")


# ------------------------------------------------------------------
# session command group
# ------------------------------------------------------------------


@cli.group(name="session")
def session_group() -> None:
    """Inspect or remove the stored session."""


@session_group.command(name="show")
@click.pass_obj
def show_command(config: EngineConfig) -> None:
    """Display the stored delegated session."""

    async def _restore() -> AuthenticationEngine:
        engine = await AuthenticationEngine.create(config)
        await engine.aclose()
        return engine

    state = asyncio.run(_restore()).state
    if state.current_identity is None:
        console.print("[yellow]No stored session.[/yellow]")
        return

    identity = state.current_identity
    table = Table(title="Stored Session", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Identifier", state.current_identifier or "")
    table.add_row("Root public key", identity.public_key.hex())
    table.add_row("Session public key", identity.session_key.public_key_der.hex())
    table.add_row("Delegations", str(len(identity.chain)))
    table.add_row("Expires", _format_expiration(identity.expiration))
    status = "[green]Valid[/green]" if state.is_authenticated() else "[red]Expired[/red]"
    table.add_row("Status", status)
    console.print(table)


@session_group.command(name="clear")
@click.pass_obj
def clear_command(config: EngineConfig) -> None:
    """Delete the stored session. Effectively logs out."""
    engine = AuthenticationEngine(config)
    engine.clear()
    console.print("[green]Session cleared.[/green]")


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _format_expiration(expiration_ns: int) -> str:
    """Render a nanosecond timestamp as an ISO-8601 UTC string."""
    moment = datetime.datetime.fromtimestamp(expiration_ns / 1e9, tz=datetime.timezone.utc)
    return moment.isoformat(timespec="seconds")


if __name__ == "__main__":
    cli()
