"""Diagnostics CLI for configured identity environments.

Provides the ``paypal-identity`` console script, useful when wiring an
application to a new environment::

    paypal-identity authorize-url sandbox --config environments.yaml
    paypal-identity token-details sandbox ACCESS_TOKEN
    paypal-identity refresh sandbox REFRESH_TOKEN

Results go to stdout (JSON where structured), diagnostics to stderr.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from paypal_identity import __version__
from paypal_identity.client.requestor import Requestor
from paypal_identity.config import load_environment
from paypal_identity.exceptions import (
    ConfigError,
    MissingCredentialError,
    NetworkError,
    PayPalIdentityError,
    RefreshHTTPError,
    RefreshNetworkError,
    RefreshProviderError,
)
from paypal_identity.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONFIG_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
)
from paypal_identity.models import StrategyConfig, TokenStore
from paypal_identity.strategy import PayPalStrategy

app = typer.Typer(
    name="paypal-identity",
    help="Inspect and exercise configured PayPal identity environments.",
    no_args_is_help=True,
    add_completion=False,
)

stdout = Console()
stderr = Console(stderr=True)

DEFAULT_CONFIG_PATH = Path("environments.yaml")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"paypal-identity {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Configure logging before every sub-command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=stderr, show_path=False)],
        force=True,
    )


def exit_code_for(exc: PayPalIdentityError) -> int:
    """Map a library error onto a CLI exit code."""
    if isinstance(exc, ConfigError):
        return EXIT_CONFIG_ERROR
    if isinstance(exc, (NetworkError, RefreshNetworkError)):
        return EXIT_CONNECTION_ERROR
    if isinstance(exc, (MissingCredentialError, RefreshHTTPError, RefreshProviderError)):
        return EXIT_AUTH_FAILURE
    return EXIT_GENERIC_FAILURE


def _fail(exc: PayPalIdentityError) -> typer.Exit:
    stderr.print(f"[bold red]Error:[/bold red] {exc}")
    return typer.Exit(code=exit_code_for(exc))


def _load(config_path: Path, env: str) -> StrategyConfig:
    try:
        return load_environment(config_path, env)
    except ConfigError as exc:
        raise _fail(exc) from None


def _no_verify(*args: object) -> None:
    return None


@app.command("authorize-url")
def authorize_url(
    env: str = typer.Argument(help="Environment name."),
    state: Optional[str] = typer.Option(None, "--state", help="Opaque state echoed back by the provider."),
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="JSON or YAML environments file."
    ),
) -> None:
    """Print the URL a user's browser is redirected to for login."""
    config = _load(config_path, env)
    with PayPalStrategy(config, _no_verify) as strategy:
        stdout.print(strategy.authorization_url(state), soft_wrap=True)


@app.command("token-details")
def token_details(
    env: str = typer.Argument(help="Environment name."),
    access_token: str = typer.Argument(help="Access token to validate."),
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="JSON or YAML environments file."
    ),
) -> None:
    """Show validity and scopes of an access token."""
    config = _load(config_path, env)
    with Requestor(config) as requestor:
        try:
            details = requestor.get_token_details(access_token)
        except PayPalIdentityError as exc:
            raise _fail(exc) from None
    stdout.print_json(data=details)


@app.command("refresh")
def refresh(
    env: str = typer.Argument(help="Environment name."),
    refresh_token: str = typer.Argument(help="Refresh token to exchange."),
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="JSON or YAML environments file."
    ),
) -> None:
    """Exchange a refresh token and print the new access token."""
    config = _load(config_path, env)
    token_store = TokenStore(refresh_token=refresh_token)
    with Requestor(config) as requestor:
        try:
            requestor.refresh(token_store)
        except PayPalIdentityError as exc:
            raise _fail(exc) from None
    stdout.print(token_store.access_token, soft_wrap=True)


def main() -> None:
    """Console-script entry point."""
    app()
