"""Command-line interface for refract-auth.

Provides commands to sign in, inspect and end the local session.
"""

from __future__ import annotations

import asyncio
import sys
from datetime import UTC, datetime

import typer
from pydantic import SecretStr

from refract_auth import __version__
from refract_auth.config import Config, ConfigError, default_state_dir, load_config
from refract_auth.exceptions import RefractAuthError, StorageError
from refract_auth.logging_config import get_logger, setup_logging
from refract_auth.oauth.session import SessionManager, create_session_manager
from refract_auth.storage import load_or_create_key

app = typer.Typer(
    name="refract-auth",
    help="Refract OIDC login - Authorization Code with PKCE",
    add_completion=False,
)

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to configuration file (JSON or YAML)",
)
LogLevelOption = typer.Option(
    None,
    "--log-level",
    "-l",
    help="Log level override (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"refract-auth version {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """refract-auth CLI."""


def _load(config_path: str | None, log_level: str | None) -> Config:
    cli_args: dict[str, str] = {}
    if log_level:
        cli_args["log_level"] = log_level

    try:
        config = load_config(path=config_path, cli_args=cli_args)
        config.require_provider()
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=1) from None

    setup_logging(config)
    return _with_persistent_storage(config)


def _with_persistent_storage(config: Config) -> Config:
    """Fill in the per-user encrypted token store unless one is configured.

    Each command runs in its own process, so the session must live on disk.
    """
    if config.token_store_path:
        return config

    state_dir = default_state_dir()
    key = config.token_encryption_key
    if key is None:
        try:
            key = SecretStr(load_or_create_key(state_dir / "token.key"))
        except StorageError as e:
            typer.echo(f"Storage error: {e}", err=True)
            raise typer.Exit(code=1) from None

    return config.model_copy(
        update={
            "token_store_path": str(state_dir / "tokens.enc"),
            "token_encryption_key": key,
        }
    )


def _manager(config: Config) -> SessionManager:
    try:
        return create_session_manager(config, navigator=typer.launch)
    except StorageError as e:
        typer.echo(f"Storage error: {e}", err=True)
        raise typer.Exit(code=1) from None


def _format_expiry(expires_at: int) -> str:
    return datetime.fromtimestamp(expires_at / 1000, tz=UTC).isoformat()


async def _login(manager: SessionManager, config: Config, redirect_path: str | None) -> str | None:
    from refract_auth.callback import wait_for_callback

    redirect_uri = config.effective_redirect_uri

    def start() -> None:
        url = manager.login(redirect_path)
        typer.echo("Opening the browser to sign in. If it does not open, visit:")
        typer.echo(url)

    try:
        params = await wait_for_callback(redirect_uri, config.callback_timeout, on_ready=start)
        return await manager.handle_callback_url(params.to_url(redirect_uri))
    finally:
        await manager.close()


@app.command()
def login(
    redirect_path: str | None = typer.Option(
        None,
        "--redirect-path",
        "-r",
        help="Path to remember for after sign-in",
    ),
    config_path: str | None = ConfigOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Sign in through the identity provider."""
    config = _load(config_path, log_level)
    manager = _manager(config)

    try:
        path = asyncio.run(_login(manager, config, redirect_path))
    except (RefractAuthError, ValueError) as e:
        typer.echo(f"Login failed: {e}", err=True)
        raise typer.Exit(code=1) from None
    except TimeoutError:
        typer.echo("Login timed out waiting for the identity provider.", err=True)
        raise typer.Exit(code=1) from None

    claims = manager.get_user_info()
    who = claims.display_name if claims else "unknown user"
    typer.echo(f"Signed in as {who}")
    if path:
        typer.echo(f"Continue at: {path}")


@app.command()
def logout(
    config_path: str | None = ConfigOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """End the session locally and at the identity provider."""
    config = _load(config_path, log_level)
    manager = _manager(config)
    url = manager.logout()
    typer.echo("Signed out")
    get_logger(__name__).debug("Sent user to %s", url)


@app.command()
def status(
    config_path: str | None = ConfigOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Show the session state."""
    config = _load(config_path, log_level)
    manager = _manager(config)

    typer.echo(f"Status: {manager.status.value}")
    auth_state = manager.token_store.load()
    if auth_state is not None:
        typer.echo(f"Access token expires: {_format_expiry(auth_state.expires_at)}")
        typer.echo(f"Refresh token: {'yes' if auth_state.refresh_token else 'no'}")


@app.command()
def token(
    config_path: str | None = ConfigOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Print a valid access token, refreshing it if needed."""
    config = _load(config_path, log_level)
    manager = _manager(config)

    async def fetch() -> str | None:
        try:
            return await manager.get_access_token()
        finally:
            await manager.close()

    access_token = asyncio.run(fetch())
    if access_token is None:
        typer.echo("Not signed in. Run 'refract-auth login'.", err=True)
        raise typer.Exit(code=1)
    typer.echo(access_token)


@app.command()
def whoami(
    config_path: str | None = ConfigOption,
    log_level: str | None = LogLevelOption,
) -> None:
    """Show identity claims (decoded for display, not verified)."""
    config = _load(config_path, log_level)
    manager = _manager(config)

    claims = manager.get_user_info()
    if claims is None:
        typer.echo("No identity available. Run 'refract-auth login'.", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Name: {claims.display_name}")
    typer.echo(f"Subject: {claims.sub}")
    if claims.email:
        typer.echo(f"Email: {claims.email}")
    if claims.iss:
        typer.echo(f"Issuer: {claims.iss}")


@app.command()
def version() -> None:
    """Print version information."""
    typer.echo(f"refract-auth version {__version__}")
    typer.echo(f"Python {sys.version}")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
