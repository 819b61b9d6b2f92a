"""
ARI Relay CLI - Main entry point.

Commands:
    ari-relay run      - Relay ARI events to the message bus
    ari-relay version  - Show the version
"""
import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer

from . import __version__
from .core.config import LOG_LEVELS, load_settings
from .core.errors import ConfigError, ConnectError
from .service import serve

app = typer.Typer(
    name="ari-relay",
    help="Relay Asterisk ARI events onto a NATS message bus.",
    no_args_is_help=True,
)


def configure_logging(level: str) -> None:
    """Configure root logging for the relay process."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@app.command()
def run(
    env_file: Optional[Path] = typer.Option(
        Path(".env"),
        "--env-file",
        help="Path to a .env file with VOIP_* and BROKER_* settings.",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level (overrides LOG_LEVEL and DEBUG).",
    ),
):
    """
    Relay ARI events until interrupted.
    """
    try:
        settings = load_settings(env_file=str(env_file) if env_file else None)
    except ConfigError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    level = (log_level or settings.effective_log_level).upper()
    if level not in LOG_LEVELS:
        typer.echo(
            f"Error: Invalid log level '{log_level}' (choose from {', '.join(LOG_LEVELS)})",
            err=True,
        )
        raise typer.Exit(1)
    configure_logging(level)

    try:
        asyncio.run(serve(settings))
    except ConnectError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        typer.echo("Interrupted", err=True)
        raise typer.Exit(130)


@app.command()
def version():
    """
    Show the ARI Relay version.
    """
    typer.echo(f"ARI Relay v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
