"""
CLI entry point for the bridge voter.
"""

import logging
from pathlib import Path
from typing import Optional

import structlog
import typer

from .config import VoterConfig
from .db import Chain, CheckpointStore
from .errors import VoterError

app = typer.Typer(
    name="bridge-voter",
    help="Cross-chain bridge voter: relays source-chain transfers and signs relay-chain proofs",
    add_completion=False,
)

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to .env configuration file",
)


def configure_logging(level: str = "info", fmt: str = "console") -> None:
    """Configure structlog with a level filter and the chosen renderer."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise typer.BadParameter(f"unknown log level: {level}")

    renderer = structlog.processors.JSONRenderer() if fmt == "json" else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
    )


@app.command()
def run(config_path: Optional[Path] = ConfigOption) -> None:
    """
    Start both monitors and run until interrupted.
    """
    from .voter import Voter

    config = VoterConfig.from_env(config_path)
    configure_logging(config.settings.log_level, config.settings.log_format)

    try:
        config.validate_for_run()
        voter = Voter(config)
    except VoterError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo("Running voter. Press Ctrl+C to stop.")
    try:
        voter.run()
    except KeyboardInterrupt:
        typer.echo("\nStopping voter...")
        voter.stop()
        voter.join()
    except VoterError as e:
        typer.echo(f"Fatal: {e}", err=True)
        raise typer.Exit(code=1)
    finally:
        voter.close()


@app.command()
def status(config_path: Optional[Path] = ConfigOption) -> None:
    """
    Show the stored checkpoints.
    """
    config = VoterConfig.from_env(config_path)
    configure_logging("warning")

    store = CheckpointStore(config.settings.database_url)
    try:
        typer.echo(f"Source height: {store.get_source_height()}")
        typer.echo(f"Relay height:  {store.get_relay_height()}")
    finally:
        store.close()


@app.command("set-height")
def set_height(
    chain: Chain = typer.Argument(..., help="Which checkpoint to overwrite"),
    height: int = typer.Argument(..., min=0, help="Next height to process"),
    config_path: Optional[Path] = ConfigOption,
) -> None:
    """
    Overwrite a stored checkpoint (the voter must be stopped).
    """
    config = VoterConfig.from_env(config_path)
    configure_logging("warning")

    store = CheckpointStore(config.settings.database_url)
    try:
        previous = store.get(chain)
        store.put(chain, height)
    except (VoterError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    finally:
        store.close()
    typer.echo(f"{chain.key}: {previous} -> {height}")


@app.command()
def version() -> None:
    """Show the voter version."""
    from bridge_voter import __version__
    typer.echo(f"bridge-voter v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
