"""
syncloop CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import logging
import sys

import typer
from rich.console import Console

from syncloop import __version__
from syncloop.cli import repo, sync
from syncloop.core.config.env import load_layered_env

# Create the main Typer app
app = typer.Typer(
    name="syncloop",
    help="Keep deployed applications in sync with their git sources",
    no_args_is_help=True,
    add_completion=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


def configure_logging(debug: bool) -> None:
    """
    Configure logging for all commands.

    Args:
        debug: If True, enable DEBUG level logging
    """
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"syncloop version {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show syncloop version and exit",
    ),
) -> None:
    """
    syncloop - git-driven sync loop.

    Sync entries point at a path holding application definitions in git.
    Scheduled entries are applied periodically by `syncloop sync serve`;
    webhook entries are applied when their webhook is called.

    Common Workflows:
        syncloop sync create github.com/acme/apps --scheduled --frequency 10
        syncloop sync list
        syncloop sync run cl_syn_...
        syncloop sync serve

        syncloop repo sha github.com/acme/apps --branch main
        syncloop repo checkout github.com/acme/apps/web --dev
    """
    configure_logging(debug)
    # Precedence: OS env > project .env > user .env > SYNCLOOP_HOME .env
    load_layered_env()
    ctx.obj = {"debug": debug}


app.add_typer(sync.app, name="sync")
app.add_typer(repo.app, name="repo")


def cli_main() -> None:
    """Main CLI entry point."""
    app()


__all__ = ["app", "cli_main"]
