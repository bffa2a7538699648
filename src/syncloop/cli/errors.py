"""
Standardized error handling and exit codes for the syncloop CLI.

This module provides consistent error messaging with actionable guidance
and standardized exit codes across all CLI commands.
"""

from enum import IntEnum

from rich.console import Console
from rich.markup import escape

console = Console(stderr=True)


class ExitCode(IntEnum):
    """Standard exit codes for syncloop CLI operations."""

    SUCCESS = 0
    """Operation completed successfully."""

    GENERAL_ERROR = 1
    """Generic error, including a sync run that reported an error."""

    USER_ERROR = 2
    """User configuration or input error (actionable by user)."""

    SIGINT = 130
    """Terminated by SIGINT (Ctrl+C) - Unix standard."""


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Print a standardized error message with actionable guidance.

    Arguments are printed literally; square brackets are not read as markup.

    Args:
        problem: Brief description of what went wrong
        reason: Optional explanation of why it happened
        solution: Optional command or action to fix it

    Example:
        >>> print_error(
        ...     "No engine configured",
        ...     reason="Running a sync needs an apply engine",
        ...     solution="set \"engine\" in syncloop.json",
        ... )
    """
    console.print(f"[red]Error:[/red] {escape(problem)}", highlight=False)

    if reason:
        console.print(f"[dim]{escape(reason)}[/dim]", highlight=False)

    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {escape(solution)}", highlight=False)


def print_engine_not_configured_error() -> None:
    """Print error when a command needs the apply/reload engine but none is set."""
    print_error(
        "No sync engine configured",
        reason="Creating and running syncs needs an apply/reload engine",
        solution='set "engine": "module:factory" in syncloop.json or SYNCLOOP_ENGINE',
    )


def print_sync_not_found_error(sync_id: str) -> None:
    """Print error when a sync entry does not exist."""
    print_error(
        f"Sync entry not found: {sync_id}",
        reason="The id may be incorrect or the entry may have been deleted",
        solution="syncloop sync list  # to see available entries",
    )
