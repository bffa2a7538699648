"""
syncloop CLI - Repository commands.

Resolve branch heads and check out repositories through the repository
cache, using the configured git auth profiles.
"""

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from syncloop.cli.errors import ExitCode, print_error
from syncloop.core.config import load_config
from syncloop.core.gitauth import AuthResolutionError
from syncloop.core.repo_cache import (
    BranchNotFoundError,
    CheckoutError,
    InvalidGitUrlError,
    RepoCache,
    RepoCacheError,
)

console = Console()
app = typer.Typer(
    name="repo",
    help="Inspect and check out git sources",
    no_args_is_help=True,
)


def _get_cache() -> RepoCache:
    try:
        config = load_config()
    except ValidationError as e:
        print_error("Invalid configuration", reason=str(e))
        raise typer.Exit(ExitCode.USER_ERROR)
    return RepoCache.from_config(config)


def _handle_repo_error(e: Exception) -> None:
    """Print a repository error and exit with the matching code."""
    if isinstance(e, AuthResolutionError):
        print_error(
            "Git auth failed",
            reason=str(e),
            solution="check the git_auth section of your config",
        )
        raise typer.Exit(ExitCode.USER_ERROR)
    if isinstance(e, InvalidGitUrlError):
        print_error("Invalid git URL", reason=str(e), solution="use host/owner/repo[/path]")
        raise typer.Exit(ExitCode.USER_ERROR)
    if isinstance(e, BranchNotFoundError):
        print_error(f"Branch not found: {e.branch}", reason=e.repo_url)
        raise typer.Exit(ExitCode.USER_ERROR)
    print_error("Git operation failed", reason=str(e))
    raise typer.Exit(ExitCode.GENERAL_ERROR)


@app.command()
def sha(
    url: str = typer.Argument(..., help="Repository URL, e.g. github.com/acme/apps"),
    branch: str = typer.Option("main", "--branch", "-b", help="Branch name"),
    git_auth: str = typer.Option("", "--git-auth", help="Git auth profile name"),
) -> None:
    """
    Print the latest commit on a remote branch without cloning.

    Examples:
        syncloop repo sha github.com/acme/apps
        syncloop repo sha git@github.com:acme/apps.git --branch release
    """
    with _get_cache() as cache:
        try:
            commit = cache.resolve_latest_commit(url, branch, git_auth)
        except (AuthResolutionError, RepoCacheError) as e:
            _handle_repo_error(e)
            return

    typer.echo(commit)


@app.command()
def checkout(
    url: str = typer.Argument(..., help="Repository URL, optionally with a sub-path"),
    branch: str = typer.Option("main", "--branch", "-b", help="Branch name"),
    commit: str = typer.Option("", "--commit", "-c", help="Exact commit to check out"),
    git_auth: str = typer.Option("", "--git-auth", help="Git auth profile name"),
    dev: bool = typer.Option(
        False,
        "--dev",
        help="Create a persistent dev checkout with full history",
    ),
) -> None:
    """
    Check out a repository.

    Dev checkouts are kept under the dev checkout root; other checkouts are
    temporary and removed when the command exits.

    Examples:
        syncloop repo checkout github.com/acme/apps/web --dev
        syncloop repo checkout github.com/acme/apps --commit 3f2a9c1
    """
    with _get_cache() as cache:
        try:
            result = cache.checkout_repo(url, branch, commit, git_auth, is_dev=dev)
        except (AuthResolutionError, CheckoutError, RepoCacheError) as e:
            _handle_repo_error(e)
            return

        lines = result.commit_message.strip().splitlines()
        console.print(f"[green]✓[/green] Checked out {result.commit_hash}")
        console.print(f"  Message:  {escape(lines[0]) if lines else '-'}")
        if dev:
            console.print(f"  Dir:      {escape(result.dir)}")
        else:
            console.print("  [dim]Temporary checkout, removed on exit[/dim]")
        if result.sub_path:
            console.print(f"  Sub-path: {escape(result.sub_path)}")
