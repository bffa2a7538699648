"""
Contracts for the external collaborators the sync orchestrator drives.

The apply engine reconciles a path's full application set against its
definitions, the reload engine refreshes a single application from its own
source, and the transaction completer commits a transaction plus any
post-commit work. syncloop ships only a plain committing completer; apply and
reload engines are supplied by the deployment platform.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from syncloop.core.apps.models import (
    AppEntry,
    AppPathDomain,
    AppReloadOption,
    ApplyResponse,
    ReloadResult,
)

if TYPE_CHECKING:
    from syncloop.core.repo_cache import RepoCache
    from syncloop.core.store import Transaction

logger = logging.getLogger(__name__)


class ApplyError(Exception):
    """Raised by an apply engine when an apply fails."""

    pass


class ReloadError(Exception):
    """Raised by a reload engine when reloading an application fails."""

    def __init__(self, message: str, app: AppPathDomain | None = None):
        super().__init__(message)
        self.app = app


@runtime_checkable
class ApplyEngine(Protocol):
    """Reconciles the applications defined under a path."""

    def apply(
        self,
        tx: Transaction,
        path: str,
        *,
        scope: str,
        approve: bool,
        dry_run: bool,
        promote: bool,
        reload: AppReloadOption,
        git_branch: str,
        git_commit: str,
        git_auth: str,
        clobber: bool,
        force_reload: bool,
        last_run_commit_id: str,
        repo_cache: RepoCache,
        is_webhook: bool,
    ) -> tuple[ApplyResponse, list[AppPathDomain]]:
        """
        Apply the definitions at path.

        Must return an ApplyResponse with skipped_apply=True when the
        definitions are unchanged at last_run_commit_id; otherwise performs
        the update and reports the new commit id. The second element is the
        list of applications whose state changed.
        """
        ...


@runtime_checkable
class ReloadEngine(Protocol):
    """Refreshes one application from its own source."""

    def reload_app(
        self,
        tx: Transaction,
        app: AppEntry,
        *,
        approve: bool,
        dry_run: bool,
        promote: bool,
        git_branch: str,
        git_commit: str,
        git_auth: str,
        repo_cache: RepoCache,
        force_reload: bool,
    ) -> ReloadResult:
        ...


@runtime_checkable
class TransactionCompleter(Protocol):
    """Commits a transaction and performs post-commit work."""

    def complete_transaction(
        self,
        tx: Transaction,
        updated_apps: list[AppPathDomain],
        dry_run: bool,
        reason: str,
    ) -> None:
        ...


class CommittingCompleter:
    """
    Completer that commits unless dry_run and logs the affected applications.
    """

    def complete_transaction(
        self,
        tx: Transaction,
        updated_apps: list[AppPathDomain],
        dry_run: bool,
        reason: str,
    ) -> None:
        if dry_run:
            logger.info("Dry run (%s), not committing %d app updates", reason, len(updated_apps))
            return
        tx.commit()
        if updated_apps:
            logger.info(
                "Committed %s, updated apps: %s",
                reason,
                ", ".join(str(app) for app in updated_apps),
            )
