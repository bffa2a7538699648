"""
Sync orchestrator.

Runs sync entries: each run applies the entry's path through the apply
engine, optionally re-examines the applications of the previous run when the
apply was skipped, and records the outcome in the entry status. Failures are
counted; an entry whose failure count reaches the configured maximum is
marked Disabled and is no longer picked up by the scheduler (a manual run is
still allowed).

Transactions:
- A run either uses the caller's transaction (the caller commits) or opens
  its own and completes it through the transaction completer on success.
- A failed run rolls back the transaction in use, even a caller's, so that
  partial apply/reload work is discarded, then stores the failure status in
  a fresh transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from syncloop.core.apps.engines import (
    ApplyEngine,
    CommittingCompleter,
    ReloadEngine,
    TransactionCompleter,
)
from syncloop.core.apps.models import (
    AppEntry,
    AppPathDomain,
    AppReloadOption,
    ApplyResponse,
    ApproveResult,
)
from syncloop.core.config.models import SyncLoopConfig
from syncloop.core.repo_cache import RepoCache
from syncloop.core.store import (
    EntryNotFoundError,
    MetadataStore,
    SyncEntry,
    SyncJobStatus,
    SyncMetadata,
    SyncState,
    Transaction,
)
from syncloop.core.sync.ids import generate_sync_id, generate_webhook_secret
from syncloop.core.sync.models import (
    SyncCreateResponse,
    SyncDeleteResponse,
    SyncListResponse,
)

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/_syncloop/webhook/"


class SyncError(Exception):
    """Base exception for sync orchestration."""

    pass


class SyncJobError(SyncError):
    """Raised when a create or manual run reports an error in its status."""

    def __init__(self, message: str, status: SyncJobStatus | None = None):
        super().__init__(message)
        self.status = status


class _AppMissing(Exception):
    """An application from the previous run no longer exists."""

    def __init__(self, app: AppPathDomain):
        super().__init__(str(app))
        self.app = app


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncService:
    """
    Creates, runs, lists and deletes sync entries.

    Example:
        >>> service = SyncService(store, engine, engine, config=config)
        >>> created = service.create_sync_entry("github.com/acme/apps", scheduled=True)
        >>> status = service.run_sync(created.id)
        >>> status.failure_count
        0
    """

    def __init__(
        self,
        store: MetadataStore,
        apply_engine: ApplyEngine | None,
        reload_engine: ReloadEngine | None,
        *,
        config: SyncLoopConfig | None = None,
        completer: TransactionCompleter | None = None,
        repo_cache_factory: Callable[[], RepoCache] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """
        Initialize the service.

        Args:
            store: Metadata store holding sync entries and applications
            apply_engine: Applies a path's application definitions (None:
                entries can be listed and deleted but not run)
            reload_engine: Reloads a single application from its source
            config: Configuration (defaults when None)
            completer: Commits transactions (CommittingCompleter when None)
            repo_cache_factory: Builds a repository cache for runs that are
                not handed one (RepoCache.from_config when None)
            clock: Source of the current time
        """
        self.store = store
        self.apply_engine = apply_engine
        self.reload_engine = reload_engine
        self.config = config or SyncLoopConfig()
        self.completer = completer or CommittingCompleter()
        self._repo_cache_factory = repo_cache_factory
        self.clock = clock

    @property
    def max_failure_count(self) -> int:
        return self.config.system.max_sync_failure_count

    def new_repo_cache(self) -> RepoCache:
        """Create a repository cache; the caller owns its cleanup."""
        if self._repo_cache_factory is not None:
            return self._repo_cache_factory()
        return RepoCache.from_config(self.config)

    def webhook_url(self, entry: SyncEntry) -> str:
        """Derive the externally visible webhook URL, "" for scheduled entries or without a base URL."""
        base = self.config.server.webhook_base_url
        if entry.is_scheduled or not base:
            return ""
        return base.rstrip("/") + WEBHOOK_PATH + entry.id

    # ------------------------------------------------------------------
    # Operator operations
    # ------------------------------------------------------------------

    def create_sync_entry(
        self,
        path: str,
        scheduled: bool,
        dry_run: bool = False,
        metadata: SyncMetadata | None = None,
        user_id: str = "",
    ) -> SyncCreateResponse:
        """
        Create a sync entry and run it once.

        The entry is only kept when its first run succeeds; on failure the
        whole creation is discarded.

        Args:
            path: Apply file source path
            scheduled: Run on a schedule (True) or on webhook calls (False)
            dry_run: Run without committing anything
            metadata: Sync policy (defaults when None)
            user_id: Owning user

        Returns:
            SyncCreateResponse with the id, webhook details and first run status

        Raises:
            SyncJobError: If the first run reports an error
            TransactionError: On metadata store failures
        """
        metadata = (metadata or SyncMetadata()).model_copy()
        if not scheduled:
            metadata.webhook_secret = generate_webhook_secret()
        elif metadata.schedule_frequency <= 0:
            metadata.schedule_frequency = self.config.system.default_schedule_mins

        entry = SyncEntry(
            id=generate_sync_id(),
            path=path,
            is_scheduled=scheduled,
            user_id=user_id,
            metadata=metadata,
            create_time=self.clock(),
        )

        with self.store.transaction() as tx:
            self.store.create_sync(tx, entry)
            status, updated_apps = self.run_sync_job(
                entry, dry_run=dry_run, check_commit_hash=True, tx=tx
            )
            if status.error:
                raise SyncJobError(status.error, status)

            response = SyncCreateResponse(
                id=entry.id,
                dry_run=dry_run,
                webhook_url=self.webhook_url(entry),
                webhook_secret=entry.metadata.webhook_secret,
                schedule_frequency=entry.metadata.schedule_frequency,
                sync_job_status=status,
            )
            self.completer.complete_transaction(tx, updated_apps, dry_run, "create_sync")

        logger.info("Created sync entry %s for %s", entry.id, path)
        return response

    def run_sync(self, sync_id: str, dry_run: bool = False) -> SyncJobStatus:
        """
        Run an existing sync entry now, whatever its state.

        Raises:
            EntryNotFoundError: If the entry does not exist
            SyncJobError: If the run reports an error (the failure status is
                still recorded on the entry)
        """
        with self.store.transaction() as tx:
            entry = self.store.get_sync_entry(tx, sync_id)
            status, updated_apps = self.run_sync_job(
                entry, dry_run=dry_run, check_commit_hash=True, tx=tx
            )
            if status.error:
                raise SyncJobError(status.error, status)
            self.completer.complete_transaction(tx, updated_apps, dry_run, "sync_run")
        return status

    def delete_sync_entry(self, sync_id: str, dry_run: bool = False) -> SyncDeleteResponse:
        """
        Delete a sync entry; with dry_run nothing is committed.

        Raises:
            EntryNotFoundError: If the entry does not exist
        """
        with self.store.transaction() as tx:
            self.store.delete_sync(tx, sync_id)
            if not dry_run:
                tx.commit()
                logger.info("Deleted sync entry %s", sync_id)
        return SyncDeleteResponse(id=sync_id, dry_run=dry_run)

    def get_sync_entry(self, sync_id: str) -> SyncEntry:
        """Load one entry with its webhook URL filled in."""
        with self.store.transaction() as tx:
            entry = self.store.get_sync_entry(tx, sync_id)
        entry.metadata.webhook_url = self.webhook_url(entry)
        return entry

    def list_sync_entries(self) -> SyncListResponse:
        """List all entries with their webhook URLs filled in."""
        with self.store.transaction() as tx:
            entries = self.store.get_sync_entries(tx)
        for entry in entries:
            entry.metadata.webhook_url = self.webhook_url(entry)
        return SyncListResponse(entries=entries)

    # ------------------------------------------------------------------
    # Sync job
    # ------------------------------------------------------------------

    def run_sync_job(
        self,
        entry: SyncEntry,
        *,
        dry_run: bool,
        check_commit_hash: bool,
        repo_cache: RepoCache | None = None,
        tx: Transaction | None = None,
    ) -> tuple[SyncJobStatus, list[AppPathDomain]]:
        """
        Run one sync of an entry and record its status.

        Args:
            entry: Entry to run
            dry_run: Apply without committing
            check_commit_hash: Pass the last applied commit to the apply
                engine so an unchanged source can be skipped
            repo_cache: Shared cache (a private one is created and cleaned up when None)
            tx: Caller transaction; the caller completes it on success

        Returns:
            Tuple of (status, updated apps); updated apps is empty on failure

        Raises:
            SyncError: If the full re-run still finds applications missing
            TransactionError: On metadata store failures
        """
        if self.apply_engine is None or self.reload_engine is None:
            raise SyncError("no apply/reload engine configured")

        own_tx = tx is None
        work_tx = self.store.begin_transaction() if tx is None else tx
        own_cache = repo_cache is None
        cache = self.new_repo_cache() if repo_cache is None else repo_cache

        logger.debug("Running sync job %s", entry.id)
        try:
            try:
                status, updated_apps = self._run_phase(
                    entry, work_tx, cache, dry_run, check_commit_hash
                )
            except _AppMissing as missing:
                if not check_commit_hash:
                    raise SyncError(
                        f"sync rerun with no commit hash, app {missing.app} still missing"
                    ) from missing
                logger.info(
                    "App %s from last run of sync job %s is missing, running full apply",
                    missing.app,
                    entry.id,
                )
                try:
                    status, updated_apps = self._run_phase(
                        entry, work_tx, cache, dry_run, check_commit_hash=False
                    )
                except _AppMissing as still_missing:
                    raise SyncError(
                        f"sync rerun with no commit hash, app {still_missing.app} still missing"
                    ) from still_missing

            if status.error:
                # Discard partial apply/reload work, keep the status bookkeeping
                work_tx.rollback()
                updated_apps = []
                with self.store.transaction() as status_tx:
                    self.store.update_sync_status(status_tx, entry.id, status)
                    if not dry_run:
                        status_tx.commit()
                return status, updated_apps

            self.store.update_sync_status(work_tx, entry.id, status)
            if own_tx:
                self.completer.complete_transaction(work_tx, updated_apps, dry_run, "sync")
            return status, updated_apps
        finally:
            if own_cache:
                cache.cleanup()
            if own_tx:
                work_tx.rollback()

    def _record_failure(self, entry: SyncEntry, status: SyncJobStatus, error: Exception) -> None:
        status.error = str(error) or type(error).__name__
        status.failure_count = min(entry.status.failure_count + 1, self.max_failure_count)
        if status.failure_count >= self.max_failure_count:
            status.state = SyncState.DISABLED
        else:
            status.state = SyncState.FAILING

    def _run_phase(
        self,
        entry: SyncEntry,
        tx: Transaction,
        repo_cache: RepoCache,
        dry_run: bool,
        check_commit_hash: bool,
    ) -> tuple[SyncJobStatus, list[AppPathDomain]]:
        """
        Apply the entry and, when the apply was skipped under the matched
        reload policy, reload the previous run's applications one by one.

        Raises:
            _AppMissing: If an application from the previous run is gone
        """
        metadata = entry.metadata
        last_run_apps = list(entry.status.apply_response.filtered_apps)
        last_run_commit_id = entry.status.commit_id if check_commit_hash else ""

        status = SyncJobStatus(
            last_execution_time=self.clock(),
            is_apply=True,
            state=SyncState.ENABLED,
        )

        updated_apps: list[AppPathDomain] = []
        try:
            apply_response, updated_apps = self.apply_engine.apply(
                tx,
                entry.path,
                scope="all",
                approve=metadata.approve,
                dry_run=dry_run,
                promote=metadata.promote,
                reload=metadata.reload,
                git_branch=metadata.git_branch,
                git_commit="",
                git_auth=metadata.git_auth,
                clobber=metadata.clobber,
                force_reload=metadata.force_reload,
                last_run_commit_id=last_run_commit_id,
                repo_cache=repo_cache,
                is_webhook=False,
            )
        except Exception as e:
            logger.error("Error applying sync job %s: %s", entry.id, e)
            self._record_failure(entry, status, e)
            status.apply_response = ApplyResponse(dry_run=dry_run, filtered_apps=last_run_apps)
            return status, []

        status.commit_id = apply_response.commit_id
        status.failure_count = 0
        status.apply_response = apply_response

        if apply_response.skipped_apply and metadata.reload == AppReloadOption.MATCHED:
            if not apply_response.filtered_apps:
                apply_response.filtered_apps = last_run_apps
            self._reload_last_run_apps(entry, tx, repo_cache, dry_run, last_run_apps, status)

        return status, list(updated_apps)

    def _reload_last_run_apps(
        self,
        entry: SyncEntry,
        tx: Transaction,
        repo_cache: RepoCache,
        dry_run: bool,
        last_run_apps: list[AppPathDomain],
        status: SyncJobStatus,
    ) -> None:
        # The apply file did not change, but an app's own source may have
        apps: list[AppEntry] = []
        for app_path in last_run_apps:
            try:
                apps.append(self.store.get_app(tx, app_path))
            except EntryNotFoundError as e:
                logger.warning("App %s of sync job %s not found", app_path, entry.id)
                raise _AppMissing(app_path) from e

        reload_results: list[AppPathDomain] = []
        approve_results: list[ApproveResult] = []
        promote_results: list[AppPathDomain] = []
        for app in apps:
            try:
                result = self.reload_engine.reload_app(
                    tx,
                    app,
                    approve=entry.metadata.approve,
                    dry_run=dry_run,
                    promote=entry.metadata.promote,
                    git_branch=app.git_branch,
                    git_commit="",
                    git_auth=app.git_auth_name,
                    repo_cache=repo_cache,
                    force_reload=entry.metadata.force_reload,
                )
            except Exception as e:
                logger.error(
                    "Error reloading app %s sync job %s: %s", app.path_domain, entry.id, e
                )
                self._record_failure(entry, status, e)
                return

            reload_results.extend(result.reload_results)
            if result.approve_result is not None:
                approve_results.append(result.approve_result)
            promote_results.extend(result.promote_results)

        response = status.apply_response
        response.reload_results = reload_results
        response.approve_results = approve_results
        response.promote_results = promote_results
