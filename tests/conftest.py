"""
Pytest configuration and shared fixtures.

Provides an isolated environment, local git repositories served over
file://, a metadata store on a temporary database, and fake apply/reload
engines for the sync orchestrator.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

import pytest
from git import Actor, Repo

from syncloop.core.apps.engines import ReloadError
from syncloop.core.apps.models import AppEntry, AppPathDomain, ApplyResponse, ReloadResult
from syncloop.core.config import clear_cache
from syncloop.core.config.models import ServerConfig, SyncLoopConfig, SystemConfig
from syncloop.core.gitauth import GitAuthResolver
from syncloop.core.repo_cache import RepoCache
from syncloop.core.repo_cache.gate import reset_shared_gate
from syncloop.core.store import MetadataStore
from syncloop.core.sync import SyncService

AUTHOR = Actor("Test User", "test@example.com")

# ==============================================================================
# Environment Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Point every config/home lookup at the test's temporary directory."""
    for name in list(os.environ):
        if name.startswith("SYNCLOOP_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("SYNCLOOP_HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    clear_cache()
    reset_shared_gate()
    yield
    clear_cache()
    reset_shared_gate()


# ==============================================================================
# Git Fixtures
# ==============================================================================


def _commit_file(repo: Repo, name: str, content: str, message: str) -> str:
    """Write a file, commit it, and return the new commit hash."""
    path = Path(repo.working_dir) / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    repo.index.add([name])
    commit = repo.index.commit(message, author=AUTHOR, committer=AUTHOR)
    return commit.hexsha


@pytest.fixture
def source_repo(tmp_path) -> Repo:
    """
    A local repository named "apps" with a main and a develop branch.

    main has two commits; develop branches off the first one and adds one.
    """
    path = tmp_path / "source" / "apps"
    path.mkdir(parents=True)
    repo = Repo.init(path, initial_branch="main")

    first = _commit_file(repo, "web/app.star", "app = 1\n", "Add web app")
    repo.create_head("develop", first)
    _commit_file(repo, "web/app.star", "app = 2\n", "Update web app")

    repo.heads.develop.checkout()
    _commit_file(repo, "api/app.star", "app = 3\n", "Add api app")
    repo.heads.main.checkout()
    return repo


@pytest.fixture
def source_url(source_repo) -> str:
    """file:// URL of the source repository."""
    return f"file://{source_repo.working_dir}"


@pytest.fixture
def repo_cache(tmp_path):
    """Repository cache with private dev and temp roots."""
    cache = RepoCache(
        GitAuthResolver(),
        dev_root=tmp_path / "dev",
        tmp_root=tmp_path / "tmp",
        git_timeout=60,
    )
    yield cache
    cache.cleanup()


# ==============================================================================
# Store Fixtures
# ==============================================================================


@pytest.fixture
def store(tmp_path) -> MetadataStore:
    """Metadata store on a fresh database."""
    return MetadataStore(tmp_path / "metadata" / "syncloop.db")


def _add_app(store: MetadataStore, path: str, **kwargs: Any) -> AppEntry:
    """Persist an application record and return it."""
    app = AppEntry(id=f"app_{path.strip('/').replace('/', '_')}", path=path, **kwargs)
    with store.transaction() as tx:
        store.create_app(tx, app)
        tx.commit()
    return app


# ==============================================================================
# Sync Fixtures
# ==============================================================================


class FakeClock:
    """Settable clock for the sync service and scheduler."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += timedelta(minutes=minutes)


class FakeApplyEngine:
    """
    Apply engine double.

    Reports skipped_apply when asked to apply the commit that was applied
    last, unless the commit has moved on. Raises self.error (or the error
    registered for a path) instead of applying.
    """

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.commit_id = "abc123"
        self.apps = [AppPathDomain(path="/web")]
        self.error: Exception | None = None
        self.errors_by_path: dict[str, Exception] = {}
        self.always_skip = False
        self.on_apply: Callable[[Any], None] | None = None

    def apply(self, tx, path, **kwargs):
        self.calls.append({"path": path, **kwargs})
        if self.on_apply is not None:
            self.on_apply(tx)
        error = self.errors_by_path.get(path) or self.error
        if error is not None:
            raise error

        last = kwargs["last_run_commit_id"]
        if self.always_skip or (last and last == self.commit_id):
            response = ApplyResponse(
                dry_run=kwargs["dry_run"], commit_id=self.commit_id, skipped_apply=True
            )
            return response, []

        response = ApplyResponse(
            dry_run=kwargs["dry_run"],
            commit_id=self.commit_id,
            update_results=list(self.apps),
            filtered_apps=list(self.apps),
        )
        return response, list(self.apps)


class FakeReloadEngine:
    """Reload engine double; raises ReloadError for paths listed in fail_paths."""

    def __init__(self) -> None:
        self.calls: list[tuple[AppEntry, dict[str, Any]]] = []
        self.fail_paths: set[str] = set()

    def reload_app(self, tx, app, **kwargs):
        self.calls.append((app, kwargs))
        if app.path in self.fail_paths:
            raise ReloadError(f"reload of {app.path} failed", app=app.path_domain)
        return ReloadResult(dry_run=kwargs["dry_run"], reload_results=[app.path_domain])


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def apply_engine() -> FakeApplyEngine:
    return FakeApplyEngine()


@pytest.fixture
def reload_engine() -> FakeReloadEngine:
    return FakeReloadEngine()


@pytest.fixture
def sync_config() -> SyncLoopConfig:
    return SyncLoopConfig(
        system=SystemConfig(max_sync_failure_count=3, default_schedule_mins=15),
        server=ServerConfig(webhook_base_url="https://sync.example.com"),
    )


@pytest.fixture
def sync_service(store, apply_engine, reload_engine, sync_config, clock, tmp_path) -> SyncService:
    """SyncService wired to fakes, with private repository caches."""

    def make_cache() -> RepoCache:
        return RepoCache(GitAuthResolver(), dev_root=tmp_path / "dev", tmp_root=tmp_path / "tmp")

    return SyncService(
        store,
        apply_engine,
        reload_engine,
        config=sync_config,
        repo_cache_factory=make_cache,
        clock=clock,
    )


@pytest.fixture
def commit_file() -> Callable[[Repo, str, str, str], str]:
    """Commit a file to a repository, returning the commit hash."""
    return _commit_file


@pytest.fixture
def add_app(store) -> Callable[..., AppEntry]:
    """Persist an application record in the test store."""

    def _add(path: str, **kwargs: Any) -> AppEntry:
        return _add_app(store, path, **kwargs)

    return _add
