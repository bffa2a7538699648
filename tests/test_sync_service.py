"""
Tests for the sync orchestrator.

Tests cover:
- Creating entries (scheduled and webhook) and failed creation
- Manual runs: idempotence, failure counting, Disabled entries
- Skip optimization: reloads, missing-app fallback, fail-fast reloads
- Failure rollback with status persistence
- Delete and list
"""

from __future__ import annotations

import base64
from unittest.mock import MagicMock

import pytest

from syncloop.core.apps.engines import ApplyError
from syncloop.core.apps.models import AppEntry, AppPathDomain, AppReloadOption
from syncloop.core.repo_cache import RepoCacheError
from syncloop.core.store import EntryNotFoundError, SyncMetadata, SyncState
from syncloop.core.sync import SyncError, SyncJobError, SyncService


def _get_entry(store, sync_id):
    with store.transaction() as tx:
        return store.get_sync_entry(tx, sync_id)


def _list_entries(store):
    with store.transaction() as tx:
        return store.get_sync_entries(tx)


@pytest.fixture
def matched_entry(sync_service, apply_engine):
    """A scheduled entry with reload=matched whose first run touched /a and /b."""
    apply_engine.apps = [AppPathDomain(path="/a"), AppPathDomain(path="/b")]
    return sync_service.create_sync_entry(
        "github.com/acme/apps",
        scheduled=True,
        metadata=SyncMetadata(reload=AppReloadOption.MATCHED),
    )


class TestCreateSyncEntry:
    """Test entry creation."""

    def test_scheduled_entry(self, sync_service, store, apply_engine):
        result = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)

        assert result.id.startswith("cl_syn_")
        assert result.schedule_frequency == 15
        assert result.webhook_secret == ""
        assert result.webhook_url == ""
        assert result.sync_job_status.commit_id == "abc123"
        assert result.sync_job_status.state == SyncState.ENABLED

        entry = _get_entry(store, result.id)
        assert entry.is_scheduled
        assert entry.metadata.schedule_frequency == 15
        assert entry.status.commit_id == "abc123"
        assert entry.status.is_apply
        assert entry.status.apply_response.filtered_apps == [AppPathDomain(path="/web")]

    def test_apply_arguments(self, sync_service, apply_engine):
        metadata = SyncMetadata(
            approve=True,
            promote=True,
            git_branch="release",
            git_auth="deploy",
            clobber=True,
            force_reload=True,
        )
        sync_service.create_sync_entry("github.com/acme/apps", scheduled=True, metadata=metadata)

        call = apply_engine.calls[0]
        assert call["path"] == "github.com/acme/apps"
        assert call["scope"] == "all"
        assert call["git_commit"] == ""
        assert call["is_webhook"] is False
        assert call["last_run_commit_id"] == ""
        assert call["git_branch"] == "release"
        assert call["git_auth"] == "deploy"
        assert call["approve"] and call["promote"] and call["clobber"] and call["force_reload"]

    def test_explicit_frequency_kept(self, sync_service):
        result = sync_service.create_sync_entry(
            "github.com/acme/apps", scheduled=True, metadata=SyncMetadata(schedule_frequency=5)
        )
        assert result.schedule_frequency == 5

    def test_caller_metadata_not_mutated(self, sync_service):
        metadata = SyncMetadata()
        sync_service.create_sync_entry("github.com/acme/apps", scheduled=True, metadata=metadata)
        assert metadata.schedule_frequency == 0

    def test_webhook_entry(self, sync_service, store):
        result = sync_service.create_sync_entry("github.com/acme/apps", scheduled=False)

        assert result.webhook_secret.startswith("cl_tkn_")
        base64.b64decode(result.webhook_secret[len("cl_tkn_") :])
        assert result.webhook_url == f"https://sync.example.com/_syncloop/webhook/{result.id}"
        assert result.schedule_frequency == 0
        assert _get_entry(store, result.id).metadata.webhook_secret == result.webhook_secret

    def test_failed_first_run_leaves_no_entry(self, sync_service, store, apply_engine):
        apply_engine.error = ApplyError("bad apply file")

        with pytest.raises(SyncJobError, match="bad apply file") as exc_info:
            sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)

        assert exc_info.value.status.failure_count == 1
        assert _list_entries(store) == []

    def test_dry_run_commits_nothing(self, sync_service, store):
        result = sync_service.create_sync_entry(
            "github.com/acme/apps", scheduled=True, dry_run=True
        )

        assert result.dry_run
        assert _list_entries(store) == []


class TestRunSync:
    """Test manual runs and the failure state machine."""

    def test_second_run_is_skipped(self, sync_service, store):
        """Running twice on an unchanged source skips the apply."""
        created = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)

        sync_service.run_sync(created.id)
        status = sync_service.run_sync(created.id)

        assert status.apply_response.skipped_apply
        assert status.failure_count == 0
        assert _get_entry(store, created.id).status.apply_response.skipped_apply

    def test_new_commit_recorded(self, sync_service, store, apply_engine):
        created = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)
        apply_engine.commit_id = "def456"

        status = sync_service.run_sync(created.id)

        assert not status.apply_response.skipped_apply
        assert status.commit_id == "def456"
        assert apply_engine.calls[-1]["last_run_commit_id"] == "abc123"
        assert _get_entry(store, created.id).status.commit_id == "def456"

    def test_failures_count_up_to_disabled(self, sync_service, store, apply_engine):
        created = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)
        apply_engine.error = ApplyError("boom")

        expected = [(1, SyncState.FAILING), (2, SyncState.FAILING), (3, SyncState.DISABLED)]
        for count, state in expected:
            with pytest.raises(SyncJobError, match="boom"):
                sync_service.run_sync(created.id)
            status = _get_entry(store, created.id).status
            assert status.failure_count == count
            assert status.state == state
            assert status.error == "boom"

    def test_disabled_entry_can_still_run(self, sync_service, store, apply_engine):
        created = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)
        apply_engine.error = ApplyError("boom")
        for _ in range(3):
            with pytest.raises(SyncJobError):
                sync_service.run_sync(created.id)

        calls_before = len(apply_engine.calls)
        with pytest.raises(SyncJobError):
            sync_service.run_sync(created.id)

        assert len(apply_engine.calls) == calls_before + 1
        status = _get_entry(store, created.id).status
        assert status.failure_count == 3
        assert status.state == SyncState.DISABLED

    def test_success_resets_failures(self, sync_service, store, apply_engine):
        created = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)
        apply_engine.error = ApplyError("boom")
        for _ in range(3):
            with pytest.raises(SyncJobError):
                sync_service.run_sync(created.id)

        apply_engine.error = None
        apply_engine.commit_id = "def456"
        status = sync_service.run_sync(created.id)

        assert status.failure_count == 0
        assert status.state == SyncState.ENABLED
        assert status.error == ""
        assert _get_entry(store, created.id).status.state == SyncState.ENABLED

    def test_failure_keeps_last_run_apps(self, sync_service, store, apply_engine):
        created = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)
        apply_engine.error = ApplyError("boom")

        with pytest.raises(SyncJobError):
            sync_service.run_sync(created.id)

        response = _get_entry(store, created.id).status.apply_response
        assert response.filtered_apps == [AppPathDomain(path="/web")]
        assert response.commit_id == ""

    def test_repo_cache_errors_are_run_failures(self, sync_service, store, apply_engine):
        created = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)
        apply_engine.error = RepoCacheError("clone failed")

        with pytest.raises(SyncJobError, match="clone failed"):
            sync_service.run_sync(created.id)
        assert _get_entry(store, created.id).status.failure_count == 1

    def test_failure_rolls_back_partial_work(self, sync_service, store, apply_engine):
        """Writes made by a failing apply are discarded; the status is kept."""
        created = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)

        def write_then_fail(tx):
            store.create_app(tx, AppEntry(id="partial", path="/partial"))

        apply_engine.on_apply = write_then_fail
        apply_engine.error = ApplyError("boom")

        with pytest.raises(SyncJobError):
            sync_service.run_sync(created.id)

        with store.transaction() as tx:
            with pytest.raises(EntryNotFoundError):
                store.get_app(tx, AppPathDomain(path="/partial"))
        assert _get_entry(store, created.id).status.failure_count == 1

    def test_dry_run_failure_not_recorded(self, sync_service, store, apply_engine):
        created = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)
        apply_engine.error = ApplyError("boom")

        with pytest.raises(SyncJobError):
            sync_service.run_sync(created.id, dry_run=True)

        assert _get_entry(store, created.id).status.failure_count == 0

    def test_unknown_entry(self, sync_service):
        with pytest.raises(EntryNotFoundError):
            sync_service.run_sync("cl_syn_missing")


class TestSkipOptimization:
    """Test the matched-reload path taken when the apply was skipped."""

    def test_reloads_last_run_apps(self, sync_service, store, reload_engine, add_app, matched_entry):
        add_app("/a", git_branch="develop", git_auth_name="ci")
        add_app("/b")

        status = sync_service.run_sync(matched_entry.id)

        assert status.apply_response.skipped_apply
        assert [app.path for app, _ in reload_engine.calls] == ["/a", "/b"]
        app, kwargs = reload_engine.calls[0]
        assert kwargs["git_branch"] == "develop"
        assert kwargs["git_auth"] == "ci"
        assert kwargs["git_commit"] == ""
        assert status.apply_response.reload_results == [
            AppPathDomain(path="/a"),
            AppPathDomain(path="/b"),
        ]
        # Skipped apply reports the last run's apps
        assert status.apply_response.filtered_apps == [
            AppPathDomain(path="/a"),
            AppPathDomain(path="/b"),
        ]

    def test_updated_policy_does_not_reload(self, sync_service, reload_engine, add_app):
        created = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)
        add_app("/web")

        status = sync_service.run_sync(created.id)

        assert status.apply_response.skipped_apply
        assert reload_engine.calls == []

    def test_reload_fails_fast(self, sync_service, store, reload_engine, add_app, matched_entry):
        add_app("/a")
        add_app("/b")
        reload_engine.fail_paths = {"/a"}

        with pytest.raises(SyncJobError, match="reload of /a failed"):
            sync_service.run_sync(matched_entry.id)

        assert [app.path for app, _ in reload_engine.calls] == ["/a"]
        status = _get_entry(store, matched_entry.id).status
        assert status.failure_count == 1
        assert status.state == SyncState.FAILING

    def test_missing_app_falls_back_to_full_apply(
        self, sync_service, apply_engine, reload_engine, add_app, matched_entry
    ):
        add_app("/a")

        status = sync_service.run_sync(matched_entry.id)

        commits = [call["last_run_commit_id"] for call in apply_engine.calls]
        assert commits == ["", "abc123", ""]
        assert not status.apply_response.skipped_apply
        assert reload_engine.calls == []

    def test_fallback_still_missing_raises(
        self, sync_service, apply_engine, add_app, matched_entry
    ):
        apply_engine.always_skip = True

        with pytest.raises(SyncError, match="sync rerun with no commit hash"):
            sync_service.run_sync(matched_entry.id)

    def test_missing_app_without_commit_check_raises(self, sync_service, store, matched_entry):
        entry = _get_entry(store, matched_entry.id)
        sync_service.apply_engine.always_skip = True

        with pytest.raises(SyncError, match="sync rerun with no commit hash"):
            sync_service.run_sync_job(entry, dry_run=False, check_commit_hash=False)


class TestRunSyncJob:
    """Test transaction and cache ownership of a single job."""

    def test_owns_and_cleans_private_cache(self, store, apply_engine, reload_engine, sync_config):
        cache = MagicMock()
        service = SyncService(
            store, apply_engine, reload_engine, config=sync_config, repo_cache_factory=lambda: cache
        )
        created = service.create_sync_entry("github.com/acme/apps", scheduled=True)
        cache.cleanup.reset_mock()

        service.run_sync(created.id)

        assert apply_engine.calls[-1]["repo_cache"] is cache
        cache.cleanup.assert_called_once()

    def test_shared_cache_not_cleaned(self, sync_service, store, apply_engine):
        created = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)
        shared = MagicMock()

        sync_service.run_sync_job(
            _get_entry(store, created.id), dry_run=False, check_commit_hash=True, repo_cache=shared
        )

        assert apply_engine.calls[-1]["repo_cache"] is shared
        shared.cleanup.assert_not_called()

    def test_own_transaction_committed(self, sync_service, store, apply_engine, clock):
        created = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)
        apply_engine.commit_id = "def456"
        clock.advance(20)

        status, updated = sync_service.run_sync_job(
            _get_entry(store, created.id), dry_run=False, check_commit_hash=True
        )

        assert updated == [AppPathDomain(path="/web")]
        stored = _get_entry(store, created.id).status
        assert stored.commit_id == "def456"
        assert stored.last_execution_time == clock.now

    def test_failure_clears_updated_apps(self, sync_service, store, apply_engine):
        created = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)
        apply_engine.error = ApplyError("boom")

        status, updated = sync_service.run_sync_job(
            _get_entry(store, created.id), dry_run=False, check_commit_hash=True
        )

        assert status.error == "boom"
        assert updated == []

    def test_requires_engines(self, store, sync_config):
        service = SyncService(store, None, None, config=sync_config)
        with pytest.raises(SyncError, match="no apply/reload engine"):
            service.run_sync_job(MagicMock(), dry_run=False, check_commit_hash=True)


class TestDeleteAndList:
    """Test delete and list."""

    def test_delete(self, sync_service, store):
        created = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)

        result = sync_service.delete_sync_entry(created.id)

        assert result.id == created.id
        assert not result.dry_run
        assert _list_entries(store) == []

    def test_delete_dry_run(self, sync_service, store):
        created = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)

        result = sync_service.delete_sync_entry(created.id, dry_run=True)

        assert result.dry_run
        assert len(_list_entries(store)) == 1

    def test_delete_unknown(self, sync_service):
        with pytest.raises(EntryNotFoundError):
            sync_service.delete_sync_entry("cl_syn_missing")

    def test_list_derives_webhook_urls(self, sync_service):
        scheduled = sync_service.create_sync_entry("github.com/acme/apps", scheduled=True)
        webhook = sync_service.create_sync_entry("github.com/acme/other", scheduled=False)

        entries = {e.id: e for e in sync_service.list_sync_entries().entries}

        assert entries[scheduled.id].metadata.webhook_url == ""
        assert entries[webhook.id].metadata.webhook_url.endswith(f"/_syncloop/webhook/{webhook.id}")

    def test_list_without_base_url(self, store, apply_engine, reload_engine):
        service = SyncService(store, apply_engine, reload_engine, repo_cache_factory=MagicMock)
        service.create_sync_entry("github.com/acme/apps", scheduled=False)

        entries = service.list_sync_entries().entries

        assert entries[0].metadata.webhook_url == ""
