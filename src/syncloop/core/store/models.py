"""
Sync entry models.

A SyncEntry is the persisted configuration and status of one
synchronization target. Metadata is operator controlled; Status is rewritten
by every run of the sync orchestrator.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from syncloop.core.apps.models import AppReloadOption, ApplyResponse


class SyncState(str, Enum):
    """
    Coarse health of a sync entry.

    Advisory only: the scheduler gates on failure_count, and a manual run is
    allowed in any state.
    """

    ENABLED = "Enabled"
    FAILING = "Failing"
    DISABLED = "Disabled"


class SyncMetadata(BaseModel):
    """Operator-controlled sync policy."""

    approve: bool = Field(default=False, description="Approve permission changes on apply")
    promote: bool = Field(default=False, description="Promote staged changes to prod")
    reload: AppReloadOption = Field(
        default=AppReloadOption.UPDATED,
        description="Which apps to reload on apply (none, updated, matched)",
    )
    git_branch: str = Field(default="main", description="Branch holding the apply file")
    git_auth: str = Field(default="", description="Git auth profile name")
    clobber: bool = Field(default=False, description="Overwrite changes made outside apply")
    force_reload: bool = Field(default=False, description="Reload even without source changes")
    webhook_secret: str = Field(default="", description="Shared secret for webhook entries")
    schedule_frequency: int = Field(default=0, description="Minutes between scheduled runs")
    webhook_url: str = Field(
        default="",
        exclude=True,
        description="Derived webhook URL, never persisted",
    )


class SyncJobStatus(BaseModel):
    """
    Outcome of the latest run of a sync entry.

    Example:
        >>> status = SyncJobStatus(failure_count=2, state=SyncState.FAILING)
        >>> status.state.value
        'Failing'
    """

    last_execution_time: datetime | None = None
    is_apply: bool = False
    error: str = ""
    commit_id: str = ""
    failure_count: int = 0
    state: SyncState = SyncState.ENABLED
    apply_response: ApplyResponse = Field(default_factory=ApplyResponse)


class SyncEntry(BaseModel):
    """A persisted synchronization target."""

    id: str
    path: str
    is_scheduled: bool
    user_id: str = ""
    metadata: SyncMetadata = Field(default_factory=SyncMetadata)
    status: SyncJobStatus = Field(default_factory=SyncJobStatus)
    create_time: datetime | None = None
