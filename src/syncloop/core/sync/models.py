"""
Response models returned by the sync service.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from syncloop.core.store.models import SyncEntry, SyncJobStatus


class SyncCreateResponse(BaseModel):
    """Result of creating a sync entry, including its first run."""

    id: str
    dry_run: bool = False
    webhook_url: str = ""
    webhook_secret: str = ""
    schedule_frequency: int = 0
    sync_job_status: SyncJobStatus = Field(default_factory=SyncJobStatus)


class SyncDeleteResponse(BaseModel):
    """Result of deleting a sync entry."""

    id: str
    dry_run: bool = False


class SyncListResponse(BaseModel):
    """All sync entries, with derived webhook URLs filled in."""

    entries: list[SyncEntry] = Field(default_factory=list)
