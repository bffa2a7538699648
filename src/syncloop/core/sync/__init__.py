"""
Sync orchestration: sync entry lifecycle, sync jobs and the scheduler loop.
"""

from syncloop.core.sync.engine import EngineLoadError, build_sync_service, load_engine
from syncloop.core.sync.ids import (
    SYNC_ID_PREFIX,
    WEBHOOK_TOKEN_PREFIX,
    generate_sync_id,
    generate_webhook_secret,
)
from syncloop.core.sync.models import SyncCreateResponse, SyncDeleteResponse, SyncListResponse
from syncloop.core.sync.scheduler import SyncScheduler
from syncloop.core.sync.service import SyncError, SyncJobError, SyncService

__all__ = [
    "SYNC_ID_PREFIX",
    "WEBHOOK_TOKEN_PREFIX",
    "EngineLoadError",
    "SyncCreateResponse",
    "SyncDeleteResponse",
    "SyncError",
    "SyncJobError",
    "SyncListResponse",
    "SyncScheduler",
    "SyncService",
    "build_sync_service",
    "generate_sync_id",
    "generate_webhook_secret",
    "load_engine",
]
