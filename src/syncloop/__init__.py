"""
syncloop - Git-driven sync loop

Keeps deployed applications in step with the git repositories that define
them, on a schedule or on demand.
"""

__version__ = "0.1.0"

# Re-export core models for convenience
from syncloop.core.config.models import SyncLoopConfig
from syncloop.core.store.models import SyncEntry, SyncJobStatus, SyncMetadata, SyncState

__all__ = [
    "SyncEntry",
    "SyncJobStatus",
    "SyncLoopConfig",
    "SyncMetadata",
    "SyncState",
    "__version__",
]
