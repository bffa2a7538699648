"""
Application models and the apply/reload collaborator contracts.
"""

from syncloop.core.apps.engines import (
    ApplyEngine,
    ApplyError,
    CommittingCompleter,
    ReloadEngine,
    ReloadError,
    TransactionCompleter,
)
from syncloop.core.apps.models import (
    AppEntry,
    AppPathDomain,
    AppReloadOption,
    ApplyResponse,
    ApproveResult,
    ReloadResult,
)

__all__ = [
    "AppEntry",
    "AppPathDomain",
    "AppReloadOption",
    "ApplyEngine",
    "ApplyError",
    "ApplyResponse",
    "ApproveResult",
    "CommittingCompleter",
    "ReloadEngine",
    "ReloadError",
    "ReloadResult",
    "TransactionCompleter",
]
