"""
Metadata store: sync entries, applications and transactions.
"""

from syncloop.core.store.connection import (
    EntryNotFoundError,
    StoreError,
    Transaction,
    TransactionError,
)
from syncloop.core.store.models import SyncEntry, SyncJobStatus, SyncMetadata, SyncState
from syncloop.core.store.store import MetadataStore

__all__ = [
    "EntryNotFoundError",
    "MetadataStore",
    "StoreError",
    "SyncEntry",
    "SyncJobStatus",
    "SyncMetadata",
    "SyncState",
    "Transaction",
    "TransactionError",
]
