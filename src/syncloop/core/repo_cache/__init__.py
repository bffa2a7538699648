"""
Repository cache.

Resolves git branch heads and materializes checkouts, caching both for the
lifetime of one cache instance.
"""

from syncloop.core.repo_cache.cache import RepoCache, branch_ref, unused_repo_path
from syncloop.core.repo_cache.errors import (
    BranchNotFoundError,
    CheckoutError,
    CloneSlotTimeoutError,
    InvalidGitUrlError,
    RemoteListError,
    RepoCacheError,
)
from syncloop.core.repo_cache.gate import CloneGate, get_shared_gate
from syncloop.core.repo_cache.models import CacheDir, Checkout, RepoKey
from syncloop.core.repo_cache.urls import parse_git_url, repo_name

__all__ = [
    "BranchNotFoundError",
    "CacheDir",
    "Checkout",
    "CheckoutError",
    "CloneGate",
    "CloneSlotTimeoutError",
    "InvalidGitUrlError",
    "RemoteListError",
    "RepoCache",
    "RepoCacheError",
    "RepoKey",
    "branch_ref",
    "get_shared_gate",
    "parse_git_url",
    "repo_name",
    "unused_repo_path",
]
