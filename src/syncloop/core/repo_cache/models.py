"""
Data models for the repository cache.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple


@dataclass(frozen=True)
class RepoKey:
    """
    Identifies a cache entry.

    Two keys are equal iff all four fields match exactly. An empty commit
    means "track the branch head".

    Attributes:
        url: Clone URL after auth-aware normalization
        branch: Branch name
        commit: Requested commit hash, or "" for the branch head
        auth: Effective auth profile name
    """

    url: str
    branch: str
    commit: str = ""
    auth: str = ""


@dataclass(frozen=True)
class CacheDir:
    """
    A materialized checkout owned by a repository cache.

    Attributes:
        dir: Local working directory
        commit_message: Message of the checked out commit
        commit_hash: Hash of the checked out commit
        is_dev: Whether this is a persistent dev checkout
    """

    dir: str
    commit_message: str
    commit_hash: str
    is_dev: bool = False


class Checkout(NamedTuple):
    """Result of a checkout: the directory plus the sub-path inside it."""

    dir: str
    sub_path: str
    commit_message: str
    commit_hash: str
