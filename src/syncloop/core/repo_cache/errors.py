"""
Exceptions raised by the repository cache.
"""

from __future__ import annotations


class RepoCacheError(Exception):
    """Base exception for repository cache operations."""

    def __init__(self, message: str, repo_url: str = "", stderr: str = ""):
        super().__init__(message)
        self.repo_url = repo_url
        self.stderr = stderr


class InvalidGitUrlError(RepoCacheError):
    """Raised when a source URL does not name a git repository."""

    pass


class RemoteListError(RepoCacheError):
    """Raised when listing remote references fails (network, auth)."""

    pass


class BranchNotFoundError(RepoCacheError):
    """Raised when the requested branch is not present on the remote."""

    def __init__(self, branch: str, repo_url: str = ""):
        super().__init__(f"branch {branch!r} not found", repo_url=repo_url)
        self.branch = branch


class CheckoutError(RepoCacheError):
    """Raised when a clone or checkout fails."""

    def __init__(
        self,
        message: str,
        *,
        branch: str = "",
        commit: str = "",
        repo_url: str = "",
        stderr: str = "",
    ):
        super().__init__(message, repo_url=repo_url, stderr=stderr)
        self.branch = branch
        self.commit = commit


class CloneSlotTimeoutError(CheckoutError):
    """Raised when no clone slot frees up within the configured wait."""

    pass
