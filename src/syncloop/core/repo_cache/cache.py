"""
Repository cache.

Resolves a (url, branch, commit, auth) key either to the latest commit hash
on a branch, using a remote ref listing that writes nothing to disk, or to a
fully materialized checkout. Both answers are cached for the lifetime of the
instance, which is meant to span one reconciliation tick or one ad-hoc
operation.

Two tiers exist because drift detection only needs a commit hash and should
never pay for a clone.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
from pathlib import Path
from types import TracebackType

from git import GitCommandError, Repo
from git.cmd import Git

from syncloop.core.config.models import SyncLoopConfig
from syncloop.core.gitauth import GitAuthEntry, GitAuthResolver
from syncloop.core.repo_cache.errors import (
    BranchNotFoundError,
    CheckoutError,
    RemoteListError,
    RepoCacheError,
)
from syncloop.core.repo_cache.gate import CloneGate, get_shared_gate
from syncloop.core.repo_cache.models import CacheDir, Checkout, RepoKey
from syncloop.core.repo_cache.urls import parse_git_url, repo_name

logger = logging.getLogger(__name__)


def branch_ref(branch: str) -> str:
    """Canonical reference name for a branch, e.g. refs/heads/main."""
    return f"refs/heads/{branch}"


def unused_repo_path(target_dir: Path, name: str) -> Path:
    """
    Find the first free checkout path for a repository name.

    Tries ``name``, then ``name2``, ``name3``, ... and returns the first
    path that does not exist.
    """
    candidate = target_dir / name
    if not candidate.exists():
        return candidate
    count = 2
    while True:
        candidate = target_dir / f"{name}{count}"
        if not candidate.exists():
            return candidate
        count += 1


class RepoCache:
    """
    Per-tick cache of git commit lookups and checkouts.

    Within one instance a key is listed at most once and cloned at most once.
    Lookups for the same key are serialized through a per-key lock, so an
    instance may be shared between threads; different keys proceed in
    parallel.

    Non-dev checkouts live under a private temporary root that cleanup()
    deletes. Dev checkouts live under a persistent root and are never deleted
    by the cache.

    Example:
        >>> with RepoCache.from_config(config) as cache:
        ...     sha = cache.resolve_latest_commit("github.com/acme/apps", "main")
        ...     checkout = cache.checkout_repo("github.com/acme/apps/web", "main")
        ...     print(checkout.dir, checkout.sub_path, checkout.commit_hash)
    """

    def __init__(
        self,
        auth_resolver: GitAuthResolver,
        *,
        dev_root: Path,
        tmp_root: Path | None = None,
        git_timeout: int | None = None,
        clone_gate: CloneGate | None = None,
    ) -> None:
        """
        Initialize the cache and create its private temporary root.

        Args:
            auth_resolver: Resolves auth profile names to credentials
            dev_root: Root directory for persistent dev checkouts
            tmp_root: Parent for the private temporary root (system default if None)
            git_timeout: Seconds before a git network command is killed (None: no limit)
            clone_gate: Admission gate for clones (None: unbounded)
        """
        self.auth_resolver = auth_resolver
        self.dev_root = dev_root
        self.git_timeout = git_timeout
        self.clone_gate = clone_gate

        if tmp_root is not None:
            tmp_root.mkdir(parents=True, exist_ok=True)
        self._root_dir: Path | None = Path(
            tempfile.mkdtemp(prefix="syncloop_git_", dir=tmp_root)
        )

        self._checkouts: dict[RepoKey, CacheDir] = {}
        self._shas: dict[RepoKey, str] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[RepoKey, threading.Lock] = {}

    @classmethod
    def from_config(cls, config: SyncLoopConfig) -> RepoCache:
        """Build a cache from configuration, sharing the process-wide clone gate."""
        git_config = config.git
        return cls(
            GitAuthResolver.from_config(config),
            dev_root=git_config.get_dev_checkout_root(),
            tmp_root=Path(git_config.tmp_root) if git_config.tmp_root else None,
            git_timeout=git_config.timeout_secs,
            clone_gate=get_shared_gate(
                git_config.max_concurrent_clones, git_config.clone_wait_secs
            ),
        )

    @property
    def root_dir(self) -> Path | None:
        """Private temporary root, or None once cleaned up."""
        return self._root_dir

    def __enter__(self) -> RepoCache:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cleanup()

    def _key_lock(self, key: RepoKey) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def _run_git(
        self,
        args: list[str],
        *,
        auth: GitAuthEntry,
        cwd: Path | None = None,
    ) -> str:
        """
        Run a git command with credentials applied via the environment.

        Raises:
            GitCommandError: If the command fails or is killed on timeout
        """
        cmd = ["git"] + args
        logger.debug("Running git command: %s", " ".join(cmd))
        output = Git(str(cwd) if cwd else None).execute(
            cmd,
            env=auth.git_env(),
            kill_after_timeout=self.git_timeout,
        )
        return str(output)

    def _resolve(self, source_url: str, git_auth: str) -> tuple[GitAuthEntry, str, str, str]:
        auth = self.auth_resolver.resolve(git_auth)
        effective_auth = self.auth_resolver.effective_name(git_auth)
        ssh_user = auth.user if auth.using_ssh else ""
        repo_url, folder = parse_git_url(source_url, auth.using_ssh, ssh_user)
        if not auth.is_anonymous:
            logger.info("Using git auth %s", effective_auth)
        return auth, effective_auth, repo_url, folder

    def resolve_latest_commit(self, source_url: str, branch: str, git_auth: str = "") -> str:
        """
        Get the hash of the latest commit on a remote branch.

        Lists remote references without cloning; nothing is written to disk.
        Answers are cached per (url, branch, auth).

        Args:
            source_url: Repository URL, optionally with a sub-path
            branch: Branch name
            git_auth: Auth profile name ("" for the configured default)

        Returns:
            Commit hash at the branch head

        Raises:
            AuthResolutionError: If the auth profile is unknown or unusable
            InvalidGitUrlError: If the URL cannot be parsed
            RemoteListError: If listing the remote fails
            BranchNotFoundError: If the branch does not exist on the remote
        """
        auth, effective_auth, repo_url, _ = self._resolve(source_url, git_auth)
        key = RepoKey(repo_url, branch, "", effective_auth)

        with self._key_lock(key):
            with self._lock:
                sha = self._shas.get(key)
            if sha is not None:
                logger.debug("Commit cache hit for %s %s", repo_url, branch)
                return sha

            sha = self._list_branch_head(repo_url, branch, auth)
            with self._lock:
                self._shas[key] = sha
            return sha

    def _list_branch_head(self, repo_url: str, branch: str, auth: GitAuthEntry) -> str:
        try:
            output = self._run_git(["ls-remote", "--heads", repo_url], auth=auth)
        except GitCommandError as e:
            raise RemoteListError(
                f"could not list remote refs: {e.stderr.strip() if e.stderr else e}",
                repo_url=repo_url,
                stderr=e.stderr or "",
            ) from e

        want = branch_ref(branch)
        for line in output.splitlines():
            sha, _, ref = line.strip().partition("\t")
            if ref == want:
                return sha

        raise BranchNotFoundError(branch, repo_url=repo_url)

    def checkout_repo(
        self,
        source_url: str,
        branch: str,
        commit: str = "",
        git_auth: str = "",
        is_dev: bool = False,
    ) -> Checkout:
        """
        Clone and check out a repository, reusing an earlier checkout of the same key.

        Without a commit the clone is restricted to the branch, and shallow
        unless is_dev (dev checkouts keep full history so commits can be
        switched later).

        Args:
            source_url: Repository URL, optionally with a sub-path
            branch: Branch name
            commit: Exact commit to check out ("" for the branch head)
            git_auth: Auth profile name ("" for the configured default)
            is_dev: Create a persistent dev checkout instead of a temporary one

        Returns:
            Checkout with the local directory, sub-path, commit message and hash

        Raises:
            AuthResolutionError: If the auth profile is unknown or unusable
            InvalidGitUrlError: If the URL cannot be parsed
            CheckoutError: If the clone or checkout fails
            RepoCacheError: If the cache has already been cleaned up
        """
        auth, effective_auth, repo_url, folder = self._resolve(source_url, git_auth)
        key = RepoKey(repo_url, branch, commit, effective_auth)

        with self._key_lock(key):
            with self._lock:
                cached = self._checkouts.get(key)
            if cached is not None:
                logger.debug("Checkout cache hit for %s %s %s", repo_url, branch, commit)
                return Checkout(cached.dir, folder, cached.commit_message, cached.commit_hash)

            target = self._allocate_dev_dir(repo_url) if is_dev else self._allocate_tmp_dir()
            try:
                cache_dir = self._clone(repo_url, branch, commit, auth, target, is_dev)
            except CheckoutError:
                if is_dev:
                    shutil.rmtree(target, ignore_errors=True)
                raise

            with self._lock:
                self._checkouts[key] = cache_dir
            return Checkout(cache_dir.dir, folder, cache_dir.commit_message, cache_dir.commit_hash)

    def _allocate_tmp_dir(self) -> Path:
        if self._root_dir is None:
            raise RepoCacheError("repo cache has been cleaned up")
        return Path(tempfile.mkdtemp(prefix="repo_", dir=self._root_dir))

    def _allocate_dev_dir(self, repo_url: str) -> Path:
        self.dev_root.mkdir(parents=True, exist_ok=True)
        name = repo_name(repo_url)
        while True:
            target = unused_repo_path(self.dev_root, name)
            try:
                target.mkdir(mode=0o755)
                return target
            except FileExistsError:
                # Taken between the check and mkdir, try again
                continue

    def _clone(
        self,
        repo_url: str,
        branch: str,
        commit: str,
        auth: GitAuthEntry,
        target: Path,
        is_dev: bool,
    ) -> CacheDir:
        clone_args = ["clone", "--quiet"]
        if not commit:
            clone_args.extend(["--branch", branch, "--single-branch"])
            if not is_dev:
                clone_args.extend(["--depth", "1"])
        clone_args.extend(["--", repo_url, str(target)])

        logger.info("Cloning git repo %s to %s", repo_url, target)
        try:
            if self.clone_gate is not None:
                with self.clone_gate.slot(repo_url):
                    self._run_git(clone_args, auth=auth)
            else:
                self._run_git(clone_args, auth=auth)
        except GitCommandError as e:
            raise CheckoutError(
                f"error checking out branch {branch}: {e.stderr.strip() if e.stderr else e}",
                branch=branch,
                commit=commit,
                repo_url=repo_url,
                stderr=e.stderr or "",
            ) from e

        ref = commit or branch
        if commit:
            logger.info("Checking out commit %s", commit)
        try:
            self._run_git(["checkout", "--quiet", ref], auth=auth, cwd=target)
            head = Repo(target).head.commit
        except (GitCommandError, ValueError) as e:
            stderr = getattr(e, "stderr", "") or ""
            raise CheckoutError(
                f"error checking out branch {branch} commit {commit}: {stderr.strip() or e}",
                branch=branch,
                commit=commit,
                repo_url=repo_url,
                stderr=stderr,
            ) from e

        message = head.message
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        return CacheDir(
            dir=str(target),
            commit_message=message,
            commit_hash=head.hexsha,
            is_dev=is_dev,
        )

    def cleanup(self) -> None:
        """
        Delete the private temporary root and forget the checkouts under it.

        Dev checkouts are left on disk. Safe to call more than once.
        """
        with self._lock:
            root, self._root_dir = self._root_dir, None
            self._checkouts = {k: v for k, v in self._checkouts.items() if v.is_dev}
        if root is not None:
            logger.debug("Removing repo cache root %s", root)
            shutil.rmtree(root, ignore_errors=True)
