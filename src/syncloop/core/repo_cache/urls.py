"""
Git source URL parsing.

A source URL names a repository and optionally a folder inside it, e.g.
``github.com/acme/apps/system/disk_usage`` is the repository
``https://github.com/acme/apps`` with sub-path ``system/disk_usage``.
"""

from __future__ import annotations

from urllib.parse import urlsplit

from syncloop.core.repo_cache.errors import InvalidGitUrlError


def parse_git_url(
    source_url: str, using_ssh: bool = False, ssh_user: str = "git"
) -> tuple[str, str]:
    """
    Split a source URL into a clone URL and a sub-path.

    Accepted forms:
        - ``host/owner/repo[/sub/path]`` (https assumed)
        - ``https://host/owner/repo[/sub/path]``
        - ``git@host:owner/repo[.git][/sub/path]``
        - ``file:///abs/path`` or ``/abs/path`` (used as is, no sub-path)

    Args:
        source_url: URL as supplied by the operator
        using_ssh: Rewrite the clone URL to SSH form (the auth profile is SSH based)
        ssh_user: User placed in SSH clone URLs

    Returns:
        Tuple of (clone URL, sub-path); sub-path is "" for the repository root

    Raises:
        InvalidGitUrlError: If the URL does not contain owner and repository
    """
    url = source_url.strip().rstrip("/")
    if not url:
        raise InvalidGitUrlError("empty git source url", repo_url=source_url)

    if url.startswith("file://") or url.startswith("/"):
        return url, ""

    scheme_ssh = url.startswith("git@")
    if scheme_ssh:
        host, sep, path = url[len("git@") :].partition(":")
        if not sep:
            raise InvalidGitUrlError(f"invalid ssh git url {source_url!r}", repo_url=source_url)
        scheme = "ssh"
    else:
        if "://" not in url:
            url = "https://" + url
        parsed = urlsplit(url)
        scheme, host, path = parsed.scheme, parsed.netloc, parsed.path

    parts = [p for p in path.split("/") if p]
    if not host or len(parts) < 2:
        raise InvalidGitUrlError(
            f"invalid git url {source_url!r}, expected host/owner/repo",
            repo_url=source_url,
        )

    owner, name = parts[0], parts[1]
    folder = "/".join(parts[2:])

    if scheme_ssh or using_ssh:
        host = host.rsplit("@", 1)[-1]
        if not name.endswith(".git"):
            name += ".git"
        return f"{ssh_user or 'git'}@{host}:{owner}/{name}", folder

    return f"{scheme}://{host}/{owner}/{name}", folder


def repo_name(repo_url: str) -> str:
    """
    Get the bare repository name from a clone URL.

    Example:
        >>> repo_name("git@github.com:acme/apps.git")
        'apps'
    """
    tail = repo_url.rstrip("/").replace(":", "/").rsplit("/", 1)[-1]
    if tail.endswith(".git"):
        tail = tail[: -len(".git")]
    return tail or "repo"
