"""
Auth profile resolution.

Maps a named git auth profile from configuration to a GitAuthEntry, falling
back to the configured default profile when no name is given.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from syncloop.core.config.models import GitAuthConfig, SyncLoopConfig
from syncloop.core.gitauth.models import GitAuthEntry

logger = logging.getLogger(__name__)


class AuthResolutionError(Exception):
    """Raised when a git auth profile cannot be turned into credentials."""

    def __init__(self, message: str, profile: str = ""):
        super().__init__(message)
        self.profile = profile


class UnknownAuthProfileError(AuthResolutionError):
    """Raised when a git auth profile name is not configured."""

    def __init__(self, profile: str):
        super().__init__(f"git auth entry {profile!r} not found in config", profile=profile)


class GitAuthResolver:
    """
    Resolves git auth profile names to credentials.

    Example:
        >>> resolver = GitAuthResolver({"deploy": GitAuthConfig(key_file_path="~/.ssh/id")})
        >>> entry = resolver.resolve("deploy")
        >>> entry.using_ssh
        True
    """

    def __init__(
        self,
        profiles: Mapping[str, GitAuthConfig] | None = None,
        default_profile: str = "",
    ) -> None:
        self.profiles = dict(profiles or {})
        self.default_profile = default_profile

    @classmethod
    def from_config(cls, config: SyncLoopConfig) -> GitAuthResolver:
        """Build a resolver from the git_auth and security config sections."""
        return cls(config.git_auth, config.security.default_git_auth)

    def effective_name(self, profile: str | None) -> str:
        """Return the profile name that will actually be used."""
        return profile or self.default_profile

    def resolve(self, profile: str | None) -> GitAuthEntry:
        """
        Resolve a profile name to credentials.

        Args:
            profile: Profile name; empty or None selects the default profile

        Returns:
            GitAuthEntry (anonymous when neither a name nor a default is set)

        Raises:
            UnknownAuthProfileError: If the profile is not configured
            AuthResolutionError: If the profile's SSH key cannot be read
        """
        name = self.effective_name(profile)
        if not name:
            return GitAuthEntry()

        auth_config = self.profiles.get(name)
        if auth_config is None:
            raise UnknownAuthProfileError(name)

        if not auth_config.key_file_path:
            return GitAuthEntry(
                name=name,
                user=auth_config.user_id,
                password=auth_config.password,
            )

        key_file = Path(os.path.expandvars(auth_config.key_file_path)).expanduser()
        if not key_file.is_file() or not os.access(key_file, os.R_OK):
            raise AuthResolutionError(
                f"git auth entry {name!r}: cannot read key file {key_file}",
                profile=name,
            )
        logger.debug(
            "git auth entry %s: ssh key %s%s",
            name,
            key_file,
            " (passphrase protected)" if auth_config.password else "",
        )

        return GitAuthEntry(
            name=name,
            user=auth_config.user_id,
            key_file=key_file,
            password=auth_config.password,
        )
