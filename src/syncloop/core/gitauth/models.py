"""
Git credential models.

A GitAuthEntry is the resolved form of a named auth profile. It knows how to
express itself as environment variables for a git subprocess so credentials
never have to be embedded in clone URLs (and therefore never reach logs).
"""

from __future__ import annotations

import base64
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from syncloop.core.gitauth.askpass import askpass_env


@dataclass(frozen=True)
class GitAuthEntry:
    """
    Resolved git credentials for one auth profile.

    Attributes:
        name: Profile name ("" for anonymous access)
        user: SSH user or HTTP username
        key_file: Private key path for SSH auth (None for HTTP/anonymous)
        password: HTTP password/token, or SSH key passphrase
    """

    name: str = ""
    user: str = ""
    key_file: Path | None = None
    password: str = field(default="", repr=False)

    @property
    def using_ssh(self) -> bool:
        """True when this profile authenticates with an SSH key."""
        return self.key_file is not None

    @property
    def is_anonymous(self) -> bool:
        """True when no credentials are attached."""
        return not self.using_ssh and not self.user and not self.password

    def git_env(self) -> dict[str, str]:
        """
        Build environment variables that apply these credentials to git.

        Interactive prompts are always disabled so a missing or rejected
        credential fails the command instead of blocking on a terminal. An
        SSH key passphrase is handed to ssh through the askpass helper and
        never appears on a command line.

        Returns:
            Environment variable overrides for a git subprocess
        """
        env = {"GIT_TERMINAL_PROMPT": "0"}

        if self.key_file is not None:
            ssh_command = f"ssh -i {shlex.quote(str(self.key_file))} -o IdentitiesOnly=yes "
            if self.password:
                # Passphrase comes from the askpass helper, which BatchMode would disable
                env.update(askpass_env(self.password))
            else:
                ssh_command += "-o BatchMode=yes "
            env["GIT_SSH_COMMAND"] = ssh_command + "-o StrictHostKeyChecking=accept-new"
        elif self.user or self.password:
            token = base64.b64encode(f"{self.user}:{self.password}".encode()).decode()
            env["GIT_CONFIG_COUNT"] = "1"
            env["GIT_CONFIG_KEY_0"] = "http.extraHeader"
            env["GIT_CONFIG_VALUE_0"] = f"Authorization: Basic {token}"

        return env
