"""
Configuration data models for syncloop.

These models define the structure of ./syncloop.json and
~/.config/syncloop/config.json files, with validation and type safety via
Pydantic.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def get_syncloop_home() -> Path:
    """
    Get the syncloop home directory.

    Returns:
        Path from $SYNCLOOP_HOME, or ~/.syncloop when unset
    """
    if home := os.environ.get("SYNCLOOP_HOME"):
        return Path(home).expanduser()
    return Path.home() / ".syncloop"


class SystemConfig(BaseModel):
    """
    Scheduling and circuit-breaker limits for sync entries.
    """
    default_schedule_mins: int = Field(
        default=15,
        ge=1,
        description="Schedule frequency applied to scheduled entries created without one"
    )
    max_sync_failure_count: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures after which the scheduler stops running an entry"
    )
    sync_interval_secs: int = Field(
        default=60,
        ge=1,
        description="Seconds between scheduler ticks"
    )


class SecurityConfig(BaseModel):
    """Security related defaults."""
    default_git_auth: str = Field(
        default="",
        description="Git auth profile used when an operation names none"
    )


class GitConfig(BaseModel):
    """
    Git transport and checkout settings.

    Controls timeouts, clone admission and where checkouts land on disk.
    """
    timeout_secs: Optional[int] = Field(
        default=600,
        ge=1,
        description="Kill a git network operation after this many seconds (None disables)"
    )
    max_concurrent_clones: int = Field(
        default=4,
        ge=1,
        description="Maximum number of clones running at once across the process"
    )
    clone_wait_secs: float = Field(
        default=120.0,
        ge=0.0,
        description="How long a clone waits for a free slot before failing"
    )
    dev_checkout_root: Optional[str] = Field(
        default=None,
        description="Root for persistent dev checkouts (defaults to $SYNCLOOP_HOME/app_src)"
    )
    tmp_root: Optional[str] = Field(
        default=None,
        description="Parent directory for temporary checkouts (defaults to the system temp dir)"
    )

    def get_dev_checkout_root(self) -> Path:
        """Resolve the dev checkout root, applying the home default."""
        if self.dev_checkout_root:
            return Path(os.path.expandvars(self.dev_checkout_root)).expanduser()
        return get_syncloop_home() / "app_src"


class GitAuthConfig(BaseModel):
    """
    One named git credential profile.

    A profile with a key file authenticates over SSH; otherwise user_id and
    password are sent as HTTP basic auth (password may be a personal access
    token).
    """
    user_id: str = Field(default="git", description="SSH user or HTTP username")
    key_file_path: str = Field(default="", description="Path to a private SSH key")
    password: str = Field(default="", description="HTTP password/token or SSH key passphrase")


class MetadataConfig(BaseModel):
    """Location of the metadata database."""
    db_path: Optional[str] = Field(
        default=None,
        description="SQLite database path (defaults to $SYNCLOOP_HOME/metadata/syncloop.db)"
    )

    def get_db_path(self) -> Path:
        """Resolve the database path, applying the home default."""
        if self.db_path:
            return Path(os.path.expandvars(self.db_path)).expanduser()
        return get_syncloop_home() / "metadata" / "syncloop.db"


class ServerConfig(BaseModel):
    """Externally visible server settings."""
    webhook_base_url: Optional[str] = Field(
        default=None,
        description="Base URL used to derive webhook URLs for webhook-triggered entries"
    )


class SyncLoopConfig(BaseModel):
    """
    Top-level syncloop configuration.

    This is the root configuration model that encompasses all settings.
    It's loaded from defaults, user config, project config, and env vars.

    Example:
        >>> config = SyncLoopConfig(
        ...     system=SystemConfig(max_sync_failure_count=3),
        ...     git_auth={"deploy": GitAuthConfig(key_file_path="~/.ssh/deploy")},
        ... )
        >>> config.system.max_sync_failure_count
        3
    """
    system: SystemConfig = Field(
        default_factory=SystemConfig,
        description="Scheduling and failure limits"
    )
    security: SecurityConfig = Field(
        default_factory=SecurityConfig,
        description="Security defaults"
    )
    git: GitConfig = Field(
        default_factory=GitConfig,
        description="Git transport settings"
    )
    git_auth: dict[str, GitAuthConfig] = Field(
        default_factory=dict,
        description="Named git credential profiles"
    )
    metadata: MetadataConfig = Field(
        default_factory=MetadataConfig,
        description="Metadata store settings"
    )
    server: ServerConfig = Field(
        default_factory=ServerConfig,
        description="Server settings"
    )
    engine: Optional[str] = Field(
        default=None,
        description="Import path (module:attribute) of the apply/reload engine factory"
    )

    model_config = ConfigDict(
        extra="allow",  # Allow extra fields for forward compatibility
        validate_assignment=True,
    )
