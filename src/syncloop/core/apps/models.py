"""
Application records and apply/reload result models.

Applications are created and refreshed by the external apply and reload
engines. The sync orchestrator only reads them and passes these results
through to sync entry status.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AppReloadOption(str, Enum):
    """Which applications an apply reloads from source."""

    NONE = "none"
    UPDATED = "updated"
    MATCHED = "matched"


class AppPathDomain(BaseModel):
    """
    Identifies an application by domain and path.

    The string form is ``domain:path``, or just ``path`` without a domain.

    Example:
        >>> AppPathDomain.parse("example.com:/web")
        AppPathDomain(path='/web', domain='example.com')
        >>> str(AppPathDomain(path="/web"))
        '/web'
    """

    model_config = ConfigDict(frozen=True)

    path: str
    domain: str = ""

    def __str__(self) -> str:
        if self.domain:
            return f"{self.domain}:{self.path}"
        return self.path

    @classmethod
    def parse(cls, value: str) -> AppPathDomain:
        """Parse the ``domain:path`` string form."""
        if ":" in value and not value.startswith("/"):
            domain, path = value.split(":", 1)
            return cls(path=path, domain=domain)
        return cls(path=value)


class AppEntry(BaseModel):
    """
    A deployed application as recorded in the metadata store.

    Only the fields the sync orchestrator needs to drive a reload are kept:
    the application's own source branch and auth profile.
    """

    id: str
    path: str
    domain: str = ""
    source_url: str = ""
    is_dev: bool = False
    user_id: str = ""
    git_branch: str = ""
    git_auth_name: str = ""

    @property
    def path_domain(self) -> AppPathDomain:
        return AppPathDomain(path=self.path, domain=self.domain)


class ApproveResult(BaseModel):
    """Result of auditing an application's loads and permissions."""

    id: str = ""
    app_path_domain: AppPathDomain
    new_loads: list[str] = Field(default_factory=list)
    new_permissions: list[str] = Field(default_factory=list)
    approved_loads: list[str] = Field(default_factory=list)
    approved_permissions: list[str] = Field(default_factory=list)
    needs_approval: bool = False


class ApplyResponse(BaseModel):
    """
    Result of applying a path's application definitions.

    skipped_apply is set when the apply engine detected no change since the
    last applied commit and did nothing. filtered_apps is the application set
    the apply covered; the next run uses it as its "last run apps".
    """

    dry_run: bool = False
    commit_id: str = ""
    skipped_apply: bool = False
    create_results: list[AppPathDomain] = Field(default_factory=list)
    update_results: list[AppPathDomain] = Field(default_factory=list)
    approve_results: list[ApproveResult] = Field(default_factory=list)
    promote_results: list[AppPathDomain] = Field(default_factory=list)
    reload_results: list[AppPathDomain] = Field(default_factory=list)
    skipped_results: list[AppPathDomain] = Field(default_factory=list)
    filtered_apps: list[AppPathDomain] = Field(default_factory=list)


class ReloadResult(BaseModel):
    """Result of reloading one application from its source."""

    dry_run: bool = False
    reload_results: list[AppPathDomain] = Field(default_factory=list)
    approve_result: ApproveResult | None = None
    promote_results: list[AppPathDomain] = Field(default_factory=list)
    skipped_results: list[AppPathDomain] = Field(default_factory=list)
