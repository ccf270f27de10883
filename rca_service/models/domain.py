"""Domain data models for the pull request root cause analysis service."""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from rca_service.core.config import settings

_ORG_URL_PATTERNS = (
    re.compile(r"(https://dev\.azure\.com/[^/]+)"),
    re.compile(r"(https://[^/]+\.visualstudio\.com)"),
)


def parse_org_url(web_url: str | None) -> Optional[str]:
    """Extract the organisation URL from an Azure DevOps repository web URL."""

    if not web_url:
        return None
    for pattern in _ORG_URL_PATTERNS:
        match = pattern.search(web_url)
        if match:
            return match.group(1)
    return None


class ReportCategory(str, Enum):
    """Root cause categories a generated report may declare."""

    CODE = "Code"
    CONFIGURATION = "Configuration"
    DESIGN = "Design"
    DEPLOYMENT = "Deployment"


class PipelineState(str, Enum):
    """Lifecycle states of a single webhook-triggered pipeline run."""

    RECEIVED = "received"
    DEDUPLICATED = "deduplicated"
    CLASSIFIED = "classified"
    AUTHORIZED = "authorized"
    CONTEXT_GATHERED = "context_gathered"
    REPORTED = "reported"
    DISTRIBUTED = "distributed"
    DONE = "done"
    ABORTED = "aborted"


class AbortReason(str, Enum):
    """Why a pipeline run stopped before producing a report."""

    DUPLICATE = "duplicate"
    WRONG_TARGET_BRANCH = "wrong_target_branch"
    NOT_A_BUG = "not_a_bug"
    SERVICE_DISABLED = "service_disabled"
    REPOSITORY_NOT_REGISTERED = "repository_not_registered"
    INVALID_ORG_URL = "invalid_org_url"
    CREDENTIAL_ERROR = "credential_error"
    INTERNAL_ERROR = "internal_error"


SILENT_ABORTS = frozenset(
    {
        AbortReason.DUPLICATE,
        AbortReason.WRONG_TARGET_BRANCH,
        AbortReason.NOT_A_BUG,
        AbortReason.SERVICE_DISABLED,
    }
)


class Credential(BaseModel):
    """Delegated OAuth token pair for one user."""

    subject_id: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = Field(
        None, description="Instant after which the access token must be refreshed (already includes the margin)."
    )


class RepositoryLink(BaseModel):
    """A repository connected by a user, with its service hook registration."""

    repository_id: str
    owner_user_id: str
    display_name: str
    webhook_id: Optional[str] = Field(None, description="Absent when the remote hook registration failed.")
    org_url: Optional[str] = Field(None, description="Organisation URL needed to deregister the hook.")
    project_id: Optional[str] = None
    web_url: Optional[str] = None


class UserAccount(BaseModel):
    """Account flags the pipeline consults for the owner of a repository."""

    user_id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    is_active: bool = True
    plan_id: str = "free"


class UserSettings(BaseModel):
    """Per-user analysis and notification preferences."""

    ai_model: str = Field(default_factory=lambda: settings.default_ai_model)
    deep_thinking_enabled: bool = False
    send_emails_enabled: bool = True
    auto_detect_developer_enabled: bool = False
    notification_emails: list[str] = Field(default_factory=list)


class PullRequestEvent(BaseModel):
    """A "pull request created" notification, normalised from the webhook payload."""

    repository_id: str
    pull_request_id: int
    title: str = ""
    description: str = ""
    source_branch: str = ""
    target_branch: str = ""
    author_id: Optional[str] = None
    author_email: Optional[str] = None
    author_name: Optional[str] = None
    repository_name: Optional[str] = None
    repository_web_url: Optional[str] = None
    project: Optional[str] = None

    @property
    def dedup_key(self) -> str:
        return f"{self.repository_id}-{self.pull_request_id}"

    @property
    def org_url(self) -> Optional[str]:
        return parse_org_url(self.repository_web_url)

    @property
    def pull_request_url(self) -> str:
        base = (self.repository_web_url or "").rstrip("/")
        return f"{base}/pullrequest/{self.pull_request_id}"


class WorkItemRef(BaseModel):
    """A work item linked to a pull request."""

    id: int
    type: Optional[str] = None
    title: Optional[str] = None
    url: Optional[str] = None


class CommitInfo(BaseModel):
    """One commit as reported by the source control host."""

    commit_id: str
    message: str = ""
    author: Optional[str] = None
    email: Optional[str] = None
    timestamp: Optional[datetime] = None


class AnalysisContext(BaseModel):
    """Everything gathered about a pull request before report generation."""

    diff_summary: str
    commits: list[CommitInfo] = Field(default_factory=list)
    comments: list[str] = Field(default_factory=list)
    previous_commits: list[CommitInfo] = Field(default_factory=list)


class Report(BaseModel):
    """Generated report text and the category parsed out of it."""

    body_text: str
    category: Optional[ReportCategory] = None

    @property
    def category_label(self) -> str:
        return self.category.value if self.category else "unknown"


class SinkResult(BaseModel):
    """Outcome of delivering the report to one distribution sink."""

    sink: str
    succeeded: bool
    skipped: bool = False
    detail: Optional[str] = None


class PipelineRun(BaseModel):
    """Persisted record of one pipeline run for operator diagnosis."""

    run_id: str
    repository_id: str
    pull_request_id: int
    state: PipelineState = PipelineState.RECEIVED
    abort_reason: Optional[AbortReason] = None
    is_error: bool = False
    error_message: Optional[str] = None
    category: Optional[str] = None
    sink_results: list[SinkResult] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @property
    def is_aborted(self) -> bool:
        return self.state == PipelineState.ABORTED
