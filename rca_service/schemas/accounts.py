"""API schemas for repository management, user settings and diagnostics."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConnectRepositoryRequest(BaseModel):
    """Request body for POST /api/repos."""

    model_config = ConfigDict(populate_by_name=True)

    org_url: str = Field(..., alias="orgUrl")
    repo_id: str = Field(..., alias="repoId")
    repo_name: str = Field(..., alias="repoName")
    project_id: Optional[str] = Field(None, alias="projectId")
    web_url: Optional[str] = Field(None, alias="webUrl")


class UserToggleRequest(BaseModel):
    """Request body for POST /api/user/toggle."""

    model_config = ConfigDict(populate_by_name=True)

    is_active: bool = Field(..., alias="isActive")


class UserToggleResponse(BaseModel):
    success: bool
    is_active: bool


class SettingsUpdateRequest(BaseModel):
    """Partial update of the caller's analysis and notification settings."""

    ai_model: Optional[str] = None
    deep_thinking_enabled: Optional[bool] = None
    send_emails_enabled: Optional[bool] = None
    auto_detect_developer_enabled: Optional[bool] = None
    notification_emails: Optional[list[str]] = None

    @field_validator("notification_emails")
    @classmethod
    def _validate_emails(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value is None:
            return value
        cleaned = [address.strip() for address in value if address.strip()]
        invalid = [address for address in cleaned if "@" not in address]
        if invalid:
            raise ValueError(f"Invalid email address: {invalid[0]}")
        return list(dict.fromkeys(cleaned))


class RunStatusResponse(BaseModel):
    """Response body for polling a pipeline run."""

    run_id: str
    repository_id: str
    pull_request_id: int
    state: str
    abort_reason: Optional[str] = None
    is_error: bool
    error_message: Optional[str] = None
    category: Optional[str] = None
    sinks: dict[str, bool] = Field(default_factory=dict)
    updated_at: datetime
