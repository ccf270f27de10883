"""API schemas for Azure DevOps service hook deliveries."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from rca_service.models.domain import PullRequestEvent


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ProjectPayload(_Payload):
    id: Optional[str] = None
    name: Optional[str] = None


class RepositoryPayload(_Payload):
    id: str
    name: Optional[str] = None
    web_url: Optional[str] = Field(None, alias="webUrl")
    project: Optional[ProjectPayload] = None


class IdentityPayload(_Payload):
    id: Optional[str] = None
    display_name: Optional[str] = Field(None, alias="displayName")
    unique_name: Optional[str] = Field(None, alias="uniqueName")


class PullRequestResource(_Payload):
    pull_request_id: int = Field(..., alias="pullRequestId")
    repository: RepositoryPayload
    title: Optional[str] = None
    description: Optional[str] = None
    source_ref_name: Optional[str] = Field(None, alias="sourceRefName")
    target_ref_name: Optional[str] = Field(None, alias="targetRefName")
    created_by: Optional[IdentityPayload] = Field(None, alias="createdBy")


class ServiceHookEvent(_Payload):
    """Envelope of an Azure DevOps service hook delivery; ``resource`` is only parsed for PR events."""

    event_type: Optional[str] = Field(None, alias="eventType")
    resource: Optional[dict] = None


def to_pull_request_event(resource: PullRequestResource) -> PullRequestEvent:
    author = resource.created_by or IdentityPayload()
    project = resource.repository.project
    return PullRequestEvent(
        repository_id=resource.repository.id,
        pull_request_id=resource.pull_request_id,
        title=resource.title or "",
        description=resource.description or "",
        source_branch=resource.source_ref_name or "",
        target_branch=resource.target_ref_name or "",
        author_id=author.id,
        # uniqueName is the user principal name, usually the author's email address.
        author_email=author.unique_name or author.id,
        author_name=author.display_name,
        repository_name=resource.repository.name,
        repository_web_url=resource.repository.web_url,
        project=project.name if project else None,
    )


class WebhookAcknowledgement(BaseModel):
    """Response returned to the service hook sender."""

    status: Literal["accepted", "duplicate", "ignored"]
    message: str
    run_id: Optional[str] = None
