"""API routes receiving Azure DevOps service hook deliveries."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import ValidationError

from rca_service.core.config import settings
from rca_service.dependencies import get_activity_log, get_orchestrator
from rca_service.models.domain import AbortReason
from rca_service.schemas.webhooks import (
    PullRequestResource,
    ServiceHookEvent,
    WebhookAcknowledgement,
    to_pull_request_event,
)
from rca_service.services.pipeline import PipelineOrchestrator
from rca_service.telemetry import ActivityLog

PULL_REQUEST_CREATED = "git.pullrequest.created"

router = APIRouter(prefix=f"{settings.api_prefix}/webhooks", tags=["webhooks"])


@router.post("/azure", response_model=WebhookAcknowledgement)
@router.post("/github", response_model=WebhookAcknowledgement, include_in_schema=False)
def receive_service_hook(
    payload: ServiceHookEvent,
    background_tasks: BackgroundTasks,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    activity: ActivityLog = Depends(get_activity_log),
) -> WebhookAcknowledgement:
    if payload.event_type != PULL_REQUEST_CREATED:
        return WebhookAcknowledgement(status="ignored", message=f"Event {payload.event_type} ignored")

    try:
        resource = PullRequestResource.model_validate(payload.resource or {})
    except ValidationError as exc:
        activity.warn("Malformed pull request payload ignored", {"error": str(exc)})
        return WebhookAcknowledgement(status="ignored", message="Malformed pull request payload")

    event = to_pull_request_event(resource)
    run = orchestrator.admit(event)
    if run.abort_reason == AbortReason.DUPLICATE:
        return WebhookAcknowledgement(status="duplicate", message="Duplicate event", run_id=run.run_id)
    if run.is_aborted:
        return WebhookAcknowledgement(
            status="ignored",
            message=f"Target branch {event.target_branch or 'unknown'} is not monitored",
            run_id=run.run_id,
        )

    background_tasks.add_task(orchestrator.execute, run, event)
    return WebhookAcknowledgement(status="accepted", message="Processing started", run_id=run.run_id)
