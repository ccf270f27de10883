"""API routes exposing the operator activity log."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from rca_service.core.config import settings
from rca_service.dependencies import get_activity_log
from rca_service.telemetry import ActivityEntry, ActivityLog


router = APIRouter(prefix=f"{settings.api_prefix}/logs", tags=["logs"])


@router.get("", response_model=list[ActivityEntry])
def list_activity(activity: ActivityLog = Depends(get_activity_log)) -> list[ActivityEntry]:
    return activity.entries()
