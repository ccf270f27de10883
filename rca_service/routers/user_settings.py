"""API routes for per-user analysis settings and the service toggle."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from rca_service.core.config import settings
from rca_service.dependencies import get_activity_log, get_current_user_id, get_store
from rca_service.models.domain import UserSettings
from rca_service.repositories.redis_store import RedisStore
from rca_service.schemas.accounts import SettingsUpdateRequest, UserToggleRequest, UserToggleResponse
from rca_service.telemetry import ActivityLog


router = APIRouter(prefix=settings.api_prefix, tags=["settings"])


@router.get("/settings", response_model=UserSettings)
def get_settings(
    user_id: str = Depends(get_current_user_id),
    store: RedisStore = Depends(get_store),
) -> UserSettings:
    return store.get_user_settings(user_id)


@router.put("/settings", response_model=UserSettings)
def update_settings(
    payload: SettingsUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    store: RedisStore = Depends(get_store),
) -> UserSettings:
    current = store.get_user_settings(user_id)
    updated = current.model_copy(update=payload.model_dump(exclude_unset=True, exclude_none=True))
    store.put_user_settings(user_id, updated)
    return updated


@router.post("/user/toggle", response_model=UserToggleResponse)
def toggle_service(
    payload: UserToggleRequest,
    user_id: str = Depends(get_current_user_id),
    store: RedisStore = Depends(get_store),
    activity: ActivityLog = Depends(get_activity_log),
) -> UserToggleResponse:
    account = store.set_user_active(user_id, payload.is_active)
    activity.info(f"Service {'enabled' if account.is_active else 'disabled'} for user {user_id}")
    return UserToggleResponse(success=True, is_active=account.is_active)
