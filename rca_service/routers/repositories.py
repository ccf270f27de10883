"""API routes for connecting Azure DevOps repositories."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from rca_service.core.config import settings
from rca_service.dependencies import get_current_user_id, get_repository_service
from rca_service.models.domain import RepositoryLink
from rca_service.schemas.accounts import ConnectRepositoryRequest
from rca_service.services.exceptions import (
    AzureDevOpsError,
    CredentialError,
    PlanLimitError,
    RepositoryNotFoundError,
)
from rca_service.services.repositories import RepositoryService


router = APIRouter(prefix=settings.api_prefix, tags=["repositories"])


@router.get("/repos", response_model=list[RepositoryLink])
def list_connected_repositories(
    user_id: str = Depends(get_current_user_id),
    service: RepositoryService = Depends(get_repository_service),
) -> list[RepositoryLink]:
    return service.list_connected(user_id)


@router.get("/azure/repos")
def list_remote_repositories(
    org_url: str = Query(..., alias="orgUrl"),
    user_id: str = Depends(get_current_user_id),
    service: RepositoryService = Depends(get_repository_service),
) -> list[dict]:
    try:
        return service.list_remote_repositories(user_id, org_url)
    except (AzureDevOpsError, CredentialError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/repos", response_model=RepositoryLink)
def connect_repository(
    payload: ConnectRepositoryRequest,
    user_id: str = Depends(get_current_user_id),
    service: RepositoryService = Depends(get_repository_service),
) -> RepositoryLink:
    try:
        return service.connect(
            user_id,
            payload.org_url,
            payload.repo_id,
            payload.repo_name,
            project_id=payload.project_id,
            web_url=payload.web_url,
        )
    except (PlanLimitError, AzureDevOpsError, CredentialError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.delete("/repos/{repository_id}", status_code=status.HTTP_204_NO_CONTENT)
def disconnect_repository(
    repository_id: str,
    user_id: str = Depends(get_current_user_id),
    service: RepositoryService = Depends(get_repository_service),
) -> Response:
    try:
        service.disconnect(user_id, repository_id)
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
