"""API routes for pipeline run status."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from rca_service.core.config import settings
from rca_service.dependencies import get_store
from rca_service.models.domain import PipelineRun
from rca_service.repositories.redis_store import RedisStore
from rca_service.schemas.accounts import RunStatusResponse


router = APIRouter(prefix=f"{settings.api_prefix}/runs", tags=["runs"])


def _to_response(run: PipelineRun) -> RunStatusResponse:
    return RunStatusResponse(
        run_id=run.run_id,
        repository_id=run.repository_id,
        pull_request_id=run.pull_request_id,
        state=run.state.value,
        abort_reason=run.abort_reason.value if run.abort_reason else None,
        is_error=run.is_error,
        error_message=run.error_message,
        category=run.category,
        sinks={result.sink: result.succeeded for result in run.sink_results},
        updated_at=run.updated_at,
    )


@router.get("", response_model=list[RunStatusResponse])
def list_runs(
    limit: int = Query(50, ge=1, le=500),
    store: RedisStore = Depends(get_store),
) -> list[RunStatusResponse]:
    return [_to_response(run) for run in store.list_recent_runs(limit)]


@router.get("/{run_id}", response_model=RunStatusResponse)
def get_run_status(
    run_id: str,
    store: RedisStore = Depends(get_store),
) -> RunStatusResponse:
    run = store.get_run(run_id)
    if not run:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Run not found")
    return _to_response(run)
