"""Application entrypoint for the root cause analysis service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from rca_service.core.config import settings
from rca_service.routers import logs, repositories, runs, user_settings, webhooks
from rca_service.telemetry import configure_metrics, shutdown_metrics, collect_prometheus_metrics
from rca_service.dependencies import get_deduplicator, get_event_sink, get_http_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_metrics()
    deduplicator = get_deduplicator()
    deduplicator.start()
    logger.info("RCA service started; dedup window %ss", deduplicator.ttl_seconds)
    yield
    deduplicator.stop()
    get_event_sink().close()
    get_http_client().close()
    shutdown_metrics()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Azure DevOps Root Cause Analysis",
        description="Generates root cause analysis reports for bug-fix pull requests and distributes them.",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(webhooks.router)
    app.include_router(runs.router)
    app.include_router(logs.router)
    app.include_router(user_settings.router)
    app.include_router(repositories.router)

    @app.get("/healthz", tags=["health"])
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    if settings.otel_exporter.lower().strip() == "prometheus":

        @app.get("/metrics", tags=["metrics"])
        def metrics_endpoint() -> PlainTextResponse:
            payload, content_type = collect_prometheus_metrics()
            return PlainTextResponse(payload, media_type=content_type)

    return app


app = create_app()
