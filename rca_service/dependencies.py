"""Application dependency wiring."""

from __future__ import annotations

from functools import lru_cache

import httpx
from fastapi import Header, HTTPException, status
from redis import Redis

from rca_service.azure.devops_client import ClientFactory, client_factory
from rca_service.core.config import settings
from rca_service.repositories.redis_store import RedisStore
from rca_service.services.classifier import BugClassifier
from rca_service.services.context_collector import ContextCollector
from rca_service.services.credentials import CredentialManager
from rca_service.services.deduplicator import EventDeduplicator
from rca_service.services.distribution import DistributionFanout
from rca_service.services.mailer import mailer_from_settings
from rca_service.services.pipeline import PipelineOrchestrator
from rca_service.services.report_generator import OpenAIReportGenerator
from rca_service.services.repositories import PlanLimits, RepositoryService
from rca_service.telemetry import ActivityLog, EventSink, sink_from_settings


@lru_cache
def get_redis_client() -> Redis:
    return Redis.from_url(settings.redis_url, decode_responses=True)


@lru_cache
def get_store() -> RedisStore:
    return RedisStore(
        get_redis_client(),
        run_ttl_seconds=settings.run_retention_seconds,
        max_indexed_runs=settings.run_index_max_entries,
    )


@lru_cache
def get_http_client() -> httpx.Client:
    return httpx.Client(timeout=settings.http_timeout_seconds)


@lru_cache
def get_client_factory() -> ClientFactory:
    return client_factory(get_http_client())


@lru_cache
def get_activity_log() -> ActivityLog:
    return ActivityLog(settings.activity_log_size)


@lru_cache
def get_event_sink() -> EventSink:
    return sink_from_settings()


@lru_cache
def get_deduplicator() -> EventDeduplicator:
    return EventDeduplicator(
        settings.dedup_ttl_seconds,
        sweep_interval_seconds=settings.dedup_sweep_interval_seconds,
    )


@lru_cache
def get_credential_manager() -> CredentialManager:
    return CredentialManager(
        get_store(),
        client_id=settings.azure_client_id,
        client_secret=settings.azure_client_secret,
        tenant_id=settings.azure_tenant_id,
        scope=settings.azure_token_scope,
        authority_url=settings.azure_authority_url,
        expiry_margin_seconds=settings.token_expiry_margin_seconds,
        http_client=get_http_client(),
        activity=get_activity_log(),
    )


@lru_cache
def get_plan_limits() -> PlanLimits:
    return PlanLimits(get_store(), settings.plan_limits)


@lru_cache
def get_repository_service() -> RepositoryService:
    return RepositoryService(
        get_store(),
        get_credential_manager(),
        get_plan_limits(),
        get_client_factory(),
        webhook_url=settings.webhook_url,
        activity=get_activity_log(),
    )


@lru_cache
def get_orchestrator() -> PipelineOrchestrator:
    activity = get_activity_log()
    factory = get_client_factory()
    return PipelineOrchestrator(
        get_store(),
        get_deduplicator(),
        BugClassifier(activity),
        get_credential_manager(),
        ContextCollector(
            factory,
            total_char_limit=settings.diff_total_char_limit,
            file_char_limit=settings.diff_file_char_limit,
            previous_commit_limit=settings.previous_commit_limit,
            activity=activity,
        ),
        OpenAIReportGenerator.from_settings(settings, activity),
        DistributionFanout(
            mailer_from_settings(settings),
            root_cause_field=settings.root_cause_field,
            fallback_email=settings.legacy_notification_email,
            activity=activity,
        ),
        factory,
        activity=activity,
        sink=get_event_sink(),
    )


def get_current_user_id(x_user_id: str | None = Header(None)) -> str:
    """Identity established by the external login flow and forwarded by the front end."""

    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return x_user_id
