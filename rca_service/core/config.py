"""Application configuration via environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service-wide configuration options."""

    api_prefix: str = "/api"
    redis_url: str = "redis://localhost:6379/0"
    run_retention_seconds: int = 7 * 24 * 3600
    run_index_max_entries: int = 1000
    http_timeout_seconds: float = 30.0

    # Azure AD application used to refresh delegated Azure DevOps tokens.
    azure_client_id: str | None = None
    azure_client_secret: str | None = None
    azure_tenant_id: str | None = None
    azure_token_scope: str = "499b84ac-1321-427f-aa17-267ca6975798/.default offline_access"
    azure_authority_url: str = "https://login.microsoftonline.com"
    token_expiry_margin_seconds: int = 300

    webhook_url: str = "http://localhost:8000/api/webhooks/azure"
    dedup_ttl_seconds: float = 300.0
    dedup_sweep_interval_seconds: float = 60.0

    diff_total_char_limit: int = 15000
    diff_file_char_limit: int = 3000
    previous_commit_limit: int = 10

    openai_api_key: str | None = None
    azure_openai_endpoint: str | None = None
    azure_openai_api_key: str | None = None
    azure_openai_deployment: str | None = None
    azure_openai_api_version: str = "2024-06-01"
    default_ai_model: str = "gpt-4o"
    report_max_tokens: int = 2048

    root_cause_field: str = "Microsoft.VSTS.CMMI.RootCause"
    legacy_notification_email: str | None = None
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_use_tls: bool = True
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_from: str = "AI RCA Service <no-reply@example.com>"

    plan_limits: dict[str, int] = Field(default_factory=dict)
    activity_log_size: int = 100

    run_export_backend: str = "off"
    run_export_path: str = "data/pipeline_runs.jsonl"
    otel_enabled: bool = False
    otel_exporter: str = "console"
    otel_otlp_endpoint: str | None = None

    model_config = SettingsConfigDict(env_prefix="rca_", env_file=".env", extra="ignore")


settings = Settings()
