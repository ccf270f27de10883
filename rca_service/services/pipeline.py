"""Service orchestration for webhook-triggered root cause analysis runs."""

from __future__ import annotations

import time
import traceback
from datetime import datetime, timezone
from typing import Sequence

from rca_service.azure.devops_client import ClientFactory
from rca_service.core.identifiers import new_run_id
from rca_service.models.domain import (
    SILENT_ABORTS,
    AbortReason,
    PipelineRun,
    PipelineState,
    PullRequestEvent,
    WorkItemRef,
)
from rca_service.repositories.redis_store import RedisStore
from rca_service.services.classifier import BugClassifier, passes_branch_gate
from rca_service.services.context_collector import ContextCollector
from rca_service.services.credentials import CredentialManager
from rca_service.services.deduplicator import EventDeduplicator
from rca_service.services.distribution import DistributionFanout, DistributionRequest
from rca_service.services.exceptions import CredentialError
from rca_service.services.report_generator import ReportGenerator, ReportOptions, build_report
from rca_service.telemetry import (
    ActivityLog,
    EventSink,
    NullEventSink,
    record_pipeline_duration,
    record_pipeline_outcome,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PipelineOrchestrator:
    """Sequences dedup, classification, auth, context, report and fan-out for one event.

    ``admit`` is cheap and runs inside the webhook request; ``execute`` does
    the slow external work and is scheduled detached from the response.
    """

    def __init__(
        self,
        store: RedisStore,
        deduplicator: EventDeduplicator,
        classifier: BugClassifier,
        credentials: CredentialManager,
        collector: ContextCollector,
        generator: ReportGenerator,
        fanout: DistributionFanout,
        client_factory: ClientFactory,
        *,
        activity: ActivityLog | None = None,
        sink: EventSink | None = None,
    ) -> None:
        self._store = store
        self._deduplicator = deduplicator
        self._classifier = classifier
        self._credentials = credentials
        self._collector = collector
        self._generator = generator
        self._fanout = fanout
        self._client_factory = client_factory
        self._activity = activity or ActivityLog()
        self._sink = sink or NullEventSink()

    def handle_event(self, event: PullRequestEvent) -> PipelineRun:
        run = self.admit(event)
        if run.is_aborted:
            return run
        return self.execute(run, event)

    def admit(self, event: PullRequestEvent) -> PipelineRun:
        timestamp = _now()
        run = PipelineRun(
            run_id=new_run_id(),
            repository_id=event.repository_id,
            pull_request_id=event.pull_request_id,
            state=PipelineState.RECEIVED,
            created_at=timestamp,
            updated_at=timestamp,
        )
        if not self._deduplicator.admit(event.dedup_key):
            self._abort(run, AbortReason.DUPLICATE, f"Duplicate event ignored for PR #{event.pull_request_id}")
            return run
        self._advance(run, PipelineState.DEDUPLICATED)

        if not passes_branch_gate(event):
            self._abort(
                run,
                AbortReason.WRONG_TARGET_BRANCH,
                f"PR #{event.pull_request_id} targets {event.target_branch or 'an unknown branch'}; ignoring",
            )
            return run
        return run

    def execute(self, run: PipelineRun, event: PullRequestEvent) -> PipelineRun:
        started = time.perf_counter()
        try:
            self._execute(run, event)
        except CredentialError as exc:
            self._abort(run, AbortReason.CREDENTIAL_ERROR, f"Could not obtain access token: {exc}")
        except Exception as exc:
            self._abort(
                run,
                AbortReason.INTERNAL_ERROR,
                f"Error analyzing PR #{event.pull_request_id}: {exc}",
                details={"stack": traceback.format_exc(), "response": getattr(exc, "response_text", None)},
            )
        finally:
            record_pipeline_duration(time.perf_counter() - started)
        return run

    def _execute(self, run: PipelineRun, event: PullRequestEvent) -> None:
        link = self._store.get_repository(event.repository_id)
        if link is None:
            self._abort(
                run,
                AbortReason.REPOSITORY_NOT_REGISTERED,
                f"Repository {event.repository_id} is not registered or has no owner",
            )
            return
        owner_id = link.owner_user_id

        account = self._store.get_user(owner_id)
        if account is not None and not account.is_active:
            self._abort(run, AbortReason.SERVICE_DISABLED, f"Service is disabled for user {owner_id}. Skipping RCA.")
            return

        org_url = event.org_url or link.org_url
        if not org_url:
            self._abort(
                run,
                AbortReason.INVALID_ORG_URL,
                f"Could not parse organisation URL from {event.repository_web_url}",
            )
            return

        def lookup_work_items(pr_event: PullRequestEvent) -> Sequence[WorkItemRef]:
            token = self._credentials.get_valid_token(owner_id)
            client = self._client_factory(org_url, token, pr_event.project)
            return client.get_linked_work_items(pr_event.repository_id, pr_event.pull_request_id)

        if not self._classifier.classify(event, lookup_work_items):
            self._abort(run, AbortReason.NOT_A_BUG, f"PR #{event.pull_request_id} is not identified as a bug.")
            return
        self._activity.info(f"Bug PR detected (Azure): #{event.pull_request_id} - {event.title}")
        self._advance(run, PipelineState.CLASSIFIED)

        token = self._credentials.get_valid_token(owner_id)
        self._advance(run, PipelineState.AUTHORIZED)

        user_settings = self._store.get_user_settings(owner_id)
        self._activity.info(f"Starting RCA for {event.repository_name or event.repository_id} PR #{event.pull_request_id}")
        context = self._collector.collect(
            event.repository_id,
            event.pull_request_id,
            token,
            org_url,
            event.project,
            target_branch=event.target_branch,
            deep_analysis=user_settings.deep_thinking_enabled,
        )
        self._advance(run, PipelineState.CONTEXT_GATHERED)

        options = ReportOptions(
            model=user_settings.ai_model,
            deep_thinking=user_settings.deep_thinking_enabled,
            comments=context.comments,
            previous_commits=context.previous_commits,
        )
        report = build_report(self._generator.generate(context.diff_summary, context.commits, options))
        run.category = report.category_label
        self._advance(run, PipelineState.REPORTED)

        run.sink_results = self._fanout.distribute(
            DistributionRequest(
                event=event,
                report=report,
                user_settings=user_settings,
                client=self._client_factory(org_url, token, event.project),
            )
        )
        self._advance(run, PipelineState.DISTRIBUTED)
        self._advance(run, PipelineState.DONE)
        self._finish(run)

    def _advance(self, run: PipelineRun, state: PipelineState) -> None:
        run.state = state
        run.updated_at = _now()
        self._store.save_run(run)

    def _abort(self, run: PipelineRun, reason: AbortReason, message: str, details: dict | None = None) -> None:
        run.abort_reason = reason
        run.is_error = reason not in SILENT_ABORTS
        if run.is_error:
            run.error_message = message
            self._activity.error(message, details)
        else:
            self._activity.info(message)
        self._advance(run, PipelineState.ABORTED)
        self._finish(run)

    def _finish(self, run: PipelineRun) -> None:
        outcome = run.abort_reason.value if run.abort_reason else run.state.value
        record_pipeline_outcome(outcome)
        self._sink.publish(
            {
                "run_id": run.run_id,
                "repository_id": run.repository_id,
                "pull_request_id": run.pull_request_id,
                "outcome": outcome,
                "is_error": run.is_error,
                "category": run.category,
                "sinks": {result.sink: result.succeeded for result in run.sink_results},
                "timestamp": run.updated_at.isoformat(),
            }
        )
