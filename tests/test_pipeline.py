from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from rca_service.models.domain import (
    AbortReason,
    Credential,
    PipelineState,
    PullRequestEvent,
    UserAccount,
    UserSettings,
)
from rca_service.services.classifier import BugClassifier
from rca_service.services.context_collector import ContextCollector
from rca_service.services.credentials import CredentialManager
from rca_service.services.deduplicator import EventDeduplicator
from rca_service.services.distribution import DistributionFanout
from rca_service.services.pipeline import PipelineOrchestrator
from rca_service.telemetry import ActivityLog

REPORT = "## 🔍 Root Cause Analysis\n**Category**: Configuration\n**Summary**: Missing null check."


class StaticGenerator:
    def __init__(self, text: str = REPORT) -> None:
        self.text = text
        self.calls: list[tuple] = []

    def generate(self, diff, commits, options):
        self.calls.append((diff, list(commits), options))
        return self.text


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[dict] = []

    def publish(self, event: dict) -> None:
        self.events.append(event)

    def close(self) -> None:
        return None


class Harness:
    def __init__(self, store, http_client, factory, azure, mailer) -> None:
        self.store = store
        self.azure = azure
        self.activity = ActivityLog()
        self.mailer = mailer
        self.generator = StaticGenerator()
        self.sink = RecordingSink()
        self.orchestrator = PipelineOrchestrator(
            store,
            EventDeduplicator(300),
            BugClassifier(self.activity),
            CredentialManager(
                store,
                client_id="client",
                client_secret="secret",
                tenant_id="tenant",
                scope="scope",
                http_client=http_client,
                activity=self.activity,
            ),
            ContextCollector(factory, activity=self.activity),
            self.generator,
            DistributionFanout(self.mailer, activity=self.activity),
            factory,
            activity=self.activity,
            sink=self.sink,
        )


@pytest.fixture
def harness(registered_store, http_client, factory, azure, mailer) -> Harness:
    registered_store.put_user_settings("user-1", UserSettings(notification_emails=["lead@acme.io"]))
    azure.changes = [{"item": {"path": "/src/cart.py", "objectId": "o1"}, "changeType": "edit"}]
    azure.blobs = {"o1": "if cart is None:\n    return 0"}
    azure.pr_commits = [{"commitId": "c1", "comment": "bug: null check", "author": {"name": "Dev"}}]
    return Harness(registered_store, http_client, factory, azure, mailer)


def _event(**overrides) -> PullRequestEvent:
    values = {
        "repository_id": "R",
        "pull_request_id": 42,
        "title": "bug: null check",
        "source_branch": "refs/heads/fix/cart",
        "target_branch": "refs/heads/main",
        "author_email": "dev@acme.io",
        "repository_web_url": "https://dev.azure.com/acme/Shop/_git/checkout",
        "project": "Shop",
    }
    values.update(overrides)
    return PullRequestEvent(**values)


def test_bug_pull_request_runs_to_completion(harness: Harness):
    run = harness.orchestrator.handle_event(_event())

    assert run.state == PipelineState.DONE
    assert run.is_error is False
    assert run.category == "Configuration"
    assert harness.azure.count("create_thread") == 1
    assert harness.azure.count("work_item_comment") == 0
    assert len(harness.mailer.sent) == 1
    assert harness.store.get_run(run.run_id).state == PipelineState.DONE
    assert harness.sink.events[-1]["outcome"] == "done"

    diff, commits, options = harness.generator.calls[0]
    assert "/src/cart.py" in diff
    assert [commit.commit_id for commit in commits] == ["c1"]
    assert options.deep_thinking is False


def test_redelivered_event_is_processed_once(harness: Harness):
    first = harness.orchestrator.handle_event(_event())
    second = harness.orchestrator.handle_event(_event())

    assert first.state == PipelineState.DONE
    assert second.abort_reason == AbortReason.DUPLICATE
    assert second.is_error is False
    assert harness.azure.count("create_thread") == 1


def test_wrong_target_branch_aborts_silently(harness: Harness):
    run = harness.orchestrator.handle_event(_event(target_branch="refs/heads/develop"))

    assert run.abort_reason == AbortReason.WRONG_TARGET_BRANCH
    assert run.is_error is False
    assert harness.azure.calls == []


def test_non_bug_pull_request_aborts_after_work_item_lookup(harness: Harness):
    harness.azure.work_items = [{"id": 5, "fields": {"System.WorkItemType": "User Story"}}]

    run = harness.orchestrator.handle_event(_event(title="Add coupons", source_branch="refs/heads/feature/coupons"))

    assert run.abort_reason == AbortReason.NOT_A_BUG
    assert run.is_error is False
    assert harness.azure.count("work_item_refs") == 1
    assert harness.azure.count("create_thread") == 0


def test_linked_bug_work_item_classifies_and_receives_report(harness: Harness):
    harness.azure.work_items = [{"id": 5, "fields": {"System.WorkItemType": "Bug", "System.Title": "Cart crash"}}]

    run = harness.orchestrator.handle_event(_event(title="Harden totals", source_branch="refs/heads/feature/totals"))

    assert run.state == PipelineState.DONE
    assert harness.azure.count("work_item_comment") == 1
    patch = harness.azure.requests_for("work_item_update")[0]
    assert b"Microsoft.VSTS.CMMI.RootCause" in patch.content
    assert patch.headers["content-type"] == "application/json-patch+json"


def test_unregistered_repository_is_an_error_abort(harness: Harness):
    run = harness.orchestrator.handle_event(_event(repository_id="unknown"))

    assert run.abort_reason == AbortReason.REPOSITORY_NOT_REGISTERED
    assert run.is_error is True
    assert harness.activity.entries()[0].level == "error"


def test_disabled_account_aborts_silently(harness: Harness):
    harness.store.upsert_user(UserAccount(user_id="user-1", is_active=False))

    run = harness.orchestrator.handle_event(_event())

    assert run.abort_reason == AbortReason.SERVICE_DISABLED
    assert run.is_error is False
    assert harness.azure.calls == []


def test_credential_failure_aborts_with_error(harness: Harness):
    harness.store.put_credential(
        Credential(
            subject_id="user-1",
            access_token="stale",
            refresh_token="r",
            expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        )
    )
    harness.azure.failures["token"] = 401

    run = harness.orchestrator.handle_event(_event())

    assert run.abort_reason == AbortReason.CREDENTIAL_ERROR
    assert run.is_error is True
    assert harness.azure.count("create_thread") == 0


def test_distribution_failure_still_completes_run(harness: Harness):
    harness.azure.failures["create_thread"] = 500

    run = harness.orchestrator.handle_event(_event())

    assert run.state == PipelineState.DONE
    results = {result.sink: result.succeeded for result in run.sink_results}
    assert results == {"comment": False, "work_items": True, "email": True}
    assert len(harness.mailer.sent) == 1


def test_deep_thinking_gathers_discussion(harness: Harness):
    harness.store.put_user_settings("user-1", UserSettings(deep_thinking_enabled=True, ai_model="o1"))
    harness.azure.threads = [{"comments": [{"content": "Looks risky", "author": {"displayName": "Rev"}}]}]

    harness.orchestrator.handle_event(_event())

    _, _, options = harness.generator.calls[0]
    assert options.deep_thinking is True
    assert options.model == "o1"
    assert options.comments == ["[Rev]: Looks risky"]
    assert harness.azure.count("branch_commits") == 1


def test_org_url_falls_back_to_repository_link(harness: Harness):
    run = harness.orchestrator.handle_event(_event(repository_web_url=None))

    assert run.state == PipelineState.DONE
    assert harness.azure.requests_for("create_thread")[0].url.host == "dev.azure.com"
