from __future__ import annotations

import json

import pytest

from rca_service.models.domain import RepositoryLink, UserAccount
from rca_service.services.credentials import CredentialManager
from rca_service.services.exceptions import AzureDevOpsError, PlanLimitError, RepositoryNotFoundError
from rca_service.services.repositories import PlanLimits, RepositoryService
from rca_service.telemetry import ActivityLog

ORG_URL = "https://dev.azure.com/acme"


@pytest.fixture
def activity() -> ActivityLog:
    return ActivityLog()


@pytest.fixture
def service(registered_store, http_client, factory, activity) -> RepositoryService:
    credentials = CredentialManager(
        registered_store,
        client_id="client",
        client_secret="secret",
        tenant_id="tenant",
        scope="scope",
        http_client=http_client,
    )
    return RepositoryService(
        registered_store,
        credentials,
        PlanLimits(registered_store, {"free": 2}),
        factory,
        webhook_url="https://rca.example.com/api/webhooks/azure",
        activity=activity,
    )


def test_connect_registers_hook_and_stores_link(service, registered_store, azure):
    link = service.connect("user-1", f"{ORG_URL}/", "R2", "payments", project_id="proj-1")

    assert link.webhook_id == "sub-1"
    assert link.org_url == ORG_URL
    assert registered_store.get_repository("R2") == link
    body = json.loads(azure.requests_for("create_hook")[0].content)
    assert body["eventType"] == "git.pullrequest.created"
    assert body["publisherInputs"] == {"repository": "R2", "projectId": "proj-1"}
    assert body["consumerInputs"]["url"] == "https://rca.example.com/api/webhooks/azure"


def test_connect_rejected_at_plan_limit(service, registered_store, azure):
    service.connect("user-1", ORG_URL, "R2", "payments")

    with pytest.raises(PlanLimitError):
        service.connect("user-1", ORG_URL, "R3", "search")
    assert azure.count("create_hook") == 1


def test_paid_plan_is_unlimited(service, registered_store):
    registered_store.upsert_user(UserAccount(user_id="user-1", plan_id="pro"))
    for index in range(4):
        service.connect("user-1", ORG_URL, f"X{index}", f"repo-{index}")
    assert registered_store.count_user_repositories("user-1") == 5


def test_hook_creation_failure_is_logged_and_raised(service, registered_store, azure, activity):
    azure.failures["create_hook"] = 401

    with pytest.raises(AzureDevOpsError):
        service.connect("user-1", ORG_URL, "R2", "payments")
    assert registered_store.get_repository("R2") is None
    assert activity.entries()[0].details["status"] == 401


def test_disconnect_deletes_hook_and_link(service, registered_store, azure):
    service.disconnect("user-1", "R")

    assert registered_store.get_repository("R") is None
    assert azure.requests_for("delete_hook")[0].url.path == "/acme/_apis/hooks/subscriptions/sub-1"


def test_disconnect_is_best_effort_when_hook_delete_fails(service, registered_store, azure, activity):
    azure.failures["delete_hook"] = 500

    service.disconnect("user-1", "R")

    assert registered_store.get_repository("R") is None
    assert any(entry.level == "error" for entry in activity.entries())


def test_disconnect_without_org_url_skips_hook_deletion(service, registered_store, azure, activity):
    registered_store.add_repository(
        RepositoryLink(repository_id="L", owner_user_id="user-1", display_name="legacy", webhook_id="sub-9")
    )

    service.disconnect("user-1", "L")

    assert registered_store.get_repository("L") is None
    assert azure.count("delete_hook") == 0
    assert activity.entries()[1].level == "warn"


def test_disconnect_unknown_or_foreign_repository(service):
    with pytest.raises(RepositoryNotFoundError):
        service.disconnect("user-1", "missing")
    with pytest.raises(PermissionError):
        service.disconnect("intruder", "R")


def test_list_remote_repositories(service, azure):
    azure.repositories = [
        {"id": "R", "name": "checkout", "webUrl": f"{ORG_URL}/Shop/_git/checkout", "project": {"id": "p", "name": "Shop"}}
    ]

    repos = service.list_remote_repositories("user-1", ORG_URL)

    assert repos == [
        {"id": "R", "name": "checkout", "url": f"{ORG_URL}/Shop/_git/checkout", "project": "Shop", "project_id": "p"}
    ]
    assert azure.requests_for("list_repositories")[0].headers["authorization"] == "Bearer valid-token"
