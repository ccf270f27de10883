from __future__ import annotations

import json
import re
from datetime import datetime, timedelta, timezone

import fakeredis
import httpx
import pytest

from rca_service.azure.devops_client import client_factory
from rca_service.models.domain import Credential, RepositoryLink
from rca_service.repositories.redis_store import RedisStore

ORG_URL = "https://dev.azure.com/acme"
REPO_WEB_URL = f"{ORG_URL}/Shop/_git/checkout"

_ROUTES = [
    ("GET", "list_repositories", re.compile(r"/_apis/git/repositories$")),
    ("GET", "iterations", re.compile(r"/pullRequests/\d+/iterations$")),
    ("GET", "changes", re.compile(r"/pullRequests/\d+/iterations/\d+/changes$")),
    ("GET", "blob", re.compile(r"/blobs/(?P<object_id>[^/]+)$")),
    ("GET", "pr_commits", re.compile(r"/pullRequests/\d+/commits$")),
    ("GET", "branch_commits", re.compile(r"/repositories/[^/]+/commits$")),
    ("GET", "threads", re.compile(r"/pullRequests/\d+/threads$")),
    ("POST", "create_thread", re.compile(r"/pullRequests/\d+/threads$")),
    ("GET", "work_item_refs", re.compile(r"/pullRequests/\d+/workitems$")),
    ("GET", "work_items", re.compile(r"/_apis/wit/workitems$")),
    ("POST", "work_item_comment", re.compile(r"/_apis/wit/workItems/(?P<work_item_id>\d+)/comments$")),
    ("PATCH", "work_item_update", re.compile(r"/_apis/wit/workitems/(?P<work_item_id>\d+)$")),
    ("POST", "create_hook", re.compile(r"/_apis/hooks/subscriptions$")),
    ("DELETE", "delete_hook", re.compile(r"/_apis/hooks/subscriptions/[^/]+$")),
    ("POST", "token", re.compile(r"/oauth2/v2\.0/token$")),
]


class FakeAzureDevOps:
    """In-memory stand-in for the Azure DevOps and Azure AD endpoints the service calls."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, httpx.Request]] = []
        self.failures: dict[str, int] = {}
        self.repositories: list[dict] = []
        self.changes: list[dict] = []
        self.blobs: dict[str, str] = {}
        self.pr_commits: list[dict] = []
        self.branch_commits: list[dict] = []
        self.threads: list[dict] = []
        self.work_items: list[dict] = []
        self.token_payload: dict = {"access_token": "fresh-token", "refresh_token": "fresh-refresh", "expires_in": 3600}

    def handler(self, request: httpx.Request) -> httpx.Response:
        for method, name, pattern in _ROUTES:
            match = pattern.search(request.url.path)
            if request.method != method or not match:
                continue
            self.calls.append((name, request))
            if name in self.failures:
                return httpx.Response(self.failures[name], text=f"{name} failed")
            return self._respond(name, match, request)
        return httpx.Response(404, text=f"no route for {request.method} {request.url.path}")

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    def requests_for(self, name: str) -> list[httpx.Request]:
        return [request for call, request in self.calls if call == name]

    def _respond(self, name: str, match: re.Match, request: httpx.Request) -> httpx.Response:
        if name == "list_repositories":
            return httpx.Response(200, json={"value": self.repositories})
        if name == "iterations":
            return httpx.Response(200, json={"value": [{"id": 1}, {"id": 2}]})
        if name == "changes":
            return httpx.Response(200, json={"changeEntries": self.changes})
        if name == "blob":
            return httpx.Response(200, content=self.blobs.get(match.group("object_id"), "").encode("utf-8"))
        if name == "pr_commits":
            return httpx.Response(200, json={"value": self.pr_commits})
        if name == "branch_commits":
            return httpx.Response(200, json={"value": self.branch_commits})
        if name == "threads":
            return httpx.Response(200, json={"value": self.threads})
        if name == "work_item_refs":
            return httpx.Response(200, json={"value": [{"id": str(item["id"])} for item in self.work_items]})
        if name == "work_items":
            return httpx.Response(200, json={"value": self.work_items})
        if name == "create_hook":
            return httpx.Response(200, json={"id": "sub-1"})
        if name == "delete_hook":
            return httpx.Response(204)
        if name == "token":
            return httpx.Response(200, json=self.token_payload)
        if name == "create_thread":
            return httpx.Response(200, json={"id": 1, **json.loads(request.content)})
        return httpx.Response(200, json={"id": 1})


@pytest.fixture
def azure() -> FakeAzureDevOps:
    return FakeAzureDevOps()


@pytest.fixture
def http_client(azure: FakeAzureDevOps) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(azure.handler))


@pytest.fixture
def factory(http_client: httpx.Client):
    return client_factory(http_client)


@pytest.fixture
def store() -> RedisStore:
    return RedisStore(fakeredis.FakeRedis(decode_responses=True))


@pytest.fixture
def registered_store(store: RedisStore) -> RedisStore:
    store.add_repository(
        RepositoryLink(
            repository_id="R",
            owner_user_id="user-1",
            display_name="checkout",
            webhook_id="sub-1",
            org_url=ORG_URL,
            web_url=REPO_WEB_URL,
        )
    )
    store.put_credential(
        Credential(
            subject_id="user-1",
            access_token="valid-token",
            refresh_token="refresh-1",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )
    )
    return store


class RecordingMailer:
    """Mailer double that keeps every message it is asked to send."""

    def __init__(self) -> None:
        self.sent: list[tuple[list[str], str, str]] = []

    def send(self, recipients, subject: str, html: str) -> None:
        self.sent.append((list(recipients), subject, html))


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()
