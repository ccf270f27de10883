"""Thin Azure DevOps REST client for the pull request, work item and service hook APIs."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional
from urllib.parse import quote

import httpx

from rca_service.models.domain import CommitInfo, WorkItemRef
from rca_service.services.exceptions import AzureDevOpsError

_logger = logging.getLogger(__name__)

API_VERSION = "7.1"
COMMENTS_API_VERSION = "7.1-preview.4"
PULL_REQUEST_CREATED_EVENT = "git.pullrequest.created"


class AzureDevOpsClient:
    """Calls Azure DevOps on behalf of one user within one organisation."""

    def __init__(
        self,
        org_url: str,
        token: str,
        *,
        project: str | None = None,
        http_client: httpx.Client | None = None,
        timeout: float = 30.0,
    ) -> None:
        if not org_url or not token:
            raise AzureDevOpsError("Azure DevOps organisation URL or token not provided.")
        self._org_url = org_url.rstrip("/")
        self._project = project
        self._headers = {"Authorization": f"Bearer {token}"}
        self._http = http_client or httpx.Client(timeout=timeout)

    @property
    def org_url(self) -> str:
        return self._org_url

    def list_repositories(self) -> list[dict]:
        payload = self._request("GET", f"{self._org_url}/_apis/git/repositories")
        repos = []
        for repo in payload.get("value", []):
            project = repo.get("project") or {}
            repos.append(
                {
                    "id": repo.get("id"),
                    "name": repo.get("name"),
                    "url": repo.get("webUrl"),
                    "project": project.get("name"),
                    "project_id": project.get("id"),
                }
            )
        return repos

    def get_latest_iteration_changes(self, repository_id: str, pull_request_id: int) -> list[dict]:
        base = self._pull_request_url(repository_id, pull_request_id)
        iterations = self._request("GET", f"{base}/iterations").get("value", [])
        if not iterations:
            return []
        last_id = iterations[-1].get("id")
        if not last_id:
            return []
        changes = self._request("GET", f"{base}/iterations/{last_id}/changes")
        return list(changes.get("changeEntries") or [])

    def get_blob_text(self, repository_id: str, object_id: str) -> str:
        url = f"{self._project_url()}/_apis/git/repositories/{repository_id}/blobs/{object_id}"
        response = self._send(
            "GET",
            url,
            params={"$format": "octetstream"},
            headers={"Accept": "application/octet-stream"},
        )
        return response.content.decode("utf-8", errors="replace")

    def get_pull_request_commits(self, repository_id: str, pull_request_id: int) -> list[CommitInfo]:
        payload = self._request("GET", f"{self._pull_request_url(repository_id, pull_request_id)}/commits")
        return [self._to_commit(entry) for entry in payload.get("value", [])]

    def get_branch_commits(self, repository_id: str, branch: str, top: int) -> list[CommitInfo]:
        url = f"{self._project_url()}/_apis/git/repositories/{repository_id}/commits"
        params = {
            "searchCriteria.itemVersion.version": branch.removeprefix("refs/heads/"),
            "searchCriteria.itemVersion.versionType": "branch",
            "searchCriteria.$top": str(top),
        }
        payload = self._request("GET", url, params=params)
        return [self._to_commit(entry) for entry in payload.get("value", [])[:top]]

    def get_pull_request_threads(self, repository_id: str, pull_request_id: int) -> list[dict]:
        payload = self._request("GET", f"{self._pull_request_url(repository_id, pull_request_id)}/threads")
        return list(payload.get("value", []))

    def create_thread(self, repository_id: str, pull_request_id: int, content: str) -> dict:
        body = {
            "comments": [{"parentCommentId": 0, "content": content, "commentType": "text"}],
            "status": "active",
        }
        return self._request("POST", f"{self._pull_request_url(repository_id, pull_request_id)}/threads", json=body)

    def get_linked_work_items(self, repository_id: str, pull_request_id: int) -> list[WorkItemRef]:
        refs = self._request("GET", f"{self._pull_request_url(repository_id, pull_request_id)}/workitems")
        ids = []
        for ref in refs.get("value", []):
            try:
                work_item_id = int(ref.get("id") or 0)
            except (TypeError, ValueError):
                continue
            if work_item_id > 0:
                ids.append(work_item_id)
        if not ids:
            return []
        params = {
            "ids": ",".join(str(work_item_id) for work_item_id in ids),
            "fields": "System.WorkItemType,System.Title",
        }
        payload = self._request("GET", f"{self._project_url()}/_apis/wit/workitems", params=params)
        items = []
        for entry in payload.get("value", []):
            fields = entry.get("fields") or {}
            items.append(
                WorkItemRef(
                    id=int(entry["id"]),
                    type=fields.get("System.WorkItemType"),
                    title=fields.get("System.Title"),
                    url=entry.get("url"),
                )
            )
        return items

    def add_work_item_comment(self, work_item_id: int, text: str) -> dict:
        url = f"{self._project_url()}/_apis/wit/workItems/{work_item_id}/comments"
        return self._request("POST", url, json={"text": text}, api_version=COMMENTS_API_VERSION)

    def update_work_item_fields(self, work_item_id: int, fields: dict[str, Any]) -> dict:
        patch = [{"op": "add", "path": f"/fields/{name}", "value": value} for name, value in fields.items()]
        return self._request(
            "PATCH",
            f"{self._project_url()}/_apis/wit/workitems/{work_item_id}",
            json=patch,
            headers={"Content-Type": "application/json-patch+json"},
        )

    def create_pull_request_hook(self, repository_id: str, project_id: str | None, consumer_url: str) -> dict:
        body = {
            "publisherId": "tfs",
            "eventType": PULL_REQUEST_CREATED_EVENT,
            "resourceVersion": "1.0",
            "consumerId": "webHooks",
            "consumerActionId": "httpRequest",
            "publisherInputs": {"repository": repository_id, "projectId": project_id},
            "consumerInputs": {"url": consumer_url},
        }
        return self._request("POST", f"{self._org_url}/_apis/hooks/subscriptions", json=body)

    def delete_hook(self, subscription_id: str) -> None:
        self._send("DELETE", f"{self._org_url}/_apis/hooks/subscriptions/{subscription_id}")

    def _project_url(self) -> str:
        if self._project:
            return f"{self._org_url}/{quote(self._project)}"
        return self._org_url

    def _pull_request_url(self, repository_id: str, pull_request_id: int) -> str:
        return f"{self._project_url()}/_apis/git/repositories/{repository_id}/pullRequests/{pull_request_id}"

    def _request(self, method: str, url: str, **kwargs) -> dict:
        response = self._send(method, url, **kwargs)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise AzureDevOpsError(
                f"Azure DevOps returned a non-JSON response for {method} {url}",
                status_code=response.status_code,
                response_text=response.text[:2000],
            ) from exc

    def _send(
        self,
        method: str,
        url: str,
        *,
        params: Optional[dict] = None,
        json: Any = None,
        headers: Optional[dict] = None,
        api_version: str = API_VERSION,
    ) -> httpx.Response:
        query = {"api-version": api_version}
        if params:
            query.update(params)
        merged_headers = dict(self._headers)
        if headers:
            merged_headers.update(headers)
        try:
            response = self._http.request(method, url, params=query, json=json, headers=merged_headers)
        except httpx.HTTPError as exc:
            raise AzureDevOpsError(f"{method} {url} failed: {exc}") from exc
        if response.status_code >= 400:
            _logger.debug("Azure DevOps error response for %s %s: %s", method, url, response.text)
            raise AzureDevOpsError(
                f"{method} {url} failed with status {response.status_code}",
                status_code=response.status_code,
                response_text=response.text[:2000],
            )
        return response

    @staticmethod
    def _to_commit(entry: dict) -> CommitInfo:
        author = entry.get("author") or {}
        return CommitInfo(
            commit_id=entry.get("commitId") or "",
            message=entry.get("comment") or "",
            author=author.get("name"),
            email=author.get("email"),
            timestamp=author.get("date"),
        )


ClientFactory = Callable[..., AzureDevOpsClient]


def client_factory(http_client: httpx.Client) -> ClientFactory:
    """Bind a shared HTTP connection pool into per-call client construction."""

    def build(org_url: str, token: str, project: str | None = None) -> AzureDevOpsClient:
        return AzureDevOpsClient(org_url, token, project=project, http_client=http_client)

    return build
