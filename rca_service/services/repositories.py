"""Connecting and disconnecting repositories and their service hook subscriptions."""

from __future__ import annotations

from rca_service.azure.devops_client import ClientFactory
from rca_service.models.domain import RepositoryLink, parse_org_url
from rca_service.repositories.redis_store import RedisStore
from rca_service.services.credentials import CredentialManager
from rca_service.services.exceptions import AzureDevOpsError, PlanLimitError, RepositoryNotFoundError
from rca_service.telemetry import ActivityLog

DEFAULT_PLAN_LIMITS: dict[str, int | None] = {
    "free": None,
    "standard": None,
    "pro": None,
}


class PlanLimits:
    """Answers whether a user may connect another repository. ``None`` means unlimited."""

    def __init__(self, store: RedisStore, limits: dict[str, int | None] | None = None) -> None:
        self._store = store
        self._limits = {**DEFAULT_PLAN_LIMITS, **(limits or {})}

    def limit_for(self, plan_id: str) -> int | None:
        return self._limits.get(plan_id, self._limits["free"])

    def may_connect_another(self, user_id: str) -> bool:
        account = self._store.get_user(user_id)
        limit = self.limit_for(account.plan_id if account else "free")
        if limit is None:
            return True
        return self._store.count_user_repositories(user_id) < limit


class RepositoryService:
    """Registers repositories with the service and keeps their hooks in sync."""

    def __init__(
        self,
        store: RedisStore,
        credentials: CredentialManager,
        plan_limits: PlanLimits,
        client_factory: ClientFactory,
        *,
        webhook_url: str,
        activity: ActivityLog | None = None,
    ) -> None:
        self._store = store
        self._credentials = credentials
        self._plan_limits = plan_limits
        self._client_factory = client_factory
        self._webhook_url = webhook_url
        self._activity = activity or ActivityLog()

    def list_connected(self, user_id: str) -> list[RepositoryLink]:
        return self._store.list_user_repositories(user_id)

    def list_remote_repositories(self, user_id: str, org_url: str) -> list[dict]:
        token = self._credentials.get_valid_token(user_id)
        return self._client_factory(org_url, token).list_repositories()

    def connect(
        self,
        user_id: str,
        org_url: str,
        repository_id: str,
        display_name: str,
        project_id: str | None = None,
        web_url: str | None = None,
    ) -> RepositoryLink:
        if not self._plan_limits.may_connect_another(user_id):
            raise PlanLimitError("Plan limit reached. Please upgrade to add more repositories.")

        token = self._credentials.get_valid_token(user_id)
        client = self._client_factory(org_url, token)
        try:
            subscription = client.create_pull_request_hook(repository_id, project_id, self._webhook_url)
        except AzureDevOpsError as exc:
            self._activity.error(
                "Failed to create service hook in Azure DevOps",
                {"repository_id": repository_id, "status": exc.status_code, "response": exc.response_text},
            )
            raise

        link = RepositoryLink(
            repository_id=repository_id,
            owner_user_id=user_id,
            display_name=display_name,
            webhook_id=subscription.get("id"),
            org_url=client.org_url,
            project_id=project_id,
            web_url=web_url,
        )
        self._store.add_repository(link)
        self._activity.info(f"Connected repository {display_name} for user {user_id}")
        return link

    def disconnect(self, user_id: str, repository_id: str) -> None:
        link = self._store.get_repository(repository_id)
        if link is None:
            raise RepositoryNotFoundError(f"Repository {repository_id} not found")
        if link.owner_user_id != user_id:
            raise PermissionError("Repository belongs to another user")

        if link.webhook_id:
            self._delete_hook(link)
        self._store.delete_repository(repository_id)
        self._activity.info(f"Disconnected repository {link.display_name} for user {user_id}")

    def _delete_hook(self, link: RepositoryLink) -> None:
        org_url = link.org_url or parse_org_url(link.web_url)
        if not org_url:
            self._activity.warn(
                f"No organisation URL stored for {link.display_name}; service hook {link.webhook_id} left in place",
            )
            return
        try:
            token = self._credentials.get_valid_token(link.owner_user_id)
            self._client_factory(org_url, token).delete_hook(link.webhook_id)
        except Exception as exc:
            self._activity.error(
                f"Error deleting service hook {link.webhook_id} (best effort)",
                {"repository_id": link.repository_id, "error": str(exc)},
            )
