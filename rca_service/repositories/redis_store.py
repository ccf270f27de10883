"""Redis-backed persistence layer for credentials, repository links and runs."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from redis import Redis

from rca_service.models.domain import (
    Credential,
    PipelineRun,
    RepositoryLink,
    UserAccount,
    UserSettings,
)

RUN_INDEX_KEY = "run:index"


def _timestamp(dt: datetime) -> float:
    return dt.timestamp()


class RedisStore:
    """Stores the collaborator records the pipeline reads and writes."""

    def __init__(
        self,
        client: Redis,
        *,
        run_ttl_seconds: int | None = None,
        max_indexed_runs: int | None = None,
    ) -> None:
        self._client = client
        self._run_ttl_seconds = run_ttl_seconds or None
        self._max_indexed_runs = max_indexed_runs

    def get_credential(self, subject_id: str) -> Optional[Credential]:
        data = self._client.get(self._credential_key(subject_id))
        if not data:
            return None
        return Credential.model_validate_json(data)

    def put_credential(self, credential: Credential) -> None:
        self._client.set(self._credential_key(credential.subject_id), credential.model_dump_json())

    def get_repository(self, repository_id: str) -> Optional[RepositoryLink]:
        data = self._client.get(self._repository_key(repository_id))
        if not data:
            return None
        return RepositoryLink.model_validate_json(data)

    def add_repository(self, link: RepositoryLink) -> None:
        previous = self.get_repository(link.repository_id)
        pipeline = self._client.pipeline()
        if previous and previous.owner_user_id != link.owner_user_id:
            pipeline.srem(self._user_repositories_key(previous.owner_user_id), link.repository_id)
        pipeline.set(self._repository_key(link.repository_id), link.model_dump_json())
        pipeline.sadd(self._user_repositories_key(link.owner_user_id), link.repository_id)
        pipeline.execute()

    def delete_repository(self, repository_id: str) -> None:
        link = self.get_repository(repository_id)
        pipeline = self._client.pipeline()
        pipeline.delete(self._repository_key(repository_id))
        if link:
            pipeline.srem(self._user_repositories_key(link.owner_user_id), repository_id)
        pipeline.execute()

    def list_user_repositories(self, user_id: str) -> list[RepositoryLink]:
        ids = sorted(self._client.smembers(self._user_repositories_key(user_id)))
        if not ids:
            return []
        pipeline = self._client.pipeline()
        for repository_id in ids:
            pipeline.get(self._repository_key(repository_id))
        links: list[RepositoryLink] = []
        for blob in pipeline.execute():
            if blob:
                links.append(RepositoryLink.model_validate_json(blob))
        return links

    def count_user_repositories(self, user_id: str) -> int:
        return int(self._client.scard(self._user_repositories_key(user_id)))

    def get_user(self, user_id: str) -> Optional[UserAccount]:
        data = self._client.get(self._user_key(user_id))
        if not data:
            return None
        return UserAccount.model_validate_json(data)

    def upsert_user(self, account: UserAccount) -> None:
        self._client.set(self._user_key(account.user_id), account.model_dump_json())

    def set_user_active(self, user_id: str, is_active: bool) -> UserAccount:
        account = self.get_user(user_id) or UserAccount(user_id=user_id)
        account.is_active = is_active
        self.upsert_user(account)
        return account

    def get_user_settings(self, user_id: str) -> UserSettings:
        data = self._client.get(self._settings_key(user_id))
        if not data:
            return UserSettings()
        return UserSettings.model_validate_json(data)

    def put_user_settings(self, user_id: str, user_settings: UserSettings) -> None:
        self._client.set(self._settings_key(user_id), user_settings.model_dump_json())

    def save_run(self, run: PipelineRun) -> None:
        """Persist a run; each save restarts its expiry and trims the index to the newest entries."""

        pipeline = self._client.pipeline()
        pipeline.set(self._run_key(run.run_id), run.model_dump_json(), ex=self._run_ttl_seconds)
        pipeline.zadd(RUN_INDEX_KEY, {run.run_id: _timestamp(run.created_at)})
        if self._max_indexed_runs:
            pipeline.zremrangebyrank(RUN_INDEX_KEY, 0, -(self._max_indexed_runs + 1))
        pipeline.execute()

    def get_run(self, run_id: str) -> Optional[PipelineRun]:
        data = self._client.get(self._run_key(run_id))
        if not data:
            return None
        return PipelineRun.model_validate_json(data)

    def list_recent_runs(self, limit: int = 50) -> list[PipelineRun]:
        ids = self._client.zrevrange(RUN_INDEX_KEY, 0, max(limit, 1) - 1)
        if not ids:
            return []
        pipeline = self._client.pipeline()
        for run_id in ids:
            pipeline.get(self._run_key(run_id))
        return [PipelineRun.model_validate_json(blob) for blob in pipeline.execute() if blob]

    @staticmethod
    def _credential_key(subject_id: str) -> str:
        return f"credential:{subject_id}"

    @staticmethod
    def _repository_key(repository_id: str) -> str:
        return f"repository:{repository_id}"

    @staticmethod
    def _user_repositories_key(user_id: str) -> str:
        return f"user:{user_id}:repositories"

    @staticmethod
    def _user_key(user_id: str) -> str:
        return f"user:{user_id}"

    @staticmethod
    def _settings_key(user_id: str) -> str:
        return f"user:{user_id}:settings"

    @staticmethod
    def _run_key(run_id: str) -> str:
        return f"run:{run_id}"
