from __future__ import annotations

from datetime import datetime, timedelta, timezone

import fakeredis

from rca_service.models import domain
from rca_service.models.domain import PipelineRun, PipelineState, RepositoryLink, UserSettings
from rca_service.repositories.redis_store import RUN_INDEX_KEY, RedisStore


def _run(run_id: str, offset: int) -> PipelineRun:
    timestamp = datetime(2025, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=offset)
    return PipelineRun(run_id=run_id, repository_id="R", pull_request_id=offset, created_at=timestamp, updated_at=timestamp)


def test_repository_registry_tracks_owner_index(store):
    store.add_repository(RepositoryLink(repository_id="A", owner_user_id="u", display_name="a"))
    store.add_repository(RepositoryLink(repository_id="B", owner_user_id="u", display_name="b"))

    assert store.count_user_repositories("u") == 2
    store.delete_repository("A")
    assert [link.repository_id for link in store.list_user_repositories("u")] == ["B"]
    assert store.get_repository("A") is None


def test_user_settings_default_when_missing(store):
    assert store.get_user_settings("nobody") == UserSettings()
    store.put_user_settings("u", UserSettings(send_emails_enabled=False))
    assert store.get_user_settings("u").send_emails_enabled is False


def test_set_user_active_creates_account(store):
    account = store.set_user_active("u", False)
    assert account.is_active is False
    assert store.get_user("u").is_active is False


def test_runs_listed_newest_first(store):
    store.save_run(_run("run_a", 1))
    store.save_run(_run("run_b", 2))
    updated = _run("run_a", 1)
    updated.state = PipelineState.DONE
    store.save_run(updated)

    assert [run.run_id for run in store.list_recent_runs()] == ["run_b", "run_a"]
    assert store.get_run("run_a").state == PipelineState.DONE
    assert store.get_run("missing") is None


def test_default_model_follows_configuration(store, monkeypatch):
    store.put_user_settings("pinned", UserSettings(ai_model="gpt-4o-mini"))
    monkeypatch.setattr(domain.settings, "default_ai_model", "gpt-4.1")

    assert store.get_user_settings("nobody").ai_model == "gpt-4.1"
    assert store.get_user_settings("pinned").ai_model == "gpt-4o-mini"


def test_runs_expire_and_index_is_trimmed():
    client = fakeredis.FakeRedis(decode_responses=True)
    store = RedisStore(client, run_ttl_seconds=3600, max_indexed_runs=2)

    for offset, run_id in enumerate(["run_a", "run_b", "run_c"]):
        store.save_run(_run(run_id, offset))

    assert 0 < client.ttl("run:run_c") <= 3600
    assert client.zcard(RUN_INDEX_KEY) == 2
    assert [run.run_id for run in store.list_recent_runs()] == ["run_c", "run_b"]


def test_runs_without_retention_never_expire(store):
    store.save_run(_run("run_a", 1))
    assert store._client.ttl("run:run_a") == -1
