"""Collects the diff, commit history and discussion of a pull request under size budgets."""

from __future__ import annotations

import re

from rca_service.azure.devops_client import AzureDevOpsClient, ClientFactory
from rca_service.models.domain import AnalysisContext, CommitInfo
from rca_service.telemetry import ActivityLog

SOURCE_FILE_PATTERN = re.compile(r"\.(ts|js|py|java|cs|cpp|h|go|rs)$", re.IGNORECASE)
SKIPPED_FILE_PATTERN = re.compile(
    r"(package-lock\.json|yarn\.lock|pnpm-lock\.yaml|poetry\.lock|"
    r"\.(png|jpe?g|gif|svg|ico|pdf|zip|gz|jar|dll|exe))$",
    re.IGNORECASE,
)
FETCHABLE_CHANGE_TYPES = frozenset({"add", "edit"})

DIFF_HEADER = "Changed Files:\n"
TRUNCATION_MARKER = "\n...(Remaining files truncated due to size limit)...\n"
FILE_TRUNCATED_MARKER = "...(file truncated)\n"
FETCH_FAILED_MARKER = "(content fetch failed)\n"
LISTING_FAILED_MARKER = "(change listing failed)\n"


def is_source_file(path: str) -> bool:
    return bool(SOURCE_FILE_PATTERN.search(path))


def is_skipped_file(path: str) -> bool:
    return bool(SKIPPED_FILE_PATTERN.search(path))


def prioritise_changes(changes: list[dict]) -> list[dict]:
    """Stable sort putting recognised source files first."""

    return sorted(changes, key=lambda change: 0 if is_source_file(_change_path(change)) else 1)


def _change_path(change: dict) -> str:
    return (change.get("item") or {}).get("path") or ""


def _change_types(change: dict) -> set[str]:
    raw = str(change.get("changeType") or "")
    return {part.strip().lower() for part in raw.split(",") if part.strip()}


class ContextCollector:
    """Gathers the :class:`AnalysisContext` handed to the report generator."""

    def __init__(
        self,
        client_factory: ClientFactory,
        *,
        total_char_limit: int = 15000,
        file_char_limit: int = 3000,
        previous_commit_limit: int = 10,
        activity: ActivityLog | None = None,
    ) -> None:
        self._client_factory = client_factory
        self._total_limit = total_char_limit
        self._file_limit = file_char_limit
        self._previous_commit_limit = previous_commit_limit
        self._activity = activity or ActivityLog()

    def collect(
        self,
        repository_id: str,
        pull_request_id: int,
        token: str,
        org_url: str,
        project: str | None,
        *,
        target_branch: str | None = None,
        deep_analysis: bool = False,
    ) -> AnalysisContext:
        client = self._client_factory(org_url, token, project)
        diff_summary = self.build_diff_summary(client, repository_id, pull_request_id)
        commits = self._collect_commits(client, repository_id, pull_request_id)

        comments: list[str] = []
        previous_commits: list[CommitInfo] = []
        if deep_analysis:
            comments = self._collect_comments(client, repository_id, pull_request_id)
            if target_branch:
                previous_commits = self._collect_previous_commits(client, repository_id, target_branch)

        return AnalysisContext(
            diff_summary=diff_summary,
            commits=commits,
            comments=comments,
            previous_commits=previous_commits,
        )

    def build_diff_summary(self, client: AzureDevOpsClient, repository_id: str, pull_request_id: int) -> str:
        try:
            changes = client.get_latest_iteration_changes(repository_id, pull_request_id)
        except Exception as exc:
            self._activity.warn(
                f"Could not list changes for PR #{pull_request_id}",
                {"repository_id": repository_id, "error": str(exc)},
            )
            return DIFF_HEADER + LISTING_FAILED_MARKER

        summary = DIFF_HEADER
        for change in prioritise_changes(changes):
            if len(summary) >= self._total_limit:
                return summary + TRUNCATION_MARKER
            section = self._render_change(client, repository_id, change)
            room = self._total_limit - len(summary)
            if len(section) > room:
                return summary + section[:room] + TRUNCATION_MARKER
            summary += section
        return summary

    def _render_change(self, client: AzureDevOpsClient, repository_id: str, change: dict) -> str:
        path = _change_path(change)
        if is_skipped_file(path):
            return f"\n--- File: {path} (Skipped large/binary file) ---\n"

        change_label = str(change.get("changeType") or "unknown")
        section = f"\n--- File: {path} ({change_label}) ---\n"
        object_id = (change.get("item") or {}).get("objectId")
        if not object_id or not (_change_types(change) & FETCHABLE_CHANGE_TYPES):
            return section

        try:
            content = client.get_blob_text(repository_id, object_id)
        except Exception as exc:
            self._activity.warn(f"Failed to fetch content for {path}", {"error": str(exc)})
            return section + FETCH_FAILED_MARKER

        section += f"```\n{content[: self._file_limit]}\n```\n"
        if len(content) > self._file_limit:
            section += FILE_TRUNCATED_MARKER
        return section

    def _collect_commits(self, client: AzureDevOpsClient, repository_id: str, pull_request_id: int) -> list[CommitInfo]:
        try:
            return client.get_pull_request_commits(repository_id, pull_request_id)
        except Exception as exc:
            self._activity.warn(f"Failed to fetch commits for PR #{pull_request_id}", {"error": str(exc)})
            return []

    def _collect_comments(self, client: AzureDevOpsClient, repository_id: str, pull_request_id: int) -> list[str]:
        try:
            threads = client.get_pull_request_threads(repository_id, pull_request_id)
        except Exception as exc:
            self._activity.warn(f"Failed to fetch discussion for PR #{pull_request_id}", {"error": str(exc)})
            return []

        comments: list[str] = []
        for thread in threads:
            if thread.get("isDeleted"):
                continue
            for comment in thread.get("comments") or []:
                if comment.get("isDeleted") or not comment.get("content"):
                    continue
                if str(comment.get("commentType", "text")).lower() == "system":
                    continue
                author = (comment.get("author") or {}).get("displayName") or "Unknown"
                comments.append(f"[{author}]: {comment['content']}")
        return comments

    def _collect_previous_commits(self, client: AzureDevOpsClient, repository_id: str, branch: str) -> list[CommitInfo]:
        try:
            return client.get_branch_commits(repository_id, branch, self._previous_commit_limit)
        except Exception as exc:
            self._activity.warn(f"Failed to fetch previous commits on {branch}", {"error": str(exc)})
            return []
