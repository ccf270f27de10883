"""Decides whether a pull request event is a bug fix worth analysing."""

from __future__ import annotations

from typing import Callable, Sequence

from rca_service.models.domain import PullRequestEvent, WorkItemRef
from rca_service.telemetry import ActivityLog

WorkItemLookup = Callable[[PullRequestEvent], Sequence[WorkItemRef]]

PROTECTED_BRANCH_SUFFIXES = ("/main", "/master")
BUG_KEYWORD = "bug"
BUG_WORK_ITEM_TYPES = frozenset({"bug", "issue"})


def passes_branch_gate(event: PullRequestEvent) -> bool:
    return event.target_branch.endswith(PROTECTED_BRANCH_SUFFIXES)


def mentions_bug(event: PullRequestEvent) -> bool:
    fields = (event.title, event.description, event.source_branch)
    return any(BUG_KEYWORD in (value or "").lower() for value in fields)


class BugClassifier:
    """Branch gate, then text heuristic, then linked work item types."""

    def __init__(self, activity: ActivityLog | None = None) -> None:
        self._activity = activity or ActivityLog()

    def classify(self, event: PullRequestEvent, work_item_lookup: WorkItemLookup) -> bool:
        if not passes_branch_gate(event):
            return False
        if mentions_bug(event):
            return True
        try:
            work_items = work_item_lookup(event)
        except Exception as exc:
            self._activity.warn(
                f"Work item lookup failed for PR #{event.pull_request_id}; treating as no match",
                {"error": str(exc), "repository_id": event.repository_id},
            )
            return False
        return any((item.type or "").lower() in BUG_WORK_ITEM_TYPES for item in work_items)
