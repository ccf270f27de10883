"""Delivers a generated report to the review thread, linked work items and email."""

from __future__ import annotations

import traceback
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable

from rca_service.azure.devops_client import AzureDevOpsClient
from rca_service.models.domain import PullRequestEvent, Report, SinkResult, UserSettings
from rca_service.services.mailer import Mailer
from rca_service.services.markup import render_email_html, render_work_item_html
from rca_service.telemetry import ActivityLog, increment_distribution_failure

COMMENT_SINK = "comment"
WORK_ITEMS_SINK = "work_items"
EMAIL_SINK = "email"


def is_valid_email(address: str | None) -> bool:
    return bool(address) and "@" in address


def resolve_recipients(
    user_settings: UserSettings,
    author_email: str | None,
    fallback_email: str | None,
) -> list[str]:
    """Deduplicated, order-preserving recipient list for the report email."""

    candidates: list[str] = list(user_settings.notification_emails)
    if user_settings.auto_detect_developer_enabled and author_email:
        candidates.append(author_email)

    recipients: list[str] = []
    seen: set[str] = set()
    for address in candidates:
        cleaned = address.strip()
        if is_valid_email(cleaned) and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            recipients.append(cleaned)

    if not recipients and fallback_email and is_valid_email(fallback_email.strip()):
        recipients.append(fallback_email.strip())
    return recipients


def comment_body(report: Report, event: PullRequestEvent, user_settings: UserSettings) -> str:
    if user_settings.auto_detect_developer_enabled and is_valid_email(event.author_email):
        return f"@{event.author_email}\n\n{report.body_text}"
    return report.body_text


@dataclass
class DistributionRequest:
    event: PullRequestEvent
    report: Report
    user_settings: UserSettings
    client: AzureDevOpsClient


class DistributionFanout:
    """Runs the three sinks concurrently; each one captures its own failure."""

    def __init__(
        self,
        mailer: Mailer,
        *,
        root_cause_field: str = "Microsoft.VSTS.CMMI.RootCause",
        fallback_email: str | None = None,
        activity: ActivityLog | None = None,
    ) -> None:
        self._mailer = mailer
        self._root_cause_field = root_cause_field
        self._fallback_email = fallback_email
        self._activity = activity or ActivityLog()

    def distribute(self, request: DistributionRequest) -> list[SinkResult]:
        sinks: list[tuple[str, Callable[[DistributionRequest], SinkResult]]] = [
            (COMMENT_SINK, self.post_comment),
            (WORK_ITEMS_SINK, self.post_work_items),
            (EMAIL_SINK, self.send_email),
        ]
        with ThreadPoolExecutor(max_workers=len(sinks), thread_name_prefix="rca-sink") as executor:
            futures = [(name, executor.submit(self._isolated, name, sink, request)) for name, sink in sinks]
            return [future.result() for _, future in futures]

    def post_comment(self, request: DistributionRequest) -> SinkResult:
        event = request.event
        request.client.create_thread(
            event.repository_id,
            event.pull_request_id,
            comment_body(request.report, event, request.user_settings),
        )
        self._activity.info(f"RCA posted for PR #{event.pull_request_id}")
        return SinkResult(sink=COMMENT_SINK, succeeded=True)

    def post_work_items(self, request: DistributionRequest) -> SinkResult:
        event = request.event
        work_items = request.client.get_linked_work_items(event.repository_id, event.pull_request_id)
        if not work_items:
            self._activity.info(f"No linked work items found for PR #{event.pull_request_id}")
            return SinkResult(sink=WORK_ITEMS_SINK, succeeded=True, skipped=True, detail="no linked work items")

        self._activity.info(f"Found {len(work_items)} linked work items. Posting RCA...")
        rendered = render_work_item_html(request.report.body_text)
        failures = list(self._post_each(request.client, (item.id for item in work_items), rendered, request.report))
        if failures:
            return SinkResult(sink=WORK_ITEMS_SINK, succeeded=False, detail="; ".join(failures))
        return SinkResult(sink=WORK_ITEMS_SINK, succeeded=True, detail=f"{len(work_items)} work items updated")

    def send_email(self, request: DistributionRequest) -> SinkResult:
        event = request.event
        if not request.user_settings.send_emails_enabled:
            self._activity.info(f"Email disabled by user settings for PR #{event.pull_request_id}")
            return SinkResult(sink=EMAIL_SINK, succeeded=True, skipped=True, detail="disabled")

        recipients = resolve_recipients(request.user_settings, event.author_email, self._fallback_email)
        if not recipients:
            self._activity.warn(f"Could not find valid email for user {event.author_name or event.author_id}, skipping email.")
            return SinkResult(sink=EMAIL_SINK, succeeded=True, skipped=True, detail="no valid recipient")

        subject = f"RCA Analysis for PR {event.pull_request_url}"
        self._mailer.send(recipients, subject, render_email_html(request.report.body_text, event.pull_request_url))
        self._activity.info(f"Email sent to {', '.join(recipients)}")
        return SinkResult(sink=EMAIL_SINK, succeeded=True, detail=", ".join(recipients))

    def _post_each(
        self,
        client: AzureDevOpsClient,
        work_item_ids: Iterable[int],
        rendered: str,
        report: Report,
    ) -> Iterable[str]:
        for work_item_id in work_item_ids:
            try:
                client.add_work_item_comment(work_item_id, rendered)
            except Exception as exc:
                self._activity.error(f"Error posting comment to Work Item {work_item_id}", self._error_details(exc))
                yield f"comment on #{work_item_id}: {exc}"
                continue
            if report.category is None:
                continue
            try:
                client.update_work_item_fields(work_item_id, {self._root_cause_field: report.category.value})
            except Exception as exc:
                self._activity.error(f"Error updating Work Item {work_item_id}", self._error_details(exc))
                yield f"field update on #{work_item_id}: {exc}"

    def _isolated(
        self,
        name: str,
        sink: Callable[[DistributionRequest], SinkResult],
        request: DistributionRequest,
    ) -> SinkResult:
        try:
            result = sink(request)
        except Exception as exc:
            self._activity.error(f"Distribution to {name} failed: {exc}", self._error_details(exc))
            result = SinkResult(sink=name, succeeded=False, detail=str(exc))
        if not result.succeeded:
            increment_distribution_failure(name)
        return result

    @staticmethod
    def _error_details(exc: Exception) -> dict:
        details = {"error": str(exc), "stack": traceback.format_exc()}
        response_text = getattr(exc, "response_text", None)
        if response_text:
            details["response"] = response_text
        return details
