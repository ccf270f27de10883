"""Root cause report generation behind a never-raising contract."""

from __future__ import annotations

import re
import traceback
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from openai import AzureOpenAI, OpenAI

from rca_service.core.config import Settings, settings
from rca_service.models.domain import CommitInfo, Report, ReportCategory
from rca_service.telemetry import ActivityLog

CATEGORY_PATTERN = re.compile(r"\*\*Category\*\*:\s*\[?\s*([A-Za-z]+)")
DIFF_PROMPT_LIMIT = 10000

_CATEGORY_LOOKUP = {category.value.lower(): category for category in ReportCategory}


@dataclass
class ReportOptions:
    model: str = "gpt-4o"
    deep_thinking: bool = False
    comments: list[str] = field(default_factory=list)
    previous_commits: list[CommitInfo] = field(default_factory=list)


class ReportGenerator(Protocol):
    """Turns a diff and commit history into Markdown report text; must not raise."""

    def generate(self, diff: str, commits: Sequence[CommitInfo], options: ReportOptions) -> str:  # pragma: no cover
        ...


def extract_category(report_text: str) -> Optional[ReportCategory]:
    """Best-effort parse of the ``**Category**: <value>`` line."""

    match = CATEGORY_PATTERN.search(report_text or "")
    if not match:
        return None
    return _CATEGORY_LOOKUP.get(match.group(1).lower())


def build_report(report_text: str) -> Report:
    return Report(body_text=report_text, category=extract_category(report_text))


def build_prompt(diff: str, commits: Sequence[CommitInfo], options: ReportOptions) -> str:
    commit_lines = "\n".join(f"- {commit.message.strip()} (by {commit.author or 'unknown'})" for commit in commits)
    sections = [
        "You are an expert software engineer and debugger.",
        "A Pull Request has been opened to fix a bug.",
        "Your task is to analyze the code changes and the commit history to determine the Root Cause of the bug.",
        "",
        "Here is the Commit History of this PR:",
        commit_lines or "- (no commits returned)",
    ]
    if options.deep_thinking:
        if options.comments:
            sections += ["", "Here is the review discussion on the PR:", "\n".join(options.comments)]
        if options.previous_commits:
            history = "\n".join(
                f"- {commit.message.strip()} (by {commit.author or 'unknown'})" for commit in options.previous_commits
            )
            sections += ["", "Here are the most recent commits on the target branch before this PR:", history]
        sections += [
            "",
            "Reason step by step about how the defect was introduced, using the discussion and branch history "
            "where they help, before writing the report.",
        ]
    sections += [
        "",
        "Here is the Diff of the changes (The Fix):",
        "```diff",
        diff[:DIFF_PROMPT_LIMIT],
        "```",
        "",
        "Based on this, please provide a Root Cause Analysis (RCA) report.",
        "Structure your response as follows:",
        "## 🔍 Root Cause Analysis",
        "**Category**: [Code | Configuration | Deployment | Design]",
        "**Summary**: A brief summary of what the bug was.",
        "**Root Cause**: Explain the specific logic error, missing validation, or race condition that caused the issue.",
        "**The Fix**: Explain how the changes in this PR fix the issue.",
        "**Recommendations**: (Optional) Any suggestions to prevent this in the future.",
    ]
    return "\n".join(sections)


class OpenAIReportGenerator:
    """Generates reports with OpenAI or an Azure OpenAI deployment."""

    def __init__(
        self,
        client: OpenAI | None,
        *,
        deployment: str | None = None,
        max_tokens: int = 2048,
        activity: ActivityLog | None = None,
    ) -> None:
        self._client = client
        self._deployment = deployment
        self._max_tokens = max_tokens
        self._activity = activity or ActivityLog()

    @classmethod
    def from_settings(cls, config: Settings | None = None, activity: ActivityLog | None = None) -> "OpenAIReportGenerator":
        config = config or settings
        client: OpenAI | None = None
        if config.azure_openai_endpoint and config.azure_openai_api_key:
            client = AzureOpenAI(
                azure_endpoint=config.azure_openai_endpoint,
                api_key=config.azure_openai_api_key,
                api_version=config.azure_openai_api_version,
                timeout=config.http_timeout_seconds * 4,
            )
        elif config.openai_api_key:
            client = OpenAI(api_key=config.openai_api_key, timeout=config.http_timeout_seconds * 4)
        return cls(
            client,
            deployment=config.azure_openai_deployment if config.azure_openai_endpoint else None,
            max_tokens=config.report_max_tokens,
            activity=activity,
        )

    def generate(self, diff: str, commits: Sequence[CommitInfo], options: ReportOptions) -> str:
        if self._client is None:
            self._activity.error("Report generation is not configured: no OpenAI or Azure OpenAI key set")
            return "Error generating RCA. Report generation is not configured for this service."
        try:
            completion = self._client.chat.completions.create(
                model=self._deployment or options.model,
                messages=[{"role": "user", "content": build_prompt(diff, commits, options)}],
                max_tokens=self._max_tokens,
            )
            content = completion.choices[0].message.content
        except Exception as exc:
            self._activity.error(
                f"AI generation failed: {exc}",
                {"model": self._deployment or options.model, "stack": traceback.format_exc()},
            )
            return f"Error generating RCA. Please check logs. Details: {exc}"
        return content or "Failed to generate RCA."
