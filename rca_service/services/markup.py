"""Presentation transforms from the Markdown report to sink-specific HTML."""

from __future__ import annotations

import html
import re
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

_HEADING = re.compile(r"^(#{1,6})\s+(.*)$")
_LIST_ITEM = re.compile(r"^\s*(?:[-*+]|\d+\.)\s+(.*)$")
_FENCE = re.compile(r"^\s*```")
_BOLD = re.compile(r"\*\*(.+?)\*\*")
_INLINE_CODE = re.compile(r"`([^`]+)`")

EMAIL_TEMPLATE = "report_email.html.jinja2"
_templates = Environment(
    loader=FileSystemLoader(str(Path(__file__).resolve().parent.parent / "templates")),
    autoescape=True,
    keep_trailing_newline=True,
)


def has_structure(markdown: str) -> bool:
    """True when the text carries any Markdown markers worth rendering."""

    for line in markdown.splitlines():
        if _HEADING.match(line) or _LIST_ITEM.match(line) or _FENCE.match(line) or _BOLD.search(line):
            return True
    return False


def _inline(text: str) -> str:
    escaped = html.escape(text, quote=False)
    escaped = _BOLD.sub(r"<b>\1</b>", escaped)
    return _INLINE_CODE.sub(r"<code>\1</code>", escaped)


def render_work_item_html(markdown: str) -> str:
    """Simplify a Markdown report into the HTML subset work item comments render.

    Headings, bullet lists, fenced code and bold/inline code are converted;
    anything else becomes paragraphs. Text without any of those markers is
    wrapped whole in a pre-wrapped block instead.
    """

    if not has_structure(markdown):
        return f'<div style="white-space: pre-wrap;">{html.escape(markdown, quote=False)}</div>'

    blocks: list[str] = []
    paragraph: list[str] = []
    list_items: list[str] = []
    code_lines: list[str] | None = None

    def flush_paragraph() -> None:
        if paragraph:
            blocks.append("<p>" + "<br>".join(paragraph) + "</p>")
            paragraph.clear()

    def flush_list() -> None:
        if list_items:
            blocks.append("<ul>" + "".join(f"<li>{item}</li>" for item in list_items) + "</ul>")
            list_items.clear()

    for line in markdown.splitlines():
        if code_lines is not None:
            if _FENCE.match(line):
                blocks.append("<pre><code>" + html.escape("\n".join(code_lines), quote=False) + "</code></pre>")
                code_lines = None
            else:
                code_lines.append(line)
            continue

        if _FENCE.match(line):
            flush_paragraph()
            flush_list()
            code_lines = []
            continue

        heading = _HEADING.match(line)
        if heading:
            flush_paragraph()
            flush_list()
            level = min(len(heading.group(1)) + 1, 6)
            blocks.append(f"<h{level}>{_inline(heading.group(2).strip())}</h{level}>")
            continue

        item = _LIST_ITEM.match(line)
        if item:
            flush_paragraph()
            list_items.append(_inline(item.group(1).strip()))
            continue

        if not line.strip():
            flush_paragraph()
            flush_list()
            continue

        flush_list()
        paragraph.append(_inline(line.strip()))

    if code_lines is not None:
        blocks.append("<pre><code>" + html.escape("\n".join(code_lines), quote=False) + "</code></pre>")
    flush_paragraph()
    flush_list()
    return "".join(blocks)


def render_email_html(report_text: str, pull_request_url: str) -> str:
    template = _templates.get_template(EMAIL_TEMPLATE)
    return template.render(pull_request_url=pull_request_url, report_html=render_work_item_html(report_text))
