from __future__ import annotations

from rca_service.services.markup import has_structure, render_email_html, render_work_item_html


def test_plain_text_wrapped_in_pre_wrap_block():
    html = render_work_item_html("Just a sentence.\nAnd <another>.")
    assert html == '<div style="white-space: pre-wrap;">Just a sentence.\nAnd &lt;another&gt;.</div>'


def test_structured_report_is_converted():
    markdown = "\n".join(
        [
            "## 🔍 Root Cause Analysis",
            "**Category**: Code",
            "",
            "- first `item`",
            "- second",
            "",
            "```python",
            "if cart is None:",
            "```",
        ]
    )

    html = render_work_item_html(markdown)

    assert "<h3>🔍 Root Cause Analysis</h3>" in html
    assert "<p><b>Category</b>: Code</p>" in html
    assert "<ul><li>first <code>item</code></li><li>second</li></ul>" in html
    assert "<pre><code>if cart is None:</code></pre>" in html


def test_unterminated_fence_is_closed():
    html = render_work_item_html("```\nx < 1")
    assert html.endswith("<pre><code>x &lt; 1</code></pre>")


def test_has_structure():
    assert has_structure("# Title")
    assert has_structure("text with **bold**")
    assert not has_structure("plain text only")


def test_email_html_links_pull_request():
    html = render_email_html("**Summary**: fixed", "https://dev.azure.com/acme/Shop/_git/checkout/pullrequest/42")
    assert '<a href="https://dev.azure.com/acme/Shop/_git/checkout/pullrequest/42">' in html
    assert "<b>Summary</b>: fixed" in html


def test_email_html_escapes_link_once_and_keeps_report_markup():
    url = 'https://dev.azure.com/acme/Shop/_git/checkout/pullrequest/42?a=1&b="><script>'
    html = render_email_html("## Summary\n- uses `<T>` generics", url)

    assert "<script>" not in html
    assert 'href="https://dev.azure.com/acme/Shop/_git/checkout/pullrequest/42?a=1&amp;b=&#34;&gt;&lt;script&gt;"' in html
    assert "<h3>Summary</h3>" in html
    assert "<code>&lt;T&gt;</code>" in html
    assert "&amp;lt;" not in html
