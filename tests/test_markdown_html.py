"""Tests for converters/markdown_html.py — README conversion."""

from gas_sync_mcp.converters.markdown_html import (
    MARKER,
    html_to_markdown,
    is_converted_markdown,
    markdown_to_html,
)


class TestMarkdownToHtml:
    """Tests for markdown_to_html()."""

    def test_document_carries_marker(self):
        html = markdown_to_html("# Hello\n")

        assert MARKER in html
        assert "<h1>Hello</h1>" in html
        assert "<title>README</title>" in html
        assert is_converted_markdown(html)

    def test_records_original_filename(self):
        html = markdown_to_html("text\n", "docs/README.md")
        assert 'content="docs/README.md"' in html

    def test_inline_formatting(self):
        html = markdown_to_html("Some **bold** and *soft* text.\n")
        assert "<strong>bold</strong>" in html
        assert "<em>soft</em>" in html


class TestHtmlToMarkdown:
    """Tests for html_to_markdown()."""

    def _round_trip(self, markdown: str) -> str:
        return html_to_markdown(markdown_to_html(markdown))

    def test_heading_and_paragraph(self):
        assert self._round_trip("# Hello\n\nSome **bold** text.\n") == (
            "# Hello\n\nSome **bold** text.\n"
        )

    def test_bullet_list(self):
        assert self._round_trip("- one\n- two\n") == "- one\n- two\n"

    def test_ordered_list(self):
        assert self._round_trip("1. first\n2. second\n") == "1. first\n2. second\n"

    def test_fenced_code(self):
        assert self._round_trip("```python\nprint(1)\n```\n") == (
            "```python\nprint(1)\n```\n"
        )

    def test_link(self):
        assert self._round_trip("[site](https://example.com)\n") == (
            "[site](https://example.com)\n"
        )

    def test_inline_code(self):
        assert self._round_trip("Run `git status` first.\n") == (
            "Run `git status` first.\n"
        )

    def test_unmarked_html_unchanged(self):
        html = "<html><body><p>hand written</p></body></html>"
        assert html_to_markdown(html) == html

    def test_empty_body(self):
        assert html_to_markdown(markdown_to_html("")) == ""
