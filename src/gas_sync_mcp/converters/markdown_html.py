"""Markdown <-> HTML conversion for README files.

Apps Script projects cannot hold ``.md`` files, so a local ``README.md``
is stored remotely as an HTML file.  Markdown is rendered with mistune and
wrapped in a small HTML document carrying a ``file-type`` marker; the
reverse direction extracts ``<body>`` and walks the tree with lxml.

HTML that lacks the marker was not produced by this module and is
returned untouched by ``html_to_markdown``.
"""

from __future__ import annotations

import re

import mistune
from lxml import etree
from lxml import html as lxml_html

MARKER = '<meta name="file-type" content="markdown-to-html">'

_BODY_PATTERN = re.compile(r"<body[^>]*>(.*?)</body>", re.IGNORECASE | re.DOTALL)

_markdown = mistune.create_markdown(
    escape=True,
    renderer="html",
    plugins=["strikethrough", "table"],
)

_DOCUMENT_TEMPLATE = """\
<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <meta name="original-filename" content="{filename}">
  {marker}
  <title>{title}</title>
</head>
<body>
{body}
</body>
</html>"""


def is_converted_markdown(content: str) -> bool:
    """Return True if *content* was produced by ``markdown_to_html``."""
    return 'name="file-type" content="markdown-to-html"' in content


def markdown_to_html(markdown: str, filename: str = "README.md") -> str:
    """Render Markdown and wrap it in a marked HTML document.

    Args:
        markdown: Markdown source text.
        filename: Original local filename, recorded in a ``<meta>`` tag.

    Returns:
        A complete HTML document string.
    """
    body = _markdown(markdown).strip()
    title = filename.rsplit("/", 1)[-1].removesuffix(".md")
    return _DOCUMENT_TEMPLATE.format(
        filename=filename, marker=MARKER, title=title, body=body
    )


def html_to_markdown(content: str) -> str:
    """Convert a marked HTML document back to Markdown.

    Content without the conversion marker (or without a ``<body>``) is
    returned unchanged.
    """
    if not is_converted_markdown(content):
        return content

    match = _BODY_PATTERN.search(content)
    if match is None:
        return content

    body = match.group(1).strip()
    if not body:
        return ""

    root = lxml_html.fragment_fromstring(body, create_parent="div")
    text = _render_blocks(root).strip()
    return re.sub(r"\n{3,}", "\n\n", text) + "\n"


# ---------------------------------------------------------------------------
# Block rendering
# ---------------------------------------------------------------------------


def _render_blocks(element: etree._Element, list_depth: int = 0) -> str:
    parts: list[str] = []
    if element.text and element.text.strip():
        parts.append(element.text.strip() + "\n\n")

    for child in element:
        if not isinstance(child.tag, str):
            # Comments and processing instructions
            if child.tail and child.tail.strip():
                parts.append(child.tail.strip() + "\n\n")
            continue
        parts.append(_render_block(child, list_depth))
        if child.tail and child.tail.strip():
            parts.append(child.tail.strip() + "\n\n")

    return "".join(parts)


def _render_block(el: etree._Element, list_depth: int) -> str:
    tag = el.tag.lower()

    match tag:
        case "h1" | "h2" | "h3" | "h4" | "h5" | "h6":
            level = int(tag[1])
            return f"{'#' * level} {_render_inline(el).strip()}\n\n"
        case "p":
            return f"{_render_inline(el).strip()}\n\n"
        case "pre":
            return _render_code_block(el)
        case "ul" | "ol":
            return _render_list(el, ordered=tag == "ol", depth=list_depth)
        case "blockquote":
            inner = _render_blocks(el, list_depth).strip()
            quoted = "\n".join(
                f"> {line}" if line else ">" for line in inner.splitlines()
            )
            return f"{quoted}\n\n"
        case "hr":
            return "---\n\n"
        case "div" | "section" | "article" | "main":
            return _render_blocks(el, list_depth)
        case "table":
            return _render_table(el)
        case _:
            return f"{_render_inline(el).strip()}\n\n"


def _render_code_block(el: etree._Element) -> str:
    code = el.find("code")
    lang = ""
    if code is not None:
        classes = code.get("class", "")
        for cls in classes.split():
            if cls.startswith("language-"):
                lang = cls.removeprefix("language-")
        text = code.text_content()
    else:
        text = el.text_content()
    return f"```{lang}\n{text.rstrip(chr(10))}\n```\n\n"


def _render_list(el: etree._Element, ordered: bool, depth: int) -> str:
    lines: list[str] = []
    indent = "  " * depth
    index = 1
    for item in el:
        if not isinstance(item.tag, str) or item.tag.lower() != "li":
            continue
        bullet = f"{index}." if ordered else "-"
        index += 1

        nested: list[str] = []
        inline_parts: list[str] = []
        if item.text:
            inline_parts.append(item.text)
        for child in item:
            if isinstance(child.tag, str) and child.tag.lower() in ("ul", "ol"):
                nested.append(
                    _render_list(
                        child, ordered=child.tag.lower() == "ol", depth=depth + 1
                    ).rstrip("\n")
                )
            elif isinstance(child.tag, str) and child.tag.lower() == "p":
                inline_parts.append(_render_inline(child))
            else:
                inline_parts.append(_render_inline_element(child))
            if child.tail:
                inline_parts.append(child.tail)

        text = " ".join("".join(inline_parts).split())
        lines.append(f"{indent}{bullet} {text}")
        lines.extend(nested)
    return "\n".join(lines) + "\n\n"


def _render_table(el: etree._Element) -> str:
    rows: list[list[str]] = []
    for tr in el.iter("tr"):
        cells = [
            _render_inline(cell).strip()
            for cell in tr
            if isinstance(cell.tag, str) and cell.tag.lower() in ("th", "td")
        ]
        rows.append(cells)
    if not rows:
        return ""
    width = max(len(r) for r in rows)
    rows = [r + [""] * (width - len(r)) for r in rows]
    out = [
        "| " + " | ".join(rows[0]) + " |",
        "| " + " | ".join("---" for _ in range(width)) + " |",
    ]
    out.extend("| " + " | ".join(r) + " |" for r in rows[1:])
    return "\n".join(out) + "\n\n"


# ---------------------------------------------------------------------------
# Inline rendering
# ---------------------------------------------------------------------------


def _render_inline(el: etree._Element) -> str:
    parts: list[str] = []
    if el.text:
        parts.append(el.text)
    for child in el:
        parts.append(_render_inline_element(child))
        if child.tail:
            parts.append(child.tail)
    return "".join(parts)


def _render_inline_element(el: etree._Element) -> str:
    if not isinstance(el.tag, str):
        return ""
    tag = el.tag.lower()
    inner = _render_inline(el)

    match tag:
        case "strong" | "b":
            return f"**{inner}**"
        case "em" | "i":
            return f"*{inner}*"
        case "del" | "s":
            return f"~~{inner}~~"
        case "code":
            return f"`{el.text_content()}`"
        case "a":
            href = el.get("href", "")
            return f"[{inner}]({href})"
        case "img":
            return f"![{el.get('alt', '')}]({el.get('src', '')})"
        case "br":
            return "  \n"
        case _:
            return inner
