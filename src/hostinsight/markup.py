"""Renders the model's markdown-flavoured answer as escaped HTML.

Only the dialect the model is asked to produce is understood: ATX headings,
``**bold**``, ``*italic*``, ``* `` bullet lists, blank-line separated
paragraphs and single line breaks.
"""

from __future__ import annotations

import re

NO_RESPONSE = "<p>No response received.</p>"

_NEWLINES = re.compile(r"\r\n|\r")
# Longest marker first so "### x" never renders as "#" plus text.
_HEADINGS = (
    (re.compile(r"(?m)^### (.*?)$"), r"<h3>\1</h3>"),
    (re.compile(r"(?m)^## (.*?)$"), r"<h2>\1</h2>"),
    (re.compile(r"(?m)^# (.*?)$"), r"<h1>\1</h1>"),
)
_HEADING_LINE = re.compile(r"^<h([1-6])>.*</h\1>$")
_BOLD = re.compile(r"\*\*(.*?)\*\*")
# An italic span never opens on whitespace, which keeps "* " bullets intact.
_ITALIC = re.compile(r"\*(?![\s*])(.+?)\*")
_BLOCK_SEPARATOR = re.compile(r"\n\s*\n")
_EMPTY_LIST = re.compile(r"<ul>\s*</ul>")
_EMPTY_PARAGRAPH = re.compile(r"<p>\s*</p>")
_BLOCK_TAG = r"</?(?:h[1-6]|ul|li|p)>"
_BREAK_BEFORE_BLOCK = re.compile(r"<br>\s*(" + _BLOCK_TAG + ")")
_BREAK_AFTER_BLOCK = re.compile("(" + _BLOCK_TAG + r")\s*<br>")

_PAGE = (
    "<html><body style='font-family: Segoe UI, sans-serif; font-size:14px; padding:10px; line-height:1.4;'>"
    "<h2 style='color:#0078D7; border-bottom:2px solid #0078D7; padding-bottom:5px;'>[AI System Insight]</h2>"
    "<div style='margin-top:15px;'>{body}</div>"
    "<hr style='margin:20px 0; border:1px solid #ddd;'>"
    "<p style='color:#666; font-style:italic;'>[Analysis provided by {source}]</p>"
    "</body></html>"
)


def escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def render_markup(raw: str | None) -> str:
    """Convert ``raw`` model output to an HTML fragment."""
    if raw is None or not raw.strip():
        return NO_RESPONSE

    html = escape(raw.strip())
    html = _NEWLINES.sub("\n", html)
    for pattern, replacement in _HEADINGS:
        html = pattern.sub(replacement, html)
    html = _BOLD.sub(r"<strong>\1</strong>", html)
    html = _ITALIC.sub(r"<em>\1</em>", html)
    html = _render_blocks(html)

    html = html.replace("\n", "<br>\n")
    html = _BREAK_BEFORE_BLOCK.sub(r"\1", html)
    html = _BREAK_AFTER_BLOCK.sub(r"\1", html)
    return html


def render_page(raw: str | None, source: str = "Gemini") -> str:
    """Render ``raw`` and wrap it in the standalone insight page."""
    return _PAGE.format(body=render_markup(raw), source=escape(source))


def _is_bullet(line: str) -> bool:
    return line.strip().startswith("* ")


def _render_blocks(text: str) -> str:
    blocks = []
    for block in _BLOCK_SEPARATOR.split(text):
        block = block.strip()
        if not block:
            continue
        lines = block.split("\n")
        if any(_is_bullet(line) for line in lines):
            blocks.append(_render_list(lines))
        else:
            blocks.append(_render_paragraph(lines))

    html = "\n\n".join(blocks)
    html = _EMPTY_LIST.sub("", html)
    return _EMPTY_PARAGRAPH.sub("", html)


def _render_list(lines: list[str]) -> str:
    """
    Render a block containing bullets.

    A line without a bullet closes the current list, is emitted on its own
    and a new list is opened for the bullets that follow. Lists left empty
    by this are removed afterwards.
    """
    parts = ["<ul>"]
    for line in lines:
        line = line.strip()
        if line.startswith("* "):
            parts.append(f"<li>{line[2:].strip()}</li>")
        elif _HEADING_LINE.match(line):
            parts.append(f"</ul>{line}<ul>")
        elif line:
            parts.append(f"</ul><p>{line}</p><ul>")
    parts.append("</ul>")
    return "".join(parts)


def _render_paragraph(lines: list[str]) -> str:
    parts = []
    pending: list[str] = []
    for line in lines:
        if _HEADING_LINE.match(line.strip()):
            if pending:
                parts.append("<p>" + "\n".join(pending) + "</p>")
                pending = []
            parts.append(line.strip())
        else:
            pending.append(line)
    if pending:
        parts.append("<p>" + "\n".join(pending) + "</p>")
    return "".join(parts)
