"""
HTML to plain text conversion for feed item bodies.
"""

import html
import re

_DROP_BLOCKS = re.compile(r"<(script|style)\b.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_ANCHOR = re.compile(
    r"<a\b[^>]*?(?<![\w-])href\s*=\s*[\"']([^\"']*)[\"'][^>]*>(.*?)</a\s*>",
    re.IGNORECASE | re.DOTALL,
)
_LINE_BREAK = re.compile(r"<br\s*/?>", re.IGNORECASE)
_BLOCK_END = re.compile(r"</(p|div|h[1-6]|tr|table|ul|ol|blockquote|pre)\s*>", re.IGNORECASE)
_LIST_ITEM = re.compile(r"<li\b[^>]*>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")
_SPACES = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES = re.compile(r"\n{3,}")


def _render_anchor(match: "re.Match[str]") -> str:
    href = match.group(1).strip()
    label = _TAG.sub("", match.group(2)).strip()
    if not href or href.startswith("#") or href == label:
        return label
    if not label:
        return href
    return f"{label} ( {href} )"


def html_to_text(raw_html: str) -> str:
    """
    Converts an HTML fragment into readable plain text.

    Paragraphs and line breaks survive as newlines, list items become
    ``* `` bullets and links keep their target next to the label.
    Raises ValueError when given something that is not a string.
    """
    if not isinstance(raw_html, str):
        raise ValueError(f"Expected HTML text, got {type(raw_html).__name__}")
    if not raw_html:
        return ""

    text = _DROP_BLOCKS.sub("", raw_html)
    text = _ANCHOR.sub(_render_anchor, text)
    text = _LINE_BREAK.sub("\n", text)
    text = _BLOCK_END.sub("\n\n", text)
    text = _LIST_ITEM.sub("\n* ", text)
    text = _TAG.sub("", text)
    text = html.unescape(text)

    lines = [_SPACES.sub(" ", line).strip() for line in text.split("\n")]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()
