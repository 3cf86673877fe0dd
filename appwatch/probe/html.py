"""Best-effort HTML signal extraction.

Pages served by local dev servers are often truncated, malformed or not
HTML at all.  Every helper here returns ``None`` (or an empty value)
instead of raising.
"""

from __future__ import annotations

import html
import re
from typing import Any

_TITLE_RE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)
_HEADING_RE = re.compile(r"<h[1-3][^>]*>(.*?)</h[1-3]>", re.IGNORECASE | re.DOTALL)
_META_RE = re.compile(r"<meta\b[^>]*>", re.IGNORECASE)
_ATTR_RE = re.compile(
    r"""([a-zA-Z_:.-]+)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+))"""
)
_SCRIPT_RE = re.compile(r"<(script|style)\b.*?</\1>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")

# metadata field -> meta tag names/properties, in order of preference
_META_FIELDS: dict[str, tuple[str, ...]] = {
    "application_name": ("application-name", "og:site_name", "apple-mobile-web-app-title"),
    "description": ("description", "og:description"),
    "category": ("category", "og:type", "generator"),
}


def extract_title(body: Any) -> str | None:
    """Return the stripped ``<title>`` text of *body*, or ``None``."""
    if not body or not isinstance(body, str):
        return None
    match = _TITLE_RE.search(body)
    if not match:
        return None
    title = html.unescape(match.group(1)).strip()
    return title or None


def _meta_attrs(tag: str) -> dict[str, str]:
    attrs: dict[str, str] = {}
    for m in _ATTR_RE.finditer(tag):
        value = m.group(2) if m.group(2) is not None else (
            m.group(3) if m.group(3) is not None else m.group(4)
        )
        attrs[m.group(1).lower()] = value
    return attrs


def extract_metadata(body: Any) -> dict[str, str | None]:
    """Pull application name/description/category from ``<meta>`` tags.

    Attribute order does not matter (``name`` before or after
    ``content``).  Missing fields are ``None``.
    """
    result: dict[str, str | None] = {key: None for key in _META_FIELDS}
    if not body or not isinstance(body, str):
        return result

    found: dict[str, str] = {}
    for tag in _META_RE.findall(body):
        attrs = _meta_attrs(tag)
        key = (attrs.get("name") or attrs.get("property") or "").lower()
        content = attrs.get("content")
        if key and content and key not in found:
            found[key] = html.unescape(content).strip()

    for field, candidates in _META_FIELDS.items():
        for candidate in candidates:
            if found.get(candidate):
                result[field] = found[candidate]
                break
    return result


def extract_headings(body: Any, limit: int = 5) -> list[str]:
    if not body or not isinstance(body, str):
        return []
    headings = []
    for raw in _HEADING_RE.findall(body)[:limit]:
        text = _SPACE_RE.sub(" ", _TAG_RE.sub(" ", raw)).strip()
        if text:
            headings.append(html.unescape(text))
    return headings


def extract_text(body: Any, limit: int = 2000) -> str:
    """Visible-ish text of *body*, whitespace-collapsed and truncated."""
    if not body or not isinstance(body, str):
        return ""
    text = _SCRIPT_RE.sub(" ", body)
    text = _TAG_RE.sub(" ", text)
    text = _SPACE_RE.sub(" ", html.unescape(text)).strip()
    return text[:limit]
