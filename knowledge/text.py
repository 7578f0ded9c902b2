"""Helpers for turning stored page content into plain text."""

from __future__ import annotations

import re

from bs4 import BeautifulSoup

NOISE_TAGS = ("script", "style", "noscript", "template")

_WHITESPACE_RE = re.compile(r"\s+")


def html_to_text(html: str) -> str:
    """Extract visible text from ``html`` removing scripts and styles.

    Whitespace runs are collapsed to single spaces so that character offsets
    used by snippet generation stay meaningful.
    """

    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for element in soup(list(NOISE_TAGS)):
        element.decompose()
    text = soup.get_text(" ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def extract_title(html: str) -> str | None:
    """Return the document ``<title>`` or ``None`` when absent."""

    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    if soup.title is None:
        return None
    title = _WHITESPACE_RE.sub(" ", soup.title.get_text(" ")).strip()
    return title or None


def content_kind(content_type: str | None) -> str:
    """Classify a ``Content-Type`` header as ``html``, ``file`` or ``unhandled``."""

    main_type = (content_type or "").split(";")[0].strip().lower()
    if main_type == "text/html":
        return "html"
    if main_type.startswith("image/") or main_type.startswith("application/"):
        return "file"
    return "unhandled"
