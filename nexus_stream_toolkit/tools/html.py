"""Relay envelope unwrapping and HTML to plain text conversion."""

from __future__ import annotations

import json

from bs4 import BeautifulSoup

# Non-content elements dropped before extracting text.
STRIPPED_TAGS = ("script", "style", "svg", "path", "noscript", "footer", "nav", "header")

_ENVELOPE_KEYS = ("contents", "content", "data")


def extract_html_from_relay(raw: str) -> str:
    """Return the page HTML from a relay response body.

    Relays either answer with the raw page or with a JSON envelope carrying it
    under ``contents``, ``content`` or ``data`` (first string value wins).
    """
    if not raw:
        return ""
    try:
        parsed = json.loads(raw)
    except ValueError:
        return raw
    if isinstance(parsed, dict):
        for key in _ENVELOPE_KEYS:
            value = parsed.get(key)
            if isinstance(value, str):
                return value
    return raw


def collapse_whitespace(text: str) -> str:
    return " ".join(text.split())


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(STRIPPED_TAGS + ("head",)):
        tag.decompose()
    root = soup.body or soup
    return collapse_whitespace(root.get_text(" "))
