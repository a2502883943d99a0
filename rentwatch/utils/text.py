# rentwatch/utils/text.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import html as _html_mod
import re
from typing import Optional

from bs4 import BeautifulSoup

# ----------------------------- Basics ----------------------------- #

_WS_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<[^>]+>")
_PARTIAL_ENTITY_RE = re.compile(r"&[#a-zA-Z0-9]{0,8}$")
_PARTIAL_TAG_RE = re.compile(r"<[^>]*$")
_OPEN_TAG_RE = re.compile(r"<(b|i|a)\b[^>]*>")


def clean_text(s: Optional[str]) -> str:
    """Collapse runs of whitespace and trim."""
    if not s:
        return ""
    return _WS_RE.sub(" ", s).strip()


def strip_tags(s: Optional[str]) -> str:
    """
    Drop markup from a small HTML fragment and unescape entities.
    Fragments only: full pages go through html_to_text.
    """
    if not s:
        return ""
    return clean_text(_html_mod.unescape(_TAG_RE.sub(" ", s)))


def html_to_text(raw: Optional[str]) -> str:
    """Visible text of a whole page, without scripts/styles, whitespace collapsed."""
    if not raw:
        return ""
    soup = BeautifulSoup(raw, "html.parser")
    for tnode in soup(["script", "style", "noscript", "svg"]):
        tnode.decompose()
    return clean_text(soup.get_text(" ", strip=True))


def short(s: str, n: int = 42) -> str:
    """Shorten with "..." for log lines."""
    if not s:
        return s
    return s if len(s) <= n else s[: n - 3] + "..."


def truncate_hard(s: str, n: int) -> str:
    """
    Cut to at most n characters, no word-boundary handling.
    A trailing half-cut HTML entity (``&am``) or tag (``<a hr``) is dropped,
    and so is a <b>, <i> or <a> whose closing tag fell past the cut, together
    with everything after it. Telegram rejects the message otherwise.
    """
    if n <= 0:
        return ""
    if len(s) <= n:
        return s
    s = _PARTIAL_ENTITY_RE.sub("", _PARTIAL_TAG_RE.sub("", s[:n]))
    for m in reversed(list(_OPEN_TAG_RE.finditer(s))):
        if "</%s>" % m.group(1) not in s[m.end():]:
            s = s[:m.start()]
    return s


def html_escape(s: str) -> str:
    """
    Minimal escape for text content (not for attribute values).
    Enough for Telegram's HTML parse mode.
    """
    return (s or "").replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def html_attr_escape(s: str) -> str:
    """Escape for attribute values such as href="..."."""
    s = html_escape(s or "")
    s = s.replace('"', "&quot;").replace("'", "&#39;")
    return s
