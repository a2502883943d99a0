# rentwatch/services/extractors.py
# -*- coding: utf-8 -*-
"""
Field extraction from a listing detail page.

Every field is an ordered tuple of named strategies. A strategy takes a
``Page`` and returns a value or None; ``first_match`` walks the tuple and the
first non-None value wins. Order inside each tuple is the priority:

    JSON embedded in the page > labelled DOM fragment > meta tag > text heuristic

Extractors never raise. A miss is None and callers must cope with it.
"""
from __future__ import annotations

import json
import logging
import re
from functools import cached_property
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar, Union

from ..models import Ad
from ..utils.text import clean_text, html_to_text, strip_tags
from .phones import PhonePolicy

LOG = logging.getLogger("extractors")

T = TypeVar("T")

DEFAULT_TITLE = "Объявление на Lalafo"
MAX_IMAGES = 10
MAX_DESCRIPTION = 1500


class Page:
    """Raw HTML of one page plus its lazily computed plain text."""

    def __init__(self, html: str):
        self.html = html or ""

    @cached_property
    def text(self) -> str:
        return html_to_text(self.html)


Strategy = Tuple[str, Callable[[Page], Optional[T]]]
PageLike = Union[str, Page]


def as_page(src: PageLike) -> Page:
    return src if isinstance(src, Page) else Page(src)


def first_match(strategies: Iterable[Strategy], src: PageLike) -> Optional[T]:
    page = as_page(src)
    for name, fn in strategies:
        value = fn(page)
        if value is not None:
            LOG.debug("strategy hit: %s", name)
            return value
    return None


def _search(pattern: Union[str, re.Pattern], text: str, flags: int = 0) -> Optional[str]:
    m = re.search(pattern, text, flags) if isinstance(pattern, str) else pattern.search(text)
    if m and m.group(1) and m.group(1).strip():
        return m.group(1).strip()
    return None


def _json_string(html: str, key: str) -> Optional[str]:
    """Value of the first "key": "..." pair found anywhere in the page, JSON-unescaped."""
    m = re.search(r'"%s"\s*:\s*"((?:[^"\\]|\\.)*)"' % re.escape(key), html)
    if not m:
        return None
    try:
        value = json.loads('"' + m.group(1) + '"')
    except ValueError:
        value = m.group(1)
    value = clean_text(value)
    return value or None


# ---------------------------------------------------------------------------
# Price
# ---------------------------------------------------------------------------

# grouped digits ("45 000", "45 000") or a plain run, then the currency code
_PRICE_TEXT_RE = re.compile(r"(?<![\d.,])(\d{1,3}(?:\s\d{3})+|\d+)\s*KGS\b")


def price_from_text(text: str) -> Optional[int]:
    m = _PRICE_TEXT_RE.search(text or "")
    if not m:
        return None
    return int(re.sub(r"\s+", "", m.group(1)))


def _price_json(page: Page) -> Optional[int]:
    for pat in (
        r'"price"\s*:\s*"?(\d[\d\s]*)"?\s*,\s*"(?:price_?)?[cC]urrency"\s*:\s*"KGS"',
        r'"(?:price_?)?[cC]urrency"\s*:\s*"KGS"\s*,\s*"price"\s*:\s*"?(\d[\d\s]*)"?',
    ):
        raw = _search(pat, page.html)
        if raw:
            return int(re.sub(r"\s+", "", raw))
    return None


def _price_testid(page: Page) -> Optional[int]:
    frag = _search(r'data-testid="ad-price"[^>]*>([\s\S]{0,300}?)</(?:div|span|p)>', page.html)
    return price_from_text(strip_tags(frag)) if frag else None


def _price_meta(page: Page) -> Optional[int]:
    if not re.search(r'<meta[^>]+(?:itemprop|property)="(?:priceCurrency|product:price:currency)"[^>]+content="KGS"',
                     page.html, re.I):
        return None
    raw = _search(r'<meta[^>]+(?:itemprop|property)="(?:price|product:price:amount)"[^>]+content="(\d[\d\s.]*)"',
                  page.html, re.I)
    if not raw:
        return None
    return int(re.sub(r"\s+", "", raw).split(".")[0])


def _price_text(page: Page) -> Optional[int]:
    return price_from_text(page.text)


PRICE_STRATEGIES: Tuple[Strategy, ...] = (
    ("json", _price_json),
    ("testid", _price_testid),
    ("meta", _price_meta),
    ("text", _price_text),
)


def parse_price_kgs(src: PageLike) -> Optional[int]:
    return first_match(PRICE_STRATEGIES, src)


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------

_ROOM_WORD = r"(?:комнатн[а-яё]*|комнат[аы]?(?![а-яё]))"
_ROOMS_DIGIT_WORD_RE = re.compile(r"(?<!\d)(\d{1,2})\s*-?\s*(?:х\s*)?" + _ROOM_WORD, re.I)


def _rooms_json(page: Page) -> Optional[int]:
    raw = _search(r'"(?:rooms|numberOfRooms|room_count)"\s*:\s*"?(\d{1,2})"?', page.html)
    n = int(raw) if raw else 0
    return n if n > 0 else None


def _rooms_label(page: Page) -> Optional[int]:
    raw = _search(r"Количество комнат\s*:?\s*(\d{1,2})(?!\d)", page.text, re.I)
    n = int(raw) if raw else 0
    return n if n > 0 else None


def _rooms_adjective(page: Page) -> Optional[int]:
    raw = _search(r"(?<!\d)(\d{1,2})\s*-?\s*(?:х\s*)?комнатн", page.text, re.I)
    n = int(raw) if raw else 0
    return n if n > 0 else None


def _rooms_noun(page: Page) -> Optional[int]:
    m = _ROOMS_DIGIT_WORD_RE.search(page.text)
    n = int(m.group(1)) if m else 0
    return n if n > 0 else None


ROOMS_STRATEGIES: Tuple[Strategy, ...] = (
    ("json", _rooms_json),
    ("label", _rooms_label),
    ("adjective", _rooms_adjective),
    ("noun", _rooms_noun),
)


def parse_rooms(src: PageLike) -> Optional[int]:
    return first_match(ROOMS_STRATEGIES, src)


# Second chance for ads without a structured room count. Three-plus phrasing
# is matched first so that it can never be read as one of the small counts.
_THREE_PLUS_PATTERNS: Tuple[Tuple[re.Pattern, Optional[int]], ...] = (
    (re.compile(r"(?<!\d)([3-9])\s*-?\s*(?:х\s*)?(?:комн|к(?![а-яё]))", re.I), None),
    (re.compile(r"тр[её]х\s*-?\s*комн|тр[её]шк|три\s+комнат", re.I), 3),
    (re.compile(r"четыр[её]х\s*-?\s*комн|четыре\s+комнат", re.I), 4),
    (re.compile(r"пяти\s*-?\s*комн|пять\s+комнат", re.I), 5),
)
_SMALL_PATTERNS: Tuple[Tuple[re.Pattern, int], ...] = (
    (re.compile(r"одн[оа]\s*-?\s*комн|одна\s+комнат|однушк|(?<!\d)1\s*-?\s*(?:х\s*)?(?:комн|к(?![а-яё]))", re.I), 1),
    (re.compile(r"двух\s*-?\s*комн|две\s+комнат|двушк|(?<!\d)2\s*-?\s*(?:х\s*)?(?:комн|к(?![а-яё]))", re.I), 2),
)


def classify_rooms_text(text: Optional[str]) -> Optional[int]:
    """
    Room count from free text. Any 3+ phrasing returns that count (>= 3);
    otherwise the earliest one/two-room phrasing; None when nothing matches.
    """
    if not text:
        return None
    for pat, fixed in _THREE_PLUS_PATTERNS:
        m = pat.search(text)
        if m:
            return fixed if fixed is not None else int(m.group(1))
    hits = []
    for pat, n in _SMALL_PATTERNS:
        m = pat.search(text)
        if m:
            hits.append((m.start(), n))
    return min(hits)[1] if hits else None


# ---------------------------------------------------------------------------
# Owner / agency
# ---------------------------------------------------------------------------

OWNER_KEYWORDS = ("собственник", "от хозяина")
AGENCY_KEYWORDS = ("агентств", "риэлтор", "риелтор", "маклер")


def classify_owner(text: Optional[str]) -> Optional[bool]:
    """True owner-only, False agency-only, None for both or neither."""
    low = (text or "").lower()
    has_owner = any(k in low for k in OWNER_KEYWORDS)
    has_agency = any(k in low for k in AGENCY_KEYWORDS)
    if has_owner == has_agency:
        return None
    return has_owner


def parse_is_owner(src: PageLike) -> Optional[bool]:
    return classify_owner(as_page(src).html)


# ---------------------------------------------------------------------------
# Created timestamp
# ---------------------------------------------------------------------------

def _created_time_tag(page: Page) -> Optional[str]:
    return _search(r'<time[^>]+datetime="([^"]+)"', page.html, re.I)


def _created_text(page: Page) -> Optional[str]:
    raw = _search(r"(\d{2}\.\d{2}\.\d{4}\s*/\s*\d{2}:\d{2})", page.html)
    return clean_text(raw) if raw else None


CREATED_STRATEGIES: Tuple[Strategy, ...] = (
    ("time_tag", _created_time_tag),
    ("text", _created_text),
)


def parse_created(src: PageLike) -> Optional[str]:
    return first_match(CREATED_STRATEGIES, src)


# ---------------------------------------------------------------------------
# Title
# ---------------------------------------------------------------------------

def _title_h1(page: Page) -> Optional[str]:
    raw = _search(r"<h1[^>]*>([\s\S]*?)</h1>", page.html, re.I)
    return strip_tags(raw) or None


def _title_og(page: Page) -> Optional[str]:
    raw = _search(r'<meta\s+property="og:title"\s+content="([^"]*)"', page.html, re.I)
    return strip_tags(raw) or None


def _title_tag(page: Page) -> Optional[str]:
    raw = _search(r"<title[^>]*>([\s\S]*?)</title>", page.html, re.I)
    return strip_tags(raw) or None


TITLE_STRATEGIES: Tuple[Strategy, ...] = (
    ("h1", _title_h1),
    ("og_title", _title_og),
    ("title_tag", _title_tag),
)


def parse_title(src: PageLike) -> Optional[str]:
    return first_match(TITLE_STRATEGIES, src)


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------

_IMAGE_RE = re.compile(r"https://img\d+\.lalafo\.com/[^\s\"'<>\\]+")


def parse_images(src: PageLike) -> List[str]:
    html = as_page(src).html.replace("\\/", "/")
    out: List[str] = []
    seen = set()
    for m in _IMAGE_RE.finditer(html):
        u = m.group(0)
        if "/posters/" not in u or u in seen:
            continue
        seen.add(u)
        out.append(u)
        if len(out) >= MAX_IMAGES:
            break
    return out


# ---------------------------------------------------------------------------
# Description
# ---------------------------------------------------------------------------

def clean_description(raw: str) -> str:
    s = raw or ""
    s = re.sub(r"https?://\S+", "", s, flags=re.I)
    s = re.sub(r"lalafo\.kg", "", s, flags=re.I)
    s = re.sub(r"【[^】]*】", " ", s)
    return clean_text(s)


def _description_json(page: Page) -> Optional[str]:
    return _json_string(page.html, "description")


def _description_testid(page: Page) -> Optional[str]:
    return _search(r'<div[^>]+data-testid="ad-description"[^>]*>([\s\S]*?)</div>', page.html, re.I)


def _description_itemprop(page: Page) -> Optional[str]:
    return _search(r'<p[^>]*itemprop="description"[^>]*>([\s\S]*?)</p>', page.html, re.I)


def _description_meta(page: Page) -> Optional[str]:
    return _search(r'<meta\s+name="description"\s+content="([^"]*)"', page.html, re.I)


def _description_og(page: Page) -> Optional[str]:
    return _search(r'<meta\s+property="og:description"\s+content="([^"]*)"', page.html, re.I)


DESCRIPTION_STRATEGIES: Tuple[Strategy, ...] = (
    ("json", _description_json),
    ("testid", _description_testid),
    ("itemprop", _description_itemprop),
    ("meta", _description_meta),
    ("og_description", _description_og),
)


def parse_description(src: PageLike) -> Optional[str]:
    raw = first_match(DESCRIPTION_STRATEGIES, src)
    if not raw:
        return None
    clean = clean_description(strip_tags(raw))
    return clean[:MAX_DESCRIPTION] or None


# ---------------------------------------------------------------------------
# Owner name
# ---------------------------------------------------------------------------

def _owner_seller_json(page: Page) -> Optional[str]:
    return _json_string(page.html, "sellerName")


def _owner_user_json(page: Page) -> Optional[str]:
    return _json_string(page.html, "userName")


def _owner_testid(page: Page) -> Optional[str]:
    raw = _search(r'data-testid="seller-name"[^>]*>([\s\S]*?)</[^>]+>', page.html, re.I)
    return strip_tags(raw) or None


def _owner_label(page: Page) -> Optional[str]:
    raw = _search(r"Владелец[^<]*</[^>]+>\s*<[^>]*>([\s\S]*?)</[^>]+>", page.html, re.I)
    return strip_tags(raw) or None


OWNER_NAME_STRATEGIES: Tuple[Strategy, ...] = (
    ("seller_json", _owner_seller_json),
    ("user_json", _owner_user_json),
    ("testid", _owner_testid),
    ("label", _owner_label),
)


def parse_owner_name(src: PageLike) -> Optional[str]:
    name = first_match(OWNER_NAME_STRATEGIES, src)
    return name[:64] if name else None


# ---------------------------------------------------------------------------
# Phone
# ---------------------------------------------------------------------------

def phone_strategies(policy: PhonePolicy, description: Optional[str]) -> Tuple[Strategy, ...]:
    def _json(page: Page) -> Optional[str]:
        return policy.normalize(_json_string(page.html, "phone"))

    def _tel_link(page: Page) -> Optional[str]:
        for m in re.finditer(r'href="tel:([^"]+)"', page.html, re.I):
            norm = policy.normalize(m.group(1))
            if norm:
                return norm
        return None

    def _description(page: Page) -> Optional[str]:
        return policy.find(description)

    def _text(page: Page) -> Optional[str]:
        return policy.find(page.text)

    return (
        ("json", _json),
        ("tel_link", _tel_link),
        ("description", _description),
        ("text", _text),
    )


def parse_phone(src: PageLike, description: Optional[str], policy: PhonePolicy) -> Optional[str]:
    return first_match(phone_strategies(policy, description), src)


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

def ad_id_from_url(url: str) -> str:
    m = re.search(r"-id-(\d+)", url or "")
    if m:
        return m.group(1)
    tail = (url or "").split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
    return tail or url


def build_ad(url: str, html: str, resolver, policy: PhonePolicy) -> Ad:
    """Run every extractor over one detail page and assemble the Ad."""
    page = Page(html)
    description = parse_description(page)
    location, source = resolver.resolve(page.html, page.text, description)
    return Ad(
        id=ad_id_from_url(url),
        url=url,
        title=parse_title(page) or DEFAULT_TITLE,
        price_kgs=parse_price_kgs(page),
        rooms=parse_rooms(page),
        is_owner=parse_is_owner(page),
        created_raw=parse_created(page),
        location=location,
        location_source=source,
        images=tuple(parse_images(page)),
        description=description,
        owner_name=parse_owner_name(page),
        phone=parse_phone(page, description, policy),
    )
