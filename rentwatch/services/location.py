# rentwatch/services/location.py
# -*- coding: utf-8 -*-
"""
Human-readable area string for an ad.

Layers, first hit wins:
  1. explicit district (JSON "district", then a "Район: X" label)
  2. schema.org address in JSON ("addressLocality" + "streetAddress")
  3. "<City>, <area>" in the page text
  4. the text between the "DD.MM.YYYY / HH:MM" stamp and "Позвонить"
  5. known Bishkek areas, matched on page text + description
  6. description heuristics (numbered microdistrict, ЖК, "микрорайон X")
  7. random fallback: bare city, sometimes with a random known area

The fallback only varies how messages look. It carries no information and no
filter reads the location.
"""
from __future__ import annotations

import logging
import random
import re
from typing import Dict, List, Optional, Tuple

from ..utils.text import clean_text

LOG = logging.getLogger("location")

# Labels that follow the district on lalafo detail pages; the district value
# is cut at the first one so it does not swallow the next field.
TRAILING_FIELD_MARKERS = (
    "Количество комнат",
    "Комнат",
    "Этаж",
    "Этажность",
    "Площадь",
    "Серия",
    "Тип предложения",
    "Тип строения",
    "Меблирован",
    "Мебель",
    "Ремонт",
    "Отопление",
    "Депозит",
    "Цена",
    "Показать телефон",
    "Позвонить",
    "Написать",
    "Описание",
    "Адрес",
    "Можно с",
    "Коммунальные",
    "Собственник",
    "Агентство",
)

_MARKER_RE = re.compile("|".join(re.escape(m) for m in TRAILING_FIELD_MARKERS), re.I)
_PRICE_TAIL_RE = re.compile(r"(?:^|\s+)\d[\d\s]*KGS\b.*$")

# display name -> regex alternatives (name itself plus numbered forms)
KNOWN_AREAS: Dict[str, str] = {
    "Джал": r"джал(?:[\s\-]?\d{1,2})?",
    "Асанбай": r"асанбай",
    "Восток-5": r"восток[\s\-]?5",
    "Аламедин-1": r"аламедин[\s\-]?1",
    "Тунгуч": r"тунгуч",
    "Кок-Жар": r"кок[\s\-]?жар",
    "Юг-2": r"юг[\s\-]?2",
    "Магистраль": r"магистрал[ьи]",
    "Золотой квадрат": r"золото[йм]\s+квадрат[е]?",
    "Кызыл-Аскер": r"кызыл[\s\-]?аскер",
    "Учкун": r"учкун",
    "Арча-Бешик": r"арча[\s\-]?бешик",
    "Моссовет": r"моссовет",
    "Филармония": r"филармони[яи]",
}

_KNOWN_AREA_RES: List[Tuple[str, re.Pattern]] = [
    (name, re.compile(r"(?<![\w-])(" + pat + r")(?![\w-])", re.I)) for name, pat in KNOWN_AREAS.items()
]

# "12.03.2024 / 14:30 <area> Позвонить" on detail pages
_STAMP_WINDOW_RE = re.compile(r"\d{2}\.\d{2}\.\d{4}\s*/\s*\d{2}:\d{2}\s*(.{2,120}?)\s*Позвонить", re.I)

_AREA_WORDS = r"([А-ЯЁA-Z][\w\-]*(?:\s+[\w\-]+)?)"

_DESCRIPTION_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    ("numbered_mkr", re.compile(r"(?<!\d)(\d{1,2})\s*(?:-?\s*(?:й|ой|ый))?\s*(?:мкр|микрорайон)", re.I)),
    ("numbered_mkr", re.compile(r"(?:мкр|микрорайон)\.?\s*(\d{1,2})(?!\d)", re.I)),
    ("residential_complex", re.compile(r"\bЖК\s+[«\"]?([А-ЯЁA-Z][\w\-]*(?:\s+[А-ЯЁA-Z][\w\-]*){0,2})[»\"]?")),
    ("named_mkr", re.compile(r"([А-ЯЁA-Z][\w\-]*(?:\s+[А-ЯЁA-Z0-9][\w\-]*)?\s+(?:мкр|микрорайон|ж/м))")),
    ("mkr_named", re.compile(r"[Мм]икрорайон[ае]?\s+" + _AREA_WORDS)),
    ("district_named", re.compile(r"[Рр]айон[ае]?\s+" + _AREA_WORDS)),
)


class LocationResolver:
    """Produces a non-empty location string; the random source is injectable."""

    def __init__(self, city_name: str = "Бишкек", rng: Optional[random.Random] = None,
                 fallback_rate: float = 0.2, max_len: int = 60):
        self.city_name = city_name
        self.rng = rng or random.Random()
        self.fallback_rate = fallback_rate
        self.max_len = max_len
        self._city_pair_re = re.compile(re.escape(city_name) + r"\s*,\s*([^,\n|•]{2,80})", re.I)

    # ------------------------------------------------------------------ #
    # helpers
    # ------------------------------------------------------------------ #
    def cut_trailing(self, value: str) -> str:
        """Cut at the first trailing-field marker, then at the length cap."""
        value = _PRICE_TAIL_RE.sub("", clean_text(value))
        m = _MARKER_RE.search(value)
        if m:
            value = value[:m.start()]
        value = value.strip(" ,.;:-–|•")
        return value[:self.max_len].strip(" ,.;:-–|•")

    def with_city(self, area: str) -> str:
        area = area.strip()
        if not area:
            return self.city_name
        if self.city_name.lower() in area.lower():
            return area
        return f"{self.city_name}, {area}"

    # ------------------------------------------------------------------ #
    # layers
    # ------------------------------------------------------------------ #
    def from_district_label(self, html: str, text: str) -> Optional[str]:
        m = re.search(r'"district"\s*:\s*"([^"\\]{2,80})"', html or "")
        if m:
            value = self.cut_trailing(m.group(1))
            if value:
                return self.with_city(value)
        m = re.search(r"Район\s*:\s*(.{2,120})", text or "")
        if m:
            value = self.cut_trailing(m.group(1))
            if value:
                return self.with_city(value)
        return None

    def from_json_address(self, html: str) -> Optional[str]:
        """addressLocality + streetAddress; a bare city name is left to later layers."""
        parts = []
        for key in ("addressLocality", "streetAddress"):
            m = re.search(r'"%s"\s*:\s*"([^"\\]{1,120})"' % key, html or "")
            if m and clean_text(m.group(1)):
                parts.append(clean_text(m.group(1)))
        value = self.cut_trailing(", ".join(parts))
        if not value or value.lower() == self.city_name.lower():
            return None
        return self.with_city(value)

    def from_city_pattern(self, text: str) -> Optional[str]:
        m = self._city_pair_re.search(text or "")
        if not m:
            return None
        area = self.cut_trailing(m.group(1))
        return self.with_city(area) if area else None

    def from_timestamp_window(self, text: str) -> Optional[str]:
        m = _STAMP_WINDOW_RE.search(text or "")
        if not m:
            return None
        value = self.cut_trailing(m.group(1))
        return self.with_city(value) if value else None

    def from_known_areas(self, text: str, description: Optional[str]) -> Optional[str]:
        haystack = f"{text or ''}\n{description or ''}"
        for name, pat in _KNOWN_AREA_RES:
            m = pat.search(haystack)
            if m:
                found = clean_text(m.group(1))
                # keep the numbered form as written ("Джал-29"), otherwise the canonical name
                label = found.capitalize() if re.search(r"\d", found) and name == "Джал" else name
                return self.with_city(label)
        return None

    def from_description(self, description: Optional[str]) -> Optional[str]:
        if not description:
            return None
        for kind, pat in _DESCRIPTION_PATTERNS:
            m = pat.search(description)
            if not m:
                continue
            if kind == "numbered_mkr":
                return self.with_city(f"{m.group(1)} мкр")
            if kind == "residential_complex":
                return self.with_city(f"ЖК {clean_text(m.group(1))}")
            area = self.cut_trailing(m.group(1))
            if area:
                return self.with_city(area)
        return None

    def random_fallback(self) -> str:
        if self.rng.random() < self.fallback_rate:
            return f"{self.city_name}, {self.rng.choice(list(KNOWN_AREAS))}"
        return self.city_name

    # ------------------------------------------------------------------ #
    def sanitize(self, value: Optional[str]) -> str:
        """Final pass over whatever a layer produced: cut, cap, city prefix, never empty."""
        value = self.with_city(self.cut_trailing(value or ""))
        return value[:self.max_len].rstrip(" ,.;:-–|•") or self.city_name

    def resolve(self, html: str, text: str, description: Optional[str]) -> Tuple[str, str]:
        """(location, source) where source names the layer that produced it."""
        layers = (
            ("district_label", lambda: self.from_district_label(html, text)),
            ("json_address", lambda: self.from_json_address(html)),
            ("city_pattern", lambda: self.from_city_pattern(text)),
            ("timestamp_window", lambda: self.from_timestamp_window(text)),
            ("known_area", lambda: self.from_known_areas(text, description)),
            ("description", lambda: self.from_description(description)),
        )
        for source, fn in layers:
            value = fn()
            if value:
                return self.sanitize(value), source
        LOG.debug("no location signal, using random fallback")
        return self.sanitize(self.random_fallback()), "fallback"
