# rentwatch/services/phones.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import re
from typing import Iterator, Optional

# A run of digit groups separated by spaces, dashes or brackets, optionally
# starting with "+". A run can glue a phone to neighbouring numbers
# ("+996 555 123 456 45 000"), so each run is re-tried as shorter group windows.
PHONE_CANDIDATE_RE = re.compile(r"(?<![\w+])\+?\d[\d\s\-()]{7,40}\d(?!\d)")
_GROUP_RE = re.compile(r"\+?\(?\d+\)?")

# plausible total digit counts for the "any" policy
ANY_MIN_DIGITS = 9
ANY_MAX_DIGITS = 13


def digits_only(raw: str) -> str:
    return re.sub(r"\D", "", raw or "")


def iter_candidates(text: str) -> Iterator[str]:
    for m in PHONE_CANDIDATE_RE.finditer(text or ""):
        yield m.group(0).strip()


def iter_windows(candidate: str) -> Iterator[str]:
    """Contiguous runs of the candidate's digit groups, longest first, then leftmost."""
    spans = [m.span() for m in _GROUP_RE.finditer(candidate)]
    n = len(spans)
    for size in range(n, 0, -1):
        for i in range(n - size + 1):
            yield candidate[spans[i][0]:spans[i + size - 1][1]]


def _format_kg(national: str) -> str:
    # national = 9 digits after the country code
    return f"+996 {national[0:3]} {national[3:6]} {national[6:9]}"


class PhonePolicy:
    """
    Which phone numbers count as valid, and how they are normalised.

      any        any candidate with 9..13 digits, kept as written
      kg         996 + 9 digits (12 total) or 0 + 9 digits (10 total)
      kg_strict  only the country-code form, 996 + 9 digits
    """

    NAMES = ("any", "kg", "kg_strict")

    def __init__(self, name: str = "kg"):
        name = (name or "kg").strip().lower()
        if name not in self.NAMES:
            raise ValueError(f"unknown phone policy {name!r}")
        self.name = name

    def __repr__(self) -> str:
        return f"PhonePolicy({self.name!r})"

    def _national(self, digits: str) -> Optional[str]:
        if len(digits) == 12 and digits.startswith("996"):
            return digits[3:]
        if self.name == "kg" and len(digits) == 10 and digits.startswith("0"):
            return digits[1:]
        return None

    def normalize(self, raw: Optional[str]) -> Optional[str]:
        """Normalised form of raw, or None when the policy rejects it."""
        if not raw:
            return None
        digits = digits_only(raw)
        if self.name == "any":
            if ANY_MIN_DIGITS <= len(digits) <= ANY_MAX_DIGITS:
                return re.sub(r"\s+", " ", raw.strip())
            return None
        if self.name == "kg_strict" and not raw.lstrip().startswith(("+996", "996")):
            return None
        national = self._national(digits)
        return _format_kg(national) if national else None

    def accepts(self, raw: Optional[str]) -> bool:
        return self.normalize(raw) is not None

    def find(self, text: Optional[str]) -> Optional[str]:
        """First candidate in text the policy accepts, normalised."""
        for cand in iter_candidates(text or ""):
            for window in iter_windows(cand):
                norm = self.normalize(window)
                if norm:
                    return norm
        return None
