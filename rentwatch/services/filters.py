# rentwatch/services/filters.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
from typing import Optional

from ..config import Settings
from ..models import Ad
from ..utils.text import short
from .extractors import classify_rooms_text
from .phones import PhonePolicy

LOG = logging.getLogger("filters")


class AdFilter:
    """
    Eligibility checks, in this order, stopping at the first failure:
      rooms   structured count in the allowed set, else the textual second chance
      price   present and not above the ceiling
      agency  with owner_only, drop ads classified as agency (unknown passes)
      phone   with require_phone, a phone the active policy accepts

    Location is never consulted: it may come from the random fallback.
    """

    def __init__(self, settings: Settings, policy: Optional[PhonePolicy] = None):
        self.allowed_rooms = frozenset(settings.allowed_rooms)
        self.max_price_kgs = settings.max_price_kgs
        self.owner_only = settings.owner_only
        self.require_phone = settings.require_phone
        self.policy = policy or PhonePolicy(settings.phone_policy)

    def rooms_ok(self, ad: Ad) -> bool:
        if ad.rooms is not None:
            return ad.rooms in self.allowed_rooms
        guessed = classify_rooms_text(f"{ad.title}\n{ad.description or ''}")
        return guessed is not None and guessed in self.allowed_rooms

    def price_ok(self, ad: Ad) -> bool:
        return ad.price_kgs is not None and ad.price_kgs <= self.max_price_kgs

    def owner_ok(self, ad: Ad) -> bool:
        return not self.owner_only or ad.is_owner is not False

    def phone_ok(self, ad: Ad) -> bool:
        return not self.require_phone or self.policy.accepts(ad.phone)

    def reject_reason(self, ad: Ad) -> Optional[str]:
        """Name of the first failed check, or None when the ad passes."""
        for reason, check in (
            ("rooms", self.rooms_ok),
            ("price", self.price_ok),
            ("agency", self.owner_ok),
            ("phone", self.phone_ok),
        ):
            if not check(ad):
                LOG.info("skip ad=%s reason=%s rooms=%s price=%s owner=%s phone=%s title=%s",
                         ad.id, reason, ad.rooms, ad.price_kgs, ad.is_owner, ad.phone, short(ad.title))
                return reason
        return None

    def accepts(self, ad: Ad) -> bool:
        return self.reject_reason(ad) is None
