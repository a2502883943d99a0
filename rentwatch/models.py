# rentwatch/models.py
# -*- coding: utf-8 -*-
"""
Data model for scraped rental listings.
"""
from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class Ad:
    """One rental listing as extracted from its detail page."""

    # Identity
    id: str
    url: str
    title: str

    # Filterable fields
    price_kgs: Optional[int] = None
    rooms: Optional[int] = None
    is_owner: Optional[bool] = None

    # Display fields
    created_raw: Optional[str] = None
    location: str = ""
    location_source: str = "fallback"
    images: Tuple[str, ...] = field(default_factory=tuple)
    description: Optional[str] = None
    owner_name: Optional[str] = None
    phone: Optional[str] = None

    @property
    def has_images(self) -> bool:
        return bool(self.images)
