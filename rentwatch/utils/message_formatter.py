# rentwatch/utils/message_formatter.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
from typing import List, Optional

from ..models import Ad
from .text import html_escape as esc, html_attr_escape as esc_attr, truncate_hard

LOG = logging.getLogger("message_formatter")

# ==== output template ====
TEMPLATE_LOCATION = "📍 {location}"
TEMPLATE_ROOMS    = "🛏 {rooms}"
TEMPLATE_KIND     = "🏠 Квартира • Долгосрочная аренда"
TEMPLATE_PRICE    = "💰 <b>{price}</b>"
TEMPLATE_OWNER    = "👤 {name}"
TEMPLATE_PHONE    = "📞 {phone}"
TEMPLATE_CREATED  = "🕒 {created}"
TEMPLATE_LINK     = '🔗 <a href="{url}">Открыть объявление</a>'

NO_PRICE = "Цена не указана"
NO_PHONE = "Телефон в объявлении"

CAPTION_MAX_LEN = 1024


# ==== helpers ====
def rooms_label(rooms: Optional[int]) -> str:
    """'1 комната', '2 комнаты', '5 комнат'; 'Квартира' when unknown."""
    if not rooms:
        return "Квартира"
    n = rooms % 100
    if 11 <= n <= 14:
        word = "комнат"
    elif n % 10 == 1:
        word = "комната"
    elif 2 <= n % 10 <= 4:
        word = "комнаты"
    else:
        word = "комнат"
    return f"{rooms} {word}"


def format_price(price_kgs: Optional[int]) -> str:
    """45000 -> '45 000 KGS'."""
    if price_kgs is None:
        return NO_PRICE
    return f"{price_kgs:,}".replace(",", " ") + " KGS"


def _kind_line(is_owner: Optional[bool]) -> str:
    if is_owner is True:
        return TEMPLATE_KIND + " • от собственника"
    if is_owner is False:
        return TEMPLATE_KIND + " • от агентства"
    return TEMPLATE_KIND


# ==== caption ====
def build_caption(ad: Ad, location: Optional[str] = None, max_len: int = CAPTION_MAX_LEN,
                  with_description: bool = True) -> str:
    """
    Telegram HTML caption for one ad.

    The description goes last so a length cut only ever eats description
    text; the result is never longer than max_len.
    """
    lines: List[str] = [
        TEMPLATE_LOCATION.format(location=esc(location or ad.location)),
        "",
        TEMPLATE_ROOMS.format(rooms=rooms_label(ad.rooms)),
        _kind_line(ad.is_owner),
        "",
        TEMPLATE_PRICE.format(price=esc(format_price(ad.price_kgs))),
    ]
    if ad.owner_name:
        lines.append(TEMPLATE_OWNER.format(name=esc(ad.owner_name)))
    lines.append(TEMPLATE_PHONE.format(phone=esc(ad.phone or NO_PHONE)))
    if ad.created_raw:
        lines.append(TEMPLATE_CREATED.format(created=esc(ad.created_raw)))
    lines.append(TEMPLATE_LINK.format(url=esc_attr(ad.url)))
    if with_description and ad.description:
        lines += ["", esc(ad.description)]

    caption = "\n".join(lines)
    if len(caption) > max_len:
        LOG.debug("caption for ad=%s cut from %d to %d chars", ad.id, len(caption), max_len)
        caption = truncate_hard(caption, max_len)
    return caption
