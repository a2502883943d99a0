# rentwatch/services/fetcher.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
import re
from typing import List, Optional
from urllib.parse import urljoin

import httpx

from ..config import Settings

LOG = logging.getLogger("fetcher")

ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

# statuses treated as "ad gone / hidden", answered with an empty body
SOFT_MISS_STATUSES = (403, 404)


def browser_headers(settings: Settings) -> dict:
    return {
        "User-Agent": settings.user_agent,
        "Accept": ACCEPT,
        "Accept-Language": settings.accept_language,
    }


class PageFetcher:
    """
    Thin async GET wrapper around one shared httpx.AsyncClient.

    404 and 403 give "" (the ad was removed or hidden); any other non-2xx
    raises httpx.HTTPStatusError; transport errors propagate untouched.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._own_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=settings.http_timeout,
            headers=browser_headers(settings),
            follow_redirects=True,
        )

    async def get(self, url: str) -> str:
        r = await self.client.get(url, headers=browser_headers(self.settings))
        if r.status_code in SOFT_MISS_STATUSES:
            LOG.info("GET %s -> %d, treated as missing", url, r.status_code)
            return ""
        r.raise_for_status()
        return r.text

    async def aclose(self) -> None:
        if self._own_client:
            await self.client.aclose()

    async def __aenter__(self) -> "PageFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


# ---------------------------------------------------------------------- #
# listing pages
# ---------------------------------------------------------------------- #
def listing_page_url(settings: Settings, page: int) -> str:
    """https://lalafo.kg/bishkek/kvartiry/...?page=N"""
    return f"{settings.base_url.rstrip('/')}/{settings.city_slug}/{settings.listing_path.strip('/')}?page={page}"


def extract_listing_links(html: str, city_slug: str, base_url: str) -> List[str]:
    """Absolute detail-page URLs in first-seen order, each once."""
    pat = re.compile(r"/" + re.escape(city_slug) + r"/ads/[A-Za-z0-9\-_%]+-id-\d+")
    links: List[str] = []
    seen = set()
    for m in pat.finditer(html or ""):
        url = urljoin(base_url.rstrip("/") + "/", m.group(0).lstrip("/"))
        if url in seen:
            continue
        seen.add(url)
        links.append(url)
    return links
