# rentwatch/services/watcher.py
# -*- coding: utf-8 -*-
"""
One scrape-filter-dedup-deliver pass over the listing pages.

Both triggers (the job queue timer and the HTTP route) call Watcher.run_once;
an asyncio.Lock turns an overlapping call into a no-op instead of a second
concurrent pass.
"""
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

import httpx

from ..config import Settings
from ..models import Ad
from ..utils.message_formatter import build_caption
from ..utils.text import short
from .extractors import build_ad
from .fetcher import PageFetcher, extract_listing_links, listing_page_url
from .filters import AdFilter
from .location import LocationResolver
from .notifier import TelegramNotifier

LOG = logging.getLogger("watcher")


@dataclass
class RunReport:
    fetched: int = 0
    accepted: int = 0
    sent: int = 0
    failed: int = 0
    skipped_seen: int = 0
    reasons: Counter = field(default_factory=Counter)

    @property
    def skipped(self) -> int:
        return sum(self.reasons.values()) + self.skipped_seen


class Watcher:
    def __init__(
        self,
        settings: Settings,
        fetcher: PageFetcher,
        store,
        notifier: TelegramNotifier,
        ad_filter: Optional[AdFilter] = None,
        resolver: Optional[LocationResolver] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.fetcher = fetcher
        self.store = store
        self.notifier = notifier
        self.ad_filter = ad_filter or AdFilter(settings)
        self.resolver = resolver or LocationResolver(
            city_name=settings.city_name,
            fallback_rate=settings.location_random_rate,
        )
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._report = RunReport()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    # ------------------------------------------------------------------ #
    # stages
    # ------------------------------------------------------------------ #
    async def fetch_ad(self, url: str) -> Optional[Ad]:
        """Detail page -> Ad; None when the page is gone or the request failed."""
        try:
            html = await self.fetcher.get(url)
        except httpx.HTTPError as e:
            LOG.warning("detail fetch failed for %s: %s", url, e)
            return None
        if not html:
            return None
        return build_ad(url, html, self.resolver, self.ad_filter.policy)

    async def collect(self) -> List[Ad]:
        """
        Walk listing pages 1..PAGES and return the ads that pass the filter,
        at most ADS_LIMIT of them. Index page errors are not caught here.
        """
        accepted: List[Ad] = []
        visited = set()
        for page in range(1, self.settings.pages + 1):
            if page > 1:
                await self._sleep(self.settings.page_delay_sec)
            index_url = listing_page_url(self.settings, page)
            html = await self.fetcher.get(index_url)
            links = [u for u in extract_listing_links(html, self.settings.city_slug, self.settings.base_url)
                     if u not in visited]
            LOG.info("page %d: %d new links", page, len(links))
            if not links:
                continue
            for url in links:
                visited.add(url)
                ad = await self.fetch_ad(url)
                if ad is None:
                    continue
                self._report.fetched += 1
                reason = self.ad_filter.reject_reason(ad)
                if reason:
                    self._report.reasons[reason] += 1
                    continue
                accepted.append(ad)
                if len(accepted) >= self.settings.ads_limit:
                    LOG.info("ads limit %d reached on page %d", self.settings.ads_limit, page)
                    self._report.accepted = len(accepted)
                    return accepted
        self._report.accepted = len(accepted)
        return accepted

    async def deliver_new(self, ads: List[Ad]) -> int:
        """Send ads not seen before; returns how many Telegram accepted."""
        mark_on_attempt = self.settings.seen_policy == "on_attempt"
        sent = 0
        for ad in ads:
            if self.store.has_seen(ad.id):
                self._report.skipped_seen += 1
                continue
            location = self.resolver.sanitize(ad.location)
            caption = build_caption(ad, location=location, max_len=self.settings.caption_max_len)
            ok = await self.notifier.deliver(ad, caption)
            if ok:
                sent += 1
                self._report.sent += 1
                LOG.debug("delivered ad=%s location=%r via %s", ad.id, location, ad.location_source)
            else:
                self._report.failed += 1
                LOG.warning("delivery failed for ad=%s (%s)", ad.id, short(ad.title))
            if ok or mark_on_attempt:
                self.store.mark_seen(ad.id)
            await self._sleep(self.settings.send_delay_sec)
        return sent

    # ------------------------------------------------------------------ #
    async def run_once(self) -> Optional[RunReport]:
        """One full pass; None when another pass is still running."""
        if self._lock.locked():
            LOG.info("run already in progress, trigger ignored")
            return None
        async with self._lock:
            self._report = RunReport()
            LOG.info("run started: pages=%d limit=%d", self.settings.pages, self.settings.ads_limit)
            ads = await self.collect()
            await self.deliver_new(ads)
            report = self._report

            total = report.sent + report.skipped
            if total:
                ratio = round(100 * report.skipped / total, 1)
                LOG.info("[SUMMARY][STATS] sent=%d skipped=%d (%.1f%%) reasons=%s",
                         report.sent, report.skipped, ratio, dict(report.reasons))
            LOG.info("run finished: fetched=%d accepted=%d sent=%d failed=%d seen=%d stored=%d",
                     report.fetched, report.accepted, report.sent, report.failed, report.skipped_seen,
                     self.store.count())
            return report
