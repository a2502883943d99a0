# tests/test_watcher.py
# -*- coding: utf-8 -*-
# end-to-end runs against a fake marketplace (httpx.MockTransport) and a fake Telegram bot

import asyncio
import logging

import httpx
import pytest
from telegram.error import TelegramError

from rentwatch.config import Settings
from rentwatch.models import Ad
from rentwatch.services.fetcher import PageFetcher
from rentwatch.services.location import LocationResolver
from rentwatch.services.notifier import TelegramNotifier
from rentwatch.services.watcher import RunReport, Watcher
from rentwatch.storage.state import SeenStore

LISTING_PATH = "/bishkek/kvartiry/arenda-kvartir/dolgosrochnaya-arenda-kvartir"


def detail_page(title, seller_line, price="45 000", rooms=2, phone="+996555123456"):
    return f"""<html><head><title>{title} | lalafo</title>
<meta property="og:description" content="Уютная квартира, 12 мкр. Звоните!"></head>
<body><h1>{title}</h1>
<div data-testid="ad-price"><span>{price} KGS</span></div>
<p>Квартира, {rooms} комнаты</p>
<p>{seller_line}</p>
<a href="tel:{phone}">Позвонить</a>
<time datetime="2024-05-01T10:00:00">01.05.2024</time>
</body></html>"""


def listing_page(*slugs):
    links = "".join(f'<a href="/bishkek/ads/{s}">ad</a>' for s in slugs)
    return f"<html><body>{links}</body></html>"


class FakeBot:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_message(self, **kw):
        if self.fail:
            raise TelegramError("boom")
        self.sent.append(kw)


class FixedRng:
    def random(self):
        return 0.99

    def choice(self, seq):
        return seq[0]


async def no_sleep(_seconds):
    return None


def make_transport(routes):
    """routes: path -> (status, body); page query is folded into the key for listing pages."""
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        key = request.url.path
        if "page" in request.url.params:
            key += "?page=" + request.url.params["page"]
        requested.append(key)
        status, body = routes.get(key, (404, ""))
        return httpx.Response(status, text=body)

    return httpx.MockTransport(handler), requested


def make_watcher(tmp_path, routes, bot=None, **overrides):
    opts = dict(
        telegram_token="token",
        telegram_chat_id="42",
        pages=1,
        page_delay_sec=0,
        send_delay_sec=0,
        state_file=str(tmp_path / "seen.json"),
    )
    opts.update(overrides)
    settings = Settings(**opts)
    transport, requested = make_transport(routes)
    fetcher = PageFetcher(settings, client=httpx.AsyncClient(transport=transport))
    store = SeenStore(settings.state_file, settings.seen_namespace)
    bot = bot if bot is not None else FakeBot()
    notifier = TelegramNotifier(bot, settings.telegram_chat_id, sleep=no_sleep)
    watcher = Watcher(
        settings, fetcher, store, notifier,
        resolver=LocationResolver(rng=FixedRng()),
        sleep=no_sleep,
    )
    return watcher, bot, store, requested


OWNER_AD = "sdaetsya-2-komnatnaya-kvartira-id-101"
AGENCY_AD = "sdaetsya-kvartira-agentstvo-id-102"


@pytest.fixture()
def routes():
    return {
        LISTING_PATH + "?page=1": (200, listing_page(OWNER_AD, AGENCY_AD, OWNER_AD)),
        "/bishkek/ads/" + OWNER_AD: (200, detail_page("Сдается 2-комнатная квартира", "Собственник")),
        "/bishkek/ads/" + AGENCY_AD: (200, detail_page("Сдается квартира", "Агентство недвижимости")),
    }


def test_owner_ad_delivered_once_agency_dropped(tmp_path, routes):
    watcher, bot, store, requested = make_watcher(tmp_path, routes)

    report = asyncio.run(watcher.run_once())
    assert isinstance(report, RunReport)
    assert report.sent == 1
    assert report.reasons["agency"] == 1
    assert len(bot.sent) == 1
    text = bot.sent[0]["text"]
    assert "💰 <b>45 000 KGS</b>" in text
    assert "🛏 2 комнаты" in text
    assert "📍 Бишкек, 12 мкр" in text
    assert "📞 +996 555 123 456" in text
    assert store.has_seen("101")
    assert not store.has_seen("102")
    # duplicate link on the index page is fetched once
    assert requested.count("/bishkek/ads/" + OWNER_AD) == 1

    second = asyncio.run(watcher.run_once())
    assert second.sent == 0
    assert second.skipped_seen == 1
    assert len(bot.sent) == 1


def test_missing_detail_page_is_skipped(tmp_path, routes):
    routes["/bishkek/ads/" + OWNER_AD] = (404, "")
    watcher, bot, _store, _ = make_watcher(tmp_path, routes)
    report = asyncio.run(watcher.run_once())
    assert report.fetched == 1
    assert report.sent == 0
    assert bot.sent == []


def test_detail_server_error_does_not_abort_run(tmp_path, routes):
    routes["/bishkek/ads/" + AGENCY_AD] = (500, "oops")
    watcher, bot, _store, _ = make_watcher(tmp_path, routes)
    report = asyncio.run(watcher.run_once())
    assert report.sent == 1


def test_index_error_propagates(tmp_path, routes):
    routes[LISTING_PATH + "?page=1"] = (500, "oops")
    watcher, _bot, _store, _ = make_watcher(tmp_path, routes)
    with pytest.raises(httpx.HTTPStatusError) as exc:
        asyncio.run(watcher.run_once())
    assert exc.value.response.status_code == 500
    assert not watcher.is_running


def test_failed_delivery_not_marked_by_default(tmp_path, routes):
    watcher, _bot, store, _ = make_watcher(tmp_path, routes, bot=FakeBot(fail=True))
    report = asyncio.run(watcher.run_once())
    assert report.failed == 1
    assert not store.has_seen("101")


def test_failed_delivery_marked_on_attempt(tmp_path, routes):
    watcher, _bot, store, _ = make_watcher(tmp_path, routes, bot=FakeBot(fail=True), seen_policy="on_attempt")
    asyncio.run(watcher.run_once())
    assert store.has_seen("101")


def test_ads_limit_stops_collecting(tmp_path, routes):
    second = "sdaetsya-1-komnatnaya-kvartira-id-103"
    routes[LISTING_PATH + "?page=1"] = (200, listing_page(OWNER_AD, second))
    routes["/bishkek/ads/" + second] = (200, detail_page("Сдается 1-комнатная квартира", "Собственник", rooms=1))
    watcher, _bot, _store, requested = make_watcher(tmp_path, routes, ads_limit=1)
    report = asyncio.run(watcher.run_once())
    assert report.accepted == 1
    assert "/bishkek/ads/" + second not in requested


def test_pages_are_walked_in_order(tmp_path, routes):
    routes[LISTING_PATH + "?page=2"] = (200, listing_page(OWNER_AD))
    watcher, _bot, _store, requested = make_watcher(tmp_path, routes, pages=3)
    asyncio.run(watcher.run_once())
    listing = [r for r in requested if r.startswith(LISTING_PATH)]
    assert listing == [LISTING_PATH + "?page=%d" % n for n in (1, 2, 3)]


def test_overlapping_run_is_rejected(tmp_path, routes):
    watcher, bot, _store, _ = make_watcher(tmp_path, routes)

    async def scenario():
        async with watcher._lock:
            assert watcher.is_running
            return await watcher.run_once()

    assert asyncio.run(scenario()) is None
    assert bot.sent == []


def test_caption_location_is_sanitized(tmp_path, routes):
    watcher, bot, _store, _ = make_watcher(tmp_path, routes)
    ad = Ad(id="201", url="https://lalafo.kg/bishkek/ads/x-id-201", title="t",
            location="Асанбай Этаж: 5 Площадь: 60")
    assert asyncio.run(watcher.deliver_new([ad])) == 1
    assert "📍 Бишкек, Асанбай\n" in bot.sent[0]["text"]


def test_summary_reports_stored_count(tmp_path, routes, caplog):
    watcher, _bot, _store, _ = make_watcher(tmp_path, routes)
    with caplog.at_level(logging.INFO, logger="watcher"):
        asyncio.run(watcher.run_once())
    finished = [r.getMessage() for r in caplog.records if r.getMessage().startswith("run finished")]
    assert finished and finished[-1].endswith("stored=1")
