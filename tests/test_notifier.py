# tests/test_notifier.py
# -*- coding: utf-8 -*-

import asyncio

from telegram.constants import ParseMode
from telegram.error import BadRequest, RetryAfter

from rentwatch.models import Ad
from rentwatch.services.notifier import TelegramNotifier


class FakeBot:
    """Records every call; raises queued errors first."""

    def __init__(self, errors=None):
        self.calls = []
        self.errors = list(errors or [])

    async def _call(self, method, **kw):
        self.calls.append((method, kw))
        if self.errors:
            raise self.errors.pop(0)

    async def send_message(self, **kw):
        await self._call("send_message", **kw)

    async def send_photo(self, **kw):
        await self._call("send_photo", **kw)

    async def send_media_group(self, **kw):
        await self._call("send_media_group", **kw)


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def make_ad(n_images=0):
    images = tuple("https://img5.lalafo.com/i/posters/original/%d.jpg" % i for i in range(n_images))
    return Ad(id="101", url="https://lalafo.kg/bishkek/ads/x-id-101", title="t", images=images)


def deliver(notifier, ad, caption="<b>cap</b>"):
    return asyncio.run(notifier.deliver(ad, caption))


def test_text_message_without_images():
    bot = FakeBot()
    assert deliver(TelegramNotifier(bot, "42"), make_ad()) is True
    (method, kw), = bot.calls
    assert method == "send_message"
    assert kw["chat_id"] == "42"
    assert kw["text"] == "<b>cap</b>"
    assert kw["parse_mode"] == ParseMode.HTML
    assert kw["link_preview_options"].is_disabled is True


def test_single_image_is_photo():
    bot = FakeBot()
    assert deliver(TelegramNotifier(bot, "42"), make_ad(1)) is True
    (method, kw), = bot.calls
    assert method == "send_photo"
    assert kw["caption"] == "<b>cap</b>"


def test_album_caption_on_first_item_only_and_capped():
    bot = FakeBot()
    assert deliver(TelegramNotifier(bot, "42"), make_ad(12)) is True
    (method, kw), = bot.calls
    assert method == "send_media_group"
    media = kw["media"]
    assert len(media) == 10
    assert media[0].caption == "<b>cap</b>"
    assert media[0].parse_mode == ParseMode.HTML
    assert all(m.caption is None for m in media[1:])


def test_retry_after_sleeps_and_retries_once():
    bot = FakeBot(errors=[RetryAfter(5)])
    sleep = SleepRecorder()
    assert deliver(TelegramNotifier(bot, "42", retry_max_sec=60, sleep=sleep), make_ad()) is True
    assert sleep.calls == [5]
    assert len(bot.calls) == 2


def test_second_retry_after_is_final():
    bot = FakeBot(errors=[RetryAfter(5), RetryAfter(5)])
    sleep = SleepRecorder()
    assert deliver(TelegramNotifier(bot, "42", sleep=sleep), make_ad()) is False
    assert sleep.calls == [5]
    assert len(bot.calls) == 2


def test_retry_after_above_limit_is_not_waited():
    bot = FakeBot(errors=[RetryAfter(120)])
    sleep = SleepRecorder()
    assert deliver(TelegramNotifier(bot, "42", retry_max_sec=60, sleep=sleep), make_ad()) is False
    assert sleep.calls == []
    assert len(bot.calls) == 1


def test_other_telegram_error_is_not_retried():
    bot = FakeBot(errors=[BadRequest("can't parse entities")])
    assert deliver(TelegramNotifier(bot, "42"), make_ad()) is False
    assert len(bot.calls) == 1


def test_missing_bot_or_chat_is_noop():
    assert deliver(TelegramNotifier(None, "42"), make_ad()) is False
    bot = FakeBot()
    assert deliver(TelegramNotifier(bot, ""), make_ad()) is False
    assert bot.calls == []
