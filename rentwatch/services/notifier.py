# rentwatch/services/notifier.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable

from telegram import InputMediaPhoto, LinkPreviewOptions
from telegram.constants import ParseMode
from telegram.error import RetryAfter, TelegramError

from ..models import Ad

LOG = logging.getLogger("notifier")

MAX_ALBUM = 10


def _retry_seconds(err: RetryAfter) -> float:
    # int on older python-telegram-bot releases, timedelta on newer ones
    value = err.retry_after
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


class TelegramNotifier:
    """
    Posts one ad into one chat.

    No images: a plain HTML message with the link preview off.
    One image: a photo with the caption.
    More: an album of up to 10 photos, caption on the first one only.
    """

    def __init__(self, bot, chat_id, retry_max_sec: int = 60,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.bot = bot
        self.chat_id = chat_id
        self.retry_max_sec = retry_max_sec
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return self.bot is not None and bool(self.chat_id)

    async def _send(self, ad: Ad, caption: str) -> None:
        images = list(ad.images)[:MAX_ALBUM]
        if not ad.has_images:
            await self.bot.send_message(
                chat_id=self.chat_id,
                text=caption,
                parse_mode=ParseMode.HTML,
                link_preview_options=LinkPreviewOptions(is_disabled=True),
            )
        elif len(images) == 1:
            await self.bot.send_photo(
                chat_id=self.chat_id,
                photo=images[0],
                caption=caption,
                parse_mode=ParseMode.HTML,
            )
        else:
            media = [InputMediaPhoto(media=images[0], caption=caption, parse_mode=ParseMode.HTML)]
            media += [InputMediaPhoto(media=url) for url in images[1:]]
            await self.bot.send_media_group(chat_id=self.chat_id, media=media)

    async def deliver(self, ad: Ad, caption: str) -> bool:
        """True when Telegram accepted the message; errors never escape."""
        if not self.enabled:
            LOG.warning("telegram not configured, ad=%s not sent", ad.id)
            return False

        retried = False
        while True:
            try:
                await self._send(ad, caption)
                LOG.info("sent ad=%s images=%d", ad.id, min(len(ad.images), MAX_ALBUM))
                return True
            except RetryAfter as e:
                wait = _retry_seconds(e)
                if retried or not (0 < wait <= self.retry_max_sec):
                    LOG.warning("flood control for ad=%s (retry_after=%.0fs), giving up", ad.id, wait)
                    return False
                LOG.info("flood control for ad=%s, sleeping %.0fs then retrying once", ad.id, wait)
                retried = True
                await self._sleep(wait)
            except TelegramError as e:
                LOG.error("send failed for ad=%s: %s", ad.id, e)
                return False
