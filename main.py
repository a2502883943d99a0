# main.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import argparse
import asyncio
import logging

import uvicorn
from telegram import Bot

from rentwatch.api.server import create_app
from rentwatch.bot import build_application
from rentwatch.config import Settings
from rentwatch.services.fetcher import PageFetcher
from rentwatch.services.notifier import TelegramNotifier
from rentwatch.services.watcher import Watcher
from rentwatch.storage.state import open_seen_store

LOG = logging.getLogger("main")


def _parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="lalafo.kg rental watcher with Telegram delivery")
    p.add_argument("--once", action="store_true", help="run one pass and exit (for cron)")
    return p.parse_args(argv)


async def run_once(settings: Settings) -> None:
    store = open_seen_store(settings)
    bot = Bot(settings.telegram_token) if settings.telegram_token else None
    try:
        async with PageFetcher(settings) as fetcher:
            notifier = TelegramNotifier(bot, settings.telegram_chat_id, retry_max_sec=settings.retry_max_sec)
            watcher = Watcher(settings, fetcher, store, notifier)
            if bot is not None:
                async with bot:
                    await watcher.run_once()
            else:
                await watcher.run_once()
    finally:
        store.close()


def serve(settings: Settings) -> None:
    store = open_seen_store(settings)
    fetcher = PageFetcher(settings)
    notifier = TelegramNotifier(None, settings.telegram_chat_id, retry_max_sec=settings.retry_max_sec)
    watcher = Watcher(settings, fetcher, store, notifier)
    tg_app = build_application(settings, watcher)
    if tg_app is not None:
        notifier.bot = tg_app.bot

    async def on_startup():
        if tg_app is not None:
            await tg_app.initialize()
            await tg_app.start()
            LOG.info("job queue started, every %ds", settings.poll_sec)

    async def on_shutdown():
        if tg_app is not None:
            await tg_app.stop()
            await tg_app.shutdown()
        await fetcher.aclose()
        store.close()

    api = create_app(watcher, run_path=settings.run_path, on_startup=on_startup, on_shutdown=on_shutdown)
    print(f"🚀 serving on {settings.host}:{settings.port}, trigger at {settings.run_path}")
    uvicorn.run(api, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


def main(argv=None) -> None:
    args = _parse_args(argv)
    settings = Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    if not settings.has_credentials:
        LOG.warning("TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID not set: ads will be scraped but not sent")

    if args.once:
        asyncio.run(run_once(settings))
    else:
        serve(settings)


if __name__ == "__main__":
    main()
