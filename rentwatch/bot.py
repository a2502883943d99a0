# rentwatch/bot.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
from typing import Optional

from telegram.error import Forbidden
from telegram.ext import Application, ContextTypes

from .config import Settings
from .services.watcher import Watcher

LOG = logging.getLogger(__name__)

FIRST_RUN_DELAY_SEC = 5


async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Global error handler: blocked bot is a warning, the rest goes to the log with traceback."""
    err = context.error
    if isinstance(err, Forbidden):
        LOG.warning("bot cannot post into the target chat: %s", err)
        return
    LOG.exception("unhandled error | update=%r", update, exc_info=err)


def build_application(settings: Settings, watcher: Watcher) -> Optional[Application]:
    """
    Telegram application whose job queue triggers Watcher.run_once every
    POLL_SEC seconds. None when no bot token is configured; the HTTP trigger
    keeps working in that case.
    """
    if not settings.telegram_token:
        LOG.warning("TELEGRAM_BOT_TOKEN not set: timer trigger disabled")
        return None

    app: Application = Application.builder().token(settings.telegram_token).build()
    app.bot_data["watcher"] = watcher
    app.add_error_handler(on_error)

    async def poll_job(ctx: ContextTypes.DEFAULT_TYPE):
        try:
            await ctx.application.bot_data["watcher"].run_once()
        except Exception:
            LOG.exception("scheduled run failed")

    app.job_queue.run_repeating(
        poll_job,
        interval=settings.poll_sec,
        first=FIRST_RUN_DELAY_SEC,
        name="rentwatch-poll",
    )
    return app
