# rentwatch/api/server.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from ..services.watcher import Watcher

LOG = logging.getLogger("server")

Hook = Optional[Callable[[], Awaitable[None]]]


def create_app(watcher: Watcher, run_path: str = "/run",
               on_startup: Hook = None, on_shutdown: Hook = None) -> FastAPI:
    """
    HTTP trigger for external schedulers.

    GET <run_path> runs one pass and answers "ok" ("busy" while another pass
    is in progress); every other path answers "alive" as a health check.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if on_startup is not None:
            await on_startup()
        try:
            yield
        finally:
            if on_shutdown is not None:
                await on_shutdown()

    app = FastAPI(lifespan=lifespan)

    @app.get(run_path, response_class=PlainTextResponse)
    async def run_endpoint():
        try:
            report = await watcher.run_once()
        except Exception:
            LOG.exception("run via %s failed", run_path)
            return PlainTextResponse("ok\n")
        if report is None:
            return PlainTextResponse("busy\n")
        return PlainTextResponse("ok\n")

    @app.api_route("/{rest:path}", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    async def alive(rest: str = ""):
        return PlainTextResponse("alive\n")

    return app
