# main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from adapters.entry.http.views.price_relay_view import router as price_relay_router
from config import get_settings


def init_logging() -> None:
    """
    Configure root logging from LOG_LEVEL.
    """
    s = get_settings()
    logging.basicConfig(
        level=getattr(logging, (s.LOG_LEVEL or "INFO").upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context.

    Runs once on startup (before the first request) and once on shutdown.
    """
    init_logging()
    logging.getLogger(__name__).info("Price relay starting (env=%s)", get_settings().ENV)
    yield


def create_app() -> FastAPI:
    """
    Application factory for the price relay.

    The trigger (log watcher / webhook) posts each batch of logs to /api/relay/logs.
    """
    app = FastAPI(
        title="Oracle Price Relay",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get("/health", tags=["health"])
    async def health() -> dict:
        return {"status": "ok"}

    app.include_router(price_relay_router, prefix="/api")

    return app


app = create_app()
