"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from datetime import timedelta

import uvicorn
from fastapi import FastAPI

from .config import AppConfig, load_config
from .dependencies import include_routers
from .lifecycle import run_periodic_batch_eviction
from .logging import configure_logging


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    cfg = config or load_config()
    configure_logging(cfg.settings.log_level, json_logs=cfg.settings.log_json)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings = cfg.settings
        shutdown_event = asyncio.Event()
        eviction = asyncio.create_task(
            run_periodic_batch_eviction(
                store=app.state.batch_store,
                ttl=timedelta(hours=settings.batch_ttl_hours),
                shutdown_event=shutdown_event,
                interval_seconds=settings.eviction_interval_seconds,
            ),
            name="batchgen-eviction",
        )
        try:
            yield
        finally:
            shutdown_event.set()
            eviction.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await eviction
            await app.state.batch_orchestrator.aclose()

    app = FastAPI(title="batchgen", lifespan=lifespan)
    include_routers(app, cfg)
    return app


def run() -> None:
    """Serve the application with uvicorn."""
    uvicorn.run(create_app, factory=True, host="0.0.0.0", port=8000)
