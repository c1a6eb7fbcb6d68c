"""Background tasks started with the FastAPI application."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog

from .batches.batch_store import InMemoryBatchStore

logger = structlog.get_logger(__name__)


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


def evict_batches_once(
    *,
    store: InMemoryBatchStore,
    ttl: timedelta,
    now: datetime | None = None,
) -> list[str]:
    """Drop completed batches older than ``ttl`` and return their ids."""
    current = now or _default_clock()
    return store.purge_expired(now=current, ttl=ttl)


async def run_periodic_batch_eviction(
    *,
    store: InMemoryBatchStore,
    ttl: timedelta,
    shutdown_event: asyncio.Event,
    interval_seconds: float = 900.0,
    clock: Callable[[], datetime] | None = None,
) -> None:
    """Evict expired batches until ``shutdown_event`` is set."""
    interval = max(1.0, float(interval_seconds))
    tick = clock or _default_clock
    while not shutdown_event.is_set():
        try:
            evicted = evict_batches_once(store=store, ttl=ttl, now=tick())
        except Exception:
            logger.exception("batch.eviction.failed")
        else:
            if evicted:
                logger.info("batch.eviction.purged", count=len(evicted), remaining=len(store))
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue


__all__ = ["evict_batches_once", "run_periodic_batch_eviction"]
