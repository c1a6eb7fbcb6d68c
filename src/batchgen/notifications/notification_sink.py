"""Notification sinks used to announce batch progress.

Publishing never blocks and never raises back into the orchestrator: a lost
message only affects live listeners, the batch store remains the source of
truth.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping

logger = logging.getLogger(__name__)

BATCH_CREATED = "batchCreated"
RESULT_UPDATED = "resultUpdated"
BATCH_COMPLETED = "batchCompleted"


class NotificationSink(ABC):
    @abstractmethod
    def publish(self, topic: str, payload: Mapping[str, Any]) -> None:
        """Best-effort, non-blocking delivery of ``payload`` under ``topic``."""


class NullNotificationSink(NotificationSink):
    def publish(self, topic: str, payload: Mapping[str, Any]) -> None:
        return None


class BroadcastHub(NotificationSink):
    """Fan messages out to every subscriber's bounded queue.

    A subscriber that falls ``max_queue_size`` messages behind loses the
    newest messages until it drains its queue.
    """

    def __init__(self, *, max_queue_size: int = 256) -> None:
        self._max_queue_size = max_queue_size
        self._subscribers: set[asyncio.Queue[dict[str, Any]]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        self._subscribers.discard(queue)

    def publish(self, topic: str, payload: Mapping[str, Any]) -> None:
        message = {"ev": topic, "data": dict(payload)}
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning("notifications.subscriber_lagging", extra={"topic": topic})
                continue
            delivered += 1
        if delivered:
            logger.debug("notifications.broadcast", extra={"topic": topic, "subscribers": delivered})
