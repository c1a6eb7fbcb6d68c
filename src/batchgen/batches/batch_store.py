"""Storage abstraction for in-flight and finished batches."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from .batch_models import Batch, BatchStatus


class BatchStore(ABC):
    @abstractmethod
    def get(self, batch_id: str) -> Batch | None:
        """Return the batch or ``None``."""

    @abstractmethod
    def put(self, batch: Batch) -> None:
        """Insert or replace ``batch``."""

    @abstractmethod
    def delete(self, batch_id: str) -> None:
        """Remove ``batch_id`` if present."""

    @abstractmethod
    def values(self) -> list[Batch]:
        """Return every stored batch."""


class InMemoryBatchStore(BatchStore):
    """Process-local store; batches are mutated in place by the orchestrator."""

    def __init__(self) -> None:
        self._batches: dict[str, Batch] = {}

    def get(self, batch_id: str) -> Batch | None:
        return self._batches.get(batch_id)

    def put(self, batch: Batch) -> None:
        self._batches[batch.id] = batch

    def delete(self, batch_id: str) -> None:
        self._batches.pop(batch_id, None)

    def values(self) -> list[Batch]:
        return list(self._batches.values())

    def __len__(self) -> int:
        return len(self._batches)

    def purge_expired(self, *, now: datetime, ttl: timedelta) -> list[str]:
        """Evict completed batches finished more than ``ttl`` ago."""
        expired = [
            batch.id
            for batch in self._batches.values()
            if batch.status is BatchStatus.COMPLETED
            and batch.completed_at is not None
            and now - batch.completed_at > ttl
        ]
        for batch_id in expired:
            del self._batches[batch_id]
        return expired
