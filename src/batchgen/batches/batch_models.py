"""Batch and result entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class BatchStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"


class ResultStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ResultStatus.COMPLETED, ResultStatus.FAILED)


class ResultType(StrEnum):
    ANGLE = "angle"
    COLOR = "color"


@dataclass(slots=True)
class BatchResult:
    """One unit of work inside a batch.

    ``depends_on`` is the index of the angle result a color result waits
    for; ``dependents`` lists the color results an angle result unlocks.
    """

    type: ResultType
    angle_key: str
    color_key: str | None = None
    status: ResultStatus = ResultStatus.PENDING
    image_url: str | None = None
    thumb_url: str | None = None
    error: str | None = None
    job_id: str | None = None
    depends_on: int | None = None
    dependents: list[int] = field(default_factory=list)

    def event_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type.value,
            "angleKey": self.angle_key,
            "colorKey": self.color_key,
            "status": self.status.value,
        }
        if self.status is ResultStatus.COMPLETED:
            payload["imageUrl"] = self.image_url
            payload["thumbUrl"] = self.thumb_url
        elif self.status is ResultStatus.FAILED:
            payload["error"] = self.error
        return payload

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "angleKey": self.angle_key,
            "colorKey": self.color_key,
            "status": self.status.value,
            "imageUrl": self.image_url,
            "thumbUrl": self.thumb_url,
            "error": self.error,
            "jobId": self.job_id,
        }


@dataclass(slots=True)
class Batch:
    id: str
    source_image_urls: tuple[str, ...]
    angles: tuple[str, ...]
    colors: tuple[str, ...]
    auto_colorize: bool
    model_key: str
    created_at: datetime
    results: list[BatchResult] = field(default_factory=list)
    status: BatchStatus = BatchStatus.PENDING
    completed_at: datetime | None = None
    additional_instructions: str | None = None
    title: str | None = None

    @property
    def is_finished(self) -> bool:
        return all(result.status.is_terminal for result in self.results)

    def count(self, status: ResultStatus) -> int:
        return sum(1 for result in self.results if result.status is status)


@dataclass(frozen=True, slots=True)
class BatchStatusView:
    batch_id: str
    status: BatchStatus
    total: int
    completed: int
    failed: int
    results: tuple[dict[str, Any], ...]
    created_at: datetime
    completed_at: datetime | None

    @classmethod
    def from_batch(cls, batch: Batch) -> "BatchStatusView":
        return cls(
            batch_id=batch.id,
            status=batch.status,
            total=len(batch.results),
            completed=batch.count(ResultStatus.COMPLETED),
            failed=batch.count(ResultStatus.FAILED),
            results=tuple(result.as_dict() for result in batch.results),
            created_at=batch.created_at,
            completed_at=batch.completed_at,
        )
