"""Data structures for persisted media."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class ImageMetadata:
    """Provenance recorded alongside a persisted image."""

    prompt: str = ""
    model: str | None = None
    batch_id: str | None = None
    sources: list[str] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PersistedImage:
    """Stable URLs of a stored image."""

    id: str
    full_url: str
    thumb_url: str


@dataclass(slots=True)
class ImageRecord:
    id: str
    prompt: str
    model: str | None
    batch_id: str | None
    params: dict[str, Any]
    sources: list[str]
    width: int
    height: int
    path: str
    thumb_path: str
    created_at: datetime
