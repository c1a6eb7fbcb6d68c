"""Pydantic schemas for the batch HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CreateBatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source_image_urls: list[str] = Field(default_factory=list, alias="sourceImageUrls")
    angles: list[str] = Field(default_factory=list)
    colors: list[str] = Field(default_factory=list)
    auto_colorize: bool = Field(default=False, alias="autoColorize")
    additional_instructions: str | None = Field(default=None, alias="additionalInstructions")
    title: str | None = None
    model_key: str | None = Field(default=None, alias="modelKey")


class CreateBatchResponse(BaseModel):
    batchId: str


class BatchResultSchema(BaseModel):
    type: str
    angleKey: str
    colorKey: str | None = None
    status: str
    imageUrl: str | None = None
    thumbUrl: str | None = None
    error: str | None = None
    jobId: str | None = None


class BatchStatusResponse(BaseModel):
    batchId: str
    status: str
    total: int
    completed: int
    failed: int
    results: list[BatchResultSchema]
    createdAt: datetime
    completedAt: datetime | None = None


class ModelInfo(BaseModel):
    key: str
    provider: str
    description: str = ""
    defaults: dict[str, Any] = Field(default_factory=dict)
    supports_edit: bool = False
