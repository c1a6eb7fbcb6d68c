"""ZIP export of a batch's completed images."""

from __future__ import annotations

import io
import json
import logging
import re
import zipfile
from datetime import datetime, timezone
from typing import Any

from ..media.media_errors import MediaError
from ..predictions.prediction_errors import ProviderUnavailable
from ..providers.provider_media import download_image
from ..providers.providers_base import ImagePersistence
from .batch_errors import NoCompletedResults
from .batch_models import Batch, BatchResult, ResultStatus

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "batch"
SUMMARY_NAME = "summary.json"

_UNSAFE = re.compile(r"[^a-zA-Z0-9\s-]")
_SPACES = re.compile(r"\s+")


def safe_name(value: str) -> str:
    return _SPACES.sub("_", _UNSAFE.sub("", value).strip())


def archive_file_name(batch: Batch, result: BatchResult, extension: str = "png") -> str:
    title = safe_name(batch.title or "") or DEFAULT_TITLE
    color_suffix = f"_{safe_name(result.color_key)}" if result.color_key else ""
    return f"{title}_{result.angle_key}{color_suffix}.{extension}"


def _extension(url: str) -> str:
    tail = url.rsplit("/", 1)[-1]
    _, dot, suffix = tail.rpartition(".")
    if dot and suffix.isalnum() and len(suffix) <= 4:
        return suffix.lower()
    return "png"


async def _load(store: ImagePersistence, url: str, *, timeout: float) -> bytes:
    if store.is_local(url):
        return await store.read_bytes(url)
    payload, _ = await download_image(url, timeout=timeout)
    return payload


async def build_archive(
    batch: Batch,
    store: ImagePersistence,
    *,
    download_timeout: float = 30.0,
    now: datetime | None = None,
) -> bytes:
    """Bundle every completed image plus ``summary.json`` into a ZIP.

    Images that cannot be read are skipped; :class:`NoCompletedResults` is
    raised when nothing ends up in the archive.
    """
    completed = [
        result
        for result in batch.results
        if result.status is ResultStatus.COMPLETED and result.image_url
    ]
    if not completed:
        raise NoCompletedResults(batch.id)

    buffer = io.BytesIO()
    entries: list[dict[str, Any]] = []
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for result in completed:
            url = result.image_url or ""
            try:
                payload = await _load(store, url, timeout=download_timeout)
            except (MediaError, ProviderUnavailable) as exc:
                logger.warning(
                    "batch.archive.image_skipped",
                    extra={"batch_id": batch.id, "angle_key": result.angle_key, "error": str(exc)},
                )
                continue
            file_name = archive_file_name(batch, result, _extension(url))
            archive.writestr(file_name, payload)
            entries.append(
                {"angleKey": result.angle_key, "colorKey": result.color_key, "fileName": file_name}
            )

        if not entries:
            raise NoCompletedResults(batch.id)

        summary = {
            "batchId": batch.id,
            "title": batch.title,
            "modelKey": batch.model_key,
            "createdAt": batch.created_at.isoformat(),
            "completedAt": (batch.completed_at or now or datetime.now(timezone.utc)).isoformat(),
            "totalImages": len(entries),
            "angles": list(dict.fromkeys(entry["angleKey"] for entry in entries)),
            "colors": list(dict.fromkeys(entry["colorKey"] for entry in entries if entry["colorKey"])),
            "results": entries,
        }
        archive.writestr(SUMMARY_NAME, json.dumps(summary, indent=2))

    logger.info(
        "batch.archive.built",
        extra={"batch_id": batch.id, "images": len(entries), "size_bytes": buffer.tell()},
    )
    return buffer.getvalue()
