"""Filesystem persistence for generated images and their thumbnails."""

from __future__ import annotations

import asyncio
import io
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from ..config import MediaPaths
from .image_repository import ImageRecordRepository
from .media_errors import InvalidImageData, MediaNotFound
from .media_models import ImageMetadata, ImageRecord, PersistedImage

logger = logging.getLogger(__name__)

_EXTENSIONS = {"PNG": "png", "JPEG": "jpg", "WEBP": "webp", "GIF": "gif"}


@dataclass(slots=True)
class ImageStore:
    """Store image bytes under ``MEDIA_ROOT`` and index them in the database.

    Full images keep their original encoding; thumbnails are always PNG,
    scaled to ``thumbnail_width`` pixels wide. Returned URLs live under
    ``url_prefix`` and stay valid for the lifetime of the media root.
    """

    paths: MediaPaths
    repository: ImageRecordRepository
    url_prefix: str = "/media"
    thumbnail_width: int = 256
    log: logging.Logger = field(default_factory=lambda: logger)

    async def persist(self, raw: bytes, metadata: ImageMetadata) -> PersistedImage:
        return await asyncio.to_thread(self._persist_sync, raw, metadata)

    def _persist_sync(self, raw: bytes, metadata: ImageMetadata) -> PersistedImage:
        try:
            with Image.open(io.BytesIO(raw)) as image:
                image.load()
                width, height = image.size
                extension = _EXTENSIONS.get(image.format or "", "png")
                thumb = self._make_thumbnail(image)
        except (UnidentifiedImageError, OSError) as exc:
            raise InvalidImageData(f"Cannot decode image payload: {exc}") from exc

        image_id = uuid.uuid4().hex
        full_path = self.paths.full / f"{image_id}.{extension}"
        thumb_path = self.paths.thumbs / f"{image_id}.png"
        full_path.write_bytes(raw)
        thumb_path.write_bytes(thumb)

        self.repository.add(
            ImageRecord(
                id=image_id,
                prompt=metadata.prompt,
                model=metadata.model,
                batch_id=metadata.batch_id,
                params=dict(metadata.params),
                sources=list(metadata.sources),
                width=width,
                height=height,
                path=str(full_path),
                thumb_path=str(thumb_path),
                created_at=datetime.now(timezone.utc),
            )
        )
        self.log.info(
            "media.image.persisted",
            extra={"image_id": image_id, "batch_id": metadata.batch_id, "size_bytes": len(raw)},
        )
        return PersistedImage(
            id=image_id,
            full_url=self._url("full", full_path.name),
            thumb_url=self._url("thumb", thumb_path.name),
        )

    def _make_thumbnail(self, image: Image.Image) -> bytes:
        width, height = image.size
        target_width = min(self.thumbnail_width, width)
        target_height = max(1, round(height * target_width / width))
        thumb = image.convert("RGBA").resize((target_width, target_height), Image.Resampling.LANCZOS)
        buffer = io.BytesIO()
        thumb.save(buffer, format="PNG")
        return buffer.getvalue()

    def _url(self, kind: str, filename: str) -> str:
        return f"{self.url_prefix.rstrip('/')}/{kind}/{filename}"

    def is_local(self, url: str) -> bool:
        return url.startswith(self.url_prefix.rstrip("/") + "/")

    def path_for(self, url: str) -> Path:
        """Map a URL returned by :meth:`persist` back to its file."""
        if not self.is_local(url):
            raise MediaNotFound(f"URL is not served by this store: {url}")
        relative = url[len(self.url_prefix.rstrip("/")) + 1 :]
        kind, _, filename = relative.partition("/")
        directories = {"full": self.paths.full, "thumb": self.paths.thumbs}
        directory = directories.get(kind)
        if directory is None or not filename or "/" in filename or filename.startswith("."):
            raise MediaNotFound(f"Unknown media URL: {url}")
        path = directory / filename
        if not path.is_file():
            raise MediaNotFound(f"Media file missing for {url}")
        return path

    async def read_bytes(self, url: str) -> bytes:
        path = self.path_for(url)
        return await asyncio.to_thread(path.read_bytes)
