"""Persistence layer for image_record rows."""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.db_models import ImageRecordModel
from .media_models import ImageRecord


class ImageRecordRepository:
    """Store metadata about persisted images."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def add(self, record: ImageRecord) -> None:
        with self._session_factory() as session:
            session.add(
                ImageRecordModel(
                    id=record.id,
                    prompt=record.prompt,
                    model=record.model,
                    batch_id=record.batch_id,
                    params=record.params,
                    sources=record.sources,
                    width=record.width,
                    height=record.height,
                    path=record.path,
                    thumb_path=record.thumb_path,
                    created_at=record.created_at,
                )
            )
            session.commit()

    def get(self, image_id: str) -> ImageRecord:
        with self._session_factory() as session:
            model = session.get(ImageRecordModel, image_id)
            if model is None:
                raise KeyError(f"Image '{image_id}' not found")
            return self._to_domain(model)

    def list_for_batch(self, batch_id: str) -> list[ImageRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(ImageRecordModel)
                .where(ImageRecordModel.batch_id == batch_id)
                .order_by(ImageRecordModel.created_at)
            ).all()
            return [self._to_domain(row) for row in rows]

    @staticmethod
    def _to_domain(model: ImageRecordModel) -> ImageRecord:
        return ImageRecord(
            id=model.id,
            prompt=model.prompt,
            model=model.model,
            batch_id=model.batch_id,
            params=dict(model.params or {}),
            sources=list(model.sources or []),
            width=model.width,
            height=model.height,
            path=model.path,
            thumb_path=model.thumb_path,
            created_at=model.created_at,
        )
