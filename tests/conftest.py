from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.batchgen.config import MediaPaths, build_media_paths
from src.batchgen.db.db_init import init_db
from src.batchgen.media.image_repository import ImageRecordRepository
from src.batchgen.media.image_store import ImageStore
from src.batchgen.presets.preset_models import AnglePreset, ColorPreset, PromptTemplate
from src.batchgen.presets.preset_store import InMemoryPresetStore


@pytest.fixture
def session_factory(tmp_path: Path):
    # file-backed so worker threads share one database
    engine = create_engine(f"sqlite:///{tmp_path / 'records.db'}", future=True)
    init_db(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def media_paths(tmp_path: Path) -> MediaPaths:
    paths = build_media_paths(tmp_path / "media")
    paths.full.mkdir(parents=True)
    paths.thumbs.mkdir(parents=True)
    return paths


@pytest.fixture
def image_repo(session_factory) -> ImageRecordRepository:
    return ImageRecordRepository(session_factory)


@pytest.fixture
def image_store(media_paths: MediaPaths, image_repo: ImageRecordRepository) -> ImageStore:
    return ImageStore(paths=media_paths, repository=image_repo, thumbnail_width=8)


@pytest.fixture
def preset_store() -> InMemoryPresetStore:
    return InMemoryPresetStore(
        angles=[
            AnglePreset("front", "Front", "a straight-on front view", order=1),
            AnglePreset("side", "Side", "a clean side profile", order=2),
            AnglePreset("rear", "Rear", "a straight-on rear view", order=3),
        ],
        colors=[
            ColorPreset("red", "Red", "glossy candy red"),
            ColorPreset("blue", "Blue", "deep metallic blue"),
        ],
        templates=[
            PromptTemplate("angle_generation", "Show this car from {{ANGLE_DESC}}"),
            PromptTemplate("colorization", "Repaint this car in {{COLOR_NAME}}"),
        ],
    )
