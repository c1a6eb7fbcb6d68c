"""Application configuration.

Settings are read from ``BATCHGEN_*`` environment variables through
pydantic-settings. :func:`load_config` turns them into the runtime bundle
(media directories, SQLAlchemy engine and session factory) used by the
dependency wiring.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db

PACKAGED_PRESETS_DIR = Path(__file__).resolve().parent / "presets" / "data"


def _default_media_root() -> Path:
    return Path("./var/media")


class Settings(BaseSettings):
    """Environment driven settings for the service layer."""

    model_config = SettingsConfigDict(env_prefix="BATCHGEN_", env_file=".env", extra="ignore")

    database_url: str = Field(
        default="sqlite:///batchgen.db",
        description="Connection string for the image record index.",
    )
    media_root: Path = Field(
        default_factory=_default_media_root,
        description="Filesystem root for persisted images and thumbnails.",
    )
    public_base_url: str = Field(
        default="http://localhost:8000",
        description="Absolute base used when handing local media URLs to providers.",
    )
    inline_local_media: bool = Field(
        default=True,
        description="Send locally stored inputs to Replicate as data URIs instead of public URLs.",
    )
    media_url_prefix: str = Field(
        default="/media",
        description="URL prefix under which persisted images are served.",
    )
    replicate_api_url: str = Field(default="https://api.replicate.com/v1")
    replicate_api_token: str = Field(default="")
    openai_api_url: str = Field(default="https://api.openai.com/v1")
    openai_api_key: str = Field(default="")
    request_timeout_seconds: float = Field(
        default=30.0,
        ge=0.1,
        description="Timeout applied to each provider HTTP call in seconds.",
    )
    prediction_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Deadline for a prediction to reach a terminal status.",
    )
    poll_initial_interval_seconds: float = Field(default=1.0, ge=0.0)
    poll_max_interval_seconds: float = Field(default=5.0, ge=0.0)
    poll_backoff_factor: float = Field(default=1.5, ge=1.0)
    default_model_key: str = Field(
        default="google/nano-banana",
        description="Model used by batches that do not request one.",
    )
    max_concurrent_jobs: int = Field(
        default=4,
        ge=1,
        description="Upper bound on concurrently running batch results.",
    )
    batch_ttl_hours: float = Field(
        default=6.0,
        gt=0,
        description="Completed batches older than this are evicted.",
    )
    eviction_interval_seconds: float = Field(default=900.0, ge=1.0)
    presets_dir: Path = Field(default=PACKAGED_PRESETS_DIR)
    allow_custom_colors: bool = Field(
        default=True,
        description="Use unknown color keys verbatim as the color prompt value.",
    )
    thumbnail_width: int = Field(default=256, ge=16)
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True, description="Render log events as JSON lines.")


@dataclass(slots=True)
class MediaPaths:
    root: Path
    full: Path
    thumbs: Path


@dataclass(slots=True)
class AppConfig:
    settings: Settings
    media_paths: MediaPaths
    engine: Engine
    session_factory: sessionmaker[Session]


def _ensure_media_paths(paths: MediaPaths) -> None:
    paths.root.mkdir(parents=True, exist_ok=True)
    paths.full.mkdir(parents=True, exist_ok=True)
    paths.thumbs.mkdir(parents=True, exist_ok=True)


def build_media_paths(root: Path) -> MediaPaths:
    return MediaPaths(root=root, full=root / "full", thumbs=root / "thumb")


def load_config(settings: Settings | None = None) -> AppConfig:
    """Build runtime configuration from environment settings."""
    settings = settings or Settings()
    media_paths = build_media_paths(settings.media_root)
    _ensure_media_paths(media_paths)

    engine = create_engine(settings.database_url, future=True)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)
    init_db(engine)

    return AppConfig(
        settings=settings,
        media_paths=media_paths,
        engine=engine,
        session_factory=session_factory,
    )
