"""Dependency wiring helpers."""

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .batches.batch_api import router as batches_router
from .batches.batch_service import BatchOrchestrator
from .batches.batch_store import InMemoryBatchStore
from .config import AppConfig
from .media.image_repository import ImageRecordRepository
from .media.image_store import ImageStore
from .notifications.notification_api import router as events_router
from .notifications.notification_sink import BroadcastHub
from .presets.preset_store import CsvPresetStore
from .providers.providers_factory import create_provider_registry


def include_routers(app: FastAPI, config: AppConfig) -> None:
    """Build services, attach them to ``app.state`` and mount routers."""
    settings = config.settings
    image_repo = ImageRecordRepository(config.session_factory)
    image_store = ImageStore(
        paths=config.media_paths,
        repository=image_repo,
        url_prefix=settings.media_url_prefix,
        thumbnail_width=settings.thumbnail_width,
    )
    provider_registry = create_provider_registry(settings, store=image_store)
    preset_store = CsvPresetStore.from_directory(settings.presets_dir)
    notification_hub = BroadcastHub()
    batch_store = InMemoryBatchStore()
    orchestrator = BatchOrchestrator(
        providers=provider_registry,
        presets=preset_store,
        store=batch_store,
        notifier=notification_hub,
        default_model_key=settings.default_model_key,
        max_concurrent_jobs=settings.max_concurrent_jobs,
        allow_custom_colors=settings.allow_custom_colors,
    )

    app.state.config = config
    app.state.image_repo = image_repo
    app.state.image_store = image_store
    app.state.provider_registry = provider_registry
    app.state.preset_store = preset_store
    app.state.notification_hub = notification_hub
    app.state.batch_store = batch_store
    app.state.batch_orchestrator = orchestrator

    app.include_router(batches_router)
    app.include_router(events_router)
    app.mount(
        settings.media_url_prefix.rstrip("/") or "/media",
        StaticFiles(directory=config.media_paths.root),
        name="media",
    )
