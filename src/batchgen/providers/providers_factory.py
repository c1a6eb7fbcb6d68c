"""Dispatch table from model keys to provider drivers."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from ..config import Settings
from ..predictions.prediction_client import PredictionClient
from .model_registry import ModelRegistry
from .provider_errors import ModelNotFound
from .providers_base import ImagePersistence, ProviderDriver
from .providers_openai import OpenAIImageDriver
from .providers_replicate import ReplicateDriver

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Resolve a model key to its driver; built once at startup."""

    def __init__(self, drivers: Iterable[ProviderDriver], models: ModelRegistry) -> None:
        self._models = models
        self._drivers: dict[str, ProviderDriver] = {}
        drivers = list(drivers)
        for model in models:
            driver = next((candidate for candidate in drivers if candidate.supports(model.key)), None)
            if driver is None:
                logger.warning("providers.model.unbound", extra={"model_key": model.key})
                continue
            self._drivers[model.key] = driver

    def resolve(self, model_key: str) -> ProviderDriver:
        try:
            return self._drivers[model_key]
        except KeyError:
            raise ModelNotFound(model_key) from None

    def supports_edit(self, model_key: str) -> bool:
        driver = self._drivers.get(model_key)
        return driver is not None and driver.supports_edit(model_key)

    def list_models(self) -> list[dict[str, Any]]:
        return [
            {
                "key": model.key,
                "provider": model.provider,
                "description": model.description,
                "defaults": dict(model.defaults),
                "supports_edit": self.supports_edit(model.key),
            }
            for model in self._models
            if model.key in self._drivers
        ]


def create_provider_registry(
    settings: Settings,
    *,
    store: ImagePersistence,
    models: ModelRegistry | None = None,
) -> ProviderRegistry:
    """Instantiate every driver from settings and bind models to them."""
    models = models or ModelRegistry()
    client = PredictionClient(
        api_url=settings.replicate_api_url,
        api_token=settings.replicate_api_token,
        request_timeout=settings.request_timeout_seconds,
        default_timeout=settings.prediction_timeout_seconds,
        initial_interval=settings.poll_initial_interval_seconds,
        max_interval=settings.poll_max_interval_seconds,
        backoff_factor=settings.poll_backoff_factor,
    )
    drivers: list[ProviderDriver] = [
        ReplicateDriver(
            client=client,
            store=store,
            models=models,
            public_base_url=settings.public_base_url,
            inline_local_media=settings.inline_local_media,
            download_timeout=settings.request_timeout_seconds,
        ),
        OpenAIImageDriver(
            store=store,
            api_key=settings.openai_api_key,
            api_url=settings.openai_api_url,
            models=models,
        ),
    ]
    return ProviderRegistry(drivers, models)
