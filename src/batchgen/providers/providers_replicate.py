"""Replicate provider driver (submit a prediction, poll it, fetch outputs)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..predictions.prediction_client import PredictionClient
from ..predictions.prediction_errors import PredictionMissingOutput
from ..predictions.prediction_models import Prediction
from .model_registry import ModelConfig, ModelRegistry
from .provider_errors import InvalidProviderInput, UnsupportedOperation
from .provider_media import inline_local, persist_remote, to_public_url
from .providers_base import GenerationContext, ImageOutput, ImagePersistence, ProviderDriver

logger = logging.getLogger(__name__)

GenerateMapper = Callable[[dict[str, Any], str], dict[str, Any]]
EditMapper = Callable[[dict[str, Any], Sequence[str], str | None, str], dict[str, Any]]

NANO_BANANA_FIELDS = ("prompt", "image_input", "output_format")


@dataclass(slots=True)
class ReplicateDriver(ProviderDriver):
    """Run Replicate models through :class:`PredictionClient`."""

    client: PredictionClient
    store: ImagePersistence
    models: ModelRegistry = field(default_factory=ModelRegistry)
    public_base_url: str = "http://localhost:8000"
    inline_local_media: bool = True
    download_timeout: float = 30.0
    prediction_timeout: float | None = None
    name: str = "replicate"
    log: logging.Logger = field(default_factory=lambda: logger)

    async def generate(
        self,
        prompt: str,
        model_key: str,
        params: Mapping[str, Any] | None = None,
        *,
        context: GenerationContext | None = None,
    ) -> list[ImageOutput]:
        model = self.model_for(model_key)
        body: dict[str, Any] = {**model.defaults, **(params or {}), "prompt": prompt}
        mapper = GENERATE_MAPPERS.get(model.key)
        if mapper is not None:
            body = mapper(body, self.public_base_url)
        return await self._predict(model, body, prompt=prompt, context=context)

    async def edit(
        self,
        prompt: str,
        model_key: str,
        images: Sequence[str],
        mask: str | None = None,
        params: Mapping[str, Any] | None = None,
        *,
        context: GenerationContext | None = None,
    ) -> list[ImageOutput]:
        model = self.model_for(model_key)
        mapper = EDIT_MAPPERS.get(model.key)
        if not model.supports_edit or mapper is None:
            raise UnsupportedOperation(self.name, model_key, "edit")
        if not images:
            raise InvalidProviderInput("Image editing requires at least one input image")
        if self.inline_local_media:
            # the provider cannot reach our own media URLs
            images = [await inline_local(self.store, image) for image in images]
            if mask:
                mask = await inline_local(self.store, mask)
        body: dict[str, Any] = {**model.defaults, **(params or {}), "prompt": prompt}
        body = mapper(body, images, mask, self.public_base_url)
        return await self._predict(model, body, prompt=prompt, context=context)

    async def _predict(
        self,
        model: ModelConfig,
        body: dict[str, Any],
        *,
        prompt: str,
        context: GenerationContext | None,
    ) -> list[ImageOutput]:
        ctx = context or GenerationContext()

        def _announce(prediction: Prediction) -> None:
            if ctx.on_job is not None:
                ctx.on_job(prediction.id)

        prediction = await self.client.run(
            model.identifier,
            body,
            timeout=self.prediction_timeout,
            on_submitted=_announce,
        )
        urls = extract_output_urls(prediction.output)
        if not urls:
            raise PredictionMissingOutput(prediction.id)

        self.log.info(
            "replicate.prediction.succeeded",
            extra={"prediction_id": prediction.id, "model_key": model.key, "outputs": len(urls)},
        )
        metadata = ctx.metadata(
            prompt=prompt,
            model_key=model.key,
            extra={"prediction_id": prediction.id},
        )
        return list(
            await asyncio.gather(
                *(
                    persist_remote(self.store, url, metadata, timeout=self.download_timeout)
                    for url in urls
                )
            )
        )


def extract_output_urls(output: Any) -> list[str]:
    """Normalize the shapes Replicate models use for outputs."""
    if isinstance(output, str):
        return [output] if output else []
    if isinstance(output, Mapping):
        url = output.get("url")
        return [url] if isinstance(url, str) and url else []
    if isinstance(output, (list, tuple)):
        urls: list[str] = []
        for item in output:
            urls.extend(extract_output_urls(item))
        return urls
    return []


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return bool(value)


def _coerce_int(value: Any, *, field_name: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise InvalidProviderInput(f"{field_name} must be an integer, got {value!r}") from exc


def _public_urls(urls: Sequence[str], base_url: str) -> list[str]:
    return [to_public_url(url, base_url=base_url) for url in urls]


def _map_nano_banana(body: dict[str, Any], base_url: str) -> dict[str, Any]:
    body["output_format"] = "png"
    images = body.pop("images", None)
    if isinstance(images, list):
        body["image_input"] = images
    if isinstance(body.get("image_input"), list):
        body["image_input"] = _public_urls(body["image_input"], base_url)
    return {key: body[key] for key in NANO_BANANA_FIELDS if body.get(key) is not None}


def _map_nano_banana_edit(
    body: dict[str, Any], images: Sequence[str], mask: str | None, base_url: str
) -> dict[str, Any]:
    body["image_input"] = list(images)
    return _map_nano_banana(body, base_url)


def _map_flux_kontext(body: dict[str, Any], base_url: str) -> dict[str, Any]:
    if body.get("prompt_upsampling") is not None:
        body["prompt_upsampling"] = _coerce_bool(body["prompt_upsampling"])
    if body.get("safety_tolerance") is not None:
        body["safety_tolerance"] = _coerce_int(body["safety_tolerance"], field_name="safety_tolerance")
    return body


def _map_flux_kontext_edit(
    body: dict[str, Any], images: Sequence[str], mask: str | None, base_url: str
) -> dict[str, Any]:
    # single input image only
    body["input_image"] = to_public_url(images[0], base_url=base_url)
    if mask:
        body["mask"] = to_public_url(mask, base_url=base_url)
    return _map_flux_kontext(body, base_url)


def _map_flux_krea(body: dict[str, Any], base_url: str) -> dict[str, Any]:
    if "Image" in body:
        body["image"] = body.pop("Image")
    if isinstance(body.get("image"), str) and body["image"]:
        body["image"] = to_public_url(body["image"], base_url=base_url)
    return body


GENERATE_MAPPERS: dict[str, GenerateMapper] = {
    "google/nano-banana": _map_nano_banana,
    "flux-kontext-max": _map_flux_kontext,
    "flux-krea-dev": _map_flux_krea,
}

EDIT_MAPPERS: dict[str, EditMapper] = {
    "google/nano-banana": _map_nano_banana_edit,
    "flux-kontext-max": _map_flux_kontext_edit,
}
