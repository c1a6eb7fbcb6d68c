"""OpenAI images driver (synchronous request/response)."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..predictions.prediction_errors import PredictionMissingOutput, ProviderUnavailable
from .model_registry import ModelConfig, ModelRegistry
from .provider_errors import InvalidProviderInput, UnsupportedOperation
from .provider_media import decode_data_uri, download_image, persist_remote
from .providers_base import GenerationContext, ImageOutput, ImagePersistence, ProviderDriver

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 500, 503})
GPT_IMAGE_QUALITIES = frozenset({"high", "medium", "low", "auto"})

FileField = tuple[str, tuple[str, bytes, str]]


@dataclass(slots=True)
class OpenAIImageDriver(ProviderDriver):
    """Call the OpenAI images API; results arrive inline as base64 or as URLs."""

    store: ImagePersistence
    api_key: str = ""
    api_url: str = "https://api.openai.com/v1"
    models: ModelRegistry = field(default_factory=ModelRegistry)
    timeout_seconds: float = 120.0
    max_attempts: int = 2
    backoff_seconds: float = 2.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    name: str = "openai"
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
        payload = self._generation_payload(model, prompt, {**model.defaults, **(params or {})})
        self.log.info(
            "openai.generate.start",
            extra={"model_key": model.key, "prompt_preview": prompt[:50]},
        )
        response = await self._send(
            lambda client: client.post(
                f"{self._base}/images/generations", headers=self._headers, json=payload
            ),
            model_key=model.key,
        )
        return await self._collect(response, model=model, prompt=prompt, context=context)

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
        if not model.supports_edit:
            raise UnsupportedOperation(self.name, model_key, "edit")
        if not images:
            raise InvalidProviderInput("Image editing requires at least one input image")

        options = {**model.defaults, **(params or {})}
        data: dict[str, Any] = {"model": model.identifier, "prompt": prompt, "n": str(options.get("n", 1))}
        if options.get("size"):
            data["size"] = options["size"]
        quality = options.get("quality")
        data["quality"] = quality if quality in GPT_IMAGE_QUALITIES else "high"

        files: list[FileField] = []
        for index, image in enumerate(images):
            payload, content_type = await self._load_input(image)
            files.append(("image[]", (f"image_{index}.png", payload, content_type)))
        if mask:
            payload, content_type = await self._load_input(mask)
            files.append(("mask", ("mask.png", payload, content_type)))

        self.log.info(
            "openai.edit.start",
            extra={"model_key": model.key, "image_count": len(images), "has_mask": bool(mask)},
        )
        response = await self._send(
            lambda client: client.post(
                f"{self._base}/images/edits", headers=self._headers, data=data, files=files
            ),
            model_key=model.key,
        )
        return await self._collect(response, model=model, prompt=prompt, context=context)

    @property
    def _base(self) -> str:
        return self.api_url.rstrip("/")

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _generation_payload(self, model: ModelConfig, prompt: str, options: dict[str, Any]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model.identifier,
            "prompt": prompt,
            "n": int(options.get("n") or 1),
            "size": options.get("size") or "1024x1024",
        }
        if model.key == "gpt-image-1":
            quality = options.get("quality")
            payload["quality"] = quality if quality in GPT_IMAGE_QUALITIES else "high"
            if options.get("background"):
                payload["background"] = options["background"]
            return payload

        payload["response_format"] = "b64_json"
        if model.key == "dall-e-3":
            quality = options.get("quality")
            payload["quality"] = quality if quality in {"hd", "standard"} else "standard"
            if options.get("style"):
                payload["style"] = options["style"]
        return payload

    async def _load_input(self, reference: str) -> tuple[bytes, str]:
        if reference.startswith("data:"):
            return decode_data_uri(reference)
        if self.store.is_local(reference):
            return await self.store.read_bytes(reference), "image/png"
        if reference.startswith("http://") or reference.startswith("https://"):
            return await download_image(reference, timeout=self.timeout_seconds)
        raise InvalidProviderInput(f"Invalid image reference: {reference[:80]}")

    async def _send(
        self,
        request: Callable[[httpx.AsyncClient], Awaitable[httpx.Response]],
        *,
        model_key: str,
    ) -> httpx.Response:
        attempts = max(1, self.max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await request(client)
            except httpx.HTTPError as exc:
                if attempt >= attempts:
                    raise ProviderUnavailable(f"OpenAI HTTP error: {exc}") from exc
                await self.sleep(self.backoff_seconds)
                continue

            if response.status_code == 200:
                return response

            if response.status_code not in RETRYABLE_STATUSES or attempt >= attempts:
                detail = _extract_error(response)
                self.log.error(
                    "openai.response.error",
                    extra={
                        "model_key": model_key,
                        "http_status": response.status_code,
                        "provider_error_message": detail,
                    },
                )
                raise ProviderUnavailable(
                    f"OpenAI request failed (status={response.status_code}): {detail}",
                    status_code=response.status_code,
                    body=response.text,
                )
            await self.sleep(self.backoff_seconds)

        raise ProviderUnavailable("OpenAI request failed after retries")

    async def _collect(
        self,
        response: httpx.Response,
        *,
        model: ModelConfig,
        prompt: str,
        context: GenerationContext | None,
    ) -> list[ImageOutput]:
        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderUnavailable("OpenAI response is not valid JSON", body=response.text) from exc

        entries = body.get("data") or []
        reference = f"openai-{body.get('created') or int(time.time())}"
        if not entries:
            raise PredictionMissingOutput(reference)

        ctx = context or GenerationContext()
        metadata = ctx.metadata(prompt=prompt, model_key=model.key)
        outputs: list[ImageOutput] = []
        for entry in entries:
            b64_json = entry.get("b64_json")
            url = entry.get("url")
            if b64_json:
                try:
                    raw = base64.b64decode(b64_json)
                except (binascii.Error, ValueError) as exc:
                    raise ProviderUnavailable("OpenAI response payload is invalid") from exc
                persisted = await self.store.persist(raw, metadata)
                outputs.append(ImageOutput.from_persisted(persisted))
            elif url:
                outputs.append(
                    await persist_remote(self.store, url, metadata, timeout=self.timeout_seconds)
                )
            else:
                raise PredictionMissingOutput(reference)
        return outputs


def _extract_error(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    error = data.get("error")
    if isinstance(error, dict):
        message = (error.get("message") or "").strip()
        err_type = (error.get("type") or "").strip()
        return " ".join(part for part in (err_type, message) if part)
    return str(data)
