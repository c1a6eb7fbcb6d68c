"""Static catalogue of generation models."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from .provider_errors import ModelNotFound


@dataclass(frozen=True, slots=True)
class ModelConfig:
    """Registry entry mapping a model key to its provider."""

    key: str
    provider: str
    identifier: str
    description: str = ""
    defaults: dict[str, Any] = field(default_factory=dict)
    supports_edit: bool = False


DEFAULT_MODELS: tuple[ModelConfig, ...] = (
    ModelConfig(
        key="google/nano-banana",
        provider="replicate",
        identifier="google/nano-banana",
        description="Nano Banana (Gemini 2.5 Flash Image), multi-image edits.",
        defaults={"output_format": "png"},
        supports_edit=True,
    ),
    ModelConfig(
        key="flux-kontext-max",
        provider="replicate",
        identifier="black-forest-labs/flux-kontext-max",
        description="Flux Kontext Max, contextual image editing.",
        defaults={"output_format": "png", "prompt_upsampling": False, "safety_tolerance": 2},
        supports_edit=True,
    ),
    ModelConfig(
        key="flux-krea-dev",
        provider="replicate",
        identifier="black-forest-labs/flux-krea-dev",
        description="FLUX.1 Krea [dev], photorealistic text-to-image.",
        defaults={
            "prompt_strength": 0.8,
            "num_inference_steps": 50,
            "guidance": 4.5,
            "output_format": "png",
        },
    ),
    ModelConfig(
        key="flux-pro",
        provider="replicate",
        identifier="black-forest-labs/flux-1.1-pro",
        description="Flux Pro 1.1, fast and creative.",
        defaults={"output_format": "png", "prompt_upsampling": False, "safety_tolerance": 2},
    ),
    ModelConfig(
        key="imagen-4",
        provider="replicate",
        identifier="google/imagen-4",
        description="Imagen 4.",
        defaults={"safety_filter_level": "block_medium_and_above"},
    ),
    ModelConfig(
        key="gpt-image-1",
        provider="openai",
        identifier="gpt-image-1",
        description="GPT Image 1, most accurate but slow.",
        defaults={"size": "1024x1024", "quality": "high"},
        supports_edit=True,
    ),
    ModelConfig(
        key="dall-e-3",
        provider="openai",
        identifier="dall-e-3",
        description="DALL-E 3.",
        defaults={"size": "1024x1024", "quality": "standard"},
    ),
    ModelConfig(
        key="dall-e-2",
        provider="openai",
        identifier="dall-e-2",
        description="DALL-E 2.",
        defaults={"size": "1024x1024"},
    ),
)


class ModelRegistry:
    """Read-only lookup of :class:`ModelConfig` by key."""

    def __init__(self, models: Iterable[ModelConfig] = DEFAULT_MODELS) -> None:
        self._models = {model.key: model for model in models}

    def get(self, model_key: str) -> ModelConfig:
        try:
            return self._models[model_key]
        except KeyError:
            raise ModelNotFound(model_key) from None

    def find(self, model_key: str) -> ModelConfig | None:
        return self._models.get(model_key)

    def __iter__(self) -> Iterator[ModelConfig]:
        return iter(self._models.values())

    def __contains__(self, model_key: object) -> bool:
        return model_key in self._models
