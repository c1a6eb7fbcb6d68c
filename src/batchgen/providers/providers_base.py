"""Abstract provider driver definition."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..media.media_models import ImageMetadata, PersistedImage
from .model_registry import ModelConfig, ModelRegistry
from .provider_errors import ModelNotFound, UnsupportedOperation


@dataclass(frozen=True, slots=True)
class ImageOutput:
    """Normalized image returned by every driver."""

    url: str
    full_url: str
    thumb_url: str

    @classmethod
    def from_persisted(cls, image: PersistedImage) -> "ImageOutput":
        return cls(url=image.full_url, full_url=image.full_url, thumb_url=image.thumb_url)


@dataclass(slots=True)
class GenerationContext:
    """Caller provenance threaded through to persistence."""

    batch_id: str | None = None
    sources: list[str] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)
    on_job: Callable[[str], None] | None = None

    def metadata(self, *, prompt: str, model_key: str, extra: Mapping[str, Any] | None = None) -> ImageMetadata:
        params = {**self.params, **(extra or {})}
        return ImageMetadata(
            prompt=prompt,
            model=model_key,
            batch_id=self.batch_id,
            sources=list(self.sources),
            params=params,
        )


class ImagePersistence(Protocol):
    async def persist(self, raw: bytes, metadata: ImageMetadata) -> PersistedImage: ...

    def is_local(self, url: str) -> bool: ...

    async def read_bytes(self, url: str) -> bytes: ...


class ProviderDriver(ABC):
    """Uniform generate/edit capability over one provider family."""

    name: str
    models: ModelRegistry

    def supports(self, model_key: str) -> bool:
        model = self.models.find(model_key)
        return model is not None and model.provider == self.name

    def supports_edit(self, model_key: str) -> bool:
        return self.supports(model_key) and self.models.get(model_key).supports_edit

    def model_for(self, model_key: str) -> ModelConfig:
        if not self.supports(model_key):
            raise ModelNotFound(model_key)
        return self.models.get(model_key)

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        model_key: str,
        params: Mapping[str, Any] | None = None,
        *,
        context: GenerationContext | None = None,
    ) -> list[ImageOutput]:
        """Create images from text (optionally with reference images in ``params``)."""

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
        """Transform ``images``; drivers without editing refuse up front."""
        raise UnsupportedOperation(self.name, model_key, "edit")
