"""Provider drivers presenting a uniform generate/edit capability."""

from .model_registry import DEFAULT_MODELS, ModelConfig, ModelRegistry
from .provider_errors import InvalidProviderInput, ModelNotFound, ProviderError, UnsupportedOperation
from .providers_base import GenerationContext, ImageOutput, ProviderDriver
from .providers_factory import ProviderRegistry, create_provider_registry
from .providers_openai import OpenAIImageDriver
from .providers_replicate import ReplicateDriver

__all__ = [
    "DEFAULT_MODELS",
    "GenerationContext",
    "ImageOutput",
    "InvalidProviderInput",
    "ModelConfig",
    "ModelNotFound",
    "ModelRegistry",
    "OpenAIImageDriver",
    "ProviderDriver",
    "ProviderError",
    "ProviderRegistry",
    "ReplicateDriver",
    "UnsupportedOperation",
    "create_provider_registry",
]
