"""Errors raised by provider drivers."""

from __future__ import annotations

from ..exceptions import AppError


class ProviderError(AppError):
    """Base class for provider driver failures."""


class ModelNotFound(ProviderError):
    """Raised when a model key is absent from the registry."""

    def __init__(self, model_key: str) -> None:
        self.model_key = model_key
        super().__init__(f"Model '{model_key}' is not registered")


class UnsupportedOperation(ProviderError):
    """Raised when a model or driver does not implement the requested capability."""

    def __init__(self, provider: str, model_key: str, operation: str) -> None:
        self.provider = provider
        self.model_key = model_key
        self.operation = operation
        super().__init__(f"{provider} model '{model_key}' does not support {operation}")


class InvalidProviderInput(ProviderError):
    """Raised when inputs cannot be translated into a provider payload."""
