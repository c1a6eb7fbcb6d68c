"""Errors raised when preset data is missing."""

from __future__ import annotations

from ..exceptions import AppError


class PresetError(AppError):
    """Base class for preset lookup failures."""


class PresetNotFound(PresetError):
    """Raised for an unknown angle or color key."""

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind.capitalize()} preset '{key}' not found")


class PromptTemplateNotFound(PresetError):
    """Raised for an unknown prompt template key."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Prompt template '{key}' not found")
