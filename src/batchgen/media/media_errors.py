"""Errors raised by the media persistence layer."""

from __future__ import annotations

from ..exceptions import AppError


class MediaError(AppError):
    """Base class for media persistence failures."""


class InvalidImageData(MediaError):
    """Raised when bytes handed to the store are not a decodable image."""


class MediaNotFound(MediaError):
    """Raised when a URL does not resolve to a stored image."""
