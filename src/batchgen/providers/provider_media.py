"""Helpers for moving images between providers and local storage."""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes

import httpx

from ..media.media_models import ImageMetadata
from ..predictions.prediction_errors import ProviderUnavailable
from .provider_errors import InvalidProviderInput
from .providers_base import ImageOutput, ImagePersistence

logger = logging.getLogger(__name__)


def to_public_url(url: str, *, base_url: str) -> str:
    """Return a URL the external provider can fetch."""
    if url.startswith("data:") or url.startswith("http://") or url.startswith("https://"):
        return url
    if url.startswith("/"):
        return base_url.rstrip("/") + url
    raise InvalidProviderInput(f"Invalid URL format: {url}")


def encode_data_uri(payload: bytes, content_type: str = "image/png") -> str:
    return f"data:{content_type};base64,{base64.b64encode(payload).decode('ascii')}"


async def inline_local(store: ImagePersistence, url: str) -> str:
    """Turn a URL served by ``store`` into a data URI; other URLs pass through."""
    if not store.is_local(url):
        return url
    payload = await store.read_bytes(url)
    content_type = mimetypes.guess_type(url)[0] or "image/png"
    return encode_data_uri(payload, content_type)


def decode_data_uri(uri: str) -> tuple[bytes, str]:
    header, sep, data = uri.partition(",")
    if not header.startswith("data:") or not sep or ";base64" not in header:
        raise InvalidProviderInput("Expected a base64 data URI")
    content_type = header[len("data:") :].split(";", 1)[0] or "image/png"
    try:
        return base64.b64decode(data, validate=True), content_type
    except (binascii.Error, ValueError) as exc:
        raise InvalidProviderInput("Data URI payload is not valid base64") from exc


async def download_image(url: str, *, timeout: float) -> tuple[bytes, str]:
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(url)
    except httpx.HTTPError as exc:
        raise ProviderUnavailable(f"Image download failed for {url}: {exc}") from exc
    if response.status_code != 200:
        raise ProviderUnavailable(
            f"Image download failed with status {response.status_code} for {url}",
            status_code=response.status_code,
            body=response.text[:500],
        )
    return response.content, response.headers.get("Content-Type", "image/png")


async def persist_remote(
    store: ImagePersistence,
    url: str,
    metadata: ImageMetadata,
    *,
    timeout: float,
) -> ImageOutput:
    """Copy a provider URL into local storage; provider URLs expire."""
    if store.is_local(url):
        return ImageOutput(url=url, full_url=url, thumb_url=url)
    payload, _ = await download_image(url, timeout=timeout)
    logger.info("provider.output.downloaded", extra={"source_url": url, "size_bytes": len(payload)})
    persisted = await store.persist(payload, metadata)
    return ImageOutput.from_persisted(persisted)
