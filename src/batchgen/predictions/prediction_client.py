"""HTTP client for submit-then-poll prediction APIs."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from .prediction_errors import (
    PredictionCanceled,
    PredictionFailed,
    PredictionMissingOutput,
    PredictionTimeout,
    ProviderUnavailable,
)
from .prediction_models import Prediction, PredictionStatus

logger = logging.getLogger(__name__)

SubmitListener = Callable[[Prediction], None]


@dataclass(slots=True)
class PredictionClient:
    """Submit predictions and poll them to a terminal state.

    Polling starts at ``initial_interval`` seconds and grows by
    ``backoff_factor`` per round up to ``max_interval``. ``await_terminal``
    only ever returns a succeeded prediction carrying output; every other
    terminal outcome, and running out of time, is raised as a typed error.
    """

    api_url: str = "https://api.replicate.com/v1"
    api_token: str = ""
    request_timeout: float = 30.0
    default_timeout: float = 600.0
    initial_interval: float = 1.0
    max_interval: float = 5.0
    backoff_factor: float = 1.5
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    log: logging.Logger = field(default_factory=lambda: logger)

    async def submit(self, model_identifier: str, payload: Mapping[str, Any]) -> Prediction:
        """Create a prediction for ``model_identifier`` with ``payload`` as input."""
        url, body = self._submission_target(model_identifier, payload)
        self.log.info(
            "prediction.submit",
            extra={"model": model_identifier, "input": _loggable_input(payload)},
        )
        data = await self._request("POST", url, json=body)
        prediction = Prediction.from_payload(data)
        self.log.info(
            "prediction.submitted",
            extra={"prediction_id": prediction.id, "status": prediction.status.value},
        )
        return prediction

    async def fetch_status(self, prediction_id: str) -> Prediction:
        """Re-read the prediction from the provider."""
        data = await self._request("GET", f"{self._base}/predictions/{prediction_id}")
        return Prediction.from_payload(data)

    async def cancel(self, prediction_id: str) -> None:
        """Ask the provider to stop processing ``prediction_id``."""
        await self._request("POST", f"{self._base}/predictions/{prediction_id}/cancel")
        self.log.info("prediction.cancel_requested", extra={"prediction_id": prediction_id})

    async def await_terminal(self, prediction_id: str, timeout: float | None = None) -> Prediction:
        """Poll until the prediction succeeds with output, or raise."""
        limit = self.default_timeout if timeout is None else timeout
        started = self.clock()
        interval = self.initial_interval
        try:
            while True:
                if self.clock() - started >= limit:
                    raise PredictionTimeout(prediction_id, limit)

                prediction = await self.fetch_status(prediction_id)
                if prediction.status.is_terminal:
                    return _ensure_success(prediction)

                interval = min(interval * self.backoff_factor, self.max_interval)
                delay = min(interval, max(0.0, limit - (self.clock() - started)))
                self.log.debug(
                    "prediction.waiting",
                    extra={
                        "prediction_id": prediction_id,
                        "status": prediction.status.value,
                        "next_poll_seconds": round(delay, 2),
                    },
                )
                await self.sleep(delay)
        except asyncio.CancelledError:
            await self._cancel_quietly(prediction_id)
            raise

    async def run(
        self,
        model_identifier: str,
        payload: Mapping[str, Any],
        *,
        timeout: float | None = None,
        on_submitted: SubmitListener | None = None,
    ) -> Prediction:
        """Submit and wait; ``on_submitted`` sees the prediction before polling."""
        prediction = await self.submit(model_identifier, payload)
        if on_submitted is not None:
            on_submitted(prediction)
        return await self.await_terminal(prediction.id, timeout=timeout)

    @property
    def _base(self) -> str:
        return self.api_url.rstrip("/")

    def _submission_target(
        self, model_identifier: str, payload: Mapping[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        # owner/name targets the model's latest version; anything else is a version id
        if "/" in model_identifier and ":" not in model_identifier:
            return f"{self._base}/models/{model_identifier}/predictions", {"input": dict(payload)}
        version = model_identifier.split(":", 1)[-1]
        return f"{self._base}/predictions", {"version": version, "input": dict(payload)}

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.request_timeout) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(f"Prediction API transport error: {exc}") from exc

        if response.status_code not in (200, 201):
            body = response.text
            self.log.error(
                "prediction.http_error",
                extra={"url": url, "http_status": response.status_code, "body_preview": body[:500]},
            )
            raise ProviderUnavailable(
                f"Prediction API error ({response.status_code}): {body}",
                status_code=response.status_code,
                body=body,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderUnavailable("Prediction API returned invalid JSON", body=response.text) from exc

    async def _cancel_quietly(self, prediction_id: str) -> None:
        try:
            await self.cancel(prediction_id)
        except ProviderUnavailable as exc:
            self.log.warning(
                "prediction.cancel_failed",
                extra={"prediction_id": prediction_id, "error": str(exc)},
            )


def _ensure_success(prediction: Prediction) -> Prediction:
    if prediction.status is PredictionStatus.FAILED:
        raise PredictionFailed(prediction.id, prediction.error)
    if prediction.status is PredictionStatus.CANCELED:
        raise PredictionCanceled(prediction.id)
    if not prediction.has_output:
        raise PredictionMissingOutput(prediction.id)
    return prediction


def _loggable_input(payload: Mapping[str, Any]) -> dict[str, Any]:
    preview = dict(payload)
    prompt = preview.get("prompt")
    if isinstance(prompt, str) and len(prompt) > 50:
        preview["prompt"] = f"{prompt[:50]}..."
    for key in ("image_input", "input_image", "image", "mask"):
        value = preview.get(key)
        if isinstance(value, str) and value.startswith("data:"):
            preview[key] = "<data-uri>"
        elif isinstance(value, list):
            preview[key] = [
                "<data-uri>" if isinstance(item, str) and item.startswith("data:") else item
                for item in value
            ]
    return preview
