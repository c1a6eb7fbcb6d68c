"""Errors raised while talking to a prediction API."""

from __future__ import annotations

from ..exceptions import AppError


class PredictionError(AppError):
    """Base class for prediction lifecycle failures."""


class ProviderUnavailable(PredictionError):
    """Raised when the provider HTTP layer rejects or fails a call."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PredictionFailed(PredictionError):
    """Raised when the provider reports a terminal ``failed`` status."""

    def __init__(self, prediction_id: str, detail: str | None) -> None:
        self.prediction_id = prediction_id
        self.detail = detail or "Unknown error"
        super().__init__(f"Prediction {prediction_id} failed: {self.detail}")


class PredictionCanceled(PredictionError):
    """Raised when the provider reports a terminal ``canceled`` status."""

    def __init__(self, prediction_id: str) -> None:
        self.prediction_id = prediction_id
        super().__init__(f"Prediction {prediction_id} was canceled")


class PredictionTimeout(PredictionError):
    """Raised when polling exceeds the client-side deadline."""

    def __init__(self, prediction_id: str, timeout: float) -> None:
        self.prediction_id = prediction_id
        self.timeout = timeout
        super().__init__(f"Prediction {prediction_id} timed out after {timeout:g} seconds")


class PredictionMissingOutput(PredictionError):
    """Raised when a prediction succeeded without a usable output."""

    def __init__(self, prediction_id: str) -> None:
        self.prediction_id = prediction_id
        super().__init__(f"Prediction {prediction_id} succeeded without output")
