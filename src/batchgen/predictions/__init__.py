"""Client for asynchronous prediction-style generation APIs."""

from .prediction_client import PredictionClient
from .prediction_errors import (
    PredictionCanceled,
    PredictionError,
    PredictionFailed,
    PredictionMissingOutput,
    PredictionTimeout,
    ProviderUnavailable,
)
from .prediction_models import Prediction, PredictionStatus

__all__ = [
    "Prediction",
    "PredictionCanceled",
    "PredictionClient",
    "PredictionError",
    "PredictionFailed",
    "PredictionMissingOutput",
    "PredictionStatus",
    "PredictionTimeout",
    "ProviderUnavailable",
]
