"""Data structures describing external prediction jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Mapping


class PredictionStatus(StrEnum):
    """Provider-owned lifecycle of a prediction."""

    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {PredictionStatus.SUCCEEDED, PredictionStatus.FAILED, PredictionStatus.CANCELED}
)


@dataclass(frozen=True, slots=True)
class Prediction:
    """Snapshot of an external job as last reported by the provider."""

    id: str
    status: PredictionStatus
    input: Mapping[str, Any] = field(default_factory=dict)
    output: Any = None
    error: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Prediction":
        prediction_id = payload.get("id")
        if not prediction_id:
            raise ValueError("prediction payload is missing 'id'")
        return cls(
            id=str(prediction_id),
            status=PredictionStatus(payload.get("status", PredictionStatus.STARTING)),
            input=payload.get("input") or {},
            output=payload.get("output"),
            error=payload.get("error"),
        )

    @property
    def has_output(self) -> bool:
        output = self.output
        if output is None:
            return False
        if isinstance(output, (str, list, tuple, dict)):
            return len(output) > 0
        return True
