"""Errors raised by the batch orchestrator."""

from __future__ import annotations

from ..exceptions import AppError


class BatchError(AppError):
    """Base class for batch orchestration errors."""


class InvalidBatchRequest(BatchError):
    """Raised when a batch request is rejected before any work starts."""


class BatchNotFound(BatchError):
    def __init__(self, batch_id: str) -> None:
        self.batch_id = batch_id
        super().__init__(f"Batch '{batch_id}' not found")


class ResultNotFound(BatchError):
    def __init__(self, batch_id: str, result_index: int) -> None:
        self.batch_id = batch_id
        self.result_index = result_index
        super().__init__(f"Result {result_index} not found in batch '{batch_id}'")


class DependencyNotSatisfied(BatchError):
    """Raised when a color result is run before its angle result completed."""

    def __init__(self, batch_id: str, result_index: int, angle_key: str) -> None:
        self.batch_id = batch_id
        self.result_index = result_index
        self.angle_key = angle_key
        super().__init__(
            f"Result {result_index} in batch '{batch_id}' depends on angle '{angle_key}', "
            "which has not completed"
        )


class NoCompletedResults(BatchError):
    def __init__(self, batch_id: str) -> None:
        self.batch_id = batch_id
        super().__init__(f"Batch '{batch_id}' has no completed images")
