"""Batch orchestration of angle and color generation jobs."""

from .batch_errors import (
    BatchError,
    BatchNotFound,
    DependencyNotSatisfied,
    InvalidBatchRequest,
    NoCompletedResults,
    ResultNotFound,
)
from .batch_models import Batch, BatchResult, BatchStatus, BatchStatusView, ResultStatus, ResultType
from .batch_service import BatchOrchestrator
from .batch_store import BatchStore, InMemoryBatchStore

__all__ = [
    "Batch",
    "BatchError",
    "BatchNotFound",
    "BatchOrchestrator",
    "BatchResult",
    "BatchStatus",
    "BatchStatusView",
    "BatchStore",
    "DependencyNotSatisfied",
    "InMemoryBatchStore",
    "InvalidBatchRequest",
    "NoCompletedResults",
    "ResultNotFound",
    "ResultStatus",
    "ResultType",
]
