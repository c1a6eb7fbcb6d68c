"""HTTP routes for batch operations."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response

from ..providers.providers_base import ImagePersistence
from ..providers.providers_factory import ProviderRegistry
from .batch_archive import build_archive, safe_name
from .batch_errors import BatchNotFound, InvalidBatchRequest, NoCompletedResults
from .batch_schemas import (
    BatchResultSchema,
    BatchStatusResponse,
    CreateBatchRequest,
    CreateBatchResponse,
    ModelInfo,
)
from .batch_service import BatchOrchestrator

router = APIRouter(prefix="/api", tags=["batches"])
logger = logging.getLogger(__name__)


def get_orchestrator(request: Request) -> BatchOrchestrator:
    """Fetch the batch orchestrator from application state."""
    try:
        return request.app.state.batch_orchestrator  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - wiring error
        raise RuntimeError("BatchOrchestrator is not configured") from exc


def get_image_store(request: Request) -> ImagePersistence:
    return request.app.state.image_store  # type: ignore[attr-defined]


def get_provider_registry(request: Request) -> ProviderRegistry:
    return request.app.state.provider_registry  # type: ignore[attr-defined]


def _error(status_code: int, reason: str, details: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"status": "error", "failure_reason": reason, "details": details},
    )


@router.post("/batches", response_model=CreateBatchResponse)
async def create_batch(
    payload: CreateBatchRequest,
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
) -> CreateBatchResponse:
    """Start a batch and return its id before any job finishes."""
    try:
        batch_id = orchestrator.create_batch(
            payload.source_image_urls,
            payload.angles,
            payload.colors,
            payload.auto_colorize,
            additional_instructions=payload.additional_instructions,
            title=payload.title,
            model_key=payload.model_key,
        )
    except InvalidBatchRequest as exc:
        logger.warning("batch.invalid_request", extra={"error": str(exc)})
        raise _error(status.HTTP_400_BAD_REQUEST, "invalid_request", str(exc)) from exc
    return CreateBatchResponse(batchId=batch_id)


@router.get("/batches/{batch_id}", response_model=BatchStatusResponse)
async def get_batch_status(
    batch_id: str,
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
) -> BatchStatusResponse:
    try:
        view = orchestrator.get_batch_status(batch_id)
    except BatchNotFound as exc:
        raise _error(status.HTTP_404_NOT_FOUND, "batch_not_found", str(exc)) from exc
    return BatchStatusResponse(
        batchId=view.batch_id,
        status=view.status.value,
        total=view.total,
        completed=view.completed,
        failed=view.failed,
        results=[BatchResultSchema(**result) for result in view.results],
        createdAt=view.created_at,
        completedAt=view.completed_at,
    )


@router.post("/batches/{batch_id}/download")
async def download_batch(
    batch_id: str,
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
    store: ImagePersistence = Depends(get_image_store),
) -> Response:
    """Return a ZIP of every completed image in the batch."""
    try:
        batch = orchestrator.get_batch(batch_id)
        archive = await build_archive(batch, store)
    except BatchNotFound as exc:
        raise _error(status.HTTP_404_NOT_FOUND, "batch_not_found", str(exc)) from exc
    except NoCompletedResults as exc:
        raise _error(status.HTTP_400_BAD_REQUEST, "no_completed_results", str(exc)) from exc
    file_name = f"{safe_name(batch.title or '') or 'batch'}_{batch.id[:8]}.zip"
    return Response(
        content=archive,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@router.get("/models", response_model=list[ModelInfo])
async def list_models(
    registry: ProviderRegistry = Depends(get_provider_registry),
) -> list[ModelInfo]:
    return [ModelInfo(**model) for model in registry.list_models()]
