"""Batch orchestration: fan angle jobs out, chain color jobs, aggregate."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from ..notifications.notification_sink import (
    BATCH_COMPLETED,
    BATCH_CREATED,
    RESULT_UPDATED,
    NotificationSink,
    NullNotificationSink,
)
from ..predictions.prediction_errors import PredictionMissingOutput
from ..presets.preset_errors import PresetNotFound
from ..presets.preset_models import ANGLE_TEMPLATE_KEY, COLOR_TEMPLATE_KEY, build_prompt
from ..presets.preset_store import PresetStore
from ..providers.providers_base import GenerationContext, ImageOutput
from ..providers.providers_factory import ProviderRegistry
from .batch_errors import (
    BatchNotFound,
    DependencyNotSatisfied,
    InvalidBatchRequest,
    ResultNotFound,
)
from .batch_models import (
    Batch,
    BatchResult,
    BatchStatus,
    BatchStatusView,
    ResultStatus,
    ResultType,
)
from .batch_store import BatchStore, InMemoryBatchStore

logger = logging.getLogger(__name__)

CANCELLED_ERROR = "cancelled"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_batch_id() -> str:
    return uuid4().hex


def _unique(keys: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for key in keys:
        key = (key or "").strip()
        if key:
            seen.setdefault(key, None)
    return tuple(seen)


@dataclass(slots=True)
class BatchOrchestrator:
    """Run every Result of a batch as its own task and track completion.

    Angle results start as soon as the batch is created. Each color result
    holds the index of the angle result it recolors and only starts once that
    angle completes; if the angle fails, its color results fail with it. A
    batch is ``completed`` once every result is terminal, whatever the mix of
    outcomes. At most ``max_concurrent_jobs`` results talk to a provider at a
    time; the rest wait in FIFO order.
    """

    providers: ProviderRegistry
    presets: PresetStore
    store: BatchStore = field(default_factory=InMemoryBatchStore)
    notifier: NotificationSink = field(default_factory=NullNotificationSink)
    default_model_key: str = "google/nano-banana"
    max_concurrent_jobs: int = 4
    allow_custom_colors: bool = True
    clock: Callable[[], datetime] = _utcnow
    id_factory: Callable[[], str] = _new_batch_id
    log: logging.Logger = field(default_factory=lambda: logger)
    _slots: asyncio.Semaphore = field(init=False, repr=False)
    _tasks: set[asyncio.Task[None]] = field(default_factory=set, init=False, repr=False)

    def __post_init__(self) -> None:
        self._slots = asyncio.Semaphore(max(1, self.max_concurrent_jobs))

    def create_batch(
        self,
        source_image_urls: Iterable[str],
        angles: Iterable[str],
        colors: Iterable[str] = (),
        auto_colorize: bool = False,
        *,
        additional_instructions: str | None = None,
        title: str | None = None,
        model_key: str | None = None,
    ) -> str:
        """Validate, store and start a batch; returns before any job finishes.

        Must be called from inside a running event loop.
        """
        sources = tuple(url for url in source_image_urls if url)
        if not sources:
            raise InvalidBatchRequest("At least one source image URL is required")
        angle_keys = _unique(angles)
        if not angle_keys:
            raise InvalidBatchRequest("At least one angle is required")
        color_keys = _unique(colors) if auto_colorize else ()
        resolved_model = model_key or self.default_model_key
        if not self.providers.supports_edit(resolved_model):
            raise InvalidBatchRequest(f"Model '{resolved_model}' cannot edit images")
        try:
            asyncio.get_running_loop()
        except RuntimeError as exc:
            raise RuntimeError("create_batch requires a running event loop") from exc

        batch = Batch(
            id=self.id_factory(),
            source_image_urls=sources,
            angles=angle_keys,
            colors=color_keys,
            auto_colorize=auto_colorize,
            model_key=resolved_model,
            created_at=self.clock(),
            additional_instructions=(additional_instructions or "").strip() or None,
            title=(title or "").strip() or None,
        )
        angle_indexes: list[int] = []
        for angle_key in angle_keys:
            angle_indexes.append(len(batch.results))
            batch.results.append(BatchResult(type=ResultType.ANGLE, angle_key=angle_key))
        # color results follow every angle, grouped angle by angle
        for angle_index in angle_indexes:
            angle = batch.results[angle_index]
            for color_key in color_keys:
                angle.dependents.append(len(batch.results))
                batch.results.append(
                    BatchResult(
                        type=ResultType.COLOR,
                        angle_key=angle.angle_key,
                        color_key=color_key,
                        depends_on=angle_index,
                    )
                )

        self.store.put(batch)
        self.log.info(
            "batch.created",
            extra={
                "batch_id": batch.id,
                "model_key": resolved_model,
                "total_jobs": len(batch.results),
                "angles": len(angle_keys),
                "colors": len(color_keys),
            },
        )
        self._notify(
            BATCH_CREATED,
            {
                "batchId": batch.id,
                "totalJobs": len(batch.results),
                "angles": len(angle_keys),
                "colors": len(color_keys),
            },
        )
        batch.status = BatchStatus.PROCESSING
        for index in angle_indexes:
            self._schedule(batch.id, index)
        return batch.id

    async def run_result(self, batch_id: str, result_index: int) -> None:
        """Drive one Result from ``pending`` to a terminal status.

        Failures are recorded on the Result and never raised; only lookup
        errors and an unsatisfied dependency reach the caller.
        """
        batch = self._require(batch_id)
        result = self._result(batch, result_index)
        if result.status is not ResultStatus.PENDING:
            self.log.debug(
                "batch.result.skipped",
                extra={"batch_id": batch_id, "result_index": result_index, "status": result.status.value},
            )
            return
        source = self._angle_source(batch, result_index, result)

        result.status = ResultStatus.PROCESSING
        self._announce(batch, result)
        try:
            output = await self._execute(batch, result, source)
        except asyncio.CancelledError:
            self._fail(batch, result, CANCELLED_ERROR)
            raise
        except Exception as exc:
            self.log.warning(
                "batch.result.failed",
                extra={
                    "batch_id": batch.id,
                    "result_index": result_index,
                    "type": result.type.value,
                    "angle_key": result.angle_key,
                    "color_key": result.color_key,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            self._fail(batch, result, str(exc) or type(exc).__name__)
        else:
            self._complete(batch, result, output)

    def check_completion(self, batch_id: str) -> bool:
        """Mark the batch completed if every Result is terminal.

        Returns ``True`` only for the call that performed the transition.
        """
        batch = self._require(batch_id)
        if batch.completed_at is not None or not batch.is_finished:
            return False
        batch.status = BatchStatus.COMPLETED
        batch.completed_at = self.clock()
        view = BatchStatusView.from_batch(batch)
        self.log.info(
            "batch.completed",
            extra={
                "batch_id": batch.id,
                "total": view.total,
                "completed": view.completed,
                "failed": view.failed,
            },
        )
        self._notify(
            BATCH_COMPLETED,
            {
                "batchId": batch.id,
                "status": batch.status.value,
                "total": view.total,
                "completed": view.completed,
                "failed": view.failed,
            },
        )
        return True

    def get_batch_status(self, batch_id: str) -> BatchStatusView:
        return BatchStatusView.from_batch(self._require(batch_id))

    def get_batch(self, batch_id: str) -> Batch:
        return self._require(batch_id)

    def build_result_prompt(self, batch: Batch, result: BatchResult) -> str:
        """Render the preset template for ``result`` plus batch instructions."""
        if result.type is ResultType.ANGLE:
            template = self.presets.get_template(ANGLE_TEMPLATE_KEY)
            angle = self.presets.get_angle(result.angle_key)
            prompt = build_prompt(template.prompt_template, {"ANGLE_DESC": angle.angle_desc})
        else:
            template = self.presets.get_template(COLOR_TEMPLATE_KEY)
            prompt = build_prompt(
                template.prompt_template,
                {"COLOR_NAME": self._color_value(result.color_key or "")},
            )
        if batch.additional_instructions:
            prompt = f"{prompt}. {batch.additional_instructions}"
        return prompt

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every scheduled Result task, including chained ones, has ended."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel in-flight Result tasks and wait for them to settle."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            self.log.info("batch.tasks.cancelled", extra={"count": len(tasks)})

    def _schedule(self, batch_id: str, result_index: int) -> None:
        task = asyncio.get_running_loop().create_task(
            self._run_bounded(batch_id, result_index),
            name=f"batch:{batch_id}:{result_index}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_bounded(self, batch_id: str, result_index: int) -> None:
        try:
            async with self._slots:
                await self.run_result(batch_id, result_index)
        except asyncio.CancelledError:
            # cancelled while still queued for a slot
            batch = self.store.get(batch_id)
            if batch is not None:
                result = batch.results[result_index]
                if result.status is ResultStatus.PENDING:
                    self._fail(batch, result, CANCELLED_ERROR)
            raise
        except Exception as exc:
            self.log.exception(
                "batch.result.crashed",
                extra={"batch_id": batch_id, "result_index": result_index},
            )
            batch = self.store.get(batch_id)
            if batch is not None and 0 <= result_index < len(batch.results):
                result = batch.results[result_index]
                if not result.status.is_terminal:
                    self._fail(batch, result, str(exc) or type(exc).__name__)

    async def _execute(
        self, batch: Batch, result: BatchResult, source: BatchResult | None
    ) -> ImageOutput:
        prompt = self.build_result_prompt(batch, result)
        if source is None:
            images = list(batch.source_image_urls)
        else:
            images = [source.image_url or ""]

        def _record_job(job_id: str) -> None:
            result.job_id = job_id

        context = GenerationContext(
            batch_id=batch.id,
            sources=list(batch.source_image_urls),
            params={
                "type": result.type.value,
                "angleKey": result.angle_key,
                "colorKey": result.color_key,
                "batchId": batch.id,
            },
            on_job=_record_job,
        )
        driver = self.providers.resolve(batch.model_key)
        self.log.info(
            "batch.result.run",
            extra={
                "batch_id": batch.id,
                "type": result.type.value,
                "angle_key": result.angle_key,
                "color_key": result.color_key,
                "image_input_len": len(images),
            },
        )
        outputs = await driver.edit(prompt, batch.model_key, images, context=context)
        if not outputs or not outputs[0].full_url:
            raise PredictionMissingOutput(result.job_id or batch.id)
        return outputs[0]

    def _complete(self, batch: Batch, result: BatchResult, output: ImageOutput) -> None:
        result.status = ResultStatus.COMPLETED
        result.image_url = output.full_url
        result.thumb_url = output.thumb_url
        self._announce(batch, result)
        for index in result.dependents:
            if batch.results[index].status is ResultStatus.PENDING:
                self._schedule(batch.id, index)
        self.check_completion(batch.id)

    def _fail(self, batch: Batch, result: BatchResult, error: str) -> None:
        result.status = ResultStatus.FAILED
        result.error = error
        self._announce(batch, result)
        for index in result.dependents:
            dependent = batch.results[index]
            if dependent.status is ResultStatus.PENDING:
                dependent.status = ResultStatus.FAILED
                dependent.error = f"Dependency angle '{result.angle_key}' failed"
                self._announce(batch, dependent)
        self.check_completion(batch.id)

    def _announce(self, batch: Batch, result: BatchResult) -> None:
        self._notify(RESULT_UPDATED, {"batchId": batch.id, "result": result.event_payload()})

    def _notify(self, topic: str, payload: dict[str, Any]) -> None:
        try:
            self.notifier.publish(topic, payload)
        except Exception:
            self.log.exception("batch.notify_failed", extra={"topic": topic})

    def _angle_source(
        self, batch: Batch, result_index: int, result: BatchResult
    ) -> BatchResult | None:
        if result.depends_on is None:
            return None
        angle = batch.results[result.depends_on]
        if angle.status is not ResultStatus.COMPLETED or not angle.image_url:
            raise DependencyNotSatisfied(batch.id, result_index, result.angle_key)
        return angle

    def _color_value(self, color_key: str) -> str:
        try:
            return self.presets.get_color(color_key).prompt_value
        except PresetNotFound:
            if not self.allow_custom_colors:
                raise
            self.log.info("batch.custom_color", extra={"color_key": color_key})
            return color_key

    def _require(self, batch_id: str) -> Batch:
        batch = self.store.get(batch_id)
        if batch is None:
            raise BatchNotFound(batch_id)
        return batch

    @staticmethod
    def _result(batch: Batch, result_index: int) -> BatchResult:
        if not 0 <= result_index < len(batch.results):
            raise ResultNotFound(batch.id, result_index)
        return batch.results[result_index]
