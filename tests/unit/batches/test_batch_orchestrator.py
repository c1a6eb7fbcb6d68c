from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from src.batchgen.batches.batch_errors import (
    BatchNotFound,
    DependencyNotSatisfied,
    InvalidBatchRequest,
    ResultNotFound,
)
from src.batchgen.batches.batch_models import Batch, BatchStatus, ResultStatus, ResultType
from src.batchgen.batches.batch_service import BatchOrchestrator
from src.batchgen.batches.batch_store import InMemoryBatchStore
from src.batchgen.predictions.prediction_errors import PredictionFailed
from src.batchgen.providers.model_registry import ModelRegistry
from src.batchgen.providers.providers_base import ImageOutput
from src.batchgen.providers.providers_factory import ProviderRegistry
from tests.mocks.drivers import ScriptedDriver
from tests.mocks.sinks import ExplodingSink, RecordingSink

SOURCE = "/media/full/source.png"


def make_orchestrator(driver, preset_store, **kwargs) -> BatchOrchestrator:
    models = ModelRegistry()
    kwargs.setdefault("notifier", RecordingSink())
    return BatchOrchestrator(
        providers=ProviderRegistry([driver], models),
        presets=preset_store,
        **kwargs,
    )


async def wait_until(predicate: Callable[[], bool], rounds: int = 200) -> None:
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def assert_status_consistent(batch: Batch) -> None:
    finished = all(result.status.is_terminal for result in batch.results)
    assert (batch.status is BatchStatus.COMPLETED) == finished


@pytest.mark.asyncio
async def test_angles_without_colors_create_only_angle_results(preset_store):
    driver = ScriptedDriver()
    orchestrator = make_orchestrator(driver, preset_store)

    batch_id = orchestrator.create_batch([SOURCE], ["front", "side"], [], False)
    await orchestrator.wait_idle()

    view = orchestrator.get_batch_status(batch_id)
    assert view.status is BatchStatus.COMPLETED
    assert view.total == 2
    assert view.completed == 2
    assert view.failed == 0
    assert [result["type"] for result in view.results] == ["angle", "angle"]
    assert [result["angleKey"] for result in view.results] == ["front", "side"]
    assert view.results[0]["imageUrl"] == "/media/full/angle_front.png"
    assert view.results[0]["thumbUrl"] == "/media/thumb/angle_front.png"
    assert view.completed_at is not None
    assert [call.images for call in driver.calls] == [[SOURCE], [SOURCE]]


@pytest.mark.asyncio
async def test_colors_ignored_without_auto_colorize(preset_store):
    orchestrator = make_orchestrator(ScriptedDriver(), preset_store)

    batch_id = orchestrator.create_batch([SOURCE], ["front"], ["red", "blue"], False)
    await orchestrator.wait_idle()

    batch = orchestrator.get_batch(batch_id)
    assert [result.type for result in batch.results] == [ResultType.ANGLE]
    assert batch.colors == ()


@pytest.mark.asyncio
async def test_color_results_wait_for_their_angle(preset_store):
    driver = ScriptedDriver(hold=True)
    orchestrator = make_orchestrator(driver, preset_store)

    batch_id = orchestrator.create_batch([SOURCE], ["front"], ["red", "blue"], True)
    batch = orchestrator.get_batch(batch_id)
    await wait_until(lambda: len(driver.calls) == 1)

    assert [result.type for result in batch.results] == [
        ResultType.ANGLE,
        ResultType.COLOR,
        ResultType.COLOR,
    ]
    assert batch.results[0].status is ResultStatus.PROCESSING
    assert [result.status for result in batch.results[1:]] == [
        ResultStatus.PENDING,
        ResultStatus.PENDING,
    ]
    assert batch.status is BatchStatus.PROCESSING

    driver.calls[0].released.set()
    await wait_until(lambda: len(driver.calls) == 3)

    assert batch.results[0].status is ResultStatus.COMPLETED
    assert [result.status for result in batch.results[1:]] == [
        ResultStatus.PROCESSING,
        ResultStatus.PROCESSING,
    ]
    assert [call.key for call in driver.calls[1:]] == [
        ("color", "front", "red"),
        ("color", "front", "blue"),
    ]
    assert driver.calls[1].images == ["/media/full/angle_front.png"]

    driver.release_all()
    await orchestrator.wait_idle()

    view = orchestrator.get_batch_status(batch_id)
    assert view.status is BatchStatus.COMPLETED
    assert view.completed == 3
    assert view.results[2]["imageUrl"] == "/media/full/color_front_blue.png"


@pytest.mark.asyncio
async def test_failed_angle_fails_its_colors(preset_store):
    driver = ScriptedDriver(
        failures={("angle", "front", None): PredictionFailed("pred-1", "NSFW content detected")}
    )
    sink = RecordingSink()
    orchestrator = make_orchestrator(driver, preset_store, notifier=sink)

    batch_id = orchestrator.create_batch([SOURCE], ["front", "side"], ["red"], True)
    await orchestrator.wait_idle()

    batch = orchestrator.get_batch(batch_id)
    front, side, front_red, side_red = batch.results
    assert front.status is ResultStatus.FAILED
    assert front.error == "Prediction pred-1 failed: NSFW content detected"
    assert front_red.status is ResultStatus.FAILED
    assert front_red.error == "Dependency angle 'front' failed"
    assert side.status is ResultStatus.COMPLETED
    assert side_red.status is ResultStatus.COMPLETED
    assert batch.status is BatchStatus.COMPLETED
    assert ("color", "front", "red") not in [call.key for call in driver.calls]

    failed_updates = [
        payload["result"]
        for payload in sink.payloads("resultUpdated")
        if payload["result"]["status"] == "failed"
    ]
    assert {(update["type"], update["colorKey"]) for update in failed_updates} == {
        ("angle", None),
        ("color", "red"),
    }
    assert all("imageUrl" not in update for update in failed_updates)
    assert sink.payloads("batchCompleted") == [
        {"batchId": batch_id, "status": "completed", "total": 4, "completed": 2, "failed": 2}
    ]


@pytest.mark.asyncio
async def test_batch_status_tracks_every_transition(preset_store):
    driver = ScriptedDriver(hold=True)
    orchestrator = make_orchestrator(driver, preset_store)

    batch_id = orchestrator.create_batch([SOURCE], ["front", "side"], ["red"], True)
    batch = orchestrator.get_batch(batch_id)
    released = 0
    while not batch.is_finished:
        await wait_until(lambda: len(driver.calls) > released)
        assert_status_consistent(batch)
        driver.calls[released].released.set()
        released += 1
        await settle()
        assert_status_consistent(batch)

    await orchestrator.wait_idle()
    assert batch.status is BatchStatus.COMPLETED
    assert released == 4


@pytest.mark.asyncio
async def test_empty_angles_rejected_without_record(preset_store):
    sink = RecordingSink()
    store = InMemoryBatchStore()
    orchestrator = make_orchestrator(ScriptedDriver(), preset_store, notifier=sink, store=store)

    with pytest.raises(InvalidBatchRequest):
        orchestrator.create_batch([SOURCE], [], ["red"], True)
    with pytest.raises(InvalidBatchRequest):
        orchestrator.create_batch([], ["front"], [], False)

    assert len(store) == 0
    assert sink.messages == []
    assert orchestrator.pending_tasks == 0


@pytest.mark.asyncio
async def test_model_must_support_editing(preset_store):
    orchestrator = make_orchestrator(ScriptedDriver(), preset_store)

    with pytest.raises(InvalidBatchRequest):
        orchestrator.create_batch([SOURCE], ["front"], model_key="flux-pro")
    with pytest.raises(InvalidBatchRequest):
        orchestrator.create_batch([SOURCE], ["front"], model_key="no-such-model")
    # openai models have no bound driver here
    with pytest.raises(InvalidBatchRequest):
        orchestrator.create_batch([SOURCE], ["front"], model_key="gpt-image-1")


def test_create_batch_requires_running_loop(preset_store):
    store = InMemoryBatchStore()
    orchestrator = make_orchestrator(ScriptedDriver(), preset_store, store=store)

    with pytest.raises(RuntimeError):
        orchestrator.create_batch([SOURCE], ["front"])

    assert len(store) == 0


@pytest.mark.asyncio
async def test_duplicate_keys_are_collapsed(preset_store):
    orchestrator = make_orchestrator(ScriptedDriver(), preset_store)

    batch_id = orchestrator.create_batch(
        [SOURCE], ["front", "side", "front"], ["red", "red", " "], True
    )
    await orchestrator.wait_idle()

    batch = orchestrator.get_batch(batch_id)
    assert batch.angles == ("front", "side")
    assert batch.colors == ("red",)
    assert [(r.type.value, r.angle_key, r.color_key) for r in batch.results] == [
        ("angle", "front", None),
        ("angle", "side", None),
        ("color", "front", "red"),
        ("color", "side", "red"),
    ]


@pytest.mark.asyncio
async def test_completion_is_announced_once(preset_store):
    sink = RecordingSink()
    orchestrator = make_orchestrator(ScriptedDriver(), preset_store, notifier=sink)

    batch_id = orchestrator.create_batch([SOURCE], ["front"])
    await orchestrator.wait_idle()
    completed_at = orchestrator.get_batch(batch_id).completed_at

    assert orchestrator.check_completion(batch_id) is False
    assert orchestrator.check_completion(batch_id) is False
    assert len(sink.payloads("batchCompleted")) == 1
    assert orchestrator.get_batch(batch_id).completed_at == completed_at


@pytest.mark.asyncio
async def test_notifications_describe_progress(preset_store):
    sink = RecordingSink()
    orchestrator = make_orchestrator(ScriptedDriver(), preset_store, notifier=sink)

    batch_id = orchestrator.create_batch([SOURCE], ["front"], ["red", "blue"], True)
    await orchestrator.wait_idle()

    topics = [topic for topic, _ in sink.messages]
    assert topics[0] == "batchCreated"
    assert topics[-1] == "batchCompleted"
    assert sink.payloads("batchCreated") == [
        {"batchId": batch_id, "totalJobs": 3, "angles": 1, "colors": 2}
    ]
    updates = [payload["result"] for payload in sink.payloads("resultUpdated")]
    assert [(u["type"], u["colorKey"], u["status"]) for u in updates[:2]] == [
        ("angle", None, "processing"),
        ("angle", None, "completed"),
    ]
    assert updates[1]["imageUrl"] == "/media/full/angle_front.png"
    assert len(updates) == 6
    assert all(payload["batchId"] == batch_id for payload in sink.payloads("resultUpdated"))


@pytest.mark.asyncio
async def test_sink_errors_do_not_affect_results(preset_store):
    sink = ExplodingSink()
    orchestrator = make_orchestrator(ScriptedDriver(), preset_store, notifier=sink)

    batch_id = orchestrator.create_batch([SOURCE], ["front"], ["red"], True)
    await orchestrator.wait_idle()

    view = orchestrator.get_batch_status(batch_id)
    assert view.status is BatchStatus.COMPLETED
    assert view.completed == 2
    assert sink.attempts > 0


@pytest.mark.asyncio
async def test_prompts_use_presets_and_instructions(preset_store):
    driver = ScriptedDriver()
    orchestrator = make_orchestrator(driver, preset_store)

    orchestrator.create_batch(
        [SOURCE],
        ["front"],
        ["red", "matte olive green"],
        True,
        additional_instructions="Keep the background white",
    )
    await orchestrator.wait_idle()

    prompts = {call.key: call.prompt for call in driver.calls}
    assert prompts[("angle", "front", None)] == (
        "Show this car from a straight-on front view. Keep the background white"
    )
    assert prompts[("color", "front", "red")] == (
        "Repaint this car in glossy candy red. Keep the background white"
    )
    assert prompts[("color", "front", "matte olive green")] == (
        "Repaint this car in matte olive green. Keep the background white"
    )


@pytest.mark.asyncio
async def test_unknown_presets_fail_only_their_result(preset_store):
    orchestrator = make_orchestrator(ScriptedDriver(), preset_store, allow_custom_colors=False)

    batch_id = orchestrator.create_batch([SOURCE], ["front", "roof"], ["teal"], True)
    await orchestrator.wait_idle()

    batch = orchestrator.get_batch(batch_id)
    by_key = {(r.angle_key, r.color_key): r for r in batch.results}
    assert by_key[("front", None)].status is ResultStatus.COMPLETED
    assert by_key[("front", "teal")].error == "Color preset 'teal' not found"
    assert by_key[("roof", None)].error == "Angle preset 'roof' not found"
    assert by_key[("roof", "teal")].error == "Dependency angle 'roof' failed"
    assert batch.status is BatchStatus.COMPLETED


@pytest.mark.asyncio
async def test_job_id_recorded_on_result(preset_store):
    orchestrator = make_orchestrator(ScriptedDriver(), preset_store)

    batch_id = orchestrator.create_batch([SOURCE], ["front"])
    await orchestrator.wait_idle()

    assert orchestrator.get_batch_status(batch_id).results[0]["jobId"] == "job-1"


@pytest.mark.asyncio
async def test_concurrency_is_bounded(preset_store):
    driver = ScriptedDriver(hold=True)
    orchestrator = make_orchestrator(driver, preset_store, max_concurrent_jobs=2)

    batch_id = orchestrator.create_batch([SOURCE], ["front", "side", "rear"], ["red"], True)
    await wait_until(lambda: len(driver.calls) == 2)
    await settle()
    assert len(driver.calls) == 2

    while not orchestrator.get_batch(batch_id).is_finished:
        driver.release_all()
        await asyncio.sleep(0)
    await orchestrator.wait_idle()

    assert driver.max_active == 2
    assert [call.key for call in driver.calls[:3]] == [
        ("angle", "front", None),
        ("angle", "side", None),
        ("angle", "rear", None),
    ]
    assert orchestrator.get_batch_status(batch_id).completed == 6


@pytest.mark.asyncio
async def test_aclose_fails_in_flight_results(preset_store):
    driver = ScriptedDriver(hold=True)
    orchestrator = make_orchestrator(driver, preset_store, max_concurrent_jobs=1)

    batch_id = orchestrator.create_batch([SOURCE], ["front", "side"], ["red"], True)
    await wait_until(lambda: len(driver.calls) == 1)
    await orchestrator.aclose()

    batch = orchestrator.get_batch(batch_id)
    assert [result.status for result in batch.results] == [ResultStatus.FAILED] * 4
    assert batch.results[0].error == "cancelled"
    assert batch.results[1].error == "cancelled"
    assert batch.results[2].error == "Dependency angle 'front' failed"
    assert batch.results[3].error == "Dependency angle 'side' failed"
    assert batch.status is BatchStatus.COMPLETED
    assert orchestrator.pending_tasks == 0


@pytest.mark.asyncio
async def test_lookup_errors(preset_store):
    driver = ScriptedDriver(hold=True)
    orchestrator = make_orchestrator(driver, preset_store)

    with pytest.raises(BatchNotFound):
        orchestrator.get_batch_status("missing")

    batch_id = orchestrator.create_batch([SOURCE], ["front"], ["red"], True)
    await wait_until(lambda: len(driver.calls) == 1)

    with pytest.raises(ResultNotFound):
        await orchestrator.run_result(batch_id, 5)
    with pytest.raises(DependencyNotSatisfied):
        await orchestrator.run_result(batch_id, 1)
    assert orchestrator.get_batch(batch_id).results[1].status is ResultStatus.PENDING

    driver.release_all()
    await wait_until(lambda: len(driver.calls) == 2)
    driver.release_all()
    await orchestrator.wait_idle()
    assert orchestrator.get_batch_status(batch_id).completed == 2


class BlankOutputDriver(ScriptedDriver):
    async def edit(self, prompt, model_key, images, mask=None, params=None, *, context=None):
        await super().edit(prompt, model_key, images, mask, params, context=context)
        return [ImageOutput(url="", full_url="", thumb_url="")]


@pytest.mark.asyncio
async def test_output_without_url_fails_the_result(preset_store):
    driver = BlankOutputDriver()
    orchestrator = make_orchestrator(driver, preset_store)

    batch_id = orchestrator.create_batch([SOURCE], ["front"], ["red"], True)
    await orchestrator.wait_idle()

    batch = orchestrator.get_batch(batch_id)
    angle, color = batch.results
    assert angle.status is ResultStatus.FAILED
    assert angle.error == "Prediction job-1 succeeded without output"
    assert color.status is ResultStatus.FAILED
    assert color.error == "Dependency angle 'front' failed"
    assert batch.status is BatchStatus.COMPLETED
    assert len(driver.calls) == 1


@pytest.mark.asyncio
async def test_crashed_result_task_still_finishes_the_batch(preset_store):
    driver = ScriptedDriver(hold=True)
    sink = RecordingSink()
    orchestrator = make_orchestrator(driver, preset_store, notifier=sink)

    batch_id = orchestrator.create_batch([SOURCE], ["front"], ["red"], True)
    await wait_until(lambda: len(driver.calls) == 1)
    # run the color before its angle has finished
    orchestrator._schedule(batch_id, 1)
    await settle()

    batch = orchestrator.get_batch(batch_id)
    assert batch.results[1].status is ResultStatus.FAILED
    assert "has not completed" in batch.results[1].error
    assert batch.status is BatchStatus.PROCESSING

    driver.release_all()
    await orchestrator.wait_idle()

    assert batch.results[0].status is ResultStatus.COMPLETED
    assert batch.status is BatchStatus.COMPLETED
    assert len(driver.calls) == 1
    assert sink.payloads("batchCompleted") == [
        {"batchId": batch_id, "status": "completed", "total": 2, "completed": 1, "failed": 1}
    ]
