from __future__ import annotations

import io
import time
import zipfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.batchgen.batches.batch_service import BatchOrchestrator
from src.batchgen.config import Settings, load_config
from src.batchgen.main import create_app
from src.batchgen.providers.model_registry import ModelRegistry
from src.batchgen.providers.providers_factory import ProviderRegistry
from tests.mocks.drivers import ScriptedDriver
from tests.mocks.media import make_png


@pytest.fixture
def app(tmp_path: Path):
    settings = Settings(
        media_root=tmp_path / "media",
        database_url=f"sqlite:///{tmp_path / 'app.db'}",
    )
    application = create_app(load_config(settings))
    state = application.state
    state.batch_orchestrator = BatchOrchestrator(
        providers=ProviderRegistry([ScriptedDriver()], ModelRegistry()),
        presets=state.preset_store,
        store=state.batch_store,
        notifier=state.notification_hub,
    )
    return application


def wait_for_status(client: TestClient, batch_id: str, status: str = "completed") -> dict:
    deadline = time.monotonic() + 5
    while time.monotonic() < deadline:
        body = client.get(f"/api/batches/{batch_id}").json()
        if body["status"] == status:
            return body
        time.sleep(0.01)
    raise AssertionError(f"batch {batch_id} never reached {status}")


def test_create_and_poll_batch(app):
    with TestClient(app) as client:
        response = client.post(
            "/api/batches",
            json={
                "sourceImageUrls": ["/media/full/source.png"],
                "angles": ["front", "side"],
                "colors": ["red"],
                "autoColorize": True,
            },
        )
        assert response.status_code == 200
        batch_id = response.json()["batchId"]

        body = wait_for_status(client, batch_id)

    assert body["batchId"] == batch_id
    assert body["total"] == 4
    assert body["completed"] == 4
    assert body["failed"] == 0
    assert body["completedAt"] is not None
    assert [(r["type"], r["angleKey"], r["colorKey"]) for r in body["results"]] == [
        ("angle", "front", None),
        ("angle", "side", None),
        ("color", "front", "red"),
        ("color", "side", "red"),
    ]
    assert body["results"][2]["imageUrl"] == "/media/full/color_front_red.png"


def test_invalid_batch_is_rejected(app):
    with TestClient(app) as client:
        response = client.post(
            "/api/batches",
            json={"sourceImageUrls": ["/media/full/source.png"], "angles": []},
        )

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["status"] == "error"
    assert detail["failure_reason"] == "invalid_request"
    assert "angle" in detail["details"]
    assert len(app.state.batch_store) == 0


def test_unknown_batch_returns_404(app):
    with TestClient(app) as client:
        status_response = client.get("/api/batches/nope")
        download_response = client.post("/api/batches/nope/download")

    assert status_response.status_code == 404
    assert status_response.json()["detail"]["failure_reason"] == "batch_not_found"
    assert download_response.status_code == 404


def test_download_zip(app):
    full = app.state.config.media_paths.full
    (full / "angle_front.png").write_bytes(make_png())

    with TestClient(app) as client:
        batch_id = client.post(
            "/api/batches",
            json={
                "sourceImageUrls": ["/media/full/source.png"],
                "angles": ["front"],
                "title": "Audi A4",
            },
        ).json()["batchId"]
        wait_for_status(client, batch_id)

        response = client.post(f"/api/batches/{batch_id}/download")
        image = client.get("/media/full/angle_front.png")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert 'filename="Audi_A4_' in response.headers["content-disposition"]
    with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
        assert archive.namelist() == ["Audi_A4_front.png", "summary.json"]
    assert image.status_code == 200
    assert image.content == make_png()


def test_download_without_completed_images(app):
    with TestClient(app) as client:
        batch_id = client.post(
            "/api/batches",
            json={"sourceImageUrls": ["/media/full/source.png"], "angles": ["front"]},
        ).json()["batchId"]
        wait_for_status(client, batch_id)

        response = client.post(f"/api/batches/{batch_id}/download")

    # the completed image URL has no file behind it
    assert response.status_code == 400
    assert response.json()["detail"]["failure_reason"] == "no_completed_results"


def test_list_models(app):
    with TestClient(app) as client:
        response = client.get("/api/models")

    assert response.status_code == 200
    models = {model["key"]: model for model in response.json()}
    assert models["google/nano-banana"]["supports_edit"] is True
    assert models["google/nano-banana"]["provider"] == "replicate"
    assert models["gpt-image-1"]["supports_edit"] is True
    assert models["dall-e-3"]["supports_edit"] is False
    assert models["google/nano-banana"]["defaults"] == {"output_format": "png"}
    assert models["gpt-image-1"]["defaults"] == {"size": "1024x1024", "quality": "high"}
