from __future__ import annotations

import time

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.batchgen.notifications.notification_api import router
from src.batchgen.notifications.notification_sink import BroadcastHub, NullNotificationSink


@pytest.mark.asyncio
async def test_publish_fans_out_to_every_subscriber():
    hub = BroadcastHub()
    first = hub.subscribe()
    second = hub.subscribe()

    hub.publish("batchCreated", {"batchId": "b1", "totalJobs": 2})

    expected = {"ev": "batchCreated", "data": {"batchId": "b1", "totalJobs": 2}}
    assert first.get_nowait() == expected
    assert second.get_nowait() == expected


@pytest.mark.asyncio
async def test_lagging_subscriber_drops_messages():
    hub = BroadcastHub(max_queue_size=1)
    slow = hub.subscribe()

    hub.publish("resultUpdated", {"n": 1})
    hub.publish("resultUpdated", {"n": 2})

    assert slow.get_nowait()["data"] == {"n": 1}
    assert slow.empty()


@pytest.mark.asyncio
async def test_unsubscribed_queue_receives_nothing():
    hub = BroadcastHub()
    queue = hub.subscribe()
    hub.unsubscribe(queue)

    hub.publish("batchCompleted", {"batchId": "b1"})

    assert queue.empty()
    assert hub.subscriber_count == 0


def test_null_sink_accepts_anything():
    assert NullNotificationSink().publish("anything", {"x": 1}) is None


def test_websocket_streams_published_events():
    app = FastAPI()
    hub = BroadcastHub()
    app.state.notification_hub = hub
    app.include_router(router)

    with TestClient(app) as client:
        with client.websocket_connect("/ws/events") as websocket:
            deadline = time.monotonic() + 5
            while hub.subscriber_count == 0 and time.monotonic() < deadline:
                time.sleep(0.01)
            client.portal.call(hub.publish, "batchCompleted", {"batchId": "b1", "status": "completed"})

            message = websocket.receive_json()

    assert message == {"ev": "batchCompleted", "data": {"batchId": "b1", "status": "completed"}}
