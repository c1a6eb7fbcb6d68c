"""WebSocket route streaming batch progress events."""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from .notification_sink import BroadcastHub

router = APIRouter(tags=["events"])
logger = logging.getLogger(__name__)


@router.websocket("/ws/events")
async def stream_events(websocket: WebSocket) -> None:
    hub: BroadcastHub = websocket.app.state.notification_hub
    await websocket.accept()
    queue = hub.subscribe()
    logger.info("notifications.client.connected", extra={"subscribers": hub.subscriber_count})
    try:
        while True:
            message = await queue.get()
            await websocket.send_json(message)
    except WebSocketDisconnect:
        logger.info("notifications.client.disconnected")
    finally:
        hub.unsubscribe(queue)
