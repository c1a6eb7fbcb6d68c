"""Fire-and-forget progress notifications."""

from .notification_sink import (
    BATCH_COMPLETED,
    BATCH_CREATED,
    RESULT_UPDATED,
    BroadcastHub,
    NotificationSink,
    NullNotificationSink,
)

__all__ = [
    "BATCH_COMPLETED",
    "BATCH_CREATED",
    "RESULT_UPDATED",
    "BroadcastHub",
    "NotificationSink",
    "NullNotificationSink",
]
