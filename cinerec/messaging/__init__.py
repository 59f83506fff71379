"""Messaging module for notification hand-off."""

from cinerec.messaging.publisher import (
    NotificationMessage,
    NotificationPublisher,
    PublishError,
    Publisher,
)

__all__ = ["NotificationMessage", "NotificationPublisher", "PublishError", "Publisher"]
