"""Notification hand-off to the email service over RabbitMQ."""

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractRobustConnection
from aio_pika.exceptions import AMQPError

from cinerec.logging import get_logger

logger = get_logger(__name__)

DEFAULT_QUEUE = "emails"


class PublishError(Exception):
    """Raised when a notification could not be handed to the transport."""


@dataclass
class NotificationMessage:
    """Rendered-content descriptor consumed by the email service."""

    to: str
    template: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> bytes:
        return json.dumps(asdict(self), ensure_ascii=False).encode("utf-8")


class Publisher(Protocol):
    async def publish(self, message: NotificationMessage) -> None: ...

    async def close(self) -> None: ...


class NotificationPublisher:
    """Fire-and-forget publisher onto a durable queue.

    Delivery past the broker is the email service's concern; this only guarantees
    the message was accepted by RabbitMQ or raises ``PublishError``.
    """

    def __init__(self, url: str, queue_name: str = DEFAULT_QUEUE) -> None:
        self.url = url
        self.queue_name = queue_name
        self._connection: AbstractRobustConnection | None = None
        self._channel: AbstractChannel | None = None

    async def _get_channel(self) -> AbstractChannel:
        """Get or open the connection, channel and queue."""
        if self._connection is None or self._connection.is_closed:
            self._connection = await aio_pika.connect_robust(self.url)
            self._channel = None

        if self._channel is None or self._channel.is_closed:
            self._channel = await self._connection.channel()
            await self._channel.declare_queue(self.queue_name, durable=True)

        return self._channel

    async def publish(self, message: NotificationMessage) -> None:
        """Publish one notification.

        Raises:
            PublishError: If the broker is unreachable or rejects the message
        """
        try:
            channel = await self._get_channel()
            await channel.default_exchange.publish(
                aio_pika.Message(
                    body=message.to_json(),
                    content_type="application/json",
                    delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                ),
                routing_key=self.queue_name,
            )
        except (AMQPError, OSError) as e:
            raise PublishError(f"failed to publish {message.template} message: {e}") from e

        logger.debug(f"Published {message.template} message to queue {self.queue_name}")

    async def close(self) -> None:
        """Close the broker connection."""
        if self._connection is not None and not self._connection.is_closed:
            await self._connection.close()
            logger.info("Notification publisher connection closed")
        self._connection = None
        self._channel = None
