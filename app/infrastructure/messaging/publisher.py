import json
from typing import Any

import aio_pika
from aio_pika.exceptions import AMQPError

from app.core.config import rabbitmq_logger
from app.core.exceptions.types import ServiceUnavailableException
from app.infrastructure.messaging.connection import get_connection


async def publish_event(
    queue_name: str,
    event: dict[str, Any],
    headers: dict[str, Any] | None = None,
) -> None:
    """
    Publishes an event message to the specified queue asynchronously.
    Args:
        queue_name (str): The name of the queue to publish the event to.
        event (dict[str, Any]): The event data to be published as a dictionary.
        headers (dict[str, Any], optional): Additional headers to include in the message.
    Returns:
        None
    Raises:
        ServiceUnavailableException: If the broker cannot be reached or refuses the message.
    Note:
        The event is serialized to JSON and sent as a persistent message with content type 'application/json'.
    """
    try:
        connection = await get_connection()
        channel = await connection.channel()
        try:
            await channel.declare_queue(queue_name, durable=True)

            message = aio_pika.Message(
                body=json.dumps(event, default=str).encode(),
                headers=headers or {},
                content_type="application/json",
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            )

            await channel.default_exchange.publish(message, routing_key=queue_name)
        finally:
            await channel.close()
    except (AMQPError, OSError) as e:
        rabbitmq_logger.error(f"Failed to publish to {queue_name}: {e}")
        raise ServiceUnavailableException(
            "Message broker is unavailable. Please try again later."
        ) from e
