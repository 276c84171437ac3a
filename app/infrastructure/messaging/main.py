"""
Messaging module for the RuraMed auth service.

Standalone Usage:
    python -m app.infrastructure.messaging.main
    python manage.py runconsumers
"""

import asyncio
import signal
from functools import partial

import aio_pika

from app.core.config import rabbitmq_logger, settings
from app.core.services import BrevoService, Renderer
from app.infrastructure.messaging.connection import get_connection
from app.infrastructure.messaging.consumer import process_message
from app.infrastructure.messaging.handlers.dlq_handler import handle_dlq_message
from app.infrastructure.messaging.queues import get_queue_configs


async def start_consumers(keep_alive: bool) -> aio_pika.RobustConnection | None:
    """
    Asynchronously starts message consumers for all queues defined in get_queue_configs().

    Declares the main, retry and dead-letter queues of every configuration and
    registers a consumer on each main queue. Dead-letter queues get a consumer
    that logs and drains them.

    Args:
        keep_alive (bool): If True, the consumers will run indefinitely. If False, they
            will stop only after the caller closes the connection.
    Returns:
        Optional[aio_pika.RobustConnection]: The connection object if keep_alive is False,
            None otherwise.
    """
    conn = await get_connection()
    channel = await conn.channel()
    await channel.set_qos(prefetch_count=10)

    for q in get_queue_configs():
        queue = await channel.declare_queue(q.name, durable=True)

        # Single retry queue setup
        if retry := q.retry_queue:
            await channel.declare_queue(
                retry,
                durable=True,
                arguments={
                    "x-message-ttl": q.retry_ttl,
                    "x-dead-letter-exchange": "",
                    "x-dead-letter-routing-key": q.name,
                },
            )

        # Multiple retry queues setup
        if retries := q.retry_queues:
            for retry_config in retries:
                await channel.declare_queue(
                    retry_config.name,
                    durable=True,
                    arguments={
                        "x-message-ttl": retry_config.ttl,
                        "x-dead-letter-exchange": "",
                        "x-dead-letter-routing-key": q.name,
                    },
                )

        if dead := q.dead_letter_queue:
            dead_queue = await channel.declare_queue(dead, durable=True)
            await dead_queue.consume(  # type: ignore[arg-type]
                partial(handle_dlq_message, queue_name=dead),
                no_ack=False,
            )

        await queue.consume(  # type: ignore[arg-type]
            partial(
                process_message,
                handler=q.handler,
                channel=channel,  # type: ignore[arg-type]
                retry_queue=q.retry_queue,
                retry_queues=(
                    [retry_queue.model_dump() for retry_queue in q.retry_queues]
                    if q.retry_queues
                    else None
                ),
                max_retries=q.max_retries,
                dead_letter_queue=q.dead_letter_queue,
            ),
            no_ack=False,
        )
    rabbitmq_logger.info("Consumers started. Waiting for messages...")
    if keep_alive:
        try:
            await asyncio.Future()  # Run forever
        finally:
            await conn.close()
            rabbitmq_logger.info("Connection closed.")
        return None
    return conn


async def main() -> None:
    """
    Main entry point for standalone message consumer execution.

    Initializes the email services, starts the consumers, and runs until
    interrupted.
    """
    shutdown_event = asyncio.Event()
    conn: aio_pika.RobustConnection | None = None

    def handle_shutdown(signum, frame):
        rabbitmq_logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    rabbitmq_logger.info("Starting standalone message consumer...")

    try:
        rabbitmq_logger.info("Initializing Brevo service...")
        await BrevoService.init(
            api_key=settings.BREVO_API_KEY,
            sender_email=settings.BREVO_SENDER_EMAIL,
            sender_name=settings.BREVO_SENDER_NAME,
        )

        rabbitmq_logger.info("Initializing template renderer...")
        Renderer.initialize()

        conn = await start_consumers(keep_alive=False)

        await shutdown_event.wait()

    except Exception as e:
        rabbitmq_logger.exception(f"Messaging error: {e}")
        raise

    finally:
        rabbitmq_logger.info("Shutting down message consumer...")

        if conn:
            await conn.close()
            rabbitmq_logger.info("RabbitMQ connection closed successfully.")

        await BrevoService.aclose()
        rabbitmq_logger.info("Message consumer shutdown complete.")


if __name__ == "__main__":
    asyncio.run(main())
