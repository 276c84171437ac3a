"""
Dead-letter queue message handler.

Consumes messages from ``*_dead`` queues and logs them at error level so
they reach Sentry. The message is ACK'd once logged. OTP payloads carry a
one-time code, so the body is never logged.
"""

import json
from typing import Any

import aio_pika

from app.core.config import rabbitmq_logger
from app.core.utils import mask_identifier


def _header_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


async def handle_dlq_message(
    message: aio_pika.IncomingMessage,
    queue_name: str,
) -> None:
    """
    Log a dead-letter message, then ACK it.

    Args:
        message: The incoming AMQP message from the DLQ.
        queue_name: The DLQ queue name (e.g. ``otp_emails_dead``).
    """
    async with message.process(ignore_processed=True):
        headers: dict[str, Any] = dict(message.headers or {})
        attempt_count = int(headers.get("x-retry-attempt", 0))  # type: ignore[arg-type]
        error_message = _header_text(headers.get("x-error-message"))

        recipient = None
        try:
            body = json.loads(message.body.decode("utf-8", errors="replace"))
            if isinstance(body, dict) and body.get("email"):
                recipient = mask_identifier(str(body["email"]))
        except json.JSONDecodeError:
            pass

        rabbitmq_logger.error(
            f"Dead-lettered message: queue={queue_name}, attempts={attempt_count}, "
            f"recipient={recipient}, error={error_message}"
        )
