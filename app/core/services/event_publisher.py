"""Notifier seam between services and the message broker.

Services hand outbound notifications (OTP mails, reset confirmations) to
whatever publisher is registered here. The lifespan registers the RabbitMQ
publisher; tests register a recording one.

Usage::

    from app.core.services.event_publisher import publish
    await publish("otp_emails", {"email": ..., "otp_code": ...})
"""

from __future__ import annotations

from typing import Any, Protocol


class EventPublisher(Protocol):
    """Callable that publishes an event dict to a named queue."""

    async def __call__(
        self,
        queue_name: str,
        event: dict[str, Any],
        headers: dict[str, Any] | None = ...,
    ) -> None: ...


_publisher: EventPublisher | None = None


def register_publisher(publisher: EventPublisher) -> None:
    """Register the concrete publisher (called once at startup)."""
    global _publisher
    _publisher = publisher


def get_publisher() -> EventPublisher:
    """Return the registered publisher or raise if none is registered."""
    if _publisher is None:
        raise RuntimeError(
            "No event publisher registered. "
            "Call register_publisher() during application startup."
        )
    return _publisher


async def publish(
    queue_name: str,
    event: dict[str, Any],
    headers: dict[str, Any] | None = None,
) -> None:
    await get_publisher()(queue_name, event, headers)


def reset_publisher() -> None:
    """Clear the registered publisher (test teardown)."""
    global _publisher
    _publisher = None
