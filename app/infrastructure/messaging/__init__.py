from app.infrastructure.messaging.publisher import publish_event


async def start_consumers(keep_alive: bool):
    """Start message consumers. Wrapper to avoid circular import."""
    from app.infrastructure.messaging.main import start_consumers as _start_consumers

    return await _start_consumers(keep_alive)


__all__ = ["publish_event", "start_consumers"]
