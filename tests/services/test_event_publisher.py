"""
Test suite for the event publisher registry.

Run all tests:
    pytest tests/services/test_event_publisher.py -v
"""

from unittest.mock import AsyncMock

import pytest

from app.core.services.event_publisher import (
    get_publisher,
    publish,
    register_publisher,
    reset_publisher,
)


class TestEventPublisher:

    @pytest.mark.asyncio
    async def test_publish_delegates_to_registered_publisher(self):
        publisher = AsyncMock()
        register_publisher(publisher)

        await publish("otp_emails", {"email": "asha@example.com"}, headers={"x-retry-count": 0})

        publisher.assert_awaited_once_with(
            "otp_emails", {"email": "asha@example.com"}, {"x-retry-count": 0}
        )

    @pytest.mark.asyncio
    async def test_publish_without_publisher(self):
        with pytest.raises(RuntimeError):
            await publish("otp_emails", {})

    def test_reset(self):
        register_publisher(AsyncMock())
        reset_publisher()

        with pytest.raises(RuntimeError):
            get_publisher()
