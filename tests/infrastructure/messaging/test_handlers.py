"""
Test suite for the email and dead-letter message handlers.

Run tests:
    pytest tests/infrastructure/messaging/test_handlers.py -v
"""

import json
from unittest.mock import AsyncMock, patch

import aio_pika
import pytest

from app.core.enums import OTPPurpose
from app.infrastructure.messaging.handlers.dlq_handler import handle_dlq_message
from app.infrastructure.messaging.handlers.email_handler import (
    EmailDeliveryError,
    handle_otp_email,
    handle_password_reset_confirmation_email,
)

OTP_EVENT = {
    "email": "asha@example.com",
    "otp_code": "482913",
    "purpose": "forgot_password",
    "user_name": "Asha",
    "expires_in_minutes": 10,
}


class TestHandleOtpEmail:
    """Test suite for handle_otp_email."""

    @pytest.mark.asyncio
    async def test_sends_email(self):
        with patch(
            "app.infrastructure.messaging.handlers.email_handler.EmailManagerService"
        ) as mock_manager:
            mock_manager.send_otp_email = AsyncMock(return_value=True)

            await handle_otp_email(OTP_EVENT)

        mock_manager.send_otp_email.assert_awaited_once_with(
            email="asha@example.com",
            otp_code="482913",
            purpose=OTPPurpose.FORGOT_PASSWORD,
            user_name="Asha",
            expires_in_minutes=10,
        )

    @pytest.mark.asyncio
    async def test_failed_send_raises_for_retry(self):
        """Test that a False result raises so the consumer retries."""
        with patch(
            "app.infrastructure.messaging.handlers.email_handler.EmailManagerService"
        ) as mock_manager:
            mock_manager.send_otp_email = AsyncMock(return_value=False)

            with pytest.raises(EmailDeliveryError):
                await handle_otp_email(OTP_EVENT)

    @pytest.mark.asyncio
    async def test_unknown_purpose(self):
        with pytest.raises(ValueError):
            await handle_otp_email({**OTP_EVENT, "purpose": "sms_login"})


class TestHandlePasswordResetConfirmation:

    @pytest.mark.asyncio
    async def test_sends_email(self):
        with patch(
            "app.infrastructure.messaging.handlers.email_handler.EmailManagerService"
        ) as mock_manager:
            mock_manager.send_password_reset_confirmation_email = AsyncMock(return_value=True)

            await handle_password_reset_confirmation_email(
                {"email": "asha@example.com", "user_name": "Asha"}
            )

        mock_manager.send_password_reset_confirmation_email.assert_awaited_once_with(
            email="asha@example.com", user_name="Asha"
        )

    @pytest.mark.asyncio
    async def test_failed_send_raises(self):
        with patch(
            "app.infrastructure.messaging.handlers.email_handler.EmailManagerService"
        ) as mock_manager:
            mock_manager.send_password_reset_confirmation_email = AsyncMock(return_value=False)

            with pytest.raises(EmailDeliveryError):
                await handle_password_reset_confirmation_email({"email": "asha@example.com"})


class TestHandleDlqMessage:
    """Test suite for handle_dlq_message."""

    def _message(self, body: bytes, headers: dict) -> AsyncMock:
        mock_message = AsyncMock(spec=aio_pika.IncomingMessage)
        mock_message.body = body
        mock_message.headers = headers

        mock_context = AsyncMock()
        mock_context.__aenter__ = AsyncMock()
        mock_context.__aexit__ = AsyncMock(return_value=False)
        mock_message.process.return_value = mock_context
        return mock_message

    @pytest.mark.asyncio
    async def test_logs_without_the_code(self):
        """Test the log names the queue and masked recipient, never the OTP."""
        message = self._message(
            json.dumps(OTP_EVENT).encode(),
            {"x-retry-attempt": 3, "x-error-message": b"Email service failed"},
        )

        with patch(
            "app.infrastructure.messaging.handlers.dlq_handler.rabbitmq_logger"
        ) as mock_logger:
            await handle_dlq_message(message, queue_name="otp_emails_dead")

        logged = mock_logger.error.call_args.args[0]
        assert "otp_emails_dead" in logged
        assert "attempts=3" in logged
        assert "Email service failed" in logged
        assert "482913" not in logged
        assert "asha@example.com" not in logged
        message.process.assert_called_once_with(ignore_processed=True)

    @pytest.mark.asyncio
    async def test_unparseable_body(self):
        message = self._message(b"\xff\xfe not json", {})

        with patch(
            "app.infrastructure.messaging.handlers.dlq_handler.rabbitmq_logger"
        ) as mock_logger:
            await handle_dlq_message(message, queue_name="otp_emails_dead")

        assert "recipient=None" in mock_logger.error.call_args.args[0]
