"""
Message handlers for the messaging infrastructure.

- email_handler: sends OTP and password reset confirmation emails
- dlq_handler: logs messages that exhausted their retries
"""

from app.infrastructure.messaging.handlers.dlq_handler import handle_dlq_message
from app.infrastructure.messaging.handlers.email_handler import (
    handle_otp_email,
    handle_password_reset_confirmation_email,
)

__all__ = [
    "handle_dlq_message",
    "handle_otp_email",
    "handle_password_reset_confirmation_email",
]
