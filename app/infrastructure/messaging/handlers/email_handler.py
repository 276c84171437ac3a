"""
Email message handlers for async email processing.

This module contains handlers for processing email-related messages from queues.
Emails are sent asynchronously to avoid blocking the main request flow.
"""

from typing import Any

from app.core.config import email_manager_logger
from app.core.enums import OTPPurpose
from app.core.services.email_manager import EmailManagerService
from app.core.utils import mask_identifier


class EmailDeliveryError(RuntimeError):
    """Raised when the email service reports a failed send, so the message is retried."""


async def handle_otp_email(event: dict[str, Any]) -> None:
    """
    Handle OTP email sending events.

    Redelivery simply resends the same code, which is harmless for OTPs.

    Args:
        event: Event data containing:
            - email (str): Recipient email address
            - otp_code (str): The OTP code to send
            - purpose (str): OTPPurpose value (e.g., "email_verification", "forgot_password")
            - user_name (str | None): Optional user name for personalization
            - expires_in_minutes (int | None): Lifetime of the code

    Raises:
        EmailDeliveryError: If the email could not be sent, to trigger a retry.
    """
    email = event["email"]
    purpose = OTPPurpose(event["purpose"])
    masked = mask_identifier(email)

    email_manager_logger.info(
        f"Processing OTP email: email={masked}, purpose={purpose.value}"
    )

    sent = await EmailManagerService.send_otp_email(
        email=email,
        otp_code=event["otp_code"],
        purpose=purpose,
        user_name=event.get("user_name"),
        expires_in_minutes=event.get("expires_in_minutes"),
    )
    if not sent:
        email_manager_logger.warning(
            f"OTP email not sent: email={masked}, purpose={purpose.value}"
        )
        raise EmailDeliveryError(f"Email service failed for {masked}")

    email_manager_logger.info(
        f"OTP email sent successfully: email={masked}, purpose={purpose.value}"
    )


async def handle_password_reset_confirmation_email(event: dict[str, Any]) -> None:
    """
    Handle password reset confirmation email sending events.

    Args:
        event: Event data containing:
            - email (str): Recipient email address
            - user_name (str | None): Optional user name for personalization

    Raises:
        EmailDeliveryError: If the email could not be sent, to trigger a retry.
    """
    email = event["email"]
    masked = mask_identifier(email)

    email_manager_logger.info(
        f"Processing password reset confirmation email: email={masked}"
    )

    sent = await EmailManagerService.send_password_reset_confirmation_email(
        email=email,
        user_name=event.get("user_name"),
    )
    if not sent:
        email_manager_logger.warning(
            f"Password reset confirmation email not sent: email={masked}"
        )
        raise EmailDeliveryError(f"Email service failed for {masked}")

    email_manager_logger.info(
        f"Password reset confirmation email sent successfully: email={masked}"
    )
