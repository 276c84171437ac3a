"""
Email manager for OTP and account notification emails.

Renders Jinja2 templates through the Renderer and delivers them through
BrevoService. Used by the RabbitMQ email handlers.

Example usage:
    await EmailManagerService.send_otp_email(
        email="user@example.com",
        otp_code="123456",
        purpose=OTPPurpose.FORGOT_PASSWORD,
        user_name="Asha",
    )
"""

from datetime import datetime, timezone
from typing import Any

from jinja2 import TemplateError

from app.core.config import email_manager_logger, settings
from app.core.enums import OTPPurpose
from app.core.exceptions.types import AppException
from app.core.services.brevo import BrevoService, Contact
from app.core.services.template import Renderer
from app.core.utils import mask_identifier


class EmailManagerService:
    """Classmethod service that renders and sends notification emails."""

    _PURPOSE_TEXT = {
        OTPPurpose.EMAIL_VERIFICATION: "verify your email address",
        OTPPurpose.FORGOT_PASSWORD: "reset your password",
        OTPPurpose.PHONE_VERIFICATION: "verify your phone number",
    }

    _PURPOSE_SUBJECT = {
        OTPPurpose.EMAIL_VERIFICATION: "Verify Your Email",
        OTPPurpose.FORGOT_PASSWORD: "Password Reset Code",
        OTPPurpose.PHONE_VERIFICATION: "Verify Your Phone Number",
    }

    @classmethod
    async def send_email(
        cls,
        email: str,
        subject: str,
        html_template: str,
        context: dict[str, Any],
        text_template: str | None = None,
        recipient_name: str | None = None,
    ) -> bool:
        """
        Render the templates and send the email.

        Returns:
            bool: True if the email was accepted by the provider.
        """
        try:
            html_content = await Renderer.render_template(html_template, context=context)
            text_content = None
            if text_template:
                text_content = await Renderer.render_template(text_template, context=context)

            await BrevoService.send_transactional_email(
                to=Contact(email=email, name=recipient_name),
                subject=subject,
                html_content=html_content,
                text_content=text_content,
            )
        except (AppException, TemplateError, RuntimeError, ValueError) as e:
            email_manager_logger.error(
                f"Failed to send email: subject='{subject}', "
                f"to='{mask_identifier(email)}', error={type(e).__name__}: {e}"
            )
            return False

        email_manager_logger.info(
            f"Email sent: subject='{subject}', to='{mask_identifier(email)}'"
        )
        return True

    @classmethod
    async def send_otp_email(
        cls,
        email: str,
        otp_code: str,
        purpose: OTPPurpose,
        user_name: str | None = None,
        expires_in_minutes: int | None = None,
    ) -> bool:
        display_name = user_name or "there"
        context = {
            "app_name": settings.APP_NAME,
            "user_name": display_name,
            "otp_code": otp_code,
            "expiry_minutes": expires_in_minutes or settings.OTP_EXPIRY_MINUTES,
            "purpose": cls._PURPOSE_TEXT.get(purpose, "continue"),
            "year": datetime.now(timezone.utc).year,
        }
        return await cls.send_email(
            email=email,
            subject=f"{cls._PURPOSE_SUBJECT.get(purpose, 'Verification Code')} - {settings.APP_NAME}",
            html_template="otp_email.html",
            text_template="otp_email.txt",
            context=context,
            recipient_name=user_name,
        )

    @classmethod
    async def send_password_reset_confirmation_email(
        cls,
        email: str,
        user_name: str | None = None,
    ) -> bool:
        """Security notice sent after a successful password reset."""
        context = {
            "app_name": settings.APP_NAME,
            "user_name": user_name or "there",
            "year": datetime.now(timezone.utc).year,
        }
        return await cls.send_email(
            email=email,
            subject=f"Password Changed Successfully - {settings.APP_NAME}",
            html_template="password_reset_confirmation_email.html",
            text_template="password_reset_confirmation_email.txt",
            context=context,
            recipient_name=user_name,
        )


__all__ = ["EmailManagerService"]
