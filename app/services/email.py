"""
Email service for account verification and password reset messages
SMTP delivery runs in a worker thread; without SMTP_HOST messages are only logged.
Reference: https://docs.python.org/3/library/smtplib.html
"""
import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """
    Outbound email

    Delivery failures are logged and swallowed by the send_* helpers: the
    account flows that trigger emails must not fail because the mail
    server is unreachable, and users can request a new link.
    """

    def __init__(self):
        self.frontend_url = settings.FRONTEND_URL.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(settings.SMTP_HOST)

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as smtp:
            if settings.SMTP_USE_TLS:
                smtp.starttls()
            if settings.SMTP_USERNAME:
                smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD or "")
            smtp.send_message(message)

    async def send_email(self, to: str, subject: str, text: str, html: Optional[str] = None) -> bool:
        """
        Send one email.

        Returns:
            bool: True if handed to the SMTP server (or logged in development), False on failure
        """
        message = EmailMessage()
        message["From"] = settings.EMAIL_FROM
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        if html:
            message.add_alternative(html, subtype="html")

        if not self.is_configured:
            logger.info(f"SMTP not configured, email to {to} not sent: subject='{subject}'")
            return True

        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to}: {type(e).__name__}: {e}", exc_info=True)
            return False

        logger.info(f"Email sent to {to}: subject='{subject}'")
        return True

    async def send_verification_email(self, email: str, token: str, first_name: str) -> bool:
        url = f"{self.frontend_url}/verify-email?token={token}"
        text = (
            f"Welcome to PERSEO, {first_name}!\n\n"
            f"Please verify your email address by visiting:\n{url}\n\n"
            f"This link will expire in {settings.EMAIL_VERIFICATION_EXPIRE_HOURS} hours.\n"
            "If you didn't create an account, please ignore this email."
        )
        html = (
            f"<h2>Welcome to PERSEO, {first_name}!</h2>"
            f"<p>Please verify your email address:</p><p><a href=\"{url}\">Verify Email Address</a></p>"
            f"<p>This link will expire in {settings.EMAIL_VERIFICATION_EXPIRE_HOURS} hours.</p>"
        )
        return await self.send_email(email, "Verify your PERSEO account", text, html)

    async def send_password_reset_email(self, email: str, token: str, first_name: str) -> bool:
        url = f"{self.frontend_url}/reset-password?token={token}"
        text = (
            f"Hi {first_name},\n\n"
            f"We received a request to reset your password. Create a new one here:\n{url}\n\n"
            f"This link will expire in {settings.PASSWORD_RESET_EXPIRE_HOURS} hour(s).\n"
            "If you didn't request a password reset, please ignore this email."
        )
        html = (
            f"<h2>Password Reset Request</h2><p>Hi {first_name},</p>"
            f"<p><a href=\"{url}\">Reset Password</a></p>"
            f"<p>This link will expire in {settings.PASSWORD_RESET_EXPIRE_HOURS} hour(s).</p>"
        )
        return await self.send_email(email, "Reset your PERSEO password", text, html)

    async def send_welcome_email(self, email: str, first_name: str) -> bool:
        url = f"{self.frontend_url}/login"
        text = (
            f"Hi {first_name},\n\n"
            f"Your email has been verified. Sign in at:\n{url}"
        )
        return await self.send_email(email, "Welcome to PERSEO!", text)
