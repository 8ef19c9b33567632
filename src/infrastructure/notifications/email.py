# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Welcome email delivery using async SMTP.

Sends the plain welcome message a newly provisioned admin receives. Delivery
is best effort: failures are logged and reported as False, never raised, so
a broken mail relay cannot undo a provisioned tenant.

Configuration (via environment variables):
- SMTP_HOST: SMTP server hostname (empty disables delivery)
- SMTP_PORT: SMTP server port (default: 587)
- SMTP_USERNAME / SMTP_PASSWORD: SMTP authentication
- SMTP_START_TLS: Use STARTTLS (default: true)
- SMTP_FROM_ADDRESS / SMTP_FROM_NAME: Sender
- SMTP_LOGIN_URL: Login page linked from the email
"""

import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

import aiosmtplib

from src.core.config.settings import SMTPSettings

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Sends account notifications."""

    async def send_welcome_email(self, to: str, name: str, temp_secret: str | None) -> bool:
        ...


class SMTPWelcomeNotifier:
    """Welcome email sender backed by aiosmtplib."""

    def __init__(self, settings: SMTPSettings) -> None:
        """Initialize the notifier.

        Args:
            settings: SMTP settings.
        """
        self._settings = settings
        if not settings.enabled:
            logger.warning("Welcome emails disabled: SMTP_HOST not set")

    def build_message(self, to: str, name: str, temp_secret: str | None) -> MIMEMultipart:
        """Build the welcome message.

        Args:
            to: Recipient address.
            name: Recipient display name.
            temp_secret: Temporary password, or None when the user chose
                their own.

        Returns:
            MIMEMultipart message ready to send.
        """
        message = MIMEMultipart("alternative")
        message["From"] = f"{self._settings.from_name} <{self._settings.from_address}>"
        message["To"] = to
        message["Subject"] = "Welcome! Your account is ready"

        if temp_secret:
            password_line = f"Temporary password: {temp_secret}"
            change_line = "You will be asked to choose a new password after signing in."
        else:
            password_line = "Password: your chosen password"
            change_line = ""

        lines = [
            f"Hello {name},",
            "",
            "Your administrator account has been created.",
            "",
            f"Email: {to}",
            password_line,
            "",
            f"Sign in at {self._settings.login_url}",
        ]
        if change_line:
            lines.extend(["", change_line])

        message.attach(MIMEText("\n".join(lines), "plain", "utf-8"))
        return message

    async def send_welcome_email(self, to: str, name: str, temp_secret: str | None) -> bool:
        """Send the welcome email.

        Args:
            to: Recipient address.
            name: Recipient display name.
            temp_secret: Temporary password, or None.

        Returns:
            True if the SMTP server accepted the message.
        """
        if not self._settings.enabled:
            logger.info("Skipping welcome email to %s: SMTP not configured", to)
            return False

        message = self.build_message(to, name, temp_secret)
        try:
            await aiosmtplib.send(
                message,
                hostname=self._settings.host,
                port=self._settings.port,
                username=self._settings.username or None,
                password=self._settings.password.get_secret_value() or None,
                use_tls=self._settings.use_tls,
                start_tls=self._settings.start_tls and not self._settings.use_tls,
                timeout=self._settings.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("Failed to send welcome email to %s: %s", to, e, exc_info=True)
            return False

        logger.info("Welcome email sent to %s", to)
        return True
