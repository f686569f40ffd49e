# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Email notification channel using async SMTP.

Configuration (via environment variables, see SmtpSettings):
- SMTP_HOST: SMTP server hostname
- SMTP_PORT: SMTP server port (default: 587)
- SMTP_USERNAME: SMTP authentication username
- SMTP_PASSWORD: SMTP authentication password
- SMTP_USE_TLS: Use STARTTLS (default: true)
- SMTP_FROM_EMAIL: Sender email address
- SMTP_FROM_NAME: Sender display name
"""

from email.message import EmailMessage
from email.utils import formataddr, make_msgid

import aiosmtplib

from cdn_tenants.core.config.settings import SmtpSettings
from cdn_tenants.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    OutgoingEmail,
)


class EmailChannel(BaseChannel):
    """Delivers plain text mail over SMTP with aiosmtplib.

    A single message goes to the recipient with every CC address attached,
    rather than one message per address.
    """

    def __init__(self, settings: SmtpSettings) -> None:
        """Initialize the email channel.

        Args:
            settings: SMTP settings.
        """
        super().__init__()
        self._settings = settings

    @property
    def name(self) -> str:
        """Return the channel name."""
        return "email"

    async def send(self, message: OutgoingEmail) -> ChannelResult:
        """Send a message via SMTP.

        Args:
            message: The message to deliver.

        Returns:
            ChannelResult with delivery status.
        """
        if not self._settings.configured:
            return self.create_skipped_result("SMTP not configured (SMTP_HOST, SMTP_FROM_EMAIL)")

        if not message.recipient:
            return self.create_skipped_result("No recipient email address")

        mime = self.build_message(message)
        password = self._settings.password
        try:
            await aiosmtplib.send(
                mime,
                hostname=self._settings.host,
                port=self._settings.port,
                username=self._settings.username,
                password=password.get_secret_value() if password else None,
                start_tls=self._settings.use_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            self.logger.error("Failed to send email to %s: %s", message.recipient, e)
            return self.create_failure_result(
                f"SMTP error: {e}",
                metadata={"recipient": message.recipient},
            )

        self.logger.info("Email sent to %s: %s", message.recipient, message.subject)
        return self.create_success_result(
            message_id=mime["Message-ID"],
            metadata={"recipient": message.recipient, "cc": message.cc},
        )

    def build_message(self, message: OutgoingEmail) -> EmailMessage:
        """Build the MIME message."""
        mime = EmailMessage()
        mime["From"] = formataddr((self._settings.from_name, self._settings.from_email or ""))
        mime["To"] = message.recipient
        if message.cc:
            mime["Cc"] = ", ".join(message.cc)
        mime["Subject"] = message.subject
        mime["Message-ID"] = make_msgid(domain=self._settings.host)
        if message.priority == "high":
            mime["X-Priority"] = "1"
        mime.set_content(message.body)
        return mime
