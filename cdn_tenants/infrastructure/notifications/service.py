# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification service for tenant and administrator mail.

This service handles the complete notification flow:
1. Rate limiting per recipient and alert type
2. Subject formatting (``[CDN <LEVEL>] <subject> - Tenant: <name>``)
3. Delivery through the email channel with the administrator in CC
4. Queueing to disk when delivery fails or SMTP is not configured

Notification failures never abort the operation that triggered them; only
a failure to queue raises NotificationError.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from cdn_tenants.core.exceptions import NotificationError
from cdn_tenants.infrastructure.notifications.channels import (
    BaseChannel,
    EmailChannel,
    OutgoingEmail,
)
from cdn_tenants.infrastructure.notifications.queue import EmailQueue
from cdn_tenants.infrastructure.notifications.rate_limit import RateLimiter

if TYPE_CHECKING:
    from cdn_tenants.core.config.settings import Settings

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """Notification severity, shown in the subject prefix."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class NotificationStatus(str, Enum):
    """Outcome of a notify() call."""

    SENT = "sent"
    QUEUED = "queued"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class Recipient:
    """A notification recipient.

    Attributes:
        address: Email address.
        tenant: Tenant the recipient belongs to (None for the administrator).
    """

    address: str
    tenant: str | None = None

    @classmethod
    def for_tenant(cls, tenant: str, address: str) -> "Recipient":
        """Contact address of a tenant."""
        return cls(address=address, tenant=tenant)

    @classmethod
    def admin(cls, address: str) -> "Recipient":
        """The CDN administrator."""
        return cls(address=address)


@dataclass
class NotificationResult:
    """Result of a notify() call.

    Attributes:
        status: sent, queued or rate_limited.
        recipient: Primary recipient address.
        subject: Final subject line.
        queue_file: Queue file when the message was queued.
        error: Delivery error when the message was queued.
    """

    status: NotificationStatus
    recipient: str
    subject: str
    queue_file: Path | None = None
    error: str | None = None


@dataclass
class QueueReport:
    """Outcome of one queue processing run."""

    sent: int = 0
    failed: int = 0
    expired: int = 0
    errors: list[str] = field(default_factory=list)


class NotificationService:
    """Sends rate limited, queued notifications.

    Attributes:
        channel: Delivery channel.
        queue: On-disk queue for undelivered messages.
        rate_limiter: Cooldown markers.
    """

    def __init__(
        self,
        settings: "Settings",
        channel: BaseChannel | None = None,
        queue: EmailQueue | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize the notification service.

        Args:
            settings: Application settings.
            channel: Delivery channel. Defaults to SMTP.
            queue: Queue for undelivered mail. Defaults to the configured directory.
            rate_limiter: Rate limiter. Defaults to the configured directory.
        """
        notify = settings.notifications
        self._settings = settings
        self._admin_email = notify.admin_email
        self._default_cooldown = notify.default_cooldown_seconds
        self.channel = channel or EmailChannel(settings.smtp)
        self.queue = queue or EmailQueue(
            notify.queue_dir,
            notify.fallback_log,
            notify.queue_retention_hours,
        )
        self.rate_limiter = rate_limiter or RateLimiter(notify.rate_limit_dir)

    def format_subject(self, recipient: Recipient, subject: str, severity: Severity) -> str:
        """Apply the ``[CDN <LEVEL>]`` prefix and tenant suffix."""
        formatted = f"[CDN {severity.value}] {subject}"
        if recipient.tenant:
            formatted += f" - Tenant: {recipient.tenant}"
        return formatted

    async def notify(
        self,
        recipient: Recipient,
        subject: str,
        body: str,
        severity: Severity = Severity.INFO,
        dedup_key: str = "general",
        cooldown: int | None = None,
        cc_admin: bool = True,
    ) -> NotificationResult:
        """Send a notification, queueing it if delivery fails.

        Tenant mail is CCed to the administrator when one is configured
        and ``cc_admin`` is true.

        Args:
            recipient: Who receives the message.
            subject: Subject without prefix.
            body: Plain text body.
            severity: Severity shown in the subject.
            dedup_key: Alert type used for rate limiting.
            cooldown: Seconds between two messages with the same key.
                None uses the configured default; 0 disables rate limiting.
            cc_admin: False leaves the administrator off a tenant message.

        Returns:
            NotificationResult describing what happened.

        Raises:
            NotificationError: If the message could be neither sent nor queued.
        """
        cooldown = self._default_cooldown if cooldown is None else cooldown
        formatted = self.format_subject(recipient, subject, severity)

        if not self.rate_limiter.should_send(recipient.address, dedup_key, cooldown):
            logger.debug("Skipping %s email to %s due to rate limit", dedup_key, recipient.address)
            return NotificationResult(
                status=NotificationStatus.RATE_LIMITED,
                recipient=recipient.address,
                subject=formatted,
            )

        cc: list[str] = []
        if recipient.tenant and cc_admin:
            if self._admin_email and self._admin_email != recipient.address:
                cc.append(self._admin_email)
            elif not self._admin_email:
                logger.debug("ALERT_EMAIL not configured, sending to tenant only")

        message = OutgoingEmail(
            recipient=recipient.address,
            subject=formatted,
            body=body,
            cc=cc,
            priority="normal" if recipient.tenant else "high",
        )

        result = await self.channel.send(message)
        if result.delivered:
            try:
                self.rate_limiter.mark_sent(recipient.address, dedup_key)
            except OSError as e:
                logger.warning("Cannot update rate limit marker: %s", e)
            logger.info("Sent %s email to %s", severity.value, recipient.address)
            return NotificationResult(
                status=NotificationStatus.SENT,
                recipient=recipient.address,
                subject=formatted,
            )

        try:
            queue_file = self.queue.enqueue(message)
        except OSError as e:
            raise NotificationError(
                f"Cannot deliver or queue email to {recipient.address}: {e}",
                {"recipient": recipient.address, "subject": formatted},
            ) from e

        logger.info("Queued %s email for %s", severity.value, recipient.address)
        return NotificationResult(
            status=NotificationStatus.QUEUED,
            recipient=recipient.address,
            subject=formatted,
            queue_file=queue_file,
            error=result.error_message,
        )

    async def notify_admin(
        self,
        subject: str,
        body: str,
        severity: Severity = Severity.INFO,
        dedup_key: str = "general",
        cooldown: int | None = None,
    ) -> NotificationResult | None:
        """Notify the administrator, if one is configured."""
        if not self._admin_email:
            logger.warning("ALERT_EMAIL not configured, cannot send admin email")
            return None
        return await self.notify(
            Recipient.admin(self._admin_email),
            subject,
            body,
            severity=severity,
            dedup_key=dedup_key,
            cooldown=cooldown,
        )

    async def process_queue(self) -> QueueReport:
        """Retry queued messages.

        Expired entries are dropped, delivered entries removed and failed
        entries get their retry counter bumped. Old rate limit markers are
        cleaned up afterwards.

        Returns:
            QueueReport with counts.
        """
        report = QueueReport()

        for entry in self.queue.entries():
            if self.queue.is_expired(entry):
                logger.warning("Queue entry expired: %s", entry.path.name)
                self.queue.remove(entry)
                report.expired += 1
                continue

            result = await self.channel.send(entry.message)
            if result.delivered:
                logger.info("Successfully sent queued email to %s", entry.message.recipient)
                self.queue.remove(entry)
                report.sent += 1
            else:
                bumped = self.queue.bump_retry(entry)
                logger.warning(
                    "Failed to send queued email to %s (retry %d)",
                    entry.message.recipient,
                    bumped.retry_count,
                )
                report.failed += 1
                if result.error_message:
                    report.errors.append(result.error_message)

        self.rate_limiter.cleanup()
        logger.info(
            "Email queue processed: %d sent, %d failed, %d expired",
            report.sent,
            report.failed,
            report.expired,
        )
        return report


def get_notification_service(settings: "Settings") -> NotificationService:
    """Build the notification service from settings.

    Args:
        settings: Application settings.

    Returns:
        NotificationService with the SMTP channel.
    """
    return NotificationService(settings)
