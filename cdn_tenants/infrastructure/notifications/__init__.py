# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification system for tenant lifecycle events.

Delivers email to tenants (with the administrator in CC) and to the
administrator alone. Undelivered mail is queued on disk and retried by
``cdn-tenant process-email-queue``.

Key Components:
- NotificationService: Rate limiting, formatting, delivery and queueing
- EmailChannel: SMTP delivery with aiosmtplib
- EmailQueue: ``.eml`` queue plus fallback log
- RateLimiter: Per-recipient cooldown markers
- render_body: Plain text message layout

Usage:
    from cdn_tenants.infrastructure.notifications import (
        Recipient,
        Severity,
        get_notification_service,
    )

    service = get_notification_service(settings)
    await service.notify(
        Recipient.for_tenant("acme", "ops@acme.io"),
        "Tenant Disabled",
        body,
        severity=Severity.WARNING,
        dedup_key="tenant_disabled",
        cooldown=0,
    )
"""

from cdn_tenants.infrastructure.notifications.channels import (
    BaseChannel,
    ChannelResult,
    DeliveryStatus,
    EmailChannel,
    OutgoingEmail,
)
from cdn_tenants.infrastructure.notifications.queue import EmailQueue, QueuedEmail
from cdn_tenants.infrastructure.notifications.rate_limit import RateLimiter
from cdn_tenants.infrastructure.notifications.service import (
    NotificationResult,
    NotificationService,
    NotificationStatus,
    QueueReport,
    Recipient,
    Severity,
    get_notification_service,
)
from cdn_tenants.infrastructure.notifications.templates import render_body

__all__ = [
    # Service
    "NotificationService",
    "NotificationResult",
    "NotificationStatus",
    "QueueReport",
    "Recipient",
    "Severity",
    "get_notification_service",
    "render_body",
    # Queue and rate limiting
    "EmailQueue",
    "QueuedEmail",
    "RateLimiter",
    # Channels
    "BaseChannel",
    "ChannelResult",
    "DeliveryStatus",
    "EmailChannel",
    "OutgoingEmail",
]
