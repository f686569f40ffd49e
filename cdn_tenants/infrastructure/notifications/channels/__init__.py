# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification delivery channels."""

from cdn_tenants.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    DeliveryStatus,
    OutgoingEmail,
)
from cdn_tenants.infrastructure.notifications.channels.email import EmailChannel

__all__ = [
    "BaseChannel",
    "ChannelResult",
    "DeliveryStatus",
    "EmailChannel",
    "OutgoingEmail",
]
