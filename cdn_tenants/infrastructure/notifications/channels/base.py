# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base classes for notification channels.

This module defines the abstract base class and shared types for
notification channels. A channel handles delivery through one medium and
reports the outcome as a ChannelResult instead of raising, so the caller
can fall back to the on-disk queue.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from cdn_tenants.utils.datetime import utc_now


class DeliveryStatus(str, Enum):
    """Delivery status for a channel."""

    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class OutgoingEmail:
    """A fully formatted message ready for delivery.

    Attributes:
        recipient: Primary recipient address.
        subject: Final subject line (severity prefix already applied).
        body: Plain text body.
        cc: Carbon copy addresses.
        priority: normal or high.
    """

    recipient: str
    subject: str
    body: str
    cc: list[str] = field(default_factory=list)
    priority: str = "normal"


@dataclass
class ChannelResult:
    """Result of a channel send operation.

    Attributes:
        channel: Which channel was used.
        status: Delivery status.
        message_id: External message ID (if available).
        error_message: Error message if failed or skipped.
        sent_at: When the attempt finished.
        metadata: Additional result metadata.
    """

    channel: str
    status: DeliveryStatus
    message_id: str | None = None
    error_message: str | None = None
    sent_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def delivered(self) -> bool:
        """Check whether the message left this host."""
        return self.status == DeliveryStatus.SENT


class BaseChannel(ABC):
    """Abstract base class for notification channels."""

    def __init__(self) -> None:
        """Initialize the channel."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the channel name."""
        ...

    @abstractmethod
    async def send(self, message: OutgoingEmail) -> ChannelResult:
        """Send a message through this channel.

        Args:
            message: The message to deliver.

        Returns:
            ChannelResult with delivery status.
        """
        ...

    def create_success_result(
        self,
        message_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ChannelResult:
        """Create a successful channel result."""
        return ChannelResult(
            channel=self.name,
            status=DeliveryStatus.SENT,
            message_id=message_id,
            sent_at=utc_now(),
            metadata=metadata or {},
        )

    def create_failure_result(
        self,
        error_message: str,
        metadata: dict[str, Any] | None = None,
    ) -> ChannelResult:
        """Create a failed channel result."""
        return ChannelResult(
            channel=self.name,
            status=DeliveryStatus.FAILED,
            error_message=error_message,
            sent_at=utc_now(),
            metadata=metadata or {},
        )

    def create_skipped_result(self, reason: str) -> ChannelResult:
        """Create a skipped channel result."""
        return ChannelResult(
            channel=self.name,
            status=DeliveryStatus.SKIPPED,
            error_message=reason,
            sent_at=utc_now(),
        )
