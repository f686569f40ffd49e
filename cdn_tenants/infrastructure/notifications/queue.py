# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""On-disk queue for undelivered notifications.

Each queued message is an ``.eml`` file (mode 0600) named
``<epoch>-<uuid>.eml``. Besides the usual To/Cc/Subject headers it carries
``X-Priority-Class``, ``X-Queued-At`` and ``X-Retry-Count``. Every queued
message is also appended to a plain text fallback log so an operator can
read it even if the queue is never processed.
"""

import logging
import os
import time
import uuid
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from email import message_from_string
from email.message import EmailMessage
from email.policy import default as default_policy
from pathlib import Path

from cdn_tenants.infrastructure.notifications.channels.base import OutgoingEmail
from cdn_tenants.utils.datetime import format_iso, parse_iso, seconds_since, utc_now

logger = logging.getLogger(__name__)

QUEUE_FILE_MODE = 0o600
QUEUE_SUFFIX = ".eml"
FALLBACK_SEPARATOR = "=" * 72


@dataclass
class QueuedEmail:
    """A message read back from the queue.

    Attributes:
        path: Queue file.
        message: The message to retry.
        queued_at: When it was first queued.
        retry_count: Failed delivery attempts since queueing.
    """

    path: Path
    message: OutgoingEmail
    queued_at: datetime
    retry_count: int


class EmailQueue:
    """Directory of queued messages plus the fallback log."""

    def __init__(self, directory: Path, fallback_log: Path, retention_hours: int = 24) -> None:
        self.directory = directory
        self.fallback_log = fallback_log
        self.retention_hours = retention_hours

    def enqueue(self, message: OutgoingEmail) -> Path:
        """Queue a message and copy it to the fallback log.

        Returns:
            Path of the queue file.

        Raises:
            OSError: If the queue file cannot be written.
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"{int(time.time())}-{uuid.uuid4()}{QUEUE_SUFFIX}"
        self._write(path, message, utc_now(), retry_count=0)
        logger.info("Email queued: %s -> %s", path.name, message.recipient)

        try:
            self.append_fallback(message)
        except OSError as e:
            logger.warning("Cannot write email fallback log %s: %s", self.fallback_log, e)
        return path

    def entries(self) -> Iterator[QueuedEmail]:
        """Iterate over queued messages, oldest first.

        Unparseable files are logged and skipped.
        """
        if not self.directory.is_dir():
            return

        for path in sorted(self.directory.glob(f"*{QUEUE_SUFFIX}")):
            try:
                yield self._read(path)
            except (OSError, ValueError, KeyError) as e:
                logger.warning("Skipping unreadable queue entry %s: %s", path.name, e)

    def is_expired(self, entry: QueuedEmail) -> bool:
        """Check whether an entry is older than the retention window."""
        return seconds_since(entry.queued_at) > self.retention_hours * 3600

    def bump_retry(self, entry: QueuedEmail) -> QueuedEmail:
        """Rewrite an entry with its retry counter incremented."""
        bumped = QueuedEmail(
            path=entry.path,
            message=entry.message,
            queued_at=entry.queued_at,
            retry_count=entry.retry_count + 1,
        )
        self._write(entry.path, entry.message, entry.queued_at, bumped.retry_count)
        return bumped

    def remove(self, entry: QueuedEmail) -> None:
        """Delete an entry (delivered or expired)."""
        entry.path.unlink(missing_ok=True)

    def append_fallback(self, message: OutgoingEmail) -> None:
        """Append a readable copy of ``message`` to the fallback log."""
        self.fallback_log.parent.mkdir(parents=True, exist_ok=True)
        with open(self.fallback_log, "a", encoding="utf-8") as f:
            f.write(
                f"{FALLBACK_SEPARATOR}\n"
                f"Timestamp: {format_iso(utc_now())}\n"
                f"To: {message.recipient}\n"
                f"Subject: {message.subject}\n"
                f"{FALLBACK_SEPARATOR}\n"
                f"{message.body}\n\n"
            )

    def _write(self, path: Path, message: OutgoingEmail, queued_at: datetime, retry_count: int) -> None:
        mime = EmailMessage()
        mime["To"] = message.recipient
        if message.cc:
            mime["Cc"] = ", ".join(message.cc)
        mime["Subject"] = message.subject
        mime["X-Priority-Class"] = message.priority
        mime["X-Queued-At"] = format_iso(queued_at)
        mime["X-Retry-Count"] = str(retry_count)
        mime.set_content(message.body)

        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, QUEUE_FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(mime.as_string())
        os.chmod(path, QUEUE_FILE_MODE)

    def _read(self, path: Path) -> QueuedEmail:
        mime = message_from_string(path.read_text(encoding="utf-8"), policy=default_policy)
        cc = mime.get("Cc")
        message = OutgoingEmail(
            recipient=str(mime["To"]),
            subject=str(mime["Subject"]),
            body=mime.get_content().rstrip("\n"),
            cc=[addr.strip() for addr in str(cc).split(",")] if cc else [],
            priority=str(mime.get("X-Priority-Class", "normal")),
        )
        return QueuedEmail(
            path=path,
            message=message,
            queued_at=parse_iso(str(mime["X-Queued-At"])),
            retry_count=int(str(mime.get("X-Retry-Count", "0"))),
        )
