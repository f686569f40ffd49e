# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""File-based notification rate limiting.

One empty marker file per (recipient, alert type) pair, named by the
SHA-256 of ``"<recipient>-<alert_type>"``. The marker's mtime is the time
of the last successful send.
"""

import hashlib
import logging
import os
import time
from pathlib import Path

logger = logging.getLogger(__name__)


class RateLimiter:
    """Cooldown check per recipient and alert type."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    @staticmethod
    def key(recipient: str, alert_type: str) -> str:
        """Marker file name of a (recipient, alert type) pair."""
        return hashlib.sha256(f"{recipient}-{alert_type}".encode("utf-8")).hexdigest()

    def _marker(self, recipient: str, alert_type: str) -> Path:
        return self.directory / self.key(recipient, alert_type)

    def should_send(self, recipient: str, alert_type: str, cooldown_seconds: int) -> bool:
        """Check whether the cooldown since the last send has expired.

        A cooldown of zero or less always allows sending.
        """
        if cooldown_seconds <= 0:
            return True

        try:
            last_sent = self._marker(recipient, alert_type).stat().st_mtime
        except FileNotFoundError:
            return True

        elapsed = time.time() - last_sent
        if elapsed >= cooldown_seconds:
            return True

        logger.debug(
            "Rate limit active for %s to %s (%ds/%ds)",
            alert_type,
            recipient,
            int(elapsed),
            cooldown_seconds,
        )
        return False

    def mark_sent(self, recipient: str, alert_type: str) -> None:
        """Record a successful send now.

        Raises:
            OSError: If the marker cannot be written.
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        self._marker(recipient, alert_type).touch()
        logger.debug("Rate limit updated for %s to %s", alert_type, recipient)

    def cleanup(self, max_age_days: int = 7) -> int:
        """Delete markers older than ``max_age_days``.

        Returns:
            Number of markers removed.
        """
        if not self.directory.is_dir():
            return 0

        cutoff = time.time() - max_age_days * 86400
        count = 0
        for marker in self.directory.iterdir():
            if marker.is_file() and marker.stat().st_mtime < cutoff:
                os.unlink(marker)
                count += 1

        if count:
            logger.info("Cleaned up %d old rate limit files", count)
        return count
