# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Rollback log of one tenant creation attempt.

The log holds the compensation of every started step in start order. An
entry is recorded before its step runs, so a step that fails halfway is
still undone; it is withdrawn only when the step reports that its target
already existed and nothing was changed.

Unless it is in-memory only (dry-run), each entry is also appended to
``<log_dir>/rollback-<name>-<YYYYmmdd-HHMMSS>.log`` (``-1``, ``-2``... appended
when an earlier attempt in the same second holds that name), which is kept after
both success and failure:

    === Rollback Log for acme ===
    Started: 2025-01-01T10:00:00Z
    ROLLBACK: # UID allocation has no rollback
    ROLLBACK: delete SFTP account of 'acme'
    ...
    Completed: 2025-01-01T10:00:02Z
"""

import logging
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path

from cdn_tenants.domains.provisioning.compensations import Compensation
from cdn_tenants.utils.datetime import file_stamp, format_iso, utc_now

logger = logging.getLogger(__name__)


class RollbackLog:
    """Append-only list of compensations, optionally mirrored to a file."""

    def __init__(self, tenant: str, path: Path | None = None) -> None:
        """Initialize the log.

        Args:
            tenant: Tenant being created.
            path: File mirroring the log. None keeps it in memory only.
        """
        self.tenant = tenant
        self.path = path
        self._entries: list[Compensation] = []

    @classmethod
    def start(
        cls,
        tenant: str,
        log_dir: Path,
        started_at: datetime | None = None,
        persist: bool = True,
    ) -> "RollbackLog":
        """Open the log of a new creation attempt.

        Args:
            tenant: Tenant being created.
            log_dir: Directory of rollback log files.
            started_at: Attempt start time (defaults to now).
            persist: False for dry-run (no file is written).

        Raises:
            OSError: If the log file cannot be created.
        """
        started_at = started_at or utc_now()
        if not persist:
            return cls(tenant)

        log_dir.mkdir(parents=True, exist_ok=True)
        stem = f"rollback-{tenant}-{file_stamp(started_at)}"
        header = f"=== Rollback Log for {tenant} ===\nStarted: {format_iso(started_at)}\n"
        attempt = 0
        while True:
            suffix = f"-{attempt}" if attempt else ""
            path = log_dir / f"{stem}{suffix}.log"
            try:
                with open(path, "x", encoding="utf-8") as f:
                    f.write(header)
            except FileExistsError:
                attempt += 1
                continue
            return cls(tenant, path)

    def record(self, compensation: Compensation) -> None:
        """Append the compensation of a step about to run."""
        self._entries.append(compensation)
        self._write(f"ROLLBACK: {compensation.describe()}")

    def withdraw(self, compensation: Compensation) -> None:
        """Drop the compensation of a step that changed nothing."""
        self._entries.remove(compensation)
        self._write(f"WITHDRAWN: {compensation.describe()} (target existed before this attempt)")

    def note(self, text: str) -> None:
        """Append a free-text line (steps without compensation, outcomes)."""
        self._write(text)

    def pending(self) -> list[Compensation]:
        """Compensations in execution order (reverse of start order)."""
        return list(reversed(self._entries))

    def mark_completed(self) -> None:
        self._write(f"Completed: {format_iso(utc_now())}")

    def mark_rolled_back(self, failures: list[str]) -> None:
        self._write(f"Rolled back: {format_iso(utc_now())}")
        for failure in failures:
            self._write(f"FAILED: {failure}")

    @property
    def persisted(self) -> bool:
        return self.path is not None

    def __iter__(self) -> Iterator[Compensation]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def _write(self, line: str) -> None:
        if self.path is None:
            logger.debug("[rollback %s] %s", self.tenant, line)
            return
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.error("Cannot append to rollback log %s: %s", self.path, e)
