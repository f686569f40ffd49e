# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Advisory file locks serializing operations across processes.

Two invocations working on the same tenant, or two creations racing for
the same UID, are serialized through ``flock(2)`` on files under the lock
directory. The lock is released when the context exits or the process dies.
"""

import fcntl
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

UID_POOL_LOCK = "uid-pool"


@contextmanager
def advisory_lock(lock_dir: Path, key: str) -> Iterator[Path]:
    """Hold an exclusive lock on ``<lock_dir>/<key>.lock``.

    Blocks until the lock is available.

    Args:
        lock_dir: Directory holding lock files (created if missing).
        key: Lock name, a tenant name or UID_POOL_LOCK.

    Yields:
        Path of the lock file.
    """
    lock_dir.mkdir(parents=True, exist_ok=True)
    path = lock_dir / f"{key}.lock"
    fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
        logger.debug("Acquired lock: %s", path)
        try:
            yield path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug("Released lock: %s", path)
    finally:
        os.close(fd)


@contextmanager
def maybe_lock(lock_dir: Path, key: str, enabled: bool) -> Iterator[Path | None]:
    """advisory_lock() when ``enabled``, otherwise a no-op (dry-run)."""
    if not enabled:
        yield None
        return
    with advisory_lock(lock_dir, key) as path:
        yield path
