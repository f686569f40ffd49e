# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for advisory file locks."""

import fcntl
import os
from pathlib import Path

import pytest

from cdn_tenants.infrastructure.locking import UID_POOL_LOCK, advisory_lock, maybe_lock


def try_lock(path: Path) -> bool:
    """Attempt a non-blocking exclusive lock through a separate descriptor."""
    fd = os.open(path, os.O_RDWR)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        return False
    else:
        fcntl.flock(fd, fcntl.LOCK_UN)
        return True
    finally:
        os.close(fd)


class TestAdvisoryLock:
    """Tests for advisory_lock."""

    def test_lock_is_exclusive_while_held(self, tmp_path: Path) -> None:
        with advisory_lock(tmp_path / "locks", "acme") as path:
            assert path == tmp_path / "locks" / "acme.lock"
            assert try_lock(path) is False

        assert try_lock(path) is True

    def test_released_when_body_raises(self, tmp_path: Path) -> None:
        with pytest.raises(RuntimeError):
            with advisory_lock(tmp_path, UID_POOL_LOCK) as path:
                raise RuntimeError("step failed")

        assert try_lock(path) is True

    def test_distinct_keys_do_not_conflict(self, tmp_path: Path) -> None:
        with advisory_lock(tmp_path, "acme"):
            with advisory_lock(tmp_path, "globex") as other:
                assert other.name == "globex.lock"


class TestMaybeLock:
    """Tests for maybe_lock."""

    def test_disabled_is_a_no_op(self, tmp_path: Path) -> None:
        lock_dir = tmp_path / "locks"

        with maybe_lock(lock_dir, "acme", enabled=False) as path:
            assert path is None

        assert not lock_dir.exists()

    def test_enabled_takes_the_lock(self, tmp_path: Path) -> None:
        with maybe_lock(tmp_path, "acme", enabled=True) as path:
            assert path is not None
            assert try_lock(path) is False
