# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the rollback log and compensation executor."""

from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from cdn_tenants.domains.provisioning.compensations import (
    CompensationExecutor,
    DeleteOsAccount,
    DeletePersistedRecord,
    DeleteRemoteRepo,
    DeleteRemoteUser,
    RemoveChroot,
    RemoveCollaborator,
    RemoveWebLink,
)
from cdn_tenants.domains.provisioning.rollback_log import RollbackLog

STARTED = datetime(2025, 3, 1, 10, 30, 0, tzinfo=timezone.utc)


class TestRollbackLog:
    """Tests for RollbackLog."""

    def test_start_writes_header(self, tmp_path: Path) -> None:
        log = RollbackLog.start("acme", tmp_path / "log", started_at=STARTED)

        assert log.path == tmp_path / "log" / "rollback-acme-20250301-103000.log"
        assert log.path.read_text() == (
            "=== Rollback Log for acme ===\nStarted: 2025-03-01T10:30:00Z\n"
        )

    def test_retry_in_same_second_keeps_earlier_log(self, tmp_path: Path) -> None:
        first = RollbackLog.start("acme", tmp_path, started_at=STARTED)
        first.record(DeleteOsAccount("acme"))
        first.mark_rolled_back([])

        second = RollbackLog.start("acme", tmp_path, started_at=STARTED)
        third = RollbackLog.start("acme", tmp_path, started_at=STARTED)

        assert first.path == tmp_path / "rollback-acme-20250301-103000.log"
        assert second.path == tmp_path / "rollback-acme-20250301-103000-1.log"
        assert third.path == tmp_path / "rollback-acme-20250301-103000-2.log"
        assert "ROLLBACK: delete SFTP account of 'acme'" in first.path.read_text()
        assert "Rolled back: " in first.path.read_text()
        assert second.path.read_text() == (
            "=== Rollback Log for acme ===\nStarted: 2025-03-01T10:30:00Z\n"
        )

    def test_pending_is_reverse_commit_order(self, tmp_path: Path) -> None:
        log = RollbackLog.start("acme", tmp_path, started_at=STARTED)
        log.record(DeleteOsAccount("acme"))
        log.record(RemoveChroot("acme"))
        log.record(DeleteRemoteRepo("acme"))

        assert log.pending() == [
            DeleteRemoteRepo("acme"),
            RemoveChroot("acme"),
            DeleteOsAccount("acme"),
        ]
        assert list(log) == list(reversed(log.pending()))
        assert len(log) == 3

    def test_file_mirrors_entries_and_outcome(self, tmp_path: Path) -> None:
        log = RollbackLog.start("acme", tmp_path, started_at=STARTED)
        log.note("ROLLBACK: # UID allocation has no rollback")
        log.record(DeleteOsAccount("acme"))
        log.mark_rolled_back(["delete SFTP account of 'acme': userdel failed"])

        lines = log.path.read_text().splitlines()

        assert lines[2] == "ROLLBACK: # UID allocation has no rollback"
        assert lines[3] == "ROLLBACK: delete SFTP account of 'acme'"
        assert lines[4].startswith("Rolled back: ")
        assert lines[5] == "FAILED: delete SFTP account of 'acme': userdel failed"

    def test_mark_completed(self, tmp_path: Path) -> None:
        log = RollbackLog.start("acme", tmp_path, started_at=STARTED)
        log.mark_completed()

        assert log.path.read_text().splitlines()[-1].startswith("Completed: ")

    def test_in_memory_log_writes_nothing(self, tmp_path: Path) -> None:
        log = RollbackLog.start("acme", tmp_path / "log", persist=False)
        log.record(DeleteOsAccount("acme"))

        assert log.persisted is False
        assert log.path is None
        assert not (tmp_path / "log").exists()
        assert log.pending() == [DeleteOsAccount("acme")]


class TestCompensationDescriptions:
    """Tests for compensation describe() output."""

    @pytest.mark.parametrize(
        ("compensation", "text"),
        [
            (DeleteOsAccount("acme"), "delete SFTP account of 'acme'"),
            (RemoveChroot("acme"), "remove SFTP home of 'acme'"),
            (DeleteRemoteRepo("acme"), "delete Gitea repository 'acme'"),
            (DeleteRemoteUser("tenant_acme"), "delete Gitea user 'tenant_acme'"),
            (RemoveCollaborator("acme", "tenant_acme"), "remove collaborator 'tenant_acme' from 'acme'"),
            (RemoveWebLink("acme"), "remove web link of 'acme'"),
            (DeletePersistedRecord("acme"), "delete tenant record of 'acme'"),
        ],
    )
    def test_describe(self, compensation: object, text: str) -> None:
        assert compensation.describe() == text  # type: ignore[attr-defined]


class TestCompensationExecutor:
    """Tests for CompensationExecutor."""

    @pytest.fixture
    def accounts(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def git(self) -> AsyncMock:
        git = AsyncMock()
        git.repo_delete.return_value = True
        git.user_delete.return_value = False
        git.collaborator_remove.return_value = True
        return git

    @pytest.fixture
    def store(self) -> MagicMock:
        return MagicMock()

    @pytest.mark.asyncio
    async def test_local_compensations(self, accounts: MagicMock, store: MagicMock) -> None:
        executor = CompensationExecutor(accounts, store)

        await executor.execute(DeleteOsAccount("acme"))
        await executor.execute(RemoveChroot("acme"))
        await executor.execute(RemoveWebLink("acme"))
        await executor.execute(DeletePersistedRecord("acme"))

        accounts.delete_account.assert_called_once_with("acme")
        accounts.delete_chroot.assert_called_once_with("acme")
        accounts.unlink_public_dir.assert_called_once_with("acme")
        store.delete.assert_called_once_with("acme")

    @pytest.mark.asyncio
    async def test_remote_compensations(
        self,
        accounts: MagicMock,
        store: MagicMock,
        git: AsyncMock,
    ) -> None:
        executor = CompensationExecutor(accounts, store, git)

        assert await executor.execute(DeleteRemoteRepo("acme")) is True
        assert await executor.execute(DeleteRemoteUser("tenant_acme")) is False
        assert await executor.execute(RemoveCollaborator("acme", "tenant_acme")) is True

        git.repo_delete.assert_awaited_once_with("acme")
        git.user_delete.assert_awaited_once_with("tenant_acme")
        git.collaborator_remove.assert_awaited_once_with("acme", "tenant_acme")

    @pytest.mark.asyncio
    async def test_remote_compensation_without_git(self, accounts: MagicMock, store: MagicMock) -> None:
        executor = CompensationExecutor(accounts, store)

        with pytest.raises(RuntimeError, match="without a Git adapter"):
            await executor.execute(DeleteRemoteRepo("acme"))

    @pytest.mark.asyncio
    async def test_errors_propagate(self, accounts: MagicMock, store: MagicMock) -> None:
        accounts.delete_account.side_effect = OSError("userdel: user is logged in")
        executor = CompensationExecutor(accounts, store)

        with pytest.raises(OSError, match="logged in"):
            await executor.execute(DeleteOsAccount("acme"))
