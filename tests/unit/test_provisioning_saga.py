# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the tenant provisioning saga."""

from pathlib import Path
from typing import Any

import pytest

from cdn_tenants.core.config.settings import Settings
from cdn_tenants.core.exceptions import (
    InvalidEmailError,
    InvalidQuotaError,
    InvalidTenantNameError,
    NotificationError,
    PersistenceError,
    ProvisioningError,
    TenantAlreadyExistsError,
    UidPoolExhaustedError,
)
from cdn_tenants.domains.provisioning.saga import ProvisioningSaga
from cdn_tenants.domains.tenant.schemas import Tenant, TenantPaths
from cdn_tenants.infrastructure.accounts.sftp_account import AccountCreationError, AccountExistsError
from cdn_tenants.infrastructure.gitea.client import GiteaConflictError, GiteaError
from cdn_tenants.infrastructure.notifications.service import Severity
from cdn_tenants.infrastructure.store.tenant_store import TenantStore
from tests.fakes import FakeAccounts, FakeGit, FakeNotifier


def assert_nothing_left(
    name: str,
    store: TenantStore,
    accounts: FakeAccounts,
    git: FakeGit,
) -> None:
    """Every resource the saga can create is gone."""
    assert name not in accounts.accounts
    assert name not in accounts.chroots
    assert name not in accounts.links
    assert not git.repos
    assert not git.users
    assert not git.collaborators
    assert not store.exists(name)


class TestSuccessfulCreation:
    """Tests for the happy path."""

    @pytest.mark.asyncio
    async def test_creates_every_resource(
        self,
        saga: ProvisioningSaga,
        store: TenantStore,
        accounts: FakeAccounts,
        git: FakeGit,
    ) -> None:
        result = await saga.run("acme", "ops@acme.io", "204800")

        tenant = result.tenant
        assert tenant.name == "acme"
        assert tenant.sftp_uid == 5000
        assert tenant.quota_kb == 204800
        assert tenant.created_at == tenant.updated_at
        assert store.read("acme") == tenant

        assert accounts.accounts == {"acme": 5000}
        assert accounts.passwords["acme"] == result.credentials.sftp_password
        assert accounts.chroots == {"acme"}
        assert accounts.links == {"acme"}
        assert git.repos == {"acme"}
        assert git.users == {"tenant_acme": "ops@acme.io"}
        assert git.collaborators == {("acme", "tenant_acme"): "read"}
        assert "cdn.example.com/acme/" in git.readmes["acme"]
        assert result.skipped_steps == []

    @pytest.mark.asyncio
    async def test_default_quota(self, saga: ProvisioningSaga) -> None:
        result = await saga.run("acme", "ops@acme.io")

        assert result.tenant.quota_kb == 102400

    @pytest.mark.asyncio
    async def test_credentials_are_random(self, saga: ProvisioningSaga) -> None:
        first = await saga.run("acme", "ops@acme.io")
        second = await saga.run("globex", "it@globex.com")

        assert len(first.credentials.sftp_password) == 20
        assert first.credentials.sftp_password != first.credentials.gitea_password
        assert first.credentials.sftp_password != second.credentials.sftp_password

    @pytest.mark.asyncio
    async def test_uids_are_unique(self, saga: ProvisioningSaga) -> None:
        uids = [(await saga.run(name, f"ops@{name}.io")).tenant.sftp_uid for name in ("aaa", "bbb", "ccc")]

        assert uids == [5000, 5001, 5002]

    @pytest.mark.asyncio
    async def test_sends_welcome_email(self, saga: ProvisioningSaga, notifier: FakeNotifier) -> None:
        result = await saga.run("acme", "ops@acme.io")

        [notice] = notifier.sent
        assert notice.recipient.address == "ops@acme.io"
        assert notice.recipient.tenant == "acme"
        assert notice.subject == "Welcome to CDN - Account Created"
        assert notice.severity == Severity.INFO
        assert notice.cooldown == 0
        assert result.credentials.sftp_password in notice.body
        assert result.notification is not None

    @pytest.mark.asyncio
    async def test_welcome_failure_does_not_roll_back(
        self,
        saga: ProvisioningSaga,
        store: TenantStore,
        notifier: FakeNotifier,
    ) -> None:
        notifier.error = NotificationError("queue directory is read-only")

        result = await saga.run("acme", "ops@acme.io")

        assert store.exists("acme")
        assert result.notification is None
        assert "read-only" in (result.notification_error or "")

    @pytest.mark.asyncio
    async def test_rollback_log_is_retained(self, settings: Settings, saga: ProvisioningSaga) -> None:
        result = await saga.run("acme", "ops@acme.io")

        assert result.rollback_log is not None
        assert result.rollback_log.parent == settings.paths.log_dir
        content = result.rollback_log.read_text()
        assert content.startswith("=== Rollback Log for acme ===")
        assert "ROLLBACK: delete SFTP account of 'acme'" in content
        assert "ROLLBACK: delete Gitea repository 'acme'" in content
        assert content.splitlines()[-1].startswith("Completed: ")

    @pytest.mark.asyncio
    async def test_without_git_hosting(
        self,
        settings: Settings,
        store: TenantStore,
        accounts: FakeAccounts,
        notifier: FakeNotifier,
    ) -> None:
        saga = ProvisioningSaga(settings, store, accounts, git=None, notifier=notifier)

        result = await saga.run("acme", "ops@acme.io")

        assert result.skipped_steps == [4, 5, 6, 7]
        assert store.exists("acme")
        assert "SKIPPED: Step 4" in result.rollback_log.read_text()  # type: ignore[union-attr]


class TestPreconditions:
    """Tests for checks that run before any side effect."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("name", "email", "quota", "error"),
        [
            ("Acme", "ops@acme.io", None, InvalidTenantNameError),
            ("root", "ops@acme.io", None, InvalidTenantNameError),
            ("acme", "not-an-email", None, InvalidEmailError),
            ("acme", "ops@acme.io", "0", InvalidQuotaError),
            ("acme", "ops@acme.io", "lots", InvalidQuotaError),
        ],
    )
    async def test_validation_before_side_effects(
        self,
        settings: Settings,
        saga: ProvisioningSaga,
        accounts: FakeAccounts,
        name: str,
        email: str,
        quota: Any,
        error: type[Exception],
    ) -> None:
        with pytest.raises(error):
            await saga.run(name, email, quota)

        assert accounts.calls == []
        assert not settings.paths.log_dir.exists()

    @pytest.mark.asyncio
    async def test_duplicate_name(
        self,
        saga: ProvisioningSaga,
        accounts: FakeAccounts,
        git: FakeGit,
    ) -> None:
        await saga.run("acme", "ops@acme.io")
        calls_before = list(accounts.calls)

        with pytest.raises(TenantAlreadyExistsError):
            await saga.run("acme", "other@acme.io")

        assert accounts.calls == calls_before
        assert accounts.accounts == {"acme": 5000}
        assert git.users == {"tenant_acme": "ops@acme.io"}

    @pytest.mark.asyncio
    async def test_uid_pool_exhausted(
        self,
        settings: Settings,
        store: TenantStore,
        git: FakeGit,
        notifier: FakeNotifier,
    ) -> None:
        accounts = FakeAccounts(uid_start=5000, uid_end=5000)
        saga = ProvisioningSaga(settings, store, accounts, git=git, notifier=notifier)
        await saga.run("acme", "ops@acme.io")

        with pytest.raises(UidPoolExhaustedError):
            await saga.run("globex", "it@globex.com")

        assert not store.exists("globex")
        assert list(accounts.accounts) == ["acme"]
        assert git.repos == {"acme"}


# Step number, fake to break, method that raises.
STEP_FAILURES = [
    (2, "accounts", "create_account"),
    (3, "accounts", "create_chroot"),
    (4, "git", "repo_create"),
    (5, "git", "user_create"),
    (6, "git", "collaborator_add"),
    (7, "git", "repo_initialize"),
    (8, "accounts", "link_public_dir"),
]


class TestRollback:
    """Tests for compensation after a failed step."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("step", "target", "method"), STEP_FAILURES)
    async def test_failure_undoes_every_committed_step(
        self,
        saga: ProvisioningSaga,
        store: TenantStore,
        accounts: FakeAccounts,
        git: FakeGit,
        notifier: FakeNotifier,
        step: int,
        target: str,
        method: str,
    ) -> None:
        fake = accounts if target == "accounts" else git
        fake.fail_on[method] = GiteaError("HTTP 500") if target == "git" else OSError("disk full")

        with pytest.raises(ProvisioningError) as exc_info:
            await saga.run("acme", "ops@acme.io")

        error = exc_info.value
        assert error.step == step
        assert error.tenant == "acme"
        assert error.compensation_failures == []
        assert "acme" in str(error)
        assert_nothing_left("acme", store, accounts, git)
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_failed_persist_sweeps_partial_record(
        self,
        settings: Settings,
        saga: ProvisioningSaga,
        store: TenantStore,
        accounts: FakeAccounts,
        git: FakeGit,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def write_then_fail(tenant: Tenant) -> None:
            TenantPaths.for_tenant(tenant.name, settings).record_dir.mkdir(parents=True)
            raise PersistenceError(tenant.name, "cannot write record: disk full")

        monkeypatch.setattr(store, "write", write_then_fail)

        with pytest.raises(ProvisioningError) as exc_info:
            await saga.run("acme", "ops@acme.io")

        assert exc_info.value.step == 9
        assert isinstance(exc_info.value.cause, PersistenceError)
        assert_nothing_left("acme", store, accounts, git)

    @pytest.mark.asyncio
    async def test_compensations_run_in_reverse_order(
        self,
        saga: ProvisioningSaga,
        accounts: FakeAccounts,
        git: FakeGit,
    ) -> None:
        accounts.fail_on["link_public_dir"] = OSError("read-only file system")

        with pytest.raises(ProvisioningError):
            await saga.run("acme", "ops@acme.io")

        assert git.calls[-3:] == ["collaborator_remove", "user_delete", "repo_delete"]
        assert accounts.calls[-2:] == ["delete_chroot", "delete_account"]

    @pytest.mark.asyncio
    async def test_compensation_failures_are_reported(
        self,
        saga: ProvisioningSaga,
        accounts: FakeAccounts,
        git: FakeGit,
    ) -> None:
        git.fail_on["collaborator_add"] = GiteaError("HTTP 500")
        git.fail_on["user_delete"] = GiteaError("HTTP 503")

        with pytest.raises(ProvisioningError) as exc_info:
            await saga.run("acme", "ops@acme.io")

        failures = exc_info.value.compensation_failures
        assert len(failures) == 1
        assert failures[0].startswith("delete Gitea user 'tenant_acme'")
        # Remaining compensations still ran.
        assert git.repos == set()
        assert accounts.accounts == {}

    @pytest.mark.asyncio
    async def test_rollback_log_records_failure(self, saga: ProvisioningSaga, accounts: FakeAccounts) -> None:
        accounts.fail_on["create_chroot"] = OSError("no space left on device")

        with pytest.raises(ProvisioningError) as exc_info:
            await saga.run("acme", "ops@acme.io")

        log_path = Path(exc_info.value.rollback_log or "")
        content = log_path.read_text()
        assert "FAILED: Step 3 (Setting up SFTP chroot): no space left on device" in content
        assert "Rolled back: " in content

    @pytest.mark.asyncio
    async def test_name_reusable_after_rollback(self, saga: ProvisioningSaga, git: FakeGit) -> None:
        git.fail_on["repo_create"] = GiteaError("HTTP 500")
        with pytest.raises(ProvisioningError):
            await saga.run("acme", "ops@acme.io")

        del git.fail_on["repo_create"]
        result = await saga.run("acme", "ops@acme.io")

        assert result.tenant.sftp_uid == 5000


PARTIAL_FAILURES = [
    (2, "accounts", "create_account", AccountCreationError("acme", "chpasswd: PAM failure")),
    (3, "accounts", "create_chroot", AccountCreationError("acme", "cannot build chroot: chown failed")),
    (4, "git", "repo_create", GiteaError("create repository cdnadmin/acme failed: HTTP 502", status_code=502)),
    (5, "git", "user_create", GiteaError("create user tenant_acme failed: HTTP 422", status_code=422)),
    (6, "git", "collaborator_add", GiteaError("add collaborator failed: HTTP 504", status_code=504)),
    (8, "accounts", "link_public_dir", OSError("fsync failed")),
]


class TestPartialFailures:
    """Tests for steps that raise after part of their change was applied."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("step", "target", "method", "error"), PARTIAL_FAILURES)
    async def test_failing_step_is_undone_too(
        self,
        saga: ProvisioningSaga,
        store: TenantStore,
        accounts: FakeAccounts,
        git: FakeGit,
        step: int,
        target: str,
        method: str,
        error: Exception,
    ) -> None:
        fake = accounts if target == "accounts" else git
        fake.fail_after[method] = error

        with pytest.raises(ProvisioningError) as exc_info:
            await saga.run("acme", "ops@acme.io")

        assert exc_info.value.step == step
        assert exc_info.value.compensation_failures == []
        assert_nothing_left("acme", store, accounts, git)

    @pytest.mark.asyncio
    async def test_lost_user_create_response(
        self,
        saga: ProvisioningSaga,
        store: TenantStore,
        accounts: FakeAccounts,
        git: FakeGit,
    ) -> None:
        # The user was created but the retried request saw "already exists".
        git.fail_after["user_create"] = GiteaError("create user tenant_acme failed: HTTP 422", status_code=422)

        with pytest.raises(ProvisioningError) as exc_info:
            await saga.run("acme", "ops@acme.io")

        log = Path(exc_info.value.rollback_log or "").read_text()
        assert "ROLLBACK: delete Gitea user 'tenant_acme'" in log
        assert "user_delete" in git.calls
        assert git.users == {}
        assert_nothing_left("acme", store, accounts, git)


class TestExistingResources:
    """Tests for targets that existed before the attempt started."""

    @pytest.mark.asyncio
    async def test_existing_account_is_kept(self, saga: ProvisioningSaga, accounts: FakeAccounts) -> None:
        accounts.accounts["acme"] = 5007

        with pytest.raises(ProvisioningError) as exc_info:
            await saga.run("acme", "ops@acme.io")

        assert exc_info.value.step == 2
        assert isinstance(exc_info.value.cause, AccountExistsError)
        assert accounts.accounts == {"acme": 5007}
        assert "delete_account" not in accounts.calls
        log = Path(exc_info.value.rollback_log or "").read_text()
        assert "WITHDRAWN: delete SFTP account of 'acme'" in log

    @pytest.mark.asyncio
    async def test_existing_home_is_kept(self, saga: ProvisioningSaga, accounts: FakeAccounts) -> None:
        accounts.chroots.add("acme")

        with pytest.raises(ProvisioningError) as exc_info:
            await saga.run("acme", "ops@acme.io")

        assert exc_info.value.step == 3
        assert accounts.chroots == {"acme"}
        assert "delete_chroot" not in accounts.calls
        assert accounts.accounts == {}

    @pytest.mark.asyncio
    async def test_existing_repository_is_kept(
        self,
        saga: ProvisioningSaga,
        accounts: FakeAccounts,
        git: FakeGit,
    ) -> None:
        git.repos.add("acme")

        with pytest.raises(ProvisioningError) as exc_info:
            await saga.run("acme", "ops@acme.io")

        assert exc_info.value.step == 4
        assert isinstance(exc_info.value.cause, GiteaConflictError)
        assert git.repos == {"acme"}
        assert "repo_delete" not in git.calls
        assert accounts.accounts == {}
        assert accounts.chroots == set()


class TestDryRun:
    """Tests for dry-run creation."""

    @pytest.mark.asyncio
    async def test_performs_no_side_effects(
        self,
        dry_run_settings: Settings,
        store: TenantStore,
        accounts: FakeAccounts,
        git: FakeGit,
        notifier: FakeNotifier,
    ) -> None:
        saga = ProvisioningSaga(dry_run_settings, store, accounts, git=git, notifier=notifier)

        result = await saga.run("acme", "ops@acme.io")

        assert result.dry_run is True
        assert result.rollback_log is None
        assert result.tenant.name == "acme"
        assert accounts.calls == ["allocate_uid"]
        assert git.calls == []
        assert notifier.sent == []
        assert not store.exists("acme")
        assert not dry_run_settings.paths.log_dir.exists()
        assert not dry_run_settings.paths.lock_dir.exists()
