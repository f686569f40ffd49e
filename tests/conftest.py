# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across the unit tests:
- Settings pointing every host directory into tmp_path
- Fresh fakes (see tests/fakes.py) for the account layer, Git host and notifier
- The real tenant store, saga and lifecycle service wired to those fakes
"""

from collections.abc import Callable
from pathlib import Path

import pytest

from cdn_tenants.core.config.settings import (
    CdnPathsSettings,
    GiteaSettings,
    NotificationSettings,
    Settings,
    SftpSettings,
    SmtpSettings,
)
from cdn_tenants.domains.provisioning.saga import ProvisioningSaga
from cdn_tenants.domains.tenant.schemas import Tenant
from cdn_tenants.domains.tenant.service import TenantService
from cdn_tenants.infrastructure.store.tenant_store import TenantStore
from cdn_tenants.utils.datetime import utc_now
from tests.fakes import FakeAccounts, FakeGit, FakeNotifier

# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with every host directory under tmp_path."""
    return Settings(
        environment="development",
        cdn_domain="cdn.example.com",
        paths=CdnPathsSettings(
            tenant_db_dir=tmp_path / "tenants",
            sftp_dir=tmp_path / "sftp",
            git_dir=tmp_path / "git",
            www_dir=tmp_path / "www",
            log_dir=tmp_path / "log",
            lock_dir=tmp_path / "lock",
        ),
        sftp=SftpSettings(uid_start=5000, uid_end=5009, host="sftp.example.com"),
        gitea=GiteaSettings(
            base_url="http://gitea.test/api/v1",
            domain="git.example.com",
            admin_token="test-token",  # type: ignore[arg-type]
            max_retries=3,
            retry_backoff=0,
        ),
        smtp=SmtpSettings(),
        notifications=NotificationSettings(
            admin_email="admin@example.com",
            queue_dir=tmp_path / "queue",
            rate_limit_dir=tmp_path / "rate-limits",
            fallback_log=tmp_path / "log" / "email-fallback.log",
        ),
    )


@pytest.fixture
def dry_run_settings(settings: Settings) -> Settings:
    """The same settings with dry-run enabled."""
    return settings.model_copy(update={"dry_run": True})


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def store(settings: Settings) -> TenantStore:
    return TenantStore(settings)


@pytest.fixture
def accounts() -> FakeAccounts:
    return FakeAccounts()


@pytest.fixture
def git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def saga(
    settings: Settings,
    store: TenantStore,
    accounts: FakeAccounts,
    git: FakeGit,
    notifier: FakeNotifier,
) -> ProvisioningSaga:
    return ProvisioningSaga(settings, store, accounts, git=git, notifier=notifier)


@pytest.fixture
def service(
    settings: Settings,
    store: TenantStore,
    accounts: FakeAccounts,
    git: FakeGit,
    notifier: FakeNotifier,
) -> TenantService:
    return TenantService(settings, store, accounts, git=git, notifier=notifier)


@pytest.fixture
def seed_tenant(
    store: TenantStore,
    accounts: FakeAccounts,
    git: FakeGit,
) -> Callable[..., Tenant]:
    """Persist a tenant and register its resources in the fakes."""

    def _seed(
        name: str = "acme",
        email: str = "ops@acme.io",
        quota_kb: int = 102400,
        uid: int = 5000,
    ) -> Tenant:
        tenant = Tenant.new(
            name=name,
            email=email,
            sftp_uid=uid,
            quota_kb=quota_kb,
            created_at=utc_now(),
        )
        store.write(tenant)
        accounts.accounts[name] = uid
        accounts.chroots.add(name)
        accounts.links.add(name)
        git.repos.add(name)
        git.users[tenant.gitea_username] = email
        git.collaborators[(name, tenant.gitea_username)] = "read"
        return tenant

    return _seed


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (needs root and a Gitea server)"
    )
