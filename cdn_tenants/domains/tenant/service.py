# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant lifecycle management service.

This module provides complete tenant lifecycle management including:
- Tenant creation through the provisioning saga
- Status management (disable locks the SFTP account, enable unlocks it)
- Quota, contact email, SSH key and Git identity updates
- Best-effort tenant deletion

Every operation validates its arguments before touching anything, holds
the tenant's advisory lock while it mutates state and honours dry-run.
Notifications are best-effort: a failure is logged and never undoes the
operation.

Example:
    >>> async with build_tenant_service(settings) as service:
    ...     result = await service.create("acme", "ops@acme.io")
    ...     await service.update_quota("acme", 204800)
"""

import inspect
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from cdn_tenants.core.exceptions import (
    ConfirmationRequiredError,
    LifecycleStepError,
    NotificationError,
    PersistenceError,
    TenantNotFoundError,
    ValidationError,
)
from cdn_tenants.domains.provisioning.saga import ProvisioningResult, ProvisioningSaga
from cdn_tenants.domains.tenant import messages
from cdn_tenants.domains.tenant.schemas import (
    StatusFilter,
    Tenant,
    TenantPaths,
    TenantStatus,
    gitea_username_for,
)
from cdn_tenants.domains.tenant.validation import (
    ssh_key_fingerprint,
    validate_email,
    validate_name,
    validate_quota,
)
from cdn_tenants.infrastructure.accounts.commands import CommandError
from cdn_tenants.infrastructure.accounts.sftp_account import SftpAccountManager
from cdn_tenants.infrastructure.gitea.client import GiteaClient
from cdn_tenants.infrastructure.gitea.workdir import GitWorkdir
from cdn_tenants.infrastructure.locking import maybe_lock
from cdn_tenants.infrastructure.notifications.service import (
    NotificationResult,
    Recipient,
    get_notification_service,
)
from cdn_tenants.infrastructure.store.tenant_store import TenantStore

if TYPE_CHECKING:
    from cdn_tenants.core.config.settings import Settings
    from cdn_tenants.domains.provisioning.ports import (
        AccountProvisioner,
        GitHostingAdapter,
        Notifier,
    )

logger = logging.getLogger(__name__)

STATUS_FILTERS = ("all", "active", "disabled")


@dataclass
class TenantInfo:
    """Everything ``cdn-tenant info`` shows about a tenant.

    Attributes:
        tenant: The persisted record.
        paths: Derived filesystem locations.
        usage_kb: Bytes stored under uploads, in KB.
        repo_url: Web URL of the content repository (None without Git hosting).
    """

    tenant: Tenant
    paths: TenantPaths
    usage_kb: int
    repo_url: str | None = None

    @property
    def usage_percent(self) -> int:
        """Usage as a whole percentage of the quota."""
        return self.usage_kb * 100 // self.tenant.quota_kb


@dataclass
class DeletionStep:
    """Outcome of one teardown step."""

    description: str
    ok: bool
    detail: str | None = None


@dataclass
class DeletionReport:
    """Outcome of delete(): every step runs even if an earlier one failed.

    Attributes:
        tenant: Deleted tenant name.
        steps: Step outcomes in execution order.
        dry_run: Whether side effects were suppressed.
    """

    tenant: str
    steps: list[DeletionStep] = field(default_factory=list)
    dry_run: bool = False

    @property
    def failures(self) -> list[DeletionStep]:
        """Steps that raised."""
        return [step for step in self.steps if not step.ok]

    @property
    def complete(self) -> bool:
        """Check whether every step succeeded."""
        return not self.failures


class TenantService:
    """Tenant lifecycle management service.

    Attributes:
        saga: Provisioning saga used by create().
    """

    def __init__(
        self,
        settings: "Settings",
        store: TenantStore,
        accounts: "AccountProvisioner",
        git: "GitHostingAdapter | None" = None,
        notifier: "Notifier | None" = None,
        workdir: GitWorkdir | None = None,
    ) -> None:
        """Initialize the tenant service.

        Args:
            settings: Application settings.
            store: Tenant record store.
            accounts: OS account provisioner.
            git: Git hosting adapter. None disables the Git hosting steps.
            notifier: Notifier. None disables notifications.
            workdir: Local Git working directories (update_git_user).
        """
        self._settings = settings
        self._store = store
        self._accounts = accounts
        self._git = git
        self._notifier = notifier
        self._workdir = workdir
        self.saga = ProvisioningSaga(settings, store, accounts, git=git, notifier=notifier)

    async def __aenter__(self) -> "TenantService":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the Git hosting client, if it holds connections."""
        close = getattr(self._git, "close", None)
        if close is not None:
            await close()

    @property
    def settings(self) -> "Settings":
        return self._settings

    @property
    def dry_run(self) -> bool:
        return self._settings.dry_run

    def _lock(self, name: str):
        return maybe_lock(self._settings.paths.lock_dir, name, enabled=not self.dry_run)

    def _require(self, name: str) -> Tenant:
        validate_name(name)
        return self._store.read(name)

    async def _notify(
        self,
        tenant: str,
        address: str,
        message: messages.Message,
        cc_admin: bool = True,
    ) -> NotificationResult | None:
        """Send a lifecycle notice without cooldown; failures are logged only."""
        if self._notifier is None:
            logger.debug("No notifier configured, skipping '%s' for %s", message.subject, tenant)
            return None
        if self.dry_run:
            logger.info("[DRY RUN] Would send '%s' to: %s", message.subject, address)
            return None
        try:
            return await self._notifier.notify(
                Recipient.for_tenant(tenant, address),
                message.subject,
                message.body,
                severity=message.severity,
                dedup_key=message.dedup_key,
                cooldown=0,
                cc_admin=cc_admin,
            )
        except NotificationError as e:
            logger.warning("Notification '%s' for %s failed: %s", message.subject, tenant, e)
            return None

    # =========================================================================
    # Create / Read
    # =========================================================================

    async def create(
        self,
        name: str,
        email: str,
        quota_kb: int | str | None = None,
    ) -> ProvisioningResult:
        """Create a tenant (see ProvisioningSaga.run)."""
        return await self.saga.run(name, email, quota_kb)

    def info(self, name: str) -> TenantInfo:
        """Describe a tenant.

        Raises:
            InvalidTenantNameError: If the name is invalid.
            TenantNotFoundError: If the tenant does not exist.
        """
        tenant = self._require(name)
        return TenantInfo(
            tenant=tenant,
            paths=TenantPaths.for_tenant(name, self._settings),
            usage_kb=self._accounts.usage_kb(name),
            repo_url=self._git.repo_url(name) if self._git is not None else None,
        )

    def list(self, status_filter: StatusFilter = "all") -> Iterator[Tenant]:
        """Lazily list tenants, sorted by name.

        Raises:
            ValidationError: If the filter is not all, active or disabled.
        """
        if status_filter not in STATUS_FILTERS:
            raise ValidationError(
                f"Invalid status filter: {status_filter} (use all, active or disabled)",
                {"field": "status_filter"},
            )
        return self._store.list(status_filter)

    # =========================================================================
    # Status
    # =========================================================================

    async def disable(self, name: str) -> Tenant:
        """Disable a tenant and lock its SFTP account.

        Sends a WARNING notice.

        Raises:
            TenantNotFoundError: If the tenant does not exist.
            LifecycleStepError: If the account cannot be locked (the record
                is left active).
        """
        return await self._set_status(name, TenantStatus.DISABLED)

    async def enable(self, name: str) -> Tenant:
        """Re-enable a tenant and unlock its SFTP account.

        Sends an INFO notice.

        Raises:
            TenantNotFoundError: If the tenant does not exist.
            LifecycleStepError: If the account cannot be unlocked (the record
                is left disabled).
        """
        return await self._set_status(name, TenantStatus.ACTIVE)

    async def _set_status(self, name: str, status: TenantStatus) -> Tenant:
        disabling = status == TenantStatus.DISABLED
        validate_name(name)
        with self._lock(name):
            tenant = self._require(name)
            logger.info("%s tenant: %s", "Disabling" if disabling else "Enabling", name)

            if self.dry_run:
                logger.info("[DRY RUN] Would %s tenant: %s", "disable" if disabling else "enable", name)
                return tenant

            if disabling:
                step, apply, revert = "lock SFTP account", self._accounts.lock, self._accounts.unlock
            else:
                step, apply, revert = "unlock SFTP account", self._accounts.unlock, self._accounts.lock

            try:
                apply(name)
            except (CommandError, OSError) as e:
                logger.error("Failed to %s for tenant %s: %s", step, name, e)
                raise LifecycleStepError(name, step, e) from e

            try:
                tenant = self._store.update_field(name, "status", status)
            except PersistenceError:
                try:
                    revert(name)
                except (CommandError, OSError) as e:
                    logger.error("Cannot restore SFTP account state of %s: %s", name, e)
                raise

        message = messages.disabled(self._settings, name) if disabling else messages.enabled(self._settings, name)
        await self._notify(name, tenant.email, message)
        return tenant

    # =========================================================================
    # Updates
    # =========================================================================

    async def update_quota(self, name: str, quota_kb: int | str) -> Tenant:
        """Change a tenant's quota.

        Raises:
            InvalidQuotaError: If the quota is not a positive integer.
            TenantNotFoundError: If the tenant does not exist.
        """
        validate_name(name)
        quota = validate_quota(quota_kb)
        with self._lock(name):
            current = self._require(name)
            logger.info("Updating quota for tenant '%s': %d KB", name, quota)
            if self.dry_run:
                logger.info("[DRY RUN] Would update quota_kb=%d for %s", quota, name)
                return current
            tenant = self._store.update_field(name, "quota_kb", quota)

        await self._notify(
            name,
            tenant.email,
            messages.quota_updated(self._settings, name, current.quota_kb, quota),
        )
        return tenant

    async def update_email(self, name: str, email: str) -> Tenant:
        """Change a tenant's contact address; both addresses are notified.

        The administrator is CCed on the notice to the new address only.

        Raises:
            InvalidEmailError: If the address is malformed.
            TenantNotFoundError: If the tenant does not exist.
        """
        validate_name(name)
        validate_email(email)
        with self._lock(name):
            current = self._require(name)
            logger.info("Updating email for tenant '%s': %s", name, email)
            if self.dry_run:
                logger.info("[DRY RUN] Would update email=%s for %s", email, name)
                return current
            tenant = self._store.update_field(name, "email", email)

        message = messages.email_updated(self._settings, name, current.email, email)
        await self._notify(name, email, message)
        if current.email != email:
            await self._notify(name, current.email, message, cc_admin=False)
        return tenant

    async def rotate_ssh_key(self, name: str, public_key: str) -> str:
        """Replace a tenant's authorized SSH key.

        Returns:
            The new key's SHA256 fingerprint.

        Raises:
            InvalidSshKeyError: If the key is not an OpenSSH public key.
            TenantNotFoundError: If the tenant does not exist.
        """
        validate_name(name)
        fingerprint = ssh_key_fingerprint(public_key)
        with self._lock(name):
            tenant = self._require(name)
            if self.dry_run:
                logger.info("[DRY RUN] Would rotate SSH key for tenant: %s", name)
                return fingerprint
            self._accounts.install_authorized_key(name, public_key)
            self._store.touch(name)
            logger.info("Rotated SSH key for tenant: %s (%s)", name, fingerprint)

        await self._notify(name, tenant.email, messages.ssh_key_rotated(self._settings, name, fingerprint))
        return fingerprint

    def update_git_user(self, name: str, git_name: str, git_email: str) -> bool:
        """Set the commit identity of a tenant's Git working directory.

        Returns:
            True if updated, False if the working directory does not exist
            (or in dry-run).

        Raises:
            InvalidEmailError: If the address is malformed.
            TenantNotFoundError: If the tenant does not exist.
        """
        validate_name(name)
        validate_email(git_email)
        if not git_name.strip():
            raise ValidationError("Git user name must not be empty", {"field": "git_name"})

        with self._lock(name):
            if not self._store.exists(name):
                raise TenantNotFoundError(name)
            logger.info("Updating Git user details for tenant '%s'", name)
            if self.dry_run:
                logger.info("[DRY RUN] Would update Git user: %s <%s>", git_name, git_email)
                return False
            if self._workdir is None:
                logger.warning("No Git working directory manager configured")
                return False
            return self._workdir.set_identity(name, git_name, git_email)

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete(self, name: str, confirm: bool = False) -> DeletionReport:
        """Delete a tenant.

        Notifies the tenant first, then removes the web link, the Gitea
        collaborator, user and repository, the chroot, the OS account and
        finally the record. Each step runs even if a previous one failed.

        Returns:
            DeletionReport; check ``complete`` for partial deletions.

        Raises:
            TenantNotFoundError: If the tenant does not exist.
            ConfirmationRequiredError: If ``confirm`` is not set.
        """
        validate_name(name)
        with self._lock(name):
            if not self._store.exists(name):
                raise TenantNotFoundError(name)
            if not confirm:
                raise ConfirmationRequiredError(name)

            try:
                tenant: Tenant | None = self._store.read(name)
            except PersistenceError as e:
                logger.warning("Deleting tenant %s with unreadable record: %s", name, e)
                tenant = None

            logger.info("Deleting tenant: %s", name)
            report = DeletionReport(tenant=name, dry_run=self.dry_run)
            gitea_username = tenant.gitea_username if tenant else gitea_username_for(name)

            if tenant is not None:
                await self._notify(name, tenant.email, messages.deleted(self._settings, name))

            await self._teardown(report, "remove web link", lambda: self._accounts.unlink_public_dir(name))
            if self._git is not None:
                git = self._git
                await self._teardown(
                    report,
                    "remove Gitea collaborator",
                    lambda: git.collaborator_remove(name, gitea_username),
                )
                await self._teardown(report, "delete Gitea user", lambda: git.user_delete(gitea_username))
                await self._teardown(report, "delete Gitea repository", lambda: git.repo_delete(name))
            await self._teardown(report, "remove SFTP home", lambda: self._accounts.delete_chroot(name))
            await self._teardown(report, "delete SFTP account", lambda: self._accounts.delete_account(name))
            await self._teardown(report, "delete tenant record", lambda: self._store.delete(name))

        if report.complete:
            logger.info("Successfully deleted tenant: %s", name)
        else:
            logger.error(
                "Tenant %s partially deleted; failed steps: %s",
                name,
                ", ".join(step.description for step in report.failures),
            )
        return report

    async def _teardown(
        self,
        report: DeletionReport,
        description: str,
        action: Callable[[], Any],
    ) -> None:
        if self.dry_run:
            logger.info("[DRY RUN] Would %s", description)
            report.steps.append(DeletionStep(description, ok=True, detail="dry run"))
            return

        try:
            outcome = action()
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception as e:
            logger.error("Failed to %s: %s", description, e)
            report.steps.append(DeletionStep(description, ok=False, detail=str(e)))
            return

        detail = None if outcome is not False else "already absent"
        report.steps.append(DeletionStep(description, ok=True, detail=detail))


def build_tenant_service(settings: "Settings") -> TenantService:
    """Wire a TenantService with the real infrastructure.

    Args:
        settings: Application settings.

    Returns:
        TenantService; use it as an async context manager to close the
        Gitea client.
    """

    git = GiteaClient(settings.gitea) if settings.gitea.enabled else None
    return TenantService(
        settings,
        store=TenantStore(settings),
        accounts=SftpAccountManager(settings),
        git=git,
        notifier=get_notification_service(settings),
        workdir=GitWorkdir(settings),
    )
