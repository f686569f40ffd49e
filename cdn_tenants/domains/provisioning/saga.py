# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant provisioning saga.

Creates a tenant in ten ordered steps. Every step with a side effect records
a typed compensation in the attempt's RollbackLog before it runs, so a step
that fails halfway is undone along with the ones before it. When a step
fails, the recorded compensations run in reverse order, a placeholder
record (if step 9 left one) is swept, and a single ProvisioningError is
raised. Nothing is retried.

    Step  Action                          Compensation
    ----  ------------------------------  ---------------------
     1    allocate SFTP UID               (none, read-only)
     2    create OS account               DeleteOsAccount
     3    create chroot home              RemoveChroot
     4    create Gitea repository         DeleteRemoteRepo
     5    create Gitea user               DeleteRemoteUser
     6    add read-only collaborator      RemoveCollaborator
     7    commit initial README           (none, repo is deleted)
     8    create web link                 RemoveWebLink
     9    persist tenant record           swept on rollback
    10    send welcome email              (best-effort)

In dry-run mode steps 2 to 10 are announced but not performed, no lock is
taken and no rollback log file is written.
"""

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, NoReturn

from cdn_tenants.core.exceptions import (
    NotificationError,
    PersistenceError,
    ProvisioningError,
    ResourceExistsError,
    TenantAlreadyExistsError,
    UidPoolExhaustedError,
)
from cdn_tenants.domains.provisioning.compensations import (
    Compensation,
    CompensationExecutor,
    DeleteOsAccount,
    DeletePersistedRecord,
    DeleteRemoteRepo,
    DeleteRemoteUser,
    RemoveChroot,
    RemoveCollaborator,
    RemoveWebLink,
)
from cdn_tenants.domains.provisioning.credentials import Credentials
from cdn_tenants.domains.provisioning.rollback_log import RollbackLog
from cdn_tenants.domains.tenant import messages
from cdn_tenants.domains.tenant.schemas import (
    Tenant,
    gitea_username_for,
    sftp_username_for,
)
from cdn_tenants.domains.tenant.validation import (
    validate_email,
    validate_name,
    validate_quota,
)
from cdn_tenants.infrastructure.locking import UID_POOL_LOCK, maybe_lock
from cdn_tenants.infrastructure.notifications.service import NotificationResult, Recipient
from cdn_tenants.utils.datetime import utc_now

if TYPE_CHECKING:
    from cdn_tenants.core.config.settings import Settings
    from cdn_tenants.domains.provisioning.ports import (
        AccountProvisioner,
        GitHostingAdapter,
        Notifier,
    )
    from cdn_tenants.infrastructure.store.tenant_store import TenantStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SagaStep:
    """One creation step."""

    number: int
    description: str


STEP_ALLOCATE_UID = SagaStep(1, "Allocating SFTP UID")
STEP_CREATE_ACCOUNT = SagaStep(2, "Creating SFTP user")
STEP_CREATE_CHROOT = SagaStep(3, "Setting up SFTP chroot")
STEP_CREATE_REPO = SagaStep(4, "Creating Gitea repository")
STEP_CREATE_REMOTE_USER = SagaStep(5, "Creating Gitea user account")
STEP_ADD_COLLABORATOR = SagaStep(6, "Adding tenant as repository collaborator")
STEP_INITIALIZE_REPO = SagaStep(7, "Initializing Git repository")
STEP_LINK_PUBLIC_DIR = SagaStep(8, "Creating www symlink")
STEP_PERSIST_RECORD = SagaStep(9, "Writing tenant configuration")
STEP_NOTIFY = SagaStep(10, "Sending welcome email")

STEPS = (
    STEP_ALLOCATE_UID,
    STEP_CREATE_ACCOUNT,
    STEP_CREATE_CHROOT,
    STEP_CREATE_REPO,
    STEP_CREATE_REMOTE_USER,
    STEP_ADD_COLLABORATOR,
    STEP_INITIALIZE_REPO,
    STEP_LINK_PUBLIC_DIR,
    STEP_PERSIST_RECORD,
    STEP_NOTIFY,
)
TOTAL_STEPS = len(STEPS)


@dataclass
class ProvisioningResult:
    """Outcome of a successful creation.

    Attributes:
        tenant: The persisted record (not persisted in dry-run).
        credentials: Generated passwords.
        rollback_log: Path of the retained rollback log (None in dry-run).
        dry_run: Whether side effects were suppressed.
        skipped_steps: Steps skipped because an adapter is not configured.
        notification: Welcome email outcome, if one was attempted.
        notification_error: Why the welcome email could not be sent or queued.
    """

    tenant: Tenant
    credentials: Credentials
    rollback_log: Path | None
    dry_run: bool = False
    skipped_steps: list[int] = field(default_factory=list)
    notification: NotificationResult | None = None
    notification_error: str | None = None


@dataclass
class _Attempt:
    name: str
    email: str
    quota_kb: int
    dry_run: bool
    log: RollbackLog
    credentials: Credentials
    current: SagaStep = STEP_ALLOCATE_UID
    skipped: list[int] = field(default_factory=list)


class ProvisioningSaga:
    """Runs the ten creation steps with compensation on failure.

    Example:
        saga = ProvisioningSaga(settings, store, accounts, git=gitea, notifier=notifications)
        result = await saga.run("acme", "ops@acme.io", 204800)
    """

    def __init__(
        self,
        settings: "Settings",
        store: "TenantStore",
        accounts: "AccountProvisioner",
        git: "GitHostingAdapter | None" = None,
        notifier: "Notifier | None" = None,
    ) -> None:
        """Initialize the saga.

        Args:
            settings: Application settings.
            store: Tenant record store.
            accounts: OS account provisioner.
            git: Git hosting adapter. None skips steps 4 to 7.
            notifier: Notifier. None skips step 10.
        """
        self._settings = settings
        self._store = store
        self._accounts = accounts
        self._git = git
        self._notifier = notifier
        self._executor = CompensationExecutor(accounts, store, git)

    async def run(self, name: str, email: str, quota_kb: int | str | None = None) -> ProvisioningResult:
        """Create a tenant.

        Args:
            name: Tenant name.
            email: Contact address.
            quota_kb: Quota in KB. None uses the configured default.

        Returns:
            ProvisioningResult of the committed (or simulated) creation.

        Raises:
            ValidationError: If an argument is invalid (nothing was done).
            TenantAlreadyExistsError: If the name is taken (nothing was done).
            UidPoolExhaustedError: If no UID is free (nothing was done).
            PersistenceError: If the rollback log cannot be opened.
            ProvisioningError: If a step failed; earlier steps were undone.
        """
        validate_name(name)
        validate_email(email)
        quota = validate_quota(
            self._settings.tenant.default_quota_kb if quota_kb is None else quota_kb
        )
        dry_run = self._settings.dry_run
        lock_dir = self._settings.paths.lock_dir

        with maybe_lock(lock_dir, name, enabled=not dry_run):
            if self._store.exists(name):
                raise TenantAlreadyExistsError(name)

            created_at = utc_now()
            try:
                log = RollbackLog.start(
                    name,
                    self._settings.paths.log_dir,
                    started_at=created_at,
                    persist=not dry_run,
                )
            except OSError as e:
                raise PersistenceError(name, f"cannot open rollback log: {e}") from e

            attempt = _Attempt(
                name=name,
                email=email,
                quota_kb=quota,
                dry_run=dry_run,
                log=log,
                credentials=Credentials(
                    sftp_username=sftp_username_for(name),
                    gitea_username=gitea_username_for(name),
                ),
            )
            logger.info("Creating tenant: %s%s", name, " (dry run)" if dry_run else "")

            try:
                tenant = await self._execute_steps(attempt, created_at)
            except UidPoolExhaustedError:
                log.note(f"FAILED: Step 1 ({STEP_ALLOCATE_UID.description}): UID pool exhausted")
                raise
            except Exception as e:
                await self._rollback(attempt, e)

            result = ProvisioningResult(
                tenant=tenant,
                credentials=attempt.credentials,
                rollback_log=log.path,
                dry_run=dry_run,
                skipped_steps=attempt.skipped,
            )
            await self._notify_welcome(attempt, result)
            log.mark_completed()

        logger.info("Successfully created tenant: %s", name)
        return result

    async def _execute_steps(self, attempt: _Attempt, created_at: datetime) -> Tenant:
        name = attempt.name
        creds = attempt.credentials
        lock_dir = self._settings.paths.lock_dir

        with maybe_lock(lock_dir, UID_POOL_LOCK, enabled=not attempt.dry_run):
            self._begin(attempt, STEP_ALLOCATE_UID)
            uid = self._accounts.allocate_uid()
            attempt.log.note("ROLLBACK: # UID allocation has no rollback")
            logger.info("Allocated SFTP UID %d for tenant %s", uid, name)

            await self._perform(
                attempt,
                STEP_CREATE_ACCOUNT,
                lambda: self._accounts.create_account(name, attempt.email, creds.sftp_password, uid),
                DeleteOsAccount(name),
                f"create SFTP user {creds.sftp_username} (UID {uid})",
            )

        await self._perform(
            attempt,
            STEP_CREATE_CHROOT,
            lambda: self._accounts.create_chroot(name),
            RemoveChroot(name),
            f"create chroot {self._settings.paths.sftp_dir / name}",
        )

        git = self._git
        if git is None:
            for step in (STEP_CREATE_REPO, STEP_CREATE_REMOTE_USER, STEP_ADD_COLLABORATOR, STEP_INITIALIZE_REPO):
                self._skip(attempt, step, "Git hosting is not configured")
        else:
            await self._perform(
                attempt,
                STEP_CREATE_REPO,
                lambda: git.repo_create(name, f"CDN content for tenant {name}"),
                DeleteRemoteRepo(name),
                f"create Gitea repository {name}",
            )
            await self._perform(
                attempt,
                STEP_CREATE_REMOTE_USER,
                lambda: git.user_create(creds.gitea_username, attempt.email, creds.gitea_password),
                DeleteRemoteUser(creds.gitea_username),
                f"create Gitea user {creds.gitea_username}",
            )
            await self._perform(
                attempt,
                STEP_ADD_COLLABORATOR,
                lambda: git.collaborator_add(name, creds.gitea_username, "read"),
                RemoveCollaborator(name, creds.gitea_username),
                f"add {creds.gitea_username} as read-only collaborator",
            )
            await self._perform(
                attempt,
                STEP_INITIALIZE_REPO,
                lambda: git.repo_initialize(
                    name, messages.repository_readme(self._settings, name, attempt.email)
                ),
                None,
                f"commit README to {name}",
            )

        await self._perform(
            attempt,
            STEP_LINK_PUBLIC_DIR,
            lambda: self._accounts.link_public_dir(name),
            RemoveWebLink(name),
            f"link {self._settings.paths.www_dir / name}",
        )

        tenant = Tenant.new(
            name=name,
            email=attempt.email,
            sftp_uid=uid,
            quota_kb=attempt.quota_kb,
            created_at=created_at,
        )
        await self._perform(
            attempt,
            STEP_PERSIST_RECORD,
            lambda: self._store.write(tenant),
            None,
            f"write {self._settings.paths.tenant_db_dir / name / 'config.yaml'}",
        )
        return tenant

    def _begin(self, attempt: _Attempt, step: SagaStep) -> None:
        attempt.current = step
        logger.info("Step %d/%d: %s", step.number, TOTAL_STEPS, step.description)

    def _skip(self, attempt: _Attempt, step: SagaStep, reason: str) -> None:
        attempt.current = step
        attempt.skipped.append(step.number)
        attempt.log.note(f"SKIPPED: Step {step.number} ({step.description}): {reason}")
        logger.info("Step %d/%d: %s skipped (%s)", step.number, TOTAL_STEPS, step.description, reason)

    async def _perform(
        self,
        attempt: _Attempt,
        step: SagaStep,
        action: Callable[[], Any],
        compensation: Compensation | None,
        dry_run_message: str,
    ) -> None:
        """Record the step's compensation, then run it.

        The compensation is withdrawn only when the step raises
        ResourceExistsError, i.e. its target predates this attempt.
        """
        self._begin(attempt, step)
        if attempt.dry_run:
            logger.info("[DRY RUN] Would %s", dry_run_message)
            return

        if compensation is not None:
            attempt.log.record(compensation)
        else:
            attempt.log.note(f"ROLLBACK: # Step {step.number} ({step.description}) has no rollback")

        try:
            outcome = action()
            if inspect.isawaitable(outcome):
                await outcome
        except ResourceExistsError:
            if compensation is not None:
                attempt.log.withdraw(compensation)
            raise

    async def _rollback(self, attempt: _Attempt, cause: Exception) -> NoReturn:
        """Undo every started step and raise ProvisioningError."""
        step = attempt.current
        logger.error(
            "Failed at step %d/%d (%s) for tenant %s: %s",
            step.number,
            TOTAL_STEPS,
            step.description,
            attempt.name,
            cause,
        )
        attempt.log.note(f"FAILED: Step {step.number} ({step.description}): {cause}")

        failures: list[str] = []
        for compensation in attempt.log.pending():
            try:
                await self._executor.execute(compensation)
            except Exception as e:
                logger.error("Rollback action failed: %s: %s", compensation.describe(), e)
                failures.append(f"{compensation.describe()}: {e}")

        # A failed step 9 may leave a partial record behind.
        if self._store.exists(attempt.name):
            sweep = DeletePersistedRecord(attempt.name)
            try:
                await self._executor.execute(sweep)
            except PersistenceError as e:
                logger.error("Rollback action failed: %s: %s", sweep.describe(), e)
                failures.append(f"{sweep.describe()}: {e}")

        attempt.log.mark_rolled_back(failures)
        raise ProvisioningError(
            tenant=attempt.name,
            step=step.number,
            step_description=step.description,
            cause=cause,
            compensation_failures=failures,
            rollback_log=str(attempt.log.path) if attempt.log.path else None,
        ) from cause

    async def _notify_welcome(self, attempt: _Attempt, result: ProvisioningResult) -> None:
        """Step 10: best-effort, never rolls back."""
        if self._notifier is None:
            self._skip(attempt, STEP_NOTIFY, "notifier is not configured")
            return

        self._begin(attempt, STEP_NOTIFY)
        if attempt.dry_run:
            logger.info("[DRY RUN] Would send welcome email to: %s", attempt.email)
            return

        message = messages.welcome(self._settings, result.tenant, attempt.credentials)
        try:
            result.notification = await self._notifier.notify(
                Recipient.for_tenant(attempt.name, attempt.email),
                message.subject,
                message.body,
                severity=message.severity,
                dedup_key=message.dedup_key,
                cooldown=0,
            )
        except NotificationError as e:
            logger.warning("Welcome email for %s was not sent: %s", attempt.name, e)
            result.notification_error = str(e)
            attempt.log.note(f"WARNING: Step {STEP_NOTIFY.number} ({STEP_NOTIFY.description}): {e}")
