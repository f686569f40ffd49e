# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Typed compensating actions for the provisioning saga.

Each committed creation step records one of these values. They are plain
data: the CompensationExecutor is the only code that turns them into side
effects, so a rollback log can be printed, persisted and inspected without
executing anything.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cdn_tenants.domains.provisioning.ports import AccountProvisioner, GitHostingAdapter
    from cdn_tenants.infrastructure.store.tenant_store import TenantStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeleteOsAccount:
    tenant: str

    def describe(self) -> str:
        return f"delete SFTP account of '{self.tenant}'"


@dataclass(frozen=True)
class RemoveChroot:
    tenant: str

    def describe(self) -> str:
        return f"remove SFTP home of '{self.tenant}'"


@dataclass(frozen=True)
class DeleteRemoteRepo:
    repo: str

    def describe(self) -> str:
        return f"delete Gitea repository '{self.repo}'"


@dataclass(frozen=True)
class DeleteRemoteUser:
    username: str

    def describe(self) -> str:
        return f"delete Gitea user '{self.username}'"


@dataclass(frozen=True)
class RemoveCollaborator:
    repo: str
    username: str

    def describe(self) -> str:
        return f"remove collaborator '{self.username}' from '{self.repo}'"


@dataclass(frozen=True)
class RemoveWebLink:
    tenant: str

    def describe(self) -> str:
        return f"remove web link of '{self.tenant}'"


@dataclass(frozen=True)
class DeletePersistedRecord:
    tenant: str

    def describe(self) -> str:
        return f"delete tenant record of '{self.tenant}'"


Compensation = (
    DeleteOsAccount
    | RemoveChroot
    | DeleteRemoteRepo
    | DeleteRemoteUser
    | RemoveCollaborator
    | RemoveWebLink
    | DeletePersistedRecord
)


class CompensationExecutor:
    """Runs compensations against the account layer, Git host and store."""

    def __init__(
        self,
        accounts: "AccountProvisioner",
        store: "TenantStore",
        git: "GitHostingAdapter | None" = None,
    ) -> None:
        self._accounts = accounts
        self._store = store
        self._git = git

    async def execute(self, compensation: Compensation) -> bool:
        """Undo one step.

        Returns:
            True if something was removed, False if it was already gone.

        Raises:
            Exception: Whatever the underlying call raises.
        """
        logger.warning("Executing rollback: %s", compensation.describe())

        match compensation:
            case DeleteOsAccount(tenant=tenant):
                return self._accounts.delete_account(tenant)
            case RemoveChroot(tenant=tenant):
                return self._accounts.delete_chroot(tenant)
            case RemoveWebLink(tenant=tenant):
                return self._accounts.unlink_public_dir(tenant)
            case DeletePersistedRecord(tenant=tenant):
                return self._store.delete(tenant)
            case DeleteRemoteRepo(repo=repo):
                return await self._require_git().repo_delete(repo)
            case DeleteRemoteUser(username=username):
                return await self._require_git().user_delete(username)
            case RemoveCollaborator(repo=repo, username=username):
                return await self._require_git().collaborator_remove(repo, username)
            case _:
                raise TypeError(f"Unknown compensation: {compensation!r}")

    def _require_git(self) -> "GitHostingAdapter":
        if self._git is None:
            raise RuntimeError("Git hosting compensation recorded without a Git adapter")
        return self._git
