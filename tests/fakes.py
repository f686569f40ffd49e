# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-memory fakes of the OS account layer, the Git host and the notifier."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cdn_tenants.core.exceptions import UidPoolExhaustedError
from cdn_tenants.infrastructure.accounts.sftp_account import AccountCreationError, AccountExistsError
from cdn_tenants.infrastructure.gitea.client import GiteaConflictError
from cdn_tenants.infrastructure.notifications.service import (
    NotificationResult,
    NotificationStatus,
    Recipient,
    Severity,
)


class _FailureMixin:
    """Raise a configured exception when a named method is called.

    ``fail_on`` raises before the method changes anything, ``fail_after``
    raises after its change was applied.
    """

    def _init_failures(self) -> None:
        self.fail_on: dict[str, Exception] = {}
        self.fail_after: dict[str, Exception] = {}
        self.calls: list[str] = []

    def _call(self, method: str) -> None:
        self.calls.append(method)
        if method in self.fail_on:
            raise self.fail_on[method]

    def _applied(self, method: str) -> None:
        if method in self.fail_after:
            raise self.fail_after[method]


class FakeAccounts(_FailureMixin):
    """In-memory AccountProvisioner."""

    def __init__(self, uid_start: int = 5000, uid_end: int = 5009) -> None:
        self._init_failures()
        self.uid_start = uid_start
        self.uid_end = uid_end
        self.accounts: dict[str, int] = {}
        self.passwords: dict[str, str] = {}
        self.chroots: set[str] = set()
        self.links: set[str] = set()
        self.locked: set[str] = set()
        self.keys: dict[str, str] = {}
        self.usage: dict[str, int] = {}

    @property
    def used_uids(self) -> set[int]:
        return set(self.accounts.values())

    def allocate_uid(self) -> int:
        self._call("allocate_uid")
        for uid in range(self.uid_start, self.uid_end + 1):
            if uid not in self.used_uids:
                return uid
        raise UidPoolExhaustedError(self.uid_start, self.uid_end)

    def create_account(self, name: str, email: str, password: str, uid: int) -> None:
        self._call("create_account")
        if name in self.accounts:
            raise AccountExistsError(name, "useradd: user already exists")
        self.accounts[name] = uid
        self._applied("create_account")
        self.passwords[name] = password

    def create_chroot(self, name: str) -> None:
        self._call("create_chroot")
        if name in self.chroots:
            raise AccountExistsError(name, "home directory already exists")
        self.chroots.add(name)
        self._applied("create_chroot")

    def link_public_dir(self, name: str) -> Path:
        self._call("link_public_dir")
        self.links.add(name)
        self._applied("link_public_dir")
        return Path("/srv/cdn/www") / name

    def install_authorized_key(self, name: str, public_key: str) -> Path:
        self._call("install_authorized_key")
        if name not in self.accounts:
            raise AccountCreationError(name, "SFTP account does not exist")
        self.keys[name] = public_key
        return Path("/srv/cdn/sftp") / name / ".ssh" / "authorized_keys"

    def lock(self, name: str) -> bool:
        self._call("lock")
        if name not in self.accounts:
            return False
        self.locked.add(name)
        return True

    def unlock(self, name: str) -> bool:
        self._call("unlock")
        if name not in self.accounts:
            return False
        self.locked.discard(name)
        return True

    def delete_account(self, name: str) -> bool:
        self._call("delete_account")
        self.locked.discard(name)
        return self.accounts.pop(name, None) is not None

    def delete_chroot(self, name: str) -> bool:
        self._call("delete_chroot")
        if name not in self.chroots:
            return False
        self.chroots.discard(name)
        return True

    def unlink_public_dir(self, name: str) -> bool:
        self._call("unlink_public_dir")
        if name not in self.links:
            return False
        self.links.discard(name)
        return True

    def usage_kb(self, name: str) -> int:
        return self.usage.get(name, 0)


class FakeGit(_FailureMixin):
    """In-memory GitHostingAdapter."""

    def __init__(self) -> None:
        self._init_failures()
        self.repos: set[str] = set()
        self.readmes: dict[str, str] = {}
        self.users: dict[str, str] = {}
        self.collaborators: dict[tuple[str, str], str] = {}
        self.closed = False

    def repo_url(self, repo: str) -> str:
        return f"https://git.example.com/cdnadmin/{repo}"

    async def repo_create(self, repo: str, description: str = "") -> dict[str, Any]:
        self._call("repo_create")
        if repo in self.repos:
            raise GiteaConflictError(f"create repository cdnadmin/{repo} failed: HTTP 409", status_code=409)
        self.repos.add(repo)
        self._applied("repo_create")
        return {"name": repo, "description": description}

    async def repo_delete(self, repo: str) -> bool:
        self._call("repo_delete")
        if repo not in self.repos:
            return False
        self.repos.discard(repo)
        self.readmes.pop(repo, None)
        return True

    async def repo_initialize(self, repo: str, readme: str) -> None:
        self._call("repo_initialize")
        self.readmes[repo] = readme

    async def user_create(self, username: str, email: str, password: str) -> dict[str, Any]:
        self._call("user_create")
        if username in self.users:
            raise GiteaConflictError(f"create user {username} failed: HTTP 422", status_code=422)
        self.users[username] = email
        self._applied("user_create")
        return {"login": username}

    async def user_delete(self, username: str) -> bool:
        self._call("user_delete")
        return self.users.pop(username, None) is not None

    async def collaborator_add(self, repo: str, username: str, permission: str = "read") -> None:
        self._call("collaborator_add")
        self.collaborators[(repo, username)] = permission
        self._applied("collaborator_add")

    async def collaborator_remove(self, repo: str, username: str) -> bool:
        self._call("collaborator_remove")
        return self.collaborators.pop((repo, username), None) is not None

    async def close(self) -> None:
        self.closed = True


@dataclass
class SentNotice:
    """A notification captured by FakeNotifier."""

    recipient: Recipient
    subject: str
    body: str
    severity: Severity
    dedup_key: str
    cooldown: int | None
    cc_admin: bool = True


class FakeNotifier:
    """Notifier that records every message."""

    def __init__(self) -> None:
        self.sent: list[SentNotice] = []
        self.error: Exception | None = None

    async def notify(
        self,
        recipient: Recipient,
        subject: str,
        body: str,
        severity: Severity = Severity.INFO,
        dedup_key: str = "general",
        cooldown: int | None = None,
        cc_admin: bool = True,
    ) -> NotificationResult:
        if self.error is not None:
            raise self.error
        self.sent.append(SentNotice(recipient, subject, body, severity, dedup_key, cooldown, cc_admin))
        return NotificationResult(
            status=NotificationStatus.SENT,
            recipient=recipient.address,
            subject=subject,
        )

    @property
    def subjects(self) -> list[str]:
        return [notice.subject for notice in self.sent]

    @property
    def severities(self) -> list[Severity]:
        return [notice.severity for notice in self.sent]
