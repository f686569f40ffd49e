# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Interfaces the provisioning saga and lifecycle service depend on.

The concrete implementations are SftpAccountManager, GiteaClient and
NotificationService. Tests substitute in-memory fakes.
"""

from pathlib import Path
from typing import Any, Protocol

from cdn_tenants.infrastructure.notifications.service import (
    NotificationResult,
    Recipient,
    Severity,
)


class AccountProvisioner(Protocol):
    """OS account, chroot and web link management (synchronous)."""

    def allocate_uid(self) -> int: ...

    def create_account(self, name: str, email: str, password: str, uid: int) -> None: ...

    def create_chroot(self, name: str) -> None: ...

    def link_public_dir(self, name: str) -> Path: ...

    def install_authorized_key(self, name: str, public_key: str) -> Path: ...

    def lock(self, name: str) -> bool: ...

    def unlock(self, name: str) -> bool: ...

    def delete_account(self, name: str) -> bool: ...

    def delete_chroot(self, name: str) -> bool: ...

    def unlink_public_dir(self, name: str) -> bool: ...

    def usage_kb(self, name: str) -> int: ...


class GitHostingAdapter(Protocol):
    """Remote Git hosting. Deletes return False when the target is already gone."""

    def repo_url(self, repo: str) -> str: ...

    async def repo_create(self, repo: str, description: str = "") -> Any: ...

    async def repo_delete(self, repo: str) -> bool: ...

    async def repo_initialize(self, repo: str, readme: str) -> None: ...

    async def user_create(self, username: str, email: str, password: str) -> Any: ...

    async def user_delete(self, username: str) -> bool: ...

    async def collaborator_add(self, repo: str, username: str, permission: str = "read") -> None: ...

    async def collaborator_remove(self, repo: str, username: str) -> bool: ...


class Notifier(Protocol):
    """Best-effort message delivery."""

    async def notify(
        self,
        recipient: Recipient,
        subject: str,
        body: str,
        severity: Severity = Severity.INFO,
        dedup_key: str = "general",
        cooldown: int | None = None,
        cc_admin: bool = True,
    ) -> NotificationResult: ...
