# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SFTP upload account and chroot lifecycle management.

This module creates, locks and removes the OS-level upload account of a
tenant together with its chroot home. Each tenant gets:

    Account:  sftp_{tenant}  (group sftpusers, shell /bin/false)
    UID:      first free value in [SFTP_UID_START, SFTP_UID_END]
    Home:     {sftp_dir}/{tenant}            owned by root, mode 0755
    Uploads:  {sftp_dir}/{tenant}/uploads    owned by the account, mode 0755
    Web link: {www_dir}/{tenant} -> uploads

OpenSSH's ChrootDirectory requires the chroot root to be owned by root and
not writable by anyone else; only the nested uploads directory may be
writable by the tenant.
"""

import grp
import logging
import os
import pwd
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from cdn_tenants.core.exceptions import CdnTenantError, ResourceExistsError, UidPoolExhaustedError
from cdn_tenants.domains.tenant.schemas import TenantPaths, sftp_username_for
from cdn_tenants.infrastructure.accounts.commands import CommandError, CommandRunner

if TYPE_CHECKING:
    from cdn_tenants.core.config.settings import Settings

logger = logging.getLogger(__name__)

CHROOT_MODE = 0o755
UPLOAD_MODE = 0o755
SSH_DIR_MODE = 0o700
AUTHORIZED_KEYS_MODE = 0o600

# useradd: username already in use
USERADD_NAME_IN_USE = 9


class AccountCreationError(CdnTenantError):
    """Raised when an account or its chroot cannot be created."""

    def __init__(self, tenant: str, reason: str) -> None:
        self.tenant = tenant
        self.reason = reason
        super().__init__(
            f"Failed to provision SFTP account for tenant '{tenant}': {reason}",
            {"tenant": tenant},
        )


class AccountExistsError(AccountCreationError, ResourceExistsError):
    """Raised when the account or its home is already present; nothing was changed."""


class SftpAccountManager:
    """Manages tenant SFTP accounts using the shadow-utils command line tools.

    Example:
        manager = SftpAccountManager(settings)

        uid = manager.allocate_uid()
        manager.create_account("acme", "ops@acme.io", password, uid)
        manager.create_chroot("acme")
        manager.link_public_dir("acme")

        manager.lock("acme")
        manager.unlock("acme")

        manager.unlink_public_dir("acme")
        manager.delete_chroot("acme")
        manager.delete_account("acme")
    """

    def __init__(
        self,
        settings: "Settings",
        runner: CommandRunner | None = None,
    ) -> None:
        """Initialize the account manager.

        Args:
            settings: Application settings (SFTP pool, group, directories).
            runner: Command runner. If None, runs real commands.
        """
        self._settings = settings
        self._sftp = settings.sftp
        self._runner = runner or CommandRunner()

    def _paths(self, name: str) -> TenantPaths:
        return TenantPaths.for_tenant(name, self._settings)

    # =========================================================================
    # User Database Lookups
    # =========================================================================

    def uid_in_use(self, uid: int) -> bool:
        """Check whether any OS account is bound to ``uid``."""
        try:
            pwd.getpwuid(uid)
        except KeyError:
            return False
        return True

    def account_exists(self, name: str) -> bool:
        """Check whether the SFTP account of tenant ``name`` exists."""
        try:
            pwd.getpwnam(sftp_username_for(name))
        except KeyError:
            return False
        return True

    def _group_exists(self) -> bool:
        try:
            grp.getgrnam(self._sftp.group)
        except KeyError:
            return False
        return True

    def allocate_uid(self) -> int:
        """Find the first UID of the pool not bound to an OS account.

        Read-only: the UID is claimed only when create_account() runs.

        Returns:
            A free UID.

        Raises:
            UidPoolExhaustedError: If every UID of the range is taken.
        """
        for uid in range(self._sftp.uid_start, self._sftp.uid_end + 1):
            if not self.uid_in_use(uid):
                return uid
        raise UidPoolExhaustedError(self._sftp.uid_start, self._sftp.uid_end)

    # =========================================================================
    # Creation
    # =========================================================================

    def create_account(self, name: str, email: str, password: str, uid: int) -> None:
        """Create the locked-shell OS account of a tenant.

        Creates the shared SFTP group first if it is missing. If chpasswd
        fails the account is left behind for the caller to remove.

        Raises:
            AccountExistsError: If useradd reports the username as taken.
            AccountCreationError: If any other command fails.
        """
        username = sftp_username_for(name)
        home = self._paths(name).sftp_home

        try:
            if not self._group_exists():
                self._runner.run(["groupadd", self._sftp.group])
                logger.info("Created SFTP group: %s", self._sftp.group)

            self._runner.run(
                [
                    "useradd",
                    "-M",
                    "-u", str(uid),
                    "-g", self._sftp.group,
                    "-d", str(home),
                    "-s", self._sftp.shell,
                    "-c", f"SFTP user for {name} ({email})",
                    username,
                ]
            )
            self._runner.run(["chpasswd"], input_text=f"{username}:{password}\n")
        except CommandError as e:
            if e.args_list[0] == "useradd" and e.returncode == USERADD_NAME_IN_USE:
                raise AccountExistsError(name, str(e)) from e
            raise AccountCreationError(name, str(e)) from e

        logger.info("Created SFTP user: %s (UID: %d)", username, uid)

    def create_chroot(self, name: str) -> None:
        """Build the chroot home and its writable uploads directory.

        Raises:
            AccountExistsError: If the home already exists.
            AccountCreationError: If the account or group is missing or a
                filesystem call fails (a partly built home is left behind).
        """
        paths = self._paths(name)
        username = sftp_username_for(name)

        if paths.sftp_home.exists():
            raise AccountExistsError(name, f"home directory already exists: {paths.sftp_home}")

        try:
            account = pwd.getpwnam(username)
            gid = grp.getgrnam(self._sftp.group).gr_gid
        except KeyError as e:
            raise AccountCreationError(name, f"account or group missing: {e}") from e

        try:
            paths.sftp_home.mkdir(parents=True)
            os.chown(paths.sftp_home, self._sftp.chroot_owner_uid, self._sftp.chroot_owner_gid)
            os.chmod(paths.sftp_home, CHROOT_MODE)

            paths.upload_dir.mkdir()
            os.chown(paths.upload_dir, account.pw_uid, gid)
            os.chmod(paths.upload_dir, UPLOAD_MODE)
        except OSError as e:
            raise AccountCreationError(name, f"cannot build chroot: {e}") from e

        logger.info("Setup chroot jail for: %s", name)

    def link_public_dir(self, name: str) -> Path:
        """Point ``{www_dir}/{name}`` at the tenant's uploads directory.

        Replaces an existing link.

        Returns:
            Path of the link.

        Raises:
            OSError: If the link cannot be created.
        """
        paths = self._paths(name)
        paths.www_link.parent.mkdir(parents=True, exist_ok=True)
        if paths.www_link.is_symlink():
            paths.www_link.unlink()
        paths.www_link.symlink_to(paths.upload_dir, target_is_directory=True)
        logger.info("Created www symlink: %s -> %s", paths.www_link, paths.upload_dir)
        return paths.www_link

    def install_authorized_key(self, name: str, public_key: str) -> Path:
        """Replace the tenant's authorized_keys with ``public_key``.

        Returns:
            Path of the authorized_keys file.

        Raises:
            AccountCreationError: If the account is missing or a filesystem
                call fails.
        """
        paths = self._paths(name)
        try:
            account = pwd.getpwnam(sftp_username_for(name))
        except KeyError as e:
            raise AccountCreationError(name, "SFTP account does not exist") from e

        try:
            paths.ssh_dir.mkdir(parents=True, exist_ok=True)
            paths.authorized_keys.write_text(public_key.strip() + "\n", encoding="utf-8")
            for path, mode in (
                (paths.ssh_dir, SSH_DIR_MODE),
                (paths.authorized_keys, AUTHORIZED_KEYS_MODE),
            ):
                os.chown(path, account.pw_uid, account.pw_gid)
                os.chmod(path, mode)
        except OSError as e:
            raise AccountCreationError(name, f"cannot install SSH key: {e}") from e

        logger.info("Installed SSH key for tenant: %s", name)
        return paths.authorized_keys

    # =========================================================================
    # Lock / Unlock
    # =========================================================================

    def lock(self, name: str) -> bool:
        """Lock the tenant's password login.

        Returns:
            True if locked, False if the account does not exist.

        Raises:
            CommandError: If ``passwd -l`` fails.
        """
        return self._set_locked(name, locked=True)

    def unlock(self, name: str) -> bool:
        """Unlock the tenant's password login.

        Returns:
            True if unlocked, False if the account does not exist.

        Raises:
            CommandError: If ``passwd -u`` fails.
        """
        return self._set_locked(name, locked=False)

    def _set_locked(self, name: str, locked: bool) -> bool:
        username = sftp_username_for(name)
        if not self.account_exists(name):
            logger.warning("SFTP user not found: %s", username)
            return False

        self._runner.run(["passwd", "-l" if locked else "-u", username])
        logger.info("%s SFTP account: %s", "Locked" if locked else "Unlocked", username)
        return True

    # =========================================================================
    # Teardown (idempotent)
    # =========================================================================

    def delete_account(self, name: str) -> bool:
        """Delete the tenant's OS account.

        Returns:
            True if deleted, False if it did not exist.

        Raises:
            CommandError: If ``userdel`` fails.
        """
        username = sftp_username_for(name)
        if not self.account_exists(name):
            logger.warning("SFTP user not found: %s", username)
            return False

        self._runner.run(["userdel", username])
        logger.info("Deleted SFTP user: %s", username)
        return True

    def delete_chroot(self, name: str) -> bool:
        """Remove the chroot home and everything below it.

        Returns:
            True if removed, False if it did not exist.

        Raises:
            OSError: If the tree exists but cannot be removed.
        """
        home = self._paths(name).sftp_home
        if not home.exists():
            return False
        shutil.rmtree(home)
        logger.info("Removed SFTP directory: %s", home)
        return True

    def unlink_public_dir(self, name: str) -> bool:
        """Remove the web-exposed symlink.

        Returns:
            True if removed, False if it did not exist.
        """
        link = self._paths(name).www_link
        if not link.is_symlink() and not link.exists():
            return False
        link.unlink()
        logger.info("Removed www symlink: %s", link)
        return True

    # =========================================================================
    # Usage
    # =========================================================================

    def usage_kb(self, name: str) -> int:
        """Bytes stored under the uploads directory, in KB (symlinks not followed)."""
        upload_dir = self._paths(name).upload_dir
        if not upload_dir.is_dir():
            return 0

        total = 0
        for root, _dirs, files in os.walk(upload_dir):
            for filename in files:
                try:
                    total += os.lstat(os.path.join(root, filename)).st_size
                except OSError:
                    continue
        return total // 1024
