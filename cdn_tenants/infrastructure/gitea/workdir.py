# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Local Git working directories that track tenant uploads."""

import logging
from typing import TYPE_CHECKING

from cdn_tenants.domains.tenant.schemas import TenantPaths
from cdn_tenants.infrastructure.accounts.commands import CommandRunner

if TYPE_CHECKING:
    from cdn_tenants.core.config.settings import Settings

logger = logging.getLogger(__name__)


class GitWorkdir:
    """Git configuration of ``{git_dir}/{tenant}``."""

    def __init__(self, settings: "Settings", runner: CommandRunner | None = None) -> None:
        self._settings = settings
        self._runner = runner or CommandRunner()

    def set_identity(self, name: str, git_name: str, git_email: str) -> bool:
        """Set the commit author identity of a tenant's working directory.

        Returns:
            True if updated, False if the working directory does not exist.

        Raises:
            CommandError: If ``git config`` fails.
        """
        work_dir = TenantPaths.for_tenant(name, self._settings).git_work_dir
        if not work_dir.is_dir():
            logger.warning("Git work directory not found: %s", work_dir)
            return False

        self._runner.run(["git", "-C", str(work_dir), "config", "user.name", git_name])
        self._runner.run(["git", "-C", str(work_dir), "config", "user.email", git_email])
        logger.info("Updated Git config for: %s", name)
        return True
