# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""OS account infrastructure for tenant SFTP access.

Account naming convention:
    sftp_{tenant}

Example:
    sftp_acme (home /srv/cdn/sftp/acme, uploads in /srv/cdn/sftp/acme/uploads)
"""

from cdn_tenants.infrastructure.accounts.commands import CommandError, CommandRunner
from cdn_tenants.infrastructure.accounts.sftp_account import (
    AccountCreationError,
    SftpAccountManager,
)

__all__ = [
    "AccountCreationError",
    "CommandError",
    "CommandRunner",
    "SftpAccountManager",
]
