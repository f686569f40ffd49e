# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Gitea integration: REST client and local working directories."""

from cdn_tenants.infrastructure.gitea.client import GiteaClient, GiteaError
from cdn_tenants.infrastructure.gitea.workdir import GitWorkdir

__all__ = [
    "GitWorkdir",
    "GiteaClient",
    "GiteaError",
]
