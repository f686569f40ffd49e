"""CDN Tenant Manager.

Provisioning and lifecycle management for tenants of a shared multi-tenant
CDN host: SFTP upload accounts, chrooted homes, Gitea content repositories
and persisted tenant records.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
