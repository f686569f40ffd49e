# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant domain.

This package provides the Tenant record, the paths derived from a tenant
name and the pure validators used at every lifecycle entry point. The
lifecycle service lives in ``cdn_tenants.domains.tenant.service``.
"""

from cdn_tenants.domains.tenant.schemas import (
    MUTABLE_FIELDS,
    StatusFilter,
    Tenant,
    TenantPaths,
    TenantStatus,
    gitea_username_for,
    sftp_username_for,
)
from cdn_tenants.domains.tenant.validation import (
    RESERVED_NAMES,
    ssh_key_fingerprint,
    validate_email,
    validate_name,
    validate_port,
    validate_quota,
)

__all__ = [
    # Schemas
    "Tenant",
    "TenantStatus",
    "TenantPaths",
    "StatusFilter",
    "MUTABLE_FIELDS",
    "sftp_username_for",
    "gitea_username_for",
    # Validation
    "RESERVED_NAMES",
    "validate_name",
    "validate_email",
    "validate_quota",
    "validate_port",
    "ssh_key_fingerprint",
]
