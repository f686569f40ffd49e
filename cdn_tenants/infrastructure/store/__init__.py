# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Persistent tenant record store (one YAML record per tenant directory)."""

from cdn_tenants.infrastructure.store.tenant_store import TenantStore

__all__ = ["TenantStore"]
