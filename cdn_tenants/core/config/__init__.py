# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for the CDN tenant manager.

This package provides centralized configuration management:
- Settings: Pydantic-based settings loaded from environment variables
- YAML helpers: Strict loading and atomic writing of YAML records

Example:
    >>> from cdn_tenants.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.paths.tenant_db_dir)
    /etc/cdn/tenants
"""

from cdn_tenants.core.config.settings import (
    CdnPathsSettings,
    GiteaSettings,
    NotificationSettings,
    Settings,
    SftpSettings,
    SmtpSettings,
    TenantSettings,
    clear_settings_cache,
    get_settings,
)
from cdn_tenants.core.config.yaml_loader import YAMLLoadError, dump_yaml, load_yaml

__all__ = [
    # Settings
    "Settings",
    "CdnPathsSettings",
    "SftpSettings",
    "TenantSettings",
    "GiteaSettings",
    "SmtpSettings",
    "NotificationSettings",
    "get_settings",
    "clear_settings_cache",
    # YAML
    "YAMLLoadError",
    "load_yaml",
    "dump_yaml",
]
