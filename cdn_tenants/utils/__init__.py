# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for the CDN tenant manager.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime operations
"""

from cdn_tenants.utils.datetime import (
    ensure_utc,
    file_stamp,
    format_iso,
    next_timestamp,
    parse_iso,
    seconds_since,
    utc_now,
)
from cdn_tenants.utils.logging import bind_context, clear_context, setup_logging

__all__ = [
    # Logging
    "setup_logging",
    "bind_context",
    "clear_context",
    # Datetime
    "utc_now",
    "ensure_utc",
    "next_timestamp",
    "format_iso",
    "parse_iso",
    "file_stamp",
    "seconds_since",
]
