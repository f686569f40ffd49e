# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for the CDN tenant manager.

All timestamps are timezone-aware UTC. Records store them as ISO 8601
strings with a trailing ``Z``; file names use a compact local-free stamp.

Usage:
------
    from cdn_tenants.utils.datetime import utc_now

    created_at = utc_now()
"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware in UTC.

    Naive datetimes are assumed to be UTC already.

    Args:
        dt: Datetime to normalize.

    Returns:
        Timezone-aware UTC datetime.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def next_timestamp(previous: datetime) -> datetime:
    """Get a timestamp strictly later than ``previous``.

    Used for ``updated_at`` so that every mutation moves the clock forward
    even when two writes land within the same clock tick.

    Args:
        previous: Last recorded timestamp.

    Returns:
        max(now, previous + 1 microsecond) in UTC.
    """
    return max(utc_now(), ensure_utc(previous) + timedelta(microseconds=1))


def format_iso(dt: datetime) -> str:
    """Format datetime as ISO 8601 string with Z suffix.

    Args:
        dt: Datetime to format.

    Returns:
        ISO 8601 formatted string (e.g. "2024-12-21T10:30:00.123456Z").
    """
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def parse_iso(iso_string: str) -> datetime:
    """Parse ISO 8601 string to timezone-aware UTC datetime.

    Args:
        iso_string: ISO 8601 formatted string ("Z" or offset suffix).

    Returns:
        Timezone-aware UTC datetime.

    Raises:
        ValueError: If string cannot be parsed.
    """
    if iso_string.endswith("Z"):
        iso_string = iso_string[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(iso_string))


def file_stamp(dt: datetime | None = None) -> str:
    """Format a timestamp for use in file names (``YYYYmmdd-HHMMSS``)."""
    return ensure_utc(dt or utc_now()).strftime("%Y%m%d-%H%M%S")


def seconds_since(dt: datetime) -> float:
    """Seconds elapsed since ``dt`` (negative if ``dt`` is in the future)."""
    return (utc_now() - ensure_utc(dt)).total_seconds()
