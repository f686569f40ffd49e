# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Input validation for tenant operations.

Pure functions with no I/O. Each one returns the normalized value on
success and raises a ValidationError subclass otherwise. They are called at
every lifecycle entry point, not only on creation.
"""

import base64
import binascii
import hashlib
import re

from cdn_tenants.core.exceptions import (
    InvalidEmailError,
    InvalidPortError,
    InvalidQuotaError,
    InvalidSshKeyError,
    InvalidTenantNameError,
    NameViolation,
)

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 20

RESERVED_NAMES = frozenset(
    {"admin", "root", "system", "test", "www", "git", "cdn", "api", "backup"}
)

_NAME_PATTERN = re.compile(r"[a-z0-9_-]+")
_CONSECUTIVE_SEPARATORS = re.compile(r"[-_]{2,}")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_DIGITS = re.compile(r"[0-9]+")

SSH_KEY_TYPES = frozenset(
    {
        "ssh-ed25519",
        "ssh-rsa",
        "ssh-dss",
        "ecdsa-sha2-nistp256",
        "ecdsa-sha2-nistp384",
        "ecdsa-sha2-nistp521",
        "sk-ssh-ed25519@openssh.com",
        "sk-ecdsa-sha2-nistp256@openssh.com",
    }
)


def validate_name(name: str) -> str:
    """Validate a tenant name.

    Rules: 3-20 characters, lowercase letters, digits, ``-`` and ``_``
    only, no separator at either end or twice in a row, not reserved.

    Args:
        name: Candidate tenant name.

    Returns:
        The name unchanged.

    Raises:
        InvalidTenantNameError: With the violated rule.
    """
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise InvalidTenantNameError(
            name,
            NameViolation.INVALID_LENGTH,
            f"Tenant name '{name}' must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters",
        )

    if not _NAME_PATTERN.fullmatch(name):
        raise InvalidTenantNameError(
            name,
            NameViolation.INVALID_CHARSET,
            f"Tenant name '{name}' contains invalid characters "
            "(allowed: lowercase letters, numbers, '-', '_')",
        )

    if name[0] in "-_" or name[-1] in "-_":
        raise InvalidTenantNameError(
            name,
            NameViolation.INVALID_BOUNDARY,
            "Tenant name cannot start or end with hyphen or underscore",
        )

    if _CONSECUTIVE_SEPARATORS.search(name):
        raise InvalidTenantNameError(
            name,
            NameViolation.INVALID_BOUNDARY,
            "Tenant name cannot contain consecutive hyphens or underscores",
        )

    if name in RESERVED_NAMES:
        raise InvalidTenantNameError(
            name,
            NameViolation.RESERVED,
            f"Tenant name '{name}' is reserved",
        )

    return name


def validate_email(address: str) -> str:
    """Validate a contact email address.

    Raises:
        InvalidEmailError: If the address is not RFC-shaped.
    """
    if not _EMAIL_PATTERN.fullmatch(address):
        raise InvalidEmailError(address)
    return address


def validate_quota(value: int | str) -> int:
    """Validate a quota in KB.

    Accepts ints and strings of digits (CLI input).

    Raises:
        InvalidQuotaError: If the value is not a positive integer.
    """
    if isinstance(value, bool):
        raise InvalidQuotaError(value)
    if isinstance(value, str):
        if not _DIGITS.fullmatch(value):
            raise InvalidQuotaError(value)
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        raise InvalidQuotaError(value)
    return value


def validate_port(value: int | str) -> int:
    """Validate a TCP port number.

    Raises:
        InvalidPortError: If the value is not an integer in 1..65535.
    """
    if isinstance(value, bool):
        raise InvalidPortError(value)
    if isinstance(value, str):
        if not _DIGITS.fullmatch(value):
            raise InvalidPortError(value)
        value = int(value)
    if not isinstance(value, int) or not 1 <= value <= 65535:
        raise InvalidPortError(value)
    return value


def ssh_key_fingerprint(public_key: str) -> str:
    """Validate an OpenSSH public key line and compute its fingerprint.

    The fingerprint matches ``ssh-keygen -lf``: ``SHA256:`` followed by the
    unpadded base64 of the SHA-256 digest of the key blob.

    Args:
        public_key: Line of the form ``<type> <base64 blob> [comment]``.

    Returns:
        Fingerprint string.

    Raises:
        InvalidSshKeyError: If the line is not a well-formed public key.
    """
    parts = public_key.strip().split()
    if len(parts) < 2:
        raise InvalidSshKeyError("expected '<type> <key> [comment]'")

    key_type, blob_b64 = parts[0], parts[1]
    if key_type not in SSH_KEY_TYPES:
        raise InvalidSshKeyError(f"unsupported key type '{key_type}'")

    try:
        blob = base64.b64decode(blob_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidSshKeyError("key data is not valid base64") from e

    # The blob starts with a length-prefixed copy of the key type.
    if len(blob) < 4:
        raise InvalidSshKeyError("key data is truncated")
    type_len = int.from_bytes(blob[:4], "big")
    if blob[4 : 4 + type_len] != key_type.encode("ascii"):
        raise InvalidSshKeyError("key data does not match key type")

    digest = hashlib.sha256(blob).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")
