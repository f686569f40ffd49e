# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Credentials generated for a new tenant."""

import secrets
import string
from dataclasses import dataclass, field

PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*"
PASSWORD_LENGTH = 20


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    """Generate a random password from PASSWORD_ALPHABET."""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


@dataclass
class Credentials:
    """Initial passwords, shown once in the welcome message and CLI output.

    Attributes:
        sftp_username: OS account name.
        sftp_password: OS account password.
        gitea_username: Gitea account name.
        gitea_password: Gitea account password.
    """

    sftp_username: str
    gitea_username: str
    sftp_password: str = field(default_factory=generate_password, repr=False)
    gitea_password: str = field(default_factory=generate_password, repr=False)
