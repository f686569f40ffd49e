# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Thin wrapper around the OS account and Git command line tools."""

import logging
import shlex
import subprocess
from collections.abc import Sequence

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Raised when an external command exits non-zero or cannot start.

    Attributes:
        args_list: The command line.
        returncode: Exit status (None if the command could not be started).
        stderr: Captured standard error.
    """

    def __init__(self, args_list: Sequence[str], returncode: int | None, stderr: str) -> None:
        self.args_list = list(args_list)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Command '{shlex.join(self.args_list)}' failed "
            f"(exit {returncode}): {stderr or 'no output'}"
        )


class CommandRunner:
    """Runs external commands synchronously and raises on failure."""

    def run(
        self,
        args: Sequence[str],
        input_text: str | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run a command.

        Args:
            args: Command line, no shell involved.
            input_text: Optional text fed to stdin. Never logged.

        Returns:
            The completed process.

        Raises:
            CommandError: On a non-zero exit or if the binary is missing.
        """
        logger.debug("Running: %s", shlex.join(args))
        try:
            result = subprocess.run(
                list(args),
                input=input_text,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise CommandError(args, None, str(e)) from e

        if result.returncode != 0:
            raise CommandError(args, result.returncode, result.stderr.strip())
        return result
