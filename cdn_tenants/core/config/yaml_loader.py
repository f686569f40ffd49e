# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""YAML file helpers for persisted records.

Tenant records are small YAML mappings. Reads are strict (the root must be
a mapping) and writes are atomic: content goes to a temporary file in the
target directory, gets its permissions, then replaces the target.

Example:
    >>> from pathlib import Path
    >>> from cdn_tenants.core.config.yaml_loader import dump_yaml, load_yaml
    >>> dump_yaml(Path("/tmp/acme.yaml"), {"name": "acme"}, mode=0o600)
    >>> load_yaml(Path("/tmp/acme.yaml"))
    {'name': 'acme'}
"""

import os
import tempfile
from pathlib import Path
from typing import Any

import yaml


class YAMLLoadError(Exception):
    """Raised when YAML file cannot be loaded or parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        """Initialize YAMLLoadError.

        Args:
            path: Path to the YAML file that failed to load.
            reason: Description of why the file failed to load.
        """
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load YAML file '{path}': {reason}")


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dictionary.

    Args:
        path: Path to the YAML file to load.

    Returns:
        Dictionary containing the parsed YAML contents.
        Empty dict if file is empty.

    Raises:
        YAMLLoadError: If the file doesn't exist, cannot be read,
            or contains invalid YAML.
    """
    if not path.is_file():
        raise YAMLLoadError(path, "File does not exist")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise YAMLLoadError(path, f"Cannot read file: {e}") from e

    try:
        parsed = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise YAMLLoadError(path, f"Invalid YAML syntax: {e}") from e

    # Handle empty files
    if parsed is None:
        return {}

    if not isinstance(parsed, dict):
        raise YAMLLoadError(
            path, f"YAML root must be a mapping, got {type(parsed).__name__}"
        )

    return parsed


def dump_yaml(
    path: Path,
    data: dict[str, Any],
    mode: int = 0o600,
    header: str | None = None,
) -> None:
    """Atomically write a mapping to a YAML file.

    Args:
        path: Destination file. Its parent directory must exist.
        data: Mapping to serialize.
        mode: Permission bits applied before the file becomes visible.
        header: Optional comment block written above the document.

    Raises:
        OSError: If the file cannot be written or moved into place.
    """
    content = yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
    if header:
        comment = "".join(f"# {line}\n" for line in header.splitlines())
        content = f"{comment}\n{content}"

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
