# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant record store.

One directory per tenant under the tenant database root, holding a single
``config.yaml`` record. The directory's presence is the existence check:
a tenant exists if and only if ``<tenant_db_dir>/<name>/`` exists.

Records are written atomically with owner-only permissions (directory
0700, file 0600). The store is not transactional across fields: callers
rewrite the whole record or use update_field(), which also bumps
``updated_at``.

Example:
    >>> store = TenantStore(settings)
    >>> store.write(tenant)
    >>> store.update_field("acme", "quota_kb", 204800)
    >>> [t.name for t in store.list("active")]
    ['acme']
"""

import logging
import os
import shutil
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from cdn_tenants.core.config.yaml_loader import YAMLLoadError, dump_yaml, load_yaml
from cdn_tenants.core.exceptions import (
    ImmutableFieldError,
    PersistenceError,
    TenantNotFoundError,
)
from cdn_tenants.domains.tenant.schemas import (
    MUTABLE_FIELDS,
    StatusFilter,
    Tenant,
    TenantPaths,
)
from cdn_tenants.utils.datetime import format_iso, next_timestamp

if TYPE_CHECKING:
    from cdn_tenants.core.config.settings import Settings

logger = logging.getLogger(__name__)

RECORD_DIR_MODE = 0o700
RECORD_FILE_MODE = 0o600


class TenantStore:
    """Reads and writes tenant records on disk.

    The store exclusively owns the persisted record. It performs no locking;
    callers serialize mutations per tenant name.

    Attributes:
        root: Tenant database root directory.
    """

    def __init__(self, settings: "Settings") -> None:
        """Initialize the store.

        Args:
            settings: Application settings (paths are read from it).
        """
        self._settings = settings
        self.root: Path = settings.paths.tenant_db_dir

    def _paths(self, name: str) -> TenantPaths:
        return TenantPaths.for_tenant(name, self._settings)

    def exists(self, name: str) -> bool:
        """Check whether a tenant record directory exists."""
        return self._paths(name).record_dir.is_dir()

    def read(self, name: str) -> Tenant:
        """Read a tenant record.

        Args:
            name: Tenant name.

        Returns:
            The persisted Tenant.

        Raises:
            TenantNotFoundError: If the tenant does not exist.
            PersistenceError: If the record is missing, unreadable or invalid.
        """
        paths = self._paths(name)
        if not paths.record_dir.is_dir():
            raise TenantNotFoundError(name)

        try:
            data = load_yaml(paths.record_file)
        except YAMLLoadError as e:
            raise PersistenceError(name, e.reason) from e

        try:
            return Tenant.model_validate(data)
        except PydanticValidationError as e:
            raise PersistenceError(name, f"invalid record: {e}") from e

    def write(self, tenant: Tenant) -> None:
        """Create or fully rewrite a tenant record.

        Args:
            tenant: Record to persist.

        Raises:
            PersistenceError: On any I/O failure.
        """
        paths = self._paths(tenant.name)
        try:
            paths.record_dir.mkdir(parents=True, exist_ok=True)
            os.chmod(paths.record_dir, RECORD_DIR_MODE)
            dump_yaml(
                paths.record_file,
                tenant.model_dump(),
                mode=RECORD_FILE_MODE,
                header=(
                    f"Tenant configuration: {tenant.name}\n"
                    f"Written: {format_iso(tenant.updated_at)}"
                ),
            )
        except OSError as e:
            raise PersistenceError(tenant.name, f"cannot write record: {e}") from e

        logger.debug("Wrote record for tenant: %s", tenant.name)

    def update_field(self, name: str, field: str, value: Any) -> Tenant:
        """Update one mutable field and bump ``updated_at``.

        Args:
            name: Tenant name.
            field: One of the mutable fields (email, status, quota_kb).
            value: New value.

        Returns:
            The updated Tenant.

        Raises:
            ImmutableFieldError: If the field may not change after creation.
            TenantNotFoundError: If the tenant does not exist.
            PersistenceError: On I/O failure or if the value is invalid.
        """
        if field not in MUTABLE_FIELDS:
            raise ImmutableFieldError(name, field)

        current = self.read(name)
        data = current.model_dump()
        data[field] = value
        data["updated_at"] = next_timestamp(current.updated_at)

        try:
            updated = Tenant.model_validate(data)
        except PydanticValidationError as e:
            raise PersistenceError(name, f"invalid value for '{field}': {e}") from e

        self.write(updated)
        logger.debug("Updated %s for tenant: %s", field, name)
        return updated

    def touch(self, name: str) -> Tenant:
        """Bump ``updated_at`` without changing any other field.

        Raises:
            TenantNotFoundError: If the tenant does not exist.
            PersistenceError: On I/O failure.
        """
        current = self.read(name)
        updated = current.model_copy(
            update={"updated_at": next_timestamp(current.updated_at)}
        )
        self.write(updated)
        return updated

    def delete(self, name: str) -> bool:
        """Remove a tenant record directory.

        Returns:
            True if a record was removed, False if none existed.

        Raises:
            PersistenceError: If the directory exists but cannot be removed.
        """
        record_dir = self._paths(name).record_dir
        if not record_dir.exists():
            return False
        try:
            shutil.rmtree(record_dir)
        except OSError as e:
            raise PersistenceError(name, f"cannot remove record: {e}") from e
        logger.info("Removed tenant record: %s", name)
        return True

    def list(self, status_filter: StatusFilter = "all") -> Iterator[Tenant]:
        """Lazily enumerate tenants, sorted by name.

        Unreadable records are skipped with a warning. The generator is not
        restartable but the method may be called again at any time.

        Args:
            status_filter: all, active or disabled.

        Yields:
            Tenants matching the filter.
        """
        if not self.root.is_dir():
            logger.warning("No tenants found (database directory does not exist)")
            return

        for entry in sorted(self.root.iterdir()):
            if not entry.is_dir():
                continue
            try:
                tenant = self.read(entry.name)
            except PersistenceError as e:
                logger.warning("Skipping unreadable tenant record %s: %s", entry.name, e)
                continue
            if status_filter != "all" and tenant.status.value != status_filter:
                continue
            yield tenant
