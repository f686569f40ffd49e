# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant schemas.

This module defines the persisted Tenant record, its status enum and the
filesystem paths derived from a tenant name. Paths are never stored; they
are recomputed from the configured base directories.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from cdn_tenants.utils.datetime import ensure_utc, format_iso

if TYPE_CHECKING:
    from cdn_tenants.core.config.settings import Settings

SFTP_USERNAME_PREFIX = "sftp_"
GITEA_USERNAME_PREFIX = "tenant_"

StatusFilter = Literal["all", "active", "disabled"]


class TenantStatus(str, Enum):
    """Lifecycle status of a tenant."""

    ACTIVE = "active"
    DISABLED = "disabled"


# Fields that may change after creation. Everything else is fixed at create.
MUTABLE_FIELDS = frozenset({"email", "status", "quota_kb"})


class Tenant(BaseModel):
    """A provisioned CDN tenant.

    Attributes:
        name: Unique tenant name; immutable.
        email: Contact address.
        status: active or disabled.
        sftp_username: OS account name, ``sftp_<name>``.
        sftp_uid: OS account UID from the SFTP pool.
        gitea_username: Gitea account name, ``tenant_<name>``.
        quota_kb: Storage quota in KB.
        created_at: Creation time (UTC).
        updated_at: Last mutation time (UTC).
    """

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    name: str
    email: str
    status: TenantStatus = TenantStatus.ACTIVE
    sftp_username: str
    sftp_uid: int
    gitea_username: str
    quota_kb: int = Field(gt=0)
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_serializer("created_at", "updated_at")
    def _serialize_timestamp(self, value: datetime) -> str:
        return format_iso(value)

    @field_serializer("status")
    def _serialize_status(self, value: TenantStatus) -> str:
        return value.value

    @property
    def quota_mb(self) -> int:
        """Quota in whole MB."""
        return self.quota_kb // 1024

    @property
    def is_active(self) -> bool:
        """Check whether the tenant is active."""
        return self.status == TenantStatus.ACTIVE

    @classmethod
    def new(
        cls,
        name: str,
        email: str,
        sftp_uid: int,
        quota_kb: int,
        created_at: datetime,
    ) -> "Tenant":
        """Build the record of a freshly provisioned tenant."""
        return cls(
            name=name,
            email=email,
            status=TenantStatus.ACTIVE,
            sftp_username=sftp_username_for(name),
            sftp_uid=sftp_uid,
            gitea_username=gitea_username_for(name),
            quota_kb=quota_kb,
            created_at=created_at,
            updated_at=created_at,
        )


def sftp_username_for(name: str) -> str:
    """OS account name of a tenant."""
    return f"{SFTP_USERNAME_PREFIX}{name}"


def gitea_username_for(name: str) -> str:
    """Gitea account name of a tenant."""
    return f"{GITEA_USERNAME_PREFIX}{name}"


@dataclass(frozen=True)
class TenantPaths:
    """Filesystem locations derived from a tenant name.

    Attributes:
        record_dir: Directory of the persisted record (its presence = existence).
        record_file: The record itself.
        sftp_home: Chroot root, owned by root.
        upload_dir: Writable directory inside the chroot.
        ssh_dir: ``.ssh`` directory inside the chroot.
        authorized_keys: Tenant's authorized_keys file.
        git_work_dir: Git working directory tracking uploads.
        www_link: Web-exposed symlink pointing at upload_dir.
    """

    record_dir: Path
    record_file: Path
    sftp_home: Path
    upload_dir: Path
    ssh_dir: Path
    authorized_keys: Path
    git_work_dir: Path
    www_link: Path

    @classmethod
    def for_tenant(cls, name: str, settings: "Settings") -> "TenantPaths":
        """Compute the paths of ``name`` from the configured base directories."""
        paths = settings.paths
        home = paths.sftp_dir / name
        return cls(
            record_dir=paths.tenant_db_dir / name,
            record_file=paths.tenant_db_dir / name / "config.yaml",
            sftp_home=home,
            upload_dir=home / settings.sftp.upload_subdir,
            ssh_dir=home / ".ssh",
            authorized_keys=home / ".ssh" / "authorized_keys",
            git_work_dir=paths.git_dir / name,
            www_link=paths.www_dir / name,
        )
