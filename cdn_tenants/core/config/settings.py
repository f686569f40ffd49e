# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for the CDN
tenant manager. Settings are loaded from environment variables (and an
optional .env file) with defaults matching the standard host layout.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings().

Example:
    >>> from cdn_tenants.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.sftp.uid_start)
    5000
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Self

from pydantic import AliasChoices, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cdn_tenants.core.exceptions import InvalidPortError
from cdn_tenants.domains.tenant.validation import validate_port


class CdnPathsSettings(BaseSettings):
    """Base directories of the CDN host.

    Attributes:
        tenant_db_dir: Root of the tenant record store (one directory per tenant).
        sftp_dir: Root of the chrooted SFTP homes.
        git_dir: Root of the per-tenant Git working directories.
        www_dir: Directory holding the web-exposed tenant symlinks.
        log_dir: Operations log directory (rollback logs, operations log).
        lock_dir: Directory for advisory lock files.
    """

    model_config = SettingsConfigDict(
        env_prefix="CDN_",
        extra="ignore",
    )

    tenant_db_dir: Path = Path("/etc/cdn/tenants")
    sftp_dir: Path = Path("/srv/cdn/sftp")
    git_dir: Path = Path("/srv/cdn/git")
    www_dir: Path = Path("/srv/cdn/www")
    log_dir: Path = Path("/var/log/cdn")
    lock_dir: Path = Path("/run/lock/cdn")


class SftpSettings(BaseSettings):
    """SFTP upload account configuration.

    UIDs are allocated from [uid_start, uid_end] to avoid conflicts with
    system users.

    Attributes:
        uid_start: First UID of the allocation pool.
        uid_end: Last UID of the allocation pool (inclusive).
        group: Shared group of all SFTP accounts.
        shell: Login shell assigned to SFTP accounts.
        host: Public SFTP host name, used in welcome mail.
        port: Public SFTP port, used in welcome mail.
        upload_subdir: Writable directory inside the chroot.
        chroot_owner_uid: Owner UID of the chroot root (must be privileged).
        chroot_owner_gid: Owner GID of the chroot root.
    """

    model_config = SettingsConfigDict(
        env_prefix="SFTP_",
        extra="ignore",
    )

    uid_start: int = 5000
    uid_end: int = 9999
    group: str = "sftpusers"
    shell: str = "/bin/false"
    host: str = "your-cdn-server.com"
    port: int = 22
    upload_subdir: str = "uploads"
    chroot_owner_uid: int = 0
    chroot_owner_gid: int = 0

    @field_validator("port")
    @classmethod
    def check_port(cls, value: int) -> int:
        """Reject ports outside 1..65535."""
        try:
            return validate_port(value)
        except InvalidPortError as e:
            raise ValueError(str(e)) from e

    @model_validator(mode="after")
    def check_uid_range(self) -> Self:
        """Validate the UID pool bounds.

        Raises:
            ValueError: If the range is empty or overlaps system UIDs.
        """
        if self.uid_start < 1000:
            raise ValueError("SFTP_UID_START must not overlap system UIDs (< 1000)")
        if self.uid_start > self.uid_end:
            raise ValueError("SFTP_UID_START must not exceed SFTP_UID_END")
        return self


class TenantSettings(BaseSettings):
    """Tenant defaults.

    Attributes:
        default_quota_kb: Quota assigned when create is called without one (100 MB).
    """

    model_config = SettingsConfigDict(
        env_prefix="TENANT_",
        extra="ignore",
    )

    default_quota_kb: int = 102400


class GiteaSettings(BaseSettings):
    """Gitea server configuration.

    Repositories are owned by the admin account; tenants get read-only
    collaborator access.

    Attributes:
        enabled: Whether Git hosting steps run at all.
        base_url: Gitea API base URL.
        domain: Public Gitea domain used in links.
        admin_user: Account that owns all tenant repositories.
        admin_token: API token of the admin account.
        timeout: Request timeout in seconds.
        max_retries: Attempts per request on transport errors and 5xx.
        retry_backoff: Base backoff in seconds between attempts.
        default_branch: Branch used for repository initialization.
    """

    model_config = SettingsConfigDict(
        env_prefix="GITEA_",
        extra="ignore",
    )

    enabled: bool = True
    base_url: str = "http://localhost:3000/api/v1"
    domain: str = "git.your-cdn-server.com"
    admin_user: str = "cdnadmin"
    admin_token: SecretStr = SecretStr("")
    timeout: float = 30.0
    max_retries: int = 3
    retry_backoff: float = 1.0
    default_branch: str = "main"

    @property
    def auth_headers(self) -> dict[str, str]:
        """Build authentication headers for API requests."""
        return {"Authorization": f"token {self.admin_token.get_secret_value()}"}


class SmtpSettings(BaseSettings):
    """SMTP configuration for outgoing notifications.

    Attributes:
        host: SMTP server hostname.
        port: SMTP server port.
        username: SMTP authentication username.
        password: SMTP authentication password.
        use_tls: Use STARTTLS.
        from_email: Sender email address.
        from_name: Sender display name.
    """

    model_config = SettingsConfigDict(
        env_prefix="SMTP_",
        extra="ignore",
    )

    host: str | None = None
    port: int = 587
    username: str | None = None
    password: SecretStr | None = None
    use_tls: bool = True
    from_email: str | None = None
    from_name: str = "CDN Tenant Manager"

    @property
    def configured(self) -> bool:
        """Check whether enough is set to attempt delivery."""
        return bool(self.host and self.from_email)


class NotificationSettings(BaseSettings):
    """Notification queueing and rate limiting.

    Attributes:
        admin_email: Administrator address, CCed on tenant mail.
        queue_dir: Directory of queued (undelivered) messages.
        rate_limit_dir: Directory of per-recipient rate limit markers.
        fallback_log: Log file receiving a copy of every undelivered message.
        queue_retention_hours: Age after which queued messages are dropped.
        default_cooldown_seconds: Cooldown used when the caller passes none.
    """

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        extra="ignore",
        populate_by_name=True,
    )

    admin_email: str | None = Field(
        default=None,
        validation_alias=AliasChoices("ALERT_EMAIL", "NOTIFY_ADMIN_EMAIL"),
    )
    queue_dir: Path = Path("/var/cache/cdn/email-queue")
    rate_limit_dir: Path = Path("/var/cache/cdn/email-rate-limits")
    fallback_log: Path = Path("/var/log/cdn/email-fallback.log")
    queue_retention_hours: int = 24
    default_cooldown_seconds: int = 3600


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        dry_run: Log every side-effecting step instead of performing it.
        cdn_domain: Public CDN domain used in links.
        paths: Host directory layout.
        sftp: SFTP account settings.
        tenant: Tenant defaults.
        gitea: Gitea settings.
        smtp: SMTP settings.
        notifications: Queue and rate limit settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "production"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    dry_run: bool = False
    cdn_domain: str = "cdn.your-cdn-server.com"

    # Subsettings - loaded with their own env prefixes
    paths: CdnPathsSettings = Field(default_factory=CdnPathsSettings)
    sftp: SftpSettings = Field(default_factory=SftpSettings)
    tenant: TenantSettings = Field(default_factory=TenantSettings)
    gitea: GiteaSettings = Field(default_factory=GiteaSettings)
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
