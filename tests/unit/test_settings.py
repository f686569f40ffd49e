# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for application settings."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError as PydanticValidationError

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


class TestCdnPathsSettings:
    """Tests for CdnPathsSettings."""

    def test_default_values(self) -> None:
        """Test the standard host layout."""
        settings = CdnPathsSettings()

        assert settings.tenant_db_dir == Path("/etc/cdn/tenants")
        assert settings.sftp_dir == Path("/srv/cdn/sftp")
        assert settings.www_dir == Path("/srv/cdn/www")
        assert settings.lock_dir == Path("/run/lock/cdn")

    def test_loads_from_environment(self, tmp_path: Path) -> None:
        with patch.dict(os.environ, {"CDN_TENANT_DB_DIR": str(tmp_path)}, clear=False):
            settings = CdnPathsSettings()

        assert settings.tenant_db_dir == tmp_path


class TestSftpSettings:
    """Tests for SftpSettings."""

    def test_default_values(self) -> None:
        settings = SftpSettings()

        assert settings.uid_start == 5000
        assert settings.uid_end == 9999
        assert settings.group == "sftpusers"
        assert settings.shell == "/bin/false"
        assert settings.port == 22
        assert settings.upload_subdir == "uploads"

    def test_loads_from_environment(self) -> None:
        env = {"SFTP_UID_START": "6000", "SFTP_UID_END": "6100", "SFTP_PORT": "2222"}

        with patch.dict(os.environ, env, clear=False):
            settings = SftpSettings()

        assert settings.uid_start == 6000
        assert settings.uid_end == 6100
        assert settings.port == 2222

    def test_rejects_inverted_uid_range(self) -> None:
        with pytest.raises(PydanticValidationError, match="SFTP_UID_START"):
            SftpSettings(uid_start=6000, uid_end=5999)

    def test_rejects_system_uid_range(self) -> None:
        with pytest.raises(PydanticValidationError, match="system UIDs"):
            SftpSettings(uid_start=500, uid_end=999)

    def test_rejects_invalid_port(self) -> None:
        with pytest.raises(PydanticValidationError, match="Invalid port"):
            SftpSettings(port=70000)


class TestGiteaSettings:
    """Tests for GiteaSettings."""

    def test_auth_headers_use_token(self) -> None:
        settings = GiteaSettings(admin_token="abc123")  # type: ignore[arg-type]

        assert settings.auth_headers == {"Authorization": "token abc123"}

    def test_token_is_not_exposed_in_repr(self) -> None:
        settings = GiteaSettings(admin_token="abc123")  # type: ignore[arg-type]

        assert "abc123" not in repr(settings)


class TestSmtpSettings:
    """Tests for SmtpSettings."""

    def test_not_configured_by_default(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            assert SmtpSettings().configured is False

    def test_configured_with_host_and_sender(self) -> None:
        settings = SmtpSettings(host="smtp.example.com", from_email="cdn@example.com")

        assert settings.configured is True


class TestNotificationSettings:
    """Tests for NotificationSettings."""

    def test_admin_email_from_alert_email(self) -> None:
        """Test the ALERT_EMAIL alias used by the host's other tooling."""
        with patch.dict(os.environ, {"ALERT_EMAIL": "ops@cdn.example.com"}, clear=False):
            settings = NotificationSettings()

        assert settings.admin_email == "ops@cdn.example.com"

    def test_default_retention_and_cooldown(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = NotificationSettings()

        assert settings.admin_email is None
        assert settings.queue_retention_hours == 24
        assert settings.default_cooldown_seconds == 3600


class TestSettings:
    """Tests for the aggregated Settings."""

    def test_default_values(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings()

        assert settings.environment == "production"
        assert settings.dry_run is False
        assert settings.is_production is True
        assert settings.tenant == TenantSettings()
        assert settings.tenant.default_quota_kb == 102400

    def test_dry_run_from_environment(self) -> None:
        with patch.dict(os.environ, {"DRY_RUN": "true"}, clear=False):
            settings = Settings()

        assert settings.dry_run is True

    def test_get_settings_is_cached(self) -> None:
        clear_settings_cache()
        try:
            assert get_settings() is get_settings()
        finally:
            clear_settings_cache()

    def test_clear_settings_cache_reloads(self) -> None:
        clear_settings_cache()
        try:
            first = get_settings()
            clear_settings_cache()
            assert get_settings() is not first
        finally:
            clear_settings_cache()
