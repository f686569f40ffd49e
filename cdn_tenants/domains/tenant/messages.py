# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Subjects and bodies of tenant lifecycle notifications."""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from cdn_tenants.infrastructure.notifications.service import Severity
from cdn_tenants.infrastructure.notifications.templates import render_body
from cdn_tenants.utils.datetime import format_iso

if TYPE_CHECKING:
    from cdn_tenants.core.config.settings import Settings
    from cdn_tenants.domains.provisioning.credentials import Credentials
    from cdn_tenants.domains.tenant.schemas import Tenant


@dataclass(frozen=True)
class Message:
    """A notification ready to hand to the notifier.

    Attributes:
        subject: Subject without the severity prefix.
        body: Plain text body.
        severity: Severity shown in the subject.
        dedup_key: Alert type used for rate limiting.
    """

    subject: str
    body: str
    severity: Severity
    dedup_key: str


def _support(settings: "Settings") -> str:
    return settings.notifications.admin_email or "your CDN administrator"


def repository_readme(settings: "Settings", name: str, email: str) -> str:
    """README committed to a new tenant repository."""
    return (
        f"# {name}\n\n"
        f"CDN content repository for tenant `{name}` ({email}).\n\n"
        f"Files uploaded via SFTP to `{settings.sftp.upload_subdir}/` are tracked here and "
        f"served at https://{settings.cdn_domain}/{name}/\n\n"
        "This repository is read-only for the tenant.\n"
    )


def welcome(settings: "Settings", tenant: "Tenant", credentials: "Credentials") -> Message:
    """Account-created message, including the initial credentials."""
    sections = {
        "Account Details": (
            f"Tenant Name: {tenant.name}\n"
            f"Email: {tenant.email}\n"
            f"Status: Active\n"
            f"Created: {format_iso(tenant.created_at)}"
        ),
        "SFTP Access": (
            f"Host: {settings.sftp.host}\n"
            f"Port: {settings.sftp.port}\n"
            f"Username: {credentials.sftp_username}\n"
            f"Password: {credentials.sftp_password}\n"
            f"Upload your files to the '{settings.sftp.upload_subdir}' directory via SFTP."
        ),
        "Gitea Web Portal": (
            f"URL: https://{settings.gitea.domain}\n"
            f"Username: {credentials.gitea_username}\n"
            f"Password: {credentials.gitea_password}\n"
            "Access: READ-ONLY (view your content history)"
        ),
        "CDN Delivery": f"https://{settings.cdn_domain}/{tenant.name}/",
        "Storage Quota": f"Allocated: {tenant.quota_mb} MB",
        "Support": f"Contact {_support(settings)} with any questions.",
    }
    subject = "Welcome to CDN - Account Created"
    return Message(
        subject=subject,
        body=render_body(settings, Severity.INFO, subject, sections, tenant=tenant.name),
        severity=Severity.INFO,
        dedup_key="welcome",
    )


def disabled(settings: "Settings", name: str) -> Message:
    subject = "Account Disabled"
    sections = {
        "Status": (
            f"Your CDN tenant account '{name}' has been disabled.\n"
            "SFTP access: LOCKED\n"
            "Gitea access: READ-ONLY (unchanged)\n"
            "CDN content: STILL AVAILABLE"
        ),
        "Next Steps": f"Contact {_support(settings)} to re-enable the account.",
    }
    return Message(
        subject=subject,
        body=render_body(settings, Severity.WARNING, subject, sections, tenant=name),
        severity=Severity.WARNING,
        dedup_key="tenant_disabled",
    )


def enabled(settings: "Settings", name: str) -> Message:
    subject = "Account Re-enabled"
    sections = {
        "Status": (
            f"Your CDN tenant account '{name}' has been re-enabled.\n"
            "SFTP access: UNLOCKED\n"
            "Gitea access: READ-ONLY\n"
            "CDN content: AVAILABLE"
        ),
    }
    return Message(
        subject=subject,
        body=render_body(settings, Severity.INFO, subject, sections, tenant=name),
        severity=Severity.INFO,
        dedup_key="tenant_enabled",
    )


def deleted(settings: "Settings", name: str) -> Message:
    subject = "Account Deletion Notice"
    sections = {
        "Status": (
            f"Your CDN tenant account '{name}' has been scheduled for deletion.\n"
            "All data will be permanently removed:\n"
            "- SFTP access and uploaded files\n"
            "- Gitea user and repository\n"
            "- CDN content\n"
            "This action cannot be undone."
        ),
        "Questions": f"Contact {_support(settings)} immediately if you did not request this.",
    }
    return Message(
        subject=subject,
        body=render_body(settings, Severity.CRITICAL, subject, sections, tenant=name),
        severity=Severity.CRITICAL,
        dedup_key="tenant_deleted",
    )


def quota_updated(settings: "Settings", name: str, old_kb: int, new_kb: int) -> Message:
    subject = "Storage Quota Updated"
    sections = {
        "Quota": f"Previous: {old_kb // 1024} MB\nNew: {new_kb // 1024} MB",
    }
    return Message(
        subject=subject,
        body=render_body(settings, Severity.INFO, subject, sections, tenant=name),
        severity=Severity.INFO,
        dedup_key="quota_updated",
    )


def email_updated(settings: "Settings", name: str, old_email: str, new_email: str) -> Message:
    subject = "Contact Email Updated"
    sections = {
        "Contact Email": f"Previous: {old_email}\nNew: {new_email}",
        "Security": f"If you did not request this change, contact {_support(settings)}.",
    }
    return Message(
        subject=subject,
        body=render_body(settings, Severity.INFO, subject, sections, tenant=name),
        severity=Severity.INFO,
        dedup_key="email_updated",
    )


def ssh_key_rotated(settings: "Settings", name: str, fingerprint: str) -> Message:
    subject = "SSH Key Updated"
    sections = {
        "New Key": f"Fingerprint: {fingerprint}",
        "Security": (
            "The previous key no longer grants SFTP access. If you did not request "
            f"this change, contact {_support(settings)}."
        ),
    }
    return Message(
        subject=subject,
        body=render_body(settings, Severity.INFO, subject, sections, tenant=name),
        severity=Severity.INFO,
        dedup_key="ssh_key_rotated",
    )
