# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Plain text notification bodies."""

from collections.abc import Mapping
from typing import TYPE_CHECKING

from cdn_tenants.utils.datetime import utc_now

if TYPE_CHECKING:
    from cdn_tenants.core.config.settings import Settings
    from cdn_tenants.infrastructure.notifications.service import Severity

RULE = "=" * 72

SEVERITY_ICONS = {
    "INFO": "[i]",
    "WARNING": "[!]",
    "ERROR": "[x]",
    "CRITICAL": "[!!]",
}


def render_body(
    settings: "Settings",
    severity: "Severity",
    subject: str,
    sections: Mapping[str, str],
    tenant: str | None = None,
) -> str:
    """Render a notification body.

    Args:
        settings: Application settings (domains, admin contact).
        severity: Message severity.
        subject: Headline, without the ``[CDN LEVEL]`` prefix.
        sections: Ordered titled paragraphs.
        tenant: Tenant the message is about, if any.

    Returns:
        The body text.
    """
    level = severity.value
    lines = [
        f"Hello {tenant} team," if tenant else "CDN System Administrator,",
        "",
        RULE,
        f"{SEVERITY_ICONS.get(level, '')} {level}: {subject}".strip(),
        RULE,
        "",
    ]

    for title, text in sections.items():
        lines.extend([f"{title}:", text, ""])

    lines.append(RULE)
    if tenant:
        lines.extend(
            [
                f"Tenant: {tenant}",
                f"CDN URL: https://{settings.cdn_domain}/{tenant}/",
                f"Git Portal: https://{settings.gitea.domain}/{settings.gitea.admin_user}/{tenant}",
            ]
        )
    if settings.notifications.admin_email:
        lines.append(f"Support Contact: {settings.notifications.admin_email}")
    lines.extend(
        [
            f"Timestamp: {utc_now().strftime('%Y-%m-%d %H:%M:%S UTC')}",
            RULE,
            "",
            "This is an automated message from the Multi-Tenant CDN system.",
            "Please do not reply directly to this email.",
        ]
    )
    return "\n".join(lines)
