# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Command line interface of the CDN tenant manager.

Usage:
    cdn-tenant create <name> <email> [quota_kb]
    cdn-tenant delete <name> --confirm-delete
    cdn-tenant info <name>
    cdn-tenant list [all|active|disabled]
    cdn-tenant enable <name>
    cdn-tenant disable <name>
    cdn-tenant update-email <name> <email>
    cdn-tenant update-quota <name> <quota_kb>
    cdn-tenant rotate-ssh-key <name> <public_key>
    cdn-tenant update-git-user <name> <git_name> <git_email>
    cdn-tenant process-email-queue
    cdn-tenant --dry-run <command> ...

Exit codes:
    0 success, 1 other failure, 2 validation error, 3 precondition error,
    4 resource exhausted, 5 provisioning failure, 6 partial deletion.
"""

import argparse
import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cdn_tenants import __version__
from cdn_tenants.core.config import get_settings
from cdn_tenants.core.exceptions import (
    CdnTenantError,
    PreconditionError,
    ProvisioningError,
    ResourceExhaustedError,
    ValidationError,
)
from cdn_tenants.domains.tenant.service import TenantService, build_tenant_service
from cdn_tenants.infrastructure.notifications import get_notification_service
from cdn_tenants.utils.datetime import format_iso
from cdn_tenants.utils.logging import bind_context, clear_context, setup_logging

if TYPE_CHECKING:
    from cdn_tenants.core.config.settings import Settings

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_VALIDATION = 2
EXIT_PRECONDITION = 3
EXIT_RESOURCE_EXHAUSTED = 4
EXIT_PROVISIONING = 5
EXIT_PARTIAL_DELETE = 6
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="cdn-tenant",
        description="Provision and manage tenants of the multi-tenant CDN",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s create acme ops@acme.io 204800
  %(prog)s --dry-run delete acme --confirm-delete
  %(prog)s list disabled
  %(prog)s rotate-ssh-key acme "ssh-ed25519 AAAA... ops@acme"
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log every side-effecting step instead of performing it",
    )

    commands = parser.add_subparsers(dest="command", required=True, metavar="<command>")

    create = commands.add_parser("create", help="Provision a new tenant")
    create.add_argument("name", help="Tenant name")
    create.add_argument("email", help="Contact email")
    create.add_argument("quota_kb", nargs="?", default=None, help="Storage quota in KB")

    delete = commands.add_parser("delete", help="Delete a tenant and all of its data")
    delete.add_argument("name", help="Tenant name")
    delete.add_argument(
        "--confirm-delete",
        action="store_true",
        help="Required: confirm permanent deletion",
    )

    info = commands.add_parser("info", help="Show tenant details")
    info.add_argument("name", help="Tenant name")

    list_ = commands.add_parser("list", help="List tenants")
    list_.add_argument(
        "status",
        nargs="?",
        default="all",
        help="Status filter: all, active or disabled (default: all)",
    )

    for command, text in (("enable", "Re-enable a tenant"), ("disable", "Disable a tenant")):
        sub = commands.add_parser(command, help=text)
        sub.add_argument("name", help="Tenant name")

    update_email = commands.add_parser("update-email", help="Change the contact email")
    update_email.add_argument("name", help="Tenant name")
    update_email.add_argument("email", help="New contact email")

    update_quota = commands.add_parser("update-quota", help="Change the storage quota")
    update_quota.add_argument("name", help="Tenant name")
    update_quota.add_argument("quota_kb", help="New quota in KB")

    rotate = commands.add_parser("rotate-ssh-key", help="Replace the authorized SSH key")
    rotate.add_argument("name", help="Tenant name")
    rotate.add_argument("public_key", help="OpenSSH public key line")

    git_user = commands.add_parser("update-git-user", help="Set the Git commit identity")
    git_user.add_argument("name", help="Tenant name")
    git_user.add_argument("git_name", help="Commit author name")
    git_user.add_argument("git_email", help="Commit author email")

    commands.add_parser("process-email-queue", help="Retry queued notification emails")

    return parser


def exit_code_for(error: CdnTenantError) -> int:
    """Map an error to the process exit code."""
    match error:
        case ValidationError():
            return EXIT_VALIDATION
        case PreconditionError():
            return EXIT_PRECONDITION
        case ResourceExhaustedError():
            return EXIT_RESOURCE_EXHAUSTED
        case ProvisioningError():
            return EXIT_PROVISIONING
        case _:
            return EXIT_FAILURE


# =============================================================================
# Commands
# =============================================================================


async def _create(service: TenantService, args: argparse.Namespace) -> int:
    result = await service.create(args.name, args.email, args.quota_kb)
    tenant = result.tenant
    creds = result.credentials
    settings = service.settings

    if result.dry_run:
        console.print(f"[yellow][DRY RUN][/yellow] Tenant '{tenant.name}' would be created")
        return EXIT_OK

    lines = [
        f"[bold]Email:[/bold] {tenant.email}",
        f"[bold]Quota:[/bold] {tenant.quota_mb} MB",
        f"[bold]SFTP:[/bold] {creds.sftp_username}@{settings.sftp.host}:{settings.sftp.port}",
        f"[bold]SFTP password:[/bold] {creds.sftp_password}",
        f"[bold]CDN URL:[/bold] https://{settings.cdn_domain}/{tenant.name}/",
    ]
    if result.skipped_steps:
        lines.append(f"[dim]Skipped steps: {', '.join(map(str, result.skipped_steps))}[/dim]")
    else:
        lines.append(f"[bold]Gitea user:[/bold] {creds.gitea_username}")
        lines.append(f"[bold]Gitea password:[/bold] {creds.gitea_password}")
    console.print(Panel("\n".join(lines), title=f"[green]✓[/green] Tenant created: {tenant.name}"))

    if result.notification_error:
        err_console.print(f"[yellow]Warning:[/yellow] welcome email not sent: {result.notification_error}")
    return EXIT_OK


async def _delete(service: TenantService, args: argparse.Namespace) -> int:
    report = await service.delete(args.name, confirm=args.confirm_delete)
    prefix = "[yellow][DRY RUN][/yellow] " if report.dry_run else ""

    for step in report.steps:
        mark = "[green]✓[/green]" if step.ok else "[red]✗[/red]"
        detail = f" [dim]({step.detail})[/dim]" if step.detail else ""
        console.print(f"{prefix}{mark} {step.description}{detail}")

    if not report.complete:
        err_console.print(
            f"[bold red]Error:[/bold red] tenant '{args.name}' partially deleted; "
            "manual cleanup required"
        )
        return EXIT_PARTIAL_DELETE
    console.print(f"[green]✓[/green] Tenant deleted: {args.name}")
    return EXIT_OK


async def _info(service: TenantService, args: argparse.Namespace) -> int:
    info = service.info(args.name)
    tenant = info.tenant
    status = "[green]active[/green]" if tenant.is_active else "[red]disabled[/red]"
    lines = [
        f"[bold]Email:[/bold] {tenant.email}",
        f"[bold]Status:[/bold] {status}",
        f"[bold]SFTP user:[/bold] {tenant.sftp_username} (uid {tenant.sftp_uid})",
        f"[bold]Gitea user:[/bold] {tenant.gitea_username}",
        f"[bold]Quota:[/bold] {tenant.quota_mb} MB",
        f"[bold]Usage:[/bold] {info.usage_kb // 1024} MB ({info.usage_percent}%)",
        f"[bold]Created:[/bold] {format_iso(tenant.created_at)}",
        f"[bold]Updated:[/bold] {format_iso(tenant.updated_at)}",
        f"[bold]Upload dir:[/bold] {info.paths.upload_dir}",
    ]
    if info.repo_url:
        lines.append(f"[bold]Repository:[/bold] {info.repo_url}")
    console.print(Panel("\n".join(lines), title=f"Tenant: {tenant.name}"))
    return EXIT_OK


async def _list(service: TenantService, args: argparse.Namespace) -> int:
    table = Table(title=f"CDN tenants ({args.status})")
    table.add_column("Name", style="cyan")
    table.add_column("Email")
    table.add_column("Status")
    table.add_column("Quota (MB)", justify="right")
    table.add_column("Created")

    count = 0
    for tenant in service.list(args.status):
        table.add_row(
            tenant.name,
            tenant.email,
            tenant.status.value,
            str(tenant.quota_mb),
            format_iso(tenant.created_at),
        )
        count += 1

    if count:
        console.print(table)
    else:
        console.print("[dim]No tenants found[/dim]")
    return EXIT_OK


async def _enable(service: TenantService, args: argparse.Namespace) -> int:
    await service.enable(args.name)
    console.print(f"[green]✓[/green] Tenant enabled: {args.name}")
    return EXIT_OK


async def _disable(service: TenantService, args: argparse.Namespace) -> int:
    await service.disable(args.name)
    console.print(f"[green]✓[/green] Tenant disabled: {args.name}")
    return EXIT_OK


async def _update_email(service: TenantService, args: argparse.Namespace) -> int:
    await service.update_email(args.name, args.email)
    console.print(f"[green]✓[/green] Email updated: {args.name} -> {args.email}")
    return EXIT_OK


async def _update_quota(service: TenantService, args: argparse.Namespace) -> int:
    tenant = await service.update_quota(args.name, args.quota_kb)
    console.print(f"[green]✓[/green] Quota updated: {args.name} -> {tenant.quota_mb} MB")
    return EXIT_OK


async def _rotate_ssh_key(service: TenantService, args: argparse.Namespace) -> int:
    fingerprint = await service.rotate_ssh_key(args.name, args.public_key)
    console.print(f"[green]✓[/green] SSH key updated: {args.name} ({fingerprint})")
    return EXIT_OK


async def _update_git_user(service: TenantService, args: argparse.Namespace) -> int:
    if service.update_git_user(args.name, args.git_name, args.git_email):
        console.print(f"[green]✓[/green] Git user updated: {args.git_name} <{args.git_email}>")
    elif not service.dry_run:
        err_console.print(f"[yellow]Warning:[/yellow] Git working directory not found for {args.name}")
    return EXIT_OK


COMMANDS = {
    "create": _create,
    "delete": _delete,
    "info": _info,
    "list": _list,
    "enable": _enable,
    "disable": _disable,
    "update-email": _update_email,
    "update-quota": _update_quota,
    "rotate-ssh-key": _rotate_ssh_key,
    "update-git-user": _update_git_user,
}


async def _process_email_queue(settings: "Settings") -> int:
    notifier = get_notification_service(settings)
    if settings.dry_run:
        pending = sum(1 for _ in notifier.queue.entries())
        console.print(f"[yellow][DRY RUN][/yellow] Would process {pending} queued email(s)")
        return EXIT_OK

    report = await notifier.process_queue()
    console.print(
        f"Email queue processed: [green]{report.sent} sent[/green], "
        f"[red]{report.failed} failed[/red], {report.expired} expired"
    )
    return EXIT_OK


async def run_command(settings: "Settings", args: argparse.Namespace) -> int:
    """Run one parsed command against the real infrastructure."""
    if args.command == "process-email-queue":
        return await _process_email_queue(settings)

    async with build_tenant_service(settings) as service:
        return await COMMANDS[args.command](service, args)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of ``cdn-tenant``.

    Args:
        argv: Arguments without the program name. Defaults to sys.argv.

    Returns:
        Process exit code.
    """
    args = build_parser().parse_args(argv)

    settings = get_settings()
    if args.dry_run:
        settings = settings.model_copy(update={"dry_run": True})
    setup_logging(settings)

    bind_context(command=args.command, tenant=getattr(args, "name", None))
    try:
        return asyncio.run(run_command(settings, args))
    except CdnTenantError as e:
        err_console.print(f"[bold red]Error:[/bold red] {e.message}")
        return exit_code_for(e)
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Interrupted by user[/yellow]")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.exception("Unexpected failure running %s", args.command)
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        return EXIT_FAILURE
    finally:
        clear_context()
