"""CLI module for snapshot backups.

Provides commands to create, list, validate, restore and delete backups
of the tables registered in ``db-snapshot.toml``.

Usage:
    DB_PROFILE=local db-snapshot create nightly --created-by 1
    db-snapshot list
    db-snapshot path 12
    db-snapshot validate backups/backup-2026-01-15T02-00-00-000000Z-1a2b3c4d.tar.gz
    db-snapshot restore backups/backup-....tar.gz --mode merge --dry-run
    db-snapshot restore backups/backup-....tar.gz --mode replace --yes
    db-snapshot delete 12
    db-snapshot reconcile

Commands:
    create    - Take a snapshot of every registered table
    list      - List backup records, newest first
    path      - Print the archive path of a completed backup
    delete    - Delete a completed backup's archive
    validate  - Check an archive's manifest and checksums (no database)
    restore   - Restore an archive in merge or replace mode
    reconcile - Mark stale 'creating' backups as failed
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm
from rich.table import Table

from db_snapshot.backup.errors import BackupStateError, RegistryError, SnapshotError
from db_snapshot.backup.models import BackupStatus, RestoreResult
from db_snapshot.backup.validator import validate_archive
from db_snapshot.config.loader import load_config
from db_snapshot.factory import ProfileNotFoundError, create_service, get_adapter
from db_snapshot.service import BackupService

console = Console()

_STATUS_STYLES = {
    BackupStatus.CREATING: "yellow",
    BackupStatus.COMPLETED: "green",
    BackupStatus.FAILED: "red",
    BackupStatus.DELETED: "dim",
}


# ============================================================================
# Helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _config_path(args: argparse.Namespace) -> Path | None:
    config = getattr(args, "config", None)
    return Path(config) if config else None


def _format_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes} B"
    size = num_bytes / 1024
    for unit in ("KB", "MB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


@asynccontextmanager
async def _open_service(args: argparse.Namespace) -> AsyncIterator[BackupService]:
    """Load config, connect, and yield an initialized ``BackupService``.

    The adapter is closed on exit.
    """
    config = load_config(_config_path(args))
    adapter = await get_adapter(
        config,
        profile_name=getattr(args, "profile", None),
        env_prefix=getattr(args, "env_prefix", ""),
    )
    try:
        yield await create_service(config, adapter)
    finally:
        await adapter.close()


def _print_restore_result(result: RestoreResult) -> None:
    if not result.success:
        console.print(f"[bold red]x[/bold red] {result.message}")
        return

    table = Table(
        title="Dry Run" if result.dry_run else "Restored",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Table")
    table.add_column("Rows", justify="right")
    table.add_column("Skipped", justify="right")
    for name, count in (result.restored_counts or {}).items():
        skipped = result.skipped_counts.get(name, 0)
        table.add_row(name, str(count), str(skipped) if skipped else "")
    console.print(table)
    console.print(f"[bold green]v[/bold green] {result.message}")


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_create(args: argparse.Namespace) -> int:
    """Async implementation for create command.

    Returns:
        0 on success, 1 on failure.
    """
    async with _open_service(args) as service:
        console.print(f"Creating backup [bold cyan]{args.name}[/bold cyan]...", style="dim")
        try:
            result = await service.create_backup(args.name, args.created_by)
        except SnapshotError as e:
            console.print(f"\n[bold red]x[/bold red] {e}")
            return 1

    console.print()
    console.print(
        f"[bold green]v[/bold green] Backup {result.backup_id} created: "
        f"[cyan]{result.file_path}[/cyan]"
    )
    console.print(
        f"  Records: {result.records_count}  "
        f"Size: {_format_size(result.file_size)}"
    )
    console.print(f"  Checksum: [dim]{result.checksum}[/dim]")
    return 0


async def _async_list(args: argparse.Namespace) -> int:
    """Async implementation for list command.

    Returns:
        0 always.
    """
    async with _open_service(args) as service:
        records = await service.list_backups(limit=args.limit, offset=args.offset)

    if not records:
        console.print("[yellow]No backups found.[/yellow]")
        return 0

    table = Table(title="Backups", show_header=True, header_style="bold")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Records", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Created")
    table.add_column("File", style="dim")

    for record in records:
        style = _STATUS_STYLES.get(record.status, "")
        table.add_row(
            str(record.id),
            record.name,
            f"[{style}]{record.status.value}[/{style}]",
            str(record.records_count),
            _format_size(record.file_size),
            record.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            record.file_name,
        )

    console.print(table)
    return 0


async def _async_path(args: argparse.Namespace) -> int:
    """Async implementation for path command.

    Returns:
        0 if the backup has an archive, 1 otherwise.
    """
    async with _open_service(args) as service:
        path = await service.get_backup_file_path(args.backup_id)

    if path is None:
        console.print(
            f"[red]Backup {args.backup_id} not found or not completed.[/red]"
        )
        return 1

    console.print(str(path), highlight=False)
    return 0


async def _async_delete(args: argparse.Namespace) -> int:
    """Async implementation for delete command.

    Returns:
        0 on success, 1 if missing or not deletable.
    """
    async with _open_service(args) as service:
        try:
            deleted = await service.delete_backup(args.backup_id)
        except BackupStateError as e:
            console.print(f"[bold red]x[/bold red] {e}")
            return 1

    if not deleted:
        console.print(f"[red]Backup {args.backup_id} not found.[/red]")
        return 1

    console.print(f"[bold green]v[/bold green] Backup {args.backup_id} deleted")
    return 0


async def _async_restore(args: argparse.Namespace) -> int:
    """Async implementation for restore command.

    Returns:
        0 on success, 1 on failure.
    """
    async with _open_service(args) as service:
        result = await service.restore_backup(
            args.file, mode=args.mode, dry_run=args.dry_run
        )

    _print_restore_result(result)
    return 0 if result.success else 1


async def _async_reconcile(args: argparse.Namespace) -> int:
    """Async implementation for reconcile command.

    Returns:
        0 always.
    """
    async with _open_service(args) as service:
        stale = await service.reconcile_stale_backups()

    if stale:
        console.print(
            f"[yellow]Marked {len(stale)} stale backup(s) as failed:[/yellow] "
            f"{', '.join(str(i) for i in stale)}"
        )
    else:
        console.print("[bold green]v[/bold green] No stale backups")
    return 0


# ============================================================================
# Sync command wrappers
# ============================================================================


def _run(coro_fn, args: argparse.Namespace) -> int:
    """Run an async command, reporting configuration errors cleanly."""
    try:
        return asyncio.run(coro_fn(args))
    except (FileNotFoundError, ProfileNotFoundError, RegistryError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1


def cmd_create(args: argparse.Namespace) -> int:
    """Create a snapshot backup.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return _run(_async_create, args)


def cmd_list(args: argparse.Namespace) -> int:
    """List backup records."""
    return _run(_async_list, args)


def cmd_path(args: argparse.Namespace) -> int:
    """Print a completed backup's archive path."""
    return _run(_async_path, args)


def cmd_delete(args: argparse.Namespace) -> int:
    """Delete a completed backup."""
    return _run(_async_delete, args)


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate an archive.

    Reads only the archive -- no config or database needed.

    Returns:
        0 if valid, 1 otherwise.
    """
    result = validate_archive(args.file)

    if result.valid:
        manifest = result.manifest
        table = Table(title="Backup Contents", show_header=True, header_style="bold")
        table.add_column("Table")
        table.add_column("Rows", justify="right")
        for name in manifest.table_order:
            table.add_row(name, str(manifest.table_counts[name]))
        console.print(table)
        console.print(
            f"[bold green]v[/bold green] Backup is valid "
            f"(schema {manifest.schema_version}, created {manifest.created_at})"
        )
        return 0

    console.print("[bold red]x[/bold red] Backup is invalid:")
    for error in result.errors:
        console.print(f"  - {error}", highlight=False)
    return 1


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore an archive, confirming first unless ``--yes`` or ``--dry-run``."""
    if not args.yes and not args.dry_run:
        console.print(f"This will restore data from: [cyan]{args.file}[/cyan]")
        console.print(f"  Mode: [bold]{args.mode}[/bold]")
        if args.mode == "replace":
            console.print(
                "  [bold red]WARNING:[/bold red] every registered table except "
                "users and roles will be cleared first!"
            )
        if not Confirm.ask("Continue?", default=False, console=console):
            console.print("Cancelled.")
            return 0

    return _run(_async_restore, args)


def cmd_reconcile(args: argparse.Namespace) -> int:
    """Mark stale ``creating`` backups as failed."""
    return _run(_async_reconcile, args)


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the ``db-snapshot`` argument parser."""
    parser = argparse.ArgumentParser(
        prog="db-snapshot",
        description="Consistent snapshot backup and restore for relational databases",
    )

    # Global options
    parser.add_argument(
        "--config",
        "-c",
        default=None,
        help="Path to config file (default: ./db-snapshot.toml)",
    )
    parser.add_argument(
        "--profile",
        "-p",
        default=None,
        help="Database profile from the config file",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # create command
    p_create = subparsers.add_parser(
        "create",
        help="Take a snapshot of every registered table",
    )
    p_create.add_argument("name", help="Backup name")
    p_create.add_argument(
        "--created-by",
        type=int,
        required=True,
        help="Operator user ID recorded on the backup",
    )
    p_create.set_defaults(func=cmd_create)

    # list command
    p_list = subparsers.add_parser(
        "list",
        help="List backups, newest first",
    )
    p_list.add_argument("--limit", type=int, default=50)
    p_list.add_argument("--offset", type=int, default=0)
    p_list.set_defaults(func=cmd_list)

    # path command
    p_path = subparsers.add_parser(
        "path",
        help="Print the archive path of a completed backup",
    )
    p_path.add_argument("backup_id", type=int)
    p_path.set_defaults(func=cmd_path)

    # delete command
    p_delete = subparsers.add_parser(
        "delete",
        help="Delete a completed backup's archive",
    )
    p_delete.add_argument("backup_id", type=int)
    p_delete.set_defaults(func=cmd_delete)

    # validate command
    p_validate = subparsers.add_parser(
        "validate",
        help="Check an archive's manifest and checksums",
    )
    p_validate.add_argument("file", help="Path to the .tar.gz archive")
    p_validate.set_defaults(func=cmd_validate)

    # restore command
    p_restore = subparsers.add_parser(
        "restore",
        help="Restore an archive",
    )
    p_restore.add_argument("file", help="Path to the .tar.gz archive")
    p_restore.add_argument(
        "--mode",
        "-m",
        choices=["merge", "replace"],
        default="merge",
        help="merge: upsert by primary key; replace: clear tables, then insert",
    )
    p_restore.add_argument(
        "--dry-run",
        action="store_true",
        help="Count rows per table without touching the database",
    )
    p_restore.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Skip confirmation prompt",
    )
    p_restore.set_defaults(func=cmd_restore)

    # reconcile command
    p_reconcile = subparsers.add_parser(
        "reconcile",
        help="Mark stale 'creating' backups as failed",
    )
    p_reconcile.set_defaults(func=cmd_reconcile)

    return parser


def main() -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args()
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
