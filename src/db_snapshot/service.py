"""Backup service: the engine's public surface.

Wires the snapshot and restore coordinators and the backup record
repository to one adapter, registry and settings object.  This is what
the CLI (or an HTTP layer) talks to.

Usage:
    from db_snapshot.service import BackupService

    service = BackupService(adapter, registry, settings)
    await service.initialize()

    created = await service.create_backup("nightly", created_by=1)
    result = await service.validate_backup(created.file_path)
"""

import asyncio
import logging
from datetime import timedelta
from pathlib import Path

from db_snapshot.adapters.base import DatabaseClient
from db_snapshot.backup.errors import BackupStateError
from db_snapshot.backup.manifest import SCHEMA_VERSION
from db_snapshot.backup.models import (
    BackupRecord,
    BackupStatus,
    CreateResult,
    RestoreMode,
    RestoreResult,
    ValidationResult,
)
from db_snapshot.backup.records import BackupRecordRepository
from db_snapshot.backup.registry import TableRegistry
from db_snapshot.backup.restore import RestoreCoordinator
from db_snapshot.backup.snapshot import SnapshotCoordinator
from db_snapshot.backup.validator import validate_archive
from db_snapshot.backup.workspace import remove_file
from db_snapshot.config.models import BackupSettings

logger = logging.getLogger(__name__)


class BackupService:
    """Create, list, validate, restore and delete snapshot backups.

    Args:
        adapter: Relational store holding both the application tables and
            the ``backups`` record table.
        registry: Tables taking part in snapshots.
        settings: Backup directory, page size and deadlines.
    """

    def __init__(
        self,
        adapter: DatabaseClient,
        registry: TableRegistry,
        settings: BackupSettings | None = None,
    ) -> None:
        self._adapter = adapter
        self._registry = registry
        self._settings = settings or BackupSettings()
        self._records = BackupRecordRepository(adapter)
        self._snapshots = SnapshotCoordinator(
            adapter,
            registry,
            self._records,
            self._settings.directory,
            page_size=self._settings.page_size,
            app_name=self._settings.app_name,
        )
        self._restores = RestoreCoordinator(
            adapter,
            registry,
            self._settings.directory,
            batch_size=self._settings.page_size,
        )

    @property
    def backup_dir(self) -> Path:
        return self._settings.directory

    @property
    def records(self) -> BackupRecordRepository:
        return self._records

    async def initialize(self) -> None:
        """Create the backup directory and the ``backups`` table if absent."""
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        await self._records.ensure_table()

    # ------------------------------------------------------------------
    # Create / list / lookup
    # ------------------------------------------------------------------

    async def create_backup(
        self,
        name: str,
        created_by: int,
        timeout: float | None = None,
    ) -> CreateResult:
        """Take a snapshot of every registered table.

        Raises:
            SnapshotError: If the snapshot fails.  The record is left
                ``failed`` and no archive remains on disk.
        """
        if timeout is None:
            timeout = self._settings.timeout_seconds
        return await self._snapshots.create(name, created_by, timeout=timeout)

    async def list_backups(self, limit: int = 50, offset: int = 0) -> list[BackupRecord]:
        """Return backup records, newest first."""
        return await self._records.list_records(limit=limit, offset=offset)

    async def get_backup(self, backup_id: int) -> BackupRecord | None:
        return await self._records.get(backup_id)

    async def get_backup_file_path(self, backup_id: int) -> Path | None:
        """Return the archive path of a ``completed`` backup.

        Returns:
            The path, or ``None`` when the backup does not exist, is not
            ``completed``, or its file is gone.
        """
        record = await self._records.get(backup_id)
        if record is None or record.status != BackupStatus.COMPLETED:
            return None

        path = Path(record.file_path)
        if not path.is_file():
            logger.warning("Backup %s archive is missing: %s", backup_id, path)
            return None
        return path

    async def delete_backup(self, backup_id: int) -> bool:
        """Remove a completed backup's archive and mark it ``deleted``.

        Returns:
            ``False`` when no such backup exists, ``True`` once deleted.

        Raises:
            BackupStateError: If the backup is not ``completed``.
        """
        record = await self._records.get(backup_id)
        if record is None:
            return False
        if record.status != BackupStatus.COMPLETED:
            raise BackupStateError(
                f"Only completed backups can be deleted; backup {backup_id} "
                f"is {record.status.value}"
            )

        remove_file(record.file_path)
        await self._records.mark_deleted(backup_id)
        logger.info("Deleted backup %s (%s)", backup_id, record.file_name)
        return True

    # ------------------------------------------------------------------
    # Validate / restore
    # ------------------------------------------------------------------

    async def validate_backup(self, file_path: str | Path) -> ValidationResult:
        """Check an archive's manifest, schema version and checksums."""
        return await asyncio.to_thread(
            validate_archive, file_path, self.backup_dir, SCHEMA_VERSION
        )

    async def restore_backup(
        self,
        file_path: str | Path,
        mode: RestoreMode = "merge",
        dry_run: bool = False,
        timeout: float | None = None,
    ) -> RestoreResult:
        """Restore an archive; see ``RestoreCoordinator.restore``."""
        if timeout is None:
            timeout = self._settings.timeout_seconds
        return await self._restores.restore(
            file_path, mode=mode, dry_run=dry_run, timeout=timeout
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def reconcile_stale_backups(
        self, older_than: timedelta | None = None
    ) -> list[int]:
        """Mark ``creating`` records left behind by a crash as ``failed``.

        Args:
            older_than: Age cutoff; defaults to ``stale_after_minutes``.

        Returns:
            Ids of the records marked ``failed``.
        """
        if older_than is None:
            older_than = timedelta(minutes=self._settings.stale_after_minutes)
        return await self._records.mark_stale_failed(older_than)
