"""Snapshot coordinator: full, cross-table consistent backups.

Lifecycle of one ``create()`` call:

1. Insert a ``creating`` backup record.
2. Open one transaction at the adapter's snapshot isolation level and
   export every registered table from it, in registry order.
3. Build the manifest, package the archive, checksum it.
4. Mark the record ``completed`` with its integrity fields.
5. Remove the working directory.

Any failure after step 1 marks the record ``failed`` (best effort),
removes the working directory and any archive at the target path, and
raises ``SnapshotError``.
"""

import asyncio
import logging
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

from db_snapshot.adapters.base import DatabaseClient
from db_snapshot.backup.archive import package_archive
from db_snapshot.backup.errors import SnapshotError
from db_snapshot.backup.exporter import DEFAULT_PAGE_SIZE, export_table
from db_snapshot.backup.manifest import (
    APP_NAME,
    SCHEMA_VERSION,
    build_manifest,
    write_manifest,
)
from db_snapshot.backup.models import CreateResult, Manifest
from db_snapshot.backup.records import BackupRecordRepository
from db_snapshot.backup.registry import TableRegistry
from db_snapshot.backup.workspace import remove_file, remove_tree

logger = logging.getLogger(__name__)


def archive_file_name(now: datetime | None = None) -> str:
    """Generate a unique ``backup-<timestamp>-<suffix>.tar.gz`` name."""
    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    return f"backup-{stamp}-{uuid4().hex[:8]}.tar.gz"


class SnapshotCoordinator:
    """Creates snapshot archives and tracks them as backup records.

    Args:
        adapter: Relational store.
        registry: Tables to export, in dependency order.
        records: Backup record repository.
        backup_dir: Directory receiving archives and working directories.
        page_size: Rows per keyset page.
        app_name: Application name written to the manifest.
        schema_version: Schema version written to the manifest.
    """

    def __init__(
        self,
        adapter: DatabaseClient,
        registry: TableRegistry,
        records: BackupRecordRepository,
        backup_dir: str | Path,
        page_size: int = DEFAULT_PAGE_SIZE,
        app_name: str = APP_NAME,
        schema_version: str = SCHEMA_VERSION,
    ) -> None:
        self._adapter = adapter
        self._registry = registry
        self._records = records
        self._backup_dir = Path(backup_dir)
        self._page_size = page_size
        self._app_name = app_name
        self._schema_version = schema_version

    async def create(
        self,
        name: str,
        created_by: int,
        timeout: float | None = None,
    ) -> CreateResult:
        """Take a snapshot of every registered table.

        Args:
            name: Human-readable backup name.
            created_by: Operator id.
            timeout: Optional deadline in seconds for the export
                transaction.  On expiry the transaction is rolled back and
                the failure path runs.

        Returns:
            ``CreateResult`` for the completed backup.

        Raises:
            SnapshotError: If any step fails; the original error is chained.
        """
        self._backup_dir.mkdir(parents=True, exist_ok=True)
        file_name = archive_file_name()
        file_path = self._backup_dir / file_name

        try:
            backup_id = await self._records.create(
                name=name,
                file_name=file_name,
                file_path=str(file_path),
                schema_version=self._schema_version,
                tables_count=len(self._registry),
                created_by=created_by,
            )
        except Exception as e:
            raise SnapshotError(f"Could not record backup {name!r}: {e}") from e

        logger.info("Creating backup %s (%s)", backup_id, file_name)
        workdir: Path | None = None

        try:
            workdir = Path(tempfile.mkdtemp(prefix="snapshot-", dir=self._backup_dir))
            async with asyncio.timeout(timeout):
                manifest = await self._export_all(workdir, created_by)
            write_manifest(manifest, workdir)
            checksum = await asyncio.to_thread(package_archive, workdir, file_path)
            file_size = file_path.stat().st_size
            await self._records.complete(
                backup_id,
                file_size=file_size,
                checksum=checksum,
                records_count=manifest.total_records,
                manifest=manifest,
            )
        except (Exception, asyncio.CancelledError) as e:
            logger.error("Backup %s failed: %s", backup_id, e)
            await self._mark_failed(backup_id)
            remove_file(file_path)
            if isinstance(e, asyncio.CancelledError):
                raise
            raise SnapshotError(f"Backup {name!r} failed: {e}") from e
        finally:
            if workdir is not None:
                remove_tree(workdir)

        logger.info(
            "Backup %s completed: %s (%d records, %d bytes)",
            backup_id, file_name, manifest.total_records, file_size,
        )
        return CreateResult(
            backup_id=backup_id,
            file_name=file_name,
            file_path=str(file_path),
            file_size=file_size,
            checksum=checksum,
            records_count=manifest.total_records,
        )

    async def _export_all(self, workdir: Path, created_by: int) -> Manifest:
        """Export every table inside one snapshot transaction."""
        counts: dict[str, int] = {}
        checksums: dict[str, str] = {}

        isolation = self._adapter.snapshot_isolation_level
        async with self._adapter.transaction(isolation) as tx:
            db_version = tx.server_version
            for table_def in self._registry:
                result = await export_table(tx, table_def, workdir, self._page_size)
                counts[table_def.name] = result.row_count
                checksums[table_def.name] = result.checksum

        return build_manifest(
            self._registry.names,
            counts,
            checksums,
            created_by,
            schema_version=self._schema_version,
            app_name=self._app_name,
            db_version=db_version,
        )

    async def _mark_failed(self, backup_id: int) -> None:
        try:
            await self._records.fail(backup_id)
        except Exception as e:
            logger.warning("Could not mark backup %s as failed: %s", backup_id, e)
