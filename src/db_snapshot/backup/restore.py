"""Restore coordinator: apply a validated archive to the database.

Restores are all-or-nothing.  Every write happens inside one
transaction, so a malformed row or a constraint violation in the last
table rolls back the first table too.

Modes:
    merge:   Upsert every row by primary key.  Existing rows not in the
             archive are kept; applying the same archive twice is a no-op.
    replace: Clear every registered table (children first, protected
             tables excluded), then bulk-insert the archive's rows.

Usage:
    coordinator = RestoreCoordinator(adapter, registry, backup_dir)
    result = await coordinator.restore(path, mode="replace", dry_run=True)
    print(result.message)
"""

import asyncio
import logging
from pathlib import Path
from typing import Any

from db_snapshot.adapters.base import DatabaseClient, TransactionClient
from db_snapshot.backup.archive import count_records, extract_archive
from db_snapshot.backup.errors import ArchiveError, RestoreError
from db_snapshot.backup.exporter import DEFAULT_PAGE_SIZE, record_file_name
from db_snapshot.backup.manifest import SCHEMA_VERSION
from db_snapshot.backup.models import Manifest, RestoreMode, RestoreResult, TableDef
from db_snapshot.backup.registry import TableRegistry
from db_snapshot.backup.rows import decode_row, is_redacted
from db_snapshot.backup.validator import validate_archive
from db_snapshot.backup.workspace import working_directory

logger = logging.getLogger(__name__)

RESTORE_MODES: tuple[str, ...] = ("merge", "replace")


class RestoreCoordinator:
    """Validates, extracts and applies snapshot archives.

    Args:
        adapter: Relational store.
        registry: Registered tables; archives may only contain these.
        backup_dir: Parent directory for extraction directories.
        batch_size: Rows per bulk insert in replace mode.
        schema_version: Schema version an archive must carry.
    """

    def __init__(
        self,
        adapter: DatabaseClient,
        registry: TableRegistry,
        backup_dir: str | Path,
        batch_size: int = DEFAULT_PAGE_SIZE,
        schema_version: str = SCHEMA_VERSION,
    ) -> None:
        self._adapter = adapter
        self._registry = registry
        self._backup_dir = Path(backup_dir)
        self._batch_size = batch_size
        self._schema_version = schema_version

    async def restore(
        self,
        archive_path: str | Path,
        mode: RestoreMode = "merge",
        dry_run: bool = False,
        timeout: float | None = None,
    ) -> RestoreResult:
        """Restore an archive.

        Never raises for operational failures: validation, extraction and
        in-transaction errors all come back as ``success=False`` with a
        message.

        Args:
            archive_path: Path to the ``.tar.gz`` archive.
            mode: ``"merge"`` or ``"replace"``.
            dry_run: Count rows per table without touching the database.
            timeout: Optional deadline in seconds for the database work.
                Expiry rolls the transaction back.

        Returns:
            ``RestoreResult`` with per-table restored (and skipped) counts.
        """
        if mode not in RESTORE_MODES:
            return RestoreResult(
                success=False,
                message=f"Unknown restore mode {mode!r}; expected merge or replace",
            )

        try:
            validation = await asyncio.to_thread(
                validate_archive, archive_path, self._backup_dir, self._schema_version
            )
        except Exception as e:
            logger.exception("Validation of %s failed", archive_path)
            return RestoreResult(
                success=False,
                message=f"Could not validate backup: {e}",
                dry_run=dry_run,
            )
        if not validation.valid:
            return RestoreResult(
                success=False,
                message=f"Invalid backup: {'; '.join(validation.errors)}",
                dry_run=dry_run,
            )
        manifest = validation.manifest

        try:
            with working_directory(self._backup_dir, "restore-") as workdir:
                await asyncio.to_thread(extract_archive, archive_path, workdir)

                if dry_run:
                    counts = {
                        name: count_records(workdir / record_file_name(name))
                        for name in manifest.table_order
                    }
                    total = sum(counts.values())
                    logger.info("Dry run of %s: %d records", Path(archive_path).name, total)
                    return RestoreResult(
                        success=True,
                        message=f"Dry run complete. {total} records would be restored.",
                        dry_run=True,
                        restored_counts=counts,
                    )

                logger.info("Restoring %s (mode=%s)", Path(archive_path).name, mode)
                async with asyncio.timeout(timeout):
                    restored, skipped = await self._apply(workdir, manifest, mode)
        except ArchiveError as e:
            logger.error("Restore extraction failed: %s", e)
            return RestoreResult(success=False, message=f"Failed to extract backup: {e}")
        except TimeoutError:
            logger.error("Restore of %s timed out after %ss", archive_path, timeout)
            return RestoreResult(
                success=False,
                message=f"Restore timed out after {timeout} seconds; no changes applied",
            )
        except Exception as e:
            logger.exception("Restore of %s failed", archive_path)
            return RestoreResult(success=False, message=f"Restore failed: {e}")

        total = sum(restored.values())
        message = f"Backup restored successfully. {total} records restored."
        skipped_total = sum(skipped.values())
        if skipped_total:
            message += f" {skipped_total} redacted records skipped."
        logger.info(message)

        return RestoreResult(
            success=True,
            message=message,
            restored_counts=restored,
            skipped_counts={k: v for k, v in skipped.items() if v},
        )

    async def _apply(
        self,
        workdir: Path,
        manifest: Manifest,
        mode: RestoreMode,
    ) -> tuple[dict[str, int], dict[str, int]]:
        """Apply every table file inside one transaction."""
        unknown = [name for name in manifest.table_order if name not in self._registry]
        if unknown:
            raise RestoreError(
                f"Backup contains unregistered tables: {', '.join(unknown)}"
            )

        restored: dict[str, int] = {}
        skipped: dict[str, int] = {}

        async with self._adapter.transaction() as tx:
            if mode == "replace":
                for table_def in self._registry.deletion_order():
                    deleted = await tx.delete_all(table_def.name)
                    logger.info("Cleared %s (%d rows)", table_def.name, deleted)

            for name in manifest.table_order:
                table_def = self._registry.get(name)
                # Protected tables were not cleared, so their rows are upserted.
                bulk = mode == "replace" and not self._registry.is_protected(name)
                count, skip = await self._restore_table(
                    tx, table_def, workdir / record_file_name(name), bulk
                )
                if count:
                    await tx.reset_sequence(name, table_def.pk)
                restored[name] = count
                skipped[name] = skip
                logger.info("Restored %s: %d rows", name, count)

        return restored, skipped

    async def _restore_table(
        self,
        tx: TransactionClient,
        table_def: TableDef,
        path: Path,
        bulk: bool,
    ) -> tuple[int, int]:
        """Stream one record file into the table.

        Returns:
            ``(restored, skipped)`` row counts.
        """
        timestamp_fields = frozenset(table_def.timestamp_fields)
        restored = 0
        skipped = 0
        batch: list[dict[str, Any]] = []

        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                row = decode_row(line, table_def)

                if is_redacted(row, table_def):
                    skipped += 1
                    continue
                if table_def.pk not in row:
                    raise RestoreError(
                        f"{table_def.name}: row without primary key {table_def.pk}"
                    )

                if bulk:
                    batch.append(row)
                    if len(batch) >= self._batch_size:
                        restored += await tx.insert_rows(
                            table_def.name, batch, timestamp_fields
                        )
                        batch = []
                else:
                    await tx.upsert_row(
                        table_def.name, table_def.pk, row, timestamp_fields
                    )
                    restored += 1

        if batch:
            restored += await tx.insert_rows(table_def.name, batch, timestamp_fields)

        if skipped:
            logger.warning(
                "%s: skipped %d rows with redacted values", table_def.name, skipped
            )
        return restored, skipped
