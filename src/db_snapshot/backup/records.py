"""Persistence of backup records and their status lifecycle.

One row per backup attempt in the ``backups`` table.  Status changes are
compare-and-set updates guarded by ``ALLOWED_TRANSITIONS``:

    creating -> completed | failed
    completed -> deleted

Completion writes the status and every integrity field in a single
UPDATE, so no reader sees ``completed`` with zero-valued integrity fields.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    select,
    update,
)

from db_snapshot.adapters.base import DatabaseClient
from db_snapshot.backup.errors import BackupStateError
from db_snapshot.backup.models import (
    ALLOWED_TRANSITIONS,
    BackupRecord,
    BackupStatus,
    Manifest,
)

logger = logging.getLogger(__name__)

metadata = MetaData()

backups = Table(
    "backups",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", Text, nullable=False),
    Column("file_name", Text, nullable=False, unique=True),
    Column("file_path", Text, nullable=False),
    Column("file_size", BigInteger, nullable=False, default=0),
    Column("checksum", Text, nullable=False, default=""),
    Column("status", String(16), nullable=False, default=BackupStatus.CREATING.value),
    Column("storage_type", String(16), nullable=False, default="local"),
    Column("schema_version", Text, nullable=False),
    Column("tables_count", Integer, nullable=False),
    Column("records_count", BigInteger, nullable=False, default=0),
    Column("compression_type", String(16), nullable=False, default="gzip"),
    Column("is_encrypted", Boolean, nullable=False, default=False),
    Column("created_by", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("completed_at", DateTime(timezone=True)),
    Column("metadata", JSON),
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BackupRecordRepository:
    """Reads and writes ``backups`` rows through a ``DatabaseClient``.

    Each method runs in its own short transaction, independent of any
    snapshot or restore transaction in flight.
    """

    def __init__(self, adapter: DatabaseClient) -> None:
        self._adapter = adapter

    async def ensure_table(self) -> None:
        """Create the ``backups`` table when it does not exist."""
        await self._adapter.create_all(metadata)

    async def create(
        self,
        *,
        name: str,
        file_name: str,
        file_path: str,
        schema_version: str,
        tables_count: int,
        created_by: int,
    ) -> int:
        """Insert a ``creating`` record with zero-valued integrity fields.

        Returns:
            The new record id.
        """
        stmt = backups.insert().values(
            name=name,
            file_name=file_name,
            file_path=file_path,
            file_size=0,
            checksum="",
            status=BackupStatus.CREATING.value,
            schema_version=schema_version,
            tables_count=tables_count,
            records_count=0,
            created_by=created_by,
            created_at=_utc_now(),
        )
        async with self._adapter.connection() as conn:
            result = await conn.execute(stmt)
            return result.inserted_primary_key[0]

    async def get(self, backup_id: int) -> BackupRecord | None:
        async with self._adapter.connection() as conn:
            result = await conn.execute(
                select(backups).where(backups.c.id == backup_id)
            )
            row = result.mappings().first()
        return BackupRecord.model_validate(dict(row)) if row else None

    async def list_records(self, limit: int = 50, offset: int = 0) -> list[BackupRecord]:
        """Return records newest first."""
        stmt = (
            select(backups)
            .order_by(backups.c.created_at.desc(), backups.c.id.desc())
            .limit(limit)
            .offset(offset)
        )
        async with self._adapter.connection() as conn:
            result = await conn.execute(stmt)
            rows = result.mappings().all()
        return [BackupRecord.model_validate(dict(r)) for r in rows]

    async def transition(
        self,
        backup_id: int,
        new_status: BackupStatus,
        **fields: Any,
    ) -> None:
        """Move a record to ``new_status``, updating ``fields`` atomically.

        Raises:
            BackupStateError: If the record does not exist, the transition
                is not allowed, or the status changed concurrently.
        """
        record = await self.get(backup_id)
        if record is None:
            raise BackupStateError(f"Backup {backup_id} not found")

        if new_status not in ALLOWED_TRANSITIONS[record.status]:
            raise BackupStateError(
                f"Backup {backup_id} cannot go from {record.status.value} "
                f"to {new_status.value}"
            )

        stmt = (
            update(backups)
            .where(backups.c.id == backup_id)
            .where(backups.c.status == record.status.value)
            .values(status=new_status.value, **fields)
        )
        async with self._adapter.connection() as conn:
            result = await conn.execute(stmt)

        if result.rowcount != 1:
            raise BackupStateError(
                f"Backup {backup_id} changed status concurrently "
                f"(expected {record.status.value})"
            )
        logger.debug(
            "Backup %s: %s -> %s", backup_id, record.status.value, new_status.value
        )

    async def complete(
        self,
        backup_id: int,
        *,
        file_size: int,
        checksum: str,
        records_count: int,
        manifest: Manifest,
    ) -> None:
        await self.transition(
            backup_id,
            BackupStatus.COMPLETED,
            file_size=file_size,
            checksum=checksum,
            records_count=records_count,
            completed_at=_utc_now(),
            metadata=manifest.to_dict(),
        )

    async def fail(self, backup_id: int) -> None:
        await self.transition(backup_id, BackupStatus.FAILED)

    async def mark_deleted(self, backup_id: int) -> None:
        await self.transition(backup_id, BackupStatus.DELETED)

    async def mark_stale_failed(self, older_than: timedelta) -> list[int]:
        """Fail ``creating`` records older than ``older_than``.

        A crash mid-snapshot leaves its record in ``creating`` forever;
        this sweep closes such records out.

        Returns:
            Ids of the records marked ``failed``.
        """
        cutoff = _utc_now() - older_than
        async with self._adapter.connection() as conn:
            result = await conn.execute(
                select(backups.c.id)
                .where(backups.c.status == BackupStatus.CREATING.value)
                .where(backups.c.created_at < cutoff)
            )
            stale = [row[0] for row in result.fetchall()]
            if stale:
                await conn.execute(
                    update(backups)
                    .where(backups.c.id.in_(stale))
                    .where(backups.c.status == BackupStatus.CREATING.value)
                    .values(status=BackupStatus.FAILED.value)
                )

        for backup_id in stale:
            logger.warning("Marked stale backup %s as failed", backup_id)
        return stale
