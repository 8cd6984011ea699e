"""Snapshot backup and restore with a declarative table registry.

The tables and their FK order are declared by the caller as a
``TableRegistry`` -- no hardcoded table names beyond the protected
identity tables.

Usage:
    from db_snapshot.backup import TableRegistry, TableDef, ForeignKey
    from db_snapshot.backup import SnapshotCoordinator, RestoreCoordinator, validate_archive
"""

from db_snapshot.backup.errors import (
    ArchiveError,
    BackupStateError,
    ExportError,
    RegistryError,
    RestoreError,
    RowConversionError,
    SnapshotError,
)
from db_snapshot.backup.manifest import SCHEMA_VERSION, build_manifest
from db_snapshot.backup.models import (
    BackupRecord,
    BackupStatus,
    CreateResult,
    ForeignKey,
    Manifest,
    RestoreResult,
    TableDef,
    ValidationResult,
)
from db_snapshot.backup.records import BackupRecordRepository
from db_snapshot.backup.registry import PROTECTED_TABLES, TableRegistry
from db_snapshot.backup.restore import RestoreCoordinator
from db_snapshot.backup.snapshot import SnapshotCoordinator
from db_snapshot.backup.validator import validate_archive

__all__ = [
    # Registry
    "TableRegistry",
    "TableDef",
    "ForeignKey",
    "PROTECTED_TABLES",
    # Coordinators
    "SnapshotCoordinator",
    "RestoreCoordinator",
    "BackupRecordRepository",
    "validate_archive",
    "build_manifest",
    "SCHEMA_VERSION",
    # Models
    "BackupRecord",
    "BackupStatus",
    "CreateResult",
    "Manifest",
    "RestoreResult",
    "ValidationResult",
    # Errors
    "SnapshotError",
    "RegistryError",
    "ExportError",
    "ArchiveError",
    "RestoreError",
    "RowConversionError",
    "BackupStateError",
]
