"""db-snapshot: Consistent snapshot backup and restore for relational databases.

Exports a registered set of tables from one repeatable-read transaction
into a checksummed ``.tar.gz`` archive, validates archives offline, and
restores them in merge or replace mode inside one transaction.

Usage:
    from db_snapshot import BackupService, TableRegistry, TableDef, ForeignKey
    from db_snapshot import AsyncSQLAlchemyAdapter, load_config, get_adapter
"""

__version__ = "0.1.0"

# Adapters
from db_snapshot.adapters.base import DatabaseClient, TransactionClient
from db_snapshot.adapters.sqlalchemy_adapter import AsyncSQLAlchemyAdapter

# Backup engine
from db_snapshot.backup.errors import SnapshotError
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
from db_snapshot.backup.registry import PROTECTED_TABLES, TableRegistry

# Config
from db_snapshot.config.loader import load_config
from db_snapshot.config.models import BackupSettings, DatabaseProfile, SnapshotConfig

# Service and factory
from db_snapshot.service import BackupService
from db_snapshot.factory import (
    ProfileNotFoundError,
    create_service,
    get_adapter,
    resolve_url,
)

__all__ = [
    # Adapters
    "DatabaseClient",
    "TransactionClient",
    "AsyncSQLAlchemyAdapter",
    # Backup engine
    "SnapshotError",
    "TableRegistry",
    "TableDef",
    "ForeignKey",
    "PROTECTED_TABLES",
    "BackupRecord",
    "BackupStatus",
    "CreateResult",
    "Manifest",
    "RestoreResult",
    "ValidationResult",
    # Config
    "load_config",
    "BackupSettings",
    "DatabaseProfile",
    "SnapshotConfig",
    # Service and factory
    "BackupService",
    "get_adapter",
    "create_service",
    "ProfileNotFoundError",
    "resolve_url",
]
