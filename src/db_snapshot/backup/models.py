"""Models for the snapshot engine.

Table descriptors are declared by the caller; everything else here is a
value produced by the engine (manifest, backup records, results).

Usage:
    from db_snapshot.backup.models import TableDef, ForeignKey

    tables = [
        TableDef(name="brands"),
        TableDef(name="models", parent=ForeignKey(table="brands", field="brand_id")),
        TableDef(
            name="vehicles",
            parent=ForeignKey(table="models", field="model_id"),
            optional_refs=[ForeignKey(table="colors", field="color_id")],
        ),
    ]
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

KeyType = Literal["integer", "bigint", "smallint", "uuid", "text"]
RestoreMode = Literal["merge", "replace"]


def check_identifier(value: str) -> str:
    """Reject anything that is not a plain SQL identifier."""
    if not _IDENTIFIER.match(value):
        raise ValueError(f"Not a valid SQL identifier: {value!r}")
    return value


# ============================================================================
# Table descriptors
# ============================================================================


class ForeignKey(BaseModel):
    """Foreign key reference to a table earlier in the registry."""

    table: str          # referenced table name
    field: str          # FK column in this table

    @field_validator("table", "field")
    @classmethod
    def check_names(cls, value: str) -> str:
        return check_identifier(value)


class TableDef(BaseModel):
    """Definition of a table taking part in snapshots."""

    name: str                                       # table name
    pk: str = "id"                                  # primary key column
    key_type: KeyType = "integer"                   # keyset pagination needs a numeric key
    parent: ForeignKey | None = None                # required FK
    optional_refs: list[ForeignKey] = Field(default_factory=list)
    timestamp_fields: list[str] = Field(
        default_factory=lambda: ["created_at", "updated_at"]
    )                                               # re-hydrated on restore
    redact_fields: list[str] = Field(default_factory=list)  # masked on export
    binary_fields: list[str] = Field(default_factory=list)  # base64 in record files

    @field_validator("name", "pk")
    @classmethod
    def check_names(cls, value: str) -> str:
        return check_identifier(value)

    @field_validator("timestamp_fields", "redact_fields", "binary_fields")
    @classmethod
    def check_columns(cls, value: list[str]) -> list[str]:
        for column in value:
            check_identifier(column)
        return value

    @property
    def references(self) -> list[ForeignKey]:
        """Every foreign key this table declares."""
        refs = [self.parent] if self.parent is not None else []
        return refs + list(self.optional_refs)


# ============================================================================
# Backup lifecycle
# ============================================================================


class BackupStatus(str, Enum):
    """Lifecycle status of a backup record."""

    CREATING = "creating"
    COMPLETED = "completed"
    FAILED = "failed"
    DELETED = "deleted"


# Monotonic: nothing leaves FAILED or DELETED.
ALLOWED_TRANSITIONS: dict[BackupStatus, frozenset[BackupStatus]] = {
    BackupStatus.CREATING: frozenset({BackupStatus.COMPLETED, BackupStatus.FAILED}),
    BackupStatus.COMPLETED: frozenset({BackupStatus.DELETED}),
    BackupStatus.FAILED: frozenset(),
    BackupStatus.DELETED: frozenset(),
}


class BackupRecord(BaseModel):
    """One persisted backup attempt."""

    id: int
    name: str
    file_name: str
    file_path: str
    file_size: int = 0
    checksum: str = ""
    status: BackupStatus
    storage_type: str = "local"
    schema_version: str
    tables_count: int
    records_count: int = 0
    compression_type: str = "gzip"
    is_encrypted: bool = False
    created_by: int
    created_at: datetime
    completed_at: datetime | None = None
    metadata: dict[str, Any] | None = None


# ============================================================================
# Archive contents
# ============================================================================


class Manifest(BaseModel):
    """Self-describing ``manifest.json`` stored inside every archive.

    Field names are snake_case in Python and camelCase on disk.
    """

    model_config = ConfigDict(populate_by_name=True)

    app_name: str = Field(alias="appName")
    schema_version: str = Field(alias="schemaVersion")
    created_at: str = Field(alias="createdAt")
    created_by: int = Field(alias="createdBy")
    table_order: list[str] = Field(alias="tableOrder")
    table_counts: dict[str, int] = Field(alias="tableCounts")
    checksums: dict[str, str]
    db_version: str = Field(alias="dbVersion")

    @property
    def total_records(self) -> int:
        return sum(self.table_counts.values())

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class TableExport(BaseModel):
    """Outcome of exporting one table."""

    table: str
    row_count: int
    checksum: str


# ============================================================================
# Operation results
# ============================================================================


class CreateResult(BaseModel):
    """Result of a completed snapshot."""

    backup_id: int
    file_name: str
    file_path: str
    file_size: int
    checksum: str
    records_count: int


class ValidationResult(BaseModel):
    """Result of archive validation.

    ``manifest`` is only set when ``valid`` is true.
    """

    valid: bool
    manifest: Manifest | None = None
    errors: list[str] = Field(default_factory=list)


class RestoreResult(BaseModel):
    """Result of a restore (or dry run)."""

    success: bool
    message: str
    dry_run: bool = False
    restored_counts: dict[str, int] | None = None
    skipped_counts: dict[str, int] = Field(default_factory=dict)

    @property
    def total_restored(self) -> int:
        return sum((self.restored_counts or {}).values())
