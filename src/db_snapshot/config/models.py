"""Pydantic models for db-snapshot configuration."""

from pathlib import Path

from pydantic import BaseModel, Field

from db_snapshot.backup.exporter import DEFAULT_PAGE_SIZE
from db_snapshot.backup.manifest import APP_NAME
from db_snapshot.backup.models import TableDef
from db_snapshot.backup.registry import TableRegistry


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db-snapshot.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    provider: str = "postgres"  # Defaults to postgres


class BackupSettings(BaseModel):
    """The ``[backup]`` section."""

    directory: Path = Path("backups")
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, gt=0)
    app_name: str = APP_NAME
    stale_after_minutes: int = Field(default=60, gt=0)
    timeout_seconds: float | None = Field(default=None, gt=0)


class SnapshotConfig(BaseModel):
    """Complete configuration from db-snapshot.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    default_profile: str | None = None
    backup: BackupSettings = Field(default_factory=BackupSettings)
    tables: list[TableDef] = Field(default_factory=list)

    def registry(self) -> TableRegistry:
        """Build the table registry from ``[[tables]]``.

        Raises:
            RegistryError: If the table list is inconsistent.
        """
        return TableRegistry(self.tables)
