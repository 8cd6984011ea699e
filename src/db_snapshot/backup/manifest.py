"""Manifest construction and (de)serialization.

``build_manifest`` is pure: identical inputs give identical manifests
apart from ``createdAt``, the wall-clock capture at build time.
"""

import json
from datetime import datetime, timezone
from pathlib import Path

from db_snapshot.backup.models import Manifest

# Checked verbatim against every archive before a restore.
SCHEMA_VERSION = "1.0.0"

APP_NAME = "db-snapshot"
MANIFEST_FILE = "manifest.json"


def build_manifest(
    table_order: list[str],
    table_counts: dict[str, int],
    checksums: dict[str, str],
    created_by: int,
    schema_version: str = SCHEMA_VERSION,
    app_name: str = APP_NAME,
    db_version: str = "",
    created_at: datetime | None = None,
) -> Manifest:
    """Assemble the manifest for one snapshot.

    Args:
        table_order: Exported table names, in export order.
        table_counts: Row count per table.
        checksums: Hex SHA-256 per table record file.
        created_by: Operator id.
        schema_version: Engine schema version.
        app_name: Application name recorded in the archive.
        db_version: Database server version string.
        created_at: Override for the creation time (defaults to now, UTC).

    Raises:
        ValueError: If counts or checksums do not cover exactly the tables
            in ``table_order``.
    """
    expected = set(table_order)
    if len(expected) != len(table_order):
        raise ValueError("table_order contains duplicate table names")
    if set(table_counts) != expected:
        raise ValueError("table_counts keys do not match table_order")
    if set(checksums) != expected:
        raise ValueError("checksums keys do not match table_order")

    created_at = created_at or datetime.now(timezone.utc)

    return Manifest(
        app_name=app_name,
        schema_version=schema_version,
        created_at=created_at.isoformat(),
        created_by=created_by,
        table_order=list(table_order),
        table_counts={name: table_counts[name] for name in table_order},
        checksums={name: checksums[name] for name in table_order},
        db_version=db_version,
    )


def write_manifest(manifest: Manifest, directory: str | Path) -> Path:
    """Write ``manifest.json`` into ``directory`` and return its path."""
    path = Path(directory) / MANIFEST_FILE
    path.write_text(manifest.to_json(), encoding="utf-8")
    return path


def read_manifest(path: str | Path) -> Manifest:
    """Load and validate a manifest file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not valid JSON or misses required fields
            (``pydantic.ValidationError`` is a ``ValueError``).
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return Manifest.model_validate(data)
